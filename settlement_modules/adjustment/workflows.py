"""
Debit/Credit Note Workflow (``settlement_modules.adjustment.workflows``).

Draft -> Under Review -> Approved -> Acknowledged, with Rejected reachable
from Under Review only.  Review and approval belong to the reinsurer, the
acknowledgment to the counter-party branch; the mapping lives in the RBAC
configuration, not here.
"""

from settlement_kernel.domain.statuses import NoteStatus as S
from settlement_kernel.domain.workflow import Guard, Transition, Workflow
from settlement_kernel.logging_config import get_logger

logger = get_logger("modules.adjustment.workflows")

REASON_PROVIDED = Guard(
    name="reason_provided",
    description="A rejection reason is recorded",
)

DEBIT_CREDIT_NOTE_WORKFLOW = Workflow(
    name="debit_credit_note",
    description="Adjustment overlay resolving a reconciliation exception",
    initial_state=S.DRAFT.value,
    states=tuple(s.value for s in S),
    terminal_states=(S.REJECTED.value, S.ACKNOWLEDGED.value),
    transitions=(
        Transition(S.DRAFT.value, S.UNDER_REVIEW.value, action="review", forward=True),
        Transition(S.UNDER_REVIEW.value, S.APPROVED.value, action="approve", forward=True),
        Transition(S.UNDER_REVIEW.value, S.REJECTED.value, action="reject", guard=REASON_PROVIDED),
        Transition(S.APPROVED.value, S.ACKNOWLEDGED.value, action="acknowledge", forward=True),
    ),
)

NOTE_STAMPS: dict[str, tuple[str, str | None]] = {
    "review": ("reviewed_by", "reviewed_date"),
    "approve": ("approved_by", "approved_date"),
    "reject": ("rejected_by", None),
    "acknowledge": ("acknowledged_by", "acknowledged_date"),
}

logger.info(
    "debit_credit_note_workflow_registered",
    extra={
        "workflow_name": DEBIT_CREDIT_NOTE_WORKFLOW.name,
        "state_count": len(DEBIT_CREDIT_NOTE_WORKFLOW.states),
        "transition_count": len(DEBIT_CREDIT_NOTE_WORKFLOW.transitions),
    },
)
