"""
Payment Intent Workflow (``settlement_modules.payment_intent.workflows``).

Draft -> Submitted -> Approved | Rejected; Approved -> Completed when
reconciliation matches a received payment to the intent.
"""

from settlement_kernel.domain.statuses import IntentStatus as S
from settlement_kernel.domain.workflow import Guard, Transition, Workflow
from settlement_kernel.logging_config import get_logger

logger = get_logger("modules.payment_intent.workflows")

REASON_PROVIDED = Guard(
    name="reason_provided",
    description="A rejection reason is recorded",
)

PAYMENT_INTENT_WORKFLOW = Workflow(
    name="payment_intent",
    description="Planned payment against an issued nota",
    initial_state=S.DRAFT.value,
    states=tuple(s.value for s in S),
    terminal_states=(S.REJECTED.value, S.COMPLETED.value),
    transitions=(
        Transition(S.DRAFT.value, S.SUBMITTED.value, action="submit", forward=True),
        Transition(S.SUBMITTED.value, S.APPROVED.value, action="approve", forward=True),
        Transition(S.SUBMITTED.value, S.REJECTED.value, action="reject", guard=REASON_PROVIDED),
        Transition(S.APPROVED.value, S.COMPLETED.value, action="complete", forward=True),
    ),
)

INTENT_STAMPS: dict[str, tuple[str, str | None]] = {
    "submit": ("submitted_by", None),
    "approve": ("approved_by", None),
}

logger.info(
    "payment_intent_workflow_registered",
    extra={
        "workflow_name": PAYMENT_INTENT_WORKFLOW.name,
        "state_count": len(PAYMENT_INTENT_WORKFLOW.states),
        "transition_count": len(PAYMENT_INTENT_WORKFLOW.transitions),
    },
)
