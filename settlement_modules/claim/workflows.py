"""
Claim Workflow (``settlement_modules.claim.workflows``).

Submitted -> Checked -> Doc Verified -> Invoiced.  Check and verification
re-evaluate the claim gate (a Batch nota of the claim's batch is Paid);
rejection returns the claim to Draft, from which it can be resubmitted.
"""

from settlement_kernel.domain.statuses import ClaimStatus as S
from settlement_kernel.domain.workflow import Guard, Transition, Workflow
from settlement_kernel.logging_config import get_logger

logger = get_logger("modules.claim.workflows")

BATCH_NOTA_PAID = Guard(
    name="batch_nota_paid",
    description="A Batch nota of the claim's batch has been paid",
)

REASON_PROVIDED = Guard(
    name="reason_provided",
    description="A rejection reason is recorded",
)

CLAIM_WORKFLOW = Workflow(
    name="claim",
    description="Claim review from submission to claim nota",
    initial_state=S.SUBMITTED.value,
    states=tuple(s.value for s in S),
    terminal_states=(S.INVOICED.value,),
    transitions=(
        Transition(S.SUBMITTED.value, S.CHECKED.value, action="check", guard=BATCH_NOTA_PAID, forward=True),
        Transition(S.CHECKED.value, S.DOC_VERIFIED.value, action="verify", guard=BATCH_NOTA_PAID, forward=True),
        Transition(S.DOC_VERIFIED.value, S.INVOICED.value, action="invoice", forward=True),
        Transition(S.DRAFT.value, S.SUBMITTED.value, action="resubmit", guard=BATCH_NOTA_PAID),
        Transition(S.SUBMITTED.value, S.DRAFT.value, action="reject", guard=REASON_PROVIDED),
        Transition(S.CHECKED.value, S.DRAFT.value, action="reject", guard=REASON_PROVIDED),
        Transition(S.DOC_VERIFIED.value, S.DRAFT.value, action="reject", guard=REASON_PROVIDED),
    ),
)

CLAIM_STAMPS: dict[str, tuple[str, str | None]] = {
    "check": ("checked_by", "checked_date"),
    "verify": ("verified_by", "verified_date"),
    "invoice": ("invoiced_by", "invoiced_date"),
}

logger.info(
    "claim_workflow_registered",
    extra={
        "workflow_name": CLAIM_WORKFLOW.name,
        "state_count": len(CLAIM_WORKFLOW.states),
        "transition_count": len(CLAIM_WORKFLOW.transitions),
    },
)
