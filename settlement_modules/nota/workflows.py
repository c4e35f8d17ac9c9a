"""
Nota Workflow (``settlement_modules.nota.workflows``).

Draft -> Issued -> Confirmed -> Paid, forward only.  There is no rejection
state: a wrong nota is corrected with a debit/credit note, never deleted.
``settle`` lets the settlement cascade pay an Issued nota whose payment was
reconciled before the branch confirmed it.
"""

from settlement_kernel.domain.statuses import NotaStatus as S
from settlement_kernel.domain.workflow import Transition, Workflow
from settlement_kernel.logging_config import get_logger

logger = get_logger("modules.nota.workflows")

NOTA_WORKFLOW = Workflow(
    name="nota",
    description="Billing instrument for a batch or claim",
    initial_state=S.DRAFT.value,
    states=tuple(s.value for s in S),
    terminal_states=(S.PAID.value,),
    transitions=(
        Transition(S.DRAFT.value, S.ISSUED.value, action="issue", forward=True),
        Transition(S.ISSUED.value, S.CONFIRMED.value, action="confirm", forward=True),
        Transition(S.CONFIRMED.value, S.PAID.value, action="mark_paid", forward=True),
        Transition(S.ISSUED.value, S.PAID.value, action="settle"),
        Transition(S.CONFIRMED.value, S.PAID.value, action="settle"),
    ),
)

NOTA_STAMPS: dict[str, tuple[str, str | None]] = {
    "issue": ("issued_by", "issued_date"),
    "confirm": ("confirmed_by", "confirmed_date"),
    "mark_paid": ("paid_by", "paid_date"),
    "settle": ("paid_by", "paid_date"),
}

logger.info(
    "nota_workflow_registered",
    extra={
        "workflow_name": NOTA_WORKFLOW.name,
        "state_count": len(NOTA_WORKFLOW.states),
        "transition_count": len(NOTA_WORKFLOW.transitions),
    },
)
