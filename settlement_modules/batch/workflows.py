"""
Batch Workflow (``settlement_modules.batch.workflows``).

Responsibility
--------------
Declares the batch lifecycle: the forward pipeline walked by ``advance``
and the reject / close / reopen side branches.

Architecture position
---------------------
**Modules layer** -- declarative workflow definitions.  Imports canonical
Guard, Transition, Workflow from ``settlement_kernel.domain.workflow``.

Invariants enforced
-------------------
* Uploaded -> Validated -> Matched -> Approved -> Nota Issued ->
  Branch Confirmed -> Paid -> Closed is the only forward path.
* Nota Issued is guarded by ``batch_ready_for_nota``, which only the debtor
  review gate writes.
* Rejected is reachable from Matched only and requires a reason.
* Close is an operational lock and may be applied from any open status
  once every debtor is decided.
* Closed -> Reopen Requested -> Reopened | Closed, resolved by an elevated
  role only.
"""

from settlement_kernel.domain.statuses import BatchStatus as S
from settlement_kernel.domain.workflow import Guard, Transition, Workflow
from settlement_kernel.logging_config import get_logger

logger = get_logger("modules.batch.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

BATCH_READY_FOR_NOTA = Guard(
    name="batch_ready_for_nota",
    description="Debtor review completed with at least one approved debtor",
)

NOTA_SETTLED = Guard(
    name="nota_settled",
    description="The batch nota has been paid",
)

ALL_DEBTORS_REVIEWED = Guard(
    name="all_debtors_reviewed",
    description="Every debtor in the batch has a terminal underwriting decision",
)

REASON_PROVIDED = Guard(
    name="reason_provided",
    description="A non-empty reason accompanies the request",
)

ELEVATED_ROLE = Guard(
    name="elevated_role",
    description="Actor holds an elevated role",
)


# -----------------------------------------------------------------------------
# Batch Workflow
# -----------------------------------------------------------------------------

# Statuses from which an operational close is allowed besides the forward Paid -> Closed
_CLOSABLE_EARLY = (
    S.UPLOADED,
    S.VALIDATED,
    S.MATCHED,
    S.APPROVED,
    S.NOTA_ISSUED,
    S.BRANCH_CONFIRMED,
)

BATCH_WORKFLOW = Workflow(
    name="batch",
    description="Monthly debtor batch from intake to operational close",
    initial_state=S.UPLOADED.value,
    states=tuple(s.value for s in S),
    terminal_states=(S.REJECTED.value,),
    transitions=(
        Transition(S.UPLOADED.value, S.VALIDATED.value, action="validate", forward=True),
        Transition(S.VALIDATED.value, S.MATCHED.value, action="match", forward=True),
        Transition(S.MATCHED.value, S.APPROVED.value, action="approve", forward=True),
        Transition(
            S.APPROVED.value,
            S.NOTA_ISSUED.value,
            action="issue_nota",
            guard=BATCH_READY_FOR_NOTA,
            forward=True,
        ),
        Transition(
            S.NOTA_ISSUED.value,
            S.BRANCH_CONFIRMED.value,
            action="confirm_branch",
            forward=True,
        ),
        Transition(
            S.BRANCH_CONFIRMED.value,
            S.PAID.value,
            action="mark_paid",
            guard=NOTA_SETTLED,
            forward=True,
        ),
        Transition(S.PAID.value, S.CLOSED.value, action="close", guard=ALL_DEBTORS_REVIEWED, forward=True),
        Transition(S.REOPENED.value, S.CLOSED.value, action="close", guard=ALL_DEBTORS_REVIEWED, forward=True),
        *(
            Transition(s.value, S.CLOSED.value, action="close", guard=ALL_DEBTORS_REVIEWED)
            for s in _CLOSABLE_EARLY
        ),
        Transition(S.MATCHED.value, S.REJECTED.value, action="reject", guard=REASON_PROVIDED),
        Transition(
            S.CLOSED.value,
            S.REOPEN_REQUESTED.value,
            action="request_reopen",
            guard=REASON_PROVIDED,
        ),
        Transition(
            S.REOPEN_REQUESTED.value,
            S.REOPENED.value,
            action="approve_reopen",
            guard=ELEVATED_ROLE,
        ),
        Transition(
            S.REOPEN_REQUESTED.value,
            S.CLOSED.value,
            action="reject_reopen",
            guard=ELEVATED_ROLE,
        ),
    ),
)

# action -> (actor column, date column)
BATCH_STAMPS: dict[str, tuple[str, str | None]] = {
    "validate": ("validated_by", "validated_date"),
    "match": ("matched_by", "matched_date"),
    "approve": ("approved_by", "approved_date"),
    "issue_nota": ("nota_issued_by", "nota_issued_date"),
    "confirm_branch": ("branch_confirmed_by", "branch_confirmed_date"),
    "mark_paid": ("paid_by", "paid_date"),
    "close": ("closed_by", "closed_date"),
    "reject": ("rejected_by", "rejected_date"),
    "request_reopen": ("reopen_requested_by", None),
    "approve_reopen": ("reopen_resolved_by", None),
    "reject_reopen": ("reopen_resolved_by", None),
}

logger.info(
    "batch_workflow_registered",
    extra={
        "workflow_name": BATCH_WORKFLOW.name,
        "state_count": len(BATCH_WORKFLOW.states),
        "transition_count": len(BATCH_WORKFLOW.transitions),
        "initial_state": BATCH_WORKFLOW.initial_state,
    },
)
