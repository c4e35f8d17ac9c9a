"""
Module: settlement_engines.reconciliation
Responsibility:
    Pure derivation of a nota's reconciliation item from the payments and
    debit/credit notes that reference it, and selection of the payment
    intent an incoming payment auto-matches.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Inputs are lightweight
    views built by the reconciliation service from ORM rows.

Invariants enforced:
    - payment_received = sum of applied payments:
        * payments linked to the nota's invoice (or to the nota itself)
          whose match_status is Matched or Partially Matched, plus
        * unlinked payments on the same contract whose match_status is
          Matched.
    - difference = nota_amount - payment_received.
    - recon_status == MATCHED iff |difference| <= tolerance(nota_amount).
    - has_exception iff |difference| > tolerance and the nota is not Paid
      and the item is not closed.
    - A debit/credit note covers the difference when it is Approved or
      Acknowledged and |difference - sum(adjustments)| <= close_threshold.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal

from settlement_engines.tolerance import TolerancePolicy, classify_difference
from settlement_engines.tracer import traced_engine
from settlement_kernel.domain.statuses import (
    ExceptionType,
    IntentStatus,
    MatchStatus,
    NoteStatus,
    ReconStatus,
)
from settlement_kernel.domain.values import ZERO

APPLIED_LINKED = frozenset({MatchStatus.MATCHED.value, MatchStatus.PARTIALLY_MATCHED.value})
COVERING_NOTE_STATES = frozenset({NoteStatus.APPROVED.value, NoteStatus.ACKNOWLEDGED.value})


@dataclass(frozen=True)
class PaymentView:
    payment_id: str
    amount: Decimal
    match_status: str
    contract_id: str
    invoice_id: str | None = None
    nota_number: str | None = None


@dataclass(frozen=True)
class AdjustmentView:
    note_number: str
    status: str
    adjustment_amount: Decimal


@dataclass(frozen=True)
class IntentView:
    intent_id: str
    contract_id: str
    planned_amount: Decimal
    status: str


@dataclass(frozen=True)
class ReconciliationSnapshot:
    nota_number: str
    nota_amount: Decimal
    payment_received: Decimal
    difference: Decimal
    tolerance: Decimal
    recon_status: ReconStatus
    exception_type: ExceptionType
    has_exception: bool
    adjustments_total: Decimal
    covered_by_adjustment: bool
    applied_payment_ids: tuple[str, ...]
    within_close_threshold: bool = False

    @property
    def closable(self) -> bool:
        """True when close_item may proceed without further adjustment."""
        return self.covered_by_adjustment or self.within_close_threshold


def is_applied(
    payment: PaymentView,
    nota_number: str,
    invoice_id: str | None,
    contract_id: str,
) -> bool:
    linked = (invoice_id is not None and payment.invoice_id == invoice_id) or (
        payment.nota_number is not None and payment.nota_number == nota_number
    )
    if linked:
        return payment.match_status in APPLIED_LINKED
    unlinked = payment.invoice_id is None and payment.nota_number is None
    return unlinked and payment.contract_id == contract_id and payment.match_status == MatchStatus.MATCHED.value


def applied_payments(
    payments: Iterable[PaymentView],
    nota_number: str,
    invoice_id: str | None,
    contract_id: str,
) -> list[PaymentView]:
    return [p for p in payments if is_applied(p, nota_number, invoice_id, contract_id)]


def covering_total(adjustments: Iterable[AdjustmentView]) -> Decimal:
    return sum(
        (a.adjustment_amount for a in adjustments if a.status in COVERING_NOTE_STATES),
        ZERO,
    )


@traced_engine("reconciliation_derivation", "1.0", fingerprint_fields=("nota_number", "nota_amount"))
def derive_item(
    *,
    nota_number: str,
    nota_amount: Decimal,
    nota_paid: bool,
    item_closed: bool,
    invoice_id: str | None,
    contract_id: str,
    payments: Sequence[PaymentView],
    adjustments: Sequence[AdjustmentView],
    policy: TolerancePolicy,
) -> ReconciliationSnapshot:
    applied = applied_payments(payments, nota_number, invoice_id, contract_id)
    received = sum((p.amount for p in applied), ZERO)
    difference = nota_amount - received
    tolerance = policy.tolerance_for(nota_amount)
    status, exception_type = classify_difference(difference, tolerance, received)

    adjustments_total = covering_total(adjustments)
    covered = adjustments_total != ZERO and policy.can_close(difference - adjustments_total)

    has_exception = abs(difference) > tolerance and not nota_paid and not item_closed

    return ReconciliationSnapshot(
        nota_number=nota_number,
        nota_amount=nota_amount,
        payment_received=received,
        difference=difference,
        tolerance=tolerance,
        recon_status=status,
        exception_type=exception_type,
        has_exception=has_exception,
        adjustments_total=adjustments_total,
        covered_by_adjustment=covered,
        applied_payment_ids=tuple(p.payment_id for p in applied),
        within_close_threshold=policy.can_close(difference),
    )


def find_matching_intent(
    payment: PaymentView,
    intents: Iterable[IntentView],
    policy: TolerancePolicy,
) -> IntentView | None:
    """
    First Approved intent on the payment's contract whose planned amount is
    within tolerance of the payment, closest difference first.
    """
    candidates = [
        i
        for i in intents
        if i.status == IntentStatus.APPROVED.value
        and i.contract_id == payment.contract_id
        and policy.within(payment.amount - i.planned_amount, i.planned_amount)
    ]
    if not candidates:
        return None
    return min(candidates, key=lambda i: (abs(payment.amount - i.planned_amount), i.intent_id))
