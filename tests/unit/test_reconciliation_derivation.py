"""Tests for settlement_engines.reconciliation: item derivation and auto-match selection."""

from decimal import Decimal

import pytest

from settlement_engines.reconciliation import (
    AdjustmentView,
    IntentView,
    PaymentView,
    derive_item,
    find_matching_intent,
)
from settlement_engines.tolerance import TolerancePolicy
from settlement_kernel.domain.statuses import (
    ExceptionType,
    IntentStatus,
    MatchStatus,
    NoteStatus,
    ReconStatus,
)

NOTA = "NOTA-B-1"
INVOICE = "INV-NOTA-B-1"
CONTRACT = "TTY-1"
TEN_M = Decimal("10000000")


def _payment(pid, amount, status=MatchStatus.MATCHED, invoice_id=INVOICE, nota_number=None, contract=CONTRACT):
    return PaymentView(
        payment_id=pid,
        amount=Decimal(amount),
        match_status=status.value,
        contract_id=contract,
        invoice_id=invoice_id,
        nota_number=nota_number,
    )


def _derive(payments=(), adjustments=(), nota_paid=False, item_closed=False, amount=TEN_M):
    return derive_item(
        nota_number=NOTA,
        nota_amount=amount,
        nota_paid=nota_paid,
        item_closed=item_closed,
        invoice_id=INVOICE,
        contract_id=CONTRACT,
        payments=list(payments),
        adjustments=list(adjustments),
        policy=TolerancePolicy(),
    )


class TestDeriveItem:
    def test_no_payments_is_pending_exception(self):
        snap = _derive()
        assert snap.payment_received == Decimal("0")
        assert snap.difference == TEN_M
        assert snap.recon_status == ReconStatus.PENDING
        assert snap.has_exception is True
        assert not snap.closable

    def test_payment_within_tolerance_matches(self):
        snap = _derive([_payment("p1", "9950000")])
        assert snap.recon_status == ReconStatus.MATCHED
        assert snap.exception_type == ExceptionType.NONE
        assert snap.difference == Decimal("50000")
        assert snap.has_exception is False
        assert snap.closable
        assert snap.applied_payment_ids == ("p1",)

    def test_shortfall_is_partial_with_exception(self):
        snap = _derive([_payment("p1", "9000000", MatchStatus.PARTIALLY_MATCHED)])
        assert snap.recon_status == ReconStatus.PARTIAL
        assert snap.exception_type == ExceptionType.UNDER
        assert snap.has_exception is True
        assert not snap.closable

    def test_paid_nota_never_has_exception(self):
        snap = _derive([_payment("p1", "9000000", MatchStatus.PARTIALLY_MATCHED)], nota_paid=True)
        assert snap.has_exception is False

    def test_closed_item_never_has_exception(self):
        snap = _derive(item_closed=True)
        assert snap.has_exception is False

    def test_overpayment(self):
        snap = _derive([_payment("p1", "11000000")])
        assert snap.recon_status == ReconStatus.OVERPAID
        assert snap.exception_type == ExceptionType.OVER
        assert snap.difference == Decimal("-1000000")

    def test_payment_linked_by_nota_number(self):
        snap = _derive([_payment("p1", "9950000", invoice_id=None, nota_number=NOTA)])
        assert snap.payment_received == Decimal("9950000")

    def test_unmatched_linked_payment_not_applied(self):
        snap = _derive([_payment("p1", "9950000", MatchStatus.RECEIVED)])
        assert snap.payment_received == Decimal("0")

    def test_unlinked_contract_payment_applied_only_when_matched(self):
        matched = _payment("p1", "4000000", invoice_id=None)
        partial = _payment("p2", "1000000", MatchStatus.PARTIALLY_MATCHED, invoice_id=None)
        other_contract = _payment("p3", "5000000", invoice_id=None, contract="TTY-2")
        snap = _derive([matched, partial, other_contract])
        assert snap.applied_payment_ids == ("p1",)
        assert snap.payment_received == Decimal("4000000")

    def test_payment_on_other_invoice_ignored(self):
        snap = _derive([_payment("p1", "9950000", invoice_id="INV-OTHER")])
        assert snap.payment_received == Decimal("0")

    def test_approved_debit_note_covers_shortfall(self):
        note = AdjustmentView("DN-1", NoteStatus.APPROVED.value, Decimal("1000000"))
        snap = _derive([_payment("p1", "9000000", MatchStatus.PARTIALLY_MATCHED)], [note])
        assert snap.adjustments_total == Decimal("1000000")
        assert snap.covered_by_adjustment is True
        assert snap.closable

    def test_draft_note_does_not_cover(self):
        note = AdjustmentView("DN-1", NoteStatus.DRAFT.value, Decimal("1000000"))
        snap = _derive([_payment("p1", "9000000", MatchStatus.PARTIALLY_MATCHED)], [note])
        assert snap.adjustments_total == Decimal("0")
        assert snap.covered_by_adjustment is False

    def test_insufficient_note_does_not_cover(self):
        note = AdjustmentView("DN-1", NoteStatus.ACKNOWLEDGED.value, Decimal("500000"))
        snap = _derive([_payment("p1", "9000000", MatchStatus.PARTIALLY_MATCHED)], [note])
        assert snap.covered_by_adjustment is False

    def test_credit_note_covers_overpayment(self):
        note = AdjustmentView("CN-1", NoteStatus.ACKNOWLEDGED.value, Decimal("-1000000"))
        snap = _derive([_payment("p1", "11000000")], [note])
        assert snap.covered_by_adjustment is True


class TestFindMatchingIntent:
    @pytest.fixture
    def policy(self):
        return TolerancePolicy()

    def _intent(self, iid, amount, status=IntentStatus.APPROVED, contract=CONTRACT):
        return IntentView(iid, contract, Decimal(amount), status.value)

    def test_closest_approved_intent_wins(self, policy):
        payment = _payment("p1", "9950000", MatchStatus.RECEIVED, invoice_id=None)
        intents = [
            self._intent("PI-A", "10040000"),
            self._intent("PI-B", "9960000"),
        ]
        assert find_matching_intent(payment, intents, policy).intent_id == "PI-B"

    def test_unapproved_intents_skipped(self, policy):
        payment = _payment("p1", "10000000", MatchStatus.RECEIVED, invoice_id=None)
        intents = [self._intent("PI-A", "10000000", IntentStatus.SUBMITTED)]
        assert find_matching_intent(payment, intents, policy) is None

    def test_other_contract_skipped(self, policy):
        payment = _payment("p1", "10000000", MatchStatus.RECEIVED, invoice_id=None)
        intents = [self._intent("PI-A", "10000000", contract="TTY-9")]
        assert find_matching_intent(payment, intents, policy) is None

    def test_out_of_tolerance_skipped(self, policy):
        payment = _payment("p1", "9000000", MatchStatus.RECEIVED, invoice_id=None)
        intents = [self._intent("PI-A", "10000000")]
        assert find_matching_intent(payment, intents, policy) is None
