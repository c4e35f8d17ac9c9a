"""
Tests for payment recording, matching, exception escalation and item close.

Amounts follow a 10,000,000 IDR batch nota (debtor premiums 4M and 6M),
so the tolerance is max(1% of 10M, 100,000) = 100,000.
"""

from decimal import Decimal

import pytest

from settlement_kernel.exceptions import (
    GateNotSatisfiedError,
    InvalidTransitionError,
    PaymentReferenceConflictError,
    PermissionDeniedError,
    ToleranceExceededError,
)
from tests.conftest import CONTRACT_ID


def _debtor_receipts(orch, batch_id="B-2025-01"):
    debtors = sorted(orch.batches.debtors(batch_id), key=lambda d: d.participant_no)
    return [d.payment_received_amount for d in debtors]


def _approved_intent(orch, nota_number, amount, brins, tugure):
    intent = orch.intents.create_intent(nota_number, "FULL", Decimal(amount), brins)
    orch.intents.submit(intent.intent_id, brins)
    return orch.intents.approve(intent.intent_id, tugure)


class TestRecordPayment:
    def test_within_tolerance_settles_nota(self, orch, confirmed_nota, tugure):
        nota = confirmed_nota()
        payment = orch.reconciliation.record_payment(
            nota.nota_number, Decimal("9950000"), tugure, payment_ref="TRX-001"
        )

        assert payment.match_status == "Matched"
        assert payment.exception_type == "None"

        paid = orch.notas.get(nota.nota_number)
        assert paid.status == "Paid"
        assert paid.payment_reference == "TRX-001"
        assert orch.notas.invoice_for(nota.nota_number).status == "Paid"
        assert orch.batches.get("B-2025-01").status == "Paid"

        item = orch.reconciliation.item(nota.nota_number)
        assert item.recon_status == "Matched"
        assert item.item_state == "Closed"
        assert item.has_exception is False

        assert _debtor_receipts(orch) == [Decimal("3980000"), Decimal("5970000")]
        debtors = orch.batches.debtors("B-2025-01")
        assert {d.invoice_status for d in debtors} == {"Paid"}
        assert {d.recon_status for d in debtors} == {"Closed"}
        # the recorded payment is the settlement payment
        assert len(orch.ctx.stores.payments.filter(nota_number=nota.nota_number)) == 1

    def test_short_payment_is_exception(self, orch, confirmed_nota, tugure):
        nota = confirmed_nota()
        payment = orch.reconciliation.record_payment(
            nota.nota_number, Decimal("9000000"), tugure, payment_ref="TRX-002"
        )

        assert payment.match_status == "Partially Matched"
        assert payment.exception_type == "Under"
        assert orch.notas.get(nota.nota_number).status == "Confirmed"

        item = orch.reconciliation.item(nota.nota_number)
        assert item.has_exception is True
        assert item.recon_status == "Partial"
        assert item.difference == Decimal("1000000")
        assert [i.nota_number for i in orch.reconciliation.exceptions()] == [nota.nota_number]

        invoice = orch.notas.invoice_for(nota.nota_number)
        assert invoice.status == "Partially Paid"
        assert invoice.outstanding_amount == Decimal("1000000")
        assert _debtor_receipts(orch) == [Decimal("3600000"), Decimal("5400000")]

        titles = [n.title for n in orch.notifier.notifications(target_role="TUGURE")]
        assert "Payment Exception" in titles

    def test_top_up_completes_settlement(self, orch, confirmed_nota, tugure):
        nota = confirmed_nota()
        orch.reconciliation.record_payment(
            nota.nota_number, Decimal("9000000"), tugure, payment_ref="TRX-002"
        )
        top_up = orch.reconciliation.record_payment(
            nota.nota_number, Decimal("1000000"), tugure, payment_ref="TRX-003"
        )

        assert top_up.match_status == "Matched"
        assert orch.notas.get(nota.nota_number).status == "Paid"
        assert _debtor_receipts(orch) == [Decimal("4000000"), Decimal("6000000")]

    def test_overpayment_is_exception(self, orch, confirmed_nota, tugure):
        nota = confirmed_nota()
        payment = orch.reconciliation.record_payment(
            nota.nota_number, Decimal("11000000"), tugure, payment_ref="TRX-004"
        )
        assert payment.exception_type == "Over"
        assert orch.notas.get(nota.nota_number).status == "Confirmed"

        item = orch.reconciliation.item(nota.nota_number)
        assert item.recon_status == "Overpaid"
        assert item.difference == Decimal("-1000000")
        assert item.has_exception is True

        # an unsettled nota never shows a Paid invoice, however much came in
        invoice = orch.notas.invoice_for(nota.nota_number)
        assert invoice.status == "Partially Paid"
        assert invoice.paid_amount == Decimal("11000000")
        assert invoice.outstanding_amount == Decimal("0")

    def test_default_references_are_sequential(self, orch, confirmed_nota, tugure):
        nota = confirmed_nota()
        first = orch.reconciliation.record_payment(nota.nota_number, Decimal("5000000"), tugure)
        second = orch.reconciliation.record_payment(nota.nota_number, Decimal("5000000"), tugure)

        assert first.payment_ref == f"PAY-{nota.nota_number}-1"
        assert second.payment_ref == f"PAY-{nota.nota_number}-2"
        assert second.match_status == "Matched"
        assert orch.notas.get(nota.nota_number).status == "Paid"
        assert _debtor_receipts(orch) == [Decimal("4000000"), Decimal("6000000")]

    def test_reference_reused_with_other_amount_rejected(self, orch, confirmed_nota, tugure):
        nota = confirmed_nota()
        orch.reconciliation.record_payment(
            nota.nota_number, Decimal("5000000"), tugure, payment_ref="TRX-020"
        )
        with pytest.raises(PaymentReferenceConflictError) as exc_info:
            orch.reconciliation.record_payment(
                nota.nota_number, Decimal("4000000"), tugure, payment_ref="TRX-020"
            )
        assert exc_info.value.payment_ref == "TRX-020"
        assert orch.audit.events(action="BLOCKED_PAYMENT_RECORD")
        assert orch.notas.invoice_for(nota.nota_number).paid_amount == Decimal("5000000")

    def test_reference_of_unmatched_receipt_rejected(self, orch, confirmed_nota, tugure):
        nota = confirmed_nota()
        receipt = orch.reconciliation.receive_payment(
            "BNK-20", CONTRACT_ID, Decimal("10000000"), tugure
        )
        with pytest.raises(PaymentReferenceConflictError):
            orch.reconciliation.record_payment(
                nota.nota_number, Decimal("10000000"), tugure, payment_ref="BNK-20"
            )
        assert orch.ctx.stores.payments.get(receipt.id).match_status == "Received"
        assert orch.notas.get(nota.nota_number).status == "Confirmed"

    def test_same_reference_recorded_once(self, orch, confirmed_nota, tugure):
        nota = confirmed_nota()
        first = orch.reconciliation.record_payment(
            nota.nota_number, Decimal("9000000"), tugure, payment_ref="TRX-005"
        )
        again = orch.reconciliation.record_payment(
            nota.nota_number, Decimal("9000000"), tugure, payment_ref="TRX-005"
        )
        assert again.id == first.id
        assert orch.notas.invoice_for(nota.nota_number).paid_amount == Decimal("9000000")

    def test_paid_nota_rejects_payment(self, orch, confirmed_nota, tugure):
        nota = confirmed_nota()
        orch.notas.advance(nota.nota_number, tugure, payment_reference="TRX-006")
        with pytest.raises(GateNotSatisfiedError) as exc_info:
            orch.reconciliation.record_payment(
                nota.nota_number, Decimal("1000"), tugure, payment_ref="TRX-007"
            )
        assert exc_info.value.gate == "nota_payable"
        assert orch.audit.events(action="BLOCKED_PAYMENT_RECORD")

    def test_branch_cannot_record(self, orch, confirmed_nota, brins):
        nota = confirmed_nota()
        with pytest.raises(PermissionDeniedError):
            orch.reconciliation.record_payment(
                nota.nota_number, Decimal("10000000"), brins, payment_ref="TRX-008"
            )


class TestMatching:
    def test_receive_is_idempotent(self, orch, tugure):
        first = orch.reconciliation.receive_payment("BNK-1", CONTRACT_ID, Decimal("5000000"), tugure)
        again = orch.reconciliation.receive_payment("BNK-1", CONTRACT_ID, Decimal("5000000"), tugure)
        assert again.id == first.id
        assert first.match_status == "Received"
        assert [p.payment_ref for p in orch.reconciliation.unmatched_payments()] == ["BNK-1"]

    def test_auto_match_within_tolerance(self, orch, issued_nota, brins, tugure):
        nota = issued_nota()
        intent = _approved_intent(orch, nota.nota_number, "5000000", brins, tugure)
        orch.reconciliation.receive_payment("BNK-1", CONTRACT_ID, Decimal("4990000"), tugure)
        orch.reconciliation.receive_payment("BNK-2", CONTRACT_ID, Decimal("3000000"), tugure)

        matched = orch.reconciliation.auto_match(tugure)

        assert [p.payment_ref for p in matched] == ["BNK-1"]
        assert matched[0].intent_id == intent.intent_id
        assert orch.intents.get(intent.intent_id).status == "Completed"
        assert [p.payment_ref for p in orch.reconciliation.unmatched_payments()] == ["BNK-2"]

        invoice = orch.notas.invoice_for(nota.nota_number)
        assert invoice.status == "Partially Paid"
        assert invoice.paid_amount == Decimal("4990000")
        # auto-match never settles on its own
        assert orch.notas.get(nota.nota_number).status == "Issued"

    def test_manual_match_settles_when_nothing_outstanding(self, orch, issued_nota, brins, tugure):
        nota = issued_nota()
        intent = _approved_intent(orch, nota.nota_number, "10000000", brins, tugure)
        payment = orch.reconciliation.receive_payment(
            "BNK-9", CONTRACT_ID, Decimal("10000000"), tugure
        )

        matched = orch.reconciliation.manual_match(payment.id, intent.intent_id, tugure, "Per remittance")

        assert matched.match_status == "Matched"
        assert matched.match_remarks == "Per remittance"
        assert orch.notas.get(nota.nota_number).status == "Paid"
        assert orch.reconciliation.item(nota.nota_number).item_state == "Closed"

    def test_manual_match_twice_blocked(self, orch, issued_nota, brins, tugure):
        nota = issued_nota()
        first = _approved_intent(orch, nota.nota_number, "4000000", brins, tugure)
        second = _approved_intent(orch, nota.nota_number, "4000000", brins, tugure)
        payment = orch.reconciliation.receive_payment("BNK-3", CONTRACT_ID, Decimal("4000000"), tugure)
        orch.reconciliation.manual_match(payment.id, first.intent_id, tugure)

        with pytest.raises(InvalidTransitionError):
            orch.reconciliation.manual_match(payment.id, second.intent_id, tugure)
        assert orch.audit.events(action="BLOCKED_PAYMENT_MANUAL_MATCH")

    def test_manual_match_across_contracts_blocked(self, orch, issued_nota, brins, tugure):
        nota = issued_nota()
        intent = _approved_intent(orch, nota.nota_number, "4000000", brins, tugure)
        payment = orch.reconciliation.receive_payment("BNK-4", "TTY-OTHER", Decimal("4000000"), tugure)
        with pytest.raises(GateNotSatisfiedError) as exc_info:
            orch.reconciliation.manual_match(payment.id, intent.intent_id, tugure)
        assert exc_info.value.gate == "same_contract"

    def test_settlement_completes_approved_intents(self, orch, confirmed_nota, brins, tugure):
        nota = confirmed_nota()
        intent = _approved_intent(orch, nota.nota_number, "10000000", brins, tugure)
        orch.notas.advance(nota.nota_number, tugure, payment_reference="TRX-030")
        assert orch.intents.get(intent.intent_id).status == "Completed"

        late = orch.reconciliation.receive_payment("BNK-LATE", CONTRACT_ID, Decimal("10000000"), tugure)
        assert orch.reconciliation.auto_match(tugure) == []

        assert orch.ctx.stores.payments.get(late.id).match_status == "Received"
        assert orch.notas.invoice_for(nota.nota_number).paid_amount == Decimal("10000000")
        assert _debtor_receipts(orch) == [Decimal("4000000"), Decimal("6000000")]

    def test_auto_match_skips_intent_of_paid_nota(
        self, orch, confirmed_nota, brins, tugure, captured_logs
    ):
        nota = confirmed_nota()
        intent = orch.intents.create_intent(nota.nota_number, "FULL", Decimal("10000000"), brins)
        orch.intents.submit(intent.intent_id, brins)
        orch.notas.advance(nota.nota_number, tugure, payment_reference="TRX-031")
        # approved only after the nota settled
        orch.intents.approve(intent.intent_id, tugure)

        late = orch.reconciliation.receive_payment("BNK-LATE", CONTRACT_ID, Decimal("10000000"), tugure)
        assert orch.reconciliation.auto_match(tugure) == []

        assert orch.ctx.stores.payments.get(late.id).match_status == "Received"
        assert orch.intents.get(intent.intent_id).status == "Approved"
        assert _debtor_receipts(orch) == [Decimal("4000000"), Decimal("6000000")]
        skipped = [r for r in captured_logs() if r["message"] == "auto_match_intent_skipped"]
        assert skipped[0]["intent_id"] == intent.intent_id
        assert skipped[0]["nota_status"] == "Paid"


class TestExceptionsAndClose:
    def test_close_outside_threshold_blocked(self, orch, confirmed_nota, tugure):
        nota = confirmed_nota()
        orch.reconciliation.record_payment(
            nota.nota_number, Decimal("9000000"), tugure, payment_ref="TRX-010"
        )
        with pytest.raises(ToleranceExceededError):
            orch.reconciliation.close_item(nota.nota_number, tugure)
        assert orch.audit.events(action="BLOCKED_RECONCILIATION_CLOSE")
        assert orch.reconciliation.item(nota.nota_number).item_state == "Open"

    def test_close_within_threshold_settles(self, orch, issued_nota, brins, tugure):
        nota = issued_nota()
        _approved_intent(orch, nota.nota_number, "10000000", brins, tugure)
        orch.reconciliation.receive_payment("BNK-5", CONTRACT_ID, Decimal("9950000"), tugure)
        orch.reconciliation.auto_match(tugure)

        item = orch.reconciliation.close_item(nota.nota_number, tugure, remarks="Bank charges")

        assert item.item_state == "Closed"
        assert item.closed_by == tugure.email
        assert orch.notas.get(nota.nota_number).status == "Paid"
        assert orch.audit.events(action="RECONCILIATION_CLOSED")

    def test_no_adjustment_without_exception(self, orch, issued_nota, brins, tugure):
        nota = issued_nota()
        _approved_intent(orch, nota.nota_number, "10000000", brins, tugure)
        orch.reconciliation.receive_payment("BNK-6", CONTRACT_ID, Decimal("9950000"), tugure)
        orch.reconciliation.auto_match(tugure)

        with pytest.raises(GateNotSatisfiedError) as exc_info:
            orch.reconciliation.open_adjustment(nota.nota_number, tugure)
        assert exc_info.value.gate == "reconciliation_exception"

    def test_shortfall_opens_debit_note(self, orch, confirmed_nota, tugure):
        nota = confirmed_nota()
        orch.reconciliation.record_payment(
            nota.nota_number, Decimal("9000000"), tugure, payment_ref="TRX-011"
        )
        note = orch.reconciliation.open_adjustment(nota.nota_number, tugure)

        assert note.note_number == f"DN-{nota.nota_number}-1"
        assert note.note_type == "Debit"
        assert note.adjustment_amount == Decimal("1000000")
        assert note.original_amount == Decimal("10000000")
        assert note.batch_id == "B-2025-01"
        assert note.status == "Draft"
        # an open note is returned instead of a second one
        assert orch.reconciliation.open_adjustment(nota.nota_number, tugure).id == note.id

    def test_overpayment_opens_credit_note(self, orch, confirmed_nota, tugure):
        nota = confirmed_nota()
        orch.reconciliation.record_payment(
            nota.nota_number, Decimal("11000000"), tugure, payment_ref="TRX-012"
        )
        note = orch.reconciliation.open_adjustment(nota.nota_number, tugure, reason="Duplicate transfer")
        assert note.note_number == f"CN-{nota.nota_number}-1"
        assert note.note_type == "Credit"
        assert note.adjustment_amount == Decimal("-1000000")
        assert note.reason_description == "Duplicate transfer"

    def test_draft_nota_cannot_be_adjusted(self, orch, approved_batch, tugure):
        approved_batch()
        draft = orch.notas.nota_for_batch("B-2025-01")
        with pytest.raises(GateNotSatisfiedError):
            orch.reconciliation.open_adjustment(draft.nota_number, tugure)

    def test_credit_note_settles_overpaid_invoice(self, orch, confirmed_nota, brins, tugure):
        nota = confirmed_nota()
        orch.reconciliation.record_payment(
            nota.nota_number, Decimal("11000000"), tugure, payment_ref="TRX-013"
        )
        note = orch.reconciliation.open_adjustment(nota.nota_number, tugure)
        orch.adjustments.review(note.note_number, tugure)
        orch.adjustments.approve(note.note_number, tugure)
        orch.adjustments.acknowledge(note.note_number, brins)

        assert orch.notas.get(nota.nota_number).status == "Paid"
        invoice = orch.notas.invoice_for(nota.nota_number)
        assert invoice.status == "Paid"
        assert invoice.outstanding_amount == Decimal("0")


class TestMarkFinal:
    def test_partial_outside_threshold_blocked(self, orch, confirmed_nota, tugure):
        nota = confirmed_nota()
        orch.reconciliation.record_payment(
            nota.nota_number, Decimal("9000000"), tugure, payment_ref="TRX-040"
        )
        with pytest.raises(ToleranceExceededError):
            orch.reconciliation.mark_final(nota.nota_number, tugure)
        assert orch.audit.events(action="BLOCKED_RECONCILIATION_MARK_FINAL")
        assert orch.reconciliation.item(nota.nota_number).item_state == "Open"

    def test_overpayment_can_be_finalized(self, orch, confirmed_nota, tugure):
        nota = confirmed_nota()
        orch.reconciliation.record_payment(
            nota.nota_number, Decimal("11000000"), tugure, payment_ref="TRX-041"
        )
        item = orch.reconciliation.mark_final(nota.nota_number, tugure)

        assert item.item_state == "Final"
        assert orch.audit.events(action="RECONCILIATION_MARKED_FINAL")
        notes = orch.notifier.notifications(reference_id=nota.nota_number)
        final = [n for n in notes if n.title == "Reconciliation Marked Final"]
        assert len(final) == 1
        assert final[0].target_role == "ALL"
        assert "Debit/credit note now enabled" in final[0].message
        # the nota itself does not move
        assert orch.notas.get(nota.nota_number).status == "Confirmed"

    def test_marking_twice_is_noop(self, orch, confirmed_nota, tugure):
        nota = confirmed_nota()
        orch.reconciliation.record_payment(
            nota.nota_number, Decimal("11000000"), tugure, payment_ref="TRX-042"
        )
        orch.reconciliation.mark_final(nota.nota_number, tugure)
        again = orch.reconciliation.mark_final(nota.nota_number, tugure)

        assert again.item_state == "Final"
        assert len(orch.audit.events(action="RECONCILIATION_MARKED_FINAL")) == 1

    def test_branch_cannot_mark_final(self, orch, confirmed_nota, brins, tugure):
        nota = confirmed_nota()
        orch.reconciliation.record_payment(
            nota.nota_number, Decimal("11000000"), tugure, payment_ref="TRX-043"
        )
        with pytest.raises(PermissionDeniedError):
            orch.reconciliation.mark_final(nota.nota_number, brins)

    def test_draft_nota_cannot_be_finalized(self, orch, approved_batch, tugure):
        approved_batch()
        draft = orch.notas.nota_for_batch("B-2025-01")
        with pytest.raises(GateNotSatisfiedError) as exc_info:
            orch.reconciliation.mark_final(draft.nota_number, tugure)
        assert exc_info.value.gate == "nota_payable"
