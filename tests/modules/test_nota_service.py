"""Tests for nota creation gates, amount locking and the Issued/Confirmed side effects."""

from decimal import Decimal

import pytest

from settlement_kernel.domain.statuses import ReviewDecision
from settlement_kernel.exceptions import (
    AmountImmutableError,
    GateNotSatisfiedError,
    InvalidTransitionError,
    PermissionDeniedError,
)


class TestCreateForBatch:
    def test_needs_approved_batch(self, orch, matched_batch, tugure):
        matched_batch()
        ids = [d.id for d in orch.batches.debtors("B-2025-01")]
        orch.reviews.decide_bulk(ids, ReviewDecision.APPROVE, None, tugure)

        with pytest.raises(GateNotSatisfiedError) as exc_info:
            orch.notas.create_for_batch("B-2025-01", tugure)
        assert exc_info.value.gate == "batch_approved"
        assert orch.audit.events(action="BLOCKED_NOTA_CREATE")

    def test_needs_completed_review(self, orch, matched_batch, tugure):
        matched_batch()
        orch.batches.advance("B-2025-01", tugure)
        with pytest.raises(GateNotSatisfiedError) as exc_info:
            orch.notas.create_for_batch("B-2025-01", tugure)
        assert exc_info.value.gate == "batch_ready_for_nota"

    def test_idempotent(self, orch, approved_batch, tugure):
        approved_batch()
        first = orch.notas.nota_for_batch("B-2025-01")
        again = orch.notas.create_for_batch("B-2025-01", tugure)
        assert again.id == first.id
        assert len(orch.audit.events(action="NOTA_CREATED")) == 1

    def test_amount_is_final_premium(self, orch, approved_batch):
        approved_batch(premiums=("2500000", "1500000"))
        nota = orch.notas.nota_for_batch("B-2025-01")
        assert nota.nota_number.startswith("NOTA-B-2025-01-")
        assert nota.nota_type == "Batch"
        assert nota.reference_id == "B-2025-01"
        assert nota.amount == Decimal("4000000")
        assert nota.currency == "IDR"


class TestUpdateAmount:
    def test_draft_amount_editable(self, orch, approved_batch, tugure):
        approved_batch()
        nota = orch.notas.nota_for_batch("B-2025-01")
        updated = orch.notas.update_amount(nota.nota_number, Decimal("9500000"), tugure)
        assert updated.amount == Decimal("9500000")

    def test_non_positive_amount_rejected(self, orch, approved_batch, tugure):
        approved_batch()
        nota = orch.notas.nota_for_batch("B-2025-01")
        with pytest.raises(ValueError):
            orch.notas.update_amount(nota.nota_number, Decimal("0"), tugure)

    def test_issued_amount_locked(self, orch, issued_nota, tugure):
        nota = issued_nota()
        with pytest.raises(AmountImmutableError):
            orch.notas.update_amount(nota.nota_number, Decimal("9000000"), tugure)
        assert orch.audit.events(action="BLOCKED_NOTA_UPDATE_AMOUNT")
        assert orch.notas.get(nota.nota_number).amount == Decimal("10000000")


class TestIssue:
    def test_issue_locks_and_invoices(self, orch, issued_nota):
        nota = issued_nota()
        assert nota.status == "Issued"
        assert nota.is_immutable is True

        invoice = orch.notas.invoice_for(nota.nota_number)
        assert invoice.invoice_number == f"INV-{nota.nota_number}"
        assert invoice.total_amount == Decimal("10000000")
        assert invoice.outstanding_amount == Decimal("10000000")
        assert invoice.status == "Issued"
        assert orch.reconciliation.item(nota.nota_number).item_state == "Open"

    def test_issue_sets_debtor_invoice_fields(self, orch, issued_nota):
        issued_nota()
        debtors = sorted(orch.batches.debtors("B-2025-01"), key=lambda d: d.participant_no)
        assert [d.invoice_amount for d in debtors] == [Decimal("4000000"), Decimal("6000000")]
        assert {d.invoice_status for d in debtors} == {"Issued"}
        assert {d.recon_status for d in debtors} == {"In Progress"}

    def test_issue_moves_batch_and_emails_branch(self, orch, approved_batch, tugure, email_sender):
        approved_batch()
        nota = orch.notas.nota_for_batch("B-2025-01")
        orch.notas.advance(nota.nota_number, tugure)

        assert orch.batches.get("B-2025-01").status == "Nota Issued"
        subjects = [m["subject"] for m in email_sender.sent if m["recipient_role"] == "BRINS"]
        assert f"Nota {nota.nota_number} issued" in subjects

    def test_brins_cannot_issue(self, orch, approved_batch, brins):
        approved_batch()
        nota = orch.notas.nota_for_batch("B-2025-01")
        with pytest.raises(PermissionDeniedError):
            orch.notas.advance(nota.nota_number, brins)


class TestConfirm:
    def test_confirm_plans_full_intent(self, orch, confirmed_nota):
        nota = confirmed_nota()
        intent = orch.intents.get(f"PI-{nota.nota_number}-AUTO")
        assert intent.status == "Draft"
        assert intent.payment_type == "FULL"
        assert intent.planned_amount == Decimal("10000000")
        assert intent.contract_id == nota.contract_id

    def test_each_nota_on_contract_gets_its_own_intent(self, orch, confirmed_nota):
        first = confirmed_nota("B-2025-01")
        second = confirmed_nota("B-2025-02", premiums=("2000000",))
        assert first.contract_id == second.contract_id

        auto = orch.ctx.stores.intents.filter(contract_id=first.contract_id, payment_type="FULL")
        assert sorted((i.nota_number, i.planned_amount) for i in auto) == sorted(
            [(first.nota_number, Decimal("10000000")), (second.nota_number, Decimal("2000000"))]
        )

    def test_confirm_directly_on_nota_moves_batch(self, orch, issued_nota, brins):
        nota = issued_nota()
        confirmed = orch.notas.advance(nota.nota_number, brins)
        assert confirmed.status == "Confirmed"
        assert confirmed.confirmed_by == brins.email
        assert orch.batches.get("B-2025-01").status == "Branch Confirmed"


class TestMarkPaid:
    def test_branch_cannot_mark_paid(self, orch, confirmed_nota, brins):
        nota = confirmed_nota()
        with pytest.raises(PermissionDeniedError):
            orch.notas.advance(nota.nota_number, brins)

    def test_mark_paid_runs_cascade(self, orch, confirmed_nota, tugure):
        nota = confirmed_nota()
        paid = orch.notas.advance(nota.nota_number, tugure, payment_reference="TRX-2025-0042")

        assert paid.status == "Paid"
        assert paid.payment_reference == "TRX-2025-0042"
        assert orch.notas.invoice_for(nota.nota_number).status == "Paid"
        batch = orch.batches.get("B-2025-01")
        assert batch.status == "Paid"
        assert batch.nota_payment_status == "Paid"

    def test_paid_is_terminal(self, orch, confirmed_nota, tugure):
        nota = confirmed_nota()
        orch.notas.advance(nota.nota_number, tugure, payment_reference="TRX-1")
        with pytest.raises(InvalidTransitionError):
            orch.notas.advance(nota.nota_number, tugure)


class TestEffectiveAmount:
    def test_without_adjustments(self, orch, issued_nota):
        nota = issued_nota()
        assert orch.notas.effective_amount(nota.nota_number) == Decimal("10000000")
