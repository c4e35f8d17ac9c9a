"""Tests for batch intake, the forward path, rejection, close and reopen."""

from decimal import Decimal

import pytest

from settlement_kernel.domain.statuses import BatchStatus, ReviewDecision
from settlement_kernel.exceptions import (
    GateNotSatisfiedError,
    InvalidTransitionError,
    PendingReviewExistsError,
    PermissionDeniedError,
)
from tests.conftest import CONTRACT_ID, debtor_rows


class TestRegisterBatch:
    def test_totals_and_debtors(self, orch, register_batch):
        batch = register_batch()
        assert batch.status == BatchStatus.UPLOADED.value
        assert batch.total_records == 2
        assert batch.total_exposure == Decimal("100000000")
        assert batch.total_premium == Decimal("10000000")
        assert batch.final_premium_amount is None

        debtors = orch.batches.debtors("B-2025-01")
        assert {d.underwriting_status for d in debtors} == {"Submitted"}
        assert all(d.is_active for d in debtors)

    def test_audit_and_notification(self, orch, register_batch):
        register_batch()
        assert [e.action for e in orch.audit.events(entity_id="B-2025-01")] == ["BATCH_UPLOADED"]
        titles = [n.title for n in orch.notifier.notifications(target_role="TUGURE")]
        assert "Batch Uploaded" in titles

    def test_invalid_month(self, orch, brins):
        with pytest.raises(ValueError, match="1..12"):
            orch.batches.register_batch("B-X", 13, 2025, CONTRACT_ID, debtor_rows("1"), brins)

    def test_empty_debtors(self, orch, brins):
        with pytest.raises(ValueError, match="at least one debtor"):
            orch.batches.register_batch("B-X", 1, 2025, CONTRACT_ID, [], brins)

    def test_debtor_without_name(self, orch, brins):
        rows = debtor_rows("1")
        rows[0]["debtor_name"] = ""
        with pytest.raises(ValueError, match="debtor_name"):
            orch.batches.register_batch("B-X", 1, 2025, CONTRACT_ID, rows, brins)

    def test_tugure_cannot_upload(self, orch, tugure):
        with pytest.raises(PermissionDeniedError):
            orch.batches.register_batch("B-X", 1, 2025, CONTRACT_ID, debtor_rows("1"), tugure)
        blocked = orch.audit.events(blocked=True)
        assert [e.action for e in blocked] == ["BLOCKED_BATCH_UPLOAD"]


class TestForwardPath:
    def test_validate_and_match(self, orch, register_batch, tugure):
        register_batch()
        validated = orch.batches.advance("B-2025-01", tugure)
        assert validated.status == BatchStatus.VALIDATED.value
        assert validated.validated_by == tugure.email

        matched = orch.batches.advance("B-2025-01", tugure)
        assert matched.status == BatchStatus.MATCHED.value
        assert {d.batch_status for d in orch.batches.debtors("B-2025-01")} == {"Matched"}

    def test_brins_cannot_approve(self, orch, matched_batch, brins):
        matched_batch()
        with pytest.raises(PermissionDeniedError):
            orch.batches.advance("B-2025-01", brins)
        assert orch.batches.get("B-2025-01").status == BatchStatus.MATCHED.value

    def test_approve_before_review_creates_no_nota(self, orch, matched_batch, tugure):
        matched_batch()
        batch = orch.batches.advance("B-2025-01", tugure)
        assert batch.status == BatchStatus.APPROVED.value
        assert orch.notas.nota_for_batch("B-2025-01") is None

    def test_nota_issue_guarded_by_review(self, orch, matched_batch, tugure):
        matched_batch()
        orch.batches.advance("B-2025-01", tugure)
        with pytest.raises(GateNotSatisfiedError) as exc_info:
            orch.batches.advance("B-2025-01", tugure)
        assert exc_info.value.gate == "batch_ready_for_nota"
        assert orch.audit.events(action="BLOCKED_BATCH_ISSUE_NOTA")

    def test_approve_after_review_creates_draft_nota(self, orch, approved_batch):
        batch = approved_batch()
        nota = orch.notas.nota_for_batch("B-2025-01")
        assert batch.status == BatchStatus.APPROVED.value
        assert nota.status == "Draft"
        assert nota.amount == Decimal("10000000")

    def test_issue_and_confirm_follow_the_nota(self, orch, confirmed_nota):
        nota = confirmed_nota()
        batch = orch.batches.get("B-2025-01")
        assert batch.status == BatchStatus.BRANCH_CONFIRMED.value
        assert nota.status == "Confirmed"

    def test_mark_paid_needs_settled_nota(self, orch, confirmed_nota, tugure):
        confirmed_nota()
        with pytest.raises(GateNotSatisfiedError) as exc_info:
            orch.batches.advance("B-2025-01", tugure)
        assert exc_info.value.gate == "nota_settled"

    def test_validated_notifies_tugure(self, orch, register_batch, tugure):
        register_batch()
        orch.batches.advance("B-2025-01", tugure)
        titles = [n.title for n in orch.notifier.notifications(target_role="TUGURE")]
        assert "Batch Validated" in titles


class TestReject:
    def test_reject_deactivates_debtors(self, orch, matched_batch, tugure):
        matched_batch()
        batch = orch.batches.reject("B-2025-01", "Wrong contract", tugure)
        assert batch.status == BatchStatus.REJECTED.value
        assert batch.rejection_reason == "Wrong contract"
        assert not any(d.is_active for d in orch.batches.debtors("B-2025-01"))

    def test_reject_needs_reason(self, orch, matched_batch, tugure):
        matched_batch()
        with pytest.raises(GateNotSatisfiedError):
            orch.batches.reject("B-2025-01", "  ", tugure)

    def test_reject_only_from_matched(self, orch, register_batch, tugure):
        register_batch()
        with pytest.raises(InvalidTransitionError):
            orch.batches.reject("B-2025-01", "Too early", tugure)

    def test_rejected_batch_is_terminal(self, orch, matched_batch, tugure):
        matched_batch()
        orch.batches.reject("B-2025-01", "Wrong contract", tugure)
        with pytest.raises(InvalidTransitionError):
            orch.batches.advance("B-2025-01", tugure)


class TestClose:
    def test_pending_debtors_block_close(self, orch, matched_batch, tugure):
        matched_batch()
        with pytest.raises(PendingReviewExistsError) as exc_info:
            orch.batches.close("B-2025-01", tugure)
        assert exc_info.value.pending_count == 2
        assert orch.audit.events(action="BLOCKED_BATCH_CLOSE")
        assert orch.batches.get("B-2025-01").status == BatchStatus.MATCHED.value

    def test_close_locks_batch(self, orch, approved_batch, tugure):
        approved_batch()
        batch = orch.batches.close("B-2025-01", tugure, remarks="Superseded")
        assert batch.status == BatchStatus.CLOSED.value
        assert batch.operational_locked is True
        assert batch.close_remarks == "Superseded"


class TestReopen:
    @pytest.fixture
    def closed_batch(self, orch, matched_batch, tugure):
        matched_batch()
        debtors = sorted(orch.batches.debtors("B-2025-01"), key=lambda d: d.participant_no)
        orch.reviews.decide(debtors[0].id, ReviewDecision.APPROVE, None, tugure)
        orch.reviews.decide(debtors[1].id, ReviewDecision.REJECT, "Over plafond", tugure)
        orch.batches.close("B-2025-01", tugure)
        return debtors

    def test_request_needs_reason(self, orch, closed_batch, brins):
        with pytest.raises(GateNotSatisfiedError):
            orch.batches.request_reopen("B-2025-01", "", "data", brins)

    def test_request_notifies_admin(self, orch, closed_batch, brins):
        batch = orch.batches.request_reopen("B-2025-01", "Debtor data corrected", "data", brins)
        assert batch.status == BatchStatus.REOPEN_REQUESTED.value
        assert batch.reopen_reason == "Debtor data corrected"
        assert batch.reopen_impact == "data"
        titles = [n.title for n in orch.notifier.notifications(target_role="ADMIN")]
        assert titles == ["Batch Reopen Requested"]

    def test_tugure_cannot_resolve(self, orch, closed_batch, brins, tugure):
        orch.batches.request_reopen("B-2025-01", "Debtor data corrected", "data", brins)
        with pytest.raises(PermissionDeniedError):
            orch.batches.resolve_reopen("B-2025-01", True, tugure)

    def test_admin_rejects_back_to_closed(self, orch, closed_batch, brins, admin):
        orch.batches.request_reopen("B-2025-01", "Debtor data corrected", "data", brins)
        batch = orch.batches.resolve_reopen("B-2025-01", False, admin, "Not needed")
        assert batch.status == BatchStatus.CLOSED.value
        assert batch.operational_locked is True

    def test_reopened_batch_only_corrects_rejections(
        self, orch, closed_batch, brins, tugure, admin
    ):
        approved, rejected = closed_batch
        orch.batches.request_reopen("B-2025-01", "Debtor data corrected", "data", brins)
        batch = orch.batches.resolve_reopen("B-2025-01", True, admin)
        assert batch.status == BatchStatus.REOPENED.value
        assert batch.operational_locked is False

        with pytest.raises(GateNotSatisfiedError) as exc_info:
            orch.reviews.decide(approved.id, ReviewDecision.REJECT, "Changed mind", tugure)
        assert exc_info.value.gate == "reopen_rejected_only"

        corrected = orch.reviews.decide(rejected.id, ReviewDecision.APPROVE, "Plafond raised", tugure)
        assert corrected.underwriting_status == "Approved"

        closed = orch.batches.advance("B-2025-01", tugure)
        assert closed.status == BatchStatus.CLOSED.value
        # final amounts were fixed the first time review completed
        assert closed.final_premium_amount == Decimal("4000000")
