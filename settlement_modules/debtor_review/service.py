"""
Debtor Review Gate (``settlement_modules.debtor_review.service``).

Responsibility
--------------
Records the per-debtor underwriting decision (Approve / Reject), snapshots
approved debtors into AcceptedRecord rows, and recomputes the batch's
review flags and final amounts after every decision.

Architecture position
---------------------
**Modules layer** -- ``DebtorReviewService`` is the only writer of
``Batch.debtor_review_completed``, ``Batch.batch_ready_for_nota`` and the
final exposure/premium amounts.  The batch workflow's nota gate reads them.

Invariants enforced
-------------------
* completed = every active debtor decided; ready = completed and at least
  one debtor approved.
* Final amounts are the sum of the Approved debtors' snapshots, written
  once (when the batch first becomes ready) and then locked.
* Each debtor decision is its own audit record, in bulk mode too.
* Decisions are refused on an operationally locked batch.  A Reopened
  batch accepts decisions on previously rejected debtors only.
"""

from __future__ import annotations

from typing import Iterable
from uuid import UUID

from settlement_kernel.domain.actor import Actor, Role
from settlement_kernel.domain.statuses import (
    BatchStatus,
    ReviewDecision,
    Severity,
    UnderwritingStatus,
)
from settlement_kernel.domain.values import ZERO
from settlement_kernel.exceptions import (
    BatchLockedError,
    GateNotSatisfiedError,
    InvalidTransitionError,
)
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_kernel.models import AcceptedRecord, Batch, Debtor
from settlement_kernel.utils.idempotency import accepted_record_key
from settlement_modules.nota.service import NotaService
from settlement_services.context import SettlementContext

logger = get_logger("modules.debtor_review")

_DECISION_STATUS = {
    ReviewDecision.APPROVE: UnderwritingStatus.APPROVED,
    ReviewDecision.REJECT: UnderwritingStatus.REJECTED,
}


class DebtorReviewService:
    """Underwriting decisions and the batch review flags they drive."""

    def __init__(self, ctx: SettlementContext, notas: NotaService):
        self._ctx = ctx
        self._stores = ctx.stores
        self._notas = notas

    def accepted_records(self, batch_id: str) -> list[AcceptedRecord]:
        return self._stores.accepted.filter(batch_id=batch_id)

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def decide(
        self,
        debtor_id: UUID | str,
        decision: ReviewDecision | str,
        remarks: str | None,
        actor: Actor,
    ) -> Debtor:
        """Decide one debtor and recompute its batch."""
        decision = ReviewDecision(decision)
        self._ctx.authorize(
            actor, "debtor.decide", module="debtor_review", entity_type="Debtor", entity_id=str(debtor_id)
        )
        debtor = self._stores.debtors.get(debtor_id)
        with self._ctx.batch_lock(debtor.batch_id), LogContext.bind(entity_id=str(debtor_id)):
            debtor = self._apply(debtor_id, decision, remarks, actor)
            self._after_decisions(debtor.batch_id, actor)
        self._ctx.notifier.notify(
            title=f"Debtor {_DECISION_STATUS[decision].value}",
            message=f"Debtor {debtor.debtor_name} in batch {debtor.batch_id}: {_DECISION_STATUS[decision].value}",
            severity=Severity.INFO.value,
            module="debtor_review",
            reference_id=str(debtor.id),
            target_role=Role.BRINS.value,
        )
        return debtor

    def decide_bulk(
        self,
        debtor_ids: Iterable[UUID | str],
        decision: ReviewDecision | str,
        remarks: str | None,
        actor: Actor,
    ) -> list[Debtor]:
        """
        Decide a selection of debtors.

        One audit record per debtor, one notification for the whole
        selection.  Debtors of several batches may be mixed.
        """
        decision = ReviewDecision(decision)
        ids = list(debtor_ids)
        if not ids:
            return []
        self._ctx.authorize(
            actor, "debtor.decide", module="debtor_review", entity_type="Debtor", entity_id=str(ids[0])
        )

        by_batch: dict[str, list[UUID | str]] = {}
        for debtor_id in ids:
            by_batch.setdefault(self._stores.debtors.get(debtor_id).batch_id, []).append(debtor_id)

        decided: list[Debtor] = []
        for batch_id, batch_debtors in by_batch.items():
            with self._ctx.batch_lock(batch_id):
                for debtor_id in batch_debtors:
                    decided.append(self._apply(debtor_id, decision, remarks, actor))
                self._after_decisions(batch_id, actor)

        status = _DECISION_STATUS[decision].value
        self._ctx.notifier.notify(
            title=f"Bulk Debtor Review: {status}",
            message=f"{len(decided)} debtor(s) {status.lower()} across {len(by_batch)} batch(es)",
            severity=Severity.INFO.value,
            module="debtor_review",
            reference_id=",".join(sorted(by_batch)),
            target_role=Role.BRINS.value,
        )
        logger.info(
            "debtor_bulk_decision_completed",
            extra={"decision": decision.value, "count": len(decided), "batch_count": len(by_batch)},
        )
        return decided

    def _apply(
        self,
        debtor_id: UUID | str,
        decision: ReviewDecision,
        remarks: str | None,
        actor: Actor,
    ) -> Debtor:
        # Re-read both under the batch lock
        debtor = self._stores.debtors.get(debtor_id)
        batch = self._stores.batches.get_by(batch_id=debtor.batch_id)
        self._check_decidable(batch, debtor, decision, actor)

        new_status = _DECISION_STATUS[decision]
        updated = self._stores.debtors.update(
            debtor.id,
            {
                "underwriting_status": new_status.value,
                "underwriting_remarks": remarks,
                "reviewed_by": actor.email,
                "reviewed_date": self._ctx.today(),
            },
            expected_version=debtor.version,
            actor_email=actor.email,
        )
        if new_status is UnderwritingStatus.APPROVED:
            self._stores.accepted.get_or_create(
                accepted_record_key(debtor.id),
                {
                    "debtor_id": str(debtor.id),
                    "batch_id": debtor.batch_id,
                    "contract_id": debtor.contract_id,
                    "exposure_amount": debtor.outstanding_amount,
                    "premium_amount": debtor.gross_premium,
                    "accepted_by": actor.email,
                    "accepted_date": self._ctx.today(),
                },
                actor_email=actor.email,
            )

        self._ctx.audit.append(
            action=f"DEBTOR_{new_status.value.upper()}",
            module="debtor_review",
            entity_type="Debtor",
            entity_id=str(debtor.id),
            old_value={"underwriting_status": debtor.underwriting_status},
            new_value={"underwriting_status": new_status.value, "batch_id": debtor.batch_id},
            actor=actor,
            reason=remarks,
        )
        logger.info(
            "debtor_decided",
            extra={
                "debtor_id": str(debtor.id),
                "batch_id": debtor.batch_id,
                "decision": decision.value,
            },
        )
        return updated

    def _check_decidable(
        self,
        batch: Batch,
        debtor: Debtor,
        decision: ReviewDecision,
        actor: Actor,
    ) -> None:
        def blocked(reason: str) -> None:
            self._ctx.audit.append(
                action=f"DEBTOR_{_DECISION_STATUS[decision].value.upper()}",
                module="debtor_review",
                entity_type="Debtor",
                entity_id=str(debtor.id),
                old_value={
                    "underwriting_status": debtor.underwriting_status,
                    "batch_status": batch.status,
                },
                actor=actor,
                reason=reason,
                blocked=True,
            )

        if batch.operational_locked:
            reason = f"Batch {batch.batch_id} is closed for operational changes"
            blocked(reason)
            raise BatchLockedError(batch.batch_id, reason)

        if not debtor.is_active or batch.status == BatchStatus.REJECTED.value:
            reason = "Debtor is inactive"
            blocked(reason)
            raise InvalidTransitionError(
                "Debtor", str(debtor.id), debtor.underwriting_status, decision.value, reason
            )

        if batch.status == BatchStatus.REOPENED.value:
            if debtor.underwriting_status != UnderwritingStatus.REJECTED.value:
                reason = "A reopened batch only allows correcting previously rejected debtors"
                blocked(reason)
                raise GateNotSatisfiedError(
                    gate="reopen_rejected_only",
                    reason=reason,
                    entity_type="Debtor",
                    entity_id=str(debtor.id),
                )
            return

        if UnderwritingStatus(debtor.underwriting_status).is_terminal:
            reason = f"Debtor already {debtor.underwriting_status}"
            blocked(reason)
            raise InvalidTransitionError(
                "Debtor", str(debtor.id), debtor.underwriting_status, decision.value, reason
            )

    # ------------------------------------------------------------------
    # Batch flags
    # ------------------------------------------------------------------

    def _after_decisions(self, batch_id: str, actor: Actor) -> Batch:
        batch = self.recompute_batch(batch_id, actor)
        if batch.status == BatchStatus.APPROVED.value and batch.batch_ready_for_nota:
            self._notas.create_for_batch(batch_id, actor, authorize=False)
        return batch

    def recompute_batch(self, batch_id: str, actor: Actor) -> Batch:
        """
        Recompute ``debtor_review_completed``, ``batch_ready_for_nota`` and,
        the first time the batch becomes ready, the final amounts.
        """
        batch = self._stores.batches.get_by(batch_id=batch_id)
        debtors = self._stores.debtors.filter(batch_id=batch_id, is_active=True)
        approved = [d for d in debtors if d.underwriting_status == UnderwritingStatus.APPROVED.value]
        pending = sum(1 for d in debtors if d.underwriting_status == UnderwritingStatus.SUBMITTED.value)
        completed = bool(debtors) and pending == 0
        ready = completed and bool(approved)

        patch: dict = {}
        if batch.debtor_review_completed != completed:
            patch["debtor_review_completed"] = completed
        if batch.batch_ready_for_nota != ready:
            patch["batch_ready_for_nota"] = ready
        if ready and not batch.final_amounts_locked:
            records = self._stores.accepted.filter(
                batch_id=batch_id, debtor_id=[str(d.id) for d in approved]
            )
            patch["final_exposure_amount"] = sum((r.exposure_amount for r in records), ZERO)
            patch["final_premium_amount"] = sum((r.premium_amount for r in records), ZERO)
            patch["final_amounts_locked"] = True

        if not patch:
            return batch

        updated = self._stores.batches.update(
            batch.id, patch, expected_version=batch.version, actor_email=actor.email
        )
        self._ctx.audit.append(
            action="BATCH_REVIEW_FLAGS_UPDATED",
            module="debtor_review",
            entity_type="Batch",
            entity_id=batch_id,
            old_value={
                "debtor_review_completed": batch.debtor_review_completed,
                "batch_ready_for_nota": batch.batch_ready_for_nota,
            },
            new_value=patch,
            actor=actor,
        )
        if "final_premium_amount" in patch:
            self._ctx.notifier.notify(
                title="Debtor Review Completed",
                message=(
                    f"Batch {batch_id}: {len(approved)} approved debtor(s), "
                    f"final premium {patch['final_premium_amount']}"
                ),
                severity=Severity.ACTION_REQUIRED.value,
                module="debtor_review",
                reference_id=batch_id,
                target_role=Role.TUGURE.value,
            )
        logger.info(
            "batch_review_flags_updated",
            extra={
                "batch_id": batch_id,
                "debtor_review_completed": completed,
                "batch_ready_for_nota": ready,
                "pending": pending,
            },
        )
        return updated
