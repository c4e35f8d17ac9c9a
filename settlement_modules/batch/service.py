"""
Batch Workflow Service (``settlement_modules.batch.service``).

Responsibility
--------------
Registers uploaded batches and drives them along ``BATCH_WORKFLOW``:
the forward pipeline (``advance``), the operational close, rejection and
the reopen request/resolution pair.

Architecture position
---------------------
**Modules layer** -- ``BatchService`` is the sole entry point for batch
operations.  It re-reads the batch under its aggregate lock before every
guarded move and delegates nota side effects to ``NotaService``.

Invariants enforced
-------------------
* Advancing into Nota Issued requires ``batch_ready_for_nota`` as stored,
  never a caller-supplied flag.  A refused attempt leaves the status
  unchanged and writes a blocked audit record.
* Approval never freezes amounts; the final amounts are written by the
  debtor review gate only.
* Close is an operational lock: it needs every debtor decided, sets
  ``operational_locked`` and leaves notas, reconciliation and claims open.
* Rejection marks every debtor of the batch inactive.
* Reopen resolution needs an elevated role; approval clears the lock.

Failure modes
-------------
* ``GateNotSatisfiedError`` -- nota gate, missing reason, non-elevated
  resolver.  Audited.
* ``PendingReviewExistsError`` -- close with undecided debtors.  Audited.
* ``InvalidTransitionError`` -- no successor or wrong source status.
* ``PermissionDeniedError`` -- role lacks the transition's permission.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from settlement_kernel.domain.actor import Actor, Role
from settlement_kernel.domain.statuses import (
    BatchStatus,
    DebtorInvoiceStatus,
    DebtorReconStatus,
    Severity,
    UnderwritingStatus,
)
from settlement_kernel.domain.values import ZERO, to_decimal
from settlement_kernel.exceptions import PendingReviewExistsError
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_kernel.models import Batch, Debtor
from settlement_modules._batch_transitions import transition_batch
from settlement_modules.batch.workflows import BATCH_WORKFLOW
from settlement_modules.nota.service import NotaService
from settlement_services.context import SettlementContext

logger = get_logger("modules.batch")


class BatchService:
    """Batch intake and lifecycle."""

    def __init__(self, ctx: SettlementContext, notas: NotaService):
        self._ctx = ctx
        self._stores = ctx.stores
        self._notas = notas

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, batch_id: str) -> Batch:
        return self._stores.batches.get_by(batch_id=batch_id)

    def debtors(self, batch_id: str, active_only: bool = False) -> list[Debtor]:
        criteria: dict[str, Any] = {"batch_id": batch_id}
        if active_only:
            criteria["is_active"] = True
        return self._stores.debtors.filter(**criteria)

    def pending_count(self, batch_id: str) -> int:
        """Active debtors still awaiting an underwriting decision."""
        return self._stores.debtors.count(
            batch_id=batch_id,
            is_active=True,
            underwriting_status=UnderwritingStatus.SUBMITTED.value,
        )

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------

    def register_batch(
        self,
        batch_id: str,
        batch_month: int,
        batch_year: int,
        contract_id: str,
        debtors: Sequence[Mapping[str, Any]],
        actor: Actor,
    ) -> Batch:
        """
        Record an uploaded batch and its already-parsed debtor rows.

        Raw totals are informational: exposure is the sum of outstanding
        amounts, premium the sum of gross premiums.
        """
        self._ctx.authorize(
            actor, "batch.upload", module="batch", entity_type="Batch", entity_id=batch_id
        )
        if not 1 <= batch_month <= 12:
            raise ValueError(f"batch_month must be 1..12, got {batch_month}")
        if not debtors:
            raise ValueError("A batch needs at least one debtor")

        rows = [self._debtor_row(batch_id, contract_id, d) for d in debtors]
        total_exposure = sum((r["outstanding_amount"] for r in rows), ZERO)
        total_premium = sum((r["gross_premium"] for r in rows), ZERO)

        with self._ctx.batch_lock(batch_id), LogContext.bind(entity_id=batch_id):
            batch = self._stores.batches.create(
                {
                    "batch_id": batch_id,
                    "batch_month": batch_month,
                    "batch_year": batch_year,
                    "contract_id": contract_id,
                    "status": BatchStatus.UPLOADED.value,
                    "total_records": len(rows),
                    "total_exposure": total_exposure,
                    "total_premium": total_premium,
                },
                actor_email=actor.email,
            )
            self._stores.debtors.bulk_create(rows, actor_email=actor.email)

        self._ctx.audit.append(
            action="BATCH_UPLOADED",
            module="batch",
            entity_type="Batch",
            entity_id=batch_id,
            new_value={
                "status": batch.status,
                "total_records": batch.total_records,
                "total_exposure": total_exposure,
                "total_premium": total_premium,
            },
            actor=actor,
        )
        self._ctx.notifier.notify(
            title="Batch Uploaded",
            message=f"Batch {batch_id} uploaded with {len(rows)} debtor(s)",
            severity=Severity.ACTION_REQUIRED.value,
            module="batch",
            reference_id=batch_id,
            target_role=Role.TUGURE.value,
        )
        logger.info(
            "batch_registered",
            extra={
                "batch_id": batch_id,
                "contract_id": contract_id,
                "total_records": len(rows),
                "total_premium": str(total_premium),
            },
        )
        return batch

    @staticmethod
    def _debtor_row(batch_id: str, contract_id: str, data: Mapping[str, Any]) -> dict[str, Any]:
        name = str(data.get("debtor_name") or "").strip()
        if not name:
            raise ValueError("Debtor row without debtor_name")
        return {
            "batch_id": batch_id,
            "contract_id": contract_id,
            "participant_no": data.get("participant_no"),
            "debtor_name": name,
            "credit_plafond": to_decimal(data.get("credit_plafond", 0)),
            "gross_premium": to_decimal(data.get("gross_premium", 0)),
            "net_premium": to_decimal(data.get("net_premium", 0)),
            "outstanding_amount": to_decimal(data.get("outstanding_amount", 0)),
            "underwriting_status": UnderwritingStatus.SUBMITTED.value,
            "batch_status": BatchStatus.UPLOADED.value,
            "is_active": True,
            "invoice_status": DebtorInvoiceStatus.NOT_ISSUED.value,
            "recon_status": DebtorReconStatus.NOT_STARTED.value,
        }

    # ------------------------------------------------------------------
    # Forward pipeline
    # ------------------------------------------------------------------

    def _guard_context(self, batch: Batch) -> dict[str, Any]:
        nota = self._notas.nota_for_batch(batch.batch_id)
        return {
            "batch_ready_for_nota": batch.batch_ready_for_nota,
            "nota_status": nota.status if nota is not None else None,
            "pending_count": self.pending_count(batch.batch_id),
        }

    def advance(self, batch_id: str, actor: Actor) -> Batch:
        """
        Move the batch to its forward successor.

        Into Approved: creates the batch nota when review is already
        complete.  Into Nota Issued: issues the nota.  Into Branch
        Confirmed: confirms it.  Into Closed: same as ``close``.
        """
        with self._ctx.batch_lock(batch_id), LogContext.bind(entity_id=batch_id):
            batch = self.get(batch_id)
            transition = self._ctx.executor.resolve(BATCH_WORKFLOW, batch.status, None)
            if transition is not None and transition.to_state == BatchStatus.CLOSED.value:
                return self.close(batch_id, actor)

            from_status = batch.status
            batch, result = transition_batch(
                self._ctx, batch, actor, guard_context=self._guard_context(batch)
            )

            if result.new_state == BatchStatus.APPROVED.value and batch.batch_ready_for_nota:
                self._notas.create_for_batch(batch_id, actor, authorize=False)
            elif result.new_state == BatchStatus.NOTA_ISSUED.value:
                self._notas.issue_for_batch(batch_id, actor)
            elif result.new_state == BatchStatus.BRANCH_CONFIRMED.value:
                self._notas.confirm_for_batch(batch_id, actor)

        self._announce(batch, from_status, actor)
        return batch

    def _announce(self, batch: Batch, from_status: str, actor: Actor) -> None:
        target = Role.BRINS.value
        if batch.status in (BatchStatus.VALIDATED.value, BatchStatus.BRANCH_CONFIRMED.value):
            target = Role.TUGURE.value
        self._ctx.announce(
            title=f"Batch {batch.status}",
            message=f"Batch {batch.batch_id} moved from {from_status} to {batch.status}",
            module="batch",
            reference_id=batch.batch_id,
            entity_kind="Batch",
            from_status=from_status,
            to_status=batch.status,
            target_role=target,
            variables={
                "batch_id": batch.batch_id,
                "contract_id": batch.contract_id,
                "final_premium_amount": batch.final_premium_amount or "",
                "rejection_reason": batch.rejection_reason or "",
                "reason": batch.rejection_reason or "",
                "actor_email": actor.email,
            },
        )

    # ------------------------------------------------------------------
    # Close / reject / reopen
    # ------------------------------------------------------------------

    def close(self, batch_id: str, actor: Actor, remarks: str | None = None) -> Batch:
        """
        Operationally lock the batch.

        Raises:
            PendingReviewExistsError: a debtor still awaits a decision.
        """
        with self._ctx.batch_lock(batch_id), LogContext.bind(entity_id=batch_id):
            batch = self.get(batch_id)
            pending = self.pending_count(batch_id)
            if pending:
                self._ctx.audit.append(
                    action="BATCH_CLOSE",
                    module="batch",
                    entity_type="Batch",
                    entity_id=batch_id,
                    old_value={"status": batch.status},
                    actor=actor,
                    reason=f"{pending} debtor(s) still pending review",
                    blocked=True,
                )
                raise PendingReviewExistsError(batch_id, pending)

            from_status = batch.status
            batch, _ = transition_batch(
                self._ctx,
                batch,
                actor,
                "close",
                guard_context={"pending_count": pending},
                extra_patch={"operational_locked": True, "close_remarks": remarks},
                reason=remarks,
            )
        logger.info("batch_closed", extra={"batch_id": batch_id, "from_status": from_status})
        self._announce(batch, from_status, actor)
        return batch

    def reject(self, batch_id: str, reason: str, actor: Actor) -> Batch:
        """Reject a Matched batch and deactivate its debtors."""
        with self._ctx.batch_lock(batch_id), LogContext.bind(entity_id=batch_id):
            batch = self.get(batch_id)
            from_status = batch.status
            batch, _ = transition_batch(
                self._ctx,
                batch,
                actor,
                "reject",
                guard_context={"reason": reason},
                extra_patch={"rejection_reason": reason},
                reason=reason,
            )
            deactivated = 0
            for debtor in self.debtors(batch_id, active_only=True):
                self._stores.debtors.update(
                    debtor.id,
                    {"is_active": False},
                    expected_version=debtor.version,
                    actor_email=actor.email,
                )
                deactivated += 1
        logger.info("batch_rejected", extra={"batch_id": batch_id, "deactivated": deactivated})
        self._announce(batch, from_status, actor)
        return batch

    def request_reopen(
        self,
        batch_id: str,
        reason: str,
        impact_type: str,
        actor: Actor,
    ) -> Batch:
        with self._ctx.batch_lock(batch_id), LogContext.bind(entity_id=batch_id):
            batch = self.get(batch_id)
            batch, _ = transition_batch(
                self._ctx,
                batch,
                actor,
                "request_reopen",
                guard_context={"reason": reason},
                extra_patch={"reopen_reason": reason, "reopen_impact": impact_type},
                reason=reason,
            )
        self._ctx.notifier.notify(
            title="Batch Reopen Requested",
            message=f"Reopen of batch {batch_id} requested ({impact_type}): {reason}",
            severity=Severity.ACTION_REQUIRED.value,
            module="batch",
            reference_id=batch_id,
            target_role=Role.ADMIN.value,
        )
        return batch

    def resolve_reopen(
        self,
        batch_id: str,
        approve: bool,
        actor: Actor,
        remarks: str | None = None,
    ) -> Batch:
        """
        Approve (Reopened, lock cleared) or reject (back to Closed) a reopen
        request.  Needs an elevated role.
        """
        action = "approve_reopen" if approve else "reject_reopen"
        with self._ctx.batch_lock(batch_id), LogContext.bind(entity_id=batch_id):
            batch = self.get(batch_id)
            extra: dict[str, Any] = {}
            if approve:
                extra["operational_locked"] = False
            batch, _ = transition_batch(
                self._ctx,
                batch,
                actor,
                action,
                guard_context={"elevated": self._ctx.is_elevated(actor)},
                extra_patch=extra,
                reason=remarks,
            )
        self._ctx.notifier.notify(
            title="Batch Reopen Approved" if approve else "Batch Reopen Rejected",
            message=f"Batch {batch_id} is now {batch.status}",
            severity=Severity.INFO.value,
            module="batch",
            reference_id=batch_id,
            target_role=Role.BRINS.value,
        )
        return batch

