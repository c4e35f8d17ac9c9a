"""
Debit/Credit Note Service (``settlement_modules.adjustment.service``).

Moves adjustment notes through review, approval and acknowledgment.  A
note never rewrites its nota: approval freezes the reconciliation item
(Final), acknowledgment makes the adjustment part of the nota's effective
amount and, when the note covers the difference, closes the item and
settles the nota through the cascade.
"""

from __future__ import annotations

from settlement_kernel.domain.actor import Actor, Role
from settlement_kernel.domain.statuses import NoteStatus, NotaStatus, Severity
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_kernel.models import DebitCreditNote
from settlement_modules._settlement_cascade import SettlementCascade
from settlement_modules.adjustment.workflows import DEBIT_CREDIT_NOTE_WORKFLOW, NOTE_STAMPS
from settlement_services.context import SettlementContext
from settlement_services.invoice_settlement import InvoiceSettlement
from settlement_services.reconciliation_items import ReconciliationItems
from settlement_services.transition_runner import apply_transition

logger = get_logger("modules.adjustment")


class AdjustmentService:
    def __init__(
        self,
        ctx: SettlementContext,
        invoices: InvoiceSettlement | None = None,
        items: ReconciliationItems | None = None,
        cascade: SettlementCascade | None = None,
    ):
        self._ctx = ctx
        self._stores = ctx.stores
        self._items = items or ReconciliationItems(ctx)
        self._cascade = cascade or SettlementCascade(ctx, invoices, self._items)

    def get(self, note_number: str) -> DebitCreditNote:
        return self._stores.notes.get_by(note_number=note_number)

    def notes_for(self, nota_number: str) -> list[DebitCreditNote]:
        return self._stores.notes.filter(original_nota_id=nota_number)

    def _move(
        self,
        note_number: str,
        actor: Actor,
        action: str,
        reason: str | None = None,
    ) -> DebitCreditNote:
        note = self.get(note_number)
        nota = self._stores.notas.get_by(nota_number=note.original_nota_id)
        with self._ctx.nota_lock(nota), LogContext.bind(entity_id=note_number):
            note = self.get(note_number)
            note, _ = apply_transition(
                self._ctx,
                workflow=DEBIT_CREDIT_NOTE_WORKFLOW,
                store=self._stores.notes,
                entity=note,
                entity_key=note_number,
                module="adjustment",
                actor=actor,
                action=action,
                guard_context={"reason": reason},
                stamp_fields=NOTE_STAMPS,
                extra_patch={"rejection_reason": reason} if action == "reject" else None,
                reason=reason,
            )
            if action == "approve":
                self._items.mark_final(note.original_nota_id, actor)
            elif action == "acknowledge":
                self._settle_if_covered(note, actor)
        return note

    def _settle_if_covered(self, note: DebitCreditNote, actor: Actor) -> None:
        nota = self._stores.notas.get_by(nota_number=note.original_nota_id)
        item, snap = self._items.refresh(nota, actor)
        if not snap.covered_by_adjustment or nota.status == NotaStatus.PAID.value:
            return
        self._cascade.settle(nota.nota_number, actor, trigger="adjustment_acknowledged")
        self._items.close(self._items.item_for(nota.nota_number), actor)
        logger.info(
            "adjustment_settled_nota",
            extra={
                "note_number": note.note_number,
                "nota_number": nota.nota_number,
                "adjustments_total": str(snap.adjustments_total),
            },
        )

    def review(self, note_number: str, actor: Actor) -> DebitCreditNote:
        return self._move(note_number, actor, "review")

    def approve(self, note_number: str, actor: Actor) -> DebitCreditNote:
        note = self._move(note_number, actor, "approve")
        self._ctx.announce(
            title=f"{note.note_type} Note Approved",
            message=f"{note.note_type} note {note.note_number} approved; awaiting acknowledgment",
            module="adjustment",
            reference_id=note.note_number,
            entity_kind="DebitCreditNote",
            from_status=NoteStatus.UNDER_REVIEW.value,
            to_status=NoteStatus.APPROVED.value,
            target_role=Role.BRINS.value,
            severity=Severity.ACTION_REQUIRED.value,
            variables={
                "note_type": note.note_type,
                "note_number": note.note_number,
                "adjustment_amount": note.adjustment_amount,
            },
        )
        return note

    def reject(self, note_number: str, reason: str, actor: Actor) -> DebitCreditNote:
        note = self._move(note_number, actor, "reject", reason=reason)
        self._ctx.notifier.notify(
            title=f"{note.note_type} Note Rejected",
            message=f"{note.note_type} note {note.note_number} rejected: {reason}",
            severity=Severity.WARNING.value,
            module="adjustment",
            reference_id=note.note_number,
            target_role=Role.TUGURE.value,
        )
        return note

    def acknowledge(self, note_number: str, actor: Actor) -> DebitCreditNote:
        note = self._move(note_number, actor, "acknowledge")
        self._ctx.notifier.notify(
            title=f"{note.note_type} Note Acknowledged",
            message=f"{note.note_type} note {note.note_number} acknowledged by {actor.email}",
            severity=Severity.INFO.value,
            module="adjustment",
            reference_id=note.note_number,
            target_role=Role.TUGURE.value,
        )
        return note
