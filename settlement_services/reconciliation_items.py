"""
settlement_services.reconciliation_items -- Stored reconciliation items.

Responsibility:
    Builds engine views from payment and debit/credit note rows, derives the
    reconciliation snapshot of a nota, and persists it as the nota's
    ReconciliationItem (one per nota, keyed by nota_number).

Architecture position:
    Services layer -- imperative shell around
    ``settlement_engines.reconciliation``.

Invariants enforced:
    - The stored item is always a projection of the derivation; refresh()
      overwrites the derived columns and never touches ``item_state``
      except through close().
    - A closed item never reports ``has_exception``.
"""

from __future__ import annotations

from settlement_engines.reconciliation import (
    AdjustmentView,
    PaymentView,
    ReconciliationSnapshot,
    derive_item,
)
from settlement_kernel.domain.actor import Actor
from settlement_kernel.domain.statuses import NotaStatus, ReconItemState
from settlement_kernel.logging_config import get_logger
from settlement_kernel.models import Invoice, Nota, ReconciliationItem
from settlement_services.context import SettlementContext

logger = get_logger("services.reconciliation_items")


class ReconciliationItems:
    """Derive, persist and close reconciliation items."""

    def __init__(self, ctx: SettlementContext):
        self._ctx = ctx
        self._stores = ctx.stores

    def payment_views(self, nota: Nota) -> list[PaymentView]:
        rows = {p.id: p for p in self._stores.payments.filter(contract_id=nota.contract_id)}
        for p in self._stores.payments.filter(nota_number=nota.nota_number):
            rows.setdefault(p.id, p)
        return [
            PaymentView(
                payment_id=str(p.id),
                amount=p.amount,
                match_status=p.match_status,
                contract_id=p.contract_id,
                invoice_id=p.invoice_id,
                nota_number=p.nota_number,
            )
            for p in rows.values()
        ]

    def adjustment_views(self, nota: Nota) -> list[AdjustmentView]:
        return [
            AdjustmentView(
                note_number=n.note_number,
                status=n.status,
                adjustment_amount=n.adjustment_amount,
            )
            for n in self._stores.notes.filter(original_nota_id=nota.nota_number)
        ]

    def item_for(self, nota_number: str) -> ReconciliationItem | None:
        return self._stores.recon_items.find_one(nota_number=nota_number)

    def snapshot(
        self,
        nota: Nota,
        invoice: Invoice | None = None,
        item: ReconciliationItem | None = None,
    ) -> ReconciliationSnapshot:
        if invoice is None:
            invoice = self._stores.invoices.find_one(nota_number=nota.nota_number)
        if item is None:
            item = self.item_for(nota.nota_number)
        return derive_item(
            nota_number=nota.nota_number,
            nota_amount=nota.amount,
            nota_paid=nota.status == NotaStatus.PAID.value,
            item_closed=item is not None and item.item_state == ReconItemState.CLOSED.value,
            invoice_id=str(invoice.id) if invoice is not None else None,
            contract_id=nota.contract_id,
            payments=self.payment_views(nota),
            adjustments=self.adjustment_views(nota),
            policy=self._ctx.policy,
        )

    def refresh(
        self,
        nota: Nota,
        actor: Actor | None = None,
    ) -> tuple[ReconciliationItem, ReconciliationSnapshot]:
        """Upsert the stored item from a fresh derivation."""
        invoice = self._stores.invoices.find_one(nota_number=nota.nota_number)
        item = self.item_for(nota.nota_number)
        snap = self.snapshot(nota, invoice, item)
        actor_email = actor.email if actor else None
        fields = {
            "invoice_id": str(invoice.id) if invoice is not None else None,
            "contract_id": nota.contract_id,
            "nota_amount": snap.nota_amount,
            "payment_received": snap.payment_received,
            "difference": snap.difference,
            "tolerance": snap.tolerance,
            "recon_status": snap.recon_status.value,
            "exception_type": snap.exception_type.value,
            "has_exception": snap.has_exception,
        }
        if item is None:
            item, _ = self._stores.recon_items.get_or_create(
                nota.nota_number,
                {**fields, "item_state": ReconItemState.OPEN.value},
                key_field="nota_number",
                actor_email=actor_email,
            )
            return item, snap
        if any(getattr(item, k) != v for k, v in fields.items()):
            item = self._stores.recon_items.update(
                item.id, fields, expected_version=item.version, actor_email=actor_email
            )
        return item, snap

    def mark_final(self, nota_number: str, actor: Actor) -> ReconciliationItem | None:
        item = self.item_for(nota_number)
        if item is None or item.item_state != ReconItemState.OPEN.value:
            return item
        return self._stores.recon_items.update(
            item.id,
            {"item_state": ReconItemState.FINAL.value},
            expected_version=item.version,
            actor_email=actor.email,
        )

    def close(self, item: ReconciliationItem, actor: Actor) -> ReconciliationItem:
        if item.item_state == ReconItemState.CLOSED.value:
            return item
        closed = self._stores.recon_items.update(
            item.id,
            {
                "item_state": ReconItemState.CLOSED.value,
                "has_exception": False,
                "closed_by": actor.email,
                "closed_date": self._ctx.today(),
            },
            expected_version=item.version,
            actor_email=actor.email,
        )
        logger.info(
            "reconciliation_item_closed",
            extra={"nota_number": item.nota_number, "difference": str(item.difference)},
        )
        return closed
