"""
settlement_services.invoice_settlement -- Invoice bookkeeping and debtor shares.

Responsibility:
    Creates the companion invoice of a nota, recomputes its paid and
    outstanding amounts from the applied payments, and distributes every
    applied payment across the debtors behind the invoice.

Architecture position:
    Services layer.  Shared by the nota lifecycle, manual matching and the
    settlement cascade so the three trigger points write identical state.

Invariants enforced:
    - outstanding_amount = max(total_amount - paid_amount, 0).
    - Only the settlement cascade (mark_paid) writes status Paid.  Payments
      that reach or exceed the total leave the invoice Partially Paid until
      the nota settles.
    - One PaymentShare per (payment, debtor), keyed and unique.  A debtor's
      payment_received_amount is recomputed as the sum of its shares, never
      incremented, so replaying a distribution cannot double-count.
    - Shares of one payment sum to the payment amount exactly
      (allocate_pro_rata, remainder to the last debtor in a stable order).
"""

from __future__ import annotations

from decimal import Decimal

from settlement_engines.allocation import ShareTarget, allocate_pro_rata
from settlement_engines.reconciliation import APPLIED_LINKED
from settlement_kernel.domain.actor import Actor
from settlement_kernel.domain.statuses import InvoiceStatus, NotaType, UnderwritingStatus
from settlement_kernel.domain.values import ZERO
from settlement_kernel.logging_config import get_logger
from settlement_kernel.models import Debtor, Invoice, Nota, Payment
from settlement_kernel.utils.idempotency import invoice_key, payment_share_key
from settlement_services.context import SettlementContext

logger = get_logger("services.invoice_settlement")


def debtor_order(debtor: Debtor) -> tuple[str, str, str]:
    return (debtor.participant_no or "", debtor.debtor_name, str(debtor.id))


class InvoiceSettlement:
    """Invoice creation, paid-amount recomputation and pro-rata distribution."""

    def __init__(self, ctx: SettlementContext):
        self._ctx = ctx
        self._stores = ctx.stores

    def ensure_invoice(self, nota: Nota, actor: Actor) -> Invoice:
        invoice, created = self._stores.invoices.get_or_create(
            invoice_key(nota.nota_number),
            {
                "invoice_number": f"INV-{nota.nota_number}",
                "nota_number": nota.nota_number,
                "batch_id": nota.reference_id if nota.nota_type == NotaType.BATCH.value else None,
                "contract_id": nota.contract_id,
                "total_amount": nota.amount,
                "paid_amount": ZERO,
                "outstanding_amount": nota.amount,
                "currency": nota.currency,
                "status": InvoiceStatus.ISSUED.value,
                "issued_date": self._ctx.today(),
            },
            actor_email=actor.email,
        )
        if created:
            logger.info(
                "invoice_created",
                extra={"invoice_number": invoice.invoice_number, "nota_number": nota.nota_number},
            )
        return invoice

    def invoice_for(self, nota_number: str) -> Invoice | None:
        return self._stores.invoices.find_one(nota_number=nota_number)

    def linked_payments(self, invoice: Invoice) -> list[Payment]:
        rows = self._stores.payments.filter(
            invoice_id=str(invoice.id),
            match_status=sorted(APPLIED_LINKED),
        )
        return sorted(rows, key=lambda p: (p.payment_date, p.payment_ref))

    def debtors_behind(self, invoice: Invoice) -> list[Debtor]:
        """Approved, active debtors of the invoice's batch in a stable order."""
        if invoice.batch_id is None:
            return []
        rows = self._stores.debtors.filter(
            batch_id=invoice.batch_id,
            underwriting_status=UnderwritingStatus.APPROVED.value,
            is_active=True,
        )
        return sorted(rows, key=debtor_order)

    def recompute(
        self,
        invoice: Invoice,
        paid_amount: Decimal,
        actor: Actor,
        *,
        settled: bool = False,
    ) -> Invoice:
        """Set paid/outstanding/status from the amount applied so far."""
        outstanding = max(invoice.total_amount - paid_amount, ZERO)
        if settled:
            status = InvoiceStatus.PAID.value
        elif paid_amount > ZERO:
            status = InvoiceStatus.PARTIALLY_PAID.value
        else:
            status = InvoiceStatus.ISSUED.value
        patch = {
            "paid_amount": paid_amount,
            "outstanding_amount": outstanding,
            "status": status,
        }
        if status == InvoiceStatus.PAID.value and invoice.paid_date is None:
            patch["paid_date"] = self._ctx.today()
        if all(getattr(invoice, k) == v for k, v in patch.items()):
            return invoice
        return self._stores.invoices.update(
            invoice.id, patch, expected_version=invoice.version, actor_email=actor.email
        )

    def mark_paid(self, invoice: Invoice, actor: Actor) -> Invoice:
        """Invoice fully settled: paid = total, outstanding = 0."""
        return self.recompute(invoice, invoice.total_amount, actor, settled=True)

    def distribute(self, invoice: Invoice, actor: Actor) -> list[Debtor]:
        """
        Spread every applied payment of ``invoice`` across its debtors.

        Weights are the debtors' invoice amounts.  Returns the debtors with
        refreshed ``payment_received_amount``.
        """
        debtors = self.debtors_behind(invoice)
        if not debtors:
            return []
        targets = [ShareTarget(target_id=str(d.id), weight=d.invoice_amount) for d in debtors]

        for payment in self.linked_payments(invoice):
            allocation = allocate_pro_rata(amount=payment.amount, targets=targets)
            for line in allocation.lines:
                self._stores.shares.get_or_create(
                    payment_share_key(payment.id, line.target_id),
                    {
                        "payment_id": str(payment.id),
                        "debtor_id": line.target_id,
                        "invoice_id": str(invoice.id),
                        "amount": line.amount,
                    },
                    actor_email=actor.email,
                )

        refreshed: list[Debtor] = []
        for debtor in debtors:
            total = sum(
                (s.amount for s in self._stores.shares.filter(debtor_id=str(debtor.id))),
                ZERO,
            )
            if total != debtor.payment_received_amount:
                debtor = self._stores.debtors.update(
                    debtor.id,
                    {"payment_received_amount": total},
                    expected_version=debtor.version,
                    actor_email=actor.email,
                )
            refreshed.append(debtor)

        logger.info(
            "payment_distributed",
            extra={"invoice_number": invoice.invoice_number, "debtor_count": len(refreshed)},
        )
        return refreshed
