"""
Module: settlement_kernel.models.payment
Responsibility: ORM persistence for planned payments (PaymentIntent),
    actual payments (Payment), per-debtor payment shares, and the stored
    reconciliation item of each nota.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Payment.idempotency_key is unique.  The settlement cascade keys its
      synthetic payment by invoice id, so it is created at most once.
    - PaymentShare is unique per (payment_id, debtor_id).
    - ReconciliationItem is unique per nota_number; its numbers are a cache
      of the pure derivation in settlement_engines.reconciliation.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import Boolean, Date, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from settlement_kernel.db.base import TrackedBase


class PaymentIntent(TrackedBase):
    """A planned, not-yet-executed payment against a nota."""

    __tablename__ = "settlement_payment_intents"

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_settlement_intents_key"),
        UniqueConstraint("intent_id", name="uq_settlement_intents_intent_id"),
        Index("idx_settlement_intents_contract", "contract_id"),
        Index("idx_settlement_intents_nota", "nota_number"),
    )

    idempotency_key: Mapped[str] = mapped_column(String(255), nullable=False)
    intent_id: Mapped[str] = mapped_column(String(160), nullable=False)
    nota_number: Mapped[str] = mapped_column(String(160), nullable=False)
    contract_id: Mapped[str] = mapped_column(String(120), nullable=False)
    payment_type: Mapped[str] = mapped_column(String(16), nullable=False)
    planned_amount: Mapped[Decimal] = mapped_column(nullable=False)
    planned_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    remarks: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    submitted_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    approved_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    completed_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    def __repr__(self) -> str:
        return f"<PaymentIntent {self.intent_id} {self.planned_amount} [{self.status}]>"


class Payment(TrackedBase):
    """An actual amount received."""

    __tablename__ = "settlement_payments"

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_settlement_payments_key"),
        Index("idx_settlement_payments_invoice", "invoice_id"),
        Index("idx_settlement_payments_contract", "contract_id"),
        Index("idx_settlement_payments_match", "match_status"),
    )

    idempotency_key: Mapped[str] = mapped_column(String(255), nullable=False)
    payment_ref: Mapped[str] = mapped_column(String(160), nullable=False)
    contract_id: Mapped[str] = mapped_column(String(120), nullable=False)
    nota_number: Mapped[str | None] = mapped_column(String(160), nullable=True)
    invoice_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    intent_id: Mapped[str | None] = mapped_column(String(160), nullable=True)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="IDR")
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    match_status: Mapped[str] = mapped_column(String(32), nullable=False)
    exception_type: Mapped[str] = mapped_column(String(16), nullable=False)
    matched_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    matched_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    match_remarks: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    def __repr__(self) -> str:
        return f"<Payment {self.payment_ref} {self.amount} [{self.match_status}]>"


class PaymentShare(TrackedBase):
    """One debtor's proportional part of one payment."""

    __tablename__ = "settlement_payment_shares"

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_settlement_payment_shares_key"),
        Index("idx_settlement_payment_shares_debtor", "debtor_id"),
        Index("idx_settlement_payment_shares_payment", "payment_id"),
    )

    idempotency_key: Mapped[str] = mapped_column(String(255), nullable=False)
    payment_id: Mapped[str] = mapped_column(String(36), nullable=False)
    debtor_id: Mapped[str] = mapped_column(String(36), nullable=False)
    invoice_id: Mapped[str] = mapped_column(String(36), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<PaymentShare payment={self.payment_id} debtor={self.debtor_id} {self.amount}>"


class ReconciliationItem(TrackedBase):
    """The stored state of one nota's reconciliation."""

    __tablename__ = "settlement_reconciliation_items"

    __table_args__ = (
        UniqueConstraint("nota_number", name="uq_settlement_recon_items_nota"),
        Index("idx_settlement_recon_items_state", "item_state"),
    )

    nota_number: Mapped[str] = mapped_column(String(160), nullable=False)
    invoice_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    contract_id: Mapped[str] = mapped_column(String(120), nullable=False)
    nota_amount: Mapped[Decimal] = mapped_column(nullable=False)
    payment_received: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    difference: Mapped[Decimal] = mapped_column(nullable=False)
    tolerance: Mapped[Decimal] = mapped_column(nullable=False)
    recon_status: Mapped[str] = mapped_column(String(32), nullable=False)
    exception_type: Mapped[str] = mapped_column(String(16), nullable=False)
    has_exception: Mapped[bool] = mapped_column(Boolean, default=False)
    item_state: Mapped[str] = mapped_column(String(32), nullable=False)
    closed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    closed_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    def __repr__(self) -> str:
        return f"<ReconciliationItem {self.nota_number} diff={self.difference} [{self.recon_status}]>"
