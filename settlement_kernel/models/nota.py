"""
Module: settlement_kernel.models.nota
Responsibility: ORM persistence for notas and their companion invoices.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - nota_number is unique; one Batch nota per batch and one Claim nota per
      claim (idempotency_key).
    - amount is locked once the nota is issued (is_immutable).  Debit and
      credit notes overlay the amount at read time instead.
    - Invoice: outstanding_amount = total_amount - paid_amount, and one
      invoice per nota.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import Boolean, Date, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from settlement_kernel.db.base import TrackedBase


class Nota(TrackedBase):
    """A billing instrument derived from an approved batch or a claim."""

    __tablename__ = "settlement_notas"

    __table_args__ = (
        UniqueConstraint("nota_number", name="uq_settlement_notas_number"),
        UniqueConstraint("idempotency_key", name="uq_settlement_notas_key"),
        Index("idx_settlement_notas_reference", "reference_id"),
        Index("idx_settlement_notas_status", "status"),
    )

    __locked_fields__ = frozenset({"amount", "nota_type", "reference_id", "currency"})
    __lock_flag__ = "is_immutable"

    idempotency_key: Mapped[str] = mapped_column(String(255), nullable=False)
    nota_number: Mapped[str] = mapped_column(String(160), nullable=False)
    nota_type: Mapped[str] = mapped_column(String(32), nullable=False)
    reference_id: Mapped[str] = mapped_column(String(120), nullable=False)
    contract_id: Mapped[str] = mapped_column(String(120), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="IDR")
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    is_immutable: Mapped[bool] = mapped_column(Boolean, default=False)

    issued_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    issued_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    confirmed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    confirmed_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    paid_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    paid_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<Nota {self.nota_number} {self.nota_type} {self.amount} [{self.status}]>"


class Invoice(TrackedBase):
    """Receivable created when a nota is issued."""

    __tablename__ = "settlement_invoices"

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_settlement_invoices_key"),
        UniqueConstraint("invoice_number", name="uq_settlement_invoices_number"),
        Index("idx_settlement_invoices_nota", "nota_number"),
        Index("idx_settlement_invoices_contract", "contract_id"),
    )

    idempotency_key: Mapped[str] = mapped_column(String(255), nullable=False)
    invoice_number: Mapped[str] = mapped_column(String(160), nullable=False)
    nota_number: Mapped[str] = mapped_column(String(160), nullable=False)
    batch_id: Mapped[str | None] = mapped_column(String(120), nullable=True)
    contract_id: Mapped[str] = mapped_column(String(120), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    paid_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    outstanding_amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="IDR")
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    issued_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    paid_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    def __repr__(self) -> str:
        return f"<Invoice {self.invoice_number} {self.paid_amount}/{self.total_amount} [{self.status}]>"
