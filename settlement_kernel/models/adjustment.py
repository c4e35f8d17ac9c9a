"""
Module: settlement_kernel.models.adjustment
Responsibility: ORM persistence for debit/credit notes.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - adjustment_amount is signed: positive for Debit, negative for Credit.
    - A note never rewrites the nota it corrects; it is summed with the
      nota amount at read time once acknowledged.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import Date, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from settlement_kernel.db.base import TrackedBase


class DebitCreditNote(TrackedBase):
    """An adjustment instrument resolving a reconciliation exception."""

    __tablename__ = "settlement_debit_credit_notes"

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_settlement_dncn_key"),
        UniqueConstraint("note_number", name="uq_settlement_dncn_number"),
        Index("idx_settlement_dncn_nota", "original_nota_id"),
        Index("idx_settlement_dncn_status", "status"),
    )

    idempotency_key: Mapped[str] = mapped_column(String(255), nullable=False)
    note_number: Mapped[str] = mapped_column(String(160), nullable=False)
    note_type: Mapped[str] = mapped_column(String(16), nullable=False)
    original_nota_id: Mapped[str] = mapped_column(String(160), nullable=False)
    batch_id: Mapped[str | None] = mapped_column(String(120), nullable=True)
    contract_id: Mapped[str] = mapped_column(String(120), nullable=False)
    original_amount: Mapped[Decimal] = mapped_column(nullable=False)
    adjustment_amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="IDR")
    reason_description: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False)

    reviewed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    reviewed_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    approved_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    approved_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    rejected_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    acknowledged_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    acknowledged_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    def __repr__(self) -> str:
        return f"<DebitCreditNote {self.note_number} {self.adjustment_amount} [{self.status}]>"
