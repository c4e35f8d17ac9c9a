"""
Module: settlement_kernel.models.claim
Responsibility: ORM persistence for claims submitted against a paid batch.
Architecture position: Kernel > Models.  May import from db/ only.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import Date, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from settlement_kernel.db.base import TrackedBase


class Claim(TrackedBase):
    """A loss claim on a debtor of a settled batch."""

    __tablename__ = "settlement_claims"

    __table_args__ = (
        UniqueConstraint("claim_id", name="uq_settlement_claims_claim_id"),
        Index("idx_settlement_claims_batch", "batch_id"),
        Index("idx_settlement_claims_status", "status"),
    )

    claim_id: Mapped[str] = mapped_column(String(120), nullable=False)
    batch_id: Mapped[str] = mapped_column(String(120), nullable=False)
    debtor_id: Mapped[str] = mapped_column(String(36), nullable=False)
    contract_id: Mapped[str] = mapped_column(String(120), nullable=False)
    claim_amount: Mapped[Decimal] = mapped_column(nullable=False)
    share_amount: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    remarks: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    checked_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    checked_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    verified_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    verified_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    invoiced_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    invoiced_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    nota_number: Mapped[str | None] = mapped_column(String(160), nullable=True)

    def __repr__(self) -> str:
        return f"<Claim {self.claim_id} {self.claim_amount} [{self.status}]>"
