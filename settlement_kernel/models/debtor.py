"""
Module: settlement_kernel.models.debtor
Responsibility: ORM persistence for debtors and their accepted-record
    snapshots.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - A debtor belongs to exactly one batch (batch_id) and is deactivated,
      never deleted.
    - payment_received_amount is the sum of the debtor's PaymentShare rows;
      it is recomputed, never incremented, so distribution replays are safe.
    - AcceptedRecord is unique per debtor and its amounts never change after
      creation.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import Boolean, Date, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from settlement_kernel.db.base import TrackedBase


class Debtor(TrackedBase):
    """An individual credit exposure record inside a batch."""

    __tablename__ = "settlement_debtors"

    __table_args__ = (
        Index("idx_settlement_debtors_batch", "batch_id"),
        Index("idx_settlement_debtors_uw_status", "underwriting_status"),
    )

    batch_id: Mapped[str] = mapped_column(String(120), nullable=False)
    contract_id: Mapped[str] = mapped_column(String(120), nullable=False)
    participant_no: Mapped[str | None] = mapped_column(String(120), nullable=True)
    debtor_name: Mapped[str] = mapped_column(String(255), nullable=False)

    credit_plafond: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    gross_premium: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    net_premium: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    outstanding_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    underwriting_status: Mapped[str] = mapped_column(String(32), nullable=False)
    underwriting_remarks: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    reviewed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    reviewed_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    batch_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Amount this debtor contributes to the batch invoice, fixed at issue
    invoice_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    invoice_status: Mapped[str] = mapped_column(String(32), nullable=False)
    recon_status: Mapped[str] = mapped_column(String(32), nullable=False)
    payment_received_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    def __repr__(self) -> str:
        return f"<Debtor {self.debtor_name} batch={self.batch_id} [{self.underwriting_status}]>"


class AcceptedRecord(TrackedBase):
    """
    Snapshot taken when a debtor is approved.

    The batch's finalized totals and the debtor's invoice share are computed
    from these rows, decoupled from later edits of the debtor itself.
    """

    __tablename__ = "settlement_accepted_records"

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_settlement_accepted_records_key"),
        Index("idx_settlement_accepted_records_batch", "batch_id"),
    )

    __locked_fields__ = frozenset({"exposure_amount", "premium_amount", "debtor_id"})
    __lock_flag__ = None

    idempotency_key: Mapped[str] = mapped_column(String(255), nullable=False)
    debtor_id: Mapped[str] = mapped_column(String(36), nullable=False)
    batch_id: Mapped[str] = mapped_column(String(120), nullable=False)
    contract_id: Mapped[str] = mapped_column(String(120), nullable=False)
    exposure_amount: Mapped[Decimal] = mapped_column(nullable=False)
    premium_amount: Mapped[Decimal] = mapped_column(nullable=False)
    accepted_by: Mapped[str] = mapped_column(String(255), nullable=False)
    accepted_date: Mapped[date] = mapped_column(Date, nullable=False)

    def __repr__(self) -> str:
        return f"<AcceptedRecord debtor={self.debtor_id} premium={self.premium_amount}>"
