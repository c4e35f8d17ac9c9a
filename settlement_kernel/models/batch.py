"""
Module: settlement_kernel.models.batch
Responsibility: ORM persistence for the monthly submission batch.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - batch_id is unique; a batch is never physically deleted.
    - final_exposure_amount / final_premium_amount are written once by the
      debtor review gate and then locked (final_amounts_locked).
    - debtor_review_completed and batch_ready_for_nota have exactly one
      writer: the debtor review gate.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import Boolean, Date, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from settlement_kernel.db.base import TrackedBase


class Batch(TrackedBase):
    """
    A monthly submission of debtor records from a ceding branch.

    Actor/date pairs are kept per transition so the pipeline can be
    reconstructed without the audit trail.
    """

    __tablename__ = "settlement_batches"

    __table_args__ = (
        UniqueConstraint("batch_id", name="uq_settlement_batches_batch_id"),
        Index("idx_settlement_batches_status", "status"),
        Index("idx_settlement_batches_contract", "contract_id"),
    )

    __locked_fields__ = frozenset({"final_exposure_amount", "final_premium_amount"})
    __lock_flag__ = "final_amounts_locked"

    batch_id: Mapped[str] = mapped_column(String(120), nullable=False)
    batch_month: Mapped[int] = mapped_column(nullable=False)
    batch_year: Mapped[int] = mapped_column(nullable=False)
    contract_id: Mapped[str] = mapped_column(String(120), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False)

    total_records: Mapped[int] = mapped_column(default=0)
    total_exposure: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_premium: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    final_exposure_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    final_premium_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    final_amounts_locked: Mapped[bool] = mapped_column(Boolean, default=False)

    operational_locked: Mapped[bool] = mapped_column(Boolean, default=False)
    debtor_review_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    batch_ready_for_nota: Mapped[bool] = mapped_column(Boolean, default=False)
    nota_payment_status: Mapped[str | None] = mapped_column(String(32), nullable=True)

    rejection_reason: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    reopen_reason: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    reopen_impact: Mapped[str | None] = mapped_column(String(64), nullable=True)
    reopen_requested_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    reopen_resolved_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    close_remarks: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    validated_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    validated_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    matched_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    matched_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    approved_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    approved_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    nota_issued_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    nota_issued_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    branch_confirmed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    branch_confirmed_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    paid_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    paid_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    closed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    closed_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    rejected_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    rejected_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    def __repr__(self) -> str:
        return f"<Batch {self.batch_id} [{self.status}]>"
