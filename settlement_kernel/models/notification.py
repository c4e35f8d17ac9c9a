"""
Module: settlement_kernel.models.notification
Responsibility: ORM persistence for role-targeted in-app alerts.
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from settlement_kernel.db.base import Base


class Notification(Base):
    """An alert addressed to a role (or to every role via target_role='ALL')."""

    __tablename__ = "settlement_notifications"

    __table_args__ = (
        Index("idx_settlement_notifications_target", "target_role"),
        Index("idx_settlement_notifications_reference", "reference_id"),
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(String(4000), nullable=False)
    severity: Mapped[str] = mapped_column(String(32), nullable=False)
    module: Mapped[str] = mapped_column(String(50), nullable=False)
    reference_id: Mapped[str] = mapped_column(String(160), nullable=False)
    target_role: Mapped[str] = mapped_column(String(32), nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<Notification {self.title} -> {self.target_role}>"
