"""
Module: settlement_kernel.models.audit_event
Responsibility: ORM persistence for the tamper-evident audit hash chain.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Audit records are append-only; no UPDATE or DELETE (ORM listeners in
      db/immutability.py).
    - hash = H(entity_type | entity_id | action | payload_hash | prev_hash).
    - seq is unique and increases by one per appended record.

Audit relevance:
    AuditEvent IS the audit trail.  Every state change and every blocked
    attempt (blocked=True, action prefixed BLOCKED_) produces one row, so a
    compliance reviewer sees the decisions that were refused as well as the
    ones that went through.
"""

from datetime import datetime

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from settlement_kernel.db.base import Base


class AuditEvent(Base):
    """
    Audit event with hash chain for tamper evidence.

    Guarantees:
        - prev_hash is None only for the genesis event.
        - old_value / new_value hold JSON snapshots of the changed fields.
    """

    __tablename__ = "settlement_audit_events"

    __table_args__ = (
        Index("idx_settlement_audit_entity", "entity_type", "entity_id"),
        Index("idx_settlement_audit_action", "action"),
        Index("idx_settlement_audit_seq", "seq", unique=True),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False)
    action: Mapped[str] = mapped_column(String(80), nullable=False)
    module: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(160), nullable=False)
    actor_email: Mapped[str] = mapped_column(String(255), nullable=False)
    actor_role: Mapped[str] = mapped_column(String(32), nullable=False)
    old_value: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    new_value: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    reason: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    blocked: Mapped[bool] = mapped_column(Boolean, default=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditEvent #{self.seq} {self.action} on {self.entity_type}:{self.entity_id}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None
