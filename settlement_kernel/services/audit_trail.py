"""
Module: settlement_kernel.services.audit_trail
Responsibility: Append immutable, hash-chained records of every state change
    and every blocked attempt.  Pure sink, no business logic.
Architecture position: Kernel > Services.

Invariants enforced:
    - Append-only.  Rows are never updated or deleted (ORM listeners).
    - seq increases by one per row and each row's hash covers the previous
      row's hash, so removing or editing a row is detectable by
      verify_chain().
    - Fire-and-forget: append() never raises.  A failure to audit is logged
      at ERROR and the primary transition stands.

Audit relevance:
    Blocked attempts are recorded with the same rigor as successful ones:
    ``blocked=True`` and an action prefixed ``BLOCKED_``.
"""

from __future__ import annotations

import threading
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from settlement_kernel.db.engine import session_scope
from settlement_kernel.domain.actor import Actor
from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.logging_config import get_logger
from settlement_kernel.models.audit_event import AuditEvent
from settlement_kernel.utils.hashing import hash_audit_event, hash_payload, to_json_safe

logger = get_logger("services.audit_trail")

BLOCKED_PREFIX = "BLOCKED_"


class AuditTrail:
    """Hash-chained audit sink."""

    def __init__(self, session_factory: sessionmaker[Session], clock: Clock | None = None):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        # Serializes seq allocation within the process; the unique seq index
        # catches anything that slips past across processes.
        self._append_lock = threading.Lock()

    def append(
        self,
        action: str,
        module: str,
        entity_type: str,
        entity_id: str,
        old_value: dict[str, Any] | None = None,
        new_value: dict[str, Any] | None = None,
        actor: Actor | None = None,
        reason: str | None = None,
        blocked: bool = False,
    ) -> AuditEvent | None:
        """Append one audit record.  Returns None if the append failed."""
        if blocked and not action.startswith(BLOCKED_PREFIX):
            action = f"{BLOCKED_PREFIX}{action}"
        old_json = to_json_safe(old_value)
        new_json = to_json_safe(new_value)
        actor_email = actor.email if actor else "unknown"
        actor_role = actor.role_name if actor else "unknown"
        occurred_at = self._clock.now()

        payload_hash = hash_payload(
            {
                "module": module,
                "old_value": old_json,
                "new_value": new_json,
                "actor_email": actor_email,
                "actor_role": actor_role,
                "reason": reason,
                "blocked": blocked,
                "occurred_at": occurred_at,
            }
        )

        try:
            with self._append_lock, session_scope(self._session_factory) as session:
                last = session.execute(
                    select(AuditEvent.seq, AuditEvent.hash)
                    .order_by(AuditEvent.seq.desc())
                    .limit(1)
                ).first()
                seq = (last.seq + 1) if last else 1
                prev_hash = last.hash if last else None
                event = AuditEvent(
                    seq=seq,
                    action=action,
                    module=module,
                    entity_type=entity_type,
                    entity_id=str(entity_id),
                    actor_email=actor_email,
                    actor_role=actor_role,
                    old_value=old_json,
                    new_value=new_json,
                    reason=reason,
                    blocked=blocked,
                    occurred_at=occurred_at,
                    payload_hash=payload_hash,
                    prev_hash=prev_hash,
                    hash=hash_audit_event(
                        entity_type, str(entity_id), action, payload_hash, prev_hash
                    ),
                )
                session.add(event)
                session.flush()
        except Exception:  # noqa: BLE001
            logger.error(
                "audit_append_failed",
                extra={
                    "action": action,
                    "entity_type": entity_type,
                    "entity_id": str(entity_id),
                },
                exc_info=True,
            )
            return None

        log = logger.warning if blocked else logger.info
        log(
            "audit_appended",
            extra={
                "action": action,
                "audit_module": module,
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "seq": seq,
                "blocked": blocked,
            },
        )
        return event

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def events(
        self,
        entity_type: str | None = None,
        entity_id: str | None = None,
        action: str | None = None,
        blocked: bool | None = None,
    ) -> list[AuditEvent]:
        stmt = select(AuditEvent).order_by(AuditEvent.seq)
        if entity_type is not None:
            stmt = stmt.where(AuditEvent.entity_type == entity_type)
        if entity_id is not None:
            stmt = stmt.where(AuditEvent.entity_id == str(entity_id))
        if action is not None:
            stmt = stmt.where(AuditEvent.action == action)
        if blocked is not None:
            stmt = stmt.where(AuditEvent.blocked == blocked)
        with session_scope(self._session_factory) as session:
            return list(session.scalars(stmt))

    def count(self) -> int:
        with session_scope(self._session_factory) as session:
            return session.scalar(select(func.count()).select_from(AuditEvent)) or 0

    def verify_chain(self) -> bool:
        """Recompute every link of the chain.  False on the first mismatch."""
        prev_hash: str | None = None
        for event in self.events():
            expected = hash_audit_event(
                event.entity_type, event.entity_id, event.action, event.payload_hash, prev_hash
            )
            if event.prev_hash != prev_hash or event.hash != expected:
                logger.error(
                    "audit_chain_broken",
                    extra={"seq": event.seq, "entity_id": event.entity_id},
                )
                return False
            prev_hash = event.hash
        return True
