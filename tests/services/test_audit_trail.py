"""Tests for the hash-chained audit trail and its append-only enforcement."""

from decimal import Decimal

import pytest

from settlement_kernel.domain.actor import Actor, Role
from settlement_kernel.exceptions import ImmutabilityViolationError
from settlement_kernel.models import AuditEvent
from settlement_kernel.services.audit_trail import AuditTrail


@pytest.fixture
def audit(session_factory, clock) -> AuditTrail:
    return AuditTrail(session_factory, clock)


@pytest.fixture
def actor() -> Actor:
    return Actor("settlement@tugure.example", Role.TUGURE)


class TestAppend:
    def test_sequence_and_chain(self, audit, actor):
        first = audit.append("BATCH_VALIDATE", "batch", "Batch", "B-1", actor=actor)
        second = audit.append("BATCH_MATCH", "batch", "Batch", "B-1", actor=actor)

        assert (first.seq, second.seq) == (1, 2)
        assert first.is_genesis
        assert second.prev_hash == first.hash
        assert audit.verify_chain()

    def test_blocked_prefix(self, audit, actor):
        event = audit.append("BATCH_CLOSE", "batch", "Batch", "B-1", actor=actor, blocked=True)
        assert event.action == "BLOCKED_BATCH_CLOSE"
        assert event.blocked is True

    def test_blocked_prefix_not_doubled(self, audit, actor):
        event = audit.append("BLOCKED_X", "batch", "Batch", "B-1", actor=actor, blocked=True)
        assert event.action == "BLOCKED_X"

    def test_actor_and_values_recorded(self, audit, actor):
        event = audit.append(
            "NOTA_ISSUE",
            "nota",
            "Nota",
            "NOTA-1",
            old_value={"status": "Draft"},
            new_value={"status": "Issued", "amount": Decimal("10000000")},
            actor=actor,
            reason="month end",
        )
        assert event.actor_email == "settlement@tugure.example"
        assert event.actor_role == "TUGURE"
        assert event.new_value["amount"] == "10000000"
        assert event.reason == "month end"

    def test_missing_actor_recorded_as_unknown(self, audit):
        assert audit.append("X", "m", "Batch", "B-1").actor_email == "unknown"

    def test_append_never_raises(self, audit, actor, engine):
        AuditEvent.__table__.drop(engine)
        try:
            assert audit.append("BATCH_VALIDATE", "batch", "Batch", "B-1", actor=actor) is None
        finally:
            AuditEvent.__table__.create(engine)


class TestReads:
    def test_filters(self, audit, actor):
        audit.append("BATCH_VALIDATE", "batch", "Batch", "B-1", actor=actor)
        audit.append("BATCH_CLOSE", "batch", "Batch", "B-1", actor=actor, blocked=True)
        audit.append("NOTA_ISSUE", "nota", "Nota", "N-1", actor=actor)

        assert [e.action for e in audit.events(entity_type="Batch")] == [
            "BATCH_VALIDATE",
            "BLOCKED_BATCH_CLOSE",
        ]
        assert len(audit.events(blocked=True)) == 1
        assert len(audit.events(entity_id="N-1", action="NOTA_ISSUE")) == 1
        assert audit.count() == 3


class TestTamperEvidence:
    def test_update_blocked(self, audit, actor, session_factory):
        event = audit.append("BATCH_VALIDATE", "batch", "Batch", "B-1", actor=actor)
        session = session_factory()
        try:
            row = session.get(AuditEvent, event.id)
            row.reason = "rewritten"
            with pytest.raises(ImmutabilityViolationError):
                session.flush()
        finally:
            session.rollback()
            session.close()

    def test_delete_blocked(self, audit, actor, session_factory):
        event = audit.append("BATCH_VALIDATE", "batch", "Batch", "B-1", actor=actor)
        session = session_factory()
        try:
            session.delete(session.get(AuditEvent, event.id))
            with pytest.raises(ImmutabilityViolationError):
                session.flush()
        finally:
            session.rollback()
            session.close()

    def test_verify_chain_detects_rewrite(self, audit, actor, engine):
        audit.append("BATCH_VALIDATE", "batch", "Batch", "B-1", actor=actor)
        audit.append("BATCH_MATCH", "batch", "Batch", "B-1", actor=actor)
        # Core UPDATE bypasses the ORM listeners, as a direct SQL edit would
        with engine.begin() as conn:
            conn.execute(
                AuditEvent.__table__.update()
                .where(AuditEvent.__table__.c.seq == 1)
                .values(action="BATCH_APPROVE")
            )
        assert audit.verify_chain() is False
