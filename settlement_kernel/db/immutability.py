"""
Module: settlement_kernel.db.immutability
Responsibility: Enforce append-only and locked-field rules for settlement
    records.

Two layers, both raising ImmutabilityViolationError:

  Layer 1: ORM event listeners (register_immutability_listeners).  Catch
           any flush that updates or deletes an AuditEvent, or that changes a
           locked field through the ORM.
  Layer 2: check_patch_allowed(), called by EntityStore.update before its
           version-checked Core UPDATE (Core statements bypass mapper
           events).

Locked fields are declared on the model:

    __locked_fields__ = frozenset({"amount"})
    __lock_flag__ = "is_immutable"   # None means locked from creation

Audit relevance:
    The Nota amount, the accepted-record snapshot and the batch's finalized
    totals are the numbers every later cascade trusts.  Corrections go
    through debit/credit notes, never through an update.
"""

from typing import Any

from sqlalchemy import event, inspect

from settlement_kernel.exceptions import ImmutabilityViolationError
from settlement_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def locked_fields_of(model: type) -> frozenset[str]:
    return getattr(model, "__locked_fields__", frozenset())


def is_locked(target: Any) -> bool:
    """True when the target's locked fields may no longer change."""
    if not locked_fields_of(type(target)):
        return False
    flag = getattr(type(target), "__lock_flag__", None)
    if flag is None:
        return True
    return bool(getattr(target, flag, False))


def check_patch_allowed(target: Any, patch: dict[str, Any]) -> None:
    """
    Reject a patch that changes a locked field of a locked row.

    Setting a locked field to its current value is allowed so that
    idempotent replays of a cascade step do not fail.
    """
    if not is_locked(target):
        return
    for name in locked_fields_of(type(target)) & patch.keys():
        if getattr(target, name) != patch[name]:
            _blocked(type(target).__name__, str(target.id), "UPDATE", name)
            raise ImmutabilityViolationError(
                entity_type=type(target).__name__,
                entity_id=str(target.id),
                reason=f"Field '{name}' is locked",
            )


def _blocked(entity_type: str, entity_id: str, operation: str, field: str | None = None) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
            "field": field,
        },
    )


def _check_audit_event_update(mapper, connection, target):
    _blocked("AuditEvent", str(target.id), "UPDATE")
    raise ImmutabilityViolationError(
        entity_type="AuditEvent",
        entity_id=str(target.id),
        reason="Audit events are immutable and cannot be modified",
    )


def _check_audit_event_delete(mapper, connection, target):
    _blocked("AuditEvent", str(target.id), "DELETE")
    raise ImmutabilityViolationError(
        entity_type="AuditEvent",
        entity_id=str(target.id),
        reason="Audit events cannot be deleted",
    )


def _check_locked_fields(mapper, connection, target):
    state = inspect(target)
    flag = getattr(type(target), "__lock_flag__", None)
    if flag is not None:
        # The lock applies to the committed value of the flag, so the flush
        # that sets the flag may still carry the final field values.
        history = state.attrs[flag].history
        was_locked = bool(history.deleted[0]) if history.deleted else bool(getattr(target, flag))
        if not was_locked:
            return
    for name in locked_fields_of(type(target)):
        if state.attrs[name].history.has_changes():
            _blocked(type(target).__name__, str(target.id), "UPDATE", name)
            raise ImmutabilityViolationError(
                entity_type=type(target).__name__,
                entity_id=str(target.id),
                reason=f"Field '{name}' is locked",
            )


def _listener_targets():
    from settlement_kernel.models.audit_event import AuditEvent
    from settlement_kernel.models.batch import Batch
    from settlement_kernel.models.debtor import AcceptedRecord
    from settlement_kernel.models.nota import Nota

    return AuditEvent, (Batch, AcceptedRecord, Nota)


def register_immutability_listeners() -> None:
    """
    Register all immutability enforcement event listeners.

    Call once during application initialization, after models are imported.
    Registering twice is harmless.
    """
    audit_model, locked_models = _listener_targets()

    if not event.contains(audit_model, "before_update", _check_audit_event_update):
        event.listen(audit_model, "before_update", _check_audit_event_update)
        event.listen(audit_model, "before_delete", _check_audit_event_delete)

    for model in locked_models:
        if not event.contains(model, "before_update", _check_locked_fields):
            event.listen(model, "before_update", _check_locked_fields)


def unregister_immutability_listeners() -> None:
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that intentionally violate the rules.
    """
    audit_model, locked_models = _listener_targets()
    for target, name, fn in (
        (audit_model, "before_update", _check_audit_event_update),
        (audit_model, "before_delete", _check_audit_event_delete),
        *((m, "before_update", _check_locked_fields) for m in locked_models),
    ):
        if event.contains(target, name, fn):
            event.remove(target, name, fn)
