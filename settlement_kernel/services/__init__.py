"""Kernel services: entity store, audit trail, notifications, saga executor."""

from settlement_kernel.services.audit_trail import AuditTrail
from settlement_kernel.services.entity_store import EntityStore
from settlement_kernel.services.notification_dispatcher import (
    LoggingEmailSender,
    NotificationDispatcher,
)
from settlement_kernel.services.saga import SagaExecutor, SagaResult, SagaStep

__all__ = [
    "AuditTrail",
    "EntityStore",
    "LoggingEmailSender",
    "NotificationDispatcher",
    "SagaExecutor",
    "SagaResult",
    "SagaStep",
]
