"""
settlement_kernel -- persistence, audit and saga primitives for the
reinsurance settlement workflow.

The kernel knows nothing about batches being approved or notas being
paid.  It owns the ORM models, the generic EntityStore, the hash-chained
AuditTrail, the NotificationDispatcher, and the saga executor that the
workflow modules compose into cascades.
"""

__version__ = "0.1.0"
