"""ORM models for the settlement workflow."""

from settlement_kernel.models.adjustment import DebitCreditNote
from settlement_kernel.models.audit_event import AuditEvent
from settlement_kernel.models.batch import Batch
from settlement_kernel.models.claim import Claim
from settlement_kernel.models.debtor import AcceptedRecord, Debtor
from settlement_kernel.models.nota import Invoice, Nota
from settlement_kernel.models.notification import Notification
from settlement_kernel.models.payment import (
    Payment,
    PaymentIntent,
    PaymentShare,
    ReconciliationItem,
)

__all__ = [
    "AcceptedRecord",
    "AuditEvent",
    "Batch",
    "Claim",
    "DebitCreditNote",
    "Debtor",
    "Invoice",
    "Nota",
    "Notification",
    "Payment",
    "PaymentIntent",
    "PaymentShare",
    "ReconciliationItem",
    "import_all_models",
]


def import_all_models() -> tuple[type, ...]:
    """Return every model class; importing this package registers their tables."""
    return (
        AcceptedRecord,
        AuditEvent,
        Batch,
        Claim,
        DebitCreditNote,
        Debtor,
        Invoice,
        Nota,
        Notification,
        Payment,
        PaymentIntent,
        PaymentShare,
        ReconciliationItem,
    )
