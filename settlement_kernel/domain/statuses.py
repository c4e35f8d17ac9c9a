"""
Closed status enums for every settlement entity.

Values are the strings persisted in the status columns.  Services compare
against these members, never against ad hoc literals.
"""

from enum import Enum


class BatchStatus(str, Enum):
    UPLOADED = "Uploaded"
    VALIDATED = "Validated"
    MATCHED = "Matched"
    APPROVED = "Approved"
    NOTA_ISSUED = "Nota Issued"
    BRANCH_CONFIRMED = "Branch Confirmed"
    PAID = "Paid"
    CLOSED = "Closed"
    REJECTED = "Rejected"
    REOPEN_REQUESTED = "Reopen Requested"
    REOPENED = "Reopened"


class UnderwritingStatus(str, Enum):
    SUBMITTED = "Submitted"
    APPROVED = "Approved"
    REJECTED = "Rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not UnderwritingStatus.SUBMITTED


class ReviewDecision(str, Enum):
    APPROVE = "Approve"
    REJECT = "Reject"


class DebtorInvoiceStatus(str, Enum):
    NOT_ISSUED = "Not Issued"
    ISSUED = "Issued"
    PAID = "Paid"


class DebtorReconStatus(str, Enum):
    NOT_STARTED = "Not Started"
    IN_PROGRESS = "In Progress"
    CLOSED = "Closed"


class NotaType(str, Enum):
    BATCH = "Batch"
    CLAIM = "Claim"
    SUBROGATION = "Subrogation"


class NotaStatus(str, Enum):
    DRAFT = "Draft"
    ISSUED = "Issued"
    CONFIRMED = "Confirmed"
    PAID = "Paid"


class InvoiceStatus(str, Enum):
    ISSUED = "Issued"
    PARTIALLY_PAID = "Partially Paid"
    PAID = "Paid"


class PaymentType(str, Enum):
    FULL = "FULL"
    PARTIAL = "PARTIAL"
    INSTALMENT = "INSTALMENT"


class IntentStatus(str, Enum):
    DRAFT = "Draft"
    SUBMITTED = "Submitted"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    COMPLETED = "Completed"


class MatchStatus(str, Enum):
    RECEIVED = "Received"
    MATCHED = "Matched"
    PARTIALLY_MATCHED = "Partially Matched"


class ExceptionType(str, Enum):
    NONE = "None"
    UNDER = "Under"
    OVER = "Over"
    PARTIAL = "Partial"
    LATE = "Late"
    FX = "FX"


class ReconStatus(str, Enum):
    """Derived matching outcome of a reconciliation item."""

    PENDING = "Pending"
    PARTIAL = "Partial"
    MATCHED = "Matched"
    OVERPAID = "Overpaid"


class ReconItemState(str, Enum):
    """Lifecycle of the stored reconciliation item."""

    OPEN = "Open"
    FINAL = "Final"  # a debit/credit note was approved against it
    CLOSED = "Closed"


class NoteType(str, Enum):
    DEBIT = "Debit"
    CREDIT = "Credit"


class NoteStatus(str, Enum):
    DRAFT = "Draft"
    UNDER_REVIEW = "Under Review"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    ACKNOWLEDGED = "Acknowledged"


class ClaimStatus(str, Enum):
    DRAFT = "Draft"
    SUBMITTED = "Submitted"
    CHECKED = "Checked"
    DOC_VERIFIED = "Doc Verified"
    INVOICED = "Invoiced"


class Severity(str, Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    ACTION_REQUIRED = "ACTION_REQUIRED"
