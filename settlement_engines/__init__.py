"""
Pure settlement engines: tolerance, pro-rata allocation, reconciliation derivation.

Engines take plain values and return plain values.  They never touch the
database or the clock.
"""

from settlement_engines.allocation import (
    AllocationResult,
    ShareLine,
    ShareTarget,
    allocate_pro_rata,
)
from settlement_engines.reconciliation import (
    AdjustmentView,
    IntentView,
    PaymentView,
    ReconciliationSnapshot,
    derive_item,
    find_matching_intent,
)
from settlement_engines.tolerance import (
    TolerancePolicy,
    classify_difference,
    classify_payment,
)

__all__ = [
    "AdjustmentView",
    "AllocationResult",
    "IntentView",
    "PaymentView",
    "ReconciliationSnapshot",
    "ShareLine",
    "ShareTarget",
    "TolerancePolicy",
    "allocate_pro_rata",
    "classify_difference",
    "classify_payment",
    "derive_item",
    "find_matching_intent",
]
