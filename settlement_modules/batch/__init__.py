"""
Batch Module (``settlement_modules.batch``).

A bordereau of debtors for one contract and month, walked from upload to
payment and closed as an operational lock.  The batch only reaches Nota
Issued once debtor review has produced its final amounts.
"""

from settlement_modules.batch.workflows import BATCH_STAMPS, BATCH_WORKFLOW

__all__ = ["BATCH_STAMPS", "BATCH_WORKFLOW"]
