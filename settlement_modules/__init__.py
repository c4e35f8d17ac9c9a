"""
Settlement Modules.

One package per entity of the settlement chain.  Each module contains:
- Workflows (state machines: states, transitions, guards)
- A service facade that re-reads under the aggregate lock, runs the
  transition through the shared runner and applies the side effects

Modules:
- batch: upload, status walk, close, reject, reopen
- debtor_review: per-debtor underwriting decisions and final amounts
- nota: batch and claim notas, invoice, automatic intent, settlement
- payment_intent: planned payments
- reconciliation: payments, matching, items, exception escalation
- adjustment: debit/credit notes
- claim: claim gate and review

Services are imported from their own modules (``settlement_modules.nota.service``);
this package exports the workflows only.
"""

from settlement_modules.adjustment.workflows import DEBIT_CREDIT_NOTE_WORKFLOW
from settlement_modules.batch.workflows import BATCH_WORKFLOW
from settlement_modules.claim.workflows import CLAIM_WORKFLOW
from settlement_modules.nota.workflows import NOTA_WORKFLOW
from settlement_modules.payment_intent.workflows import PAYMENT_INTENT_WORKFLOW

ALL_WORKFLOWS = (
    BATCH_WORKFLOW,
    NOTA_WORKFLOW,
    PAYMENT_INTENT_WORKFLOW,
    DEBIT_CREDIT_NOTE_WORKFLOW,
    CLAIM_WORKFLOW,
)

__all__ = [
    "ALL_WORKFLOWS",
    "BATCH_WORKFLOW",
    "CLAIM_WORKFLOW",
    "DEBIT_CREDIT_NOTE_WORKFLOW",
    "NOTA_WORKFLOW",
    "PAYMENT_INTENT_WORKFLOW",
]
