"""
Reconciliation Module (``settlement_modules.reconciliation``).

Actual payments against notas, matching to intents, reconciliation items
and their escalation into debit/credit notes.
"""
