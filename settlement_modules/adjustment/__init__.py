"""Debit/Credit Note Module (``settlement_modules.adjustment``)."""

from settlement_modules.adjustment.workflows import DEBIT_CREDIT_NOTE_WORKFLOW, NOTE_STAMPS

__all__ = ["DEBIT_CREDIT_NOTE_WORKFLOW", "NOTE_STAMPS"]
