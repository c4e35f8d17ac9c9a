"""Debtor Review Module (``settlement_modules.debtor_review``): underwriting decisions per debtor."""
