"""Payment Intent Module (``settlement_modules.payment_intent``): planned payments."""

from settlement_modules.payment_intent.workflows import INTENT_STAMPS, PAYMENT_INTENT_WORKFLOW

__all__ = ["INTENT_STAMPS", "PAYMENT_INTENT_WORKFLOW"]
