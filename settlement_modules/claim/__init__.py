"""
Claim Module (``settlement_modules.claim``).

Claims on debtors of a batch whose nota has been paid, reviewed up to the
claim nota.
"""

from settlement_modules.claim.workflows import CLAIM_STAMPS, CLAIM_WORKFLOW

__all__ = ["CLAIM_STAMPS", "CLAIM_WORKFLOW"]
