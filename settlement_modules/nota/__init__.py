"""
Nota Module (``settlement_modules.nota``).

The billing instrument of a batch or claim.  Draft -> Issued -> Confirmed
-> Paid; the amount freezes on issue.
"""

from settlement_modules.nota.workflows import NOTA_STAMPS, NOTA_WORKFLOW

__all__ = ["NOTA_STAMPS", "NOTA_WORKFLOW"]
