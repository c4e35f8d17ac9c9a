"""
Module: settlement_kernel.db.types
Responsibility: Annotated column aliases for settlement amounts, currency
    codes and status strings.
Architecture position: Kernel > DB.  May be imported by models/ and
    services/.  Engines use settlement_kernel.domain.values instead.
"""

from decimal import Decimal
from typing import Annotated

from sqlalchemy import Numeric, String

from settlement_kernel.domain.values import MONEY_DECIMAL_PLACES

Money = Annotated[Decimal, Numeric(38, MONEY_DECIMAL_PLACES)]

Currency = Annotated[str, String(3)]

# Status strings are short enum values stored verbatim
StatusCode = Annotated[str, String(32)]

BusinessKey = Annotated[str, String(120)]

LongText = Annotated[str, String(4000)]
