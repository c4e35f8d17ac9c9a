"""
Values -- Decimal money helpers shared by engines, services and models.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Engines depend on
    this module instead of the DB layer.

Invariants enforced:
    - No floats.  Amounts are Decimal with MONEY_DECIMAL_PLACES places.
    - round_money() uses ROUND_HALF_UP everywhere, so a share computed in
      the allocation engine and a total computed in a cascade agree.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Any

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP
ZERO = Decimal("0")


def to_decimal(value: Any) -> Decimal:
    """Coerce int/str/Decimal to Decimal.  Floats go through str() first."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value.

    Example:
        round_money(Decimal("3333333.335")) -> Decimal("3333333.34")
    """
    quantizer = Decimal(10) ** -decimal_places
    return to_decimal(value).quantize(quantizer, rounding=rounding)
