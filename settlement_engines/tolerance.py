"""
Module: settlement_engines.tolerance
Responsibility:
    The dual matching threshold used everywhere a payment is compared with an
    expected amount, and the classification of a difference into a
    reconciliation status and exception type.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - tolerance(base) = max(|base| * relative_percent / 100, absolute_floor).
      The floor stops tiny notas raising exceptions for bank charges; the
      relative part stops large notas matching on a sizeable shortfall.
    - A difference is MATCHED iff |difference| <= tolerance(base).
    - Closing an item uses a separate absolute threshold (close_threshold).

Usage:
    policy = TolerancePolicy()
    policy.tolerance_for(Decimal("10000000"))    # Decimal("100000")
    policy.within(Decimal("50000"), Decimal("10000000"))  # True
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from settlement_kernel.domain.statuses import ExceptionType, MatchStatus, ReconStatus
from settlement_kernel.domain.values import ZERO, round_money

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class TolerancePolicy:
    """Relative-or-absolute tolerance, whichever is larger."""

    relative_percent: Decimal = Decimal("1")
    absolute_floor: Decimal = Decimal("100000")
    close_threshold: Decimal = Decimal("100000")

    def __post_init__(self) -> None:
        if self.relative_percent < ZERO or self.absolute_floor < ZERO or self.close_threshold < ZERO:
            raise ValueError("Tolerance parameters must be non-negative")

    def tolerance_for(self, base: Decimal) -> Decimal:
        relative = round_money(abs(base) * self.relative_percent / HUNDRED)
        return max(relative, self.absolute_floor)

    def within(self, difference: Decimal, base: Decimal) -> bool:
        return abs(difference) <= self.tolerance_for(base)

    def can_close(self, difference: Decimal) -> bool:
        return abs(difference) <= self.close_threshold


def classify_difference(
    difference: Decimal,
    tolerance: Decimal,
    received: Decimal,
) -> tuple[ReconStatus, ExceptionType]:
    """
    Reconciliation status for ``difference = expected - received``.

    - |difference| <= tolerance      -> MATCHED / NONE
    - nothing received yet           -> PENDING / NONE
    - difference > tolerance         -> PARTIAL / UNDER
    - difference < -tolerance        -> OVERPAID / OVER
    """
    if abs(difference) <= tolerance:
        return ReconStatus.MATCHED, ExceptionType.NONE
    if received == ZERO:
        return ReconStatus.PENDING, ExceptionType.NONE
    if difference > ZERO:
        return ReconStatus.PARTIAL, ExceptionType.UNDER
    return ReconStatus.OVERPAID, ExceptionType.OVER


def classify_payment(
    expected: Decimal,
    previously_received: Decimal,
    amount: Decimal,
    policy: TolerancePolicy,
) -> tuple[MatchStatus, ExceptionType, Decimal]:
    """
    Match status of a newly recorded payment, judged on the cumulative
    difference after it is applied.

    Returns:
        (match_status, exception_type, cumulative_difference)
    """
    difference = expected - (previously_received + amount)
    if policy.within(difference, expected):
        return MatchStatus.MATCHED, ExceptionType.NONE, difference
    if difference > ZERO:
        return MatchStatus.PARTIALLY_MATCHED, ExceptionType.UNDER, difference
    return MatchStatus.MATCHED, ExceptionType.OVER, difference
