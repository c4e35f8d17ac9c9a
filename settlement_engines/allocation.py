"""
Module: settlement_engines.allocation
Responsibility:
    Split one payment across the debtors behind an invoice, in proportion
    to each debtor's invoice amount, with deterministic rounding.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Conservation: the shares sum to the payment amount exactly.
    - Each share except the last is ``round_half_up(amount * w / sum(w))``;
      the last target absorbs the rounding remainder, so a replay with the
      same ordered targets yields identical shares.
    - A zero total weight degrades to an equal split.

Failure modes:
    - ValueError on an empty target list or a negative weight.

Usage:
    result = allocate_pro_rata(
        amount=Decimal("10000000"),
        targets=[ShareTarget("d1", Decimal("1")), ShareTarget("d2", Decimal("2"))],
    )
    [line.amount for line in result.lines]  # [3333333.33, 6666666.67]
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from settlement_engines.tracer import traced_engine
from settlement_kernel.domain.values import MONEY_DECIMAL_PLACES, ZERO, round_money
from settlement_kernel.logging_config import get_logger

logger = get_logger("engines.allocation")


@dataclass(frozen=True)
class ShareTarget:
    """A debtor to receive part of a payment, weighted by its invoice amount."""

    target_id: str
    weight: Decimal


@dataclass(frozen=True)
class ShareLine:
    target_id: str
    amount: Decimal


@dataclass(frozen=True)
class AllocationResult:
    amount: Decimal
    lines: tuple[ShareLine, ...]
    rounding_adjustment: Decimal

    @property
    def total_allocated(self) -> Decimal:
        return sum((line.amount for line in self.lines), ZERO)

    def share_of(self, target_id: str) -> Decimal:
        for line in self.lines:
            if line.target_id == target_id:
                return line.amount
        raise KeyError(target_id)


@traced_engine("pro_rata_allocation", "1.0", fingerprint_fields=("amount", "targets"))
def allocate_pro_rata(
    amount: Decimal,
    targets: Sequence[ShareTarget],
    decimal_places: int = MONEY_DECIMAL_PLACES,
) -> AllocationResult:
    """
    Allocate ``amount`` across ``targets`` by weight.

    Preconditions:
        - targets is non-empty and in a stable order.
        - weights are non-negative.
    Postconditions:
        - sum(line.amount) == amount.
    """
    if not targets:
        raise ValueError("At least one allocation target is required")
    if any(t.weight < ZERO for t in targets):
        raise ValueError("Allocation weights must be non-negative")

    total_weight = sum((t.weight for t in targets), ZERO)
    count = Decimal(len(targets))

    def ratio(t: ShareTarget) -> Decimal:
        if total_weight == ZERO:
            return Decimal("1") / count
        return t.weight / total_weight

    lines: list[ShareLine] = []
    allocated_so_far = ZERO
    last = len(targets) - 1
    for i, target in enumerate(targets):
        if i == last:
            share = amount - allocated_so_far
        else:
            share = round_money(amount * ratio(target), decimal_places)
            allocated_so_far += share
        lines.append(ShareLine(target_id=target.target_id, amount=share))

    naive_total = sum((round_money(amount * ratio(t), decimal_places) for t in targets), ZERO)
    result = AllocationResult(
        amount=amount,
        lines=tuple(lines),
        rounding_adjustment=amount - naive_total,
    )

    assert result.total_allocated == amount, (
        f"Allocation conservation violated: {result.total_allocated} != {amount}"
    )

    logger.info(
        "pro_rata_allocation_completed",
        extra={
            "source_amount": str(amount),
            "target_count": len(targets),
            "rounding_adjustment": str(result.rounding_adjustment),
        },
    )
    return result
