"""
Tests for the dual matching threshold (settlement_engines.tolerance).

Validates:
- tolerance(base) = max(|base| * 1%, 100,000)
- recon status MATCHED iff |difference| <= tolerance
- payment classification on the cumulative difference
"""

from decimal import Decimal

import pytest

from settlement_engines.tolerance import (
    TolerancePolicy,
    classify_difference,
    classify_payment,
)
from settlement_kernel.domain.statuses import ExceptionType, MatchStatus, ReconStatus


@pytest.fixture
def policy() -> TolerancePolicy:
    return TolerancePolicy()


class TestToleranceFor:
    def test_floor_applies_to_small_amounts(self, policy):
        assert policy.tolerance_for(Decimal("10000000")) == Decimal("100000")
        assert policy.tolerance_for(Decimal("500000")) == Decimal("100000")

    def test_relative_part_applies_to_large_amounts(self, policy):
        assert policy.tolerance_for(Decimal("50000000")) == Decimal("500000")

    def test_negative_base_uses_magnitude(self, policy):
        assert policy.tolerance_for(Decimal("-50000000")) == Decimal("500000")

    def test_relative_part_is_rounded_to_cents(self):
        policy = TolerancePolicy(absolute_floor=Decimal("0"))
        assert policy.tolerance_for(Decimal("123.45")) == Decimal("1.23")

    def test_negative_parameters_rejected(self):
        with pytest.raises(ValueError):
            TolerancePolicy(absolute_floor=Decimal("-1"))


class TestWithinAndClose:
    def test_boundary_is_inclusive(self, policy):
        base = Decimal("10000000")
        assert policy.within(Decimal("100000"), base)
        assert policy.within(Decimal("-100000"), base)
        assert not policy.within(Decimal("100000.01"), base)

    def test_close_threshold_is_absolute(self):
        policy = TolerancePolicy(close_threshold=Decimal("250"))
        assert policy.can_close(Decimal("-250"))
        assert not policy.can_close(Decimal("250.01"))


class TestClassifyDifference:
    def test_within_tolerance_is_matched(self):
        assert classify_difference(Decimal("50000"), Decimal("100000"), Decimal("9950000")) == (
            ReconStatus.MATCHED,
            ExceptionType.NONE,
        )

    def test_nothing_received_is_pending(self):
        assert classify_difference(Decimal("10000000"), Decimal("100000"), Decimal("0")) == (
            ReconStatus.PENDING,
            ExceptionType.NONE,
        )

    def test_shortfall_is_partial_under(self):
        assert classify_difference(Decimal("1000000"), Decimal("100000"), Decimal("9000000")) == (
            ReconStatus.PARTIAL,
            ExceptionType.UNDER,
        )

    def test_excess_is_overpaid(self):
        assert classify_difference(Decimal("-2000000"), Decimal("100000"), Decimal("12000000")) == (
            ReconStatus.OVERPAID,
            ExceptionType.OVER,
        )


class TestClassifyPayment:
    def test_single_payment_within_tolerance(self, policy):
        status, exc, diff = classify_payment(
            Decimal("10000000"), Decimal("0"), Decimal("9950000"), policy
        )
        assert status == MatchStatus.MATCHED
        assert exc == ExceptionType.NONE
        assert diff == Decimal("50000")

    def test_short_payment_is_partially_matched(self, policy):
        status, exc, diff = classify_payment(
            Decimal("10000000"), Decimal("0"), Decimal("9000000"), policy
        )
        assert (status, exc) == (MatchStatus.PARTIALLY_MATCHED, ExceptionType.UNDER)
        assert diff == Decimal("1000000")

    def test_second_instalment_completes_match(self, policy):
        status, exc, diff = classify_payment(
            Decimal("10000000"), Decimal("6000000"), Decimal("4000000"), policy
        )
        assert (status, exc, diff) == (MatchStatus.MATCHED, ExceptionType.NONE, Decimal("0"))

    def test_overpayment_is_matched_over(self, policy):
        status, exc, diff = classify_payment(
            Decimal("10000000"), Decimal("0"), Decimal("11000000"), policy
        )
        assert (status, exc) == (MatchStatus.MATCHED, ExceptionType.OVER)
        assert diff == Decimal("-1000000")
