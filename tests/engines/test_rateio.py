"""
Tests for RateioEngine.

Covers:
- Automatic split by ownership share, residual absorption
- Equal split fallback
- Manual split validation: tolerance, empty entries, duplicates
- Error payloads
"""

import pytest
from decimal import Decimal

from fleet_kernel.domain.values import Money
from fleet_kernel.exceptions import (
    RateioDuplicateMemberError,
    RateioEmptyEntryError,
    RateioNoParticipantsError,
    RateioSumMismatchError,
)
from fleet_engines.rateio import (
    MemberAllocation,
    MemberShare,
    RateioEngine,
    SplitMode,
)


def shares(*pairs):
    return [MemberShare(member, Decimal(str(pct))) for member, pct in pairs]


def manual(*pairs, currency="BRL"):
    return [MemberAllocation(member, Money.of(amount, currency)) for member, amount in pairs]


class TestAutomaticSplit:
    """Split by ownership share; the first member absorbs the residual."""

    def setup_method(self):
        self.engine = RateioEngine()

    def test_exact_split(self):
        split = self.engine.split_automatic(
            Money.of("1000.00"), shares(("A", 50), ("B", 30), ("C", 20))
        )
        assert split.mode is SplitMode.AUTOMATIC
        assert split.amount_for("A") == Money.of("500.00")
        assert split.amount_for("B") == Money.of("300.00")
        assert split.amount_for("C") == Money.of("200.00")
        assert split.allocated == split.total
        assert split.rounding_adjustment.is_zero

    def test_first_member_absorbs_residual(self):
        """100.00 over three equal shares: 33.34 / 33.33 / 33.33."""
        split = self.engine.split_automatic(
            Money.of("100.00"), shares(("A", 1), ("B", 1), ("C", 1))
        )
        assert [a.amount for a in split.allocations] == [
            Money.of("33.34"),
            Money.of("33.33"),
            Money.of("33.33"),
        ]
        assert split.rounding_adjustment == Money.of("0.01")
        assert split.allocated == Money.of("100.00")

    def test_shares_are_relative_weights(self):
        """Shares that do not sum to 100 are normalized."""
        split = self.engine.split_automatic(Money.of("10.00"), shares(("A", 1), ("B", 3)))
        assert split.amount_for("A") == Money.of("2.50")
        assert split.amount_for("B") == Money.of("7.50")

    def test_shares_of_100_multiply_directly(self):
        split = self.engine.split_automatic(
            Money.of("777.77"), shares(("A", "33.33"), ("B", "33.33"), ("C", "33.34"))
        )
        assert split.amount_for("B") == Money.of("259.23")
        assert split.amount_for("C") == Money.of("259.31")
        assert split.allocated == Money.of("777.77")

    def test_zero_share_member_gets_zero_line(self):
        split = self.engine.split_automatic(Money.of("90.00"), shares(("A", 100), ("B", 0)))
        assert split.amount_for("B") == Money.of("0.00")
        assert split.member_count == 2

    def test_first_member_never_credited_on_tiny_totals(self):
        """0.05 over 10/30/30/30: half-up would give 0.02 x 3 and leave A at -0.01."""
        split = self.engine.split_automatic(
            Money.of("0.05"), shares(("A", 10), ("B", 30), ("C", 30), ("D", 30))
        )
        assert [a.amount for a in split.allocations] == [
            Money.of("0.02"),
            Money.of("0.01"),
            Money.of("0.01"),
            Money.of("0.01"),
        ]
        assert not split.allocations[0].amount.is_negative
        assert split.allocated == Money.of("0.05")
        assert split.rounding_adjustment == Money.of("0.01")

    def test_zero_total(self):
        split = self.engine.split_automatic(Money.zero(), shares(("A", 60), ("B", 40)))
        assert all(a.amount.is_zero for a in split.allocations)

    def test_preserves_input_order(self):
        split = self.engine.split_automatic(
            Money.of("300"), shares(("Z", 1), ("A", 1), ("M", 1))
        )
        assert [a.member_id for a in split.allocations] == ["Z", "A", "M"]

    def test_no_shares_rejected(self):
        with pytest.raises(RateioNoParticipantsError) as exc_info:
            self.engine.split_automatic(Money.of("100"), [])
        assert exc_info.value.code == "RATEIO_NO_PARTICIPANTS"

    def test_zero_sum_shares_rejected(self):
        with pytest.raises(RateioNoParticipantsError):
            self.engine.split_automatic(Money.of("100"), shares(("A", 0), ("B", 0)))

    def test_duplicate_member_rejected(self):
        with pytest.raises(RateioDuplicateMemberError) as exc_info:
            self.engine.split_automatic(Money.of("100"), shares(("A", 50), ("A", 50)))
        assert exc_info.value.member_id == "A"

    def test_negative_total_rejected(self):
        with pytest.raises(ValueError):
            self.engine.split_automatic(Money.of("-1"), shares(("A", 100)))

    def test_negative_share_rejected(self):
        with pytest.raises(ValueError):
            MemberShare("A", Decimal("-1"))

    def test_float_share_rejected(self):
        with pytest.raises(TypeError):
            MemberShare("A", 50.0)

    def test_other_currency_uses_its_precision(self):
        split = self.engine.split_automatic(
            Money.of("100", "JPY"), shares(("A", 1), ("B", 1), ("C", 1))
        )
        assert [a.amount.amount for a in split.allocations] == [
            Decimal("34"),
            Decimal("33"),
            Decimal("33"),
        ]


class TestEqualSplit:
    def setup_method(self):
        self.engine = RateioEngine()

    def test_equal_split(self):
        split = self.engine.split_equal(Money.of("100.00"), ["A", "B", "C"])
        assert split.allocated == Money.of("100.00")
        assert split.amount_for("A") == Money.of("33.34")

    def test_no_members(self):
        with pytest.raises(RateioNoParticipantsError):
            self.engine.split_equal(Money.of("100.00"), [])


class TestManualValidation:
    """Manual splits are accepted iff every entry is valid and |sum - total| <= 0.01."""

    def setup_method(self):
        self.engine = RateioEngine()

    def test_thirds_validate(self):
        entries = manual(("A", "333.33"), ("B", "333.33"), ("C", "333.34"))
        split = self.engine.validate_manual(Money.of("1000.00"), entries)
        assert split.mode is SplitMode.MANUAL
        assert split.allocations == tuple(entries)
        assert split.difference.is_zero

    def test_within_tolerance(self):
        split = self.engine.validate_manual(
            Money.of("1000.00"), manual(("A", "500.00"), ("B", "499.99"))
        )
        assert split.difference == Money.of("0.01")

    def test_just_outside_tolerance(self):
        with pytest.raises(RateioSumMismatchError):
            self.engine.validate_manual(
                Money.of("1000.00"), manual(("A", "500.00"), ("B", "499.98"))
            )

    def test_over_allocation_within_tolerance(self):
        self.engine.validate_manual(Money.of("1000.00"), manual(("A", "500.01"), ("B", "500.00")))

    def test_mismatch_carries_difference(self):
        """500 + 400 against 1000 fails with a difference of 100.00."""
        with pytest.raises(RateioSumMismatchError) as exc_info:
            self.engine.validate_manual(Money.of("1000.00"), manual(("A", "500"), ("B", "400")))
        err = exc_info.value
        assert err.code == "RATEIO_SUM_MISMATCH"
        assert err.total == Decimal("1000.00")
        assert err.allocated == Decimal("900")
        assert err.difference == Decimal("100.00")

    def test_zero_entry_rejected(self):
        with pytest.raises(RateioEmptyEntryError) as exc_info:
            self.engine.validate_manual(Money.of("100"), manual(("A", "100"), ("B", "0")))
        assert exc_info.value.member_id == "B"

    def test_negative_entry_rejected(self):
        with pytest.raises(RateioEmptyEntryError):
            self.engine.validate_manual(Money.of("100"), manual(("A", "150"), ("B", "-50")))

    def test_entry_checks_precede_sum(self):
        """An empty entry is reported even when the sum is also wrong."""
        with pytest.raises(RateioEmptyEntryError):
            self.engine.validate_manual(Money.of("100"), manual(("A", "0")))

    def test_duplicate_member(self):
        with pytest.raises(RateioDuplicateMemberError):
            self.engine.validate_manual(Money.of("100"), manual(("A", "50"), ("A", "50")))

    def test_currency_mismatch(self):
        with pytest.raises(ValueError):
            self.engine.validate_manual(Money.of("100"), manual(("A", "100"), currency="USD"))

    def test_configured_tolerance(self):
        engine = RateioEngine(tolerance=Decimal("1.00"))
        split = engine.validate_manual(Money.of("100"), manual(("A", "99.00")))
        assert split.difference == Money.of("1.00")

    def test_mismatch_is_logged(self, captured_logs):
        with pytest.raises(RateioSumMismatchError):
            self.engine.validate_manual(Money.of("1000"), manual(("A", "1")))
        records = [r for r in captured_logs() if r["message"] == "rateio_sum_mismatch"]
        assert records[0]["level"] == "WARNING"
        assert records[0]["difference"] == "999"
