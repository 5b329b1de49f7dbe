"""
Unit tests for Money and Currency.

Verifies:
- Decimal-only construction (float prohibition)
- Currency validation and precision
- Arithmetic, comparison and currency mixing rules
- Rounding determinism
"""

import pytest
from decimal import Decimal

from fleet_kernel.domain.values import Currency, Money, sum_money


class TestMoneyConstruction:
    """Tests for building Money values."""

    def test_of_defaults_to_brl(self):
        """Money.of without a currency is in reais."""
        m = Money.of("100.50")
        assert m.amount == Decimal("100.50")
        assert m.currency == Currency("BRL")

    def test_float_is_rejected(self):
        """Floats never enter a monetary amount."""
        with pytest.raises(TypeError):
            Money.of(100.5)

    def test_int_and_str_accepted(self):
        assert Money.of(100).amount == Decimal("100")
        assert Money.of("0.001").amount == Decimal("0.001")

    def test_invalid_string_raises(self):
        with pytest.raises(ValueError):
            Money.of("not a number")

    def test_unknown_currency_raises(self):
        with pytest.raises(ValueError):
            Money.of("1", "XXX")

    def test_currency_code_is_normalized(self):
        assert Money.of("1", " usd ").currency.code == "USD"

    def test_zero(self):
        zero = Money.zero()
        assert zero.is_zero
        assert not zero.is_positive
        assert not zero.is_negative

    def test_fractional_cents_preserved(self):
        """No implicit rounding on construction."""
        assert Money.of("10.005").amount == Decimal("10.005")


class TestMoneyArithmetic:
    """Tests for arithmetic on Money."""

    def test_add_and_subtract(self):
        a = Money.of("100.00")
        b = Money.of("30.25")
        assert a + b == Money.of("130.25")
        assert a - b == Money.of("69.75")

    def test_signed_results(self):
        """Reserve balances may go negative."""
        result = Money.of("10") - Money.of("25")
        assert result.is_negative
        assert abs(result) == Money.of("15")
        assert -result == Money.of("15")

    def test_mixed_currency_addition_raises(self):
        with pytest.raises(ValueError):
            Money.of("1", "BRL") + Money.of("1", "USD")

    def test_mixed_currency_comparison_raises(self):
        with pytest.raises(ValueError):
            Money.of("1", "BRL") < Money.of("1", "USD")

    def test_scalar_multiplication(self):
        assert Money.of("100") * Decimal("1.1") == Money.of("110.0")
        assert 2 * Money.of("100") == Money.of("200")

    def test_float_multiplier_rejected(self):
        with pytest.raises(TypeError):
            Money.of("100") * 1.1

    def test_division(self):
        assert Money.of("100") / 4 == Money.of("25")

    def test_ratio_to(self):
        assert Money.of("50").ratio_to(Money.of("200")) == Decimal("0.25")

    def test_ratio_to_zero_raises(self):
        with pytest.raises(ZeroDivisionError):
            Money.of("50").ratio_to(Money.zero())

    def test_comparisons(self):
        assert Money.of("199999.99") < Money.of("200000")
        assert Money.of("200000") <= Money.of("200000.00")
        assert Money.of("220000") >= Money.of("220000")


class TestMoneyRounding:
    """Rounding is always ROUND_HALF_UP to the currency's precision."""

    def test_round_half_up(self):
        assert Money.of("10.555").round() == Money.of("10.56")
        assert Money.of("10.554").round() == Money.of("10.55")

    def test_round_negative_half_up(self):
        """Half-up rounds away from zero."""
        assert Money.of("-10.555").round() == Money.of("-10.56")

    def test_zero_decimal_currency(self):
        assert Money.of("1000.5", "JPY").round() == Money.of("1001", "JPY")

    def test_three_decimal_currency(self):
        assert Money.of("1.2345", "KWD").round().amount == Decimal("1.235")

    def test_rounding_is_deterministic(self):
        values = {Money.of("1234.5650").round() for _ in range(100)}
        assert values == {Money.of("1234.57")}


class TestSumMoney:
    def test_sum_of_empty_is_zero(self):
        assert sum_money([]) == Money.zero("BRL")

    def test_sum(self):
        total = sum_money([Money.of("333.33"), Money.of("333.33"), Money.of("333.34")])
        assert total == Money.of("1000.00")

    def test_sum_in_other_currency(self):
        assert sum_money([Money.of("1", "USD")], "USD") == Money.of("1", "USD")

    def test_str(self):
        assert str(Money.of("10.50")) == "10.50 BRL"
