"""
Tests for aivp_liquidity.math.amounts: parse_units, format_units, apply_slippage.
"""

from decimal import Decimal

import pytest

from aivp_liquidity.errors import InvariantViolation
from aivp_liquidity.math.amounts import (
    BPS_DENOMINATOR,
    MAX_UINT128,
    apply_slippage,
    format_units,
    parse_units,
)


class TestParseUnits:
    """Человеческие суммы -> минимальные единицы."""

    def test_fractional_18_decimals(self):
        assert parse_units("0.3", 18) == 3 * 10**17

    def test_integer_string(self):
        assert parse_units("1000", 18) == 1000 * 10**18

    def test_int_input(self):
        assert parse_units(5, 6) == 5_000_000

    def test_decimal_input(self):
        assert parse_units(Decimal("1.5"), 6) == 1_500_000

    def test_zero_decimals(self):
        assert parse_units("42", 0) == 42

    def test_large_amount_is_exact(self):
        """Без потери точности на больших числах."""
        assert parse_units("123456789012345678.123456789012345678", 18) == \
            123456789012345678123456789012345678

    def test_too_many_decimals_raises(self):
        """USDC (6 decimals) не может принять 7 знаков."""
        with pytest.raises(InvariantViolation):
            parse_units("0.0000001", 6)

    def test_negative_raises(self):
        with pytest.raises(InvariantViolation):
            parse_units("-1", 18)

    def test_float_rejected(self):
        with pytest.raises(InvariantViolation):
            parse_units(0.3, 18)

    @pytest.mark.parametrize("bad", ["abc", "Infinity", "NaN"])
    def test_invalid_raises(self, bad):
        with pytest.raises(InvariantViolation):
            parse_units(bad, 18)


class TestFormatUnits:
    """Минимальные единицы -> строка."""

    def test_fractional(self):
        assert format_units(3 * 10**17, 18) == "0.3"

    def test_whole(self):
        assert format_units(1000 * 10**18, 18) == "1000"

    def test_six_decimals(self):
        assert format_units(1_500_000, 6) == "1.5"

    def test_zero(self):
        assert format_units(0, 18) == "0"

    def test_smallest_unit_no_exponent(self):
        assert format_units(1, 18) == "0.000000000000000001"

    def test_parse_format_inverse(self):
        for text in ("0.3", "1", "123.000456"):
            assert format_units(parse_units(text, 18), 18) == text


class TestApplySlippage:
    """Минимум с учётом допуска в bps."""

    def test_half_percent(self):
        assert apply_slippage(1000, 50) == 995

    def test_rounds_down(self):
        assert apply_slippage(999, 50) == 994

    def test_zero_tolerance_keeps_amount(self):
        assert apply_slippage(1000, 0) == 1000

    def test_full_tolerance_gives_zero(self):
        assert apply_slippage(1000, BPS_DENOMINATOR) == 0

    def test_large_amount_exact(self):
        assert apply_slippage(MAX_UINT128, 100) == MAX_UINT128 * 9900 // 10000

    @pytest.mark.parametrize("bps", [-1, BPS_DENOMINATOR + 1])
    def test_out_of_range_bps_raises(self, bps):
        with pytest.raises(InvariantViolation):
            apply_slippage(1000, bps)

    def test_negative_amount_raises(self):
        with pytest.raises(InvariantViolation):
            apply_slippage(-5, 50)
