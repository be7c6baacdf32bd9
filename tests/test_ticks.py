"""
Tests for aivp_liquidity.math.ticks module.

Covers:
    - isqrt
    - encode_sqrt_price_x96 / sqrt_price_x96_to_price
    - align_tick_to_spacing
    - compute_tick_range
"""

import math
from decimal import Decimal
from fractions import Fraction

import pytest

from aivp_liquidity.errors import InvariantViolation
from aivp_liquidity.math.ticks import (
    Q96,
    MIN_TICK,
    MAX_TICK,
    MIN_SQRT_RATIO,
    MAX_SQRT_RATIO,
    TickRange,
    isqrt,
    to_fraction,
    encode_sqrt_price_x96,
    sqrt_price_x96_to_price,
    tick_to_price,
    align_tick_to_spacing,
    compute_tick_range,
)


# ===================================================================
# isqrt
# ===================================================================
class TestIsqrt:
    """Tests for isqrt (Newton iteration)."""

    @pytest.mark.parametrize("value", [0, 1, 2, 3, 4, 15, 16, 17, 99, 100, 10**6 + 1])
    def test_small_values_match_stdlib(self, value):
        assert isqrt(value) == math.isqrt(value)

    def test_large_values_match_stdlib(self):
        for value in (2**192, 2**192 - 1, 3000 << 192, 10**60 + 7, 2**320 + 12345):
            assert isqrt(value) == math.isqrt(value)

    def test_floor_property(self):
        """r*r <= v < (r+1)^2."""
        for value in (5, 1 << 100, (1 << 191) + 3, 123456789 ** 3):
            r = isqrt(value)
            assert r * r <= value < (r + 1) * (r + 1)

    def test_negative_raises(self):
        with pytest.raises(InvariantViolation):
            isqrt(-1)


# ===================================================================
# to_fraction
# ===================================================================
class TestToFraction:
    """Точное приведение цены."""

    def test_int(self):
        assert to_fraction(3000) == Fraction(3000)

    def test_decimal_string(self):
        assert to_fraction("0.3") == Fraction(3, 10)

    def test_decimal(self):
        assert to_fraction(Decimal("2.5")) == Fraction(5, 2)

    def test_fraction_passthrough(self):
        f = Fraction(1, 3)
        assert to_fraction(f) is f

    def test_float_rejected(self):
        """float искажает цену - запрещён."""
        with pytest.raises(InvariantViolation):
            to_fraction(0.1)

    def test_bool_rejected(self):
        with pytest.raises(InvariantViolation):
            to_fraction(True)

    @pytest.mark.parametrize("bad", ["abc", "", "NaN"])
    def test_invalid_string(self, bad):
        with pytest.raises(InvariantViolation):
            to_fraction(bad)


# ===================================================================
# encode_sqrt_price_x96
# ===================================================================
class TestEncodeSqrtPriceX96:
    """Tests for encode_sqrt_price_x96(decimals0, decimals1, price_ratio)."""

    def test_price_3000_equal_decimals(self):
        """1 WETH = 3000 TREATS: ровно isqrt(3000 << 192)."""
        assert encode_sqrt_price_x96(18, 18, 3000) == math.isqrt(3000 << 192)

    def test_price_one_is_q96(self):
        assert encode_sqrt_price_x96(18, 18, 1) == Q96

    def test_price_four_is_two_q96(self):
        assert encode_sqrt_price_x96(18, 18, 4) == 2 * Q96

    def test_fraction_price(self):
        """price = 1/4 -> sqrt = 1/2 -> Q96 / 2."""
        assert encode_sqrt_price_x96(18, 18, Fraction(1, 4)) == Q96 // 2

    def test_string_and_fraction_agree(self):
        assert encode_sqrt_price_x96(18, 18, "0.25") == encode_sqrt_price_x96(18, 18, Fraction(1, 4))

    def test_decimals_adjustment(self):
        """USDC(6)/WETH(18): price 1/3000 WETH за USDC в сырых единицах."""
        result = encode_sqrt_price_x96(6, 18, Fraction(1, 3000))
        expected_q192 = (10**18 << 192) // (3000 * 10**6)
        assert result == math.isqrt(expected_q192)

    @pytest.mark.parametrize("ratio", [1, 7, 3000, Fraction(22, 7), Fraction(1, 1000), "123.456"])
    def test_floor_sqrt_property(self, ratio):
        """r*r <= ratioQ192 < (r+1)^2 для любых положительных рациональных."""
        f = to_fraction(ratio)
        ratio_q192 = (f.numerator * 10**18 << 192) // (f.denominator * 10**18)
        r = encode_sqrt_price_x96(18, 18, ratio)
        assert r * r <= ratio_q192 < (r + 1) * (r + 1)

    def test_monotonic(self):
        """Большая цена -> больший sqrtPriceX96."""
        assert encode_sqrt_price_x96(18, 18, 2999) < encode_sqrt_price_x96(18, 18, 3000)

    @pytest.mark.parametrize("ratio", [0, -1, Fraction(-1, 2), "0"])
    def test_non_positive_ratio_raises(self, ratio):
        with pytest.raises(InvariantViolation):
            encode_sqrt_price_x96(18, 18, ratio)

    def test_float_ratio_raises(self):
        with pytest.raises(InvariantViolation):
            encode_sqrt_price_x96(18, 18, 3000.0)

    def test_negative_decimals_raises(self):
        with pytest.raises(InvariantViolation):
            encode_sqrt_price_x96(-1, 18, 1)

    def test_below_min_sqrt_ratio_raises(self):
        """Слишком маленькая цена: пул отклонит initialize."""
        with pytest.raises(InvariantViolation):
            encode_sqrt_price_x96(0, 0, Fraction(1, 2**130))

    def test_above_max_sqrt_ratio_raises(self):
        with pytest.raises(InvariantViolation):
            encode_sqrt_price_x96(0, 0, 2**130)

    def test_result_within_pool_bounds(self):
        r = encode_sqrt_price_x96(18, 6, 3000)
        assert MIN_SQRT_RATIO <= r < MAX_SQRT_RATIO


# ===================================================================
# sqrt_price_x96_to_price
# ===================================================================
class TestSqrtPriceX96ToPrice:
    """Обратная конвертация для вывода цены."""

    def test_q96_is_price_one(self):
        assert sqrt_price_x96_to_price(Q96) == 1

    def test_two_q96_is_price_four(self):
        assert sqrt_price_x96_to_price(2 * Q96) == 4

    def test_decimals_adjustment(self):
        """Сырая цена 1 при decimals 6/18 -> 10^-12 в человеческих единицах."""
        assert sqrt_price_x96_to_price(Q96, 6, 18) == Fraction(1, 10**12)

    def test_close_to_encoded_price(self):
        price = sqrt_price_x96_to_price(encode_sqrt_price_x96(18, 18, 3000))
        assert abs(float(price) - 3000) < 1e-9


class TestTickToPrice:
    def test_tick_zero(self):
        assert tick_to_price(0) == 1.0

    def test_tick_one(self):
        assert tick_to_price(1) == pytest.approx(1.0001)


# ===================================================================
# align_tick_to_spacing
# ===================================================================
class TestAlignTickToSpacing:
    """Floor-выравнивание к tick spacing."""

    def test_negative_tick_floors_toward_minus_infinity(self):
        assert align_tick_to_spacing(-130, 60) == -180

    def test_positive_tick(self):
        assert align_tick_to_spacing(130, 60) == 120

    def test_already_aligned(self):
        assert align_tick_to_spacing(120, 60) == 120
        assert align_tick_to_spacing(-120, 60) == -120

    def test_zero(self):
        assert align_tick_to_spacing(0, 60) == 0

    def test_spacing_one_is_identity(self):
        assert align_tick_to_spacing(-12345, 1) == -12345

    @pytest.mark.parametrize("tick", [-887272, -6932, -61, -1, 0, 1, 59, 61, 6932, 887272])
    @pytest.mark.parametrize("spacing", [1, 10, 60, 200])
    def test_result_is_multiple_and_not_above_tick(self, tick, spacing):
        aligned = align_tick_to_spacing(tick, spacing)
        assert aligned % spacing == 0
        assert aligned <= tick < aligned + spacing

    @pytest.mark.parametrize("tick", [-130, -1, 0, 59, 887000])
    def test_idempotent(self, tick):
        once = align_tick_to_spacing(tick, 60)
        assert align_tick_to_spacing(once, 60) == once

    @pytest.mark.parametrize("spacing", [0, -60])
    def test_non_positive_spacing_raises(self, spacing):
        with pytest.raises(InvariantViolation):
            align_tick_to_spacing(100, spacing)


# ===================================================================
# compute_tick_range
# ===================================================================
class TestComputeTickRange:
    """Симметричный диапазон вокруг выровненного тика."""

    def test_negative_center(self):
        assert compute_tick_range(-130, 60, 2) == TickRange(lower=-300, upper=-60)

    def test_zero_center(self):
        assert compute_tick_range(0, 60, 1) == TickRange(lower=-60, upper=60)

    @pytest.mark.parametrize("center", [-100_000, -130, 0, 7, 200_001])
    @pytest.mark.parametrize("spacing", [10, 60, 200])
    @pytest.mark.parametrize("width", [1, 2, 10])
    def test_range_invariants(self, center, spacing, width):
        r = compute_tick_range(center, spacing, width)
        assert r.lower < r.upper
        assert r.lower % spacing == 0
        assert r.upper % spacing == 0
        aligned = align_tick_to_spacing(center, spacing)
        assert aligned - r.lower == r.upper - aligned == width * spacing
        assert r.width() == 2 * width * spacing

    def test_range_contains_center(self):
        r = compute_tick_range(-130, 60, 2)
        assert r.contains(-130)
        assert not r.contains(-60)

    @pytest.mark.parametrize("width", [0, -1])
    def test_non_positive_width_raises(self, width):
        with pytest.raises(InvariantViolation):
            compute_tick_range(0, 60, width)

    def test_upper_beyond_max_tick_raises(self):
        with pytest.raises(InvariantViolation):
            compute_tick_range(MAX_TICK - 100, 60, 10)

    def test_lower_beyond_min_tick_raises(self):
        with pytest.raises(InvariantViolation):
            compute_tick_range(MIN_TICK + 100, 60, 10)
