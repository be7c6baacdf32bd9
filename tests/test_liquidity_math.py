"""
Tests for aivp_liquidity.math.liquidity module.

Covers:
    - get_sqrt_ratio_at_tick
    - get_liquidity_for_amounts (below / inside / above range)
    - get_amounts_for_liquidity
    - calculate_mint_amounts
"""

import pytest

from aivp_liquidity.errors import InvariantViolation
from aivp_liquidity.math.liquidity import (
    calculate_mint_amounts,
    get_amounts_for_liquidity,
    get_liquidity_for_amounts,
    get_sqrt_ratio_at_tick,
)
from aivp_liquidity.math.ticks import (
    Q96,
    MIN_TICK,
    MAX_TICK,
    MIN_SQRT_RATIO,
    MAX_SQRT_RATIO,
    isqrt,
)


# ===================================================================
# get_sqrt_ratio_at_tick
# ===================================================================
class TestSqrtRatioAtTick:
    """Tests for get_sqrt_ratio_at_tick (TickMath)."""

    def test_tick_zero(self):
        assert get_sqrt_ratio_at_tick(0) == Q96

    def test_bounds_match_pool_constants(self):
        assert get_sqrt_ratio_at_tick(MIN_TICK) == MIN_SQRT_RATIO
        assert get_sqrt_ratio_at_tick(MAX_TICK) == MAX_SQRT_RATIO

    def test_tick_one(self):
        """sqrt(1.0001) * 2^96 с точностью TickMath."""
        exact = isqrt(Q96 * Q96 * 10001 // 10000)
        assert abs(get_sqrt_ratio_at_tick(1) - exact) <= 10**10

    def test_monotonic(self):
        ticks = [-887272, -60000, -130, -1, 0, 1, 60, 60000, 887272]
        ratios = [get_sqrt_ratio_at_tick(t) for t in ticks]
        assert ratios == sorted(ratios)
        assert len(set(ratios)) == len(ratios)

    @pytest.mark.parametrize("tick", [MIN_TICK - 1, MAX_TICK + 1])
    def test_out_of_range(self, tick):
        with pytest.raises(InvariantViolation):
            get_sqrt_ratio_at_tick(tick)


# ===================================================================
# Liquidity <-> amounts
# ===================================================================
class TestLiquidityForAmounts:
    """Три положения цены относительно диапазона."""

    LOWER = get_sqrt_ratio_at_tick(-120)
    UPPER = get_sqrt_ratio_at_tick(120)

    def test_price_below_range_only_token0(self):
        price = get_sqrt_ratio_at_tick(-600)
        liquidity = get_liquidity_for_amounts(price, self.LOWER, self.UPPER, 10**18, 0)

        amounts = get_amounts_for_liquidity(price, self.LOWER, self.UPPER, liquidity)

        assert liquidity > 0
        assert amounts.amount1 == 0
        assert 10**18 - 1_000 <= amounts.amount0 <= 10**18

    def test_price_above_range_only_token1(self):
        price = get_sqrt_ratio_at_tick(600)
        liquidity = get_liquidity_for_amounts(price, self.LOWER, self.UPPER, 10**18, 5 * 10**18)

        amounts = get_amounts_for_liquidity(price, self.LOWER, self.UPPER, liquidity)

        assert amounts.amount0 == 0
        assert 5 * 10**18 - 1_000 <= amounts.amount1 <= 5 * 10**18

    def test_in_range_limited_by_scarce_token(self):
        """Цена 1:1 в симметричном диапазоне: лишний token1 не используется."""
        liquidity = get_liquidity_for_amounts(Q96, self.LOWER, self.UPPER, 10**18, 3 * 10**18)
        only_token0 = get_liquidity_for_amounts(Q96, self.LOWER, self.UPPER, 10**18, 10**30)

        assert liquidity == only_token0

    def test_bounds_order_irrelevant(self):
        assert (
            get_liquidity_for_amounts(Q96, self.UPPER, self.LOWER, 10**18, 10**18)
            == get_liquidity_for_amounts(Q96, self.LOWER, self.UPPER, 10**18, 10**18)
        )

    def test_equal_bounds_rejected(self):
        with pytest.raises(InvariantViolation):
            get_liquidity_for_amounts(Q96, self.LOWER, self.LOWER, 1, 1)


# ===================================================================
# calculate_mint_amounts
# ===================================================================
class TestCalculateMintAmounts:
    """Что пул реально возьмёт при mint."""

    def test_never_exceeds_desired(self):
        result = calculate_mint_amounts(get_sqrt_ratio_at_tick(-130), -240, -120, 10**18, 3000 * 10**18)

        assert result.liquidity > 0
        assert result.amount0 <= 10**18
        assert result.amount1 <= 3000 * 10**18

    def test_off_ratio_amounts_trimmed(self):
        """Цена 1:1, desired (1, 3): берётся ~1 каждого токена."""
        result = calculate_mint_amounts(Q96, -120, 120, 10**18, 3 * 10**18)

        assert 10**18 - 1_000 <= result.amount0 <= 10**18
        assert abs(result.amount1 - 10**18) <= 10**6

    def test_single_sided_zero_liquidity(self):
        """Цена внутри диапазона, есть только token1: liquidity 0, ничего не вносится."""
        result = calculate_mint_amounts(Q96, -120, 120, 0, 10**18)

        assert result.liquidity == 0
        assert (result.amount0, result.amount1) == (0, 0)
