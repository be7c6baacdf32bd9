"""
Uniswap V3 Liquidity Mathematics

Формулы из whitepaper, в целых числах Q64.96:
- L = amount0 * (sqrt(upper) * sqrt(lower)) / (sqrt(upper) - sqrt(lower))
- L = amount1 / (sqrt(upper) - sqrt(lower))

Когда текущая цена в диапазоне:
- L = min(L0(current, upper), L1(lower, current))

Округление вниз, как в LiquidityAmounts периферии. Пул при mint
округляет внесённые суммы вверх, поэтому суммы отсюда не больше
фактически списанных.
"""

from dataclasses import dataclass

from ..errors import InvariantViolation
from .ticks import MAX_TICK, MIN_TICK, Q96

MAX_UINT256 = 2 ** 256 - 1

# Множители TickMath.getSqrtRatioAtTick для каждого бита |tick|
_TICK_RATIO_FACTORS = (
    (0x2, 0xfff97272373d413259a46990580e213a),
    (0x4, 0xfff2e50f5f656932ef12357cf3c7fdcc),
    (0x8, 0xffe5caca7e10e4e61c3624eaa0941cd0),
    (0x10, 0xffcb9843d60f6159c9db58835c926644),
    (0x20, 0xff973b41fa98c081472e6896dfb254c0),
    (0x40, 0xff2ea16466c96a3843ec78b326b52861),
    (0x80, 0xfe5dee046a99a2a811c461f1969c3053),
    (0x100, 0xfcbe86c7900a88aedcffc83b479aa3a4),
    (0x200, 0xf987a7253ac413176f2b074cf7815e54),
    (0x400, 0xf3392b0822b70005940c7a398e4b70f3),
    (0x800, 0xe7159475a2c29b7443b29c7fa6e889d9),
    (0x1000, 0xd097f3bdfd2022b8845ad8f792aa5825),
    (0x2000, 0xa9f746462d870fdf8a65dc1f90e061e5),
    (0x4000, 0x70d869a156d2a1b890bb3df62baf32f7),
    (0x8000, 0x31be135f97d08fd981231505542fcfa6),
    (0x10000, 0x9aa508b5b7a84e1c677de54f3e99bc9),
    (0x20000, 0x5d6af8dedb81196699c329225ee604),
    (0x40000, 0x2216e584f5fa1ea926041bedfe98),
    (0x80000, 0x48a170391f7dc42444e8fa2),
)


@dataclass
class LiquidityAmounts:
    """Результат расчёта количества токенов."""
    amount0: int
    amount1: int
    liquidity: int


def get_sqrt_ratio_at_tick(tick: int) -> int:
    """
    sqrtPriceX96 для тика, бит в бит как TickMath.getSqrtRatioAtTick.

    get_sqrt_ratio_at_tick(0) == 2^96,
    get_sqrt_ratio_at_tick(MIN_TICK) == MIN_SQRT_RATIO.
    """
    if not MIN_TICK <= tick <= MAX_TICK:
        raise InvariantViolation(f"Tick {tick} outside [{MIN_TICK}, {MAX_TICK}]")

    abs_tick = abs(tick)
    ratio = 0xfffcb933bd6fad37aa2d162d1a594001 if abs_tick & 0x1 else 1 << 128
    for bit, factor in _TICK_RATIO_FACTORS:
        if abs_tick & bit:
            ratio = (ratio * factor) >> 128

    if tick > 0:
        ratio = MAX_UINT256 // ratio

    # Q128.128 -> Q64.96 с округлением вверх
    return (ratio >> 32) + (1 if ratio % (1 << 32) else 0)


def _sorted(sqrt_a: int, sqrt_b: int):
    if sqrt_a > sqrt_b:
        sqrt_a, sqrt_b = sqrt_b, sqrt_a
    if sqrt_a == sqrt_b:
        raise InvariantViolation("Range bounds must differ")
    return sqrt_a, sqrt_b


def get_liquidity_for_amount0(sqrt_a: int, sqrt_b: int, amount0: int) -> int:
    """L = amount0 * (sqrt_upper * sqrt_lower) / (sqrt_upper - sqrt_lower)"""
    lower, upper = _sorted(sqrt_a, sqrt_b)
    intermediate = lower * upper // Q96
    return amount0 * intermediate // (upper - lower)


def get_liquidity_for_amount1(sqrt_a: int, sqrt_b: int, amount1: int) -> int:
    """L = amount1 / (sqrt_upper - sqrt_lower)"""
    lower, upper = _sorted(sqrt_a, sqrt_b)
    return amount1 * Q96 // (upper - lower)


def get_liquidity_for_amounts(
    sqrt_price_x96: int,
    sqrt_a: int,
    sqrt_b: int,
    amount0: int,
    amount1: int
) -> int:
    """
    Максимальная liquidity, которую дают amount0/amount1 при текущей цене.

    Три случая:
    1. current <= lower: позиция полностью в token0
    2. current >= upper: позиция полностью в token1
    3. внутри диапазона: минимум из двух (лимитирующий токен)
    """
    lower, upper = _sorted(sqrt_a, sqrt_b)
    if sqrt_price_x96 <= lower:
        return get_liquidity_for_amount0(lower, upper, amount0)
    if sqrt_price_x96 >= upper:
        return get_liquidity_for_amount1(lower, upper, amount1)
    return min(
        get_liquidity_for_amount0(sqrt_price_x96, upper, amount0),
        get_liquidity_for_amount1(lower, sqrt_price_x96, amount1),
    )


def get_amount0_for_liquidity(sqrt_a: int, sqrt_b: int, liquidity: int) -> int:
    """amount0 = L * (sqrt_upper - sqrt_lower) / (sqrt_upper * sqrt_lower)"""
    lower, upper = _sorted(sqrt_a, sqrt_b)
    return (liquidity * Q96 * (upper - lower) // upper) // lower


def get_amount1_for_liquidity(sqrt_a: int, sqrt_b: int, liquidity: int) -> int:
    """amount1 = L * (sqrt_upper - sqrt_lower)"""
    lower, upper = _sorted(sqrt_a, sqrt_b)
    return liquidity * (upper - lower) // Q96


def get_amounts_for_liquidity(
    sqrt_price_x96: int,
    sqrt_a: int,
    sqrt_b: int,
    liquidity: int
) -> LiquidityAmounts:
    """Суммы token0/token1, которые соответствуют liquidity при текущей цене."""
    lower, upper = _sorted(sqrt_a, sqrt_b)
    amount0 = amount1 = 0
    if sqrt_price_x96 <= lower:
        amount0 = get_amount0_for_liquidity(lower, upper, liquidity)
    elif sqrt_price_x96 < upper:
        amount0 = get_amount0_for_liquidity(sqrt_price_x96, upper, liquidity)
        amount1 = get_amount1_for_liquidity(lower, sqrt_price_x96, liquidity)
    else:
        amount1 = get_amount1_for_liquidity(lower, upper, liquidity)
    return LiquidityAmounts(amount0=amount0, amount1=amount1, liquidity=liquidity)


def calculate_mint_amounts(
    sqrt_price_x96: int,
    tick_lower: int,
    tick_upper: int,
    amount0_desired: int,
    amount1_desired: int
) -> LiquidityAmounts:
    """
    Что пул реально возьмёт из amount0_desired/amount1_desired.

    Лишняя часть нелимитирующего токена остаётся у подписанта, поэтому
    минимумы mint считаются от этих сумм, а не от desired.
    """
    sqrt_lower = get_sqrt_ratio_at_tick(tick_lower)
    sqrt_upper = get_sqrt_ratio_at_tick(tick_upper)
    liquidity = get_liquidity_for_amounts(
        sqrt_price_x96, sqrt_lower, sqrt_upper, amount0_desired, amount1_desired
    )
    return get_amounts_for_liquidity(sqrt_price_x96, sqrt_lower, sqrt_upper, liquidity)
