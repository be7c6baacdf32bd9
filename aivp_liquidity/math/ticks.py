"""
Uniswap V3 Tick Mathematics

Основные формулы:
- price(i) = 1.0001^i
- sqrtPriceX96 = sqrt(price) * 2^96

Все вычисления, которые уходят в транзакции (sqrtPriceX96, тики),
выполняются в целых числах. float используется только для вывода цены.

Tick spacing зависит от fee tier и читается из пула (tickSpacing()),
например fee 3000 -> spacing 60 в Uniswap V3.
"""

from dataclasses import dataclass
from decimal import Decimal
from fractions import Fraction
from typing import Union

from ..errors import InvariantViolation

# Константы
Q96 = 2 ** 96
Q192 = 2 ** 192
MIN_TICK = -887272
MAX_TICK = 887272
MIN_SQRT_RATIO = 4295128739
MAX_SQRT_RATIO = 1461446703485210103287273052203988822378723970342

PriceRatio = Union[Fraction, int, str, Decimal]


@dataclass(frozen=True)
class TickRange:
    """Диапазон тиков позиции. Обе границы кратны tick_spacing."""
    lower: int
    upper: int

    def width(self) -> int:
        return self.upper - self.lower

    def contains(self, tick: int) -> bool:
        return self.lower <= tick < self.upper


def isqrt(value: int) -> int:
    """
    Целочисленный квадратный корень методом Ньютона.

    x_{n+1} = (x_n + value // x_n) // 2, начиная с (value + 1) // 2,
    пока последовательность убывает. Результат = floor(sqrt(value)).

    Args:
        value: Неотрицательное целое

    Returns:
        Наибольшее r такое, что r * r <= value
    """
    if value < 0:
        raise InvariantViolation(f"isqrt of negative value: {value}")
    if value < 2:
        return value

    x = value
    y = (x + 1) // 2
    while y < x:
        x = y
        y = (x + value // x) // 2
    return x


def to_fraction(price_ratio: PriceRatio) -> Fraction:
    """
    Точное приведение цены к Fraction.

    float запрещён: двоичное представление искажает цену
    (0.1 -> 0.1000000000000000055...).
    """
    if isinstance(price_ratio, bool) or isinstance(price_ratio, float):
        raise InvariantViolation(
            f"Price ratio must be exact (Fraction, int, Decimal or str), got {type(price_ratio).__name__}"
        )
    if isinstance(price_ratio, Fraction):
        return price_ratio
    if isinstance(price_ratio, (int, Decimal)):
        return Fraction(price_ratio)
    if isinstance(price_ratio, str):
        try:
            return Fraction(Decimal(price_ratio.strip()))
        except (ArithmeticError, ValueError) as e:
            raise InvariantViolation(f"Invalid price ratio string: {price_ratio!r}") from e
    raise InvariantViolation(f"Unsupported price ratio type: {type(price_ratio).__name__}")


def encode_sqrt_price_x96(decimals0: int, decimals1: int, price_ratio: PriceRatio) -> int:
    """
    Конвертация цены в sqrtPriceX96 без плавающей точки.

    price_ratio = сколько token1 за 1 token0 (в человеческих единицах).

        numerator   = price_ratio * 10^decimals1
        denominator = 10^decimals0
        ratioQ192   = (numerator << 192) // denominator
        sqrtPriceX96 = isqrt(ratioQ192)

    Токены должны быть уже упорядочены (token0 < token1 по адресу),
    см. order_pair().

    Args:
        decimals0: Decimals token0
        decimals1: Decimals token1
        price_ratio: Цена token1/token0 (Fraction, int, Decimal или str)

    Returns:
        sqrtPriceX96 (целое число)

    Example:
        # WETH (token0) / TREATS (token1), 1 WETH = 3000 TREATS
        encode_sqrt_price_x96(18, 18, 3000)
    """
    if decimals0 < 0 or decimals1 < 0:
        raise InvariantViolation(f"Decimals must be non-negative: {decimals0}, {decimals1}")

    ratio = to_fraction(price_ratio)
    if ratio <= 0:
        raise InvariantViolation(f"Price ratio must be positive, got {ratio}")

    numerator = ratio.numerator * 10 ** decimals1
    denominator = ratio.denominator * 10 ** decimals0
    ratio_q192 = (numerator << 192) // denominator

    sqrt_price_x96 = isqrt(ratio_q192)

    if not MIN_SQRT_RATIO <= sqrt_price_x96 < MAX_SQRT_RATIO:
        raise InvariantViolation(
            f"sqrtPriceX96 {sqrt_price_x96} outside pool bounds "
            f"[{MIN_SQRT_RATIO}, {MAX_SQRT_RATIO})"
        )
    return sqrt_price_x96


def sqrt_price_x96_to_price(
    sqrt_price_x96: int,
    token0_decimals: int = 18,
    token1_decimals: int = 18
) -> Fraction:
    """
    Конвертация sqrtPriceX96 в цену token1/token0 (человеческие единицы).

    price = (sqrtPriceX96 / 2^96)^2 * 10^(decimals0 - decimals1)
    """
    raw = Fraction(sqrt_price_x96 * sqrt_price_x96, Q192)
    return raw * Fraction(10 ** token0_decimals, 10 ** token1_decimals)


def tick_to_price(tick: int) -> float:
    """Цена token1/token0 в сырых единицах для тика. Только для вывода."""
    return 1.0001 ** tick


def align_tick_to_spacing(tick: int, tick_spacing: int) -> int:
    """
    Выравнивание тика к tick_spacing.

    Floor division (к -inf), как в самом пуле: -130 при spacing 60 -> -180,
    а не -120.

    Args:
        tick: Исходный тик
        tick_spacing: Шаг тиков пула

    Returns:
        Выровненный тик
    """
    if tick_spacing <= 0:
        raise InvariantViolation(f"Tick spacing must be positive, got {tick_spacing}")
    return (tick // tick_spacing) * tick_spacing


def compute_tick_range(center_tick: int, tick_spacing: int, width_in_spacings: int) -> TickRange:
    """
    Симметричный диапазон вокруг текущего тика пула.

    lower = aligned - width * spacing
    upper = aligned + width * spacing

    Args:
        center_tick: Текущий тик пула (slot0.tick)
        tick_spacing: Шаг тиков пула
        width_in_spacings: Полуширина диапазона в шагах tick_spacing

    Returns:
        TickRange
    """
    if width_in_spacings <= 0:
        raise InvariantViolation(f"Range width must be positive, got {width_in_spacings}")

    aligned = align_tick_to_spacing(center_tick, tick_spacing)
    offset = width_in_spacings * tick_spacing
    lower = aligned - offset
    upper = aligned + offset

    if lower < MIN_TICK or upper > MAX_TICK:
        raise InvariantViolation(
            f"Tick range [{lower}, {upper}] exceeds [{MIN_TICK}, {MAX_TICK}]"
        )
    return TickRange(lower=lower, upper=upper)
