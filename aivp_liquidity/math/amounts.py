"""
Token amount helpers.

Conversions between human-readable amounts ("0.3") and on-chain integer
units, plus slippage minimums. Everything stays in Decimal/int.
"""

from decimal import Decimal, InvalidOperation, localcontext
from typing import Union

from ..errors import InvariantViolation

BPS_DENOMINATOR = 10_000
MAX_UINT128 = 2 ** 128 - 1
MAX_UINT256 = 2 ** 256 - 1


def parse_units(amount: Union[str, int, Decimal], decimals: int) -> int:
    """
    Convert a human amount to integer units ("0.3", 18 -> 3 * 10**17).

    Raises InvariantViolation if the amount has more fractional digits
    than the token supports or is negative.
    """
    if isinstance(amount, float):
        raise InvariantViolation("Amount must be given as str, int or Decimal, not float")
    try:
        value = Decimal(amount) if not isinstance(amount, Decimal) else amount
    except InvalidOperation as e:
        raise InvariantViolation(f"Invalid amount: {amount!r}") from e

    if not value.is_finite() or value < 0:
        raise InvariantViolation(f"Amount must be a non-negative number, got {amount!r}")

    with localcontext() as ctx:
        ctx.prec = 100
        scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise InvariantViolation(f"Amount {amount} has more than {decimals} decimal places")
    return int(scaled)


def format_units(amount: int, decimals: int = 18) -> str:
    """Integer units -> human string without exponent notation."""
    with localcontext() as ctx:
        ctx.prec = 100
        value = Decimal(amount).scaleb(-decimals)
    text = format(value, 'f')
    if '.' in text:
        text = text.rstrip('0').rstrip('.')
    return text


def apply_slippage(amount: int, slippage_bps: int) -> int:
    """
    Minimum acceptable amount for a given tolerance in basis points.

    apply_slippage(1000, 50) -> 995 (0.5%). Rounds down.
    """
    if not 0 <= slippage_bps <= BPS_DENOMINATOR:
        raise InvariantViolation(f"Slippage must be within [0, {BPS_DENOMINATOR}] bps, got {slippage_bps}")
    if amount < 0:
        raise InvariantViolation(f"Amount must be non-negative, got {amount}")
    return amount * (BPS_DENOMINATOR - slippage_bps) // BPS_DENOMINATOR
