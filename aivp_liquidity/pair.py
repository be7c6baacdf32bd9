"""
Пары токенов в каноническом порядке Uniswap V3.

В пуле token0 < token1 по числовому значению адреса. Если пара задана в
обратном порядке, меняются местами и адреса, и связанные с ними данные
(decimals, ratio, суммы).
"""

from dataclasses import dataclass
from fractions import Fraction
from typing import Tuple, Union

from web3 import Web3

from .errors import InvariantViolation

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


@dataclass(frozen=True)
class AssetDescriptor:
    """
    Токен пары.

    ratio - относительная цена токена в паре: цена пула token1/token0
    равна token1.ratio / token0.ratio (как в скриптах развёртывания:
    WETH ratio=1, TREATS ratio=3000 -> 3000 TREATS за 1 WETH).
    """
    address: str
    decimals: int = 18
    ratio: Union[int, Fraction] = 1
    symbol: str = ""

    def __post_init__(self):
        if self.decimals < 0:
            raise InvariantViolation(f"Decimals must be non-negative, got {self.decimals}")
        object.__setattr__(self, 'address', Web3.to_checksum_address(self.address))

    @property
    def sort_key(self) -> int:
        return int(self.address, 16)


@dataclass(frozen=True)
class Pair:
    """Упорядоченная пара: token0.address < token1.address."""
    token0: AssetDescriptor
    token1: AssetDescriptor

    def __post_init__(self):
        if self.token0.sort_key == self.token1.sort_key:
            raise InvariantViolation(f"Pair tokens must differ: {self.token0.address}")
        if self.token0.sort_key > self.token1.sort_key:
            raise InvariantViolation(
                f"Pair is not in canonical order: {self.token0.address} > {self.token1.address}. "
                f"Use order_pair()."
            )

    @property
    def price_ratio(self) -> Fraction:
        """Цена пула token1/token0 в человеческих единицах."""
        return pair_price_ratio(self.token0, self.token1)


def is_sorted(token_a: str, token_b: str) -> bool:
    """True если token_a < token_b как 20-байтные числа."""
    return int(token_a, 16) < int(token_b, 16)


def sort_tokens(token_a: str, token_b: str) -> Tuple[str, str, bool]:
    """
    Проверка порядка токенов.

    Returns:
        (token0, token1, swapped)
    """
    if int(token_a, 16) == int(token_b, 16):
        raise InvariantViolation(f"Pair tokens must differ: {token_a}")
    if is_sorted(token_a, token_b):
        return token_a, token_b, False
    return token_b, token_a, True


def pair_price_ratio(token0: AssetDescriptor, token1: AssetDescriptor) -> Fraction:
    """token1.ratio / token0.ratio как точная дробь."""
    r0 = Fraction(token0.ratio)
    r1 = Fraction(token1.ratio)
    if r0 <= 0 or r1 <= 0:
        raise InvariantViolation(f"Asset ratios must be positive: {token0.ratio}, {token1.ratio}")
    return r1 / r0


def order_pair(
    token_a: AssetDescriptor,
    token_b: AssetDescriptor,
    amount_a: int = 0,
    amount_b: int = 0
) -> Tuple[Pair, int, int]:
    """
    Упорядочить пару и связанные суммы.

    Returns:
        (pair, amount0, amount1) - суммы переставлены вместе с токенами
    """
    _, _, swapped = sort_tokens(token_a.address, token_b.address)
    if swapped:
        return Pair(token0=token_b, token1=token_a), amount_b, amount_a
    return Pair(token0=token_a, token1=token_b), amount_a, amount_b
