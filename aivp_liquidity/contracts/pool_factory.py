"""
Uniswap V3 Pool Factory Integration

Работа с фабрикой пулов: поиск адреса пула, создание, инициализация,
чтение состояния пула.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from eth_abi import decode
from web3 import Web3
from web3.exceptions import ContractLogicError

from .abis import ERC20_ABI, FACTORY_ABI, POOL_ABI
from ..pair import sort_tokens
from ..utils import TransactionSender, read_call, read_parallel

logger = logging.getLogger(__name__)

# slot0() selector
SLOT0_SELECTOR = bytes.fromhex('3850c7bd')


@dataclass(frozen=True)
class PoolImmutables:
    """Неизменяемые параметры пула."""
    address: str
    token0: str
    token1: str
    fee: int
    tick_spacing: int


@dataclass
class PoolInfo:
    """Информация о пуле."""
    address: str
    token0: str
    token1: str
    fee: int
    tick_spacing: int
    sqrt_price_x96: int
    tick: int
    liquidity: int

    @property
    def initialized(self) -> bool:
        return self.sqrt_price_x96 > 0


@dataclass
class TokenInfo:
    """Информация о токене."""
    address: str
    symbol: str
    decimals: int


class PoolFactory:
    """
    Класс для работы с UniswapV3Factory и пулами.

    Позволяет:
    - Получать адреса существующих пулов
    - Создавать новые пулы
    - Инициализировать пулы начальной ценой (sqrtPriceX96)
    - Читать immutables и slot0 пула
    """

    def __init__(
        self,
        w3: Web3,
        factory_address: str,
        sender: TransactionSender = None,
        read_attempts: int = 3
    ):
        self.w3 = w3
        self.sender = sender
        self.read_attempts = read_attempts
        self.factory_address = Web3.to_checksum_address(factory_address)
        self.factory = w3.eth.contract(address=self.factory_address, abi=FACTORY_ABI)

    def _pool_contract(self, pool_address: str):
        return self.w3.eth.contract(address=Web3.to_checksum_address(pool_address), abi=POOL_ABI)

    def _require_sender(self) -> TransactionSender:
        if not self.sender:
            raise ValueError("Account not configured")
        return self.sender

    def get_token_info(self, token_address: str) -> TokenInfo:
        """
        Получение symbol и decimals токена.

        decimals обязателен: без него нельзя посчитать цену,
        поэтому ошибка чтения пробрасывается.
        """
        address = Web3.to_checksum_address(token_address)
        token = self.w3.eth.contract(address=address, abi=ERC20_ABI)

        decimals = read_call(token.functions.decimals(), self.read_attempts)
        try:
            symbol = read_call(token.functions.symbol(), self.read_attempts)
        except (ContractLogicError, OverflowError, ValueError) as e:
            logger.debug(f"Failed to get symbol for {address}: {e}")
            symbol = "UNKNOWN"

        return TokenInfo(address=address, symbol=symbol, decimals=decimals)

    def get_pool_address(self, token0: str, token1: str, fee: int) -> Optional[str]:
        """
        Получение адреса существующего пула.

        Returns:
            Адрес пула или None если фабрика вернула нулевой адрес
        """
        token0 = Web3.to_checksum_address(token0)
        token1 = Web3.to_checksum_address(token1)

        pool_address = read_call(self.factory.functions.getPool(token0, token1, fee), self.read_attempts)
        if int(pool_address, 16) == 0:
            return None
        return Web3.to_checksum_address(pool_address)

    def get_pool_immutables(self, pool_address: str) -> PoolImmutables:
        """token0, token1, fee, tickSpacing читаются параллельно."""
        pool = self._pool_contract(pool_address)
        values = read_parallel({
            'token0': pool.functions.token0(),
            'token1': pool.functions.token1(),
            'fee': pool.functions.fee(),
            'tick_spacing': pool.functions.tickSpacing(),
        }, self.read_attempts)
        return PoolImmutables(address=Web3.to_checksum_address(pool_address), **values)

    def get_slot0(self, pool_address: str) -> Tuple[int, int]:
        """
        Чтение (sqrtPriceX96, tick) из slot0.

        Некоторые форки (PancakeSwap V3) возвращают slot0 с другим набором
        полей, поэтому при ошибке декодирования читаем первые два слова сырым
        eth_call.
        """
        pool = self._pool_contract(pool_address)
        try:
            slot0 = read_call(pool.functions.slot0(), self.read_attempts)
            return slot0[0], slot0[1]
        except (OverflowError, ValueError) as e:
            logger.debug(f"slot0 ABI decode failed, trying raw eth_call: {e}")

        raw = self.w3.eth.call({'to': pool.address, 'data': SLOT0_SELECTOR})
        if len(raw) < 64:
            return 0, 0
        sqrt_price_x96, tick = decode(['uint160', 'int24'], bytes(raw[:64]))
        return sqrt_price_x96, tick

    def is_initialized(self, pool_address: str) -> bool:
        sqrt_price_x96, _ = self.get_slot0(pool_address)
        return sqrt_price_x96 > 0

    def get_pool_info(self, pool_address: str) -> PoolInfo:
        """Полная информация о пуле: immutables + slot0 + liquidity."""
        immutables = self.get_pool_immutables(pool_address)
        sqrt_price_x96, tick = self.get_slot0(pool_address)
        liquidity = read_call(self._pool_contract(pool_address).functions.liquidity(), self.read_attempts)
        return PoolInfo(
            address=immutables.address,
            token0=immutables.token0,
            token1=immutables.token1,
            fee=immutables.fee,
            tick_spacing=immutables.tick_spacing,
            sqrt_price_x96=sqrt_price_x96,
            tick=tick,
            liquidity=liquidity,
        )

    def create_pool(self, token0: str, token1: str, fee: int) -> dict:
        """
        Создание нового пула (createPool).

        Токены сортируются по адресу. Адрес пула createPool не возвращает
        в receipt напрямую - его нужно перечитать через getPool.

        Returns:
            receipt
        """
        sender = self._require_sender()
        token0, token1, _ = sort_tokens(
            Web3.to_checksum_address(token0), Web3.to_checksum_address(token1)
        )
        logger.info(f"Creating pool {token0[:10]}.../{token1[:10]}... fee={fee}")
        return sender.send(
            self.factory.functions.createPool(token0, token1, fee),
            step="createPool",
            gas_type='create_pool',
        )

    def initialize_pool(self, pool_address: str, sqrt_price_x96: int) -> dict:
        """
        Инициализация пула начальной ценой.

        Args:
            pool_address: Адрес пула
            sqrt_price_x96: Цена, см. math.ticks.encode_sqrt_price_x96

        Returns:
            receipt
        """
        sender = self._require_sender()
        pool = self._pool_contract(pool_address)
        logger.info(f"Initializing pool {pool_address} with sqrtPriceX96={sqrt_price_x96}")
        return sender.send(
            pool.functions.initialize(sqrt_price_x96),
            step="initialize",
            gas_type='initialize_pool',
        )

