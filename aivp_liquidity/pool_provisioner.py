"""
Pool Provisioner

Гарантирует, что пул (token0, token1, fee) существует и инициализирован
заданной ценой. Состояния пула:

    ABSENT -> CREATING -> CREATED_UNINITIALIZED -> INITIALIZED

Повторный вызов для готового пула не отправляет ни одной транзакции.
Гонка с другим участником (пул создан / инициализирован между нашим
чтением и транзакцией) не считается ошибкой.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .contracts.pool_factory import PoolFactory
from .errors import InvariantViolation, OrchestrationError, RemoteRejection, StepFailed
from .math.ticks import encode_sqrt_price_x96
from .pair import Pair
from .state import PoolState, StateJournal, pool_key
from .utils import run_step

logger = logging.getLogger(__name__)


@dataclass
class PoolProvisionResult:
    """Результат ensure_pool."""
    pool_address: str
    created: bool
    initialized_here: bool
    sqrt_price_x96: int
    state: PoolState = PoolState.INITIALIZED


class PoolProvisioner:
    """
    Создание и инициализация пула через UniswapV3Factory.

    Args:
        factory: PoolFactory с настроенным TransactionSender
        journal: Журнал шагов (по умолчанию - в памяти)
    """

    def __init__(self, factory: PoolFactory, journal: Optional[StateJournal] = None):
        self.factory = factory
        self.journal = journal or StateJournal()

    def observe(self, pair: Pair, fee: int):
        """
        Текущее состояние пула на цепочке.

        Returns:
            (PoolState, pool_address или None)
        """
        address = self.factory.get_pool_address(pair.token0.address, pair.token1.address, fee)
        if address is None:
            return PoolState.ABSENT, None
        if self.factory.is_initialized(address):
            return PoolState.INITIALIZED, address
        return PoolState.CREATED_UNINITIALIZED, address

    def ensure_pool(self, pair: Pair, fee: int) -> PoolProvisionResult:
        """
        Найти или создать пул и инициализировать его ценой пары.

        Цена берётся из ratio дескрипторов (token1.ratio / token0.ratio)
        и кодируется в sqrtPriceX96 до отправки любых транзакций.

        Raises:
            InvariantViolation: цена вне допустимого диапазона
            StepFailed: createPool / initialize не прошли (причина в .cause)
        """
        if fee <= 0:
            raise InvariantViolation(f"Fee must be positive, got {fee}")

        sqrt_price_x96 = encode_sqrt_price_x96(
            pair.token0.decimals, pair.token1.decimals, pair.price_ratio
        )
        key = pool_key(pair.token0.address, pair.token1.address, fee)

        state, address = self._run("observe", self.observe, pair, fee)
        logger.info(
            f"Pool {pair.token0.address[:10]}.../{pair.token1.address[:10]}... fee={fee}: "
            f"{state.value}" + (f" at {address}" if address else "")
        )

        created = False
        initialized_here = False

        if state == PoolState.ABSENT:
            self.journal.record(key, PoolState.CREATING)
            created = self._create(pair, fee)
            address = self._run(
                "createPool", self.factory.get_pool_address,
                pair.token0.address, pair.token1.address, fee
            )
            if address is None:
                missing = InvariantViolation("Factory returned zero address after createPool")
                raise StepFailed("createPool", missing) from missing
            self.journal.record(key, PoolState.CREATED_UNINITIALIZED, pool_address=address)
            # Пул мог создать и сразу инициализировать кто-то другой
            state = PoolState.CREATED_UNINITIALIZED
            if not created and self._run("initialize", self.factory.is_initialized, address):
                state = PoolState.INITIALIZED

        if state == PoolState.CREATED_UNINITIALIZED:
            initialized_here = self._initialize(address, sqrt_price_x96)

        self.journal.record(key, PoolState.INITIALIZED, pool_address=address)
        logger.info(
            f"Pool ready: {address} (created={created}, initialized_here={initialized_here})"
        )
        return PoolProvisionResult(
            pool_address=address,
            created=created,
            initialized_here=initialized_here,
            sqrt_price_x96=sqrt_price_x96,
        )

    def _create(self, pair: Pair, fee: int) -> bool:
        """True если пул создан нашей транзакцией, False если его создал кто-то другой."""
        try:
            self.factory.create_pool(pair.token0.address, pair.token1.address, fee)
            return True
        except RemoteRejection as e:
            existing = self._run(
                "createPool", self.factory.get_pool_address,
                pair.token0.address, pair.token1.address, fee
            )
            if existing is None:
                logger.error(f"[createPool] failed: {e}")
                raise StepFailed("createPool", e) from e
            logger.warning(f"createPool reverted but pool already exists at {existing}, continuing")
            return False
        except OrchestrationError as e:
            logger.error(f"[createPool] failed: {e}")
            raise StepFailed("createPool", e) from e

    def _initialize(self, address: str, sqrt_price_x96: int) -> bool:
        """True если пул инициализирован нашей транзакцией."""
        try:
            self.factory.initialize_pool(address, sqrt_price_x96)
            return True
        except RemoteRejection as e:
            if self._run("initialize", self.factory.is_initialized, address):
                logger.warning(f"initialize reverted but pool {address} is already initialized, continuing")
                return False
            logger.error(f"[initialize] failed: {e}")
            raise StepFailed("initialize", e) from e
        except OrchestrationError as e:
            logger.error(f"[initialize] failed: {e}")
            raise StepFailed("initialize", e) from e

    @staticmethod
    def _run(step: str, fn, *args):
        return run_step(step, fn, *args)
