"""
Liquidity Provider Module

Оркестрация позиций в пуле Uniswap V3:
- mint_position: чтение пула -> расчёт диапазона тиков -> approve -> mint
- decrease_and_collect: decreaseLiquidity -> collect

Последовательности не атомарны. Завершённые шаги пишутся в StateJournal,
повторный запуск decrease_and_collect не отправляет уже подтверждённый
decreaseLiquidity повторно.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, Optional

from web3 import Web3

from .approval import ApprovalGuard
from .contracts.abis import ERC20_ABI
from .contracts.pool_factory import PoolFactory
from .contracts.position_manager import (
    CollectResult,
    MintParams,
    UniswapV3PositionManager,
)
from .errors import InvariantViolation, OrchestrationError
from .math.amounts import apply_slippage
from .math.liquidity import calculate_mint_amounts
from .math.ticks import TickRange, compute_tick_range
from .state import PositionStep, StateJournal, position_key
from .utils import read_call, run_step

logger = logging.getLogger(__name__)


@dataclass
class InsufficientBalanceError(OrchestrationError):
    """Исключение при недостаточном балансе."""
    required: int
    available: int
    token_address: str

    def __str__(self):
        return f"Insufficient balance: required {self.required}, available {self.available} for token {self.token_address}"


@dataclass
class PositionDescriptor:
    """Созданная позиция."""
    token_id: int
    liquidity: int
    tick_range: TickRange
    token0: str
    token1: str
    fee: int
    amount0: int
    amount1: int
    pool_address: str
    tx_hash: str = ""


class LiquidityProvider:
    """
    Провайдер ликвидности для одного подписанта.

    Пример использования:
    ```python
    with ChainSession(config) as session:
        provider = session.liquidity_provider()
        position = provider.mint_position(pool, amount0, amount1, width_in_spacings=2)
        provider.decrease_and_collect(position.token_id, position.liquidity)
    ```
    """

    def __init__(
        self,
        factory: PoolFactory,
        position_manager: UniswapV3PositionManager,
        approval_guard: ApprovalGuard,
        journal: Optional[StateJournal] = None,
        deadline_seconds: int = 300,
        default_slippage_bps: int = 50
    ):
        self.factory = factory
        self.w3 = factory.w3
        self.position_manager = position_manager
        self.approval_guard = approval_guard
        self.journal = journal or StateJournal()
        self.deadline_seconds = deadline_seconds
        self.default_slippage_bps = default_slippage_bps

    @property
    def account_address(self) -> str:
        return self.approval_guard.sender.address

    def _deadline(self) -> int:
        return int(time.time()) + self.deadline_seconds

    def get_token_balance(self, token_address: str, address: str = None) -> int:
        """Получение баланса токена."""
        if address is None:
            address = self.account_address

        token = self.w3.eth.contract(
            address=Web3.to_checksum_address(token_address),
            abi=ERC20_ABI
        )
        return read_call(
            token.functions.balanceOf(Web3.to_checksum_address(address)),
            self.factory.read_attempts
        )

    def check_balances(self, required: Dict[str, int]):
        """
        Проверка балансов до отправки approve.

        Raises:
            InsufficientBalanceError: если хотя бы одного токена не хватает
        """
        for token, amount in required.items():
            if amount <= 0:
                continue
            balance = self.get_token_balance(token)
            if balance < amount:
                raise InsufficientBalanceError(required=amount, available=balance, token_address=token)

    def _approve_pair(self, amounts: Dict[str, int]):
        """
        approve обоих токенов на position manager.

        Два approve независимы и идут параллельно; nonce выдаёт общий
        NonceManager. Ошибка любого из них называет свой шаг.
        """
        owner = self.account_address
        spender = self.position_manager.position_manager_address
        jobs = {step: (token, amount) for step, (token, amount) in amounts.items() if amount > 0}
        if not jobs:
            return
        with ThreadPoolExecutor(max_workers=len(jobs)) as executor:
            futures = {
                step: executor.submit(
                    run_step, step, self.approval_guard.ensure_allowance,
                    owner, spender, token, amount
                )
                for step, (token, amount) in jobs.items()
            }
            for future in futures.values():
                future.result()

    def mint_position(
        self,
        pool_address: str,
        amount0_desired: int,
        amount1_desired: int,
        width_in_spacings: int,
        slippage_bps: Optional[int] = None,
        recipient: Optional[str] = None,
        amount0_min: Optional[int] = None,
        amount1_min: Optional[int] = None
    ) -> PositionDescriptor:
        """
        Создание позиции вокруг текущего тика пула.

        Диапазон: текущий тик, выровненный вниз по tickSpacing пула,
        +/- width_in_spacings * tickSpacing.

        Args:
            pool_address: Адрес инициализированного пула
            amount0_desired / amount1_desired: Суммы в минимальных единицах
            width_in_spacings: Полуширина диапазона в шагах tickSpacing
            slippage_bps: Допуск для amount0Min/amount1Min (по умолчанию из конфига)
            recipient: Получатель NFT (по умолчанию подписант)
            amount0_min / amount1_min: Явные минимумы (перекрывают slippage_bps)
        """
        if amount0_desired < 0 or amount1_desired < 0:
            raise InvariantViolation("Desired amounts must be non-negative")
        if amount0_desired == 0 and amount1_desired == 0:
            raise InvariantViolation("At least one desired amount must be positive")
        if slippage_bps is None:
            slippage_bps = self.default_slippage_bps
        recipient = Web3.to_checksum_address(recipient or self.account_address)

        pool = run_step("read pool", self.factory.get_pool_immutables, pool_address)
        sqrt_price_x96, tick = run_step("read slot0", self.factory.get_slot0, pool_address)
        if sqrt_price_x96 == 0:
            raise InvariantViolation(f"Pool {pool_address} is not initialized")

        tick_range = compute_tick_range(tick, pool.tick_spacing, width_in_spacings)
        logger.info(
            f"Pool {pool.address}: tick={tick}, spacing={pool.tick_spacing}, "
            f"range=[{tick_range.lower}, {tick_range.upper}]"
        )

        if amount0_min is None or amount1_min is None:
            expected = calculate_mint_amounts(
                sqrt_price_x96, tick_range.lower, tick_range.upper,
                amount0_desired, amount1_desired
            )
            logger.debug(
                f"Expected deposit: liquidity={expected.liquidity}, "
                f"amount0={expected.amount0}, amount1={expected.amount1}"
            )
            if amount0_min is None:
                amount0_min = apply_slippage(expected.amount0, slippage_bps)
            if amount1_min is None:
                amount1_min = apply_slippage(expected.amount1, slippage_bps)

        self.check_balances({pool.token0: amount0_desired, pool.token1: amount1_desired})
        self._approve_pair({
            "approve token0": (pool.token0, amount0_desired),
            "approve token1": (pool.token1, amount1_desired),
        })

        params = MintParams(
            token0=pool.token0,
            token1=pool.token1,
            fee=pool.fee,
            tick_lower=tick_range.lower,
            tick_upper=tick_range.upper,
            amount0_desired=amount0_desired,
            amount1_desired=amount1_desired,
            amount0_min=amount0_min,
            amount1_min=amount1_min,
        )
        result = run_step("mint", self.position_manager.mint, params, recipient, self._deadline())

        self.journal.record(
            position_key(result.token_id),
            PositionStep.MINTED,
            pool_address=pool.address,
            liquidity=result.liquidity,
            tx_hash=result.tx_hash,
        )
        logger.info(
            f"Position #{result.token_id} minted: liquidity={result.liquidity}, "
            f"amount0={result.amount0}, amount1={result.amount1}"
        )
        return PositionDescriptor(
            token_id=result.token_id,
            liquidity=result.liquidity,
            tick_range=tick_range,
            token0=pool.token0,
            token1=pool.token1,
            fee=pool.fee,
            amount0=result.amount0,
            amount1=result.amount1,
            pool_address=pool.address,
            tx_hash=result.tx_hash,
        )

    def _decrease_already_done(self, token_id: int, liquidity_to_remove: int) -> bool:
        """
        Был ли этот decrease уже подтверждён в прошлом запуске.

        DECREASED в журнале - да. DECREASING (процесс упал после отправки)
        проверяется по текущей ликвидности позиции.
        """
        entry = self.journal.get(position_key(token_id))
        if not entry or entry.get('liquidity_removed') != liquidity_to_remove:
            return False
        if entry['step'] == PositionStep.DECREASED.value:
            return True
        if entry['step'] == PositionStep.DECREASING.value:
            position = run_step("read position", self.position_manager.get_position, token_id)
            if position.liquidity <= entry['liquidity_before'] - liquidity_to_remove:
                self.journal.record(position_key(token_id), PositionStep.DECREASED)
                return True
        return False

    def _decrease_minimums(
        self,
        token_id: int,
        liquidity: int,
        deadline: int,
        slippage_bps: int
    ):
        """amountXMin для decrease: симуляция decreaseLiquidity минус допуск."""
        if slippage_bps >= 10_000:
            return 0, 0
        expected0, expected1 = run_step(
            "simulate decreaseLiquidity",
            self.position_manager.simulate_decrease,
            token_id, liquidity, deadline, self.account_address,
        )
        return apply_slippage(expected0, slippage_bps), apply_slippage(expected1, slippage_bps)

    def decrease_and_collect(
        self,
        token_id: int,
        liquidity_to_remove: int,
        recipient: Optional[str] = None,
        slippage_bps: Optional[int] = None,
        amount0_min: Optional[int] = None,
        amount1_min: Optional[int] = None
    ) -> CollectResult:
        """
        Вывод ликвидности: decreaseLiquidity, затем collect.

        liquidity_to_remove == 0 - только collect (fees / ранее начисленное).
        collect всегда можно повторить: он выводит то, что начислено.

        Raises:
            DeadlineExpired: decreaseLiquidity отклонён по deadline
            StepFailed: decrease / collect не прошли
        """
        if liquidity_to_remove < 0:
            raise InvariantViolation(f"Liquidity to remove must be non-negative, got {liquidity_to_remove}")
        if slippage_bps is None:
            slippage_bps = self.default_slippage_bps
        recipient = Web3.to_checksum_address(recipient or self.account_address)
        key = position_key(token_id)

        if liquidity_to_remove == 0:
            logger.info(f"Position #{token_id}: nothing to decrease, collecting only")
        elif self._decrease_already_done(token_id, liquidity_to_remove):
            logger.info(f"Position #{token_id}: decrease already confirmed, skipping to collect")
        else:
            position = run_step("read position", self.position_manager.get_position, token_id)
            if liquidity_to_remove > position.liquidity:
                raise InvariantViolation(
                    f"Cannot remove {liquidity_to_remove} from position #{token_id} "
                    f"with liquidity {position.liquidity}"
                )
            deadline = self._deadline()
            if amount0_min is None or amount1_min is None:
                sim0, sim1 = self._decrease_minimums(token_id, liquidity_to_remove, deadline, slippage_bps)
                amount0_min = sim0 if amount0_min is None else amount0_min
                amount1_min = sim1 if amount1_min is None else amount1_min

            self.journal.record(
                key, PositionStep.DECREASING,
                liquidity_before=position.liquidity,
                liquidity_removed=liquidity_to_remove,
            )
            decreased = run_step(
                "decreaseLiquidity", self.position_manager.decrease_liquidity,
                token_id, liquidity_to_remove, deadline, amount0_min, amount1_min,
            )
            self.journal.record(key, PositionStep.DECREASED, decrease_tx=decreased.tx_hash)
            logger.info(
                f"Position #{token_id}: decreased by {liquidity_to_remove}, "
                f"owed +{decreased.amount0}/+{decreased.amount1}"
            )

        collected = run_step("collect", self.position_manager.collect, token_id, recipient)
        self.journal.record(
            key, PositionStep.COLLECTED,
            collect_tx=collected.tx_hash,
            amount0=collected.amount0,
            amount1=collected.amount1,
        )
        logger.info(f"Position #{token_id}: collected {collected.amount0}/{collected.amount1} to {recipient}")
        return collected
