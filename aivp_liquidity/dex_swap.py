"""
DEX Swap Module

Single-hop exact-input своп через Uniswap V3:
- котировка через QuoterV2 (eth_call)
- approve входного токена на router (ApprovalGuard)
- exactInputSingle: SwapRouter (deadline в параметрах) или
  SwapRouter02 (deadline через multicall(deadline, data))
- фактический выход из Transfer события в receipt, иначе по разнице
  balanceOf получателя до и после блока свопа
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from web3 import Web3
from web3.exceptions import ContractLogicError

from .approval import ApprovalGuard
from .contracts.abis import ERC20_ABI, QUOTER_V2_ABI, SWAP_ROUTER02_ABI, SWAP_ROUTER_ABI
from .contracts.pool_factory import PoolFactory
from .errors import InvariantViolation, RemoteRejection
from .math.amounts import BPS_DENOMINATOR, apply_slippage
from .math.ticks import MAX_SQRT_RATIO, MIN_SQRT_RATIO, isqrt
from .utils import erc20_transfers, read_call, run_step

logger = logging.getLogger(__name__)

# SwapRouter (v1) и SwapRouter02 различаются layout'ом exactInputSingle
ROUTER_V1 = "v1"
ROUTER_V2 = "v2"


@dataclass
class Quote:
    """Результат QuoterV2.quoteExactInputSingle."""
    amount_out: int
    sqrt_price_x96_after: int
    initialized_ticks_crossed: int
    gas_estimate: int


@dataclass
class SwapResult:
    """Результат выполнения свопа."""
    tx_hash: str
    token_in: str
    token_out: str
    fee: int
    amount_in: int
    amount_out: int
    amount_out_minimum: int
    expected_out: Optional[int]
    gas_used: int


class SwapExecutor:
    """
    Своп через Uniswap V3 router.

    Использование:
        executor = SwapExecutor(w3, approval_guard, router_address, quoter_address)
        quote = executor.quote_exact_input_single(token_in, token_out, 3000, amount_in)
        result = executor.swap_exact_input_single(
            token_in, token_out, 3000, amount_in,
            recipient=wallet, slippage_bps=50
        )
    """

    def __init__(
        self,
        w3: Web3,
        approval_guard: Optional[ApprovalGuard],
        router_address: str,
        quoter_address: Optional[str] = None,
        router_version: str = ROUTER_V2,
        factory: Optional[PoolFactory] = None,
        deadline_seconds: int = 300,
        default_slippage_bps: int = 50,
        read_attempts: int = 3
    ):
        if router_version not in (ROUTER_V1, ROUTER_V2):
            raise ValueError(f"Unknown router version: {router_version}")
        self.w3 = w3
        self.approval_guard = approval_guard
        self.sender = approval_guard.sender if approval_guard else None
        self.router_version = router_version
        self.router_address = Web3.to_checksum_address(router_address)
        self.router = w3.eth.contract(
            address=self.router_address,
            abi=SWAP_ROUTER_ABI if router_version == ROUTER_V1 else SWAP_ROUTER02_ABI
        )
        self.quoter = None
        if quoter_address:
            self.quoter = w3.eth.contract(
                address=Web3.to_checksum_address(quoter_address),
                abi=QUOTER_V2_ABI
            )
        self.factory = factory
        self.deadline_seconds = deadline_seconds
        self.default_slippage_bps = default_slippage_bps
        self.read_attempts = read_attempts

    def quote_exact_input_single(
        self,
        token_in: str,
        token_out: str,
        fee: int,
        amount_in: int,
        sqrt_price_limit_x96: int = 0
    ) -> Quote:
        """
        Котировка через QuoterV2 (eth_call, без транзакции).

        Raises:
            ValueError: quoter не настроен
            RemoteRejection: quoter откатился (нет пула / ликвидности)
        """
        if self.quoter is None:
            raise ValueError("Quoter address not configured")
        params = (
            Web3.to_checksum_address(token_in),
            Web3.to_checksum_address(token_out),
            amount_in,
            fee,
            sqrt_price_limit_x96,
        )
        try:
            result = read_call(self.quoter.functions.quoteExactInputSingle(params), self.read_attempts)
        except ContractLogicError as e:
            raise RemoteRejection(f"Quote reverted for fee={fee}: {e}", reason=str(e)) from e

        quote = Quote(*result)
        logger.debug(f"V3 quote fee={fee}: {amount_in} -> {quote.amount_out}")
        return quote

    def _calc_sqrt_price_limit_x96(
        self,
        token_in: str,
        token_out: str,
        fee: int,
        price_limit_bps: int
    ) -> int:
        """
        sqrtPriceLimitX96: цена пула может сдвинуться не более чем на price_limit_bps.

        Продаём token0 -> цена (token1/token0) падает, лимит снизу.
        Продаём token1 -> цена растёт, лимит сверху.
        """
        if self.factory is None:
            raise ValueError("Price limit requires a pool factory")
        if not 0 < price_limit_bps < BPS_DENOMINATOR:
            raise InvariantViolation(f"Price limit must be in (0, {BPS_DENOMINATOR}) bps, got {price_limit_bps}")

        zero_for_one = int(token_in, 16) < int(token_out, 16)
        token0, token1 = (token_in, token_out) if zero_for_one else (token_out, token_in)
        pool_address = self.factory.get_pool_address(token0, token1, fee)
        if pool_address is None:
            raise InvariantViolation(f"No pool for {token0}/{token1} fee={fee}")
        sqrt_price_x96, _ = self.factory.get_slot0(pool_address)

        if zero_for_one:
            limit = isqrt(sqrt_price_x96 ** 2 * (BPS_DENOMINATOR - price_limit_bps) // BPS_DENOMINATOR)
            limit = max(limit, MIN_SQRT_RATIO + 1)
        else:
            limit = isqrt(sqrt_price_x96 ** 2 * (BPS_DENOMINATOR + price_limit_bps) // BPS_DENOMINATOR)
            limit = min(limit, MAX_SQRT_RATIO - 1)

        logger.debug(
            f"sqrtPriceLimitX96: current={sqrt_price_x96}, limit={limit}, "
            f"direction={'sell token0' if zero_for_one else 'sell token1'}"
        )
        return limit

    def _build_swap_call(
        self,
        token_in: str,
        token_out: str,
        fee: int,
        recipient: str,
        amount_in: int,
        amount_out_minimum: int,
        sqrt_price_limit_x96: int,
        deadline: int
    ):
        if self.router_version == ROUTER_V1:
            params = (
                token_in, token_out, fee, recipient, deadline,
                amount_in, amount_out_minimum, sqrt_price_limit_x96,
            )
            return self.router.functions.exactInputSingle(params)

        params = (
            token_in, token_out, fee, recipient,
            amount_in, amount_out_minimum, sqrt_price_limit_x96,
        )
        swap_data = self.router.functions.exactInputSingle(params)._encode_transaction_data()
        return self.router.functions.multicall(deadline, [swap_data])

    def _parse_actual_output(self, receipt, token_out: str, recipient: str) -> Optional[int]:
        """
        Реально полученное количество из Transfer event в receipt.

        Returns:
            Наибольший Transfer token_out -> recipient или None
        """
        amounts = erc20_transfers(receipt, token_out, recipient=recipient)
        return max(amounts) if amounts else None

    def _balance_delta(self, token_out: str, recipient: str, receipt) -> int:
        """
        Прирост balanceOf получателя между блоком свопа и предыдущим.

        Другие входящие переводы в том же блоке попадут в результат.
        """
        block_number = receipt.get('blockNumber')
        if block_number is None:
            raise InvariantViolation("Swap receipt has no blockNumber, realized output unknown")
        token = self.w3.eth.contract(address=token_out, abi=ERC20_ABI)
        balance_of = token.functions.balanceOf(recipient)
        before = read_call(balance_of, self.read_attempts, block_identifier=block_number - 1)
        after = read_call(balance_of, self.read_attempts, block_identifier=block_number)
        if after < before:
            raise InvariantViolation(
                f"Recipient balance of {token_out} decreased during swap block: {before} -> {after}"
            )
        return after - before

    def swap_exact_input_single(
        self,
        token_in: str,
        token_out: str,
        fee: int,
        amount_in: int,
        recipient: Optional[str] = None,
        slippage_bps: Optional[int] = None,
        amount_out_minimum: Optional[int] = None,
        price_limit_bps: Optional[int] = None
    ) -> SwapResult:
        """
        Выполнить exact-input своп в одном пуле.

        amountOutMinimum = котировка минус slippage_bps. Явный
        amount_out_minimum перекрывает котировку (0 - только если передан явно).

        Args:
            token_in / token_out: Адреса токенов
            fee: Fee tier пула
            amount_in: Количество token_in в минимальных единицах
            recipient: Получатель (по умолчанию подписант)
            slippage_bps: Допуск в bps (по умолчанию из конфига)
            amount_out_minimum: Явный минимум выхода
            price_limit_bps: Ограничение сдвига цены пула (None - без лимита)

        Raises:
            StepFailed: approve / quote / swap не прошли
            DeadlineExpired: своп отклонён по deadline
        """
        if self.sender is None:
            raise ValueError("Account not configured")
        token_in = Web3.to_checksum_address(token_in)
        token_out = Web3.to_checksum_address(token_out)
        if token_in == token_out:
            raise InvariantViolation("token_in and token_out must differ")
        if amount_in <= 0:
            raise InvariantViolation(f"amount_in must be positive, got {amount_in}")
        if slippage_bps is None:
            slippage_bps = self.default_slippage_bps
        recipient = Web3.to_checksum_address(recipient or self.sender.address)

        expected_out = None
        if amount_out_minimum is None:
            quote = run_step(
                "quote", self.quote_exact_input_single, token_in, token_out, fee, amount_in
            )
            expected_out = quote.amount_out
            amount_out_minimum = apply_slippage(expected_out, slippage_bps)
            logger.info(
                f"V3 swap fee={fee / 10000}%: expected out = {expected_out}, "
                f"min out = {amount_out_minimum} ({slippage_bps} bps)"
            )
        elif amount_out_minimum < 0:
            raise InvariantViolation(f"amount_out_minimum must be non-negative, got {amount_out_minimum}")

        sqrt_price_limit_x96 = 0
        if price_limit_bps is not None:
            sqrt_price_limit_x96 = run_step(
                "price limit", self._calc_sqrt_price_limit_x96,
                token_in, token_out, fee, price_limit_bps
            )

        run_step(
            "approve token_in", self.approval_guard.ensure_allowance,
            self.sender.address, self.router_address, token_in, amount_in
        )

        deadline = int(time.time()) + self.deadline_seconds
        call = self._build_swap_call(
            token_in, token_out, fee, recipient, amount_in,
            amount_out_minimum, sqrt_price_limit_x96, deadline
        )
        receipt = run_step(
            "swap", self.sender.send, call, step="swap", deadline=deadline
        )

        actual_out = self._parse_actual_output(receipt, token_out, recipient)
        if actual_out is None:
            logger.warning("No Transfer to recipient in swap logs, reading balance change")
            actual_out = run_step(
                "read swap output", self._balance_delta, token_out, recipient, receipt
            )
        if expected_out is not None and actual_out != expected_out:
            logger.info(f"Actual output differs: expected={expected_out}, actual={actual_out}")

        tx_hash = receipt.get('transactionHash')
        return SwapResult(
            tx_hash=tx_hash.hex() if hasattr(tx_hash, 'hex') else str(tx_hash or ""),
            token_in=token_in,
            token_out=token_out,
            fee=fee,
            amount_in=amount_in,
            amount_out=actual_out,
            amount_out_minimum=amount_out_minimum,
            expected_out=expected_out,
            gas_used=receipt.get('gasUsed', 0),
        )
