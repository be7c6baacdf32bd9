"""
Approval Guard

Проверка allowance перед операцией, которая тратит токены.
approve отправляется только если текущего allowance не хватает,
и ровно на требуемую сумму (не на max uint256).
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, Optional

from web3 import Web3

from .contracts.abis import ERC20_ABI
from .errors import InvariantViolation
from .utils import TransactionSender, read_call

logger = logging.getLogger(__name__)


@dataclass
class AllowanceState:
    """Состояние allowance owner -> spender для токена."""
    token: str
    owner: str
    spender: str
    current_allowance: int
    required_amount: int

    @property
    def sufficient(self) -> bool:
        return self.current_allowance >= self.required_amount


class ApprovalGuard:
    """
    Гарантирует allowance >= required_amount перед value-moving вызовом.

    Ошибки approve (revert, таймаут подтверждения) не перехватываются и
    не повторяются: повтор решает вызывающий код.
    """

    def __init__(self, w3: Web3, sender: TransactionSender, read_attempts: int = 3):
        self.w3 = w3
        self.sender = sender
        self.read_attempts = read_attempts

    def _get_token_contract(self, token_address: str):
        return self.w3.eth.contract(
            address=Web3.to_checksum_address(token_address),
            abi=ERC20_ABI
        )

    def get_allowance_state(
        self,
        owner: str,
        spender: str,
        token: str,
        required_amount: int
    ) -> AllowanceState:
        """Чтение текущего allowance."""
        owner = Web3.to_checksum_address(owner)
        spender = Web3.to_checksum_address(spender)
        contract = self._get_token_contract(token)
        current = read_call(contract.functions.allowance(owner, spender), self.read_attempts)
        return AllowanceState(
            token=Web3.to_checksum_address(token),
            owner=owner,
            spender=spender,
            current_allowance=current,
            required_amount=required_amount,
        )

    def ensure_allowance(
        self,
        owner: str,
        spender: str,
        token: str,
        required_amount: int
    ) -> Optional[dict]:
        """
        Проверка и approve токена если нужно.

        Args:
            owner: Владелец токенов (должен совпадать с подписантом)
            spender: Контракт, который будет тратить токены
            token: Адрес ERC20
            required_amount: Требуемая сумма в минимальных единицах

        Returns:
            receipt если был approve, None если allowance уже достаточно
        """
        if required_amount < 0:
            raise InvariantViolation(f"Required amount must be non-negative, got {required_amount}")
        if Web3.to_checksum_address(owner) != Web3.to_checksum_address(self.sender.address):
            raise InvariantViolation(
                f"Cannot approve on behalf of {owner}: signer is {self.sender.address}"
            )

        state = self.get_allowance_state(owner, spender, token, required_amount)
        if state.sufficient:
            logger.info(
                f"Token {state.token[:10]}... already approved for {state.spender[:10]}...: "
                f"{state.current_allowance} >= {required_amount}"
            )
            return None

        logger.info(
            f"Approving token {state.token[:10]}... for {state.spender[:10]}...: "
            f"{state.current_allowance} -> {required_amount}"
        )
        contract = self._get_token_contract(token)
        return self.sender.send(
            contract.functions.approve(state.spender, required_amount),
            step=f"approve {state.token[:10]}",
            gas_type='approve',
        )

    def ensure_allowances(
        self,
        owner: str,
        spender: str,
        amounts: Dict[str, int]
    ) -> Dict[str, Optional[dict]]:
        """
        Независимые approve для нескольких токенов параллельно.

        Каждый approve внутри последовательный (отправка -> ожидание),
        nonce выдаёт общий NonceManager.

        Returns:
            token -> receipt или None
        """
        if len(amounts) <= 1:
            return {
                token: self.ensure_allowance(owner, spender, token, amount)
                for token, amount in amounts.items()
            }
        with ThreadPoolExecutor(max_workers=len(amounts)) as executor:
            futures = {
                token: executor.submit(self.ensure_allowance, owner, spender, token, amount)
                for token, amount in amounts.items()
            }
            return {token: future.result() for token, future in futures.items()}
