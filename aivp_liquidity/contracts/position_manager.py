"""
Uniswap V3 Position Manager Integration

Работа с NonfungiblePositionManager: mint, decreaseLiquidity, collect,
чтение позиции. Все вызовы идут через общий TransactionSender.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from web3 import Web3
from web3.contract import Contract
from web3.exceptions import ContractLogicError

from .abis import POSITION_MANAGER_ABI
from ..errors import InvariantViolation, RemoteRejection
from ..math.amounts import MAX_UINT128
from ..pair import ZERO_ADDRESS
from ..utils import TransactionSender, erc20_transfers, read_call

logger = logging.getLogger(__name__)


@dataclass
class MintParams:
    """Параметры для создания позиции."""
    token0: str
    token1: str
    fee: int
    tick_lower: int
    tick_upper: int
    amount0_desired: int
    amount1_desired: int
    amount0_min: int = 0
    amount1_min: int = 0

    def to_tuple(self, recipient: str, deadline: int) -> tuple:
        """Конвертация в tuple для контракта."""
        return (
            Web3.to_checksum_address(self.token0),
            Web3.to_checksum_address(self.token1),
            self.fee,
            self.tick_lower,
            self.tick_upper,
            self.amount0_desired,
            self.amount1_desired,
            self.amount0_min,
            self.amount1_min,
            Web3.to_checksum_address(recipient),
            deadline
        )


@dataclass
class MintResult:
    """Результат создания позиции."""
    token_id: int
    liquidity: int
    amount0: int
    amount1: int
    tx_hash: str


@dataclass
class DecreaseResult:
    """Результат decreaseLiquidity (суммы начислены в tokensOwed, ещё не выведены)."""
    token_id: int
    liquidity: int
    amount0: int
    amount1: int
    tx_hash: str


@dataclass
class CollectResult:
    """Фактически выведенные суммы."""
    token_id: int
    amount0: int
    amount1: int
    recipient: str
    tx_hash: Optional[str] = None


@dataclass
class PositionInfo:
    """Данные positions(tokenId)."""
    token_id: int
    nonce: int
    operator: str
    token0: str
    token1: str
    fee: int
    tick_lower: int
    tick_upper: int
    liquidity: int
    fee_growth_inside0_last_x128: int
    fee_growth_inside1_last_x128: int
    tokens_owed0: int
    tokens_owed1: int


def _tx_hash_hex(receipt) -> str:
    tx_hash = receipt.get('transactionHash')
    if tx_hash is None:
        return ""
    return tx_hash.hex() if hasattr(tx_hash, 'hex') else str(tx_hash)


class UniswapV3PositionManager:
    """
    Класс для работы с Uniswap V3 NonfungiblePositionManager.

    Поддерживает:
    - Создание позиций (mint)
    - Удаление ликвидности (decreaseLiquidity)
    - Сбор токенов и fees (collect)
    - Чтение позиции (positions)
    """

    def __init__(
        self,
        w3: Web3,
        position_manager_address: str,
        sender: TransactionSender = None,
        read_attempts: int = 3
    ):
        self.w3 = w3
        self.sender = sender
        self.read_attempts = read_attempts
        self.position_manager_address = Web3.to_checksum_address(position_manager_address)
        self.contract: Contract = w3.eth.contract(
            address=self.position_manager_address,
            abi=POSITION_MANAGER_ABI
        )

    def _require_sender(self) -> TransactionSender:
        if not self.sender:
            raise ValueError("Account not configured")
        return self.sender

    def _parse_mint_events(self, receipt) -> Optional[dict]:
        """
        Парсинг событий IncreaseLiquidity из receipt.

        Returns:
            dict с token_id, liquidity, amount0, amount1; только token_id
            если найден лишь Transfer NFT; None если нет ни того, ни другого
        """
        try:
            events = self.contract.events.IncreaseLiquidity().process_receipt(receipt)
            if events:
                event = events[0]
                return {
                    'token_id': event['args']['tokenId'],
                    'liquidity': event['args']['liquidity'],
                    'amount0': event['args']['amount0'],
                    'amount1': event['args']['amount1']
                }
        except Exception as e:
            logger.debug(f"Failed to parse IncreaseLiquidity: {e}")

        # Fallback: Transfer NFT от address(0) даёт хотя бы tokenId
        try:
            events = self.contract.events.Transfer().process_receipt(receipt)
            for event in events:
                if event['args']['from'].lower() == ZERO_ADDRESS:
                    return {'token_id': event['args']['tokenId']}
        except Exception as e:
            logger.debug(f"Failed to parse Transfer: {e}")

        return None

    def _parse_amount_event(self, receipt, event_name: str) -> Optional[dict]:
        """Первое событие DecreaseLiquidity / Collect из receipt."""
        try:
            events = getattr(self.contract.events, event_name)().process_receipt(receipt)
        except Exception as e:
            logger.debug(f"Failed to parse {event_name}: {e}")
            return None
        if not events:
            return None
        return dict(events[0]['args'])

    def mint(self, params: MintParams, recipient: str, deadline: int) -> MintResult:
        """
        Создание позиции.

        Args:
            params: Параметры позиции
            recipient: Получатель NFT
            deadline: Unix timestamp, после которого mint отклоняется

        Returns:
            MintResult

        Raises:
            InvariantViolation: mint подтверждён, но tokenId не найден в логах
        """
        sender = self._require_sender()
        logger.info(
            f"Minting position ticks=[{params.tick_lower}, {params.tick_upper}] "
            f"amount0={params.amount0_desired} amount1={params.amount1_desired}"
        )
        receipt = sender.send(
            self.contract.functions.mint(params.to_tuple(recipient, deadline)),
            step="mint",
            deadline=deadline,
        )

        tx_hash = _tx_hash_hex(receipt)
        event_data = self._parse_mint_events(receipt)
        if not event_data or not event_data['token_id']:
            raise InvariantViolation(f"Mint confirmed but tokenId not found in logs: {tx_hash}")

        if 'liquidity' not in event_data:
            token_id = event_data['token_id']
            logger.warning(f"IncreaseLiquidity not found for #{token_id}, reading position state")
            position = self.get_position(token_id)
            event_data['liquidity'] = position.liquidity
            # Пул забирает токены у плательщика через transferFrom
            event_data['amount0'] = sum(erc20_transfers(receipt, params.token0, sender=sender.address))
            event_data['amount1'] = sum(erc20_transfers(receipt, params.token1, sender=sender.address))

        return MintResult(tx_hash=tx_hash, **event_data)

    def decrease_liquidity(
        self,
        token_id: int,
        liquidity: int,
        deadline: int,
        amount0_min: int = 0,
        amount1_min: int = 0
    ) -> DecreaseResult:
        """
        decreaseLiquidity: ликвидность сжигается, токены переходят в tokensOwed.

        Вывод токенов делает только collect().
        """
        sender = self._require_sender()
        params = (token_id, liquidity, amount0_min, amount1_min, deadline)
        logger.info(f"Decreasing liquidity of #{token_id} by {liquidity}")
        receipt = sender.send(
            self.contract.functions.decreaseLiquidity(params),
            step="decreaseLiquidity",
            gas_type='decrease_liquidity',
            deadline=deadline,
        )
        event = self._parse_amount_event(receipt, 'DecreaseLiquidity') or {}
        return DecreaseResult(
            token_id=token_id,
            liquidity=event.get('liquidity', liquidity),
            amount0=event.get('amount0', 0),
            amount1=event.get('amount1', 0),
            tx_hash=_tx_hash_hex(receipt),
        )

    def simulate_decrease(
        self,
        token_id: int,
        liquidity: int,
        deadline: int,
        owner: str
    ) -> Tuple[int, int]:
        """
        eth_call decreaseLiquidity от имени владельца.

        Returns:
            (amount0, amount1), которые decrease начислил бы сейчас
        """
        params = (token_id, liquidity, 0, 0, deadline)
        try:
            amount0, amount1 = read_call(
                self.contract.functions.decreaseLiquidity(params),
                self.read_attempts,
                transaction={'from': Web3.to_checksum_address(owner)},
            )
        except ContractLogicError as e:
            raise RemoteRejection(
                f"decreaseLiquidity simulation reverted: {e}",
                reason=str(e),
            ) from e
        return amount0, amount1

    def collect(
        self,
        token_id: int,
        recipient: str,
        amount0_max: int = MAX_UINT128,
        amount1_max: int = MAX_UINT128
    ) -> CollectResult:
        """collect: вывод tokensOwed (включая fees) на recipient."""
        sender = self._require_sender()
        recipient = Web3.to_checksum_address(recipient)
        params = (token_id, recipient, amount0_max, amount1_max)
        logger.info(f"Collecting #{token_id} to {recipient}")
        receipt = sender.send(
            self.contract.functions.collect(params),
            step="collect",
        )
        event = self._parse_amount_event(receipt, 'Collect') or {}
        return CollectResult(
            token_id=token_id,
            amount0=event.get('amount0', 0),
            amount1=event.get('amount1', 0),
            recipient=recipient,
            tx_hash=_tx_hash_hex(receipt),
        )

    def get_position(self, token_id: int) -> PositionInfo:
        """Получение информации о позиции."""
        result = read_call(self.contract.functions.positions(token_id), self.read_attempts)
        return PositionInfo(token_id, *result)
