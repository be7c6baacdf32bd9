"""
Chain Session

Одно подключение к RPC + один подписант + общие NonceManager и
TransactionSender. Оркестраторы создаются из сессии и делят их между
собой, поэтому nonce остаются монотонными для всех транзакций.

    with ChainSession(config) as session:
        result = session.pool_provisioner().ensure_pool(pair, 3000)
"""

import logging
from typing import Optional

import requests
from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3

from .approval import ApprovalGuard
from .contracts.pool_factory import PoolFactory
from .contracts.position_manager import UniswapV3PositionManager
from .dex_swap import SwapExecutor
from .liquidity_provider import LiquidityProvider
from .pool_provisioner import PoolProvisioner
from .state import StateJournal
from .utils import NonceManager, TransactionSender

logger = logging.getLogger(__name__)

RPC_TIMEOUT = 30


class ChainSession:
    """
    Контекстный менеджер сессии.

    Args:
        config: OrchestratorConfig (rpc_url, private_key, адреса, таймауты)
        journal: Журнал шагов; по умолчанию из config.journal_path
    """

    def __init__(self, config, journal: Optional[StateJournal] = None):
        self.config = config
        self.journal = journal
        self.http_session: Optional[requests.Session] = None
        self.w3: Optional[Web3] = None
        self.account: Optional[LocalAccount] = None
        self.nonce_manager: Optional[NonceManager] = None
        self.sender: Optional[TransactionSender] = None
        self.approval_guard: Optional[ApprovalGuard] = None

    def __enter__(self) -> 'ChainSession':
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def open(self):
        """Подключение к RPC и проверка chain_id. При ошибке HTTP-сессия закрывается."""
        self.http_session = requests.Session()
        try:
            self._connect()
        except Exception:
            self.close()
            raise

    def _connect(self):
        provider = Web3.HTTPProvider(
            self.config.rpc_url,
            request_kwargs={"timeout": RPC_TIMEOUT},
            session=self.http_session,
        )
        self.w3 = Web3(provider)

        chain_id = self.w3.eth.chain_id
        if chain_id != self.config.chain_id:
            raise ValueError(f"RPC chain_id {chain_id} does not match configured {self.config.chain_id}")

        if self.journal is None:
            self.journal = StateJournal(self.config.journal_path)

        if self.config.private_key:
            self.account = Account.from_key(self.config.private_key)
            self.nonce_manager = NonceManager(self.w3, self.account.address)
            self.sender = TransactionSender(
                self.w3,
                self.account,
                nonce_manager=self.nonce_manager,
                confirmation_timeout=self.config.confirmation_timeout,
                gas_price_wei=self.config.gas_price_wei,
                gas_limits=self.config.gas_limits,
            )
            self.approval_guard = ApprovalGuard(self.w3, self.sender, self.config.read_retry_attempts)
            logger.info(f"Session opened: chain {chain_id}, signer {self.account.address}")
        else:
            logger.info(f"Session opened: chain {chain_id}, read-only")

    def close(self):
        if self.http_session is not None:
            self.http_session.close()
            self.http_session = None
            logger.debug("HTTP session closed")

    def _require_signer(self):
        if self.sender is None:
            raise ValueError("PRIVATE_KEY not configured: this operation sends transactions")

    def pool_factory(self) -> PoolFactory:
        return PoolFactory(
            self.w3,
            self.config.factory_address,
            sender=self.sender,
            read_attempts=self.config.read_retry_attempts,
        )

    def position_manager(self) -> UniswapV3PositionManager:
        return UniswapV3PositionManager(
            self.w3,
            self.config.position_manager_address,
            sender=self.sender,
            read_attempts=self.config.read_retry_attempts,
        )

    def pool_provisioner(self) -> PoolProvisioner:
        self._require_signer()
        return PoolProvisioner(self.pool_factory(), self.journal)

    def liquidity_provider(self) -> LiquidityProvider:
        self._require_signer()
        return LiquidityProvider(
            self.pool_factory(),
            self.position_manager(),
            self.approval_guard,
            journal=self.journal,
            deadline_seconds=self.config.deadline_seconds,
            default_slippage_bps=self.config.default_slippage_bps,
        )

    def swap_executor(self) -> SwapExecutor:
        """Для quote подписант не нужен; для swap - нужен."""
        return SwapExecutor(
            self.w3,
            self.approval_guard,
            self.config.swap_router_address,
            quoter_address=self.config.quoter_address,
            router_version=self.config.swap_router_version,
            factory=self.pool_factory(),
            deadline_seconds=self.config.deadline_seconds,
            default_slippage_bps=self.config.default_slippage_bps,
            read_attempts=self.config.read_retry_attempts,
        )
