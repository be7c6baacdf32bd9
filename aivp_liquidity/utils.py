"""
Utility classes for transaction management.

Includes:
- NonceManager: Thread-safe nonce tracking shared by every orchestrator
- TransactionSender: Build -> sign -> send -> wait cycle with error mapping
- read_call / read_parallel: Read-only contract calls with transparent retries
- erc20_transfers: ERC20 Transfer amounts from a receipt
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from .errors import ConfirmationTimeout, DeadlineExpired, OrchestrationError, RemoteRejection, StepFailed

logger = logging.getLogger(__name__)

# keccak("Transfer(address,address,uint256)"), shared by ERC20 and ERC721
TRANSFER_TOPIC = Web3.keccak(text="Transfer(address,address,uint256)")

# Revert reason used by Uniswap V3 periphery `checkDeadline` modifier
DEADLINE_REVERT_REASON = "Transaction too old"

# Default gas limits by operation type
DEFAULT_GAS_LIMITS = {
    'approve': 100_000,
    'create_pool': 5_000_000,
    'initialize_pool': 500_000,
    'mint': 1_000_000,
    'decrease_liquidity': 1_000_000,
    'collect': 1_000_000,
    'swap': 1_000_000,
}


def read_call(
    contract_function,
    attempts: int = 3,
    block_identifier: Any = 'latest',
    transaction: Optional[dict] = None
) -> Any:
    """
    Execute a read-only contract call, retrying transport failures.

    `transaction` sets call context such as {"from": owner} for simulations
    of calls that check msg.sender.

    Only connection-level errors (OSError, which covers requests'
    ConnectionError/Timeout) are retried. Contract reverts surface at once.
    """
    retryer = Retrying(
        stop=stop_after_attempt(max(1, attempts)),
        wait=wait_exponential(multiplier=0.2, max=2),
        retry=retry_if_exception_type(OSError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    kwargs = {'block_identifier': block_identifier}
    if transaction:
        kwargs['transaction'] = transaction
    return retryer(contract_function.call, **kwargs)


def read_parallel(calls: Dict[str, Any], attempts: int = 3) -> Dict[str, Any]:
    """
    Run independent read calls concurrently.

    Args:
        calls: name -> contract function (e.g. {"fee": pool.functions.fee()})

    Returns:
        name -> decoded result
    """
    if not calls:
        return {}
    with ThreadPoolExecutor(max_workers=len(calls)) as executor:
        futures = {
            name: executor.submit(read_call, fn, attempts)
            for name, fn in calls.items()
        }
        return {name: future.result() for name, future in futures.items()}


def _topic_address(topic) -> str:
    return '0x' + bytes(topic).hex()[-40:]


def erc20_transfers(
    receipt,
    token: str,
    sender: Optional[str] = None,
    recipient: Optional[str] = None
) -> List[int]:
    """
    Amounts of ERC20 Transfer events of `token` in a receipt.

    ERC721 Transfer shares the signature but indexes tokenId as a fourth
    topic, so only logs with exactly three topics are counted.
    """
    token_lower = token.lower()
    amounts = []
    for log_entry in receipt.get('logs', []):
        if log_entry.get('address', '').lower() != token_lower:
            continue

        topics = log_entry.get('topics', [])
        if len(topics) != 3 or bytes(topics[0]) != bytes(TRANSFER_TOPIC):
            continue
        if sender and _topic_address(topics[1]) != sender.lower():
            continue
        if recipient and _topic_address(topics[2]) != recipient.lower():
            continue

        data = log_entry.get('data', b'')
        if isinstance(data, (bytes, bytearray)):
            amounts.append(int.from_bytes(data, 'big'))
        else:
            amounts.append(int(data, 16) if data.startswith('0x') else int(data))
    return amounts


class NonceManager:
    """
    Thread-safe nonce manager for a single signing identity.

    Every transaction issued by the orchestrators takes its nonce from here,
    so nonces stay monotonic even when approvals run concurrently.

    Usage:
        nonce_mgr = NonceManager(w3, account_address)
        nonce = nonce_mgr.get_next_nonce()
        # ... send ...
        nonce_mgr.confirm_transaction(nonce)   # tx left the process
        nonce_mgr.release_nonce(nonce)         # tx was never sent
    """

    def __init__(self, w3: Web3, account_address: str, sync_interval: float = 30.0):
        self.w3 = w3
        self.account_address = Web3.to_checksum_address(account_address)
        self._lock = threading.Lock()
        self._current_nonce: Optional[int] = None
        self._pending_nonces: set = set()
        self._released_nonces: set = set()
        self._last_sync_time: float = 0
        self._sync_interval = sync_interval

    def _sync_nonce(self) -> int:
        return self.w3.eth.get_transaction_count(self.account_address, 'pending')

    def get_next_nonce(self, force_sync: bool = False) -> int:
        """Allocate the next nonce, re-syncing with the chain when stale."""
        with self._lock:
            now = time.time()
            if (self._current_nonce is None or force_sync or
                    now - self._last_sync_time > self._sync_interval):
                chain_nonce = self._sync_nonce()
                self._pending_nonces = {n for n in self._pending_nonces if n >= chain_nonce}
                self._released_nonces = {n for n in self._released_nonces if n >= chain_nonce}
                if self._current_nonce is None:
                    self._current_nonce = chain_nonce
                else:
                    # External transactions from the same key move the chain nonce ahead
                    self._current_nonce = max(self._current_nonce, chain_nonce)
                self._last_sync_time = now
                logger.debug(f"Synced nonce with chain: {self._current_nonce}")

            if self._released_nonces:
                # A gap below already broadcast nonces blocks them, fill it first
                nonce = min(self._released_nonces)
                self._released_nonces.discard(nonce)
            else:
                nonce = self._current_nonce
                self._current_nonce += 1
            self._pending_nonces.add(nonce)
            logger.debug(f"Allocated nonce: {nonce}, pending: {len(self._pending_nonces)}")
            return nonce

    def confirm_transaction(self, nonce: int):
        """Mark a nonce as consumed (transaction was broadcast)."""
        with self._lock:
            self._pending_nonces.discard(nonce)

    def release_nonce(self, nonce: int, resync: bool = False):
        """
        Give back a nonce whose transaction never left the process.

        The most recently allocated nonce is simply rewound. An older one
        is kept and handed out by the next get_next_nonce(), otherwise
        transactions already sent above it would never be mined.

        Args:
            nonce: Nonce to give back
            resync: Re-read the chain nonce on the next allocation
                    (the node rejected the transaction, e.g. "nonce too low")
        """
        with self._lock:
            self._pending_nonces.discard(nonce)
            if self._current_nonce is not None:
                if nonce == self._current_nonce - 1:
                    self._current_nonce = nonce
                    while self._current_nonce - 1 in self._released_nonces:
                        self._current_nonce -= 1
                        self._released_nonces.discard(self._current_nonce)
                elif nonce < self._current_nonce:
                    self._released_nonces.add(nonce)
            if resync:
                self._last_sync_time = 0
            logger.debug(f"Released nonce: {nonce}, current: {self._current_nonce}")

    def reset(self):
        with self._lock:
            self._current_nonce = None
            self._pending_nonces.clear()
            self._released_nonces.clear()
            self._last_sync_time = 0

    def get_pending_count(self) -> int:
        with self._lock:
            return len(self._pending_nonces)


class TransactionSender:
    """
    Request/confirm cycle for one signing identity.

    send() blocks until the transaction is mined and returns the receipt.
    Failures are mapped onto the orchestration error taxonomy:
    - revert (status != 1) -> RemoteRejection / DeadlineExpired
    - receipt wait timeout  -> ConfirmationTimeout
    - node refusal (Web3RPCError etc.) -> RemoteRejection
    Nothing is retried here.
    """

    def __init__(
        self,
        w3: Web3,
        account,
        nonce_manager: NonceManager = None,
        confirmation_timeout: float = 300,
        gas_price_wei: Optional[int] = None,
        gas_limits: Optional[Dict[str, int]] = None
    ):
        self.w3 = w3
        self.account = account
        self.nonce_manager = nonce_manager
        self.confirmation_timeout = confirmation_timeout
        self.gas_price_wei = gas_price_wei
        self.gas_limits = dict(DEFAULT_GAS_LIMITS)
        if gas_limits:
            self.gas_limits.update(gas_limits)

    @property
    def address(self) -> str:
        return self.account.address

    def _get_gas_params(self) -> dict:
        """Fixed gas price if configured, else EIP-1559 with legacy fallback."""
        if self.gas_price_wei is not None:
            return {'gasPrice': self.gas_price_wei}
        try:
            max_priority_fee = self.w3.eth.max_priority_fee
            base_fee = self.w3.eth.get_block('latest')['baseFeePerGas']
            return {
                'maxPriorityFeePerGas': max_priority_fee,
                'maxFeePerGas': base_fee * 2 + max_priority_fee,
            }
        except Exception as e:
            logger.debug(f"EIP-1559 fee params unavailable ({e}), using legacy gasPrice")
            return {'gasPrice': self.w3.eth.gas_price}

    def _next_nonce(self) -> int:
        if self.nonce_manager:
            return self.nonce_manager.get_next_nonce()
        return self.w3.eth.get_transaction_count(self.account.address, 'pending')

    def send(
        self,
        contract_function,
        step: str,
        gas_type: str = None,
        value: int = 0,
        deadline: Optional[int] = None
    ) -> dict:
        """
        Build, sign, send and wait for a contract transaction.

        Args:
            contract_function: Bound contract function (contract.functions.x(...))
            step: Human-readable step name for logs and errors
            gas_type: Key in gas_limits (defaults to step)
            value: Native value to attach
            deadline: Unix deadline embedded in the call, if any

        Returns:
            Transaction receipt
        """
        if deadline is not None and time.time() > deadline:
            raise DeadlineExpired(f"{step}: deadline {deadline} already passed, transaction not sent")

        gas = self.gas_limits.get(gas_type or step, 1_000_000)
        nonce = self._next_nonce()
        tx_sent = False
        node_rejected = False
        tx_hash = None
        try:
            tx_params = {
                'from': self.account.address,
                'nonce': nonce,
                'gas': gas,
                'value': value,
            }
            tx_params.update(self._get_gas_params())
            tx = contract_function.build_transaction(tx_params)

            signed = self.account.sign_transaction(tx)
            tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
            tx_sent = True
            logger.info(f"[{step}] TX sent: {tx_hash.hex()} (nonce={nonce})")

            receipt = self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.confirmation_timeout
            )
        except TimeExhausted as e:
            raise ConfirmationTimeout(
                f"{step}: transaction {tx_hash.hex()} not confirmed within {self.confirmation_timeout}s",
                tx_hash=tx_hash.hex(),
                timeout=self.confirmation_timeout,
            ) from e
        except ContractLogicError as e:
            reason = _revert_message(e)
            raise self._rejection(step, reason, None, deadline) from e
        except Web3Exception as e:
            # Node refused the transaction (insufficient funds, nonce too low, ...)
            node_rejected = not tx_sent
            reason = _rpc_error_message(e)
            raise RemoteRejection(
                f"{step}: rejected by node: {reason}",
                tx_hash=tx_hash.hex() if tx_sent else None,
                reason=reason,
            ) from e
        finally:
            if self.nonce_manager:
                if tx_sent:
                    self.nonce_manager.confirm_transaction(nonce)
                else:
                    self.nonce_manager.release_nonce(nonce, resync=node_rejected)

        if receipt['status'] != 1:
            reason = self._replay_revert_reason(tx, receipt)
            block_time = self._block_timestamp(receipt) if deadline is not None else None
            expired = deadline is not None and block_time is not None and block_time > deadline
            raise self._rejection(step, reason, tx_hash.hex(), deadline, expired)

        logger.info(f"[{step}] TX confirmed: {tx_hash.hex()} gasUsed={receipt.get('gasUsed')}")
        return receipt

    @staticmethod
    def _rejection(step: str, reason: Optional[str], tx_hash: Optional[str],
                   deadline: Optional[int], expired: bool = False) -> RemoteRejection:
        if expired or (reason and DEADLINE_REVERT_REASON in reason):
            return DeadlineExpired(
                f"{step}: rejected, deadline {deadline} passed"
                + (f" (TX: {tx_hash})" if tx_hash else ""),
                tx_hash=tx_hash,
                reason=reason,
            )
        return RemoteRejection(
            f"{step}: transaction reverted"
            + (f" (TX: {tx_hash})" if tx_hash else "")
            + (f": {reason}" if reason else ""),
            tx_hash=tx_hash,
            reason=reason,
        )

    def _replay_revert_reason(self, tx: dict, receipt) -> Optional[str]:
        """Re-run a reverted transaction as eth_call at its block to get the reason."""
        call = {k: tx[k] for k in ('from', 'to', 'data', 'value') if k in tx}
        try:
            self.w3.eth.call(call, receipt.get('blockNumber'))
        except ContractLogicError as e:
            return _revert_message(e)
        except Exception as e:
            logger.debug(f"Revert reason replay failed: {e}")
        return None

    def _block_timestamp(self, receipt) -> Optional[int]:
        try:
            return self.w3.eth.get_block(receipt['blockNumber'])['timestamp']
        except Exception as e:
            logger.debug(f"Failed to read block timestamp: {e}")
            return None


def _revert_message(error: ContractLogicError) -> str:
    message = getattr(error, 'message', None) or str(error)
    return message.replace("execution reverted: ", "").strip()


def _rpc_error_message(error: Web3Exception) -> str:
    rpc_response = getattr(error, 'rpc_response', None)
    if isinstance(rpc_response, dict) and isinstance(rpc_response.get('error'), dict):
        return rpc_response['error'].get('message') or str(error)
    return str(error)


def run_step(name: str, fn, *args, **kwargs):
    """
    Run one orchestration step, naming it in the failure.

    Errors are wrapped in StepFailed with the underlying error as the cause.
    DeadlineExpired propagates unwrapped: callers handle an expired
    deadline separately from other rejections.
    """
    try:
        return fn(*args, **kwargs)
    except DeadlineExpired:
        logger.error(f"[{name}] deadline expired")
        raise
    except (OrchestrationError, OSError) as e:
        logger.error(f"[{name}] failed: {e}")
        raise StepFailed(name, e) from e
