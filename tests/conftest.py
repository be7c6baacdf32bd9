"""
Shared fixtures for all tests.

Все вызовы Web3 замоканы - тесты работают без подключения к блокчейну.
Адреса состоят только из цифр, поэтому checksum-форма совпадает с исходной.
"""

import pytest
from unittest.mock import Mock, MagicMock


class MockWeb3:
    """Переиспользуемый мок Web3 для тестов."""

    def __init__(self, initial_nonce: int = 100):
        self._nonce = initial_nonce
        self.eth = MagicMock()
        self.eth.get_transaction_count = MagicMock(return_value=self._nonce)
        self.eth.gas_price = 5_000_000_000  # 5 gwei
        self.eth.max_priority_fee = 1_000_000_000
        self.eth.chain_id = 84532
        self.eth.block_number = 20_000_000
        self.eth.get_block = MagicMock(return_value={
            'baseFeePerGas': 2_000_000_000,
            'timestamp': 1_700_000_000,
        })
        self.eth.send_raw_transaction = MagicMock(return_value=b'\x12\x34' * 16)
        self.eth.wait_for_transaction_receipt = MagicMock(return_value={
            'status': 1,
            'gasUsed': 300_000,
            'logs': [],
            'transactionHash': b'\x12\x34' * 16,
            'blockNumber': 20_000_000,
        })
        self.eth.call = MagicMock(return_value=b'\x00' * 32)
        self.eth.contract = MagicMock()

    def set_nonce(self, nonce: int):
        self._nonce = nonce
        self.eth.get_transaction_count.return_value = nonce


@pytest.fixture
def mock_w3():
    """Мок Web3 instance."""
    return MockWeb3()


@pytest.fixture
def w3_factory():
    """Фабрика MockWeb3 с заданным начальным nonce."""
    return MockWeb3


@pytest.fixture
def mock_account():
    """Мок LocalAccount."""
    account = Mock()
    account.address = ACCOUNT
    account.sign_transaction = Mock(return_value=Mock(raw_transaction=b'signed_tx'))
    return account


@pytest.fixture
def mock_sender():
    """Мок TransactionSender: send() возвращает успешный receipt."""
    sender = Mock()
    sender.address = ACCOUNT
    sender.send = Mock(return_value={
        'status': 1,
        'gasUsed': 200_000,
        'logs': [],
        'transactionHash': b'\xab\xcd' * 16,
        'blockNumber': 20_000_000,
    })
    return sender


@pytest.fixture
def mock_receipt_success():
    """Успешный receipt транзакции."""
    return {
        'status': 1,
        'gasUsed': 300_000,
        'logs': [],
        'transactionHash': b'\x12\x34' * 16,
        'blockNumber': 20_000_000,
    }


@pytest.fixture
def mock_receipt_fail():
    """Неуспешный receipt транзакции."""
    return {
        'status': 0,
        'gasUsed': 300_000,
        'logs': [],
        'transactionHash': b'\xde\xad' * 16,
        'blockNumber': 20_000_000,
    }


# Тестовые адреса (TOKEN_A < TOKEN_B по числовому значению)
ACCOUNT = "0x1234567890123456789012345678901234567890"
TOKEN_A = "0x1111111111111111111111111111111111111111"
TOKEN_B = "0x9999999999999999999999999999999999999999"
FACTORY = "0x3333333333333333333333333333333333333333"
POOL = "0x5555555555555555555555555555555555555555"
QUOTER = "0x6666666666666666666666666666666666666666"
POSITION_MANAGER = "0x7777777777777777777777777777777777777777"
ROUTER = "0x8888888888888888888888888888888888888888"
ZERO = "0x0000000000000000000000000000000000000000"
