"""
Tests for config.py module.

Covers:
- ChainConfig presets (Base Sepolia, Ethereum Sepolia, Base)
- get_chain_config()
- OrchestratorConfig validation, chain defaults, from_env()
"""

import os

import pytest

from config import (
    BASE,
    BASE_SEPOLIA,
    CHAINS,
    DEFAULT_DEADLINE_SECONDS,
    DEFAULT_SLIPPAGE_BPS,
    ETH_SEPOLIA,
    FEE_TIERS,
    OrchestratorConfig,
    get_chain_config,
)
from aivp_liquidity.utils import DEFAULT_GAS_LIMITS

ENV_KEYS = [
    "CHAIN_ID", "RPC_URL", "BASE_SEPOLIA_RPC_URL", "ETH_SEPOLIA_RPC_URL", "BASE_RPC_URL",
    "PRIVATE_KEY", "UNISWAP_FACTORY_ADDRESS", "POSITION_MANAGER_ADDRESS",
    "UNISWAP_ROUTER_ADDRESS", "QUOTER_ADDRESS", "SWAP_ROUTER_VERSION",
    "CONFIRMATION_TIMEOUT", "DEADLINE_SECONDS", "SLIPPAGE_BPS", "GAS_PRICE_GWEI",
    "STATE_JOURNAL_PATH",
]

CUSTOM_FACTORY = "0x3333333333333333333333333333333333333333"


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Пустое окружение; путь к несуществующему .env (dotenv ничего не найдёт)."""
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    yield str(tmp_path / "missing.env")
    # load_dotenv пишет прямо в os.environ
    for key in ENV_KEYS:
        os.environ.pop(key, None)


# ============================================================
# Chains
# ============================================================

class TestChains:

    def test_registry(self):
        assert set(CHAINS) == {84532, 11155111, 8453}
        assert CHAINS[84532] is BASE_SEPOLIA

    def test_base_sepolia_addresses(self):
        assert BASE_SEPOLIA.pool_factory == "0x4752ba5DBc23f44D87826276BF6Fd6b1C372aD24"
        assert BASE_SEPOLIA.position_manager == "0x27F971cb582BF9E50F397e4d29a5C7A34f11faA2"
        assert BASE_SEPOLIA.swap_router_version == "v2"

    def test_each_chain_has_own_rpc_env(self):
        envs = {c.rpc_env for c in (BASE_SEPOLIA, ETH_SEPOLIA, BASE)}
        assert len(envs) == 3

    def test_get_chain_config(self):
        assert get_chain_config(8453) is BASE

    def test_get_chain_config_unknown(self):
        with pytest.raises(ValueError):
            get_chain_config(1)

    def test_fee_tiers(self):
        assert FEE_TIERS["MEDIUM"] == 3000


# ============================================================
# OrchestratorConfig
# ============================================================

class TestOrchestratorConfig:

    def test_chain_defaults_filled(self):
        config = OrchestratorConfig(rpc_url="http://localhost:8545")

        assert config.chain_id == BASE_SEPOLIA.chain_id
        assert config.factory_address == BASE_SEPOLIA.pool_factory
        assert config.position_manager_address == BASE_SEPOLIA.position_manager
        assert config.swap_router_address == BASE_SEPOLIA.swap_router
        assert config.quoter_address == BASE_SEPOLIA.quoter
        assert config.deadline_seconds == DEFAULT_DEADLINE_SECONDS
        assert config.default_slippage_bps == DEFAULT_SLIPPAGE_BPS
        assert config.gas_limits == DEFAULT_GAS_LIMITS

    def test_explicit_address_wins(self):
        config = OrchestratorConfig(rpc_url="http://x", factory_address=CUSTOM_FACTORY)
        assert config.factory_address == CUSTOM_FACTORY

    def test_unknown_chain_keeps_empty_addresses(self):
        config = OrchestratorConfig(rpc_url="http://x", chain_id=31337)
        assert config.factory_address == ""

    def test_gas_limits_not_shared(self):
        a = OrchestratorConfig(rpc_url="http://x")
        a.gas_limits['mint'] = 1
        assert OrchestratorConfig(rpc_url="http://x").gas_limits['mint'] == DEFAULT_GAS_LIMITS['mint']

    def test_gas_price_wei(self):
        assert OrchestratorConfig(rpc_url="http://x").gas_price_wei is None
        assert OrchestratorConfig(rpc_url="http://x", gas_price_gwei=1.5).gas_price_wei == 1_500_000_000

    @pytest.mark.parametrize("kwargs", [
        {"rpc_url": ""},
        {"rpc_url": "http://x", "default_slippage_bps": 10_000},
        {"rpc_url": "http://x", "default_slippage_bps": -1},
        {"rpc_url": "http://x", "deadline_seconds": 0},
        {"rpc_url": "http://x", "swap_router_version": "v3"},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            OrchestratorConfig(**kwargs)


class TestFromEnv:
    """Сборка из переменных окружения и .env."""

    def test_public_rpc_by_default(self, clean_env):
        config = OrchestratorConfig.from_env(clean_env)

        assert config.rpc_url == BASE_SEPOLIA.rpc_url
        assert config.private_key is None
        assert config.journal_path is None

    def test_rpc_url_wins(self, clean_env, monkeypatch):
        monkeypatch.setenv("RPC_URL", "http://node:8545")
        monkeypatch.setenv("BASE_SEPOLIA_RPC_URL", "http://other")

        assert OrchestratorConfig.from_env(clean_env).rpc_url == "http://node:8545"

    def test_chain_specific_rpc(self, clean_env, monkeypatch):
        monkeypatch.setenv("CHAIN_ID", "11155111")
        monkeypatch.setenv("ETH_SEPOLIA_RPC_URL", "http://sepolia-node")

        config = OrchestratorConfig.from_env(clean_env)

        assert config.chain_id == 11155111
        assert config.rpc_url == "http://sepolia-node"
        assert config.factory_address == ETH_SEPOLIA.pool_factory

    def test_numeric_settings(self, clean_env, monkeypatch):
        monkeypatch.setenv("DEADLINE_SECONDS", "600")
        monkeypatch.setenv("SLIPPAGE_BPS", "100")
        monkeypatch.setenv("CONFIRMATION_TIMEOUT", "90")
        monkeypatch.setenv("GAS_PRICE_GWEI", "0.1")
        monkeypatch.setenv("SWAP_ROUTER_VERSION", "v1")

        config = OrchestratorConfig.from_env(clean_env)

        assert config.deadline_seconds == 600
        assert config.default_slippage_bps == 100
        assert config.confirmation_timeout == 90.0
        assert config.gas_price_wei == 100_000_000
        assert config.swap_router_version == "v1"

    def test_address_overrides(self, clean_env, monkeypatch):
        monkeypatch.setenv("UNISWAP_FACTORY_ADDRESS", CUSTOM_FACTORY)
        assert OrchestratorConfig.from_env(clean_env).factory_address == CUSTOM_FACTORY

    def test_keyword_overrides(self, clean_env, monkeypatch):
        monkeypatch.setenv("CHAIN_ID", "8453")

        config = OrchestratorConfig.from_env(clean_env, chain_id=84532, journal_path="/tmp/j.json")

        assert config.chain_id == 84532
        assert config.journal_path == "/tmp/j.json"

    def test_none_overrides_ignored(self, clean_env, monkeypatch):
        monkeypatch.setenv("STATE_JOURNAL_PATH", "journal.json")

        config = OrchestratorConfig.from_env(clean_env, chain_id=None, journal_path=None)

        assert config.chain_id == 84532
        assert config.journal_path == "journal.json"

    def test_env_file_loaded(self, clean_env, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text(
            "RPC_URL=http://from-file:8545\n"
            "PRIVATE_KEY=0x" + "11" * 32 + "\n"
            "SLIPPAGE_BPS=25\n",
            encoding="utf-8",
        )

        config = OrchestratorConfig.from_env(str(env_file))

        assert config.rpc_url == "http://from-file:8545"
        assert config.private_key == "0x" + "11" * 32
        assert config.default_slippage_bps == 25

    def test_unknown_chain_without_rpc(self, clean_env, monkeypatch):
        monkeypatch.setenv("CHAIN_ID", "31337")
        with pytest.raises(ValueError):
            OrchestratorConfig.from_env(clean_env)

    def test_invalid_slippage_env(self, clean_env, monkeypatch):
        monkeypatch.setenv("SLIPPAGE_BPS", "20000")
        with pytest.raises(ValueError):
            OrchestratorConfig.from_env(clean_env)
