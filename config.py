"""
Configuration for AIVP Liquidity Orchestration

Конфигурация сетей (Uniswap V3 на Base / Base Sepolia / Sepolia) и
параметры оркестратора, собираемые из .env.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Optional

from dotenv import load_dotenv

from aivp_liquidity.utils import DEFAULT_GAS_LIMITS


@dataclass
class ChainConfig:
    """Конфигурация сети."""
    chain_id: int
    rpc_url: str
    explorer_url: str
    native_token: str
    pool_factory: str
    position_manager: str
    swap_router: str
    quoter: str
    swap_router_version: str = "v2"  # "v1" = SwapRouter, "v2" = SwapRouter02
    rpc_env: str = "RPC_URL"         # переменная окружения с RPC для этой сети


# ============================================================
# CHAIN CONFIGURATIONS
# ============================================================

# Base Sepolia (основная тестовая сеть AIVP)
BASE_SEPOLIA = ChainConfig(
    chain_id=84532,
    rpc_url="https://sepolia.base.org",
    explorer_url="https://sepolia.basescan.org",
    native_token="ETH",
    pool_factory="0x4752ba5DBc23f44D87826276BF6Fd6b1C372aD24",
    position_manager="0x27F971cb582BF9E50F397e4d29a5C7A34f11faA2",
    swap_router="0x94cC0AaC535CCDB3C01d6787D6413C739ae12bc4",  # SwapRouter02
    quoter="0xC5290058841028F1614F3A6F0F5816cAd0df5E27",       # QuoterV2
    rpc_env="BASE_SEPOLIA_RPC_URL",
)

# Ethereum Sepolia
ETH_SEPOLIA = ChainConfig(
    chain_id=11155111,
    rpc_url="https://ethereum-sepolia-rpc.publicnode.com",
    explorer_url="https://sepolia.etherscan.io",
    native_token="ETH",
    pool_factory="0x0227628f3F023bb0B980b67D528571c95c6DaC1c",
    position_manager="0x1238536071E1c677A632429e3655c799b22cDA52",
    swap_router="0x3bFA4769FB09eefC5a80d6E87c3B9C650f7Ae48E",  # SwapRouter02
    quoter="0xEd1f6473345F45b75F8179591dd5bA1888cf2FB3",       # QuoterV2
    rpc_env="ETH_SEPOLIA_RPC_URL",
)

# Base Mainnet
# Note: mainnet.base.org has strict rate limits, use alternative RPC if needed
BASE = ChainConfig(
    chain_id=8453,
    rpc_url="https://base.llamarpc.com",
    explorer_url="https://basescan.org",
    native_token="ETH",
    pool_factory="0x33128a8fC17869897dcE68Ed026d694621f6FDfD",
    position_manager="0x03a520b32C04BF3bEEf7BEb72E919cf822Ed34f1",
    swap_router="0x2626664c2603336E57B271c5C0b26F421741e481",  # SwapRouter02
    quoter="0x3d4e44Eb1374240CE5F1B871ab261CD16335B76a",       # QuoterV2
    rpc_env="BASE_RPC_URL",
)

CHAINS: Dict[int, ChainConfig] = {
    BASE_SEPOLIA.chain_id: BASE_SEPOLIA,
    ETH_SEPOLIA.chain_id: ETH_SEPOLIA,
    BASE.chain_id: BASE,
}

# ============================================================
# FEE TIERS
# ============================================================

FEE_TIERS = {
    "LOWEST": 100,    # 0.01%
    "LOW": 500,       # 0.05%
    "MEDIUM": 3000,   # 0.30% - стандартный Uniswap tier
    "HIGH": 10000,    # 1.00%
}

# ============================================================
# DEFAULT SETTINGS
# ============================================================

DEFAULT_FEE = 3000
DEFAULT_DEADLINE_SECONDS = 300
DEFAULT_SLIPPAGE_BPS = 50  # 0.5%
DEFAULT_CONFIRMATION_TIMEOUT = 300
DEFAULT_READ_RETRY_ATTEMPTS = 3


def get_chain_config(chain_id: int) -> ChainConfig:
    """Получение конфигурации по chain_id."""
    if chain_id not in CHAINS:
        raise ValueError(f"Unknown chain_id: {chain_id}")
    return CHAINS[chain_id]


@dataclass
class OrchestratorConfig:
    """
    Параметры оркестратора для одного подписанта и одной сети.

    Явно заданные адреса перекрывают адреса сети по умолчанию.
    """
    rpc_url: str
    private_key: Optional[str] = None
    chain_id: int = BASE_SEPOLIA.chain_id
    factory_address: str = ""
    position_manager_address: str = ""
    swap_router_address: str = ""
    quoter_address: str = ""
    swap_router_version: str = "v2"
    confirmation_timeout: float = DEFAULT_CONFIRMATION_TIMEOUT
    deadline_seconds: int = DEFAULT_DEADLINE_SECONDS
    default_slippage_bps: int = DEFAULT_SLIPPAGE_BPS
    gas_limits: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_GAS_LIMITS))
    gas_price_gwei: Optional[float] = None
    read_retry_attempts: int = DEFAULT_READ_RETRY_ATTEMPTS
    journal_path: Optional[str] = None

    def __post_init__(self):
        if not self.rpc_url:
            raise ValueError("RPC URL is required")
        if not 0 <= self.default_slippage_bps < 10_000:
            raise ValueError(f"default_slippage_bps must be in [0, 10000), got {self.default_slippage_bps}")
        if self.deadline_seconds <= 0:
            raise ValueError(f"deadline_seconds must be positive, got {self.deadline_seconds}")
        if self.swap_router_version not in ("v1", "v2"):
            raise ValueError(f"Unknown swap router version: {self.swap_router_version}")

        chain = CHAINS.get(self.chain_id)
        if chain:
            self.factory_address = self.factory_address or chain.pool_factory
            self.position_manager_address = self.position_manager_address or chain.position_manager
            self.swap_router_address = self.swap_router_address or chain.swap_router
            self.quoter_address = self.quoter_address or chain.quoter

    @property
    def gas_price_wei(self) -> Optional[int]:
        if self.gas_price_gwei is None:
            return None
        return int(self.gas_price_gwei * 10**9)

    @classmethod
    def from_env(cls, env_file: Optional[str] = None, **overrides) -> 'OrchestratorConfig':
        """
        Сборка конфигурации из переменных окружения (.env через python-dotenv).

        RPC: RPC_URL, иначе переменная сети (BASE_SEPOLIA_RPC_URL, ...),
        иначе публичный RPC сети по умолчанию.
        """
        load_dotenv(env_file)

        chain_id = int(overrides.pop('chain_id', None) or os.getenv("CHAIN_ID") or BASE_SEPOLIA.chain_id)
        chain = CHAINS.get(chain_id)

        rpc_url = os.getenv("RPC_URL")
        if not rpc_url and chain:
            rpc_url = os.getenv(chain.rpc_env) or chain.rpc_url

        gas_price = os.getenv("GAS_PRICE_GWEI")
        values = dict(
            rpc_url=rpc_url,
            private_key=os.getenv("PRIVATE_KEY"),
            chain_id=chain_id,
            factory_address=os.getenv("UNISWAP_FACTORY_ADDRESS", ""),
            position_manager_address=os.getenv("POSITION_MANAGER_ADDRESS", ""),
            swap_router_address=os.getenv("UNISWAP_ROUTER_ADDRESS", ""),
            quoter_address=os.getenv("QUOTER_ADDRESS", ""),
            swap_router_version=os.getenv("SWAP_ROUTER_VERSION", "v2"),
            confirmation_timeout=float(os.getenv("CONFIRMATION_TIMEOUT", DEFAULT_CONFIRMATION_TIMEOUT)),
            deadline_seconds=int(os.getenv("DEADLINE_SECONDS", DEFAULT_DEADLINE_SECONDS)),
            default_slippage_bps=int(os.getenv("SLIPPAGE_BPS", DEFAULT_SLIPPAGE_BPS)),
            gas_price_gwei=float(gas_price) if gas_price else None,
            journal_path=os.getenv("STATE_JOURNAL_PATH") or None,
        )
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
