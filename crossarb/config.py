# crossarb/config.py
"""
Cross-Chain Arbitrage Configuration
ASSDAQ: Uniswap V2 (Ethereum) <-> PumpSwap (Solana)

Tunables are plain module constants. Secrets and endpoints are read from the
environment by load_settings(), which fails fast when anything is missing.
"""

import os
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from crossarb.errors import ConfigurationError

# -----------------------------
# Load .env (config/.env first, then the working directory)
# -----------------------------
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / "config" / ".env"

if ENV_PATH.exists():
    load_dotenv(ENV_PATH)
else:
    load_dotenv()

# -----------------------------
# Token Configuration
# -----------------------------
# Ethereum
TOKEN_ETH_ADDRESS = "0xF4F53989d770458B659f8D094b8E31415F68A4Cf"     # ASSDAQ
WETH_ETH_ADDRESS = "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"
UNISWAP_PAIR_ADDRESS = "0x73F09132c1eA8BCfceBDc337361830E56dcb6645"  # ASSDAQ/WETH
UNISWAP_V2_ROUTER = "0x7a250d5630B4cF539739dF2C5dAcb4c659F2488D"

# Solana
TOKEN_SOL_MINT = "7Tx8qTXSakpfaSFjdztPGQ9n2uyT1eUkYz7gYxxopump"      # ASSDAQ
WETH_SOL_MINT = "7vfCXTUXx5WJV5JADk17DUJ4ksgau7utNKj4b963voxs"       # Wormhole WETH
WSOL_MINT = "So11111111111111111111111111111111111111112"
PUMPSWAP_POOL_ADDRESS = "8r2FgpMpJiLiHBV6tzM21TqoHgWny4vkvuaN6Rv2So2H"

# Decimals
TOKEN_ETH_DECIMALS = 18
TOKEN_SOL_DECIMALS = 6
ETH_DECIMALS = 18
WETH_SOL_DECIMALS = 8
SOL_DECIMALS = 9

# -----------------------------
# Route Search
# -----------------------------
SCAN_STEP_TOKENS = 10                     # coarse linear scan step
MAX_INVENTORY_FRACTION = Decimal("0.8")   # scan up to 80% of the smaller token balance
LIQUIDITY_CEILING_FRACTION = Decimal("0.9")  # stop when the other leg needs >90% of inventory

# -----------------------------
# Trading Parameters
# -----------------------------
PROFIT_THRESHOLD_SOL = Decimal("0.01")
ETH_SLIPPAGE_BPS = 100                    # 1% min-out tolerance on Uniswap
JUPITER_SLIPPAGE_BPS = 50                 # 0.5%
SWAP_DEADLINE_SECONDS = 600
ETH_SECONDS_PER_BLOCK = 12
ETH_CHAIN_ID = 1
GAS_LIMIT_SWAP = 250_000
GAS_LIMIT_APPROVAL = 60_000
MAX_GAS_PRICE_GWEI = 80

# -----------------------------
# Rebalance Policy
# -----------------------------
SOL_THRESHOLD_TO_SELL_WHEN_ABOVE_IT = Decimal("1.99")
SOL_TO_LEAVE = Decimal("1")
PERCENT_FOR_REBALANCE = Decimal("0.25")
TARGET_PERCENT = Decimal("0.5")
REBALANCE_DUST_THRESHOLD = Decimal("0.0001")

# -----------------------------
# Transaction Finality
# -----------------------------
FINALITY_POLL_INTERVAL_SECONDS = 1.0
FINALITY_HEIGHT_CHECK_SECONDS = 2.0
FINALITY_TIMEOUT_SECONDS = 30.0
BRIDGE_FINALITY_TIMEOUT_SECONDS = 120.0
ETH_FINALIZED_CONFIRMATIONS = 12

# -----------------------------
# Price Feed
# -----------------------------
CROSS_RATE_SOURCE = os.getenv("CROSS_RATE_SOURCE", "jupiter")   # jupiter | cmc
CROSS_RATE_MAX_AGE_SECONDS = 60.0
CMC_REFRESH_EVERY_CALLS = 100

# -----------------------------
# Loop
# -----------------------------
SLEEP_BETWEEN_ITERATIONS_SECONDS = 30.0
STATE_FETCH_TIMEOUT_SECONDS = 20.0
HTTP_TIMEOUT_SECONDS = 10.0

# -----------------------------
# Logging
# -----------------------------
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# -----------------------------
# Deployment Mode
# -----------------------------
DRY_RUN_MODE = os.getenv("DRY_RUN_MODE", "true").lower() != "false"


@dataclass(frozen=True)
class Settings:
    """Endpoints and credentials. Only built through load_settings()."""
    eth_rpc_endpoint: str
    solana_rpc_endpoint: str
    jupiter_api_url: str
    eth_private_key: str
    solana_public_key: str
    cmc_api_key: Optional[str] = None


_REQUIRED = {
    "eth_rpc_endpoint": "ETH_RPC_ENDPOINT",
    "solana_rpc_endpoint": "SOLANA_RPC_ENDPOINT",
    "jupiter_api_url": "JUPITER_API_URL",
    "eth_private_key": "ETH_PRIVATE_KEY",
    "solana_public_key": "SOLANA_PUBLIC_KEY",
}


def load_settings(environ=None) -> Settings:
    """
    Read endpoints and credentials from the environment.
    Raises ConfigurationError listing every missing variable.
    """
    environ = os.environ if environ is None else environ

    values = {}
    missing = []
    for field_name, env_name in _REQUIRED.items():
        value = environ.get(env_name)
        if not value:
            missing.append(env_name)
        values[field_name] = value

    if missing:
        raise ConfigurationError(
            f"{', '.join(missing)} not set in .env",
            details={"missing": missing},
        )

    cmc_api_key = environ.get("CMC_API_KEY")
    if environ.get("CROSS_RATE_SOURCE", CROSS_RATE_SOURCE) == "cmc" and not cmc_api_key:
        raise ConfigurationError("CMC_API_KEY is required when CROSS_RATE_SOURCE=cmc")

    return Settings(cmc_api_key=cmc_api_key, **values)
