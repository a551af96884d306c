# crossarb/main.py
"""
Cross-Chain Arbitrage Bot Entry Point
ASSDAQ: Uniswap V2 (Ethereum) <-> PumpSwap (Solana)

Run with: python -m crossarb.main --mode scan

MODES:
1. scan:    fetch, decide and report; nothing is submitted (safe)
2. execute: submit rebalances and both arbitrage legs
            (requires DRY_RUN_MODE=false, a Solana signer and a bridge)
"""

import argparse
import logging
import signal
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from web3 import Web3

from crossarb.arbitrage_calculator import ArbitrageCalculator
from crossarb.config import CROSS_RATE_SOURCE, DRY_RUN_MODE, LOG_LEVEL, Settings, load_settings
from crossarb.errors import ConfigurationError
from crossarb.ethereum import (
    EthereumBalances,
    EthereumFinality,
    UniswapV2Reserves,
    UniswapV2SwapService,
)
from crossarb.events import LoggingEventSink
from crossarb.finality import TransactionFinalityPoller
from crossarb.interfaces import BridgeService, TransactionSigner
from crossarb.jupiter import JupiterClient, JupiterSwapService
from crossarb.orchestrator import ArbitrageOrchestrator, BotMode, Venues
from crossarb.price_feed import build_cross_rate_feed
from crossarb.rebalance import RebalancePolicy
from crossarb.solana import PumpSwapReserves, SolanaBalances, SolanaFinality, SolanaRpcClient

logger = logging.getLogger(__name__)


# =============================================================================
# LOGGING SETUP
# =============================================================================

LOG_DIR = Path(__file__).parent.parent / "logs"


def setup_logging(level: str = LOG_LEVEL, log_dir: Path = LOG_DIR):
    log_dir.mkdir(exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_dir / f"crossarb_{datetime.now().strftime('%Y%m%d')}.log"),
        ],
    )


# =============================================================================
# WIRING
# =============================================================================

def build_orchestrator(
    settings: Settings,
    mode: str = BotMode.SCAN_ONLY,
    signer: Optional[TransactionSigner] = None,
    bridge: Optional[BridgeService] = None,
    cross_rate_source: str = CROSS_RATE_SOURCE,
) -> ArbitrageOrchestrator:
    """
    Connect every collaborator. Execute mode needs a Solana signer and a
    bridge service; wallet custody and bridging are provided by the deployment.
    """
    if mode == BotMode.EXECUTE and (signer is None or bridge is None):
        raise ConfigurationError(
            "execute mode needs a Solana transaction signer and a bridge service",
            details={"signer": signer is not None, "bridge": bridge is not None},
        )

    logger.info("Connecting to Ethereum RPC...")
    w3 = Web3(Web3.HTTPProvider(settings.eth_rpc_endpoint))
    if not w3.is_connected():
        raise ConfigurationError("Failed to connect to ETH_RPC_ENDPOINT")
    eth_address = w3.eth.account.from_key(settings.eth_private_key).address
    logger.info(f"Ethereum wallet: {eth_address}")
    logger.info(f"Solana wallet: {settings.solana_public_key}")

    rpc = SolanaRpcClient(settings.solana_rpc_endpoint)
    jupiter = JupiterClient(settings.jupiter_api_url)
    eth_reserves = UniswapV2Reserves(w3)

    venues = Venues(
        eth_balances=EthereumBalances(w3, eth_address),
        sol_balances=SolanaBalances(rpc, settings.solana_public_key),
        eth_reserves=eth_reserves,
        sol_reserves=PumpSwapReserves(rpc),
        cross_rate=build_cross_rate_feed(cross_rate_source, jupiter, settings.cmc_api_key),
        eth_swap=UniswapV2SwapService(w3, settings.eth_private_key, eth_reserves),
        sol_swap=JupiterSwapService(jupiter, settings.solana_public_key, signer),
        eth_finality=EthereumFinality(w3),
        sol_finality=SolanaFinality(rpc),
        bridge=bridge,
    )

    return ArbitrageOrchestrator(
        venues,
        calculator=ArbitrageCalculator(),
        policy=RebalancePolicy(),
        poller=TransactionFinalityPoller(),
        events=LoggingEventSink(),
        mode=mode,
    )


# =============================================================================
# ENTRY POINT
# =============================================================================

def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Cross-chain AMM arbitrage bot (Ethereum <-> Solana)")
    parser.add_argument(
        "--mode",
        choices=[BotMode.SCAN_ONLY, BotMode.EXECUTE],
        default=BotMode.SCAN_ONLY,
        help="scan (observe only) or execute (real trades)",
    )
    parser.add_argument(
        "--iterations",
        type=int,
        default=None,
        help="Stop after N iterations (default: run until interrupted)",
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """Main entry point"""
    args = parse_args(argv)
    setup_logging()

    mode = args.mode
    if mode == BotMode.EXECUTE and DRY_RUN_MODE:
        logger.warning("DRY_RUN_MODE is enabled - falling back to scan mode")
        mode = BotMode.SCAN_ONLY

    try:
        settings = load_settings()
        bot = build_orchestrator(settings, mode=mode)
    except ConfigurationError as e:
        logger.error(f"Startup failed: {e.message}")
        return 1

    def _handle_shutdown(signum, frame):
        logger.info("Shutdown signal received...")
        bot.stop()

    signal.signal(signal.SIGINT, _handle_shutdown)
    signal.signal(signal.SIGTERM, _handle_shutdown)

    bot.run(max_iterations=args.iterations)
    return 0


if __name__ == "__main__":
    sys.exit(main())
