# crossarb/__init__.py
"""
Cross-Chain AMM Arbitrage Bot
ASSDAQ between a Uniswap V2 pair (Ethereum) and a PumpSwap pool (Solana)

Modules:
- config: Configuration and environment
- models: Snapshots, routes, actions and outcomes
- amm: Constant-product and bonding-curve pricing
- arbitrage_calculator: Best-route search
- rebalance: Cross-chain inventory policy
- finality: Transaction confirmation polling
- price_feed: Cached cross rate (Jupiter / CoinMarketCap)
- ethereum / solana / jupiter: Chain collaborators
- orchestrator: Iteration loop
- main: Entry point
"""

__version__ = "1.0.0"

from crossarb.amm import bonding_curve_amount_out, constant_product_amount_out
from crossarb.arbitrage_calculator import ArbitrageCalculator
from crossarb.finality import TransactionFinalityPoller
from crossarb.models import ArbitrageRoute, InventoryState, ReserveSnapshot, RouteDirection
from crossarb.rebalance import RebalancePolicy

__all__ = [
    "ArbitrageCalculator",
    "ArbitrageRoute",
    "InventoryState",
    "RebalancePolicy",
    "ReserveSnapshot",
    "RouteDirection",
    "TransactionFinalityPoller",
    "bonding_curve_amount_out",
    "constant_product_amount_out",
]
