# crossarb/arbitrage_calculator.py
"""
Cross-Venue Arbitrage Calculator
Finds the most profitable size and direction for one token traded on a
constant-product pool (Ethereum) and a bonding-curve pool (Solana)

Search is a coarse linear scan over whole-token sizes. The profit curve of
the two AMMs combined with the inventory ceiling is not known to be
unimodal, so no bisection / ternary shortcut is taken.
"""

import logging
import math
from dataclasses import dataclass
from decimal import Decimal, ROUND_FLOOR, getcontext
from typing import Optional

from crossarb.amm import bonding_curve_amount_out, constant_product_amount_out, spot_price
from crossarb.config import (
    ETH_DECIMALS,
    LIQUIDITY_CEILING_FRACTION,
    MAX_INVENTORY_FRACTION,
    SCAN_STEP_TOKENS,
    SOL_DECIMALS,
    TOKEN_ETH_DECIMALS,
    TOKEN_SOL_DECIMALS,
)
from crossarb.models import ArbitrageRoute, InventoryState, ReserveSnapshot, RouteDirection

getcontext().prec = 50
logger = logging.getLogger(__name__)


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class TokenDecimals:
    """Smallest-unit scales used to move between whole and raw amounts"""
    token_eth: int = TOKEN_ETH_DECIMALS
    token_sol: int = TOKEN_SOL_DECIMALS
    eth: int = ETH_DECIMALS
    sol: int = SOL_DECIMALS


@dataclass
class _Candidate:
    direction: RouteDirection
    size: int
    profit: Decimal
    cross_chain_amount: Decimal


def _to_raw(amount: Decimal, decimals: int) -> int:
    """Whole units -> smallest units, floored"""
    return int((amount * (Decimal(10) ** decimals)).to_integral_value(rounding=ROUND_FLOOR))


def _from_raw(amount: int, decimals: int) -> Decimal:
    return Decimal(amount) / (Decimal(10) ** decimals)


# =============================================================================
# ARBITRAGE CALCULATOR
# =============================================================================

class ArbitrageCalculator:
    """
    Deterministic, I/O free route search.

    For every candidate size both legs are simulated on the fetched reserves;
    the strictly greatest positive profit across both directions wins, ties
    keep the earlier candidate.
    """

    def __init__(
        self,
        step: int = SCAN_STEP_TOKENS,
        inventory_fraction: Decimal = MAX_INVENTORY_FRACTION,
        liquidity_fraction: Decimal = LIQUIDITY_CEILING_FRACTION,
        decimals: Optional[TokenDecimals] = None,
    ):
        if step < 1:
            raise ValueError(f"step must be >= 1, got {step}")
        self.step = step
        self.inventory_fraction = Decimal(inventory_fraction)
        self.liquidity_fraction = Decimal(liquidity_fraction)
        self.decimals = decimals or TokenDecimals()

    def upper_bound(self, inventory: InventoryState) -> int:
        """Largest size scanned: 80% of the smaller token balance, floored"""
        smaller = min(inventory.token_eth, inventory.token_sol)
        return int(math.floor(self.inventory_fraction * Decimal(smaller)))

    # -------------------------------------------------------------------------
    # Route 1: sell on Solana (PumpSwap) -> buy on Ethereum (Uniswap)
    # -------------------------------------------------------------------------
    def _scan_sell_sol_buy_eth(
        self,
        inventory: InventoryState,
        reserves: ReserveSnapshot,
        end: int,
        best: Optional[_Candidate],
    ) -> Optional[_Candidate]:
        dec = self.decimals
        pool = reserves.sol_pool
        pair = reserves.eth_pool
        eth_ceiling = self.liquidity_fraction * Decimal(inventory.counter_eth)

        for i in range(1, end + 1, self.step):
            token_in_raw = i * 10 ** dec.token_sol

            lamports_out = bonding_curve_amount_out(
                token_in_raw, reserve_in=pool.token_reserve, reserve_out=pool.quote_reserve
            )
            eth_needed = _from_raw(lamports_out, dec.sol) / reserves.cross_rate

            # Buying back on Ethereum would spend more ETH than we hold
            if eth_needed > eth_ceiling:
                break

            token_out_wei = constant_product_amount_out(
                _to_raw(eth_needed, dec.eth),
                reserve_in=pair.quote_reserve,
                reserve_out=pair.token_reserve,
            )
            profit = _from_raw(token_out_wei, dec.token_eth) - i

            if profit > 0 and (best is None or profit > best.profit):
                best = _Candidate(RouteDirection.SELL_SOL_BUY_ETH, i, profit, eth_needed)

        return best

    # -------------------------------------------------------------------------
    # Route 2: sell on Ethereum (Uniswap) -> buy on Solana (PumpSwap)
    # -------------------------------------------------------------------------
    def _scan_sell_eth_buy_sol(
        self,
        inventory: InventoryState,
        reserves: ReserveSnapshot,
        end: int,
        best: Optional[_Candidate],
    ) -> Optional[_Candidate]:
        dec = self.decimals
        pool = reserves.sol_pool
        pair = reserves.eth_pool
        weth_ceiling = self.liquidity_fraction * Decimal(inventory.counter_sol)

        for i in range(1, end + 1, self.step):
            eth_out_wei = constant_product_amount_out(
                i * 10 ** dec.token_eth,
                reserve_in=pair.token_reserve,
                reserve_out=pair.quote_reserve,
            )
            eth_received = _from_raw(eth_out_wei, dec.eth)

            # Buying back on Solana would spend more WETH than we hold there
            if eth_received > weth_ceiling:
                break

            lamports_in = _to_raw(eth_received * reserves.cross_rate, dec.sol)
            token_out_raw = bonding_curve_amount_out(
                lamports_in, reserve_in=pool.quote_reserve, reserve_out=pool.token_reserve
            )
            profit = _from_raw(token_out_raw, dec.token_sol) - i

            if profit > 0 and (best is None or profit > best.profit):
                best = _Candidate(RouteDirection.SELL_ETH_BUY_SOL, i, profit, eth_received)

        return best

    def settlement_value(self, profit_token: Decimal, reserves: ReserveSnapshot) -> Decimal:
        """Token profit valued in SOL at the curve's spot price"""
        pool = reserves.sol_pool
        lamports_per_unit = spot_price(pool.token_reserve, pool.quote_reserve)
        profit_raw = profit_token * (Decimal(10) ** self.decimals.token_sol)
        return (profit_raw * lamports_per_unit) / (Decimal(10) ** self.decimals.sol)

    def find_best_route(
        self,
        inventory: InventoryState,
        reserves: ReserveSnapshot,
    ) -> ArbitrageRoute:
        end = self.upper_bound(inventory)
        if end < 1:
            logger.debug("Token inventory too small to scan")
            return ArbitrageRoute.none()

        best = self._scan_sell_sol_buy_eth(inventory, reserves, end, None)
        best = self._scan_sell_eth_buy_sol(inventory, reserves, end, best)

        if best is None:
            logger.debug(f"No profitable size in 1..{end} (step {self.step})")
            return ArbitrageRoute.none()

        return ArbitrageRoute(
            direction=best.direction,
            input_size=best.size,
            profit_token=best.profit,
            profit_settlement=self.settlement_value(best.profit, reserves),
            cross_chain_amount=best.cross_chain_amount,
        )
