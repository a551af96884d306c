# crossarb/rebalance.py
"""
Inventory Rebalance Policy
Decides, before any route search, whether holdings are skewed enough across
the two chains that arbitrage would become one-sided.

Rules are independent; every rule that fires yields one action and the
caller runs all of them. Comparisons are strict, so exact boundary values
never trigger.
"""

import logging
import math
from decimal import Decimal
from typing import List, Optional

from crossarb.config import (
    PERCENT_FOR_REBALANCE,
    REBALANCE_DUST_THRESHOLD,
    SOL_THRESHOLD_TO_SELL_WHEN_ABOVE_IT,
    SOL_TO_LEAVE,
    TARGET_PERCENT,
)
from crossarb.models import Asset, Chain, InventoryState, RebalanceAction, RebalanceKind

logger = logging.getLogger(__name__)


class RebalancePolicy:
    """
    Pure decision function over one InventoryState.

    Totals are captured on entry; balances are not re-read while deciding.
    """

    def __init__(
        self,
        settlement_ceiling: Decimal = SOL_THRESHOLD_TO_SELL_WHEN_ABOVE_IT,
        settlement_floor: Decimal = SOL_TO_LEAVE,
        trigger_fraction: Decimal = PERCENT_FOR_REBALANCE,
        target_fraction: Decimal = TARGET_PERCENT,
        dust_threshold: Decimal = REBALANCE_DUST_THRESHOLD,
    ):
        if settlement_floor > settlement_ceiling:
            raise ValueError("settlement_floor must not exceed settlement_ceiling")
        if not Decimal(0) < Decimal(trigger_fraction) < Decimal(target_fraction) <= Decimal(1):
            raise ValueError("expected 0 < trigger_fraction < target_fraction <= 1")
        self.settlement_ceiling = Decimal(settlement_ceiling)
        self.settlement_floor = Decimal(settlement_floor)
        self.trigger_fraction = Decimal(trigger_fraction)
        self.target_fraction = Decimal(target_fraction)
        self.dust_threshold = Decimal(dust_threshold)

    def needs_rebalance(self, inventory: InventoryState) -> List[RebalanceAction]:
        actions = []

        excess = self._settlement_excess(inventory)
        if excess is not None:
            actions.append(excess)

        for asset, whole_units in ((Asset.COUNTER, False), (Asset.TOKEN, True)):
            transfer = self._balance_transfer(inventory, asset, whole_units)
            if transfer is not None:
                actions.append(transfer)

        for action in actions:
            logger.info(f"Rebalance needed: {action.describe()} ({action.reason})")

        return actions

    # -------------------------------------------------------------------------
    # Rules
    # -------------------------------------------------------------------------
    def _settlement_excess(self, inventory: InventoryState) -> Optional[RebalanceAction]:
        balance = inventory.settlement_sol
        if not balance > self.settlement_ceiling:
            return None

        return RebalanceAction(
            kind=RebalanceKind.SWAP,
            asset=Asset.SETTLEMENT,
            amount=balance - self.settlement_floor,
            source_chain=Chain.SOLANA,
            destination_chain=Chain.SOLANA,
            output_asset=Asset.COUNTER,
            reason=f"SOL {balance} above ceiling {self.settlement_ceiling}",
        )

    def _balance_transfer(
        self,
        inventory: InventoryState,
        asset: Asset,
        whole_units: bool,
    ) -> Optional[RebalanceAction]:
        on_eth = inventory.holding(asset, Chain.ETHEREUM)
        on_sol = inventory.holding(asset, Chain.SOLANA)
        total = on_eth + on_sol
        trigger = self.trigger_fraction * total

        # Only one side can be under 25% of the total
        if on_eth < trigger:
            short_chain, held = Chain.ETHEREUM, on_eth
        elif on_sol < trigger:
            short_chain, held = Chain.SOLANA, on_sol
        else:
            return None

        amount = self.target_fraction * total - held
        if whole_units:
            amount = Decimal(math.floor(amount))

        if amount <= 0 or amount <= self.dust_threshold:
            logger.debug(f"Skipping {asset.value} rebalance: amount {amount} at or below dust")
            return None

        return RebalanceAction(
            kind=RebalanceKind.BRIDGE,
            asset=asset,
            amount=amount,
            source_chain=short_chain.other,
            destination_chain=short_chain,
            reason=(
                f"{asset.value} on {short_chain.value} {held} "
                f"< {self.trigger_fraction:.0%} of {total}"
            ),
        )
