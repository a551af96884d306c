# crossarb/orchestrator.py
"""
Iteration Orchestrator
One decision cycle at a time:

    fetch state -> rebalance check -> route search -> profit gate -> dispatch

Reads are issued concurrently and joined. Rebalance actions and the two
arbitrage legs are dispatched concurrently; every action is itself
submit-then-confirm. Errors are caught at the iteration boundary, so the
loop always proceeds after the fixed sleep. ConfigurationError is the
exception and propagates.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional, Tuple

from crossarb.arbitrage_calculator import ArbitrageCalculator
from crossarb.config import (
    BRIDGE_FINALITY_TIMEOUT_SECONDS,
    FINALITY_TIMEOUT_SECONDS,
    PROFIT_THRESHOLD_SOL,
    SLEEP_BETWEEN_ITERATIONS_SECONDS,
    STATE_FETCH_TIMEOUT_SECONDS,
)
from crossarb.errors import (
    ArbitrageError,
    ConfigurationError,
    ConnectivityError,
    NoRouteError,
    TxExpiredError,
    TxTimeoutError,
)
from crossarb.events import LoggingEventSink
from crossarb.finality import TransactionFinalityPoller
from crossarb.interfaces import (
    BalanceSource,
    BridgeService,
    CrossRateSource,
    EventSink,
    FinalityQuery,
    ReserveSource,
    SwapService,
)
from crossarb.models import (
    ArbitrageRoute,
    Asset,
    Chain,
    InventoryState,
    RebalanceAction,
    RebalanceKind,
    ReserveSnapshot,
    OutcomeState,
    RouteDirection,
    TransactionOutcome,
)
from crossarb.rebalance import RebalancePolicy

logger = logging.getLogger(__name__)


# =============================================================================
# MODES & DATA CLASSES
# =============================================================================

class BotMode:
    SCAN_ONLY = "scan"      # compute and report, never submit
    EXECUTE = "execute"     # submit rebalances and arbitrage legs


@dataclass
class Venues:
    """Every collaborator the orchestrator talks to"""
    eth_balances: BalanceSource
    sol_balances: BalanceSource
    eth_reserves: ReserveSource
    sol_reserves: ReserveSource
    cross_rate: CrossRateSource
    eth_swap: SwapService
    sol_swap: SwapService
    eth_finality: FinalityQuery
    sol_finality: FinalityQuery
    bridge: Optional[BridgeService] = None

    def swap_for(self, chain: Chain) -> SwapService:
        return self.eth_swap if chain is Chain.ETHEREUM else self.sol_swap

    def finality_for(self, chain: Chain) -> FinalityQuery:
        return self.eth_finality if chain is Chain.ETHEREUM else self.sol_finality


@dataclass(frozen=True)
class Leg:
    """One same-chain swap of an arbitrage route"""
    chain: Chain
    input_asset: Asset
    output_asset: Asset
    amount: Decimal


@dataclass
class IterationReport:
    iteration: int
    status: str = "pending"   # skipped | rebalanced | no_route | below_threshold | scanned | executed | partial | failed | error
    route: Optional[ArbitrageRoute] = None
    expected_profit_sol: Decimal = Decimal(0)
    rebalance_actions: List[RebalanceAction] = field(default_factory=list)
    outcomes: List[TransactionOutcome] = field(default_factory=list)
    error: str = ""


def legs_for(route: ArbitrageRoute) -> Tuple[Leg, Leg]:
    """
    SELL_SOL_BUY_ETH: token -> WETH on Solana, ETH -> token on Ethereum.
    SELL_ETH_BUY_SOL: token -> ETH on Ethereum, WETH -> token on Solana.
    """
    size = Decimal(route.input_size)
    if route.direction is RouteDirection.SELL_SOL_BUY_ETH:
        return (
            Leg(Chain.SOLANA, Asset.TOKEN, Asset.COUNTER, size),
            Leg(Chain.ETHEREUM, Asset.COUNTER, Asset.TOKEN, route.cross_chain_amount),
        )
    if route.direction is RouteDirection.SELL_ETH_BUY_SOL:
        return (
            Leg(Chain.ETHEREUM, Asset.TOKEN, Asset.COUNTER, size),
            Leg(Chain.SOLANA, Asset.COUNTER, Asset.TOKEN, route.cross_chain_amount),
        )
    raise ValueError("No legs for an empty route")


def _state_for_error(error: ArbitrageError) -> OutcomeState:
    """Outcome of a leg that raised instead of returning one"""
    if isinstance(error, TxExpiredError):
        return OutcomeState.EXPIRED
    if isinstance(error, TxTimeoutError):
        return OutcomeState.TIMED_OUT
    # nothing reached the chain, or the chain rejected it
    return OutcomeState.FAILED


# =============================================================================
# STATISTICS TRACKER
# =============================================================================

class StatisticsTracker:
    """Track bot performance statistics"""

    def __init__(self):
        self.start_time = datetime.now()
        self.iterations = 0
        self.skipped = 0
        self.errors = 0
        self.rebalances = 0
        self.profitable_routes = 0
        self.trades_executed = 0
        self.trades_successful = 0
        self.partial_executions = 0
        self.expected_profit_sol = Decimal(0)
        self.best_profit_sol = Decimal(0)

    def record(self, report: IterationReport):
        self.iterations += 1
        if report.status == "skipped":
            self.skipped += 1
        elif report.status == "error":
            self.errors += 1
        elif report.status == "rebalanced":
            self.rebalances += len(report.rebalance_actions)

        if report.status in ("scanned", "executed", "partial", "failed"):
            self.profitable_routes += 1
            self.best_profit_sol = max(self.best_profit_sol, report.expected_profit_sol)

        if report.status in ("executed", "partial", "failed"):
            self.trades_executed += 1
            if report.status == "executed":
                self.trades_successful += 1
                self.expected_profit_sol += report.expected_profit_sol
            elif report.status == "partial":
                self.partial_executions += 1

    def get_summary(self) -> str:
        runtime = datetime.now() - self.start_time
        success_rate = (
            self.trades_successful / self.trades_executed * 100 if self.trades_executed > 0 else 0
        )
        return (
            f"\n{'='*60}\n"
            f"BOT STATISTICS\n"
            f"{'='*60}\n"
            f"Runtime: {runtime}\n"
            f"Iterations: {self.iterations} (skipped {self.skipped}, errors {self.errors})\n"
            f"Rebalance actions: {self.rebalances}\n"
            f"Profitable routes: {self.profitable_routes}\n"
            f"Trades Executed: {self.trades_executed}\n"
            f"Trades Successful: {self.trades_successful} ({success_rate:.1f}%)\n"
            f"Partial executions: {self.partial_executions}\n"
            f"Expected profit booked: {self.expected_profit_sol:.6f} SOL\n"
            f"Best route: {self.best_profit_sol:.6f} SOL\n"
            f"{'='*60}\n"
        )


# =============================================================================
# ORCHESTRATOR
# =============================================================================

class ArbitrageOrchestrator:
    """Drives the fetch -> decide -> dispatch cycle"""

    def __init__(
        self,
        venues: Venues,
        calculator: Optional[ArbitrageCalculator] = None,
        policy: Optional[RebalancePolicy] = None,
        poller: Optional[TransactionFinalityPoller] = None,
        events: Optional[EventSink] = None,
        mode: str = BotMode.SCAN_ONLY,
        min_profit_settlement: Decimal = PROFIT_THRESHOLD_SOL,
        iteration_sleep: float = SLEEP_BETWEEN_ITERATIONS_SECONDS,
        confirmation_timeout: float = FINALITY_TIMEOUT_SECONDS,
        bridge_timeout: float = BRIDGE_FINALITY_TIMEOUT_SECONDS,
        fetch_timeout: float = STATE_FETCH_TIMEOUT_SECONDS,
        refine_profit_with_quote: bool = True,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if mode not in (BotMode.SCAN_ONLY, BotMode.EXECUTE):
            raise ConfigurationError(f"Unknown mode: {mode}")
        self.venues = venues
        self.calculator = calculator or ArbitrageCalculator()
        self.policy = policy or RebalancePolicy()
        self.poller = poller or TransactionFinalityPoller()
        self.events = events or LoggingEventSink()
        self.mode = mode
        self.min_profit_settlement = Decimal(min_profit_settlement)
        self.iteration_sleep = iteration_sleep
        self.confirmation_timeout = confirmation_timeout
        self.bridge_timeout = bridge_timeout
        self.fetch_timeout = fetch_timeout
        self.refine_profit_with_quote = refine_profit_with_quote
        self._sleep = sleep

        self.running = False
        self.iteration = 0
        self.stats = StatisticsTracker()

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------
    def fetch_state(self) -> Tuple[InventoryState, ReserveSnapshot]:
        """
        Five independent reads, issued concurrently and joined under one
        deadline. A read still running at the deadline is abandoned, not
        waited for.
        """
        v = self.venues
        pool = ThreadPoolExecutor(max_workers=5)
        try:
            eth_bal = pool.submit(v.eth_balances.get_balances)
            sol_bal = pool.submit(v.sol_balances.get_balances)
            eth_pool = pool.submit(v.eth_reserves.get_reserves)
            sol_pool = pool.submit(v.sol_reserves.get_reserves)
            rate = pool.submit(v.cross_rate.get_cross_rate)

            _, pending = wait(
                [eth_bal, sol_bal, eth_pool, sol_pool, rate], timeout=self.fetch_timeout
            )
            if pending:
                raise ConnectivityError(
                    f"State fetch exceeded {self.fetch_timeout:g}s "
                    f"({len(pending)} read(s) outstanding)",
                    service="state-fetch",
                )

            inventory = InventoryState.from_balances(eth_bal.result(), sol_bal.result())
            reserves = ReserveSnapshot(
                eth_pool=eth_pool.result(),
                sol_pool=sol_pool.result(),
                cross_rate=rate.result(),
            )
        finally:
            pool.shutdown(wait=False, cancel_futures=True)
        return inventory, reserves

    # -------------------------------------------------------------------------
    # Profit gate
    # -------------------------------------------------------------------------
    def expected_profit(self, route: ArbitrageRoute) -> Decimal:
        """
        Route profit in SOL. With refinement on, the token profit is quoted
        TOKEN -> SOL on Solana and the guaranteed output is used instead of
        the spot estimate. No route means no profit.
        """
        if not route.is_profitable:
            return Decimal(0)
        if not self.refine_profit_with_quote:
            return route.profit_settlement
        try:
            quote = self.venues.sol_swap.quote(Asset.TOKEN, Asset.SETTLEMENT, route.profit_token)
        except NoRouteError as e:
            logger.info(f"Profit quote has no route: {e}")
            return Decimal(0)
        return quote.min_out

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------
    def _confirm(self, chain: Chain, submission, timeout: float) -> TransactionOutcome:
        return self.poller.poll(
            self.venues.finality_for(chain),
            submission.tx_ref,
            submission.expiry_height,
            timeout=timeout,
        )

    def _run_rebalance(self, action: RebalanceAction) -> TransactionOutcome:
        if action.kind is RebalanceKind.SWAP:
            swap = self.venues.swap_for(action.source_chain)
            quote = swap.quote(action.asset, action.output_asset, action.amount)
            submission = swap.execute(quote)
            return self._confirm(action.source_chain, submission, self.confirmation_timeout)

        if self.venues.bridge is None:
            raise ConfigurationError("Bridge service is not configured")
        submission = self.venues.bridge.transfer(action.asset, action.amount, action.destination_chain)
        return self._confirm(action.source_chain, submission, self.bridge_timeout)

    def dispatch_rebalance(self, actions: List[RebalanceAction]) -> List[TransactionOutcome]:
        outcomes = []
        with ThreadPoolExecutor(max_workers=len(actions)) as pool:
            futures = [(action, pool.submit(self._run_rebalance, action)) for action in actions]
            for action, future in futures:
                try:
                    outcome = future.result()
                except ConfigurationError:
                    raise
                except ArbitrageError as e:
                    self.events.emit(
                        "rebalance_failed", action=action.describe(), error=e.message
                    )
                    continue
                outcomes.append(outcome)
                event = "rebalance_confirmed" if outcome.ok else "rebalance_failed"
                self.events.emit(
                    event,
                    action=action.describe(),
                    tx=outcome.tx_ref,
                    state=outcome.state,
                    reason=outcome.reason,
                )
        return outcomes

    def _run_leg(self, leg: Leg) -> TransactionOutcome:
        swap = self.venues.swap_for(leg.chain)
        quote = swap.quote(leg.input_asset, leg.output_asset, leg.amount)
        submission = swap.execute(quote)
        self.events.emit(
            "leg_submitted",
            chain=leg.chain,
            input=leg.input_asset,
            output=leg.output_asset,
            amount=quote.amount_in,
            min_out=quote.min_out,
            tx=submission.tx_ref,
        )
        return self._confirm(leg.chain, submission, self.confirmation_timeout)

    def dispatch_route(self, route: ArbitrageRoute) -> Tuple[str, List[TransactionOutcome]]:
        """
        Both legs run concurrently with no compensation. Returns
        ("executed" | "partial" | "failed", outcomes).
        """
        legs = legs_for(route)
        confirmed: List[Leg] = []
        failed: List[Tuple[Leg, OutcomeState]] = []
        outcomes: List[TransactionOutcome] = []

        with ThreadPoolExecutor(max_workers=2) as pool:
            futures = [(leg, pool.submit(self._run_leg, leg)) for leg in legs]
            for leg, future in futures:
                try:
                    outcome = future.result()
                except ConfigurationError:
                    raise
                except ArbitrageError as e:
                    state = _state_for_error(e)
                    failed.append((leg, state))
                    self.events.emit("leg_failed", chain=leg.chain, state=state, error=e.message)
                    continue
                outcomes.append(outcome)
                if outcome.ok:
                    confirmed.append(leg)
                    self.events.emit("leg_confirmed", chain=leg.chain, tx=outcome.tx_ref)
                else:
                    failed.append((leg, outcome.state))
                    self.events.emit(
                        "leg_failed",
                        chain=leg.chain,
                        tx=outcome.tx_ref,
                        state=outcome.state,
                        reason=outcome.reason,
                    )

        if not failed:
            return "executed", outcomes
        if confirmed:
            # One-sided exposure; next iteration's rebalance sees the skew
            self.events.emit(
                "partial_execution",
                direction=route.direction,
                confirmed=",".join(leg.chain.value for leg in confirmed),
                failed=",".join(f"{leg.chain.value}:{state.value}" for leg, state in failed),
            )
            return "partial", outcomes
        return "failed", outcomes

    # -------------------------------------------------------------------------
    # Iteration
    # -------------------------------------------------------------------------
    def _skip(self, report: IterationReport, error: ConnectivityError) -> IterationReport:
        report.status = "skipped"
        report.error = error.message
        self.events.emit(
            "iteration_skipped", iteration=self.iteration, service=error.service, error=error.message
        )
        return report

    def run_iteration(self) -> IterationReport:
        self.iteration += 1
        report = IterationReport(iteration=self.iteration)

        try:
            inventory, reserves = self.fetch_state()
        except ConnectivityError as e:
            return self._skip(report, e)

        self.events.emit(
            "state_fetched",
            iteration=self.iteration,
            token_eth=inventory.token_eth,
            token_sol=inventory.token_sol,
            eth=inventory.counter_eth,
            weth_sol=inventory.counter_sol,
            sol=inventory.settlement_sol,
            cross_rate=reserves.cross_rate,
        )

        # 1. Rebalance first; a skewed inventory makes arbitrage one-sided
        actions = self.policy.needs_rebalance(inventory)
        if actions:
            report.rebalance_actions = actions
            report.status = "rebalanced"
            if self.mode == BotMode.EXECUTE:
                report.outcomes = self.dispatch_rebalance(actions)
            else:
                for action in actions:
                    self.events.emit("rebalance_planned", action=action.describe(), reason=action.reason)
            return report

        # 2. Route search
        route = self.calculator.find_best_route(inventory, reserves)
        report.route = route
        if not route.is_profitable:
            report.status = "no_route"
            self.events.emit("no_route", iteration=self.iteration)
            return report

        # 3. Profit gate
        try:
            profit = self.expected_profit(route)
        except ConnectivityError as e:
            return self._skip(report, e)
        report.expected_profit_sol = profit
        self.events.emit(
            "route_found",
            direction=route.direction,
            size=route.input_size,
            profit_token=route.profit_token,
            profit_sol=profit,
            cross_chain=route.cross_chain_amount,
        )
        if profit <= self.min_profit_settlement:
            report.status = "below_threshold"
            self.events.emit(
                "below_threshold", profit_sol=profit, threshold=self.min_profit_settlement
            )
            return report

        # 4. Dispatch
        if self.mode != BotMode.EXECUTE:
            report.status = "scanned"
            return report

        report.status, report.outcomes = self.dispatch_route(route)
        self.events.emit("route_dispatched", direction=route.direction, status=report.status)
        return report

    # -------------------------------------------------------------------------
    # Loop
    # -------------------------------------------------------------------------
    def run(self, max_iterations: Optional[int] = None) -> StatisticsTracker:
        logger.info("=" * 60)
        logger.info("CROSS-CHAIN ARBITRAGE BOT STARTING")
        logger.info(f"Mode: {self.mode}")
        logger.info(f"Profit threshold: {self.min_profit_settlement} SOL")
        logger.info("=" * 60)

        self.running = True
        try:
            while self.running:
                try:
                    report = self.run_iteration()
                except ConfigurationError:
                    raise
                except Exception as e:
                    logger.exception(f"Error at iteration {self.iteration}")
                    report = IterationReport(iteration=self.iteration, status="error", error=str(e))
                    self.events.emit("iteration_error", iteration=self.iteration, error=str(e))

                self.stats.record(report)

                if max_iterations is not None and self.iteration >= max_iterations:
                    break
                if not self.running:
                    break

                logger.info(f"Sleeping for {self.iteration_sleep:.0f} seconds...")
                self._sleep(self.iteration_sleep)
        finally:
            self.running = False
            logger.info(self.stats.get_summary())
            logger.info("Bot stopped.")

        return self.stats

    def stop(self):
        self.running = False
