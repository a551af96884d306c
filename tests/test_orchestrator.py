"""Tests for the iteration orchestrator."""

import threading
import time
from decimal import Decimal
from unittest.mock import Mock

import pytest

from crossarb.errors import (
    ConfigurationError,
    ConnectivityError,
    NoRouteError,
    TxFailedError,
    TxTimeoutError,
)
from crossarb.finality import TransactionFinalityPoller
from crossarb.models import (
    ArbitrageRoute,
    Asset,
    Chain,
    ChainBalances,
    CommitmentLevel,
    OutcomeState,
    QuoteHandle,
    RouteDirection,
    TxStatus,
    TxSubmission,
)
from crossarb.orchestrator import ArbitrageOrchestrator, BotMode, Venues, legs_for

from tests.conftest import make_reserves


def _quote(chain, input_asset, output_asset, amount, min_out="5"):
    return QuoteHandle(
        chain=chain,
        input_asset=input_asset,
        output_asset=output_asset,
        amount_in=Decimal(amount),
        expected_out=Decimal(min_out),
        min_out=Decimal(min_out),
    )


def _swap(chain, tx_ref, min_out="5"):
    swap = Mock()
    swap.chain = chain
    swap.quote.side_effect = lambda i, o, amount: _quote(chain, i, o, amount, min_out)
    swap.execute.return_value = TxSubmission(chain=chain, tx_ref=tx_ref, expiry_height=10_000)
    return swap


def _finality(status=None, height=100):
    finality = Mock()
    finality.get_status.return_value = status or TxStatus.confirmed(CommitmentLevel.CONFIRMED)
    finality.get_current_height.return_value = height
    return finality


def _venues(
    eth_balances=None,
    sol_balances=None,
    reserves=None,
    profit_quote="5",
    bridge=None,
):
    reserves = reserves or make_reserves(sol_lamports=10_000)

    eth_bal = Mock()
    eth_bal.get_balances.return_value = eth_balances or ChainBalances(
        token=Decimal(1000), counter=Decimal(10)
    )
    sol_bal = Mock()
    sol_bal.get_balances.return_value = sol_balances or ChainBalances(
        token=Decimal(1000), counter=Decimal(10), settlement=Decimal("1.5")
    )
    eth_res = Mock()
    eth_res.get_reserves.return_value = reserves.eth_pool
    sol_res = Mock()
    sol_res.get_reserves.return_value = reserves.sol_pool
    rate = Mock()
    rate.get_cross_rate.return_value = reserves.cross_rate

    return Venues(
        eth_balances=eth_bal,
        sol_balances=sol_bal,
        eth_reserves=eth_res,
        sol_reserves=sol_res,
        cross_rate=rate,
        eth_swap=_swap(Chain.ETHEREUM, "0xeth"),
        sol_swap=_swap(Chain.SOLANA, "solsig", min_out=profit_quote),
        eth_finality=_finality(),
        sol_finality=_finality(),
        bridge=bridge,
    )


@pytest.fixture
def events():
    return Mock()


def _orchestrator(venues, events, mode=BotMode.SCAN_ONLY, **kwargs):
    poller = TransactionFinalityPoller(clock=lambda: 0.0, sleep=lambda s: None)
    return ArbitrageOrchestrator(
        venues, poller=poller, events=events, mode=mode, sleep=Mock(), **kwargs
    )


def _emitted(events):
    return [c.args[0] for c in events.emit.call_args_list]


def _fields(events, name):
    return next(c.kwargs for c in events.emit.call_args_list if c.args[0] == name)


class TestLegs:

    def test_sell_eth_buy_sol(self):
        route = ArbitrageRoute(
            RouteDirection.SELL_ETH_BUY_SOL, 100, Decimal(5), Decimal(1), Decimal("0.1")
        )
        eth_leg, sol_leg = legs_for(route)
        assert (eth_leg.chain, eth_leg.input_asset, eth_leg.amount) == (
            Chain.ETHEREUM, Asset.TOKEN, Decimal(100)
        )
        assert (sol_leg.chain, sol_leg.input_asset, sol_leg.output_asset, sol_leg.amount) == (
            Chain.SOLANA, Asset.COUNTER, Asset.TOKEN, Decimal("0.1")
        )

    def test_sell_sol_buy_eth(self):
        route = ArbitrageRoute(
            RouteDirection.SELL_SOL_BUY_ETH, 100, Decimal(5), Decimal(1), Decimal("0.2")
        )
        sol_leg, eth_leg = legs_for(route)
        assert sol_leg.chain is Chain.SOLANA
        assert sol_leg.output_asset is Asset.COUNTER
        assert eth_leg.input_asset is Asset.COUNTER
        assert eth_leg.amount == Decimal("0.2")

    def test_none_route_has_no_legs(self):
        with pytest.raises(ValueError):
            legs_for(ArbitrageRoute.none())


class TestFetchState:

    def test_joins_all_reads(self, events):
        venues = _venues()
        inventory, reserves = _orchestrator(venues, events).fetch_state()

        assert inventory.token_eth == 1000
        assert inventory.counter_sol == 10
        assert inventory.settlement_sol == Decimal("1.5")
        assert reserves.cross_rate == 20
        venues.cross_rate.get_cross_rate.assert_called_once()

    def test_connectivity_error_propagates(self, events):
        venues = _venues()
        venues.sol_reserves.get_reserves.side_effect = ConnectivityError("down", service="solana-rpc")
        with pytest.raises(ConnectivityError):
            _orchestrator(venues, events).fetch_state()

    def test_hung_read_gives_up_at_the_deadline(self, events):
        release = threading.Event()

        def hung_balances():
            release.wait(5)
            return ChainBalances(token=Decimal(1000), counter=Decimal(10))

        venues = _venues()
        venues.eth_balances.get_balances.side_effect = hung_balances
        bot = _orchestrator(venues, events, fetch_timeout=0.2)

        started = time.monotonic()
        try:
            with pytest.raises(ConnectivityError) as exc_info:
                bot.fetch_state()
            elapsed = time.monotonic() - started
        finally:
            release.set()

        assert elapsed < 1.5
        assert exc_info.value.service == "state-fetch"

    def test_hung_read_skips_the_iteration(self, events):
        release = threading.Event()
        venues = _venues()
        venues.cross_rate.get_cross_rate.side_effect = lambda: release.wait(5)
        try:
            report = _orchestrator(venues, events, fetch_timeout=0.2).run_iteration()
        finally:
            release.set()

        assert report.status == "skipped"
        assert "iteration_skipped" in _emitted(events)


class TestRunIteration:

    def test_connectivity_error_skips(self, events):
        venues = _venues()
        venues.eth_balances.get_balances.side_effect = ConnectivityError("down", service="eth")
        report = _orchestrator(venues, events).run_iteration()

        assert report.status == "skipped"
        assert "iteration_skipped" in _emitted(events)
        venues.eth_swap.quote.assert_not_called()

    def test_rebalance_preempts_route_search(self, events):
        venues = _venues(eth_balances=ChainBalances(token=Decimal(1000), counter=Decimal(1)))
        report = _orchestrator(venues, events).run_iteration()

        assert report.status == "rebalanced"
        assert report.route is None
        assert report.rebalance_actions[0].asset is Asset.COUNTER
        assert "rebalance_planned" in _emitted(events)

    def test_rebalance_dispatched_through_bridge(self, events):
        bridge = Mock()
        bridge.transfer.return_value = TxSubmission(Chain.SOLANA, "bridge-sig", 10_000)
        venues = _venues(
            eth_balances=ChainBalances(token=Decimal(1000), counter=Decimal(10)),
            sol_balances=ChainBalances(token=Decimal(1000), counter=Decimal(90)),
            bridge=bridge,
        )
        report = _orchestrator(venues, events, mode=BotMode.EXECUTE).run_iteration()

        assert report.status == "rebalanced"
        bridge.transfer.assert_called_once_with(Asset.COUNTER, Decimal(40), Chain.ETHEREUM)
        assert [o.state for o in report.outcomes] == [OutcomeState.CONFIRMED]
        # bridge submissions are polled on the source chain
        venues.sol_finality.get_status.assert_called_with("bridge-sig")

    def test_settlement_excess_swapped_on_solana(self, events):
        venues = _venues(
            sol_balances=ChainBalances(token=Decimal(1000), counter=Decimal(10), settlement=Decimal(3))
        )
        report = _orchestrator(venues, events, mode=BotMode.EXECUTE).run_iteration()

        assert report.status == "rebalanced"
        venues.sol_swap.quote.assert_called_once_with(Asset.SETTLEMENT, Asset.COUNTER, Decimal(2))
        venues.sol_swap.execute.assert_called_once()

    def test_missing_bridge_is_fatal(self, events):
        venues = _venues(eth_balances=ChainBalances(token=Decimal(1000), counter=Decimal(1)))
        with pytest.raises(ConfigurationError):
            _orchestrator(venues, events, mode=BotMode.EXECUTE).run_iteration()

    def test_no_route(self, events):
        venues = _venues(reserves=make_reserves())
        report = _orchestrator(venues, events).run_iteration()
        assert report.status == "no_route"
        assert report.route.direction is RouteDirection.NONE

    def test_scan_mode_reports_without_dispatch(self, events):
        venues = _venues()
        report = _orchestrator(venues, events).run_iteration()

        assert report.status == "scanned"
        assert report.route.direction is RouteDirection.SELL_ETH_BUY_SOL
        assert report.expected_profit_sol == Decimal(5)
        venues.sol_swap.quote.assert_called_once_with(
            Asset.TOKEN, Asset.SETTLEMENT, report.route.profit_token
        )
        venues.eth_swap.execute.assert_not_called()
        venues.sol_swap.execute.assert_not_called()

    def test_below_threshold(self, events):
        venues = _venues(profit_quote="0.01")
        report = _orchestrator(venues, events, mode=BotMode.EXECUTE).run_iteration()

        assert report.status == "below_threshold"
        venues.eth_swap.execute.assert_not_called()

    def test_no_route_for_profit_quote_means_unprofitable(self, events):
        venues = _venues()
        venues.sol_swap.quote.side_effect = NoRouteError(
            "no route", input_asset="token", output_asset="settlement"
        )
        report = _orchestrator(venues, events).run_iteration()

        assert report.status == "below_threshold"
        assert report.expected_profit_sol == 0

    def test_profit_quote_outage_skips(self, events):
        venues = _venues()
        venues.sol_swap.quote.side_effect = ConnectivityError("down", service="jupiter")
        report = _orchestrator(venues, events, mode=BotMode.EXECUTE).run_iteration()

        assert report.status == "skipped"
        assert _fields(events, "iteration_skipped")["service"] == "jupiter"
        assert "iteration_error" not in _emitted(events)
        venues.eth_swap.execute.assert_not_called()

    def test_spot_estimate_without_refinement(self, events):
        venues = _venues()
        report = _orchestrator(venues, events, refine_profit_with_quote=False).run_iteration()

        assert report.status == "scanned"
        assert report.expected_profit_sol == report.route.profit_settlement
        venues.sol_swap.quote.assert_not_called()

    def test_execute_both_legs(self, events):
        venues = _venues()
        report = _orchestrator(venues, events, mode=BotMode.EXECUTE).run_iteration()

        assert report.status == "executed"
        assert len(report.outcomes) == 2
        assert all(o.ok for o in report.outcomes)
        venues.eth_swap.quote.assert_called_once_with(
            Asset.TOKEN, Asset.COUNTER, Decimal(report.route.input_size)
        )
        venues.sol_swap.quote.assert_called_with(
            Asset.COUNTER, Asset.TOKEN, report.route.cross_chain_amount
        )

    def test_one_leg_failing_on_chain_is_partial(self, events):
        venues = _venues()
        venues.eth_finality.get_status.return_value = TxStatus.failed("reverted")
        report = _orchestrator(venues, events, mode=BotMode.EXECUTE).run_iteration()

        assert report.status == "partial"
        emitted = _emitted(events)
        assert "leg_failed" in emitted
        assert "partial_execution" in emitted

    def test_partial_execution_reports_expired_leg(self, events):
        venues = _venues()
        venues.eth_finality.get_status.return_value = TxStatus.pending()
        venues.eth_finality.get_current_height.return_value = 20_000
        report = _orchestrator(venues, events, mode=BotMode.EXECUTE).run_iteration()

        assert report.status == "partial"
        fields = _fields(events, "partial_execution")
        assert fields["confirmed"] == "solana"
        assert fields["failed"] == "ethereum:expired"

    def test_partial_execution_reports_timed_out_leg(self, events):
        venues = _venues()
        venues.sol_swap.execute.side_effect = TxTimeoutError("solsig", 30.0)
        report = _orchestrator(venues, events, mode=BotMode.EXECUTE).run_iteration()

        assert report.status == "partial"
        assert _fields(events, "partial_execution")["failed"] == "solana:timed_out"

    def test_submission_error_counts_as_failed_leg(self, events):
        venues = _venues()
        venues.eth_swap.execute.side_effect = TxFailedError("0xeth", "nonce too low")
        venues.sol_swap.execute.side_effect = ConnectivityError("down", service="jupiter")
        report = _orchestrator(venues, events, mode=BotMode.EXECUTE).run_iteration()

        assert report.status == "failed"
        assert "partial_execution" not in _emitted(events)


class TestRun:

    def test_runs_requested_iterations_and_sleeps_between(self, events):
        venues = _venues(reserves=make_reserves())
        bot = _orchestrator(venues, events, iteration_sleep=30)
        stats = bot.run(max_iterations=3)

        assert stats.iterations == 3
        assert bot._sleep.call_count == 2
        bot._sleep.assert_called_with(30)
        assert not bot.running

    def test_unexpected_errors_do_not_stop_the_loop(self, events):
        venues = _venues()
        venues.eth_reserves.get_reserves.side_effect = RuntimeError("boom")
        bot = _orchestrator(venues, events)
        stats = bot.run(max_iterations=2)

        assert stats.errors == 2
        assert _emitted(events).count("iteration_error") == 2

    def test_connectivity_outage_counts_as_skipped(self, events):
        venues = _venues()
        venues.sol_swap.quote.side_effect = ConnectivityError("down", service="jupiter")
        stats = _orchestrator(venues, events).run(max_iterations=2)

        assert stats.skipped == 2
        assert stats.errors == 0

    def test_configuration_error_is_fatal(self, events):
        venues = _venues(eth_balances=ChainBalances(token=Decimal(1000), counter=Decimal(1)))
        bot = _orchestrator(venues, events, mode=BotMode.EXECUTE)
        with pytest.raises(ConfigurationError):
            bot.run(max_iterations=5)
        assert bot.iteration == 1

    def test_stop_ends_loop(self, events):
        venues = _venues(reserves=make_reserves())
        bot = _orchestrator(venues, events)
        bot._sleep.side_effect = lambda seconds: bot.stop()
        stats = bot.run()
        assert stats.iterations == 1

    def test_unknown_mode(self, events):
        with pytest.raises(ConfigurationError):
            _orchestrator(_venues(), events, mode="simulate")
