"""
Shared fixtures for the crossarb test suite.
No test touches the network; every collaborator is faked.
"""

from decimal import Decimal

import pytest

from crossarb.models import InventoryState, PoolReserves, ReserveSnapshot


class FakeClock:
    """Monotonic clock advanced only by the paired sleep()"""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


def make_reserves(
    eth_tokens: int = 1_000_000,
    eth_weth: int = 1_000,
    sol_tokens: int = 1_000_000,
    sol_lamports: int = 20_000,
    cross_rate: str = "20",
) -> ReserveSnapshot:
    """Whole-unit pool sizes scaled to raw units (18/18 on Ethereum, 6/9 on Solana)"""
    return ReserveSnapshot(
        eth_pool=PoolReserves(token_reserve=eth_tokens * 10**18, quote_reserve=eth_weth * 10**18),
        sol_pool=PoolReserves(token_reserve=sol_tokens * 10**6, quote_reserve=sol_lamports * 10**9),
        cross_rate=Decimal(cross_rate),
    )


def make_inventory(
    token_eth="1000",
    token_sol="1000",
    counter_eth="10",
    counter_sol="10",
    settlement_sol="1.5",
) -> InventoryState:
    return InventoryState(
        token_eth=Decimal(token_eth),
        token_sol=Decimal(token_sol),
        counter_eth=Decimal(counter_eth),
        counter_sol=Decimal(counter_sol),
        settlement_sol=Decimal(settlement_sol),
    )


@pytest.fixture
def equal_price_reserves():
    """Both venues price the token at 0.001 ETH = 0.02 SOL"""
    return make_reserves()


@pytest.fixture
def cheap_on_solana_reserves():
    """Token costs half as much on Solana as on Ethereum"""
    return make_reserves(sol_lamports=10_000)


@pytest.fixture
def balanced_inventory():
    return make_inventory()
