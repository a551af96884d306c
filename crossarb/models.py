# crossarb/models.py
"""
Data model shared by the decision engine and its collaborators

Snapshots are frozen: they are fetched fresh every iteration and discarded.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum, IntEnum
from typing import Any, Dict, Optional


# =============================================================================
# ENUMS
# =============================================================================

class Chain(Enum):
    ETHEREUM = "ethereum"
    SOLANA = "solana"

    @property
    def other(self) -> "Chain":
        return Chain.SOLANA if self is Chain.ETHEREUM else Chain.ETHEREUM


class Asset(Enum):
    TOKEN = "token"            # arbitraged token (ASSDAQ)
    COUNTER = "counter"        # ETH on Ethereum, WETH on Solana
    SETTLEMENT = "settlement"  # SOL


class RouteDirection(Enum):
    SELL_SOL_BUY_ETH = "SELL ON SOL BUY ON ETH"
    SELL_ETH_BUY_SOL = "SELL ON ETH BUY ON SOL"
    NONE = "N/A"


class CommitmentLevel(IntEnum):
    """Ordered so that 'reached the desired level or higher' is a comparison"""
    PROCESSED = 1
    CONFIRMED = 2
    FINALIZED = 3


class OutcomeState(Enum):
    CONFIRMED = "confirmed"
    FAILED = "failed"
    EXPIRED = "expired"
    TIMED_OUT = "timed_out"


class RebalanceKind(Enum):
    SWAP = "swap"      # same-chain swap
    BRIDGE = "bridge"  # cross-chain transfer


# =============================================================================
# MARKET STATE
# =============================================================================

def _require_non_negative(**values) -> None:
    for name, value in values.items():
        if value < 0:
            raise ValueError(f"{name} must be non-negative, got {value}")


def _as_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def _coerce_decimals(instance, *names) -> None:
    # frozen dataclasses need object.__setattr__
    for name in names:
        object.__setattr__(instance, name, _as_decimal(getattr(instance, name)))


@dataclass(frozen=True)
class PoolReserves:
    """Raw smallest-unit reserves of one pool"""
    token_reserve: int   # arbitraged token
    quote_reserve: int   # WETH wei (Uniswap) or lamports (PumpSwap)

    def __post_init__(self):
        _require_non_negative(token_reserve=self.token_reserve, quote_reserve=self.quote_reserve)


@dataclass(frozen=True)
class ReserveSnapshot:
    eth_pool: PoolReserves   # constant-product venue
    sol_pool: PoolReserves   # bonding-curve venue (virtual reserves)
    cross_rate: Decimal      # SOL per 1 ETH

    def __post_init__(self):
        _coerce_decimals(self, "cross_rate")
        if self.cross_rate <= 0:
            raise ValueError(f"cross_rate must be positive, got {self.cross_rate}")


@dataclass(frozen=True)
class ChainBalances:
    """Wallet holdings on one chain, in whole units"""
    token: Decimal
    counter: Decimal
    settlement: Decimal = Decimal(0)

    def __post_init__(self):
        _coerce_decimals(self, "token", "counter", "settlement")
        _require_non_negative(token=self.token, counter=self.counter, settlement=self.settlement)


@dataclass(frozen=True)
class InventoryState:
    token_eth: Decimal
    token_sol: Decimal
    counter_eth: Decimal     # native ETH on Ethereum
    counter_sol: Decimal     # WETH on Solana
    settlement_sol: Decimal = Decimal(0)

    def __post_init__(self):
        _coerce_decimals(
            self, "token_eth", "token_sol", "counter_eth", "counter_sol", "settlement_sol"
        )
        _require_non_negative(
            token_eth=self.token_eth,
            token_sol=self.token_sol,
            counter_eth=self.counter_eth,
            counter_sol=self.counter_sol,
            settlement_sol=self.settlement_sol,
        )

    @classmethod
    def from_balances(cls, eth: ChainBalances, sol: ChainBalances) -> "InventoryState":
        return cls(
            token_eth=eth.token,
            token_sol=sol.token,
            counter_eth=eth.counter,
            counter_sol=sol.counter,
            settlement_sol=sol.settlement,
        )

    def holding(self, asset: Asset, chain: Chain) -> Decimal:
        if asset is Asset.TOKEN:
            return self.token_eth if chain is Chain.ETHEREUM else self.token_sol
        if asset is Asset.COUNTER:
            return self.counter_eth if chain is Chain.ETHEREUM else self.counter_sol
        if chain is Chain.SOLANA:
            return self.settlement_sol
        raise ValueError("Settlement asset is only tracked on Solana")


# =============================================================================
# DECISIONS
# =============================================================================

@dataclass(frozen=True)
class ArbitrageRoute:
    direction: RouteDirection
    input_size: int                  # whole tokens sold on the source venue
    profit_token: Decimal            # tokens bought back minus input_size
    profit_settlement: Decimal       # profit valued in SOL
    cross_chain_amount: Decimal      # counter-asset spent/received on the other chain

    @classmethod
    def none(cls) -> "ArbitrageRoute":
        return cls(
            direction=RouteDirection.NONE,
            input_size=0,
            profit_token=Decimal(0),
            profit_settlement=Decimal(0),
            cross_chain_amount=Decimal(0),
        )

    @property
    def is_profitable(self) -> bool:
        return self.direction is not RouteDirection.NONE and self.profit_token > 0


@dataclass(frozen=True)
class RebalanceAction:
    kind: RebalanceKind
    asset: Asset
    amount: Decimal
    source_chain: Chain
    destination_chain: Chain
    output_asset: Optional[Asset] = None   # only for SWAP
    reason: str = ""

    def describe(self) -> str:
        if self.kind is RebalanceKind.SWAP:
            return (
                f"swap {self.amount} {self.asset.value} -> {self.output_asset.value} "
                f"on {self.source_chain.value}"
            )
        return (
            f"bridge {self.amount} {self.asset.value} "
            f"{self.source_chain.value} -> {self.destination_chain.value}"
        )


# =============================================================================
# EXECUTION
# =============================================================================

@dataclass(frozen=True)
class QuoteHandle:
    chain: Chain
    input_asset: Asset
    output_asset: Asset
    amount_in: Decimal        # whole units
    expected_out: Decimal     # whole units
    min_out: Decimal          # after slippage tolerance
    raw: Dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class TxSubmission:
    """A submitted transaction and the height after which it can never land"""
    chain: Chain
    tx_ref: str
    expiry_height: int


@dataclass(frozen=True)
class TxStatus:
    state: str                                 # "pending" | "confirmed" | "failed"
    level: Optional[CommitmentLevel] = None
    error: Optional[str] = None

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"

    @classmethod
    def pending(cls) -> "TxStatus":
        return cls(state=cls.PENDING)

    @classmethod
    def confirmed(cls, level: CommitmentLevel) -> "TxStatus":
        return cls(state=cls.CONFIRMED, level=level)

    @classmethod
    def failed(cls, reason: str) -> "TxStatus":
        return cls(state=cls.FAILED, error=reason)


@dataclass(frozen=True)
class TransactionOutcome:
    state: OutcomeState
    tx_ref: str
    reason: str = ""
    polls: int = 0
    height: Optional[int] = None     # chain height seen when EXPIRED

    @property
    def ok(self) -> bool:
        return self.state is OutcomeState.CONFIRMED
