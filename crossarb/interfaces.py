# crossarb/interfaces.py
"""
Collaborator interfaces consumed by the decision engine

Concrete implementations live in ethereum.py / solana.py / jupiter.py /
price_feed.py. Bridging and Solana signing are deployment-provided.
Implementations translate transport failures into ConnectivityError.
"""

from decimal import Decimal
from typing import Protocol

from crossarb.models import (
    Asset,
    Chain,
    ChainBalances,
    PoolReserves,
    QuoteHandle,
    TxStatus,
    TxSubmission,
)


class BalanceSource(Protocol):
    def get_balances(self) -> ChainBalances:
        ...


class ReserveSource(Protocol):
    def get_reserves(self) -> PoolReserves:
        ...


class CrossRateSource(Protocol):
    def get_cross_rate(self) -> Decimal:
        """SOL per 1 ETH"""
        ...


class SwapService(Protocol):
    chain: Chain

    def quote(self, input_asset: Asset, output_asset: Asset, amount: Decimal) -> QuoteHandle:
        """Raises NoRouteError when the venue cannot fill the swap"""
        ...

    def execute(self, quote: QuoteHandle) -> TxSubmission:
        ...


class BridgeService(Protocol):
    def transfer(self, asset: Asset, amount: Decimal, destination_chain: Chain) -> TxSubmission:
        """Submit on the source chain; the returned submission is polled there"""
        ...


class FinalityQuery(Protocol):
    def get_status(self, tx_ref: str) -> TxStatus:
        ...

    def get_current_height(self) -> int:
        ...


class TransactionSigner(Protocol):
    def sign_and_send(self, serialized_tx: str) -> str:
        """Sign a base64 transaction, broadcast it, return its signature"""
        ...


class EventSink(Protocol):
    def emit(self, event: str, **fields) -> None:
        ...
