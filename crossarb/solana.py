# crossarb/solana.py
"""
Solana JSON-RPC collaborators: wallet balances, PumpSwap pool reserves
and transaction status for the finality poller.
"""

import itertools
import logging
from decimal import Decimal
from typing import Any, List, Optional

import requests

from crossarb.config import (
    HTTP_TIMEOUT_SECONDS,
    PUMPSWAP_POOL_ADDRESS,
    SOL_DECIMALS,
    TOKEN_SOL_MINT,
    WETH_SOL_MINT,
    WSOL_MINT,
)
from crossarb.errors import ConnectivityError
from crossarb.models import ChainBalances, CommitmentLevel, PoolReserves, TxStatus

logger = logging.getLogger(__name__)


_COMMITMENT_BY_NAME = {
    "processed": CommitmentLevel.PROCESSED,
    "confirmed": CommitmentLevel.CONFIRMED,
    "finalized": CommitmentLevel.FINALIZED,
}


class SolanaRpcClient:
    """Minimal JSON-RPC 2.0 client over HTTP"""

    def __init__(
        self,
        endpoint: str,
        session: Optional[requests.Session] = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
    ):
        self.endpoint = endpoint
        self.session = session or requests.Session()
        self.timeout = timeout
        self._ids = itertools.count(1)

    def call(self, method: str, params: Optional[List[Any]] = None) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }
        try:
            resp = self.session.post(self.endpoint, json=payload, timeout=self.timeout)
            resp.raise_for_status()
            body = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise ConnectivityError(f"Solana RPC {method} failed: {e}", service="solana-rpc")

        if body.get("error"):
            err = body["error"]
            raise ConnectivityError(
                f"Solana RPC {method} error {err.get('code')}: {err.get('message')}",
                service="solana-rpc",
            )
        return body.get("result")

    def token_accounts(self, owner: str, mint: str) -> List[dict]:
        result = self.call(
            "getTokenAccountsByOwner",
            [owner, {"mint": mint}, {"encoding": "jsonParsed", "commitment": "confirmed"}],
        )
        return result.get("value", []) if result else []


def _token_amount(account: dict) -> dict:
    return account["account"]["data"]["parsed"]["info"]["tokenAmount"]


class SolanaBalances:
    """BalanceSource for the Solana wallet: ASSDAQ, WETH (Wormhole) and SOL"""

    def __init__(
        self,
        rpc: SolanaRpcClient,
        owner: str,
        token_mint: str = TOKEN_SOL_MINT,
        counter_mint: str = WETH_SOL_MINT,
    ):
        self.rpc = rpc
        self.owner = owner
        self.token_mint = token_mint
        self.counter_mint = counter_mint

    def get_sol_balance(self) -> Decimal:
        result = self.rpc.call("getBalance", [self.owner, {"commitment": "confirmed"}])
        return Decimal(result["value"]) / Decimal(10 ** SOL_DECIMALS)

    def get_spl_balance(self, mint: str) -> Decimal:
        """Sum over the owner's accounts for the mint; 0 when none exist"""
        total = Decimal(0)
        for account in self.rpc.token_accounts(self.owner, mint):
            total += Decimal(_token_amount(account)["uiAmountString"])
        return total

    def get_balances(self) -> ChainBalances:
        return ChainBalances(
            token=self.get_spl_balance(self.token_mint),
            counter=self.get_spl_balance(self.counter_mint),
            settlement=self.get_sol_balance(),
        )


class PumpSwapReserves:
    """
    ReserveSource for the PumpSwap pool.

    The pool's base (token) and quote (WSOL) vaults are token accounts owned
    by the pool address; reserves are their raw amounts.
    """

    def __init__(
        self,
        rpc: SolanaRpcClient,
        pool_address: str = PUMPSWAP_POOL_ADDRESS,
        base_mint: str = TOKEN_SOL_MINT,
        quote_mint: str = WSOL_MINT,
    ):
        self.rpc = rpc
        self.pool_address = pool_address
        self.base_mint = base_mint
        self.quote_mint = quote_mint

    def _vault_amount(self, mint: str) -> int:
        accounts = self.rpc.token_accounts(self.pool_address, mint)
        if not accounts:
            raise ConnectivityError(
                f"PumpSwap pool {self.pool_address} has no vault for {mint}",
                service="solana-rpc",
            )
        return sum(int(_token_amount(account)["amount"]) for account in accounts)

    def get_reserves(self) -> PoolReserves:
        return PoolReserves(
            token_reserve=self._vault_amount(self.base_mint),
            quote_reserve=self._vault_amount(self.quote_mint),
        )


class SolanaFinality:
    """FinalityQuery over getSignatureStatuses / getBlockHeight"""

    def __init__(self, rpc: SolanaRpcClient, commitment: str = "confirmed"):
        self.rpc = rpc
        self.commitment = commitment

    def get_status(self, tx_ref: str) -> TxStatus:
        result = self.rpc.call(
            "getSignatureStatuses",
            [[tx_ref], {"searchTransactionHistory": True}],
        )
        statuses = (result or {}).get("value") or [None]
        status = statuses[0]
        if status is None:
            return TxStatus.pending()
        if status.get("err") is not None:
            return TxStatus.failed(f"{status['err']}")

        level = _COMMITMENT_BY_NAME.get(status.get("confirmationStatus"))
        if level is None:
            return TxStatus.pending()
        return TxStatus.confirmed(level)

    def get_current_height(self) -> int:
        return int(self.rpc.call("getBlockHeight", [{"commitment": self.commitment}]))
