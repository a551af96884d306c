# crossarb/jupiter.py
"""
Jupiter aggregator client and the Solana SwapService built on it
"""

import logging
from decimal import Decimal, ROUND_FLOOR
from typing import Any, Dict, Optional

import requests

from crossarb.config import (
    HTTP_TIMEOUT_SECONDS,
    JUPITER_SLIPPAGE_BPS,
    SOL_DECIMALS,
    TOKEN_SOL_DECIMALS,
    TOKEN_SOL_MINT,
    WETH_SOL_DECIMALS,
    WETH_SOL_MINT,
    WSOL_MINT,
)
from crossarb.errors import ConfigurationError, ConnectivityError, NoRouteError
from crossarb.interfaces import TransactionSigner
from crossarb.models import Asset, Chain, QuoteHandle, TxSubmission

logger = logging.getLogger(__name__)


# (mint, decimals) per asset on Solana
SOLANA_ASSETS = {
    Asset.TOKEN: (TOKEN_SOL_MINT, TOKEN_SOL_DECIMALS),
    Asset.COUNTER: (WETH_SOL_MINT, WETH_SOL_DECIMALS),
    Asset.SETTLEMENT: (WSOL_MINT, SOL_DECIMALS),
}


class JupiterClient:
    """Thin wrapper over the Jupiter swap API (/quote and /swap)"""

    def __init__(
        self,
        base_url: str,
        session: Optional[requests.Session] = None,
        slippage_bps: int = JUPITER_SLIPPAGE_BPS,
        timeout: float = HTTP_TIMEOUT_SECONDS,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.slippage_bps = slippage_bps
        self.timeout = timeout

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}/{path}"
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
            resp.raise_for_status()
            return resp.json()
        except requests.HTTPError as e:
            # Jupiter answers 400 with an error body when no route exists
            status = e.response.status_code if e.response is not None else None
            if status == 400:
                raise NoRouteError(
                    f"Jupiter rejected {path}: {e}",
                    input_asset=str(kwargs.get("params", {}).get("inputMint")),
                    output_asset=str(kwargs.get("params", {}).get("outputMint")),
                )
            raise ConnectivityError(f"Jupiter {path} failed: {e}", service="jupiter")
        except (requests.RequestException, ValueError) as e:
            raise ConnectivityError(f"Jupiter {path} failed: {e}", service="jupiter")

    def quote(self, input_mint: str, output_mint: str, amount: int) -> Dict[str, Any]:
        """amount in raw base units of the input mint"""
        body = self._request(
            "GET",
            "quote",
            params={
                "inputMint": input_mint,
                "outputMint": output_mint,
                "amount": str(int(amount)),
                "slippageBps": self.slippage_bps,
            },
        )
        if not body.get("routePlan"):
            raise NoRouteError(
                "No route found for the swap",
                input_asset=input_mint,
                output_asset=output_mint,
            )
        return body

    def swap(self, quote_response: Dict[str, Any], user_public_key: str) -> Dict[str, Any]:
        """Returns {'swapTransaction': base64, 'lastValidBlockHeight': int, ...}"""
        body = self._request(
            "POST",
            "swap",
            json={
                "quoteResponse": quote_response,
                "userPublicKey": user_public_key,
                "wrapAndUnwrapSol": True,
            },
        )
        if "swapTransaction" not in body:
            raise ConnectivityError("Jupiter swap response has no transaction", service="jupiter")
        return body


def _to_raw(amount: Decimal, decimals: int) -> int:
    return int((Decimal(amount) * (Decimal(10) ** decimals)).to_integral_value(rounding=ROUND_FLOOR))


def _from_raw(raw, decimals: int) -> Decimal:
    return Decimal(int(raw)) / (Decimal(10) ** decimals)


class JupiterSwapService:
    """SwapService for Solana. Signing and broadcast go through a TransactionSigner."""

    chain = Chain.SOLANA

    def __init__(
        self,
        client: JupiterClient,
        public_key: str,
        signer: Optional[TransactionSigner] = None,
    ):
        self.client = client
        self.public_key = public_key
        self.signer = signer

    def quote(self, input_asset: Asset, output_asset: Asset, amount: Decimal) -> QuoteHandle:
        in_mint, in_decimals = SOLANA_ASSETS[input_asset]
        out_mint, out_decimals = SOLANA_ASSETS[output_asset]

        raw_in = _to_raw(amount, in_decimals)
        if raw_in <= 0:
            raise NoRouteError(
                f"Amount {amount} rounds to zero",
                input_asset=input_asset.value,
                output_asset=output_asset.value,
            )

        response = self.client.quote(in_mint, out_mint, raw_in)
        return QuoteHandle(
            chain=self.chain,
            input_asset=input_asset,
            output_asset=output_asset,
            amount_in=_from_raw(raw_in, in_decimals),
            expected_out=_from_raw(response["outAmount"], out_decimals),
            min_out=_from_raw(response["otherAmountThreshold"], out_decimals),
            raw=response,
        )

    def execute(self, quote: QuoteHandle) -> TxSubmission:
        if self.signer is None:
            raise ConfigurationError("No Solana transaction signer configured")

        response = quote.raw
        logger.info(
            f"Executing Jupiter swap: {response.get('inputMint')} -> {response.get('outputMint')} "
            f"in={response.get('inAmount')} out={response.get('outAmount')}"
        )
        swap = self.client.swap(response, self.public_key)
        signature = self.signer.sign_and_send(swap["swapTransaction"])
        logger.info(f"Solana tx sent: {signature}")

        return TxSubmission(
            chain=self.chain,
            tx_ref=signature,
            expiry_height=int(swap["lastValidBlockHeight"]),
        )
