# crossarb/price_feed.py
"""
Cross-rate feeds (SOL per 1 ETH) with an explicit cache

The cache is a value owned by the feed, refreshed by age and/or by call
count, instead of module-level globals.
"""

import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Optional

import requests

from crossarb.config import (
    CMC_REFRESH_EVERY_CALLS,
    CROSS_RATE_MAX_AGE_SECONDS,
    HTTP_TIMEOUT_SECONDS,
    SOL_DECIMALS,
    WETH_SOL_DECIMALS,
    WETH_SOL_MINT,
    WSOL_MINT,
)
from crossarb.errors import ConnectivityError
from crossarb.interfaces import CrossRateSource
from crossarb.jupiter import JupiterClient

logger = logging.getLogger(__name__)


# =============================================================================
# CACHE
# =============================================================================

@dataclass(frozen=True)
class CachedPrice:
    value: Decimal
    fetched_at: float
    call_count: int     # get() calls seen when this value was fetched


class PriceCache:
    """
    Wraps a CrossRateSource.

    A value is refreshed when it is older than max_age_seconds, or when
    refresh_every get() calls have passed since it was fetched. With neither
    set, the first value is kept forever. Refresh failures propagate.
    """

    def __init__(
        self,
        source: CrossRateSource,
        max_age_seconds: Optional[float] = CROSS_RATE_MAX_AGE_SECONDS,
        refresh_every: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.source = source
        self.max_age_seconds = max_age_seconds
        self.refresh_every = refresh_every
        self._clock = clock
        self._calls = 0
        self._cached: Optional[CachedPrice] = None

    @property
    def cached(self) -> Optional[CachedPrice]:
        return self._cached

    def _is_stale(self, now: float) -> bool:
        if self._cached is None:
            return True
        if self.max_age_seconds is not None and now - self._cached.fetched_at >= self.max_age_seconds:
            return True
        if self.refresh_every is not None and self._calls - self._cached.call_count >= self.refresh_every:
            return True
        return False

    def get_cross_rate(self) -> Decimal:
        self._calls += 1
        now = self._clock()
        if self._is_stale(now):
            value = self.source.get_cross_rate()
            self._cached = CachedPrice(value=value, fetched_at=now, call_count=self._calls)
            logger.info(f"Cross rate refreshed: 1 ETH = {value:.4f} SOL")
        return self._cached.value

    def invalidate(self) -> None:
        self._cached = None


# =============================================================================
# SOURCES
# =============================================================================

class JupiterCrossRateSource:
    """Quotes 1 WETH (Wormhole, Solana) -> WSOL and reads the guaranteed output"""

    def __init__(self, client: JupiterClient):
        self.client = client

    def get_cross_rate(self) -> Decimal:
        one_weth = 10 ** WETH_SOL_DECIMALS
        quote = self.client.quote(WETH_SOL_MINT, WSOL_MINT, one_weth)
        lamports = int(quote["otherAmountThreshold"])
        return Decimal(lamports) / Decimal(10 ** SOL_DECIMALS)


class CoinMarketCapCrossRateSource:
    """ETH-USD / SOL-USD from CoinMarketCap quotes/latest"""

    BASE_URL = "https://pro-api.coinmarketcap.com/v2/cryptocurrency/quotes/latest"
    ETH_ID = "1027"
    SOL_ID = "5426"

    def __init__(
        self,
        api_key: str,
        session: Optional[requests.Session] = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
    ):
        self.api_key = api_key
        self.session = session or requests.Session()
        self.timeout = timeout

    def _usd_price(self, data: dict, cmc_id: str, symbol: str) -> Decimal:
        entry = data.get(cmc_id)
        if isinstance(entry, list):
            entry = entry[0] if entry else None
        try:
            price = entry["quote"]["USD"]["price"]
        except (KeyError, TypeError):
            raise ConnectivityError(
                f"{symbol} price data (ID {cmc_id}) missing", service="coinmarketcap"
            )
        return Decimal(str(price))

    def get_prices_usd(self) -> tuple:
        try:
            resp = self.session.get(
                self.BASE_URL,
                params={"id": f"{self.ETH_ID},{self.SOL_ID}"},
                headers={"X-CMC_PRO_API_KEY": self.api_key, "Accept": "application/json"},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            body = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise ConnectivityError(f"CMC request failed: {e}", service="coinmarketcap")

        status = body.get("status", {})
        if status.get("error_code", 0) != 0:
            raise ConnectivityError(
                f"CMC API error: {status.get('error_message') or 'unknown error'}",
                service="coinmarketcap",
            )

        data = body.get("data", {})
        eth_usd = self._usd_price(data, self.ETH_ID, "ETH")
        sol_usd = self._usd_price(data, self.SOL_ID, "SOL")
        logger.info(f"CMC prices fetched: ETH ${eth_usd:.2f}, SOL ${sol_usd:.2f}")
        return eth_usd, sol_usd

    def get_cross_rate(self) -> Decimal:
        eth_usd, sol_usd = self.get_prices_usd()
        if sol_usd <= 0:
            raise ConnectivityError("CMC returned a non-positive SOL price", service="coinmarketcap")
        return eth_usd / sol_usd


def build_cross_rate_feed(
    source_name: str,
    jupiter: JupiterClient,
    cmc_api_key: Optional[str] = None,
) -> PriceCache:
    """jupiter: refreshed by age; cmc: refreshed every CMC_REFRESH_EVERY_CALLS calls"""
    if source_name == "cmc":
        return PriceCache(
            CoinMarketCapCrossRateSource(cmc_api_key),
            max_age_seconds=None,
            refresh_every=CMC_REFRESH_EVERY_CALLS,
        )
    if source_name == "jupiter":
        return PriceCache(JupiterCrossRateSource(jupiter))
    raise ValueError(f"Unknown cross rate source: {source_name}")
