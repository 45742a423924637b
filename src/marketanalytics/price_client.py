# price_client.py
"""
Historical USD prices from a CoinGecko-compatible price service.

Two operations:
- build_index(): coin listing -> {TICKER: coin_id}, one id per ticker.
- fetch_prices(ids, day): one /coins/{id}/history lookup per id -> {coin_id: usd}.

Outcome rules for a single history lookup:
- transport error, non-2xx status, undecodable body  -> PriceServiceError (hard)
- no market_data section                             -> MissingMarketData (soft, price 0)
- market data without a positive numeric USD price   -> PriceServiceError (hard)

A hard error for any id fails the whole fetch_prices call; no partial table
is returned.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Protocol, Union

import requests
from pydantic import ValidationError

from .config import DEFAULT_PRICE_API_URL, PipelineConfig
from .errors import PriceServiceError
from .schemas import CoinInfo, PriceIndex, PriceTable

logger = logging.getLogger(__name__)

# Preferred id when several listings share a ticker (native network over
# bridged/wrapped copies).
CANONICAL_COIN_IDS: Dict[str, str] = {
    "MATIC": "matic-network",
    "ETH": "ethereum",
    "USDC": "usd-coin",
}

NO_MARKET_DATA_PRICE = 0.0


@dataclass(frozen=True)
class PriceQuote:
    """A usable USD price for one coin on one day."""

    coin_id: str
    price_usd: float


@dataclass(frozen=True)
class MissingMarketData:
    """The service knows the coin but has no market data for that day."""

    coin_id: str
    price_usd: float = NO_MARKET_DATA_PRICE


PriceOutcome = Union[PriceQuote, MissingMarketData]


class PriceSource(Protocol):
    """What the batch job and pipeline need from a price service."""

    def build_index(self) -> PriceIndex: ...

    def fetch_prices(self, coin_ids: Iterable[str], day: date) -> PriceTable: ...


# -----------------------------------------------------------------------------
# Pure helpers (no network)
# -----------------------------------------------------------------------------

def build_price_index(
    coins: Iterable[CoinInfo],
    canonical_ids: Optional[Dict[str, str]] = None,
) -> PriceIndex:
    """
    Map uppercase ticker -> coin id.

    The first listing seen for a ticker wins, unless a later listing carries
    the canonical id for that ticker. The result does not depend on where the
    canonical listing appears.
    """
    canonical = CANONICAL_COIN_IDS if canonical_ids is None else canonical_ids
    index: PriceIndex = {}
    for coin in coins:
        symbol = coin.symbol.upper()
        if symbol not in index or coin.id == canonical.get(symbol):
            index[symbol] = coin.id
    return index


def parse_price_payload(coin_id: str, payload: Any) -> PriceOutcome:
    """Classify a decoded /history response; raise on unusable price data."""
    if not isinstance(payload, dict):
        raise PriceServiceError(f"invalid price response for {coin_id}: expected a JSON object")

    market_data = payload.get("market_data")
    if not isinstance(market_data, dict):
        return MissingMarketData(coin_id)

    current_price = market_data.get("current_price")
    if not isinstance(current_price, dict):
        return MissingMarketData(coin_id)

    usd = current_price.get("usd")
    if isinstance(usd, bool) or not isinstance(usd, (int, float)):
        raise PriceServiceError(f"USD price for {coin_id} not found or not numeric: {usd!r}")
    price = float(usd)
    if not math.isfinite(price) or price <= 0:
        raise PriceServiceError(f"USD price for {coin_id} must be positive, got {usd!r}")
    return PriceQuote(coin_id, price)


# -----------------------------------------------------------------------------
# HTTP client
# -----------------------------------------------------------------------------

class CoinGeckoClient:
    """
    Blocking client for the CoinGecko v3 API.

    `session` only needs a requests-style get(url, params=..., timeout=...);
    tests pass a fake one.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_PRICE_API_URL,
        timeout: float = 15.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config: PipelineConfig) -> "CoinGeckoClient":
        return cls(base_url=config.price_api_url, timeout=config.http_timeout)

    def _get_json(self, path: str, params: Optional[Dict[str, str]] = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as error:
            raise PriceServiceError(f"error calling price service {url}: {error}") from error

        if not 200 <= resp.status_code < 300:
            raise PriceServiceError(f"price service {url} returned status {resp.status_code}")

        try:
            return resp.json()
        except ValueError as error:
            raise PriceServiceError(f"price service {url} returned an undecodable body") from error

    def fetch_coin_list(self) -> List[CoinInfo]:
        payload = self._get_json("/coins/list")
        if not isinstance(payload, list):
            raise PriceServiceError("coin list response is not a JSON array")
        try:
            return [CoinInfo.model_validate(item) for item in payload]
        except ValidationError as error:
            raise PriceServiceError(f"error decoding coin list: {error}") from error

    def build_index(self) -> PriceIndex:
        index = build_price_index(self.fetch_coin_list())
        logger.info("Built price index with %d tickers", len(index))
        return index

    def fetch_price(self, coin_id: str, day: date) -> PriceOutcome:
        """Look up one coin's USD price for `day` (service date format is DD-MM-YYYY)."""
        payload = self._get_json(
            f"/coins/{coin_id}/history",
            params={"date": day.strftime("%d-%m-%Y"), "localization": "false"},
        )
        return parse_price_payload(coin_id, payload)

    def fetch_prices(self, coin_ids: Iterable[str], day: date) -> PriceTable:
        """
        Sequentially fetch prices for every id.

        Coins without market data get 0.0 and the loop continues; any other
        failure raises PriceServiceError and discards what was fetched so far.
        """
        prices: PriceTable = {}
        for coin_id in coin_ids:
            try:
                outcome = self.fetch_price(coin_id, day)
            except PriceServiceError as error:
                raise PriceServiceError(f"error fetching price for coin {coin_id}: {error}") from error
            if isinstance(outcome, MissingMarketData):
                logger.info("No market data for coin %s on %s", coin_id, day.isoformat())
            prices[coin_id] = outcome.price_usd
        return prices
