"""
Daily price history retrieval.

Supports two sources behind one interface:
    1. Live: Alpha Vantage TIME_SERIES_DAILY over HTTPS (needs an API key)
    2. Synthetic: geometric Brownian motion (offline, reproducible)

Either way the output is a list of validated PricePoint, ascending by
date. The provider's loosely-typed JSON ("1. open", "4. close", ...) is
parsed strictly at this boundary; nothing downstream sees raw payloads.

This is intentionally separated from the store and the service so that
the HTTP concerns (timeouts, throttling, retries) stay in one place.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import date, timedelta
from typing import Dict, List, Optional

import httpx
import numpy as np
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from . import config
from .exceptions import (
    MalformedProviderResponse,
    NoData,
    ProviderUnavailable,
    RateLimited,
)
from .models import PricePoint
from .retry import RetryPolicy, Sleep


class PriceProvider(ABC):
    """Contract every price-history source satisfies."""

    @abstractmethod
    async def fetch_full(self, ticker: str) -> List[PricePoint]:
        """Entire available history, ascending by date."""

    async def fetch_since(self, ticker: str, since: date) -> List[PricePoint]:
        """Bars strictly after ``since``. Default: filter a full fetch."""
        return [p for p in await self.fetch_full(ticker) if p.date > since]

    async def aclose(self) -> None:
        """Release network resources, if any."""


# ════════════════════════════════════════════════════════════════════════
#  LIVE DATA (Alpha Vantage)
# ════════════════════════════════════════════════════════════════════════

TIME_SERIES_KEY = "Time Series (Daily)"


class _DailyBar(BaseModel):
    """One entry of the provider's daily time series."""

    model_config = ConfigDict(populate_by_name=True)

    open: float = Field(..., alias="1. open")
    high: float = Field(..., alias="2. high")
    low: float = Field(..., alias="3. low")
    close: float = Field(..., alias="4. close")
    volume: int = Field(..., alias="5. volume")


_THROTTLE_WORDS = ("limit", "frequency")


def _mentions_limit(text) -> bool:
    text = str(text).lower()
    return any(word in text for word in _THROTTLE_WORDS)


def parse_time_series(payload, ticker: str) -> List[PricePoint]:
    """
    Map a TIME_SERIES_DAILY payload to PricePoint, ascending by date.

    Raises
    ------
    NoData : provider reports an invalid symbol, or the series is empty
    RateLimited : throttling note delivered in-band with HTTP 200
    MalformedProviderResponse : any other shape mismatch
    """
    if not isinstance(payload, dict):
        raise MalformedProviderResponse(f"expected a JSON object, got {type(payload).__name__}")

    if "Error Message" in payload:
        raise NoData(f"No data found for ticker \"{ticker}\": {payload['Error Message']}")

    for key in ("Note", "Information"):
        if key in payload and _mentions_limit(payload[key]):
            raise RateLimited(f"Alpha Vantage API rate limit reached: {payload[key]}")

    if TIME_SERIES_KEY not in payload:
        raise MalformedProviderResponse(
            f"missing '{TIME_SERIES_KEY}' for {ticker}; keys: {sorted(payload)}"
        )

    series = payload[TIME_SERIES_KEY]
    if not isinstance(series, dict):
        raise MalformedProviderResponse(f"'{TIME_SERIES_KEY}' is not an object")
    if not series:
        raise NoData(f"No data found for ticker \"{ticker}\" via Alpha Vantage API")

    points = []
    for day, entry in series.items():
        try:
            bar = _DailyBar.model_validate(entry)
            points.append(PricePoint(date=day, **bar.model_dump()))
        except ValidationError as e:
            raise MalformedProviderResponse(f"bad bar for {ticker} on {day!r}: {e}") from e

    points.sort(key=lambda p: p.date)
    return points


class AlphaVantageProvider(PriceProvider):
    """
    Remote backfill client for Alpha Vantage daily series.

    Every request goes through a RetryPolicy: transport problems and
    throttling are retried with exponential backoff (faster growth when
    throttled); unknown symbols and malformed payloads fail at once.
    """

    def __init__(
        self,
        api_key: str = None,
        base_url: str = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        retry: Optional[RetryPolicy] = None,
        timeout: float = None,
        sleep: Optional[Sleep] = None,
    ) -> None:
        self._api_key = config.ALPHA_VANTAGE_API_KEY if api_key is None else api_key
        self._base_url = base_url or config.ALPHA_VANTAGE_URL
        self._timeout = config.REQUEST_TIMEOUT if timeout is None else timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self._timeout)
        self._retry = retry or RetryPolicy()
        self._sleep = sleep or asyncio.sleep

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "AlphaVantageProvider":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def _check_credentials(self) -> None:
        if (self._api_key or "").strip() in config.PLACEHOLDER_API_KEYS:
            raise ProviderUnavailable(
                "Alpha Vantage API key not set. Please configure ALPHA_VANTAGE_API_KEY in .env file."
            )

    async def _get_once(self, ticker: str, outputsize: str) -> List[PricePoint]:
        params: Dict[str, str] = {
            "function": "TIME_SERIES_DAILY",
            "symbol": ticker,
            "outputsize": outputsize,
            "apikey": self._api_key,
        }
        try:
            response = await self._client.get(self._base_url, params=params, timeout=self._timeout)
        except httpx.TimeoutException as e:
            raise ProviderUnavailable(f"request for {ticker} timed out after {self._timeout}s") from e
        except httpx.RequestError as e:
            raise ProviderUnavailable(f"request for {ticker} failed: {e}") from e

        if response.status_code == 429:
            raise RateLimited(f"Alpha Vantage returned 429 for {ticker}")
        if response.status_code >= 400:
            raise ProviderUnavailable(f"Alpha Vantage returned HTTP {response.status_code} for {ticker}")

        try:
            payload = response.json()
        except ValueError as e:
            raise MalformedProviderResponse(f"non-JSON response for {ticker}") from e
        return parse_time_series(payload, ticker)

    async def _fetch(self, ticker: str, outputsize: str) -> List[PricePoint]:
        self._check_credentials()
        logger.info(f"Fetching data for {ticker} from Alpha Vantage (outputsize={outputsize})...")

        async def attempt():
            return await self._get_once(ticker, outputsize)

        try:
            points = await self._retry.run(attempt, sleep=self._sleep)
        except (ProviderUnavailable, RateLimited, NoData, MalformedProviderResponse) as e:
            logger.error(f"Error fetching data for {ticker} from Alpha Vantage: {e}")
            raise

        logger.info(f"Retrieved {len(points)} days of price data for {ticker}")
        return points

    async def fetch_full(self, ticker: str) -> List[PricePoint]:
        return await self._fetch(ticker, "full")

    async def fetch_since(self, ticker: str, since: date, today: Optional[date] = None) -> List[PricePoint]:
        """
        Incremental fetch: only bars after ``since``.

        Uses the small "compact" response when the gap fits inside it,
        the full history otherwise.
        """
        if today is None:
            today = date.today()
        gap = (today - since).days
        outputsize = "compact" if gap < config.COMPACT_WINDOW_DAYS else "full"
        points = await self._fetch(ticker, outputsize)
        return [p for p in points if p.date > since]


# ════════════════════════════════════════════════════════════════════════
#  SYNTHETIC DATA (GBM)
# ════════════════════════════════════════════════════════════════════════

def generate_price_series(
    days: int = 250,
    end_close: float = 100.0,
    volatility: float = 0.25,
    end_date: Optional[date] = None,
    seed: Optional[int] = None,
) -> List[PricePoint]:
    """
    Reproducible daily bars from geometric Brownian motion.

    One bar per calendar day (the pricer annualizes with 365), scaled so
    the last close is exactly ``end_close``. Useful offline and in tests.

    Parameters
    ----------
    days : number of bars
    end_close : close of the final bar
    volatility : annualized vol of the simulated log returns
    end_date : date of the final bar (default: today)
    seed : random seed (default: config.SEED)
    """
    if end_date is None:
        end_date = date.today()
    if seed is None:
        seed = config.SEED

    rng = np.random.default_rng(seed)
    daily_sigma = volatility / np.sqrt(config.DAYS_PER_YEAR)
    log_returns = rng.normal(0.0, daily_sigma, size=days)
    path = np.exp(np.cumsum(log_returns))
    closes = path * (end_close / path[-1])

    # open at the previous close, wick a little beyond the body
    opens = np.concatenate(([closes[0]], closes[:-1]))
    wick = np.abs(rng.normal(0.0, daily_sigma / 2, size=days))
    highs = np.maximum(opens, closes) * (1 + wick)
    lows = np.minimum(opens, closes) * (1 - wick)
    volumes = rng.integers(1_000_000, 5_000_000, size=days)

    start = end_date - timedelta(days=days - 1)
    return [
        PricePoint(
            date=start + timedelta(days=i),
            open=float(opens[i]),
            high=float(highs[i]),
            low=float(max(lows[i], 0.0)),
            close=float(closes[i]),
            volume=int(volumes[i]),
        )
        for i in range(days)
    ]


class SyntheticProvider(PriceProvider):
    """Offline provider serving GBM histories, one seed per ticker."""

    def __init__(
        self,
        days: int = 250,
        end_close: float = 100.0,
        volatility: float = 0.25,
        seed: Optional[int] = None,
        end_date: Optional[date] = None,
    ) -> None:
        self.days = days
        self.end_close = end_close
        self.volatility = volatility
        self.seed = config.SEED if seed is None else seed
        self.end_date = end_date

    async def fetch_full(self, ticker: str) -> List[PricePoint]:
        # stable per-ticker offset so different symbols get different paths
        ticker_seed = self.seed + sum(ord(c) for c in ticker)
        logger.info(f"Generating {self.days} synthetic bars for {ticker}")
        return generate_price_series(
            days=self.days,
            end_close=self.end_close,
            volatility=self.volatility,
            end_date=self.end_date,
            seed=ticker_seed,
        )


# ════════════════════════════════════════════════════════════════════════
#  UNIFIED INTERFACE
# ════════════════════════════════════════════════════════════════════════

def get_provider(source: str = "live", **kwargs) -> PriceProvider:
    """
    Main entry point for building a price provider.

    Parameters
    ----------
    source : "live" or "synthetic"
    kwargs : forwarded to the provider constructor
    """
    if source == "live":
        return AlphaVantageProvider(**kwargs)
    elif source == "synthetic":
        return SyntheticProvider(**kwargs)
    else:
        raise ValueError(f"Unknown source: {source}. Use 'live' or 'synthetic'.")
