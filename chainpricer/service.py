"""
Request pipeline exposed to the routing / presentation layer.

    price request -> store (cached?) -> stale or absent? -> provider backfill
                  -> volatility -> ladders -> chain snapshot

Collaborators (store, provider, clock) are passed in, never looked up
globally, so each test can wire its own doubles.

Freshness policy
----------------
* no rows for the ticker: full backfill; failures propagate
* newest row older than config.MAX_DATA_AGE_DAYS: incremental backfill
* refresh of an existing ticker fails: the cached rows are served anyway
  (``serve_stale_on_failure``, on by default) and a warning is logged

Concurrent requests for the same ticker share one backfill.
"""

from datetime import date
from typing import Callable, List, Optional, Union

from loguru import logger

from . import config
from .chain import OptionChainSnapshot, generate_chain
from .exceptions import InvalidInput, NoData, RefreshCancelled, RemoteFetchError, StorageFailure
from .ladders import build_expiry_ladder, build_strike_ladder
from .models import PriceSeries
from .providers import PriceProvider
from .singleflight import FlightCancelled, SingleFlight
from .store import PriceSeriesStore, is_stale
from .volatility import estimate_volatility


def normalize_ticker(ticker: str) -> str:
    symbol = (ticker or "").strip().upper()
    if not symbol:
        raise InvalidInput("ticker", "ticker symbol is required")
    return symbol


class MarketDataService:
    """
    Parameters
    ----------
    store : started PriceSeriesStore
    provider : remote (or synthetic) price source
    risk_free_rate : rate used for every chain (default: config.RISK_FREE_RATE)
    vol_window : trailing returns for historical vol (default: config.VOL_WINDOW)
    max_age_days : staleness threshold (default: config.MAX_DATA_AGE_DAYS)
    serve_stale_on_failure : keep serving cached rows if a refresh fails
    clock : returns "today"; injectable for tests
    """

    def __init__(
        self,
        store: PriceSeriesStore,
        provider: PriceProvider,
        *,
        risk_free_rate: float = None,
        vol_window: int = None,
        max_age_days: int = None,
        serve_stale_on_failure: bool = None,
        clock: Callable[[], date] = date.today,
    ) -> None:
        self.store = store
        self.provider = provider
        self.risk_free_rate = config.RISK_FREE_RATE if risk_free_rate is None else risk_free_rate
        self.vol_window = vol_window or config.VOL_WINDOW
        self.max_age_days = config.MAX_DATA_AGE_DAYS if max_age_days is None else max_age_days
        self.serve_stale_on_failure = (
            config.SERVE_STALE_ON_FAILURE if serve_stale_on_failure is None else serve_stale_on_failure
        )
        self.clock = clock
        self._flights = SingleFlight()

    # ── refresh ──────────────────────────────────────────────────────────

    async def _backfill(self, ticker: str, latest: Optional[date]) -> int:
        if latest is None:
            logger.info(f"Ticker {ticker} not found in database, fetching full history")
            points = await self.provider.fetch_full(ticker)
        else:
            logger.info(f"Updating data for {ticker}. Latest data from: {latest}")
            points = await self.provider.fetch_since(ticker, latest)
        return await self.store.upsert(ticker, points)

    async def _refresh(self, ticker: str, latest: Optional[date]) -> int:
        try:
            return await self._flights.do(ticker, lambda: self._backfill(ticker, latest))
        except FlightCancelled as e:
            raise RefreshCancelled(f"refresh of {ticker} was cancelled") from e

    async def refresh(self, ticker: str) -> int:
        """
        Backfill one ticker now, regardless of age, joining any refresh
        already in flight. Incremental when rows exist, full otherwise.

        Returns
        -------
        int : rows written by the backfill this call joined
        """
        ticker = normalize_ticker(ticker)
        return await self._refresh(ticker, await self.store.latest_date(ticker))

    def cancel_refresh(self, ticker: str) -> bool:
        """Stop an in-flight backfill. Waiting callers get RefreshCancelled."""
        return self._flights.cancel(normalize_ticker(ticker))

    def refresh_in_flight(self, ticker: str) -> bool:
        return self._flights.in_flight(normalize_ticker(ticker))

    # ── price series ─────────────────────────────────────────────────────

    async def get_price_series(self, ticker: str) -> PriceSeries:
        """
        Cached daily history for ``ticker``, refreshed first if stale.

        Raises
        ------
        InvalidInput : empty ticker
        NoData : ticker unknown here and at the provider
        ProviderUnavailable, RateLimited, MalformedProviderResponse :
            first-time backfill failed (nothing cached to fall back to)
        StorageFailure : database problem
        """
        ticker = normalize_ticker(ticker)
        today = self.clock()
        latest = await self.store.latest_date(ticker)

        if is_stale(latest, today, self.max_age_days):
            if latest is not None:
                logger.info(f"Data for {ticker} is over {self.max_age_days} days old (latest {latest})")
            try:
                await self._refresh(ticker, latest)
            except (RemoteFetchError, StorageFailure) as e:
                if latest is None or not self.serve_stale_on_failure:
                    raise
                logger.warning(f"Refresh of {ticker} failed, serving cached data from {latest}: {e}")

        series = await self.store.read_all(ticker)
        if not series:
            raise NoData(f"No data found for ticker {ticker}. Please check if the symbol is valid.")
        logger.debug(f"Serving {len(series)} price records for {ticker}")
        return series

    async def tickers(self) -> List[str]:
        return await self.store.tickers()

    async def search(self, query: str) -> List[str]:
        return await self.store.search((query or "").strip().upper())

    # ── option chain ─────────────────────────────────────────────────────

    async def get_option_chain(
        self,
        ticker: str,
        target_date: Union[date, str, None] = None,
    ) -> OptionChainSnapshot:
        """
        Theoretical chain for ``ticker`` priced off its latest close.

        ``target_date`` optionally swaps the 0-day expiry for the day
        count to that date; it is echoed on the snapshot either way.
        """
        series = await self.get_price_series(ticker)
        spot = series.latest.close
        if spot <= 0:
            raise InvalidInput("spot", f"latest close for {series.ticker} is not positive: {spot}")

        volatility = estimate_volatility(series.closes(), self.vol_window)
        logger.info(f"{series.ticker}: spot {spot:.2f}, volatility {volatility:.4f}")

        strikes = build_strike_ladder(spot)
        expiries = build_expiry_ladder(target_date, today=self.clock())
        return generate_chain(
            series.ticker,
            spot,
            volatility,
            self.risk_free_rate,
            strikes,
            expiries,
            custom_date=target_date,
        )
