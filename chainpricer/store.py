"""
Durable daily price history, one wide table keyed by (ticker, date).

Backed by SQLite through aiosqlite so that reads and the backfill write
suspend instead of blocking other requests. Every multi-row write runs
in a single explicit transaction: either the whole batch lands or the
table is left exactly as it was.
"""

import asyncio
from datetime import date, timedelta
from pathlib import Path
from typing import Any, Iterable, List, Optional, Tuple, Union

import aiosqlite
from loguru import logger
from pydantic import ValidationError

from . import config
from .exceptions import StorageFailure
from .models import PricePoint, PriceSeries


SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS stock_prices (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        ticker TEXT NOT NULL,
        date TEXT NOT NULL,
        open REAL NOT NULL,
        high REAL NOT NULL,
        low REAL NOT NULL,
        close REAL NOT NULL,
        volume INTEGER NOT NULL,
        UNIQUE(ticker, date)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_stock_date ON stock_prices (ticker, date)",
]

_UPSERT = """
    INSERT INTO stock_prices (ticker, date, open, high, low, close, volume)
    VALUES (?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT(ticker, date) DO UPDATE SET
        open = excluded.open,
        high = excluded.high,
        low = excluded.low,
        close = excluded.close,
        volume = excluded.volume
"""


def is_stale(latest: Optional[date], today: Optional[date] = None, max_age_days: int = None) -> bool:
    """
    True when cached history needs a refresh.

    No rows at all counts as stale (full fetch); otherwise stale once
    the newest bar is more than ``max_age_days`` old.
    """
    if max_age_days is None:
        max_age_days = config.MAX_DATA_AGE_DAYS
    if latest is None:
        return True
    if today is None:
        today = date.today()
    return today - latest > timedelta(days=max_age_days)


class PriceSeriesStore:
    """Async SQLite store for per-ticker OHLCV rows."""

    def __init__(self, db_path: Union[str, Path] = None) -> None:
        if db_path is None:
            db_path = config.DB_PATH
        self._db_path = db_path
        self._conn: Optional[aiosqlite.Connection] = None
        # one connection, so transactions from concurrent refreshes must not interleave
        self._write_lock = asyncio.Lock()

    @property
    def db_path(self) -> Union[str, Path]:
        return self._db_path

    async def start(self) -> None:
        if str(self._db_path) != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        # autocommit mode; batches open their own BEGIN/COMMIT
        self._conn = await aiosqlite.connect(self._db_path, isolation_level=None)
        self._conn.row_factory = aiosqlite.Row
        for statement in SCHEMA_STATEMENTS:
            await self._conn.execute(statement)
        logger.debug(f"Price store ready at {self._db_path}")

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None

    async def __aenter__(self) -> "PriceSeriesStore":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _require_conn(self) -> aiosqlite.Connection:
        if not self._conn:
            raise RuntimeError("PriceSeriesStore has not been started")
        return self._conn

    async def _fetch(self, query: str, params: Tuple[Any, ...] = ()) -> List[aiosqlite.Row]:
        conn = self._require_conn()
        try:
            async with conn.execute(query, params) as cursor:
                return list(await cursor.fetchall())
        except aiosqlite.Error as e:
            raise StorageFailure(f"query failed: {e}") from e

    # ── reads ────────────────────────────────────────────────────────────

    async def exists(self, ticker: str) -> bool:
        rows = await self._fetch(
            "SELECT COUNT(*) AS count FROM stock_prices WHERE ticker = ?", (ticker,)
        )
        return rows[0]["count"] > 0

    async def latest_date(self, ticker: str) -> Optional[date]:
        rows = await self._fetch(
            "SELECT MAX(date) AS latest_date FROM stock_prices WHERE ticker = ?", (ticker,)
        )
        latest = rows[0]["latest_date"]
        return date.fromisoformat(latest[:10]) if latest else None

    async def read_all(self, ticker: str) -> PriceSeries:
        rows = await self._fetch(
            "SELECT date, open, high, low, close, volume FROM stock_prices "
            "WHERE ticker = ? ORDER BY date",
            (ticker,),
        )
        try:
            points = [PricePoint.model_validate(dict(row)) for row in rows]
        except ValidationError as e:
            raise StorageFailure(f"corrupt price row for {ticker}: {e}") from e
        return PriceSeries(ticker, points)

    async def tickers(self) -> List[str]:
        rows = await self._fetch("SELECT DISTINCT ticker FROM stock_prices ORDER BY ticker")
        return [row["ticker"] for row in rows]

    async def search(self, query: str) -> List[str]:
        rows = await self._fetch(
            "SELECT DISTINCT ticker FROM stock_prices WHERE ticker LIKE ? ORDER BY ticker",
            (f"%{query}%",),
        )
        return [row["ticker"] for row in rows]

    # ── writes ───────────────────────────────────────────────────────────

    @staticmethod
    def _to_row(ticker: str, point: PricePoint) -> Tuple[Any, ...]:
        return (
            ticker,
            point.date.isoformat(),
            point.open,
            point.high,
            point.low,
            point.close,
            point.volume,
        )

    async def _rollback(self) -> None:
        try:
            await self._require_conn().execute("ROLLBACK")
        except aiosqlite.Error as e:
            # no transaction was open (BEGIN itself failed)
            logger.warning(f"Rollback skipped: {e}")

    async def _write_batch(self, ticker: str, points: List[PricePoint], clear: bool) -> int:
        conn = self._require_conn()
        action = "Replace" if clear else "Upsert"
        async with self._write_lock:
            try:
                await conn.execute("BEGIN")
                if clear:
                    await conn.execute("DELETE FROM stock_prices WHERE ticker = ?", (ticker,))
                before = conn.total_changes
                for point in points:
                    await conn.execute(_UPSERT, self._to_row(ticker, point))
                await conn.execute("COMMIT")
            except asyncio.CancelledError:
                await self._rollback()
                raise
            except Exception as e:
                await self._rollback()
                logger.error(f"{action} of {len(points)} rows for {ticker} rolled back: {e}")
                raise StorageFailure(f"failed to store prices for {ticker}: {e}") from e
            return conn.total_changes - before

    async def upsert(self, ticker: str, points: Iterable[PricePoint]) -> int:
        """
        Insert or overwrite-by-date a batch of bars in one transaction.

        Returns
        -------
        int : rows written

        Raises
        ------
        StorageFailure : the batch was rolled back; prior rows are intact
        """
        points = list(points)
        if not points:
            self._require_conn()
            return 0
        written = await self._write_batch(ticker, points, clear=False)
        logger.info(f"Stored {written} records for {ticker}")
        return written

    async def replace(self, ticker: str, points: Iterable[PricePoint]) -> int:
        """
        Swap a ticker's whole history for ``points``.

        The delete and the inserts share one transaction, so a failure
        leaves the previous history in place.

        Raises
        ------
        StorageFailure : nothing was changed
        """
        points = list(points)
        written = await self._write_batch(ticker, points, clear=True)
        logger.info(f"Replaced history for {ticker} with {written} records")
        return written

    async def delete(self, ticker: str) -> int:
        conn = self._require_conn()
        try:
            async with self._write_lock:
                cursor = await conn.execute("DELETE FROM stock_prices WHERE ticker = ?", (ticker,))
        except aiosqlite.Error as e:
            raise StorageFailure(f"failed to delete prices for {ticker}: {e}") from e
        logger.info(f"Deleted {cursor.rowcount} existing records for {ticker}")
        return cursor.rowcount
