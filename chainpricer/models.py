"""
Price-history data contracts.

PricePoint is validated at every boundary it crosses (provider parse,
CSV import, database read), so the pricing code downstream can assume
non-negative numbers and a real calendar date.
"""

from datetime import date, datetime, timezone
from typing import Iterable, Iterator, List, Optional, Tuple

import numpy as np
import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, field_validator


class PricePoint(BaseModel):
    """One daily OHLCV bar. Unique per (ticker, date)."""

    model_config = ConfigDict(frozen=True)

    date: date
    open: float = Field(..., ge=0)
    high: float = Field(..., ge=0)
    low: float = Field(..., ge=0)
    close: float = Field(..., ge=0)
    volume: int = Field(..., ge=0)

    @field_validator("date", mode="before")
    @classmethod
    def _strip_time(cls, v):
        # SQLite DATETIME columns may carry a time part
        if isinstance(v, datetime):
            return v.date()
        if isinstance(v, str) and len(v) > 10:
            return v[:10]
        return v

    def to_chart_record(self) -> dict:
        """Bar in the shape charting front-ends expect (unix seconds)."""
        midnight = datetime(self.date.year, self.date.month, self.date.day, tzinfo=timezone.utc)
        return {
            "time": int(midnight.timestamp()),
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }


class PriceSeries:
    """
    Ordered daily history for one ticker.

    Points must be strictly ascending by date; anything else is a
    programming error upstream and raises ValueError.
    """

    def __init__(self, ticker: str, points: Iterable[PricePoint] = ()):
        self.ticker = ticker
        self.points: Tuple[PricePoint, ...] = tuple(points)
        for prev, cur in zip(self.points, self.points[1:]):
            if cur.date <= prev.date:
                raise ValueError(
                    f"{ticker}: price points must be strictly ascending by date "
                    f"({prev.date} then {cur.date})"
                )

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[PricePoint]:
        return iter(self.points)

    def __repr__(self) -> str:
        span = f"{self.first_date}..{self.latest_date}" if self.points else "empty"
        return f"PriceSeries({self.ticker!r}, {len(self)} points, {span})"

    @property
    def first_date(self) -> Optional[date]:
        return self.points[0].date if self.points else None

    @property
    def latest(self) -> Optional[PricePoint]:
        return self.points[-1] if self.points else None

    @property
    def latest_date(self) -> Optional[date]:
        return self.points[-1].date if self.points else None

    def closes(self) -> np.ndarray:
        return np.array([p.close for p in self.points], dtype=float)

    def to_frame(self) -> pd.DataFrame:
        """OHLCV DataFrame indexed by date."""
        columns = ["date", "open", "high", "low", "close", "volume"]
        if not self.points:
            return pd.DataFrame(columns=columns).set_index("date")
        df = pd.DataFrame([p.model_dump() for p in self.points], columns=columns)
        return df.set_index("date")

    def to_chart_records(self) -> List[dict]:
        return [p.to_chart_record() for p in self.points]
