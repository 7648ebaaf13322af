"""
Seed the price store from a daily-price CSV export.

Accepts the common broker/exchange download layout:

    Date,Close/Last,Volume,Open,High,Low
    01/05/2024,$467.92,86118910,$467.49,$470.44,$466.43

Dates may be MM/DD/YYYY or ISO; prices may carry a leading "$". Rows
that fail to parse are skipped with a warning rather than aborting
the import.
"""

from pathlib import Path
from typing import List, Optional, Tuple, Union

import pandas as pd
from loguru import logger
from pydantic import ValidationError

from .models import PricePoint
from .store import PriceSeriesStore

_COLUMN_ALIASES = {
    "date": "date",
    "open": "open",
    "high": "high",
    "low": "low",
    "close": "close",
    "close/last": "close",
    "adj close": None,
    "volume": "volume",
}


def ticker_from_filename(path: Union[str, Path]) -> str:
    """SPY-daily.csv -> SPY"""
    return Path(path).stem.split("-")[0].upper()


def _to_number(series: pd.Series) -> pd.Series:
    cleaned = series.astype(str).str.replace(r"[$,\s]", "", regex=True)
    return pd.to_numeric(cleaned, errors="coerce")


def _parse_dates(series: pd.Series) -> pd.Series:
    raw = series.astype(str).str.strip()
    us = pd.to_datetime(raw, format="%m/%d/%Y", errors="coerce")
    iso = pd.to_datetime(raw, format="%Y-%m-%d", errors="coerce")
    return us.fillna(iso)


def load_price_csv(path: Union[str, Path]) -> Tuple[List[PricePoint], int]:
    """
    Parse a CSV export into PricePoint.

    Returns
    -------
    points : valid bars, ascending by date, last row wins on duplicate dates
    skipped : number of rows dropped as unparseable
    """
    df = pd.read_csv(path, dtype=str)
    renamed = {}
    for col in df.columns:
        target = _COLUMN_ALIASES.get(col.strip().lower())
        if target and target not in renamed.values():
            renamed[col] = target
    df = df.rename(columns=renamed)

    missing = {"date", "open", "high", "low", "close", "volume"} - set(df.columns)
    if missing:
        raise ValueError(f"{path}: missing columns {sorted(missing)}")

    df = df[["date", "open", "high", "low", "close", "volume"]].copy()
    df["date"] = _parse_dates(df["date"])
    for col in ("open", "high", "low", "close", "volume"):
        df[col] = _to_number(df[col])

    valid = df.dropna()
    skipped = len(df) - len(valid)
    valid = valid.sort_values("date", kind="stable").drop_duplicates(subset="date", keep="last")

    points = []
    for row in valid.itertuples(index=False):
        try:
            points.append(PricePoint(
                date=row.date.date(),
                open=row.open,
                high=row.high,
                low=row.low,
                close=row.close,
                volume=int(row.volume),
            ))
        except ValidationError as e:
            logger.warning(f"Skipping invalid data row {row.date.date()}: {e.errors()[0]['msg']}")
            skipped += 1

    if skipped:
        logger.warning(f"Skipped {skipped} unparseable rows in {path}")
    return points, skipped


async def import_csv(
    store: PriceSeriesStore,
    path: Union[str, Path],
    ticker: Optional[str] = None,
    replace: bool = False,
) -> int:
    """
    Load a CSV into the store under ``ticker`` (default: file-name prefix).

    With ``replace`` the ticker's existing rows are swapped for the file's
    in one transaction; otherwise rows are upserted by date.

    Returns
    -------
    int : rows written
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    ticker = (ticker or ticker_from_filename(path)).upper()

    logger.info(f"Importing {path} as {ticker} (replace={replace})")
    points, _ = load_price_csv(path)
    logger.info(f"Read {len(points)} rows from CSV")

    if replace:
        return await store.replace(ticker, points)
    return await store.upsert(ticker, points)
