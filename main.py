#!/usr/bin/env python3
"""
main.py — Price history and theoretical option chain for a ticker.

Usage:
    python main.py --ticker SPY                       # chain from Alpha Vantage history
    python main.py --ticker SPY --date 2026-12-18     # custom expiry replaces 0 DTE
    python main.py --source synthetic --ticker ABC    # offline, reproducible
    python main.py --prices --ticker SPY              # print the cached series
    python main.py --import-csv SPY-daily.csv         # seed the store from a CSV
"""

import argparse
import asyncio
import sys
import time

import pandas as pd

from chainpricer import config
from chainpricer.csv_import import import_csv
from chainpricer.exceptions import ChainPricerError, InvalidInput, error_payload
from chainpricer.logger import setup_logger
from chainpricer.providers import get_provider
from chainpricer.service import MarketDataService
from chainpricer.store import PriceSeriesStore


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Theoretical option chains from historical prices.")
    p.add_argument("--ticker", type=str, default=None)
    p.add_argument("--date", type=str, default=None, help="custom expiry, YYYY-MM-DD")
    p.add_argument("--source", choices=["live", "synthetic"], default="live")
    p.add_argument("--db", type=str, default=None, help="SQLite file (default: data/stockdata.db)")
    p.add_argument("--rate", type=float, default=None, help="risk-free rate")
    p.add_argument("--prices", action="store_true", help="print the price series instead of a chain")
    p.add_argument("--import-csv", type=str, default=None, metavar="PATH")
    p.add_argument("--replace", action="store_true", help="with --import-csv, drop existing rows first")
    p.add_argument("--no-log-file", action="store_true")
    return p.parse_args(argv)


def print_chain(snapshot) -> None:
    df = snapshot.to_frame()
    cols = ["strike", "price", "delta", "gamma", "theta", "vega", "rho", "in_the_money"]
    for days in snapshot.days_to_expiry:
        block = df[df["days"] == days]
        calls = block[block["option_type"] == "call"][cols].set_index("strike")
        puts = block[block["option_type"] == "put"][cols].set_index("strike")
        table = calls.join(puts, lsuffix="_call", rsuffix="_put")
        print(f"\n  ── {days} DTE ──")
        with pd.option_context("display.float_format", "{:.4f}".format, "display.width", 160):
            print(table.to_string())


async def run(args) -> int:
    ticker = args.ticker or config.DEFAULT_TICKER
    store = PriceSeriesStore(args.db or config.DB_PATH)
    provider = get_provider(args.source)

    async with store:
        try:
            if args.import_csv:
                try:
                    written = await import_csv(store, args.import_csv, args.ticker, replace=args.replace)
                except (FileNotFoundError, ValueError) as e:
                    raise InvalidInput("import_csv", str(e)) from e
                print(f"\n  Imported {written} rows from {args.import_csv}\n")
                return 0

            service = MarketDataService(store, provider, risk_free_rate=args.rate)

            if args.prices:
                series = await service.get_price_series(ticker)
                print(f"\n  {series!r}\n")
                print(series.to_frame().tail(20).to_string())
                return 0

            snapshot = await service.get_option_chain(ticker, args.date)
        except ChainPricerError as e:
            payload = error_payload(e)
            print(f"\n  ERROR ({payload['category']}): {payload['error']}")
            return 1
        finally:
            await provider.aclose()

    print(f"       Spot: ${snapshot.spot:.2f}")
    print(f"       Volatility: {snapshot.volatility:.1%}")
    print(f"       Risk-free rate: {snapshot.risk_free_rate:.2%}")
    print(f"       Expiries (days): {list(snapshot.days_to_expiry)}")
    if snapshot.custom_date:
        print(f"       Custom date: {snapshot.custom_date}")
    print_chain(snapshot)
    return 0


def main():
    args = parse_args()
    setup_logger(log_dir="" if args.no_log_file else None)
    ticker = args.ticker or config.DEFAULT_TICKER

    print(f"\n{'='*60}")
    print(f"  Option Chain Pricer")
    print(f"  Source: {args.source}  |  Ticker: {ticker}")
    print(f"{'='*60}\n")

    t0 = time.time()
    code = asyncio.run(run(args))
    print(f"\n  Done in {time.time() - t0:.1f}s.\n")
    sys.exit(code)


if __name__ == "__main__":
    main()
