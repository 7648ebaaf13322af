"""
Option chain generation: ladders x pricer -> a full snapshot.

For every expiry in the expiry ladder and every strike in the strike
ladder a call and a put are priced with Black-Scholes. A strike that
cannot be priced is replaced by a placeholder contract so that one bad
point never takes down the whole chain.

Snapshots are transient: rebuilt per request, never persisted.
"""

from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Dict, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from loguru import logger

from . import config
from .black_scholes import bs_price, greeks
from .exceptions import ChainPricerError, InvalidInput, PerStrikeComputeFailure


@dataclass(frozen=True)
class OptionContract:
    """One priced contract. Fully determined by (spot, strike, T, r, sigma)."""

    strike: float
    price: float
    delta: float
    gamma: float
    theta: float                # per calendar day
    vega: float                 # per 1% vol
    rho: float                  # per 1% rate
    in_the_money: bool

    @classmethod
    def placeholder(cls, strike: float) -> "OptionContract":
        return cls(strike, config.MIN_TICK, 0.0, 0.0, 0.0, 0.0, 0.0, False)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["inTheMoney"] = d.pop("in_the_money")
        return d


@dataclass(frozen=True)
class ExpiryChain:
    """Calls and puts for one expiry, both in strike-ladder order."""

    days: int
    calls: Tuple[OptionContract, ...]
    puts: Tuple[OptionContract, ...]


@dataclass(frozen=True)
class OptionChainSnapshot:
    ticker: str
    spot: float
    volatility: float
    risk_free_rate: float
    expiries: Dict[int, ExpiryChain] = field(default_factory=dict)
    custom_date: Optional[str] = None

    @property
    def days_to_expiry(self) -> Tuple[int, ...]:
        return tuple(self.expiries)

    @property
    def strikes(self) -> Tuple[float, ...]:
        if not self.expiries:
            return ()
        first = next(iter(self.expiries.values()))
        return tuple(c.strike for c in first.calls)

    def contract(self, option_type: str, days: int, strike: float) -> OptionContract:
        """Look up one contract; KeyError if the expiry or strike is not quoted."""
        side = self.expiries[days]
        contracts = side.calls if option_type.lower() in ("c", "call") else side.puts
        for c in contracts:
            if c.strike == strike:
                return c
        raise KeyError(f"strike {strike} not quoted for {days}d")

    def to_dict(self) -> dict:
        """Plain-data payload for the routing layer."""
        return {
            "ticker": self.ticker,
            "price": self.spot,
            "volatility": self.volatility,
            "riskFreeRate": self.risk_free_rate,
            "customDate": self.custom_date,
            "optionChain": {
                str(days): {
                    "calls": [c.to_dict() for c in exp.calls],
                    "puts": [c.to_dict() for c in exp.puts],
                }
                for days, exp in self.expiries.items()
            },
        }

    def to_frame(self) -> pd.DataFrame:
        """Long-format table: one row per (days, option_type, strike)."""
        rows = []
        for days, exp in self.expiries.items():
            for option_type, contracts in (("call", exp.calls), ("put", exp.puts)):
                for c in contracts:
                    rows.append({"days": days, "option_type": option_type, **asdict(c)})
        return pd.DataFrame(rows)


# ════════════════════════════════════════════════════════════════════════
#  GENERATION
# ════════════════════════════════════════════════════════════════════════

def time_to_expiry(days: int) -> float:
    """Year fraction for a day count; 0 DTE is treated as one day."""
    return max(days, 1) / config.DAYS_PER_YEAR


def price_contract(
    option_type: str,
    spot: float,
    strike: float,
    T: float,
    r: float,
    sigma: float,
) -> OptionContract:
    """Price one side at one strike. Raises on any unusable result."""
    price = bs_price(option_type, spot, strike, T, r, sigma)
    g = greeks(spot, strike, T, r, sigma, option_type)

    values = (price,) + tuple(g)
    if not all(np.isfinite(values)):
        raise PerStrikeComputeFailure(strike, int(round(T * config.DAYS_PER_YEAR)),
                                      "non-finite price or greek")

    is_call = option_type.lower() in ("c", "call")
    return OptionContract(
        strike=strike,
        price=max(config.MIN_TICK, price),
        delta=g.delta,
        gamma=g.gamma,
        theta=g.theta,
        vega=g.vega,
        rho=g.rho,
        in_the_money=spot > strike if is_call else spot < strike,
    )


def _price_pair(spot, strike, days, r, sigma):
    """Call and put at one strike, or None if either side cannot be priced."""
    T = time_to_expiry(days)
    try:
        return (
            price_contract("call", spot, strike, T, r, sigma),
            price_contract("put", spot, strike, T, r, sigma),
        )
    except (ChainPricerError, ArithmeticError, ValueError, TypeError) as e:
        logger.error(f"Error calculating option for strike {strike} @ {days}d: {e}")
        return None


def generate_chain(
    ticker: str,
    spot: float,
    volatility: float,
    r: float,
    strikes: Sequence[float],
    expiries: Sequence[int],
    custom_date: Union[date, str, None] = None,
) -> OptionChainSnapshot:
    """
    Build a chain snapshot.

    Parameters
    ----------
    ticker : underlying symbol (echoed)
    spot : current underlying price
    volatility : annualized vol used for every contract
    r : risk-free rate
    strikes : strike ladder; contract lists follow its order
    expiries : days-to-expiry ladder; becomes the snapshot's keys
    custom_date : caller's requested expiry date, echoed back

    Returns
    -------
    OptionChainSnapshot

    Raises
    ------
    InvalidInput : non-positive spot or volatility (chain-wide problems).
                   Per-strike problems never raise.
    """
    if not np.isfinite(spot) or spot <= 0:
        raise InvalidInput("spot", f"spot must be positive, got {spot}")
    if not np.isfinite(volatility) or volatility <= 0:
        raise InvalidInput("volatility", f"volatility must be positive, got {volatility}")

    chain = {}
    n_placeholders = 0
    for days in expiries:
        calls, puts = [], []
        for strike in strikes:
            pair = _price_pair(spot, strike, days, r, volatility)
            if pair is None:
                n_placeholders += 1
                pair = OptionContract.placeholder(strike), OptionContract.placeholder(strike)
            call, put = pair
            calls.append(call)
            puts.append(put)
        chain[days] = ExpiryChain(days, tuple(calls), tuple(puts))

    logger.debug(
        f"{ticker}: priced {len(strikes)} strikes x {len(chain)} expiries "
        f"(spot={spot:.2f}, vol={volatility:.4f}, r={r:.4f}, placeholders={n_placeholders})"
    )
    if custom_date is not None and not isinstance(custom_date, str):
        custom_date = custom_date.isoformat()
    return OptionChainSnapshot(
        ticker=ticker,
        spot=spot,
        volatility=volatility,
        risk_free_rate=r,
        expiries=chain,
        custom_date=custom_date,
    )
