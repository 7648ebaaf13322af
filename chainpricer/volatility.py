"""
Volatility estimation: historical (from closes) and implied (from a price).

Historical volatility is the default input to the chain; implied vol is
provided for callers that have an observed premium and want the model
volatility that reproduces it.
"""

from typing import Sequence

import numpy as np
from loguru import logger
from scipy.optimize import brentq

from . import config
from .black_scholes import bs_price, intrinsic_value, vega
from .exceptions import InsufficientData, InvalidInput


# ════════════════════════════════════════════════════════════════════════
#  HISTORICAL VOLATILITY
# ════════════════════════════════════════════════════════════════════════

def historical_volatility(closes: Sequence[float], window: int = None) -> float:
    """
    Annualized close-to-close volatility over a trailing window.

    Parameters
    ----------
    closes : closing prices in ascending date order
    window : number of most recent daily log returns to use
             (default: config.VOL_WINDOW). Shorter histories use what
             is available.

    Returns
    -------
    float : population std of log returns times sqrt(365)

    Raises
    ------
    InsufficientData : fewer than 2 positive closes
    """
    if window is None:
        window = config.VOL_WINDOW
    if window < 1:
        raise InvalidInput("window", f"window must be >= 1, got {window}")

    prices = np.asarray(closes, dtype=float)
    usable = prices[np.isfinite(prices) & (prices > 0)]
    if len(usable) < len(prices):
        logger.debug(f"Discarded {len(prices) - len(usable)} non-positive closes")
    if len(usable) < 2:
        raise InsufficientData(
            f"need at least 2 positive closes for volatility, got {len(usable)}"
        )

    n_returns = min(window, len(usable) - 1)
    tail = usable[-(n_returns + 1):]
    returns = np.diff(np.log(tail))
    return float(np.std(returns) * np.sqrt(config.DAYS_PER_YEAR))


def clamp_volatility(sigma: float, floor: float = None, cap: float = None) -> float:
    """Clamp into the band used for pricing."""
    if floor is None:
        floor = config.MIN_VOLATILITY
    if cap is None:
        cap = config.MAX_VOLATILITY
    return float(min(max(sigma, floor), cap))


def estimate_volatility(
    closes: Sequence[float],
    window: int = None,
    default: float = None,
    floor: float = None,
    cap: float = None,
) -> float:
    """
    Volatility ready for the pricer: estimated, recovered, then clamped.

    Short or unusable histories fall back to ``default`` rather than
    failing the request.
    """
    if default is None:
        default = config.DEFAULT_VOLATILITY

    try:
        sigma = historical_volatility(closes, window)
    except InsufficientData as e:
        logger.warning(f"{e}; using default volatility {default:.2f}")
        sigma = default

    if not np.isfinite(sigma):
        logger.warning(f"Non-finite volatility estimate; using default {default:.2f}")
        sigma = default

    clamped = clamp_volatility(sigma, floor, cap)
    if clamped != sigma:
        logger.debug(f"Volatility {sigma:.4f} clamped to {clamped:.4f}")
    return clamped


# ════════════════════════════════════════════════════════════════════════
#  IMPLIED VOLATILITY
# ════════════════════════════════════════════════════════════════════════

def implied_volatility(
    option_type: str,
    market_price: float,
    S: float,
    K: float,
    T: float,
    r: float,
    initial_guess: float = None,
    max_iter: int = None,
    precision: float = None,
) -> float:
    """
    Invert Black-Scholes for volatility with Newton-Raphson.

    Iterates ``v <- v + (market - price(v)) / vega(v)`` from
    ``initial_guess`` until the price error is below ``precision`` or
    ``max_iter`` steps have run. v is floored at config.IV_FLOOR whenever a
    step sends it non-positive.

    The result is best-effort: on non-convergence the last iterate is
    returned, not an error. Callers comparing against a market price
    should check the residual themselves.
    """
    if initial_guess is None:
        initial_guess = config.IV_INITIAL_GUESS
    if max_iter is None:
        max_iter = config.IV_MAX_ITER
    if precision is None:
        precision = config.IV_PRECISION

    v = initial_guess
    for _ in range(max_iter):
        diff = market_price - bs_price(option_type, S, K, T, r, v)
        if abs(diff) < precision:
            return v

        v_vega = vega(S, K, T, r, v)
        if v_vega < 1e-12:
            # flat price in vol (deep OTM / near expiry), step would explode
            logger.debug(f"Vega vanished at v={v:.4f}; stopping IV search")
            return v

        v = v + diff / v_vega
        if v <= 0:
            v = config.IV_FLOOR

    logger.debug(f"IV search did not converge after {max_iter} iterations (v={v:.4f})")
    return v


def implied_volatility_brent(
    option_type: str,
    market_price: float,
    S: float,
    K: float,
    T: float,
    r: float,
    vol_lower: float = 1e-4,
    vol_upper: float = 5.0,
    tol: float = 1e-8,
) -> float:
    """
    Bracketed IV solver using Brent's method.

    Slower per iteration than Newton but never diverges within the
    bracket. Returns NaN when the price cannot be produced by any vol
    in [vol_lower, vol_upper] (below intrinsic, above the spot bound).
    """
    if market_price <= 0 or T <= 0 or S <= 0 or K <= 0:
        return np.nan
    if market_price < intrinsic_value(S, K * np.exp(-r * T), option_type) * 0.99:
        return np.nan

    def objective(sigma):
        return bs_price(option_type, S, K, T, r, sigma) - market_price

    try:
        return float(brentq(objective, vol_lower, vol_upper, xtol=tol))
    except (ValueError, RuntimeError):
        # no sign change across the bracket, or iteration limit
        return np.nan
