"""
Black-Scholes pricing and greeks for European options on a
non-dividend-paying underlying.

Everything here is closed-form, including the normal CDF, which uses
a rational-polynomial approximation instead of numerical integration
so that every chain evaluates deterministically and fast.

References:
    Black, F. & Scholes, M. (1973). The Pricing of Options and Corporate Liabilities.
    Abramowitz, M. & Stegun, I. (1964). Handbook of Mathematical Functions, 26.2.17.
    Hull, J.C. (2018). Options, Futures, and Other Derivatives. 10th ed.
"""

from typing import NamedTuple

import numpy as np

from . import config
from .exceptions import InvalidInput


# ════════════════════════════════════════════════════════════════════════
#  NORMAL DISTRIBUTION
# ════════════════════════════════════════════════════════════════════════

_INV_SQRT_2PI = 0.3989422804014327    # density of N(0,1) at 0
_P = 0.2316419
_B = (0.319381530, -0.356563782, 1.781477937, -1.821255978, 1.330274429)


def norm_pdf(x: float) -> float:
    """Standard normal density."""
    return float(_INV_SQRT_2PI * np.exp(-0.5 * x * x))


def norm_cdf(x: float) -> float:
    """
    Standard normal CDF, Zelen & Severo polynomial approximation.

    Absolute error is below 7.5e-8 everywhere. The tail is evaluated
    at |x| and reflected, so cdf(-x) + cdf(x) == 1 holds by construction.
    """
    t = 1.0 / (1.0 + _P * abs(x))
    b1, b2, b3, b4, b5 = _B
    poly = t * (b1 + t * (b2 + t * (b3 + t * (b4 + t * b5))))
    tail = norm_pdf(x) * poly
    return 1.0 - tail if x > 0 else tail


# ════════════════════════════════════════════════════════════════════════
#  INPUT HANDLING
# ════════════════════════════════════════════════════════════════════════

def _is_call(option_type: str) -> bool:
    kind = str(option_type).lower()
    if kind in ("c", "call"):
        return True
    if kind in ("p", "put"):
        return False
    raise InvalidInput("option_type", f"Unknown option_type: {option_type}. Use 'call' or 'put'.")


def _check_positive(field: str, value: float) -> None:
    if not np.isfinite(value) or value <= 0:
        raise InvalidInput(field, f"{field} must be a positive number, got {value}")


def validate_inputs(S: float, K: float, T: float, r: float, sigma: float) -> None:
    """Raise InvalidInput naming the first parameter that is out of domain."""
    _check_positive("S", S)
    _check_positive("K", K)
    _check_positive("T", T)
    _check_positive("sigma", sigma)
    if not np.isfinite(r):
        raise InvalidInput("r", f"r must be finite, got {r}")


def intrinsic_value(S: float, K: float, option_type: str = "call") -> float:
    """Payoff if exercised now."""
    if _is_call(option_type):
        return max(S - K, 0.0)
    return max(K - S, 0.0)


# ════════════════════════════════════════════════════════════════════════
#  PRICING
# ════════════════════════════════════════════════════════════════════════

def d1(S: float, K: float, T: float, r: float, sigma: float) -> float:
    """
    Compute d1 in the Black-Scholes formula.

    Parameters
    ----------
    S : spot price
    K : strike price
    T : time to expiry in years
    r : risk-free rate (annualized, continuous compounding)
    sigma : volatility (annualized)
    """
    return float((np.log(S / K) + (r + 0.5 * sigma**2) * T) / (sigma * np.sqrt(T)))


def d2(S: float, K: float, T: float, r: float, sigma: float) -> float:
    """Compute d2 = d1 - sigma * sqrt(T)."""
    return d1(S, K, T, r, sigma) - sigma * float(np.sqrt(T))


def bs_price(option_type: str, S: float, K: float, T: float, r: float, sigma: float) -> float:
    """
    European option price under Black-Scholes.

        C = S * N(d1) - K * e^{-rT} * N(d2)
        P = K * e^{-rT} * N(-d2) - S * N(-d1)

    Below config.NEAR_EXPIRY_T the formula is skipped and the intrinsic
    value is returned, since sigma * sqrt(T) collapses towards zero.

    Raises
    ------
    InvalidInput : non-positive S, K, T or sigma, non-finite r,
                   or an unknown option_type
    """
    is_call = _is_call(option_type)
    validate_inputs(S, K, T, r, sigma)

    if T < config.NEAR_EXPIRY_T:
        return max(S - K, 0.0) if is_call else max(K - S, 0.0)

    _d1 = d1(S, K, T, r, sigma)
    _d2 = _d1 - sigma * np.sqrt(T)
    discount = K * np.exp(-r * T)
    if is_call:
        return float(S * norm_cdf(_d1) - discount * norm_cdf(_d2))
    return float(discount * norm_cdf(-_d2) - S * norm_cdf(-_d1))


def call_price(S: float, K: float, T: float, r: float, sigma: float) -> float:
    return bs_price("call", S, K, T, r, sigma)


def put_price(S: float, K: float, T: float, r: float, sigma: float) -> float:
    return bs_price("put", S, K, T, r, sigma)


# ════════════════════════════════════════════════════════════════════════
#  GREEKS
# ════════════════════════════════════════════════════════════════════════

def _near_expiry(T: float) -> bool:
    return T < config.NEAR_EXPIRY_T


def delta(S: float, K: float, T: float, r: float, sigma: float,
          option_type: str = "call") -> float:
    """
    Option delta: dV/dS.

    Call delta is in [0, 1]; put delta is in [-1, 0].
    Near expiry, delta approaches a step function at the strike.
    """
    is_call = _is_call(option_type)
    validate_inputs(S, K, T, r, sigma)
    if _near_expiry(T):
        if is_call:
            return 1.0 if S > K else 0.0
        return -1.0 if S < K else 0.0

    n_d1 = norm_cdf(d1(S, K, T, r, sigma))
    return n_d1 if is_call else n_d1 - 1.0


def gamma(S: float, K: float, T: float, r: float, sigma: float) -> float:
    """
    Option gamma: d²V/dS².

    Same for calls and puts. Peaks at ATM and grows as T -> 0.
    """
    validate_inputs(S, K, T, r, sigma)
    if _near_expiry(T):
        return 0.0
    return norm_pdf(d1(S, K, T, r, sigma)) / (S * sigma * float(np.sqrt(T)))


def vega(S: float, K: float, T: float, r: float, sigma: float) -> float:
    """
    Option vega: dV/dσ.

    Returns the sensitivity per 1 unit (100%) change in vol.
    Divide by 100 to get sensitivity per 1% vol change.
    """
    validate_inputs(S, K, T, r, sigma)
    if _near_expiry(T):
        return 0.0
    return S * float(np.sqrt(T)) * norm_pdf(d1(S, K, T, r, sigma))


def theta(S: float, K: float, T: float, r: float, sigma: float,
          option_type: str = "call") -> float:
    """
    Option theta: -dV/dT (time decay per year).

    Divide by config.DAYS_PER_YEAR for daily theta.
    """
    is_call = _is_call(option_type)
    validate_inputs(S, K, T, r, sigma)
    if _near_expiry(T):
        return 0.0

    _d1 = d1(S, K, T, r, sigma)
    _d2 = _d1 - sigma * np.sqrt(T)
    time_decay = -(S * norm_pdf(_d1) * sigma) / (2 * np.sqrt(T))
    carry = r * K * np.exp(-r * T)

    if is_call:
        return float(time_decay - carry * norm_cdf(_d2))
    return float(time_decay + carry * norm_cdf(-_d2))


def rho(S: float, K: float, T: float, r: float, sigma: float,
        option_type: str = "call") -> float:
    """
    Option rho: dV/dr, per 1 unit (100%) change in rates.
    """
    is_call = _is_call(option_type)
    validate_inputs(S, K, T, r, sigma)
    if _near_expiry(T):
        return 0.0

    _d2 = d2(S, K, T, r, sigma)
    if is_call:
        return float(K * T * np.exp(-r * T) * norm_cdf(_d2))
    return float(-K * T * np.exp(-r * T) * norm_cdf(-_d2))


class Greeks(NamedTuple):
    """Greeks in the units quoted on a chain."""

    delta: float
    gamma: float
    theta: float    # per calendar day
    vega: float     # per 1% vol
    rho: float      # per 1% rate


def greeks(S: float, K: float, T: float, r: float, sigma: float,
           option_type: str = "call") -> Greeks:
    """
    All five greeks for one contract, in chain display units.

    d1/d2 are computed once and shared, which matters when a whole
    ladder of strikes is priced per request.
    """
    is_call = _is_call(option_type)
    validate_inputs(S, K, T, r, sigma)

    if _near_expiry(T):
        step = (1.0 if S > K else 0.0) if is_call else (-1.0 if S < K else 0.0)
        return Greeks(step, 0.0, 0.0, 0.0, 0.0)

    sqrt_t = float(np.sqrt(T))
    _d1 = d1(S, K, T, r, sigma)
    _d2 = _d1 - sigma * sqrt_t
    pdf_d1 = norm_pdf(_d1)
    discount = K * float(np.exp(-r * T))
    time_decay = -(S * pdf_d1 * sigma) / (2 * sqrt_t)

    if is_call:
        _delta = norm_cdf(_d1)
        _theta = time_decay - r * discount * norm_cdf(_d2)
        _rho = T * discount * norm_cdf(_d2)
    else:
        _delta = norm_cdf(_d1) - 1.0
        _theta = time_decay + r * discount * norm_cdf(-_d2)
        _rho = -T * discount * norm_cdf(-_d2)

    return Greeks(
        delta=_delta,
        gamma=pdf_d1 / (S * sigma * sqrt_t),
        theta=_theta / config.DAYS_PER_YEAR,
        vega=S * sqrt_t * pdf_d1 / 100.0,
        rho=_rho / 100.0,
    )
