"""
Error taxonomy for the pricing engine and the data pipeline.

Local, per-strike problems are recovered where they happen; whole-series
problems (fetch, storage) travel up as one of the typed errors below and
are mapped to a small set of user-facing categories by ``error_payload``.
"""

from typing import Optional


class ChainPricerError(Exception):
    """Base class for every error raised by this package."""


class InvalidInput(ChainPricerError):
    """Malformed pricing or request parameter. Never retried."""

    def __init__(self, field: str, message: Optional[str] = None):
        self.field = field
        super().__init__(message or f"invalid value for '{field}'")


class InsufficientData(ChainPricerError):
    """Not enough usable prices to estimate volatility."""


class PerStrikeComputeFailure(ChainPricerError):
    """Pricing a single (strike, expiry) pair produced no usable number."""

    def __init__(self, strike: float, days: int, reason: str):
        self.strike = strike
        self.days = days
        super().__init__(f"strike {strike} @ {days}d: {reason}")


class StorageFailure(ChainPricerError):
    """A read or a batched write against the price store failed."""


# ── remote fetch ─────────────────────────────────────────────────────────

class RemoteFetchError(ChainPricerError):
    """Base for failures while backfilling from the price provider."""


class ProviderUnavailable(RemoteFetchError):
    """Provider unreachable, erroring, or not configured with a credential."""


class RefreshCancelled(ProviderUnavailable):
    """An in-flight backfill was cancelled before it completed."""


class RateLimited(RemoteFetchError):
    """Provider throttled the request (HTTP 429 or an in-band note)."""


class NoData(RemoteFetchError):
    """Ticker is unknown to the provider or has no history."""


class MalformedProviderResponse(RemoteFetchError):
    """Provider payload did not have the expected shape."""


# ── boundary mapping ────────────────────────────────────────────────────

# (category, http status); ordered, first isinstance match wins
_CATEGORIES = (
    (NoData, "not_found", 404),
    (RateLimited, "rate_limited", 429),
    (ProviderUnavailable, "unavailable", 503),
    (InvalidInput, "invalid_input", 400),
)


def error_payload(exc: BaseException) -> dict:
    """
    Translate an exception into the payload handed to the routing layer.

    Returns
    -------
    dict with keys ``category``, ``status`` and ``error`` (message)
    """
    for exc_type, category, status in _CATEGORIES:
        if isinstance(exc, exc_type):
            return {"category": category, "status": status, "error": str(exc)}
    return {"category": "internal", "status": 500, "error": str(exc) or type(exc).__name__}
