"""
Retry with exponential backoff for remote fetches.

The policy is a plain value object: delays are computed by ``delay_for``
and slept through an injectable coroutine, so tests drive it with a
recording sleep instead of waiting in real time.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Tuple, Type, TypeVar

from loguru import logger

from . import config
from .exceptions import ProviderUnavailable, RateLimited

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """
    Parameters
    ----------
    max_retries : retries after the first attempt
    base_delay : seconds before the first retry
    multiplier : growth factor per retry
    rate_limit_factor : extra factor applied when the error is RateLimited
    retry_on : exception types worth another attempt
    """

    max_retries: int = config.MAX_RETRIES
    base_delay: float = config.RETRY_BASE_DELAY
    multiplier: float = config.RETRY_MULTIPLIER
    rate_limit_factor: float = config.RATE_LIMIT_FACTOR
    retry_on: Tuple[Type[BaseException], ...] = (ProviderUnavailable, RateLimited)

    def is_retryable(self, exc: BaseException) -> bool:
        return isinstance(exc, self.retry_on)

    def delay_for(self, retry_index: int, exc: BaseException = None) -> float:
        """Seconds to wait before retry number ``retry_index`` (0-based)."""
        delay = self.base_delay * self.multiplier ** retry_index
        if isinstance(exc, RateLimited):
            delay *= self.rate_limit_factor
        return delay

    async def run(self, fn: Callable[[], Awaitable[T]], sleep: Sleep = asyncio.sleep) -> T:
        """
        Await ``fn()`` until it succeeds or retries run out.

        Non-retryable errors propagate immediately. When every retry has
        failed the last error is re-raised unchanged. Cancellation is
        never retried.
        """
        retries = 0
        while True:
            try:
                return await fn()
            except Exception as e:
                if not self.is_retryable(e) or retries >= self.max_retries:
                    raise
                delay = self.delay_for(retries, e)
                logger.warning(
                    f"Retry attempt {retries + 1}/{self.max_retries} after {type(e).__name__}: {e}. "
                    f"Waiting {delay * 1000:.0f}ms before retrying..."
                )
                await sleep(delay)
                retries += 1
