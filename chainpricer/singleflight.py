"""Collapse concurrent identical operations into one in-flight task."""

import asyncio
from typing import Awaitable, Callable, Dict, Hashable, TypeVar

from loguru import logger

T = TypeVar("T")


class FlightCancelled(Exception):
    """The shared operation was cancelled through ``SingleFlight.cancel``."""


class SingleFlight:
    """
    Per-key de-duplication of concurrent coroutines.

    The first caller for a key starts the work as a task; callers that
    arrive while it is running await the same task. A caller that is
    cancelled stops waiting without cancelling the shared work; use
    ``cancel(key)`` to stop the work itself.
    """

    def __init__(self) -> None:
        self._tasks: Dict[Hashable, asyncio.Task] = {}

    def in_flight(self, key: Hashable) -> bool:
        return key in self._tasks

    async def do(self, key: Hashable, factory: Callable[[], Awaitable[T]]) -> T:
        task = self._tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._tasks[key] = task
            task.add_done_callback(lambda t, k=key: self._forget(k, t))
        else:
            logger.debug(f"Joining in-flight operation for {key}")
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                # the shared work was stopped, this caller was not
                raise FlightCancelled(key) from None
            raise

    def cancel(self, key: Hashable) -> bool:
        """Cancel the in-flight operation for ``key``. False if none running."""
        task = self._tasks.get(key)
        if task is None or task.done():
            return False
        logger.info(f"Cancelling in-flight operation for {key}")
        return task.cancel()

    def _forget(self, key: Hashable, task: asyncio.Task) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]
        if not task.cancelled() and task.exception() is not None:
            # consumed here so an unawaited failure is not reported as lost
            logger.debug(f"In-flight operation for {key} failed: {task.exception()!r}")
