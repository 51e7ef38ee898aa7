"""
Collapse concurrent identical requests: while a call for `key` is in flight,
later callers await the same task instead of starting another one.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


class RequestDeduplicator:

    def __init__(self):
        self._in_flight: dict[str, asyncio.Task] = {}

    def in_flight(self, key: str) -> bool:
        return key in self._in_flight

    async def run(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        """
        Start factory() unless a call for `key` is already running.
        Every caller gets the same result or the same exception.
        """
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._in_flight[key] = task
            task.add_done_callback(lambda t, k=key: self._release(k, t))
        else:
            logger.debug(f"Joining in-flight request '{key}'")
        # A cancelled caller must not cancel the shared call
        return await asyncio.shield(task)

    def _release(self, key: str, task: asyncio.Task) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        # Retrieve the exception so a failure nobody awaited is not logged
        if not task.cancelled():
            task.exception()
