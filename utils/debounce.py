"""
Debounce helper for search-as-you-type lookups.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_DELAY_SECONDS = 0.3


class Debouncer:
    """
    Delays an async call until input has been quiet for ``delay_seconds``.

    Each call supersedes the previous one: a pending timer is cancelled, and a
    call that already reached the remote service is left to finish but its
    result is discarded (the future it returned is cancelled).
    """

    def __init__(
        self,
        fn: Callable[..., Awaitable[Any]],
        delay_seconds: float = DEFAULT_DELAY_SECONDS,
    ):
        self._fn = fn
        self._delay = delay_seconds
        self._timer: Optional[asyncio.Task] = None
        self._future: Optional[asyncio.Future] = None
        self._generation = 0
        self._tasks: set = set()

    def __call__(self, *args: Any, **kwargs: Any) -> asyncio.Future:
        self.cancel()
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._future = future
        self._timer = loop.create_task(self._fire(self._generation, future, args, kwargs))
        self._tasks.add(self._timer)
        self._timer.add_done_callback(self._tasks.discard)
        return future

    @property
    def pending(self) -> bool:
        return self._future is not None and not self._future.done()

    def cancel(self) -> None:
        """Drop the pending call, if any (used on teardown and on each new call)."""
        self._generation += 1
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        if self._future is not None and not self._future.done():
            self._future.cancel()
        self._timer = None
        self._future = None

    async def _fire(self, generation: int, future: asyncio.Future, args, kwargs) -> None:
        await asyncio.sleep(self._delay)
        # Past this point the call is dispatched and is never interrupted
        if generation == self._generation:
            self._timer = None
        try:
            result = await self._fn(*args, **kwargs)
        except Exception as exc:
            if generation == self._generation and not future.done():
                future.set_exception(exc)
            else:
                logger.debug(f"[DEBOUNCE] Ignoring error from superseded call: {exc}")
            return
        if generation == self._generation and not future.done():
            future.set_result(result)
