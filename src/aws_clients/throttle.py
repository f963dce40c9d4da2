"""Admission control for outbound AWS API calls."""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class AbortError(Exception):
    """Raised in every queued call when the limiter is aborted."""

    def __init__(self, message: str = "Throttled function aborted") -> None:
        super().__init__(message)


class RateLimiter:
    """Keep calls under ``limit`` requests per ``interval`` seconds.

    Each admitted call stays in the queue for its whole window: it is released
    after ``floor(queue_size / limit) * interval`` seconds and removed from the
    queue one interval after its release, so it keeps counting against the
    window it was admitted into.
    """

    def __init__(
        self,
        limit: int = 100,
        interval: float = 1.0,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ) -> None:
        """
        Initialize the limiter.

        Args:
            limit: Max requests allowed during one interval
            interval: Interval duration in seconds
            sleep: Coroutine used to wait, replaceable in tests
        """
        self.limit = limit
        self.interval = interval
        self._sleep = sleep or asyncio.sleep
        self._queue: Dict[asyncio.Future, List[asyncio.Task]] = {}

    def __len__(self) -> int:
        return len(self._queue)

    def set_rate(self, limit: int, interval: float) -> None:
        """Update the rate; delays already computed are kept."""
        self.limit = limit
        self.interval = interval

    async def call(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Execute ``fn`` once the rate limit allows it and return its result.

        Blocking functions (boto3 client methods) run in a worker thread,
        coroutine functions are awaited directly.
        """
        if not callable(fn):
            raise TypeError("RateLimiter.call expected a callable")
        loop = asyncio.get_running_loop()
        delay = (len(self._queue) // self.limit) * self.interval
        gate = loop.create_future()
        self._queue[gate] = [
            loop.create_task(self._release(gate, delay)),
            loop.create_task(self._expire(gate, delay + self.interval)),
        ]
        await gate
        if inspect.iscoroutinefunction(fn):
            return await fn(*args, **kwargs)
        return await asyncio.to_thread(fn, *args, **kwargs)

    async def _release(self, gate: asyncio.Future, delay: float) -> None:
        await self._sleep(delay)
        if not gate.done():
            gate.set_result(None)

    async def _expire(self, gate: asyncio.Future, after: float) -> None:
        await self._sleep(after)
        self._queue.pop(gate, None)

    def abort(self) -> None:
        """Reject every queued call with an AbortError and clear the queue."""
        if self._queue:
            logger.warning(f"Aborting {len(self._queue)} throttled calls")
        for gate, timers in self._queue.items():
            for timer in timers:
                timer.cancel()
            if not gate.done():
                gate.set_exception(AbortError())
        self._queue.clear()
