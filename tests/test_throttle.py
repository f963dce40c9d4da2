"""
Tests for the AWS call rate limiter.
"""

import asyncio
import time
from collections import Counter
from unittest.mock import Mock

import pytest

from aws_clients import AbortError, RateLimiter


class TestRateLimiter:
    """Test admission control of throttled calls."""

    @pytest.mark.asyncio
    async def test_delays_grow_with_the_queue(self) -> None:
        """Test that each window admits at most `limit` calls."""
        sleeps = []

        async def fake_sleep(delay):
            sleeps.append(delay)

        limiter = RateLimiter(limit=5, interval=1.0, sleep=fake_sleep)

        async def work(i):
            return i

        results = await asyncio.gather(*(limiter.call(work, i) for i in range(20)))

        assert results == list(range(20))
        # Release delays 0, 1, 2, 3 and removal delays 1, 2, 3, 4, five calls each
        assert Counter(sleeps) == Counter({0: 5, 1: 10, 2: 10, 3: 10, 4: 5})

    @pytest.mark.asyncio
    async def test_rate_is_respected_in_real_time(self) -> None:
        """Test 20 calls with 5 per 200ms."""
        limiter = RateLimiter(limit=5, interval=0.2)
        start = time.monotonic()
        started = []

        async def work():
            started.append(time.monotonic() - start)

        await asyncio.gather(*(limiter.call(work) for _ in range(20)))

        assert len(started) == 20
        assert sum(1 for t in started if t < 0.15) == 5
        for t in started:
            in_window = [s for s in started if t <= s < t + 0.15]
            assert len(in_window) <= 5

    @pytest.mark.asyncio
    async def test_blocking_function_runs_in_thread(self) -> None:
        """Test that plain functions are called with their arguments."""
        limiter = RateLimiter(limit=10, interval=0)
        fn = Mock(return_value={"ok": True})

        result = await limiter.call(fn, 1, key="value")

        assert result == {"ok": True}
        fn.assert_called_once_with(1, key="value")

    @pytest.mark.asyncio
    async def test_errors_propagate(self) -> None:
        """Test that the error of a call is raised to its caller."""
        limiter = RateLimiter(limit=10, interval=0)
        fn = Mock(side_effect=ValueError("boom"))

        with pytest.raises(ValueError, match="boom"):
            await limiter.call(fn)

    @pytest.mark.asyncio
    async def test_rejects_non_callable(self) -> None:
        """Test calling something that is not a function."""
        limiter = RateLimiter()
        with pytest.raises(TypeError):
            await limiter.call("not callable")

    @pytest.mark.asyncio
    async def test_abort_rejects_queued_calls(self) -> None:
        """Test that abort fails every call still waiting."""
        limiter = RateLimiter(limit=1, interval=10)

        async def work():
            return "done"

        tasks = [asyncio.ensure_future(limiter.call(work)) for _ in range(3)]
        await asyncio.sleep(0.05)
        limiter.abort()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        assert results[0] == "done"
        assert all(isinstance(r, AbortError) for r in results[1:])
        assert len(limiter) == 0

    def test_set_rate(self) -> None:
        """Test reconfiguring the limiter."""
        limiter = RateLimiter(limit=2, interval=1.0)
        limiter.set_rate(10, 0.5)
        assert limiter.limit == 10
        assert limiter.interval == 0.5
