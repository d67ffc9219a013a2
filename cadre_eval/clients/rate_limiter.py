"""Per-provider sliding-window rate limiter.

Enforces a requests-per-minute ceiling for each provider key:
- Each admitted request records a timestamp in the key's history.
- Timestamps older than the window are pruned before every check.
- A full window makes the caller sleep until its oldest entry expires.
- Otherwise callers are spaced evenly at ``window / limit`` seconds.

Callers for the same key queue on one asyncio.Lock, which wakes waiters in
arrival order, so admission is FIFO. The lock is released before the wrapped
call runs, so slow requests do not block the queue.

Usage::

    limiter = RateLimiter()
    text = await limiter.throttle("magisterium", 5, lambda: client.fetch(prompt))
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections import deque
from collections.abc import Awaitable, Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

WINDOW_SECONDS = 60.0


class RateLimiter:
    """Sliding-window RPM limiter keyed by provider.

    Construct one per process and inject it into every client that shares
    a provider quota. ``clock`` and ``sleep`` are injectable for tests.

    Args:
        clock: Monotonic time source in seconds
        sleep: Coroutine function that waits the given number of seconds
        window_seconds: Length of the sliding window
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        window_seconds: float = WINDOW_SECONDS,
    ) -> None:
        self._clock = clock
        self._sleep = sleep
        self._window = window_seconds
        self._history: dict[str, deque[float]] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, provider: str) -> asyncio.Lock:
        lock = self._locks.get(provider)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[provider] = lock
        return lock

    def _prune(self, history: deque[float], now: float) -> None:
        cutoff = now - self._window
        while history and history[0] <= cutoff:
            history.popleft()

    async def acquire(self, provider: str, limit_rpm: int) -> None:
        """Wait until ``provider`` may issue another request, then record it.

        Args:
            provider: Provider key (e.g. "magisterium", "openrouter")
            limit_rpm: Requests per minute; <= 0 disables throttling
        """
        if limit_rpm <= 0:
            return

        async with self._lock_for(provider):
            history = self._history.setdefault(provider, deque())
            now = self._clock()
            self._prune(history, now)

            wait = 0.0
            if len(history) >= limit_rpm:
                # Index differs from 0 only when the limit shrank between calls
                wait = history[len(history) - limit_rpm] + self._window - now
                if wait > 0:
                    logger.info(
                        f"{provider}: rate limit reached ({limit_rpm} RPM), "
                        f"waiting {math.ceil(wait)}s"
                    )
            elif history:
                wait = self._window / limit_rpm - (now - history[-1])
                if wait > 0:
                    logger.debug(f"{provider}: spacing requests, waiting {wait:.1f}s")

            if wait > 0:
                await self._sleep(wait)
                self._prune(history, self._clock())

            history.append(self._clock())

    async def throttle(
        self,
        provider: str,
        limit_rpm: int,
        fn: Callable[[], Awaitable[T]],
    ) -> T:
        """Run ``fn`` once the provider's rate limit allows it.

        Args:
            provider: Provider key
            limit_rpm: Requests per minute; <= 0 disables throttling
            fn: Zero-argument coroutine function to execute

        Returns:
            Whatever ``fn`` returns
        """
        await self.acquire(provider, limit_rpm)
        return await fn()

    def request_count(self, provider: str) -> int:
        """Requests recorded for ``provider`` inside the current window."""
        history = self._history.get(provider)
        if not history:
            return 0
        self._prune(history, self._clock())
        return len(history)

    def clear_history(self, provider: str) -> None:
        """Forget all recorded requests for one provider."""
        self._history.pop(provider, None)

    def clear_all_history(self) -> None:
        """Forget all recorded requests for every provider."""
        self._history.clear()
