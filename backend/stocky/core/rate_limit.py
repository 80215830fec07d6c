"""Fixed-window quota counters and the outbound request throttle."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable, Deque

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Sleeper = Callable[[float], Awaitable[None]]


@dataclass
class RateLimitCounter:
    identifier: str
    count: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: float


class RateLimiter:
    """Per-identifier fixed-window counters.

    Windows are not smoothed: a caller may spend ``limit`` requests at the
    end of one window and ``limit`` more at the start of the next.
    """

    def __init__(self, clock: Clock = time.time) -> None:
        self._clock = clock
        self._counters: dict[str, RateLimitCounter] = {}

    def now(self) -> float:
        return self._clock()

    def check(self, identifier: str, limit: int = 100, window: float = 60.0) -> RateLimitResult:
        now = self._clock()
        counter = self._counters.get(identifier)

        if counter is None or now > counter.reset_at:
            counter = RateLimitCounter(identifier=identifier, count=1, reset_at=now + window)
            self._counters[identifier] = counter
            return RateLimitResult(allowed=True, remaining=limit - 1, reset_at=counter.reset_at)

        if counter.count >= limit:
            return RateLimitResult(allowed=False, remaining=0, reset_at=counter.reset_at)

        counter.count += 1
        return RateLimitResult(allowed=True, remaining=limit - counter.count, reset_at=counter.reset_at)

    def sweep(self) -> int:
        """Delete counters whose window has elapsed."""

        now = self._clock()
        expired = [key for key, counter in self._counters.items() if now > counter.reset_at]
        for key in expired:
            del self._counters[key]
        if expired:
            logger.debug("Reclaimed %d expired rate limit counters", len(expired))
        return len(expired)

    async def run_sweeper(self, interval: float, sleep: Sleeper = asyncio.sleep) -> None:
        """Sweep forever; meant to run as a background task."""

        while True:
            await sleep(interval)
            self.sweep()

    def counter(self, identifier: str) -> RateLimitCounter | None:
        return self._counters.get(identifier)

    def __len__(self) -> int:
        return len(self._counters)


class OutboundThrottle:
    """Sliding-window slot limiter with a cap on concurrent upstream calls."""

    def __init__(
        self,
        max_calls: int = 30,
        window: float = 10.0,
        max_concurrency: int = 6,
        *,
        clock: Clock = time.monotonic,
        sleep: Sleeper = asyncio.sleep,
        poll_interval: float = 0.1,
    ) -> None:
        self.max_calls = max_calls
        self.window = window
        self._calls: Deque[float] = deque()
        self._clock = clock
        self._sleep = sleep
        self._poll_interval = poll_interval
        self._semaphore = asyncio.Semaphore(max_concurrency)

    def _prune(self, now: float) -> None:
        while self._calls and now - self._calls[0] >= self.window:
            self._calls.popleft()

    def can_make_request(self) -> bool:
        self._prune(self._clock())
        return len(self._calls) < self.max_calls

    async def wait_for_slot(self) -> None:
        while not self.can_make_request():
            await self._sleep(self._poll_interval)
        self._calls.append(self._clock())

    async def __aenter__(self) -> "OutboundThrottle":
        await self.wait_for_slot()
        await self._semaphore.acquire()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self._semaphore.release()


__all__ = ["OutboundThrottle", "RateLimitCounter", "RateLimitResult", "RateLimiter"]
