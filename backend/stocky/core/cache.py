"""In-memory response cache with in-flight request de-duplication.

Concurrent callers asking for the same key while no fresh entry exists share
a single loader invocation: the first caller registers a pending task and
everyone else awaits it. Failures are never cached and reach every waiter.

The maps are only touched between ``await`` points on a single event loop, so
the check-then-insert sequence in :meth:`ResponseCache.fetch_with_cache`
needs no lock.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping

logger = logging.getLogger(__name__)

Loader = Callable[[], Awaitable[Any]]
Clock = Callable[[], float]


class CacheTTL:
    """TTL presets in seconds."""

    REALTIME = 5.0
    SHORT = 30.0
    MEDIUM = 60.0
    LONG = 300.0
    EXTENDED = 600.0


@dataclass(frozen=True)
class CacheEntry:
    data: Any
    timestamp: float


def make_cache_key(url: str, options: Mapping[str, Any] | None = None) -> str:
    """Build a key from the request target and its serialized options."""

    return f"{url}_{json.dumps(dict(options or {}), sort_keys=True, default=str)}"


class ResponseCache:
    """Process-wide TTL cache plus pending-request registry."""

    def __init__(self, clock: Clock = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._pending: dict[str, asyncio.Future[Any]] = {}

    async def fetch_with_cache(self, key: str, loader: Loader, ttl: float = CacheTTL.MEDIUM) -> Any:
        """Return a fresh cached value, join an in-flight load, or start one."""

        entry = self._entries.get(key)
        if entry is not None and self._clock() - entry.timestamp < ttl:
            logger.debug("Cache hit for %s", key)
            return entry.data

        pending = self._pending.get(key)
        if pending is None:
            pending = asyncio.ensure_future(self._load(key, loader))
            self._pending[key] = pending
        else:
            logger.debug("Joining in-flight request for %s", key)
        # Shield so one cancelled waiter does not cancel the load for the others.
        return await asyncio.shield(pending)

    async def _load(self, key: str, loader: Loader) -> Any:
        try:
            data = await loader()
            self._entries[key] = CacheEntry(data=data, timestamp=self._clock())
            return data
        finally:
            self._pending.pop(key, None)

    def get(self, key: str, ttl: float) -> Any | None:
        entry = self._entries.get(key)
        if entry is None or self._clock() - entry.timestamp >= ttl:
            return None
        return entry.data

    def invalidate(self, key: str | None = None) -> None:
        """Drop one entry, or every entry when ``key`` is omitted.

        In-flight loads are left alone; they will write their result when
        they settle.
        """

        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def clear_expired(self, max_age: float) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now - entry.timestamp >= max_age]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def stats(self) -> dict[str, int]:
        return {"cacheSize": len(self._entries), "pendingRequests": len(self._pending)}

    def has_pending(self, key: str) -> bool:
        return key in self._pending

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["CacheEntry", "CacheTTL", "ResponseCache", "make_cache_key"]
