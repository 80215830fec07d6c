"""Response cache and in-flight de-duplication tests."""

from __future__ import annotations

import asyncio

import pytest

from stocky.core.cache import CacheTTL, ResponseCache, make_cache_key


class CountingLoader:
    def __init__(self, value: object = "payload", delay: float = 0.01) -> None:
        self.calls = 0
        self.value = value
        self.delay = delay

    async def __call__(self) -> object:
        self.calls += 1
        await asyncio.sleep(self.delay)
        return self.value


def test_cache_key_is_order_independent():
    first = make_cache_key("polygon/snapshot", {"ticker": "AAPL", "adjusted": True})
    second = make_cache_key("polygon/snapshot", {"adjusted": True, "ticker": "AAPL"})
    assert first == second
    assert first.startswith("polygon/snapshot_")
    assert make_cache_key("polygon/snapshot", {"ticker": "MSFT"}) != first


def test_ttl_presets():
    assert (CacheTTL.REALTIME, CacheTTL.SHORT, CacheTTL.MEDIUM, CacheTTL.LONG, CacheTTL.EXTENDED) == (
        5.0,
        30.0,
        60.0,
        300.0,
        600.0,
    )


async def test_concurrent_callers_share_one_load(clock):
    cache = ResponseCache(clock=clock)
    loader = CountingLoader({"price": 187.2})

    results = await asyncio.gather(*(cache.fetch_with_cache("k", loader, 60) for _ in range(10)))

    assert loader.calls == 1
    assert all(result == {"price": 187.2} for result in results)
    assert cache.stats() == {"cacheSize": 1, "pendingRequests": 0}


async def test_fresh_entry_is_served_until_ttl(clock):
    cache = ResponseCache(clock=clock)
    loader = CountingLoader()

    await cache.fetch_with_cache("k", loader, 5)
    clock.advance(4.999)
    await cache.fetch_with_cache("k", loader, 5)
    assert loader.calls == 1

    clock.advance(0.002)
    await cache.fetch_with_cache("k", loader, 5)
    assert loader.calls == 2


async def test_failures_reach_every_waiter_and_are_not_cached(clock):
    cache = ResponseCache(clock=clock)
    calls = 0

    async def failing() -> object:
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.01)
        raise RuntimeError("upstream down")

    outcomes = await asyncio.gather(
        *(cache.fetch_with_cache("k", failing, 60) for _ in range(3)),
        return_exceptions=True,
    )

    assert calls == 1
    assert all(isinstance(outcome, RuntimeError) for outcome in outcomes)
    assert len(cache) == 0
    assert not cache.has_pending("k")

    loader = CountingLoader("recovered")
    assert await cache.fetch_with_cache("k", loader, 60) == "recovered"


async def test_cancelled_waiter_does_not_cancel_shared_load(clock):
    cache = ResponseCache(clock=clock)
    loader = CountingLoader("value", delay=0.05)

    first = asyncio.ensure_future(cache.fetch_with_cache("k", loader, 60))
    second = asyncio.ensure_future(cache.fetch_with_cache("k", loader, 60))
    await asyncio.sleep(0)
    first.cancel()

    assert await second == "value"
    with pytest.raises(asyncio.CancelledError):
        await first
    assert loader.calls == 1


async def test_invalidate_and_clear_expired(clock):
    cache = ResponseCache(clock=clock)
    await cache.fetch_with_cache("a", CountingLoader("a", delay=0), 60)
    clock.advance(10)
    await cache.fetch_with_cache("b", CountingLoader("b", delay=0), 60)

    assert cache.get("a", 60) == "a"
    assert cache.clear_expired(5) == 1
    assert cache.get("a", 60) is None

    cache.invalidate("b")
    assert len(cache) == 0

    await cache.fetch_with_cache("c", CountingLoader("c", delay=0), 60)
    cache.invalidate()
    assert cache.stats()["cacheSize"] == 0
