"""End-to-end route tests with fake provider clients."""

from __future__ import annotations

import asyncio
from typing import Any

from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from stocky.api.dependencies import (
    get_coingecko_client,
    get_polygon_client,
    get_rate_limiter,
    get_response_cache,
    settings_dependency,
)
from stocky.api.routes import api_router
from stocky.config import AppSettings
from stocky.core.cache import ResponseCache
from stocky.core.errors import UpstreamError, UpstreamErrorKind, register_error_handlers
from stocky.core.rate_limit import RateLimiter
from stocky.main import create_app


class FakePolygon:
    def __init__(self) -> None:
        self.calls: dict[str, int] = {}
        self.snapshot: dict[str, Any] = {
            "status": "OK",
            "ticker": {"ticker": "AAPL", "day": {"c": 0}, "prevDay": {"c": 187.5}, "lastTrade": {"p": 188.0}},
        }
        self.failure: BaseException | None = None

    def _count(self, name: str) -> None:
        self.calls[name] = self.calls.get(name, 0) + 1

    async def snapshot_ticker(self, ticker: str) -> dict[str, Any]:
        self._count("snapshot_ticker")
        await asyncio.sleep(0.01)
        if self.failure is not None:
            raise self.failure
        return self.snapshot

    async def complete_ticker_data(self, ticker: str) -> dict[str, Any]:
        self._count("complete_ticker_data")
        return {"snapshot": self.snapshot["ticker"], "details": {}, "news": [], "historical": {}}

    async def chart_data(self, ticker: str, timeframe: str, period: int) -> dict[str, Any]:
        self._count("chart_data")
        bars = [{"t": 1_704_067_200_000 + i * 86_400_000, "o": 1, "h": 2, "l": 0.5, "c": 1 + i, "v": 10} for i in range(3)]
        return {"ticker": ticker, "results": bars}

    async def gainers_losers(self, direction: str) -> dict[str, Any]:
        self._count(direction)
        return {"tickers": [{"ticker": "NVDA"}]}

    async def search_all_markets(self, query: str, limit: int) -> dict[str, list[dict[str, Any]]]:
        self._count("search_all_markets")
        return {
            "stocks": [{"ticker": "AAPLW"}, {"ticker": "AAPL"}],
            "cryptos": [{"ticker": "X:AAPLUSD"}],
            "forex": [],
        }

    async def search_tickers(self, search: str, *, market: str, limit: int) -> dict[str, Any]:
        self._count(f"search_tickers:{market}")
        return {"results": [{"ticker": "C:EURUSD"}]}

    async def ticker_news(self, ticker: str, limit: int, days_back: int) -> list[dict[str, Any]]:
        self._count("ticker_news")
        return [{"id": "n1", "title": f"{ticker} news"}]

    async def news(self, *, limit: int) -> list[dict[str, Any]]:
        self._count("news")
        return []

    async def news_sentiment(self, ticker: str, days_back: int) -> dict[str, Any]:
        return {"ticker": ticker, "overall": "negative", "positive": 0, "negative": 2, "neutral": 1, "total": 3}


class FakeCoinGecko:
    def __init__(self) -> None:
        self.calls: dict[str, int] = {}
        self.search_failure: BaseException | None = None

    async def search(self, query: str) -> dict[str, Any]:
        if self.search_failure is not None:
            raise self.search_failure
        return {"coins": [{"id": "bitcoin", "symbol": "btc", "name": "Bitcoin", "market_cap_rank": 1}]}

    async def markets(self, **params: Any) -> list[dict[str, Any]]:
        self.calls["markets"] = self.calls.get("markets", 0) + 1
        return [{"id": "bitcoin", "vs": params["vs_currency"]}]

    async def price_for_symbol(self, symbol: str) -> dict[str, Any] | None:
        self.calls["price"] = self.calls.get("price", 0) + 1
        if symbol != "btc":
            return None
        return {"symbol": "BTC", "coin_id": "bitcoin", "coin_name": "Bitcoin", "current_price": 65000.0, "currency": "usd"}


def _app(
    polygon: FakePolygon,
    coingecko: FakeCoinGecko | None = None,
    *,
    cache: ResponseCache | None = None,
    limiter: RateLimiter | None = None,
    settings: AppSettings | None = None,
) -> FastAPI:
    app = FastAPI()
    register_error_handlers(app)
    app.include_router(api_router)
    app.dependency_overrides[get_polygon_client] = lambda: polygon
    app.dependency_overrides[get_coingecko_client] = lambda: coingecko or FakeCoinGecko()
    shared_cache = cache or ResponseCache()
    shared_limiter = limiter or RateLimiter()
    app.dependency_overrides[get_response_cache] = lambda: shared_cache
    app.dependency_overrides[get_rate_limiter] = lambda: shared_limiter
    app.dependency_overrides[settings_dependency] = lambda: settings or AppSettings(environment="test")
    return app


def _client(app: FastAPI) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


async def test_ticker_and_price_share_one_snapshot_request():
    polygon = FakePolygon()
    async with _client(_app(polygon)) as client:
        ticker, price = await asyncio.gather(
            client.get("/api/ticker/AAPL"),
            client.get("/api/stock/price/aapl"),
        )

    assert polygon.calls["snapshot_ticker"] == 1
    assert ticker.status_code == 200
    assert ticker.json()["data"]["ticker"] == "AAPL"
    body = price.json()
    assert body["success"] is True
    assert body["data"]["symbol"] == "AAPL"
    assert body["data"]["current_price"] == 187.5


async def test_cached_snapshot_is_reused_between_requests():
    polygon = FakePolygon()
    async with _client(_app(polygon)) as client:
        await client.get("/api/ticker/MSFT")
        response = await client.get("/api/ticker/MSFT")

    assert response.status_code == 200
    assert polygon.calls["snapshot_ticker"] == 1
    assert response.headers["x-ratelimit-remaining"] == "98"


async def test_extended_ticker_uses_composite_view():
    polygon = FakePolygon()
    async with _client(_app(polygon)) as client:
        response = await client.get("/api/ticker/AAPL", params={"extended": "true"})
    assert response.json()["data"]["snapshot"]["ticker"] == "AAPL"
    assert polygon.calls == {"complete_ticker_data": 1}


async def test_upstream_rate_limit_becomes_429_envelope():
    polygon = FakePolygon()
    polygon.failure = UpstreamError("polygon", UpstreamErrorKind.RATE_LIMIT, "slow", status_code=429, retry_after=3)
    async with _client(_app(polygon)) as client:
        response = await client.get("/api/stock/price/AAPL")

    body = response.json()
    assert response.status_code == 429
    assert response.headers["retry-after"] == "3"
    assert body["code"] == "RATE_LIMIT_EXCEEDED"
    assert body["success"] is False


async def test_missing_snapshot_is_not_found():
    polygon = FakePolygon()
    polygon.snapshot = {"status": "OK"}
    async with _client(_app(polygon)) as client:
        response = await client.get("/api/stock/price/ZZZZ")
        again = await client.get("/api/ticker/ZZZZ")
    assert response.status_code == 404
    assert response.json()["error"] == "Stock not found"
    assert again.status_code == 404
    assert polygon.calls["snapshot_ticker"] == 2


async def test_unhandled_exception_is_wrapped():
    polygon = FakePolygon()
    polygon.failure = RuntimeError("kaboom")
    async with _client(_app(polygon)) as client:
        response = await client.get("/api/ticker/AAPL")

    body = response.json()
    assert response.status_code == 500
    assert body["code"] == "INTERNAL_ERROR"
    assert body["requestId"].startswith("req_")


async def test_inbound_quota_rejects_excess_requests():
    polygon = FakePolygon()
    app = _app(polygon, settings=AppSettings(environment="test", api_rate_limit=2))
    async with _client(app) as client:
        statuses = [(await client.get("/api/widgets/schedule")).status_code for _ in range(3)]
        rejected = await client.get("/api/widgets/schedule", headers={"X-Forwarded-For": "10.0.0.1"})

    assert statuses == [200, 200, 429]
    assert rejected.status_code == 200


async def test_rejected_request_carries_retry_after():
    app = _app(FakePolygon(), settings=AppSettings(environment="test", api_rate_limit=1))
    async with _client(app) as client:
        await client.get("/api/widgets/schedule")
        response = await client.get("/api/widgets/schedule")

    assert response.status_code == 429
    assert response.json()["code"] == "RATE_LIMIT_EXCEEDED"
    assert 1 <= int(response.headers["retry-after"]) <= 60
    assert response.headers["x-ratelimit-limit"] == "1"
    assert response.headers["x-ratelimit-remaining"] == "0"
    assert int(response.headers["x-ratelimit-reset"]) >= int(response.headers["retry-after"])


async def test_validation_failures_use_specific_codes():
    async with _client(_app(FakePolygon())) as client:
        missing = await client.get("/api/search")
        out_of_range = await client.get("/api/historical/AAPL", params={"period": 0})
        invalid = await client.get("/api/historical/AAPL", params={"timeframe": "2d"})
        not_a_number = await client.get("/api/news", params={"limit": "many"})

    assert missing.status_code == 400
    assert missing.json()["code"] == "MISSING_PARAMETER"
    assert missing.json()["details"]["parameter"] == "q"
    assert out_of_range.json()["code"] == "PARAMETER_OUT_OF_RANGE"
    assert invalid.json()["code"] == "INVALID_PARAMETER"
    assert not_a_number.json()["code"] == "INVALID_PARAMETER"


async def test_historical_summary():
    async with _client(_app(FakePolygon())) as client:
        response = await client.get("/api/historical/aapl", params={"summary": "true"})

    body = response.json()
    assert body["symbol"] == "AAPL"
    assert body["summary"]["bars"] == 3
    assert body["summary"]["range"]["current"] == 3.0


async def test_market_gainers_and_cache_key_per_type():
    polygon = FakePolygon()
    async with _client(_app(polygon)) as client:
        await client.get("/api/market", params={"type": "gainers"})
        await client.get("/api/market", params={"type": "gainers"})
        response = await client.get("/api/market", params={"type": "losers"})

    assert polygon.calls == {"gainers": 1, "losers": 1}
    assert response.json()["type"] == "losers"


async def test_search_all_markets_puts_exact_match_first():
    async with _client(_app(FakePolygon())) as client:
        response = await client.get("/api/search", params={"q": "aapl"})

    data = response.json()["data"]
    assert [item["ticker"] for item in data["stocks"]] == ["AAPL", "AAPLW"]
    assert data["cryptos"][0]["ticker"] == "BTC"


async def test_search_crypto_falls_back_to_polygon():
    polygon = FakePolygon()
    coingecko = FakeCoinGecko()
    coingecko.search_failure = UpstreamError("coingecko", UpstreamErrorKind.NETWORK_ERROR, "down")
    async with _client(_app(polygon, coingecko)) as client:
        response = await client.get("/api/search", params={"q": "eur", "market": "crypto"})

    assert response.status_code == 200
    assert polygon.calls == {"search_tickers:crypto": 1}


async def test_search_forex_uses_fx_market():
    polygon = FakePolygon()
    async with _client(_app(polygon)) as client:
        response = await client.get("/api/search", params={"q": "eur", "market": "forex"})
    assert response.json()["data"] == {"forex": [{"ticker": "C:EURUSD"}]}
    assert polygon.calls == {"search_tickers:fx": 1}


async def test_news_for_ticker_and_sentiment():
    async with _client(_app(FakePolygon())) as client:
        news = await client.get("/api/news", params={"ticker": "tsla", "limit": 5})
        sentiment = await client.get("/api/news/sentiment/tsla")

    assert news.json()["count"] == 1
    assert news.json()["ticker"] == "TSLA"
    assert sentiment.json()["data"]["overall"] == "negative"


async def test_crypto_price_and_missing_coin_is_not_cached():
    coingecko = FakeCoinGecko()
    async with _client(_app(FakePolygon(), coingecko)) as client:
        found = await client.get("/api/crypto/price/BTC")
        first_miss = await client.get("/api/crypto/price/nope")
        second_miss = await client.get("/api/crypto/price/nope")

    assert found.json()["data"]["current_price"] == 65000.0
    assert first_miss.status_code == second_miss.status_code == 404
    assert first_miss.json()["error"] == "Cryptocurrency not found"
    assert coingecko.calls["price"] == 3


async def test_crypto_markets_forwards_params():
    coingecko = FakeCoinGecko()
    async with _client(_app(FakePolygon(), coingecko)) as client:
        response = await client.get("/api/crypto/markets", params={"vs_currency": "EUR"})
    assert response.json()["data"] == [{"id": "bitcoin", "vs": "eur"}]


async def test_widget_schedule_routes():
    async with _client(_app(FakePolygon())) as client:
        schedule = await client.get("/api/widgets/schedule")
        single = await client.get("/api/widgets/price-chart/schedule")
        unknown = await client.get("/api/widgets/weather/schedule")

    assert len(schedule.json()["data"]) == 12
    assert single.json()["data"]["refresh_interval_ms"] == 30_000
    assert unknown.status_code == 404
    assert unknown.json()["code"] == "NOT_FOUND"


async def test_cache_stats():
    async with _client(_app(FakePolygon())) as client:
        await client.get("/api/ticker/AAPL")
        response = await client.get("/api/cache/stats")
    assert response.json()["data"] == {"cacheSize": 1, "pendingRequests": 0, "rateLimitCounters": 1}


async def test_created_app_serves_health_and_unknown_routes():
    app = create_app(AppSettings(environment="test"))
    async with _client(app) as client:
        health = await client.get("/health")
        missing = await client.get("/nowhere")

    assert health.json()["status"] == "ok"
    assert missing.status_code == 404
    assert missing.json()["code"] == "NOT_FOUND"


async def test_error_envelopes_keep_cors_headers():
    polygon = FakePolygon()
    polygon.failure = RuntimeError("kaboom")
    app = create_app(AppSettings(environment="test", cors_origins=["http://localhost:3000"]))
    app.dependency_overrides[get_polygon_client] = lambda: polygon
    cache, limiter = ResponseCache(), RateLimiter()
    app.dependency_overrides[get_response_cache] = lambda: cache
    app.dependency_overrides[get_rate_limiter] = lambda: limiter
    origin = {"Origin": "http://localhost:3000"}
    async with _client(app) as client:
        ok = await client.get("/api/widgets/schedule", headers=origin)
        failed = await client.get("/api/ticker/AAPL", headers=origin)

    assert ok.headers["access-control-allow-origin"] == "http://localhost:3000"
    assert failed.status_code == 500
    assert failed.json()["code"] == "INTERNAL_ERROR"
    assert failed.headers["access-control-allow-origin"] == "http://localhost:3000"
