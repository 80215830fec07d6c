"""Polygon.io client: reference, snapshot, aggregates and news endpoints."""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from datetime import date, datetime, timedelta, timezone
from typing import Any, Literal

import pandas as pd

from stocky.config import AppSettings
from stocky.core.errors import UpstreamError, UpstreamErrorKind
from stocky.core.rate_limit import OutboundThrottle

from .base import ProviderClient

logger = logging.getLogger(__name__)

Timeframe = Literal["1m", "5m", "15m", "1h", "4h", "1d", "1w", "1M"]
TIMEFRAMES: dict[str, tuple[int, str]] = {
    "1m": (1, "minute"),
    "5m": (5, "minute"),
    "15m": (15, "minute"),
    "1h": (1, "hour"),
    "4h": (4, "hour"),
    "1d": (1, "day"),
    "1w": (1, "week"),
    "1M": (1, "month"),
}
MAJOR_INDICES = ("SPY", "QQQ", "IWM", "DIA")
NEWS_FIELDS = (
    "id",
    "publisher",
    "title",
    "author",
    "published_utc",
    "article_url",
    "tickers",
    "image_url",
    "description",
    "keywords",
    "insights",
)


def chart_start(timeframe: str, period: int, now: datetime) -> datetime:
    """Return the start of a chart window of ``period`` units for ``timeframe``."""

    if timeframe in ("1m", "5m", "15m"):
        return now - timedelta(hours=period)
    if timeframe in ("1h", "4h", "1d"):
        return now - timedelta(days=period)
    if timeframe == "1w":
        return now - timedelta(weeks=period)
    if timeframe == "1M":
        return (pd.Timestamp(now) - pd.DateOffset(months=period)).to_pydatetime()
    return now - timedelta(days=30)


def _normalize_article(article: dict[str, Any]) -> dict[str, Any]:
    return {field: article.get(field) for field in NEWS_FIELDS}


class PolygonClient(ProviderClient):
    """Stocks/options reference, snapshot, historical and news client."""

    provider = "polygon"

    def auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}

    def check_payload(self, payload: Any) -> None:
        if isinstance(payload, dict) and payload.get("status") == "ERROR":
            raise UpstreamError(
                self.provider,
                UpstreamErrorKind.UNKNOWN,
                str(payload.get("error") or payload.get("message") or "Unknown API error"),
            )

    # Reference

    async def search_tickers(
        self,
        search: str | None = None,
        *,
        market: str | None = None,
        active: bool | None = True,
        limit: int = 100,
        sort: str | None = None,
        order: str | None = None,
    ) -> dict[str, Any]:
        params = {
            "search": search,
            "market": market,
            "active": active,
            "limit": limit,
            "sort": sort,
            "order": order,
        }
        return await self._request("/v3/reference/tickers", params)

    async def ticker_details(self, ticker: str, on_date: date | None = None) -> dict[str, Any]:
        symbol = self.normalize_symbol(ticker)
        params = {"date": on_date.isoformat()} if on_date else {}
        return await self._request(f"/v3/reference/tickers/{symbol}", params)

    # Snapshots

    async def snapshot_ticker(self, ticker: str) -> dict[str, Any]:
        symbol = self.normalize_symbol(ticker)
        return await self._request(f"/v2/snapshot/locale/us/markets/stocks/tickers/{symbol}")

    async def gainers_losers(
        self,
        direction: Literal["gainers", "losers"] = "gainers",
        include_otc: bool = False,
    ) -> dict[str, Any]:
        params = {"include_otc": True} if include_otc else {}
        return await self._request(f"/v2/snapshot/locale/us/markets/stocks/{direction}", params)

    async def crypto_snapshots(self) -> dict[str, Any]:
        return await self._request("/v2/snapshot/locale/global/markets/crypto/tickers")

    async def market_movers(self) -> dict[str, dict[str, Any]]:
        gainers, losers = await asyncio.gather(
            self.gainers_losers("gainers"),
            self.gainers_losers("losers"),
        )
        return {"gainers": gainers, "losers": losers}

    # Aggregates

    async def aggregates(
        self,
        ticker: str,
        multiplier: int,
        timespan: str,
        start: date,
        end: date,
        *,
        adjusted: bool = True,
        sort: str = "asc",
        limit: int = 5000,
    ) -> dict[str, Any]:
        symbol = self.normalize_symbol(ticker)
        path = f"/v2/aggs/ticker/{symbol}/range/{multiplier}/{timespan}/{start.isoformat()}/{end.isoformat()}"
        return await self._request(path, {"adjusted": adjusted, "sort": sort, "limit": limit})

    async def previous_close(self, ticker: str, adjusted: bool = True) -> dict[str, Any]:
        symbol = self.normalize_symbol(ticker)
        return await self._request(f"/v2/aggs/ticker/{symbol}/prev", {"adjusted": adjusted})

    async def chart_data(self, ticker: str, timeframe: str = "1d", period: int = 30) -> dict[str, Any]:
        multiplier, timespan = TIMEFRAMES.get(timeframe, (1, "day"))
        now = datetime.now(timezone.utc)
        start = chart_start(timeframe, period, now)
        return await self.aggregates(ticker, multiplier, timespan, start.date(), now.date())

    async def daily_data(self, ticker: str, days: int = 100, adjusted: bool = True) -> dict[str, Any]:
        today = datetime.now(timezone.utc).date()
        # Widen the calendar window so weekends still yield ``days`` sessions
        start = today - timedelta(days=int(days * 1.5))
        return await self.aggregates(ticker, 1, "day", start, today, adjusted=adjusted, limit=days)

    # News

    async def news(
        self,
        ticker: str | None = None,
        *,
        limit: int = 100,
        published_since: date | None = None,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {
            "ticker": self.normalize_symbol(ticker) if ticker else None,
            "limit": limit,
            "sort": "published_utc",
            "order": "desc",
            "published_utc.gte": published_since.isoformat() if published_since else None,
        }
        payload = await self._request("/v2/reference/news", params)
        return [_normalize_article(article) for article in payload.get("results") or []]

    async def ticker_news(self, ticker: str, limit: int = 50, days_back: int = 7) -> list[dict[str, Any]]:
        since = datetime.now(timezone.utc).date() - timedelta(days=days_back)
        return await self.news(ticker, limit=limit, published_since=since)

    async def news_sentiment(self, ticker: str, days_back: int = 7) -> dict[str, Any]:
        symbol = self.normalize_symbol(ticker)
        articles = await self.ticker_news(symbol, 100, days_back)
        tally: Counter[str] = Counter(positive=0, negative=0, neutral=0)
        for article in articles:
            insight = next(
                (item for item in article.get("insights") or [] if str(item.get("ticker", "")).upper() == symbol),
                None,
            )
            sentiment = insight.get("sentiment") if insight else None
            tally[sentiment if sentiment in ("positive", "negative") else "neutral"] += 1

        positive, negative, neutral = tally["positive"], tally["negative"], tally["neutral"]
        overall = "neutral"
        if positive > negative and positive > neutral:
            overall = "positive"
        elif negative > positive and negative > neutral:
            overall = "negative"
        return {
            "ticker": symbol,
            "overall": overall,
            "positive": positive,
            "negative": negative,
            "neutral": neutral,
            "total": positive + negative + neutral,
        }

    # Composite views

    async def search_all_markets(self, query: str, limit: int = 20) -> dict[str, list[dict[str, Any]]]:
        """Search stocks, crypto and forex at once; a failed market yields []."""

        markets = {"stocks": "stocks", "cryptos": "crypto", "forex": "fx"}
        results = await asyncio.gather(
            *(self.search_tickers(query, market=market, limit=limit) for market in markets.values()),
            return_exceptions=True,
        )
        combined: dict[str, list[dict[str, Any]]] = {}
        for name, result in zip(markets, results):
            if isinstance(result, Exception):
                logger.warning("Ticker search in %s failed: %s", name, result)
                combined[name] = []
            else:
                combined[name] = result.get("results") or []
        return combined

    async def market_overview(self) -> dict[str, list[Any]]:
        movers, cryptos = await asyncio.gather(
            self.market_movers(),
            self.crypto_snapshots(),
            return_exceptions=True,
        )
        gainers: list[Any] = []
        losers: list[Any] = []
        if isinstance(movers, Exception):
            logger.warning("Market movers unavailable: %s", movers)
        else:
            gainers = (movers["gainers"].get("tickers") or [])[:10]
            losers = (movers["losers"].get("tickers") or [])[:10]
        crypto_rows: list[Any] = []
        if isinstance(cryptos, Exception):
            logger.warning("Crypto snapshots unavailable: %s", cryptos)
        else:
            crypto_rows = (cryptos.get("tickers") or [])[:10]

        snapshots = await asyncio.gather(
            *(self.snapshot_ticker(symbol) for symbol in MAJOR_INDICES),
            return_exceptions=True,
        )
        indices = [snap.get("ticker") for snap in snapshots if not isinstance(snap, Exception) and snap.get("ticker")]

        return {
            "gainers": gainers,
            "losers": losers,
            # No volume ranking upstream; gainers double as most active
            "mostActive": gainers[:10],
            "indices": indices,
            "cryptos": crypto_rows,
        }

    async def complete_ticker_data(self, ticker: str) -> dict[str, Any]:
        symbol = self.normalize_symbol(ticker)
        snapshot, details, news, historical = await asyncio.gather(
            self.snapshot_ticker(symbol),
            self.ticker_details(symbol),
            self.ticker_news(symbol, 10, 7),
            self.daily_data(symbol, 30),
            return_exceptions=True,
        )
        for name, value in (("snapshot", snapshot), ("details", details), ("news", news), ("historical", historical)):
            if isinstance(value, Exception):
                logger.warning("Complete ticker data for %s: %s unavailable (%s)", symbol, name, value)
        return {
            "snapshot": {} if isinstance(snapshot, Exception) else snapshot.get("ticker") or {},
            "details": {} if isinstance(details, Exception) else details.get("results") or {},
            "news": [] if isinstance(news, Exception) else news,
            "historical": {} if isinstance(historical, Exception) else historical,
        }


def create_polygon_client(settings: AppSettings, throttle: OutboundThrottle | None = None) -> PolygonClient:
    return PolygonClient(
        base_url=settings.polygon_base_url,
        api_key=settings.polygon_api_key,
        timeout_seconds=settings.polygon_timeout_seconds,
        max_attempts=settings.polygon_max_attempts,
        backoff_seconds=settings.retry_backoff_seconds,
        max_backoff_seconds=settings.retry_max_backoff_seconds,
        throttle=throttle,
    )


__all__ = ["MAJOR_INDICES", "PolygonClient", "TIMEFRAMES", "Timeframe", "chart_start", "create_polygon_client"]
