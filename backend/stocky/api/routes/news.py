"""Market news and news-sentiment endpoints."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from stocky.api.dependencies import get_polygon_client, get_response_cache
from stocky.api.routes.common import require_symbol
from stocky.core.cache import CacheTTL, ResponseCache, make_cache_key
from stocky.providers.polygon import PolygonClient
from stocky.schemas import Envelope, NewsSentimentSchema

router = APIRouter()


@router.get("", response_model=Envelope)
async def get_news(
    ticker: Optional[str] = Query(default=None, max_length=16),
    limit: int = Query(default=100, ge=1, le=1000),
    days: int = Query(default=7, ge=1, le=365),
    polygon: PolygonClient = Depends(get_polygon_client),
    cache: ResponseCache = Depends(get_response_cache),
) -> Envelope:
    symbol = ticker.strip().upper() if ticker and ticker.strip() else None
    if symbol:
        key = make_cache_key("polygon/news", {"ticker": symbol, "limit": limit, "days": days})
        articles = await cache.fetch_with_cache(key, lambda: polygon.ticker_news(symbol, limit, days), CacheTTL.LONG)
    else:
        key = make_cache_key("polygon/news", {"limit": limit})
        articles = await cache.fetch_with_cache(key, lambda: polygon.news(limit=limit), CacheTTL.LONG)
    return Envelope(data=articles, count=len(articles), ticker=symbol)


@router.get("/sentiment/{symbol}", response_model=Envelope)
async def get_news_sentiment(
    symbol: str,
    days: int = Query(default=7, ge=1, le=365),
    polygon: PolygonClient = Depends(get_polygon_client),
    cache: ResponseCache = Depends(get_response_cache),
) -> Envelope:
    normalized = require_symbol(symbol)
    key = make_cache_key("polygon/news/sentiment", {"ticker": normalized, "days": days})
    tally = await cache.fetch_with_cache(key, lambda: polygon.news_sentiment(normalized, days), CacheTTL.LONG)
    return Envelope(data=NewsSentimentSchema(**tally), symbol=normalized)
