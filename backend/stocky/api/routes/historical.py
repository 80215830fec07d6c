"""Historical aggregates endpoint."""

from __future__ import annotations


from fastapi import APIRouter, Depends, Query

from stocky.api.dependencies import get_polygon_client, get_response_cache
from stocky.api.routes.common import require_symbol
from stocky.core.cache import CacheTTL, ResponseCache, make_cache_key
from stocky.providers.polygon import PolygonClient, Timeframe
from stocky.schemas import Envelope
from stocky.services.market_data import summarize_bars

router = APIRouter()


@router.get("/{symbol}", response_model=Envelope)
async def get_historical(
    symbol: str,
    timeframe: Timeframe = Query(default="1d"),
    period: int = Query(default=30, ge=1, le=1000),
    summary: bool = Query(default=False),
    polygon: PolygonClient = Depends(get_polygon_client),
    cache: ResponseCache = Depends(get_response_cache),
) -> Envelope:
    normalized = require_symbol(symbol)
    key = make_cache_key("polygon/aggregates", {"ticker": normalized, "timeframe": timeframe, "period": period})
    data = await cache.fetch_with_cache(
        key,
        lambda: polygon.chart_data(normalized, timeframe, period),
        CacheTTL.MEDIUM,
    )
    extra = {"summary": summarize_bars(data)} if summary else {}
    return Envelope(data=data, symbol=normalized, timeframe=timeframe, period=period, **extra)
