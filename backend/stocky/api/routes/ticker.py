"""Ticker snapshot endpoint."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query

from stocky.api.dependencies import get_polygon_client, get_response_cache
from stocky.api.routes.common import require_symbol, snapshot_loader
from stocky.core.cache import CacheTTL, ResponseCache, make_cache_key
from stocky.providers.polygon import PolygonClient
from stocky.schemas import Envelope

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/{symbol}", response_model=Envelope)
async def get_ticker(
    symbol: str,
    extended: bool = Query(default=False),
    polygon: PolygonClient = Depends(get_polygon_client),
    cache: ResponseCache = Depends(get_response_cache),
) -> Envelope:
    normalized = require_symbol(symbol)
    if extended:
        key = make_cache_key("polygon/ticker/complete", {"ticker": normalized})
        data = await cache.fetch_with_cache(key, lambda: polygon.complete_ticker_data(normalized), CacheTTL.MEDIUM)
    else:
        key, loader = snapshot_loader(polygon, normalized)
        snapshot = await cache.fetch_with_cache(key, loader, CacheTTL.REALTIME)
        data = snapshot["ticker"]
    logger.debug("Ticker %s (extended=%s) served", normalized, extended)
    return Envelope(data=data, symbol=normalized)
