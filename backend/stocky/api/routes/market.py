"""Market movers and overview endpoint."""

from __future__ import annotations

import logging
from typing import Literal

from fastapi import APIRouter, Depends, Query

from stocky.api.dependencies import get_polygon_client, get_response_cache
from stocky.core.cache import CacheTTL, ResponseCache, make_cache_key
from stocky.providers.polygon import PolygonClient
from stocky.schemas import Envelope

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("", response_model=Envelope)
async def get_market(
    kind: Literal["gainers", "losers", "overview"] = Query(default="gainers", alias="type"),
    market: Literal["stocks", "crypto"] = Query(default="stocks"),
    polygon: PolygonClient = Depends(get_polygon_client),
    cache: ResponseCache = Depends(get_response_cache),
) -> Envelope:
    logger.info("Fetching market data type=%s market=%s", kind, market)

    async def load() -> dict:
        if kind == "overview":
            return await polygon.market_overview()
        if market == "crypto":
            payload = await polygon.crypto_snapshots()
            return {"results": payload.get("tickers") or []}
        return await polygon.gainers_losers(kind)

    key = make_cache_key("polygon/market", {"type": kind, "market": market})
    data = await cache.fetch_with_cache(key, load, CacheTTL.SHORT)
    return Envelope(data=data, type=kind, market=market)
