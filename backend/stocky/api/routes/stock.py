"""Stock spot price endpoint."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends

from stocky.api.dependencies import get_polygon_client, get_response_cache
from stocky.api.routes.common import require_symbol, snapshot_loader
from stocky.core.cache import CacheTTL, ResponseCache
from stocky.providers.polygon import PolygonClient
from stocky.schemas import Envelope, StockPriceSchema

router = APIRouter()
logger = logging.getLogger(__name__)


def current_price(snapshot: dict[str, Any]) -> float | None:
    """Day close, then previous close, then last trade price."""

    day = snapshot.get("day") or {}
    prev_day = snapshot.get("prevDay") or {}
    last_trade = snapshot.get("lastTrade") or {}
    return day.get("c") or prev_day.get("c") or last_trade.get("p") or None


@router.get("/price/{symbol}", response_model=Envelope)
async def get_stock_price(
    symbol: str,
    polygon: PolygonClient = Depends(get_polygon_client),
    cache: ResponseCache = Depends(get_response_cache),
) -> Envelope:
    normalized = require_symbol(symbol)
    key, loader = snapshot_loader(polygon, normalized)
    payload = await cache.fetch_with_cache(key, loader, CacheTTL.REALTIME)
    price = current_price(payload["ticker"])
    logger.debug("Stock price for %s resolved to %s", normalized, price)
    return Envelope(data=StockPriceSchema(symbol=normalized, current_price=price), symbol=normalized)
