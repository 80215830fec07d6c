"""Ticker search across stocks, forex (Polygon) and crypto (CoinGecko)."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Literal, Optional

from fastapi import APIRouter, Depends, Query

from stocky.api.dependencies import get_coingecko_client, get_polygon_client, get_response_cache
from stocky.api.routes.common import exact_matches_first
from stocky.core.cache import CacheTTL, ResponseCache, make_cache_key
from stocky.core.errors import UpstreamError, utc_timestamp
from stocky.providers.coingecko import CoinGeckoClient
from stocky.providers.polygon import PolygonClient
from stocky.schemas import Envelope

router = APIRouter()
logger = logging.getLogger(__name__)


def _coin_to_result(coin: dict[str, Any]) -> dict[str, Any]:
    return {
        "ticker": str(coin.get("symbol", "")).upper(),
        "name": coin.get("name"),
        "market": "crypto",
        "locale": "global",
        "primary_exchange": "crypto",
        "type": "cryptocurrency",
        "active": True,
        "currency_name": coin.get("name"),
        "last_updated_utc": utc_timestamp(),
        "market_cap_rank": coin.get("market_cap_rank"),
        "coin_id": coin.get("id"),
    }


async def _search_crypto(
    query: str,
    limit: int,
    polygon: PolygonClient,
    coingecko: CoinGeckoClient,
) -> list[dict[str, Any]]:
    try:
        payload = await coingecko.search(query)
    except UpstreamError as exc:
        logger.warning("CoinGecko search failed, falling back to Polygon: %s", exc)
        response = await polygon.search_tickers(query, market="crypto", limit=limit)
        return response.get("results") or []
    return [_coin_to_result(coin) for coin in (payload.get("coins") or [])[:limit]]


async def _search_everything(
    query: str,
    limit: int,
    polygon: PolygonClient,
    coingecko: CoinGeckoClient,
) -> dict[str, list[dict[str, Any]]]:
    polygon_results, coingecko_results = await asyncio.gather(
        polygon.search_all_markets(query, limit),
        coingecko.search(query),
        return_exceptions=True,
    )
    if isinstance(polygon_results, Exception):
        logger.warning("Polygon search failed: %s", polygon_results)
        polygon_results = {"stocks": [], "cryptos": [], "forex": []}
    if isinstance(coingecko_results, Exception):
        logger.warning("CoinGecko failed, using Polygon for crypto: %s", coingecko_results)
        cryptos = polygon_results.get("cryptos", [])
    else:
        cryptos = [_coin_to_result(coin) for coin in (coingecko_results.get("coins") or [])[:limit]]
    return {
        "stocks": exact_matches_first(polygon_results.get("stocks", []), query),
        "cryptos": exact_matches_first(cryptos, query),
        "forex": exact_matches_first(polygon_results.get("forex", []), query),
    }


@router.get("", response_model=Envelope)
async def search(
    q: str = Query(..., min_length=1, max_length=64, description="Ticker or company keywords"),
    limit: int = Query(default=20, ge=1, le=100),
    market: Optional[Literal["stocks", "crypto", "forex"]] = Query(default=None),
    polygon: PolygonClient = Depends(get_polygon_client),
    coingecko: CoinGeckoClient = Depends(get_coingecko_client),
    cache: ResponseCache = Depends(get_response_cache),
) -> Envelope:
    query = q.strip()
    logger.info("Searching symbols with query=%s limit=%s market=%s", query, limit, market)

    async def load() -> dict[str, list[dict[str, Any]]]:
        if market is None:
            return await _search_everything(query, limit, polygon, coingecko)
        if market == "crypto":
            results = await _search_crypto(query, limit, polygon, coingecko)
        else:
            response = await polygon.search_tickers(
                query,
                market="fx" if market == "forex" else market,
                limit=limit,
            )
            results = response.get("results") or []
        return {market: exact_matches_first(results, query)}

    key = make_cache_key("search", {"q": query.lower(), "limit": limit, "market": market})
    data = await cache.fetch_with_cache(key, load, CacheTTL.LONG)
    return Envelope(data=data, query=query)
