"""Crypto market list and spot price endpoints."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query

from stocky.api.dependencies import get_coingecko_client, get_response_cache
from stocky.core.cache import CacheTTL, ResponseCache, make_cache_key
from stocky.core.errors import MissingParameterError, NotFoundError
from stocky.providers.coingecko import CoinGeckoClient
from stocky.schemas import CryptoPriceSchema, Envelope

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/markets", response_model=Envelope)
async def get_markets(
    vs_currency: str = Query(default="usd", min_length=1, max_length=10),
    order: str = Query(default="market_cap_desc"),
    per_page: int = Query(default=100, ge=1, le=250),
    page: int = Query(default=1, ge=1),
    sparkline: bool = Query(default=False),
    price_change_percentage: str = Query(default="24h"),
    coingecko: CoinGeckoClient = Depends(get_coingecko_client),
    cache: ResponseCache = Depends(get_response_cache),
) -> Envelope:
    params: dict[str, Any] = {
        "vs_currency": vs_currency.lower(),
        "order": order,
        "per_page": per_page,
        "page": page,
        "sparkline": sparkline,
        "price_change_percentage": price_change_percentage,
    }
    key = make_cache_key("coingecko/coins/markets", params)
    coins = await cache.fetch_with_cache(key, lambda: coingecko.markets(**params), CacheTTL.SHORT)
    logger.debug("CoinGecko markets returned %d coins", len(coins))
    return Envelope(data=coins, count=len(coins))


@router.get("/price/{symbol}", response_model=Envelope)
async def get_crypto_price(
    symbol: str,
    coingecko: CoinGeckoClient = Depends(get_coingecko_client),
    cache: ResponseCache = Depends(get_response_cache),
) -> Envelope:
    wanted = symbol.strip().lower()
    if not wanted:
        raise MissingParameterError("symbol")

    async def load() -> dict[str, Any]:
        price = await coingecko.price_for_symbol(wanted)
        if price is None:
            # Raised inside the loader so a miss is never cached
            raise NotFoundError("Cryptocurrency")
        return price

    key = make_cache_key("coingecko/price", {"symbol": wanted})
    price = await cache.fetch_with_cache(key, load, CacheTTL.REALTIME)
    return Envelope(data=CryptoPriceSchema(**price), symbol=wanted.upper())
