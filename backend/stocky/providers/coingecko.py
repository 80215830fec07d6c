"""CoinGecko client for crypto market data."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from stocky.config import AppSettings
from stocky.core.rate_limit import OutboundThrottle

from .base import ProviderClient

logger = logging.getLogger(__name__)

DEFAULT_MARKET_PARAMS: dict[str, Any] = {
    "vs_currency": "usd",
    "order": "market_cap_desc",
    "per_page": 100,
    "page": 1,
    "sparkline": False,
    "price_change_percentage": "24h",
}


class CoinGeckoClient(ProviderClient):
    """Crypto client; the credential header depends on the configured tier."""

    provider = "coingecko"

    def __init__(self, *, use_pro: bool = False, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.use_pro = use_pro

    @property
    def api_key_header(self) -> str:
        return "x-cg-pro-api-key" if self.use_pro else "x-cg-demo-api-key"

    def auth_headers(self) -> dict[str, str]:
        if not self.api_key:
            return {}
        return {self.api_key_header: self.api_key}

    def error_detail(self, response: httpx.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            return response.text or response.reason_phrase
        if isinstance(payload, dict):
            status = payload.get("status")
            if isinstance(status, dict) and status.get("error_message"):
                return str(status["error_message"])
            return str(payload.get("error") or payload)
        return str(payload)

    async def search(self, query: str) -> dict[str, Any]:
        return await self._request("/search", {"query": query})

    async def markets(self, **params: Any) -> list[dict[str, Any]]:
        merged = {**DEFAULT_MARKET_PARAMS, **{k: v for k, v in params.items() if v is not None}}
        return await self._request("/coins/markets", merged)

    async def simple_price(self, ids: list[str], vs_currencies: str = "usd") -> dict[str, Any]:
        return await self._request("/simple/price", {"ids": ",".join(ids), "vs_currencies": vs_currencies})

    async def trending(self) -> dict[str, Any]:
        return await self._request("/search/trending")

    async def global_data(self) -> dict[str, Any]:
        return await self._request("/global")

    async def top_movers(self, limit: int = 20, *, gainers: bool = True) -> list[dict[str, Any]]:
        coins = await self.markets(per_page=250, page=1)
        change = "price_change_percentage_24h"
        if gainers:
            selected = [coin for coin in coins if (coin.get(change) or 0) > 0]
        else:
            selected = [coin for coin in coins if (coin.get(change) or 0) < 0]
        selected.sort(key=lambda coin: coin.get(change) or 0, reverse=gainers)
        return selected[:limit]

    async def find_coin(self, symbol: str) -> dict[str, Any] | None:
        """Return the first search hit whose symbol matches exactly."""

        wanted = symbol.strip().lower()
        payload = await self.search(wanted)
        for coin in payload.get("coins") or []:
            if str(coin.get("symbol", "")).lower() == wanted:
                return coin
        return None

    async def price_for_symbol(self, symbol: str, vs_currency: str = "usd") -> dict[str, Any] | None:
        coin = await self.find_coin(symbol)
        if coin is None:
            logger.info("No CoinGecko coin matches symbol %s", symbol)
            return None
        prices = await self.simple_price([coin["id"]], vs_currency)
        return {
            "symbol": symbol.strip().upper(),
            "coin_id": coin["id"],
            "coin_name": coin.get("name"),
            "current_price": (prices.get(coin["id"]) or {}).get(vs_currency),
            "currency": vs_currency,
        }


def create_coingecko_client(settings: AppSettings, throttle: OutboundThrottle | None = None) -> CoinGeckoClient:
    return CoinGeckoClient(
        base_url=settings.coingecko_url,
        api_key=settings.coingecko_api_key,
        use_pro=settings.coingecko_use_pro,
        timeout_seconds=settings.coingecko_timeout_seconds,
        max_attempts=settings.coingecko_max_attempts,
        backoff_seconds=settings.retry_backoff_seconds,
        max_backoff_seconds=settings.retry_max_backoff_seconds,
        throttle=throttle,
    )


__all__ = ["CoinGeckoClient", "DEFAULT_MARKET_PARAMS", "create_coingecko_client"]
