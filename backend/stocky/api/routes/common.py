"""Helpers shared by several route modules."""

from __future__ import annotations

from typing import Any, Awaitable, Callable

from stocky.core.cache import make_cache_key
from stocky.core.errors import MissingParameterError, NotFoundError
from stocky.providers.polygon import PolygonClient


def require_symbol(symbol: str | None, parameter: str = "symbol") -> str:
    normalized = (symbol or "").strip().upper()
    if not normalized:
        raise MissingParameterError(parameter)
    return normalized


def snapshot_loader(polygon: PolygonClient, symbol: str) -> tuple[str, Callable[[], Awaitable[Any]]]:
    """Cache key and loader for a stock snapshot, shared by ticker and price routes.

    A payload without a ``ticker`` raises ``NotFoundError`` inside the loader,
    so misses are never stored.
    """

    async def load() -> dict[str, Any]:
        payload = await polygon.snapshot_ticker(symbol)
        if not isinstance(payload, dict) or not payload.get("ticker"):
            raise NotFoundError("Stock")
        return payload

    return make_cache_key("polygon/snapshot", {"ticker": symbol}), load


def exact_matches_first(results: list[dict[str, Any]], query: str) -> list[dict[str, Any]]:
    wanted = query.strip().upper()
    return sorted(results, key=lambda item: str(item.get("ticker", "")).upper() != wanted)
