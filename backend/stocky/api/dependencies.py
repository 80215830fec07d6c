"""Shared dependencies: process-wide clients, cache and quota enforcement."""

from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import Depends, Request, Response

from stocky.config import AppSettings, get_settings
from stocky.core.cache import ResponseCache
from stocky.core.errors import RateLimitError
from stocky.core.rate_limit import OutboundThrottle, RateLimiter, RateLimitResult
from stocky.providers.coingecko import CoinGeckoClient, create_coingecko_client
from stocky.providers.polygon import PolygonClient, create_polygon_client

logger = logging.getLogger(__name__)


def settings_dependency() -> AppSettings:
    return get_settings()


@lru_cache(maxsize=1)
def get_outbound_throttle() -> OutboundThrottle:
    settings = get_settings()
    return OutboundThrottle(
        max_calls=settings.outbound_requests_per_window,
        window=settings.outbound_window_seconds,
        max_concurrency=settings.outbound_max_concurrency,
    )


@lru_cache(maxsize=1)
def get_polygon_client() -> PolygonClient:
    return create_polygon_client(get_settings(), get_outbound_throttle())


@lru_cache(maxsize=1)
def get_coingecko_client() -> CoinGeckoClient:
    return create_coingecko_client(get_settings(), get_outbound_throttle())


@lru_cache(maxsize=1)
def get_response_cache() -> ResponseCache:
    return ResponseCache()


@lru_cache(maxsize=1)
def get_rate_limiter() -> RateLimiter:
    return RateLimiter()


def client_identifier(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "anonymous"


def quota_headers(limit: int, result: RateLimitResult) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(int(result.reset_at)),
    }


async def enforce_rate_limit(
    request: Request,
    response: Response,
    limiter: RateLimiter = Depends(get_rate_limiter),
    settings: AppSettings = Depends(settings_dependency),
) -> RateLimitResult:
    identifier = client_identifier(request)
    result = limiter.check(identifier, settings.api_rate_limit, settings.api_rate_limit_window_seconds)
    headers = quota_headers(settings.api_rate_limit, result)
    if not result.allowed:
        retry_after = max(0.0, result.reset_at - limiter.now())
        logger.warning("Rate limit exceeded for %s on %s", identifier, request.url.path)
        raise RateLimitError(retry_after=retry_after, headers=headers)
    response.headers.update(headers)
    return result


__all__ = [
    "client_identifier",
    "enforce_rate_limit",
    "get_coingecko_client",
    "get_outbound_throttle",
    "get_polygon_client",
    "get_rate_limiter",
    "get_response_cache",
    "quota_headers",
    "settings_dependency",
]
