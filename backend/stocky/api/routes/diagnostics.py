"""Cache and quota diagnostics."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from stocky.api.dependencies import get_rate_limiter, get_response_cache
from stocky.core.cache import ResponseCache
from stocky.core.rate_limit import RateLimiter
from stocky.schemas import Envelope

router = APIRouter()


@router.get("/stats", response_model=Envelope)
async def cache_stats(
    cache: ResponseCache = Depends(get_response_cache),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> Envelope:
    return Envelope(data={**cache.stats(), "rateLimitCounters": len(limiter)})
