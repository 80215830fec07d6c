"""Route registration helpers."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from stocky.api.dependencies import enforce_rate_limit

from .crypto import router as crypto_router
from .diagnostics import router as diagnostics_router
from .historical import router as historical_router
from .market import router as market_router
from .news import router as news_router
from .search import router as search_router
from .stock import router as stock_router
from .ticker import router as ticker_router
from .widgets import router as widgets_router

api_router = APIRouter(prefix="/api", dependencies=[Depends(enforce_rate_limit)])
api_router.include_router(market_router, prefix="/market", tags=["market"])
api_router.include_router(ticker_router, prefix="/ticker", tags=["ticker"])
api_router.include_router(historical_router, prefix="/historical", tags=["historical"])
api_router.include_router(search_router, prefix="/search", tags=["search"])
api_router.include_router(news_router, prefix="/news", tags=["news"])
api_router.include_router(crypto_router, prefix="/crypto", tags=["crypto"])
api_router.include_router(stock_router, prefix="/stock", tags=["stock"])
api_router.include_router(widgets_router, prefix="/widgets", tags=["widgets"])
api_router.include_router(diagnostics_router, prefix="/cache", tags=["diagnostics"])

__all__ = ["api_router"]
