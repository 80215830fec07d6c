"""FastAPI application entrypoint."""

from __future__ import annotations

import asyncio
import contextlib
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from stocky import __version__
from stocky.api.dependencies import (
    get_coingecko_client,
    get_polygon_client,
    get_rate_limiter,
    get_response_cache,
)
from stocky.api.routes import api_router
from stocky.config import AppSettings, get_settings
from stocky.core.errors import register_error_handlers, utc_timestamp
from stocky.core.logging import setup_logging
from stocky.core.telemetry import setup_telemetry

logger = logging.getLogger(__name__)


def create_app(settings: AppSettings | None = None) -> FastAPI:
    """Build the application with routes, error envelopes and background sweeping."""

    settings = settings or get_settings()
    setup_logging(logging.DEBUG if settings.is_development else logging.INFO)

    app = FastAPI(title=settings.app_name, version=__version__)
    setup_telemetry(app, settings)

    # CORS must wrap the catch-all middleware
    register_error_handlers(app)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=[
            "Retry-After",
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
        ],
    )
    app.include_router(api_router)

    @app.on_event("startup")
    async def startup() -> None:
        """Start reclaiming expired quota counters."""

        limiter = get_rate_limiter()
        app.state.sweeper = asyncio.create_task(limiter.run_sweeper(settings.rate_limit_sweep_seconds))
        logger.info("Started %s with settings %s", settings.app_name, settings.dict_for_logging())

    @app.on_event("shutdown")
    async def shutdown() -> None:
        sweeper = getattr(app.state, "sweeper", None)
        if sweeper is not None:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper
        await get_polygon_client().aclose()
        await get_coingecko_client().aclose()

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, object]:
        """Return service readiness metadata."""

        return {
            "status": "ok",
            "timestamp": utc_timestamp(),
            "environment": settings.environment,
            "cache": get_response_cache().stats(),
        }

    return app


app = create_app()

__all__ = ["app", "create_app"]
