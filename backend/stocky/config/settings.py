"""Application configuration and environment helpers."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

POLYGON_BASE_URL = "https://api.polygon.io"
COINGECKO_BASE_URL = "https://api.coingecko.com/api/v3"
COINGECKO_PRO_BASE_URL = "https://pro-api.coingecko.com/api/v3"


class AppSettings(BaseSettings):
    """Configuration options for the Stocky dashboard service."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = Field(default="Stocky Dashboard API")
    environment: Literal["development", "production", "test"] = Field(default="production")

    polygon_api_key: str = Field(default="demo")
    polygon_base_url: str = Field(default=POLYGON_BASE_URL)
    polygon_timeout_seconds: float = Field(default=10.0, gt=0)
    polygon_max_attempts: int = Field(default=4, ge=1)

    coingecko_api_key: str | None = Field(default=None)
    coingecko_use_pro: bool = Field(
        default=False,
        description="Use the Pro base URL and x-cg-pro-api-key header instead of the demo tier.",
    )
    coingecko_base_url: str | None = Field(default=None)
    coingecko_timeout_seconds: float = Field(default=10.0, gt=0)
    coingecko_max_attempts: int = Field(default=4, ge=1)

    retry_backoff_seconds: float = Field(default=1.0, ge=0)
    retry_max_backoff_seconds: float = Field(default=30.0, ge=0)

    outbound_requests_per_window: int = Field(default=30, ge=1)
    outbound_window_seconds: float = Field(default=10.0, gt=0)
    outbound_max_concurrency: int = Field(default=6, ge=1)

    api_rate_limit: int = Field(default=100, ge=1)
    api_rate_limit_window_seconds: float = Field(default=60.0, gt=0)
    rate_limit_sweep_seconds: float = Field(default=60.0, gt=0)

    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    telemetry_enabled: bool = Field(default=False)
    telemetry_service_name: str = Field(default="stocky-api")
    telemetry_otlp_endpoint: str | None = Field(default=None)
    telemetry_otlp_insecure: bool = Field(default=True)
    telemetry_sample_ratio: float = Field(default=1.0, ge=0.0, le=1.0)

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def coingecko_url(self) -> str:
        if self.coingecko_base_url:
            return self.coingecko_base_url
        return COINGECKO_PRO_BASE_URL if self.coingecko_use_pro else COINGECKO_BASE_URL

    def dict_for_logging(self) -> dict[str, Any]:
        """Return a sanitized dict for logging purposes."""

        hidden = {"polygon_api_key", "coingecko_api_key"}
        return {k: ("***" if k in hidden and v else v) for k, v in self.model_dump().items()}


@lru_cache(maxsize=1)
def get_settings(**overrides: Any) -> AppSettings:
    """Return cached application settings with optional overrides."""

    if overrides:
        return AppSettings(**overrides)
    return AppSettings()


__all__ = [
    "AppSettings",
    "COINGECKO_BASE_URL",
    "COINGECKO_PRO_BASE_URL",
    "POLYGON_BASE_URL",
    "get_settings",
]
