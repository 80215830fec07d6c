"""Response schemas for the market-data routes."""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from stocky.core.errors import utc_timestamp


class Envelope(BaseModel):
    """Uniform success envelope; routes may attach extra context fields."""

    model_config = ConfigDict(extra="allow")

    success: bool = True
    data: Any = None
    timestamp: str = Field(default_factory=utc_timestamp)


class StockPriceSchema(BaseModel):
    symbol: str = Field(..., examples=["AAPL"])
    current_price: Optional[float] = None
    currency: str = "usd"
    timestamp: str = Field(default_factory=utc_timestamp)


class CryptoPriceSchema(BaseModel):
    symbol: str = Field(..., examples=["BTC"])
    coin_id: str
    coin_name: Optional[str] = None
    current_price: Optional[float] = None
    currency: str = "usd"
    timestamp: str = Field(default_factory=utc_timestamp)


class NewsSentimentSchema(BaseModel):
    ticker: str
    overall: Literal["positive", "negative", "neutral"]
    positive: int
    negative: int
    neutral: int
    total: int


class WidgetScheduleSchema(BaseModel):
    widget_id: str
    refresh_interval_ms: int
    load_delay_ms: int
    priority_class: Literal["CRITICAL", "HIGH", "MEDIUM", "LOW"]


__all__ = [
    "CryptoPriceSchema",
    "Envelope",
    "NewsSentimentSchema",
    "StockPriceSchema",
    "WidgetScheduleSchema",
]
