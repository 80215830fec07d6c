"""Pydantic schema exports."""

from .market import CryptoPriceSchema, Envelope, NewsSentimentSchema, StockPriceSchema, WidgetScheduleSchema

__all__ = [
    "CryptoPriceSchema",
    "Envelope",
    "NewsSentimentSchema",
    "StockPriceSchema",
    "WidgetScheduleSchema",
]
