"""Helpers for turning Polygon aggregate bars into OHLCV frames and summaries."""

from __future__ import annotations

import math
from typing import Any

import pandas as pd

TRADING_DAYS_PER_YEAR = 252

_BAR_COLUMNS = {"t": "Date", "o": "Open", "h": "High", "l": "Low", "c": "Close", "v": "Volume"}


def bars_to_frame(payload: dict[str, Any]) -> pd.DataFrame:
    """Parse the ``results`` bars of an aggregates payload into a DataFrame."""

    bars = payload.get("results") or []
    rows: list[dict[str, Any]] = []
    for bar in bars:
        if not isinstance(bar, dict):
            continue
        if any(bar.get(key) is None for key in _BAR_COLUMNS):
            continue
        rows.append({column: bar[key] for key, column in _BAR_COLUMNS.items()})
    if not rows:
        return pd.DataFrame(columns=list(_BAR_COLUMNS.values())[1:])
    df = pd.DataFrame(rows)
    df["Date"] = pd.to_datetime(df["Date"], unit="ms", utc=True)
    df = df.set_index("Date").sort_index()
    return df.astype(float)


def price_range(df: pd.DataFrame) -> dict[str, float | None]:
    if df.empty:
        return {"high": None, "low": None, "current": None}
    return {
        "high": float(df["High"].max()),
        "low": float(df["Low"].min()),
        "current": float(df["Close"].iloc[-1]),
    }


def moving_average(df: pd.DataFrame, window: int = 20) -> list[float]:
    """Simple moving average of closes; empty when there are too few bars."""

    if len(df) < window:
        return []
    return df["Close"].rolling(window).mean().dropna().round(6).tolist()


def volatility(df: pd.DataFrame) -> dict[str, float | None]:
    # Population std of simple daily returns, annualised
    if len(df) < 2:
        return {"volatility": None, "averageVolume": None}
    returns = df["Close"].pct_change().dropna()
    annualised = float(returns.std(ddof=0)) * math.sqrt(TRADING_DAYS_PER_YEAR)
    return {"volatility": annualised, "averageVolume": float(df["Volume"].mean())}


def summarize_bars(payload: dict[str, Any], window: int = 20) -> dict[str, Any]:
    df = bars_to_frame(payload)
    return {
        "bars": len(df),
        "range": price_range(df),
        "movingAverage": {"window": window, "values": moving_average(df, window)},
        **volatility(df),
    }


__all__ = ["bars_to_frame", "moving_average", "price_range", "summarize_bars", "volatility"]
