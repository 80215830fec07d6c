"""Refresh cadence and staged load order for dashboard widgets.

Pure lookups over static configuration. Plan tier is accepted by
:func:`get_refresh_interval` but does not change the result yet; every tier
gets the same cadence.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any


class PriorityClass(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


REFRESH_INTERVALS_MS: dict[str, int] = {
    "TICKER_SNAPSHOT": 10_000,
    "PRICE_CHART": 30_000,
    "TOP_MOVERS": 300_000,
    "MARKET_HEATMAP": 300_000,
    "CRYPTO_HEATMAP": 300_000,
    "PORTFOLIO": 60_000,
    "NEWS": 600_000,
    "MARKET_SENTIMENT": 600_000,
    "SOCIAL_SENTIMENT": 600_000,
    "SECTOR_PERFORMANCE": 600_000,
    "TECHNICAL_INDICATORS": 300_000,
    "ECONOMIC_CALENDAR": 1_800_000,
}

LOAD_PRIORITY: dict[PriorityClass, tuple[str, ...]] = {
    PriorityClass.CRITICAL: ("price-chart", "ticker-snapshot"),
    PriorityClass.HIGH: ("portfolio", "top-movers"),
    PriorityClass.MEDIUM: ("market-heatmap", "crypto-heatmap", "technical-indicators"),
    PriorityClass.LOW: ("news", "market-sentiment", "social-sentiment", "sector-performance", "economic-calendar"),
}

LOAD_DELAYS_MS: dict[PriorityClass, int] = {
    PriorityClass.CRITICAL: 0,
    PriorityClass.HIGH: 200,
    PriorityClass.MEDIUM: 800,
    PriorityClass.LOW: 1600,
}


@dataclass(frozen=True)
class WidgetScheduleEntry:
    widget_id: str
    refresh_interval_ms: int
    load_delay_ms: int
    priority_class: PriorityClass

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["priority_class"] = self.priority_class.value
        return data


def widget_id(widget_type: str) -> str:
    """``PRICE_CHART`` and ``price-chart`` both map to ``price-chart``."""

    return widget_type.strip().lower().replace("_", "-")


def widget_key(widget_type: str) -> str:
    return widget_type.strip().upper().replace("-", "_")


def get_priority_class(widget_type: str) -> PriorityClass:
    wid = widget_id(widget_type)
    for priority, members in LOAD_PRIORITY.items():
        if wid in members:
            return priority
    return PriorityClass.LOW


def get_refresh_interval(widget_type: str, is_premium: bool = False) -> int:
    """Refresh interval in milliseconds for ``widget_type``.

    Raises ``KeyError`` for widgets without a configured interval.
    """

    key = widget_key(widget_type)
    if key not in REFRESH_INTERVALS_MS:
        raise KeyError(widget_type)
    return REFRESH_INTERVALS_MS[key]


def get_load_delay(widget_type: str) -> int:
    """Initial load delay in milliseconds; unknown widgets load last."""

    return LOAD_DELAYS_MS[get_priority_class(widget_type)]


def get_schedule_entry(widget_type: str, is_premium: bool = False) -> WidgetScheduleEntry:
    return WidgetScheduleEntry(
        widget_id=widget_id(widget_type),
        refresh_interval_ms=get_refresh_interval(widget_type, is_premium),
        load_delay_ms=get_load_delay(widget_type),
        priority_class=get_priority_class(widget_type),
    )


def dashboard_schedule(is_premium: bool = False) -> list[WidgetScheduleEntry]:
    """Every configured widget, ordered by load delay then id."""

    entries = [get_schedule_entry(key, is_premium) for key in REFRESH_INTERVALS_MS]
    return sorted(entries, key=lambda entry: (entry.load_delay_ms, entry.widget_id))


__all__ = [
    "LOAD_DELAYS_MS",
    "LOAD_PRIORITY",
    "PriorityClass",
    "REFRESH_INTERVALS_MS",
    "WidgetScheduleEntry",
    "dashboard_schedule",
    "get_load_delay",
    "get_priority_class",
    "get_refresh_interval",
    "get_schedule_entry",
    "widget_id",
]
