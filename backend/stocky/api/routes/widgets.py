"""Widget refresh/load scheduling policy, exposed to the browser client."""

from __future__ import annotations

from fastapi import APIRouter, Query

from stocky.core.errors import NotFoundError
from stocky.schemas import Envelope, WidgetScheduleSchema
from stocky.services.widget_schedule import dashboard_schedule, get_schedule_entry

router = APIRouter()


@router.get("/schedule", response_model=Envelope)
async def get_dashboard_schedule(premium: bool = Query(default=False)) -> Envelope:
    entries = [WidgetScheduleSchema(**entry.as_dict()) for entry in dashboard_schedule(premium)]
    return Envelope(data=entries, premium=premium)


@router.get("/{widget_id}/schedule", response_model=Envelope)
async def get_widget_schedule(widget_id: str, premium: bool = Query(default=False)) -> Envelope:
    try:
        entry = get_schedule_entry(widget_id, premium)
    except KeyError as exc:
        raise NotFoundError("Widget") from exc
    return Envelope(data=WidgetScheduleSchema(**entry.as_dict()), premium=premium)
