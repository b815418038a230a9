import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from googleapiclient.errors import HttpError
from pydantic import BaseModel, Field

from api.dependencies import get_calendar_integration, get_current_user_id, get_repository
from integration.calendar_integration import CalendarIntegration, sync_calendars
from integration.calendar_webhook import forward_to_webhook
from storage.base import Repository
from taskspace.errors import InvalidRequestError, UpstreamError
from taskspace.models import Calendar, CalendarEvent
from taskspace.overlap import detect_overlaps

router = APIRouter(prefix="/calendar")
logger = logging.getLogger(__name__)

DEFAULT_RANGE_DAYS = 7


class EventCreate(BaseModel):
    summary: str = Field(..., min_length=1)
    start: datetime
    end: datetime
    description: Optional[str] = None
    color_id: Optional[int] = Field(None, ge=1, le=11)
    location: Optional[str] = None


class EventMove(BaseModel):
    start: datetime
    end: datetime
    calendar_id: str = "primary"


class WebhookIn(BaseModel):
    title: Optional[str] = None
    date: Optional[str] = None
    description: Optional[str] = None


def _utc_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


async def _google(fn, *args, **kwargs):
    try:
        return await asyncio.to_thread(fn, *args, **kwargs)
    except HttpError as e:
        logger.error(f"Google Calendar API error: {e}")
        raise UpstreamError(
            f"Google Calendar error: {e.reason}", status_code=e.resp.status, details=str(e)
        ) from e


@router.get("/calendars")
async def list_calendars(
    user_id: str = Depends(get_current_user_id),
    repo: Repository = Depends(get_repository),
) -> dict:
    return {"calendars": await repo.list_calendars(user_id)}


@router.post("/calendars/sync")
async def sync(
    user_id: str = Depends(get_current_user_id),
    repo: Repository = Depends(get_repository),
    calendar: CalendarIntegration = Depends(get_calendar_integration),
) -> dict:
    """Pull the Google calendar list into the local calendars table."""
    items = await _google(calendar.list_google_calendars)
    await sync_calendars(repo, user_id, items)
    return {"calendars": await repo.list_calendars(user_id)}


@router.get("/events")
async def list_events(
    time_min: Optional[datetime] = None,
    time_max: Optional[datetime] = None,
    calendar_ids: List[str] = Query(default=[]),
    user_id: str = Depends(get_current_user_id),
    repo: Repository = Depends(get_repository),
    calendar: CalendarIntegration = Depends(get_calendar_integration),
) -> dict:
    """Events of the selected calendars (all synced ones when none are given)."""
    if time_min is None:
        time_min = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    if time_max is None:
        time_max = time_min + timedelta(days=DEFAULT_RANGE_DAYS)
    if time_max <= time_min:
        raise InvalidRequestError("time_max must be after time_min")

    calendars: List[Calendar] = await repo.list_calendars(user_id)
    if calendar_ids:
        wanted = set(calendar_ids)
        calendars = [c for c in calendars if c.id in wanted]

    events: List[CalendarEvent] = await asyncio.to_thread(
        calendar.list_events, calendars, _utc_iso(time_min), _utc_iso(time_max)
    )
    return {"events": events, "overlaps": detect_overlaps(events)}


@router.post("/events", status_code=201)
async def create_event(
    payload: EventCreate,
    calendar: CalendarIntegration = Depends(get_calendar_integration),
) -> CalendarEvent:
    if payload.end <= payload.start:
        raise InvalidRequestError("end must be after start")
    return await _google(
        calendar.create_event,
        payload.summary,
        _utc_iso(payload.start),
        _utc_iso(payload.end),
        description=payload.description,
        color_id=payload.color_id,
        location=payload.location,
    )


@router.patch("/events/{event_id}")
async def move_event(
    event_id: str,
    payload: EventMove,
    calendar: CalendarIntegration = Depends(get_calendar_integration),
) -> CalendarEvent:
    if payload.end <= payload.start:
        raise InvalidRequestError("end must be after start")
    return await _google(
        calendar.update_event,
        event_id,
        _utc_iso(payload.start),
        _utc_iso(payload.end),
        calendar_id=payload.calendar_id,
    )


@router.post("/webhook")
async def send_to_webhook(payload: WebhookIn) -> dict:
    """Forward a task to the calendar automation webhook."""
    return await asyncio.to_thread(
        forward_to_webhook, payload.title, payload.date, payload.description
    )
