import logging
from typing import Iterable, List, Optional

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from storage.base import Repository
from taskspace.colors import DEFAULT_CALENDAR_COLOR, hex_from_color_id
from taskspace.models import Calendar, CalendarEvent

logger = logging.getLogger(__name__)

MAX_EVENTS_PER_CALENDAR = 2500


def calendar_color(item: dict) -> str:
    return item.get("backgroundColor") or hex_from_color_id(item.get("colorId")) or DEFAULT_CALENDAR_COLOR


def normalize_event(item: dict, calendar_id: Optional[str] = None, color: Optional[str] = None) -> CalendarEvent:
    start = item.get("start") or {}
    end = item.get("end") or {}
    return CalendarEvent(
        id=item["id"],
        summary=item.get("summary") or "Untitled Event",
        description=item.get("description"),
        start=start.get("dateTime") or start.get("date") or "",
        end=end.get("dateTime") or end.get("date") or "",
        color_id=item.get("colorId"),
        location=item.get("location"),
        calendar_id=calendar_id,
        color=color,
    )


class CalendarIntegration:
    """Blocking Google Calendar v3 calls; run them off the event loop."""

    def __init__(self, credentials=None, service=None):
        self.credentials = credentials
        self._service = service

    @property
    def service(self):
        if self._service is None:
            self._service = build(
                "calendar",
                "v3",
                credentials=self.credentials,
                cache_discovery=False,
            )
        return self._service

    def list_google_calendars(self) -> List[dict]:
        items: List[dict] = []
        page_token = None
        while True:
            resp = self.service.calendarList().list(minAccessRole="reader", pageToken=page_token).execute()
            items.extend(resp.get("items", []))
            page_token = resp.get("nextPageToken")
            if not page_token:
                return items

    def list_events(
        self,
        calendars: Iterable[Calendar],
        time_min: str,
        time_max: str,
    ) -> List[CalendarEvent]:
        """Events of every calendar in the range, sorted by start.

        A calendar that fails is logged and skipped. Without any Google-backed
        calendar the user's primary calendar is read.
        """
        targets = [(c.id, c.google_calendar_id, c.color, c.name) for c in calendars if c.google_calendar_id]
        if not targets:
            targets = [("primary", "primary", DEFAULT_CALENDAR_COLOR, "Primary")]

        events: List[CalendarEvent] = []
        for cal_id, google_id, color, name in targets:
            try:
                resp = self.service.events().list(
                    calendarId=google_id,
                    timeMin=time_min,
                    timeMax=time_max,
                    maxResults=MAX_EVENTS_PER_CALENDAR,
                    singleEvents=True,
                    orderBy="startTime",
                ).execute()
            except HttpError as e:
                logger.error(f"Error fetching events from calendar {name}: {e}")
                continue
            for item in resp.get("items", []):
                if item.get("id"):
                    events.append(normalize_event(item, calendar_id=cal_id, color=color))

        events.sort(key=lambda ev: ev.start)
        return events

    def create_event(
        self,
        summary: str,
        start: str,
        end: str,
        description: Optional[str] = None,
        color_id: Optional[int] = None,
        location: Optional[str] = None,
    ) -> CalendarEvent:
        body = {
            "summary": summary,
            "description": description or "",
            "start": {"dateTime": start, "timeZone": "UTC"},
            "end": {"dateTime": end, "timeZone": "UTC"},
        }
        if color_id:
            body["colorId"] = str(color_id)
        if location:
            body["location"] = location

        created = self.service.events().insert(calendarId="primary", body=body).execute()
        logger.info(f"Created calendar event {created.get('id')}")
        return normalize_event(created)

    def update_event(self, event_id: str, start: str, end: str, calendar_id: str = "primary") -> CalendarEvent:
        body = {
            "start": {"dateTime": start, "timeZone": "UTC"},
            "end": {"dateTime": end, "timeZone": "UTC"},
        }
        updated = self.service.events().patch(calendarId=calendar_id, eventId=event_id, body=body).execute()
        logger.info(f"Moved calendar event {event_id}")
        return normalize_event(updated)


async def sync_calendars(repo: Repository, user_id: str, google_calendars: List[dict]) -> List[Calendar]:
    """Upsert the user's Google calendar list into the calendars table."""
    synced = []
    for item in google_calendars:
        if not item.get("id"):
            continue
        synced.append(
            await repo.upsert_calendar(
                user_id,
                google_calendar_id=item["id"],
                name=item.get("summary") or "Untitled Calendar",
                color=calendar_color(item),
                is_primary=item.get("primary") is True,
            )
        )
    logger.info(f"Synced {len(synced)} calendars for user {user_id}")
    return synced
