import asyncio

import pytest
import requests
from cryptography.fernet import Fernet
from google.oauth2.credentials import Credentials
from googleapiclient.errors import HttpError
from httplib2 import Response

from integration import calendar_webhook
from integration.calendar_integration import CalendarIntegration, normalize_event, sync_calendars
from storage.google_auth import GoogleTokenStore
from taskspace.errors import InvalidRequestError, NotConfiguredError, UnreachableError, UpstreamError
from taskspace.models import Calendar, CalendarEvent
from taskspace.overlap import detect_overlaps


class _Call:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error

    def execute(self):
        if self.error is not None:
            raise self.error
        return self.result


class FakeEvents:
    def __init__(self, by_calendar):
        self.by_calendar = by_calendar
        self.inserted = []
        self.patched = []

    def list(self, calendarId, **kwargs):
        value = self.by_calendar.get(calendarId, {"items": []})
        if isinstance(value, Exception):
            return _Call(error=value)
        return _Call(result=value)

    def insert(self, calendarId, body):
        self.inserted.append((calendarId, body))
        return _Call(result={"id": "new", **body})

    def patch(self, calendarId, eventId, body):
        self.patched.append((calendarId, eventId, body))
        return _Call(result={"id": eventId, "summary": "Moved", **body})


class FakeCalendarList:
    def __init__(self, pages):
        self.pages = pages

    def list(self, minAccessRole, pageToken=None):
        return _Call(result=self.pages[pageToken])


class FakeService:
    def __init__(self, events=None, pages=None):
        self._events = FakeEvents(events or {})
        self._calendar_list = FakeCalendarList(pages or {None: {"items": []}})

    def events(self):
        return self._events

    def calendarList(self):
        return self._calendar_list


def _event(id, start, end):
    return CalendarEvent(id=id, start=start, end=end)


# Events

def test_normalize_event_defaults():
    event = normalize_event({"id": "e1", "start": {"date": "2026-01-14"}, "end": {"date": "2026-01-15"}})
    assert event.summary == "Untitled Event"
    assert (event.start, event.end) == ("2026-01-14", "2026-01-15")


def test_list_events_skips_failing_calendars_and_sorts_by_start():
    failure = HttpError(Response({"status": 403}), b"forbidden")
    service = FakeService(events={
        "work@group": {"items": [{"id": "b", "start": {"dateTime": "2026-01-14T11:00:00Z"},
                                  "end": {"dateTime": "2026-01-14T12:00:00Z"}}]},
        "home@group": {"items": [{"id": "a", "start": {"dateTime": "2026-01-14T09:00:00Z"},
                                  "end": {"dateTime": "2026-01-14T10:00:00Z"}}]},
        "broken@group": failure,
    })
    calendars = [
        Calendar(id="c1", user_id="u1", name="Work", color="#111111", google_calendar_id="work@group"),
        Calendar(id="c2", user_id="u1", name="Home", color="#222222", google_calendar_id="home@group"),
        Calendar(id="c3", user_id="u1", name="Broken", google_calendar_id="broken@group"),
    ]
    events = CalendarIntegration(service=service).list_events(calendars, "t0", "t1")
    assert [e.id for e in events] == ["a", "b"]
    assert events[0].calendar_id == "c2"
    assert events[0].color == "#222222"


def test_list_events_without_calendars_reads_primary():
    service = FakeService(events={"primary": {"items": [{"id": "p", "start": {}, "end": {}}]}})
    events = CalendarIntegration(service=service).list_events([], "t0", "t1")
    assert [e.calendar_id for e in events] == ["primary"]


def test_create_event_uses_primary_calendar_and_utc():
    service = FakeService()
    event = CalendarIntegration(service=service).create_event(
        "Dentist", "2026-01-14T09:00:00Z", "2026-01-14T10:00:00Z", color_id=11
    )
    calendar_id, body = service.events().inserted[0]
    assert calendar_id == "primary"
    assert body["start"] == {"dateTime": "2026-01-14T09:00:00Z", "timeZone": "UTC"}
    assert body["colorId"] == "11"
    assert "location" not in body
    assert event.id == "new"


def test_update_event_patches_times():
    service = FakeService()
    event = CalendarIntegration(service=service).update_event("e1", "2026-01-15T09:00:00Z", "2026-01-15T10:00:00Z")
    assert service.events().patched[0][1] == "e1"
    assert event.start == "2026-01-15T09:00:00Z"


def test_sync_calendars_upserts_by_google_id(repo):
    pages = {
        None: {"items": [{"id": "primary@x", "summary": "Me", "primary": True, "backgroundColor": "#abcdef"}],
               "nextPageToken": "p2"},
        "p2": {"items": [{"id": "team@x", "summary": "Team", "colorId": "11"}, {"summary": "No id"}]},
    }
    integration = CalendarIntegration(service=FakeService(pages=pages))

    async def scenario():
        items = integration.list_google_calendars()
        await sync_calendars(repo, "u1", items)
        await sync_calendars(repo, "u1", items)
        return await repo.list_calendars("u1")

    calendars = asyncio.run(scenario())
    assert [(c.name, c.color, c.is_primary) for c in calendars] == [
        ("Me", "#abcdef", True),
        ("Team", "#dc2127", False),
    ]


# Overlaps

def test_overlapping_events_are_grouped():
    events = [
        _event("a", "2026-01-14T09:00:00Z", "2026-01-14T10:00:00Z"),
        _event("b", "2026-01-14T09:30:00Z", "2026-01-14T11:00:00Z"),
        _event("c", "2026-01-14T10:30:00Z", "2026-01-14T10:45:00Z"),
        _event("d", "2026-01-14T11:00:00Z", "2026-01-14T12:00:00Z"),
    ]
    groups = detect_overlaps(events)
    assert len(groups) == 1
    assert groups[0].event_ids == ["a", "b", "c"]
    assert groups[0].end == "2026-01-14T11:00:00Z"


def test_touching_events_do_not_overlap():
    events = [
        _event("a", "2026-01-14T09:00:00Z", "2026-01-14T10:00:00Z"),
        _event("b", "2026-01-14T10:00:00Z", "2026-01-14T11:00:00Z"),
    ]
    assert detect_overlaps(events) == []


# Tokens

def test_tokens_are_encrypted_at_rest(repo):
    store = GoogleTokenStore(repo, key=Fernet.generate_key().decode())
    creds = Credentials(token="access-1", refresh_token="refresh-1")

    async def scenario():
        await store.save_credentials("u1", creds, "me@example.com")
        raw = await repo.get_google_tokens("u1")
        loaded = await store.get_credentials("u1")
        # Re-consent without a refresh token keeps the stored one
        await store.save_credentials("u1", Credentials(token="access-2"))
        reloaded = await store.get_credentials("u1")
        return raw, loaded, reloaded

    raw, loaded, reloaded = asyncio.run(scenario())
    assert raw["access_token"] != "access-1"
    assert loaded.token == "access-1"
    assert loaded.refresh_token == "refresh-1"
    assert reloaded.token == "access-2"
    assert reloaded.refresh_token == "refresh-1"
    assert asyncio.run(store.get_email("u1")) == "me@example.com"


def test_tokens_written_with_another_key_are_unreadable(repo):
    writer = GoogleTokenStore(repo, key=Fernet.generate_key().decode())
    reader = GoogleTokenStore(repo, key=Fernet.generate_key().decode())
    asyncio.run(writer.save_credentials("u1", Credentials(token="secret")))
    assert asyncio.run(reader.get_credentials("u1")) is None


def test_disconnect_deletes_tokens(repo):
    store = GoogleTokenStore(repo, key=Fernet.generate_key().decode())
    asyncio.run(store.save_credentials("u1", Credentials(token="t")))
    asyncio.run(store.delete_credentials("u1"))
    assert asyncio.run(store.is_connected("u1")) is False


# Webhook

class _FakeResponse:
    def __init__(self, status_code, text="", reason="OK"):
        self.status_code = status_code
        self.text = text
        self.reason = reason

    @property
    def ok(self):
        return self.status_code < 400


def test_webhook_forwards_with_secret_header(monkeypatch):
    sent = {}

    def fake_post(url, json, headers, timeout):
        sent.update(url=url, json=json, headers=headers)
        return _FakeResponse(200)

    monkeypatch.setattr(calendar_webhook.requests, "post", fake_post)
    out = calendar_webhook.forward_to_webhook("Dentist", "2026-01-14", url="https://hook.test", secret="s3cret")
    assert out == {"success": True}
    assert sent["headers"] == {"X-Webhook-Secret": "s3cret"}
    assert sent["json"] == {"title": "Dentist", "date": "2026-01-14", "description": ""}


def test_webhook_requires_title_date_and_configuration():
    with pytest.raises(NotConfiguredError):
        calendar_webhook.forward_to_webhook("x", "y", url="https://hook.test", secret="")
    with pytest.raises(InvalidRequestError):
        calendar_webhook.forward_to_webhook("", "2026-01-14", url="https://hook.test", secret="s")
    with pytest.raises(InvalidRequestError):
        calendar_webhook.forward_to_webhook("x", None, url="https://hook.test", secret="s")


def test_webhook_upstream_error_passes_status_through(monkeypatch):
    monkeypatch.setattr(
        calendar_webhook.requests, "post",
        lambda *a, **kw: _FakeResponse(403, text="denied", reason="Forbidden"),
    )
    with pytest.raises(UpstreamError) as exc:
        calendar_webhook.forward_to_webhook("x", "y", url="https://hook.test", secret="s")
    assert exc.value.status_code == 403
    assert exc.value.details == "denied"


def test_webhook_connection_failure_is_502(monkeypatch):
    def boom(*a, **kw):
        raise requests.ConnectionError("down")

    monkeypatch.setattr(calendar_webhook.requests, "post", boom)
    with pytest.raises(UnreachableError) as exc:
        calendar_webhook.forward_to_webhook("x", "y", url="https://hook.test", secret="s")
    assert exc.value.status_code == 502
