import asyncio
import base64

from api import dependencies
from api.routers import changes
from integration.calendar_integration import CalendarIntegration
from llm.llm_client import LLMClient
from llm.providers.mock_provider import MockProvider
from sync.change_feed import ChangeEvent, ChangeFeed

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


def _main_workspace(client, headers=None):
    return client.get("/workspaces", headers=headers).json()["workspaces"][0]


def test_health_reports_backend(client):
    r = client.get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "healthy"
    assert body["database"]["status"] == "healthy"


def test_metrics_endpoint_exposes_prometheus_text(client):
    client.get("/health")
    r = client.get("/metrics")
    assert r.status_code == 200
    assert "text/plain" in r.headers.get("content-type", "")
    body = r.text
    assert "taskspace_request_latency_seconds" in body
    assert "taskspace_realtime_subscribers" in body
    assert any(
        line.startswith('taskspace_requests_total{endpoint="/health",method="GET",status="200"}')
        for line in body.splitlines()
    )


def test_first_workspace_listing_creates_main(client):
    workspaces = client.get("/workspaces").json()["workspaces"]
    assert [w["name"] for w in workspaces] == ["Main"]


def test_users_are_isolated_by_header(client):
    mine = _main_workspace(client, {"X-User-Id": "alice"})
    r = client.get("/tasks", params={"workspace_id": mine["id"]}, headers={"X-User-Id": "bob"})
    assert r.status_code == 404
    assert "not found" in r.json()["detail"]


def test_task_lifecycle_with_move_and_undo(client):
    main = _main_workspace(client)
    work = client.post("/workspaces", json={"name": "Work"}).json()

    created = client.post("/tasks", json={"title": "  Write report "})
    assert created.status_code == 201
    task = created.json()
    assert task["title"] == "Write report"
    assert task["workspace_id"] == main["id"]

    sub = client.post("/tasks", json={"title": "Outline", "parent_task_id": task["id"]}).json()
    tree = client.get("/tasks").json()
    assert tree["workspace_id"] == main["id"]
    assert [s["id"] for s in tree["tasks"][0]["subtasks"]] == [sub["id"]]

    moved = client.post(f"/tasks/{task['id']}/move", json={"workspace_id": work["id"]}).json()
    assert moved["task"]["workspace_id"] == work["id"]
    assert moved["undo"]["message"] == 'Moved "Write report" to Work'
    assert client.get("/tasks", params={"workspace_id": main["id"]}).json()["tasks"] == []

    undone = client.post(f"/undo/{moved['undo']['undo_id']}")
    assert undone.status_code == 200
    assert client.get(f"/tasks/{sub['id']}").json()["workspace_id"] == main["id"]

    again = client.post(f"/undo/{moved['undo']['undo_id']}")
    assert again.status_code == 404


def test_delete_and_undo_over_http(client):
    _main_workspace(client)
    task = client.post("/tasks", json={"title": "Temporary"}).json()

    deleted = client.delete(f"/tasks/{task['id']}").json()
    assert deleted["deleted"] == task["id"]
    assert client.get(f"/tasks/{task['id']}").status_code == 404

    restored = client.post(f"/undo/{deleted['undo']['undo_id']}").json()
    assert restored["task"]["id"] == task["id"]
    assert client.get(f"/tasks/{task['id']}").status_code == 200


def test_changing_workspace_through_update_is_rejected(client):
    _main_workspace(client)
    work = client.post("/workspaces", json={"name": "Work"}).json()
    task = client.post("/tasks", json={"title": "Stay"}).json()
    r = client.patch(f"/tasks/{task['id']}", json={"workspace_id": work["id"]})
    assert r.status_code == 400


def test_toggle_and_filters(client):
    _main_workspace(client)
    a = client.post("/tasks", json={"title": "Alpha"}).json()
    client.post("/tasks", json={"title": "Beta"})
    client.post(f"/tasks/{a['id']}/toggle")

    active = client.get("/tasks", params={"status": "active"}).json()["tasks"]
    done = client.get("/tasks", params={"status": "completed"}).json()["tasks"]
    found = client.get("/tasks", params={"search": "alp"}).json()["tasks"]
    assert [t["title"] for t in active] == ["Beta"]
    assert [t["title"] for t in done] == ["Alpha"]
    assert [t["title"] for t in found] == ["Alpha"]


def test_last_workspace_cannot_be_deleted(client):
    main = _main_workspace(client)
    r = client.delete(f"/workspaces/{main['id']}")
    assert r.status_code == 409
    assert r.json()["detail"] == "Cannot delete the last workspace"


def test_delete_workspace_returns_fallback(client):
    main = _main_workspace(client)
    work = client.post("/workspaces", json={"name": "Work"}).json()
    r = client.delete(f"/workspaces/{work['id']}")
    assert r.json()["fallback_workspace_id"] == main["id"]


def test_tags_over_http(client):
    _main_workspace(client)
    task = client.post("/tasks", json={"title": "Tagged"}).json()
    tag = client.post("/tags", json={"name": "home", "color": "#51b749"}).json()
    assert client.post("/tags", json={"name": "HOME"}).status_code == 400

    client.post(f"/tasks/{task['id']}/tags/{tag['id']}")
    assert [t["name"] for t in client.get(f"/tasks/{task['id']}/tags").json()["tags"]] == ["home"]

    filtered = client.get("/tasks", params={"tag_ids": [tag["id"]]}).json()["tasks"]
    assert [t["id"] for t in filtered] == [task["id"]]


def test_image_upload_and_download(client):
    _main_workspace(client)
    task = client.post("/tasks", json={"title": "Photo"}).json()

    r = client.post(f"/tasks/{task['id']}/images", files={"file": ("shot.png", PNG, "image/png")})
    assert r.status_code == 201
    image = r.json()
    assert image["url"].startswith("/files/default/")

    download = client.get(image["url"])
    assert download.status_code == 200
    assert download.content == PNG

    other = client.get(image["url"], headers={"X-User-Id": "mallory"})
    assert other.status_code == 404

    bad = client.post(f"/tasks/{task['id']}/images", files={"file": ("doc.pdf", b"%PDF", "application/pdf")})
    assert bad.status_code == 400


def test_links_of_temp_tasks_are_empty(client):
    assert client.get("/tasks/temp-123/links").json() == {"links": []}


def test_ai_endpoints_with_mock_provider(client, app_state):
    app_state.llm_client = LLMClient(provider=MockProvider())
    client.post("/tags", json={"name": "work"})

    parsed = client.post("/ai/parse-task", json={"input": "prepare meeting notes"}).json()
    assert parsed["title"] == "Prepare meeting notes"
    assert parsed["tags"] == ["work"]
    assert len(parsed["tag_ids"]) == 1

    suggestions = client.post("/ai/generate-subtasks", json={"taskTitle": "Move house"}).json()
    assert len(suggestions["suggestions"]) == 4

    image = base64.b64encode(PNG).decode()
    photo = client.post("/ai/analyze-photo", json={"imageBase64": image, "imageMimeType": "image/png"}).json()
    assert photo["tasks"][0]["subtasks"][0]["title"] == "Milk"


def test_ai_validation_errors(client, app_state):
    app_state.llm_client = LLMClient(provider=MockProvider())
    assert client.post("/ai/parse-task", json={"input": ""}).status_code == 400
    assert client.post("/ai/generate-subtasks", json={"taskTitle": ""}).status_code == 400
    assert client.post("/ai/analyze-photo", json={}).status_code == 400


def test_ai_subtasks_are_saved_under_parent(client):
    _main_workspace(client)
    parent = client.post("/tasks", json={"title": "Party"}).json()
    r = client.post(f"/tasks/{parent['id']}/subtasks/ai", json={"suggestions": ["Invite", "Cake"]})
    assert r.status_code == 201
    assert [t["parent_task_id"] for t in r.json()["subtasks"]] == [parent["id"], parent["id"]]


def test_calendar_requires_connection(client):
    r = client.get("/calendar/events")
    assert r.status_code == 401
    assert r.json()["detail"] == "Google Calendar not connected"


def test_calendar_status_when_disconnected(client):
    assert client.get("/calendar/auth/status").json() == {"connected": False, "email": None}


def test_oauth_callback_with_state_mismatch_redirects_with_error(client):
    client.cookies.set("oauth_state", "different")
    r = client.get(
        "/calendar/auth/callback",
        params={"code": "abc", "state": "nonce:default"},
        follow_redirects=False,
    )
    assert r.status_code == 307
    assert r.headers["location"].endswith("?calendar_error=invalid_state")


def test_oauth_callback_with_provider_error_redirects(client):
    r = client.get("/calendar/auth/callback", params={"error": "access_denied"}, follow_redirects=False)
    assert r.headers["location"].endswith("?calendar_error=access_denied")


class _EventsOnly:
    def __init__(self, items):
        self.items = items

    def events(self):
        return self

    def list(self, **kwargs):
        return self

    def execute(self):
        return {"items": self.items}


def test_calendar_events_include_overlaps(client):
    from api.main import app

    items = [
        {"id": "a", "start": {"dateTime": "2026-01-14T09:00:00Z"}, "end": {"dateTime": "2026-01-14T10:00:00Z"}},
        {"id": "b", "start": {"dateTime": "2026-01-14T09:30:00Z"}, "end": {"dateTime": "2026-01-14T10:30:00Z"}},
    ]
    app.dependency_overrides[dependencies.get_calendar_integration] = lambda: CalendarIntegration(
        service=_EventsOnly(items)
    )
    r = client.get(
        "/calendar/events",
        params={"time_min": "2026-01-14T00:00:00Z", "time_max": "2026-01-15T00:00:00Z"},
    )
    assert r.status_code == 200
    body = r.json()
    assert [e["id"] for e in body["events"]] == ["a", "b"]
    assert body["overlaps"][0]["event_ids"] == ["a", "b"]


def test_webhook_without_configuration_is_500(client, monkeypatch):
    from integration import calendar_webhook

    monkeypatch.setattr(calendar_webhook, "WEBHOOK_SECRET", "")
    r = client.post("/calendar/webhook", json={"title": "x", "date": "2026-01-14"})
    assert r.status_code == 500


def test_change_stream_frames():
    feed = ChangeFeed()
    sub = feed.subscribe("u1", {"tasks"})

    async def scenario():
        stream = changes.event_stream(feed, sub, heartbeat_s=0.01)
        ready = await stream.__anext__()
        heartbeat = await stream.__anext__()
        feed.publish(ChangeEvent("tasks", "INSERT", "u1", new={"id": "t1", "workspace_id": "w1"}))
        change = await stream.__anext__()
        await stream.aclose()
        return ready, heartbeat, change

    ready, heartbeat, change = asyncio.run(scenario())
    assert ready.startswith("event: ready\n")
    assert heartbeat == "event: heartbeat\ndata: {}\n\n"
    assert change.startswith("event: change\n")
    assert '"record_id"' not in change
    assert '"t1"' in change
    assert feed.subscriber_count == 0
