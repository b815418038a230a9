import asyncio

import httpx
import pytest

from client.api_client import TaskspaceClient, error_from_response
from client.task_view import TaskView
from sync.change_feed import ChangeEvent
from sync.reconcile import ReconcileAction
from taskspace.errors import (
    InvalidRequestError,
    NotFoundError,
    TaskspaceError,
    UndoExpiredError,
    UpstreamError,
)
from taskspace.models import Task, TaskNode


def _asgi_client(user_id="u1"):
    from api.main import app

    http = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")
    return TaskspaceClient(base_url="http://test", user_id=user_id, client=http)


def test_error_mapping_by_status():
    def resp(status, body):
        return httpx.Response(status, json=body)

    assert isinstance(error_from_response(resp(400, {"detail": "bad"})), InvalidRequestError)
    assert isinstance(error_from_response(resp(404, {"detail": "gone"})), NotFoundError)
    assert isinstance(error_from_response(resp(410, {"detail": "late"})), UndoExpiredError)
    upstream = error_from_response(resp(503, {"detail": "down", "details": "trace"}))
    assert isinstance(upstream, UpstreamError)
    assert (upstream.status_code, upstream.details) == (503, "trace")
    conflict = error_from_response(resp(409, {"detail": "Cannot delete the last workspace"}))
    assert conflict.status_code == 409
    assert conflict.message == "Cannot delete the last workspace"


def test_client_round_trip_against_app(app_state):
    async def scenario():
        async with _asgi_client() as api:
            workspaces = await api.list_workspaces()
            work = await api.create_workspace("Work", color="#5484ed")
            task = await api.create_task("Draft", workspace_id=work.id)
            tree = await api.list_tasks(work.id)
            moved = await api.move_task(task.id, workspaces[0].id)
            restored = await api.undo(moved["undo"]["undo_id"])
            with pytest.raises(NotFoundError):
                await api.update_task("missing", title="x")
            with pytest.raises(TaskspaceError) as exc:
                await api.delete_workspace(workspaces[0].id)
                await api.delete_workspace(work.id)
            return task, tree, moved, restored, exc.value

    task, tree, moved, restored, error = asyncio.run(scenario())
    assert task.color_id == 9
    assert [n.id for n in tree] == [task.id]
    assert moved["undo"]["message"] == 'Moved "Draft" to Main'
    assert restored["workspace_id"] == task.workspace_id
    assert error.status_code == 409


class FakeApi:
    """Stands in for TaskspaceClient inside TaskView tests."""

    def __init__(self, tasks=None, fail=False):
        self.tasks = {t.id: t for t in tasks or []}
        self.fail = fail
        self.calls = []

    def _check(self):
        if self.fail:
            raise UpstreamError("boom", status_code=503)

    async def list_tasks(self, workspace_id=None, **filters):
        self.calls.append("list")
        nodes = [TaskNode(**t.model_dump()) for t in self.tasks.values() if t.workspace_id == workspace_id]
        return nodes

    async def create_task(self, title, **fields):
        self._check()
        task = Task(id=f"real-{len(self.tasks)}", user_id="u1", title=title, workspace_id=fields.get("workspace_id"))
        self.tasks[task.id] = task
        return task

    async def update_task(self, task_id, **fields):
        self._check()
        self.tasks[task_id] = self.tasks[task_id].model_copy(update=fields)
        return self.tasks[task_id]

    async def delete_task(self, task_id):
        self._check()
        self.tasks.pop(task_id, None)
        return {"undo_id": "u-del", "message": "Deleted", "expires_at": "later"}

    async def move_task(self, task_id, workspace_id):
        self._check()
        self.tasks[task_id] = self.tasks[task_id].model_copy(update={"workspace_id": workspace_id})
        return {"task": self.tasks[task_id], "undo": {"undo_id": "u-move"}}

    async def undo(self, undo_id):
        self.calls.append(f"undo:{undo_id}")
        return None


def _t(id, parent=None, ws="w1", title=None):
    return Task(id=id, user_id="u1", workspace_id=ws, parent_task_id=parent, title=title or id)


def test_view_create_replaces_temp_id():
    view = TaskView(FakeApi(), "w1")
    created = asyncio.run(view.create("Buy milk"))
    assert [t.id for t in view.tasks] == [created.id]
    assert created.workspace_id == "w1"
    assert view.pending.is_pending(created.id)


def test_view_create_failure_removes_optimistic_task():
    view = TaskView(FakeApi(fail=True), "w1")
    with pytest.raises(UpstreamError):
        asyncio.run(view.create("Buy milk"))
    assert view.tasks == []
    assert len(view.pending) == 0


def test_view_update_rolls_back_on_failure():
    api = FakeApi([_t("a", title="Old")])
    view = TaskView(api, "w1")
    asyncio.run(view.load())
    api.fail = True
    with pytest.raises(UpstreamError):
        asyncio.run(view.update("a", title="New"))
    assert view.get("a").title == "Old"


def test_view_update_with_other_workspace_moves_out():
    api = FakeApi([_t("a")])
    view = TaskView(api, "w1")
    asyncio.run(view.load())
    assert asyncio.run(view.update("a", workspace_id="w2")) is None
    assert view.tasks == []
    assert api.tasks["a"].workspace_id == "w2"
    assert view.last_undo == {"undo_id": "u-move"}


def test_view_delete_removes_children_and_restores_on_failure():
    api = FakeApi([_t("p"), _t("c", parent="p"), _t("other")])
    view = TaskView(api, "w1")
    asyncio.run(view.load())

    api.fail = True
    with pytest.raises(UpstreamError):
        asyncio.run(view.delete("p"))
    assert {t.id for t in view.tasks} == {"p", "c", "other"}

    api.fail = False
    undo = asyncio.run(view.delete("p"))
    assert undo["undo_id"] == "u-del"
    assert [t.id for t in view.tasks] == ["other"]


def test_view_undo_refetches():
    api = FakeApi([_t("a")])
    view = TaskView(api, "w1")
    asyncio.run(view.delete("a"))
    asyncio.run(view.undo())
    assert api.calls[-2:] == ["undo:u-del", "list"]
    assert view.last_undo is None


def test_view_ignores_echoes_of_its_own_writes():
    api = FakeApi([_t("a")])
    view = TaskView(api, "w1")
    asyncio.run(view.load())
    asyncio.run(view.update("a", title="Renamed"))
    echo = ChangeEvent("tasks", "UPDATE", "u1", new={"id": "a", "workspace_id": "w1"}, old={"id": "a", "workspace_id": "w1"})
    assert asyncio.run(view.apply_event(echo)) is ReconcileAction.IGNORE


def test_view_reconciles_remote_changes():
    api = FakeApi([_t("a"), _t("a1", parent="a")])
    view = TaskView(api, "w1")
    asyncio.run(view.load())

    moved_away = ChangeEvent("tasks", "UPDATE", "u1", new={"id": "a", "workspace_id": "w2"}, old={"id": "a", "workspace_id": "w1"})
    assert asyncio.run(view.apply_event(moved_away)) is ReconcileAction.REMOVE
    assert view.tasks == []

    api.tasks["b"] = _t("b")
    arrived = ChangeEvent("tasks", "INSERT", "u1", new={"id": "b", "workspace_id": "w1"})
    assert asyncio.run(view.apply_event(arrived)) is ReconcileAction.REFETCH
    assert "b" in {t.id for t in view.tasks}

    tag_change = ChangeEvent("tags", "INSERT", "u1", new={"id": "g"})
    assert asyncio.run(view.apply_event(tag_change)) is ReconcileAction.IGNORE
