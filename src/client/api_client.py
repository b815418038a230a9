"""Async HTTP client for the Taskspace API."""

import json
import logging
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional

import httpx

from sync.change_feed import ChangeEvent
from taskspace.errors import (
    InvalidRequestError,
    NotConnectedError,
    NotFoundError,
    TaskspaceError,
    UndoExpiredError,
    UpstreamError,
)
from taskspace.models import Task, TaskNode, Workspace

logger = logging.getLogger(__name__)


def error_from_response(response: httpx.Response) -> TaskspaceError:
    """Map an error response back onto the TaskspaceError hierarchy."""
    try:
        body = response.json()
    except ValueError:
        body = {}
    message = body.get("detail") if isinstance(body, dict) else None
    if not isinstance(message, str):
        message = response.reason_phrase or f"HTTP {response.status_code}"

    status = response.status_code
    if status == 400 or status == 422:
        return InvalidRequestError(message, status_code=status)
    if status == 401:
        return NotConnectedError(message)
    if status == 404:
        return NotFoundError(message)
    if status == 410:
        return UndoExpiredError(message)
    if status >= 502:
        return UpstreamError(message, status_code=status, details=body.get("details") if isinstance(body, dict) else None)
    return TaskspaceError(message, status_code=status)


class TaskspaceClient:
    """Python client for the Taskspace HTTP API"""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        user_id: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout_s: float = 30.0,
    ):
        """
        Initialize the client.

        Args:
            base_url: Base URL of the API (default: http://localhost:8000)
            user_id: Sent as X-User-Id; the server default user when omitted
            client: Pre-built httpx.AsyncClient (e.g. over an ASGI transport)
        """
        self.base_url = base_url.rstrip("/")
        self.headers = {"X-User-Id": user_id} if user_id else {}
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout_s)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "TaskspaceClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        response = await self._client.request(method, path, headers=self.headers, **kwargs)
        if response.is_error:
            raise error_from_response(response)
        return response.json()

    # Workspaces

    async def list_workspaces(self) -> List[Workspace]:
        data = await self._request("GET", "/workspaces")
        return [Workspace.model_validate(w) for w in data["workspaces"]]

    async def create_workspace(self, name: str, icon: Optional[str] = None, color: Optional[str] = None) -> Workspace:
        payload: Dict[str, Any] = {"name": name}
        if icon:
            payload["icon"] = icon
        if color:
            payload["color"] = color
        return Workspace.model_validate(await self._request("POST", "/workspaces", json=payload))

    async def delete_workspace(self, workspace_id: str) -> Optional[str]:
        """Delete a workspace. Returns the workspace its tasks were moved to."""
        data = await self._request("DELETE", f"/workspaces/{workspace_id}")
        return data.get("fallback_workspace_id")

    async def reorder_workspaces(self, workspace_ids: Iterable[str]) -> List[Workspace]:
        data = await self._request("PUT", "/workspaces/order", json={"workspace_ids": list(workspace_ids)})
        return [Workspace.model_validate(w) for w in data["workspaces"]]

    # Tasks

    async def list_tasks(self, workspace_id: Optional[str] = None, **filters) -> List[TaskNode]:
        params = {k: v for k, v in filters.items() if v is not None}
        if workspace_id:
            params["workspace_id"] = workspace_id
        data = await self._request("GET", "/tasks", params=params)
        return [TaskNode.model_validate(t) for t in data["tasks"]]

    async def create_task(self, title: str, **fields) -> Task:
        payload = {"title": title, **{k: v for k, v in fields.items() if v is not None}}
        return Task.model_validate(await self._request("POST", "/tasks", json=payload))

    async def update_task(self, task_id: str, **fields) -> Task:
        return Task.model_validate(await self._request("PATCH", f"/tasks/{task_id}", json=fields))

    async def toggle_task(self, task_id: str) -> Task:
        return Task.model_validate(await self._request("POST", f"/tasks/{task_id}/toggle"))

    async def delete_task(self, task_id: str) -> Optional[dict]:
        """Delete a task and its subtasks. Returns the undo handle."""
        data = await self._request("DELETE", f"/tasks/{task_id}")
        return data.get("undo")

    async def move_task(self, task_id: str, workspace_id: str) -> Dict[str, Any]:
        data = await self._request("POST", f"/tasks/{task_id}/move", json={"workspace_id": workspace_id})
        return {"task": Task.model_validate(data["task"]), "undo": data.get("undo")}

    async def undo(self, undo_id: str) -> Any:
        data = await self._request("POST", f"/undo/{undo_id}")
        return data.get("task")

    # Realtime

    async def stream_changes(self, tables: Optional[Iterable[str]] = None) -> AsyncIterator[ChangeEvent]:
        """Yield row changes from the SSE stream until the server closes it."""
        params = {"tables": ",".join(tables)} if tables else None
        async with self._client.stream(
            "GET", "/changes/stream", params=params, headers=self.headers, timeout=None
        ) as response:
            if response.is_error:
                await response.aread()
                raise error_from_response(response)

            event_name = None
            data_lines: List[str] = []
            async for line in response.aiter_lines():
                if line.startswith("event:"):
                    event_name = line[6:].strip()
                elif line.startswith("data:"):
                    data_lines.append(line[5:].strip())
                elif not line:
                    if event_name == "change" and data_lines:
                        payload = json.loads("\n".join(data_lines))
                        yield ChangeEvent(
                            table=payload["table"],
                            event_type=payload["event_type"],
                            user_id=payload["user_id"],
                            new=payload.get("new"),
                            old=payload.get("old"),
                        )
                    event_name = None
                    data_lines = []
