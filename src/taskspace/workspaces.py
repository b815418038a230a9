from __future__ import annotations

import logging
from typing import List, Optional

from storage.base import Repository
from taskspace.errors import InvalidRequestError, LastWorkspaceError, NotFoundError
from taskspace.models import (
    DEFAULT_WORKSPACE_COLOR,
    DEFAULT_WORKSPACE_ICON,
    DEFAULT_WORKSPACE_NAME,
    Workspace,
    WorkspaceCreate,
    WorkspaceUpdate,
    utcnow,
)

logger = logging.getLogger(__name__)


class WorkspaceService:
    """Workspace lifecycle. A user always keeps at least one workspace."""

    def __init__(self, repo: Repository):
        self.repo = repo

    async def ensure_default_workspace(self, user_id: str) -> str:
        """Create "Main" for a user without workspaces and give it their loose tasks."""
        existing = await self.repo.list_workspaces(user_id)
        if existing:
            return existing[0].id

        ws = await self.repo.insert_workspace(
            user_id,
            name=DEFAULT_WORKSPACE_NAME,
            icon=DEFAULT_WORKSPACE_ICON,
            color=DEFAULT_WORKSPACE_COLOR,
            order=0,
        )
        adopted = await self.repo.adopt_orphan_tasks(user_id, ws.id)
        logger.info(f"Created default workspace {ws.id} for user {user_id}, adopted {adopted} tasks")
        return ws.id

    async def list_workspaces(self, user_id: str) -> List[Workspace]:
        await self.ensure_default_workspace(user_id)
        return await self.repo.list_workspaces(user_id)

    async def get_owned(self, user_id: str, workspace_id: str) -> Workspace:
        ws = await self.repo.get_workspace(workspace_id)
        if ws is None or ws.user_id != user_id:
            raise NotFoundError(f"Workspace {workspace_id} not found")
        return ws

    async def first_workspace_id(self, user_id: str) -> Optional[str]:
        rows = await self.repo.list_workspaces(user_id)
        return rows[0].id if rows else None

    async def create_workspace(self, user_id: str, payload: WorkspaceCreate) -> Workspace:
        rows = await self.repo.list_workspaces(user_id)
        order = max(w.order for w in rows) + 1 if rows else 0
        ws = await self.repo.insert_workspace(
            user_id, name=payload.name, icon=payload.icon, color=payload.color, order=order
        )
        logger.info(f"Created workspace {ws.id} ({ws.name}) for user {user_id}")
        return ws

    async def update_workspace(self, user_id: str, workspace_id: str, payload: WorkspaceUpdate) -> Workspace:
        await self.get_owned(user_id, workspace_id)
        fields = payload.model_dump(exclude_unset=True, exclude_none=True)
        fields["updated_at"] = utcnow()
        return await self.repo.update_workspace(workspace_id, fields)

    async def delete_workspace(self, user_id: str, workspace_id: str) -> str:
        """Delete a workspace after moving its tasks. Returns the fallback workspace id."""
        await self.get_owned(user_id, workspace_id)
        rows = await self.repo.list_workspaces(user_id)
        if len(rows) <= 1:
            raise LastWorkspaceError()

        fallback = next(w for w in rows if w.id != workspace_id)
        moved = await self.repo.delete_workspace_with_fallback(workspace_id, fallback.id)
        logger.info(f"Deleted workspace {workspace_id}, moved {moved} tasks to {fallback.id}")
        return fallback.id

    async def reorder_workspaces(self, user_id: str, workspace_ids: List[str]) -> List[Workspace]:
        owned = {w.id for w in await self.repo.list_workspaces(user_id)}
        foreign = [i for i in workspace_ids if i not in owned]
        if foreign:
            raise InvalidRequestError(f"Unknown workspaces: {', '.join(foreign)}")
        if len(set(workspace_ids)) != len(workspace_ids):
            raise InvalidRequestError("Workspace ids must be unique")

        now = utcnow()
        for index, ws_id in enumerate(workspace_ids):
            await self.repo.update_workspace(ws_id, {"order": index, "updated_at": now})
        return await self.repo.list_workspaces(user_id)
