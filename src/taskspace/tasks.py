"""
Task operations.

Moves and deletes hand back an UndoAction so the caller can offer a short
undo window; the callbacks restore the exact previous rows.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from storage.base import Repository
from sync.undo import UndoAction, UndoManager
from taskspace.colors import color_id_from_hex
from taskspace.errors import InvalidRequestError, NoWorkspaceError, NotFoundError
from taskspace.filters import TaskQuery
from taskspace.models import Task, TaskCreate, TaskNode, TaskUpdate, Workspace, utcnow
from taskspace.tree import descendant_ids
from taskspace.workspaces import WorkspaceService

logger = logging.getLogger(__name__)

TEMP_ID_PREFIX = "temp-"


def is_temp_id(task_id: Optional[str]) -> bool:
    return bool(task_id) and task_id.startswith(TEMP_ID_PREFIX)


class TaskService:
    def __init__(self, repo: Repository, undo: UndoManager):
        self.repo = repo
        self.undo = undo
        self.workspaces = WorkspaceService(repo)

    async def get_owned(self, user_id: str, task_id: str) -> Task:
        task = None if is_temp_id(task_id) else await self.repo.get_task(task_id)
        if task is None or task.user_id != user_id:
            raise NotFoundError(f"Task {task_id} not found")
        return task

    async def list_tasks(
        self, user_id: str, workspace_id: Optional[str], query: Optional[TaskQuery] = None
    ) -> List[TaskNode]:
        query = query or TaskQuery()
        if not workspace_id:
            return []
        tasks = await self.repo.list_tasks(user_id, workspace_id)
        task_tags = await self.repo.task_tag_map(query.tag_ids) if query.tag_ids else None
        return query.apply(tasks, workspace_id, task_tags)

    async def create_task(self, user_id: str, payload: TaskCreate) -> Task:
        workspace_id = payload.workspace_id
        parent: Optional[Task] = None
        if payload.parent_task_id:
            parent = await self.get_owned(user_id, payload.parent_task_id)
            workspace_id = parent.workspace_id or workspace_id

        if not workspace_id:
            workspace_id = await self.workspaces.first_workspace_id(user_id)
        if not workspace_id:
            raise NoWorkspaceError()
        ws = await self.workspaces.get_owned(user_id, workspace_id)

        for tag_id in payload.tag_ids:
            tag = await self.repo.get_tag(tag_id)
            if tag is None or tag.user_id != user_id:
                raise NotFoundError(f"Tag {tag_id} not found")

        top = await self.repo.max_task_position(user_id, workspace_id, payload.parent_task_id)
        color_id = payload.color_id
        if color_id is None:
            color_id = parent.color_id if parent else color_id_from_hex(ws.color)

        task = await self.repo.insert_task(
            {
                "user_id": user_id,
                "workspace_id": workspace_id,
                "parent_task_id": payload.parent_task_id,
                "title": payload.title,
                "description": payload.description,
                "priority": payload.priority,
                "deadline": payload.deadline,
                "position": top + 1 if top is not None else 0,
                "color_id": color_id,
            }
        )
        for tag_id in payload.tag_ids:
            await self.repo.add_task_tag(task.id, tag_id)

        logger.info(f"Created task {task.id} in workspace {workspace_id} for user {user_id}")
        return task

    async def update_task(self, user_id: str, task_id: str, payload: TaskUpdate) -> Task:
        task = await self.get_owned(user_id, task_id)
        fields = payload.model_dump(exclude_unset=True)

        if "workspace_id" in fields:
            if fields["workspace_id"] != task.workspace_id:
                raise InvalidRequestError("Use the move operation to change a task's workspace")
            del fields["workspace_id"]
        # Columns that cannot be cleared
        for key in ("title", "completed", "archived"):
            if key in fields and fields[key] is None:
                del fields[key]

        if "completed" in fields and fields["completed"] != task.completed:
            fields["completed_at"] = utcnow() if fields["completed"] else None

        fields["updated_at"] = utcnow()
        return await self.repo.update_task(task_id, fields)

    async def toggle_complete(self, user_id: str, task_id: str) -> Task:
        """Flip completion. Re-opening a subtask re-opens its completed ancestors too."""
        task = await self.get_owned(user_id, task_id)
        now = utcnow()
        completed = not task.completed
        updated = await self.repo.update_task(
            task_id,
            {"completed": completed, "completed_at": now if completed else None, "updated_at": now},
        )

        if not completed:
            parent_id = task.parent_task_id
            seen = {task_id}
            while parent_id and parent_id not in seen:
                seen.add(parent_id)
                parent = await self.repo.get_task(parent_id)
                if parent is None:
                    break
                if parent.completed:
                    await self.repo.update_task(
                        parent.id, {"completed": False, "completed_at": None, "updated_at": now}
                    )
                parent_id = parent.parent_task_id
        return updated

    async def move_task(
        self, user_id: str, task_id: str, workspace_id: str
    ) -> Tuple[Task, Optional[UndoAction]]:
        """Move a task and its subtasks. Returns (task, undo); undo is None for a no-op."""
        task = await self.get_owned(user_id, task_id)
        destination: Workspace = await self.workspaces.get_owned(user_id, workspace_id)
        if task.workspace_id == workspace_id:
            return task, None

        all_tasks = await self.repo.list_tasks(user_id)
        by_id = {t.id: t for t in all_tasks}
        ids = [task_id] + descendant_ids(all_tasks, task_id)
        previous: Dict[str, Optional[str]] = {i: by_id[i].workspace_id for i in ids if i in by_id}
        # A moved subtask becomes a root task; its parent stays behind
        previous_parent = task.parent_task_id

        await self.repo.set_tasks_workspace(ids, workspace_id)
        if previous_parent:
            await self.repo.update_task(task_id, {"parent_task_id": None, "updated_at": utcnow()})
        moved = await self.repo.get_task(task_id)
        logger.info(f"Moved task {task_id} (+{len(ids) - 1} subtasks) to workspace {workspace_id}")

        async def restore():
            now = utcnow()
            current = await self.repo.get_task(task_id)
            if current is None:
                raise NotFoundError(f"Task {task_id} no longer exists")
            # Tasks whose old workspace was deleted stay where they are
            for tid, ws_id in previous.items():
                if ws_id is not None and await self.repo.get_workspace(ws_id) is None:
                    continue
                await self.repo.update_task(tid, {"workspace_id": ws_id, "updated_at": now})

            if previous_parent:
                parent = await self.repo.get_task(previous_parent)
                restored = await self.repo.get_task(task_id)
                if parent is not None and restored is not None and parent.workspace_id == restored.workspace_id:
                    await self.repo.update_task(task_id, {"parent_task_id": previous_parent, "updated_at": now})
            return await self.repo.get_task(task_id)

        action = self.undo.register(user_id, f'Moved "{task.title}" to {destination.name}', restore)
        return moved, action

    async def delete_task(self, user_id: str, task_id: str) -> UndoAction:
        task = await self.get_owned(user_id, task_id)
        all_tasks = await self.repo.list_tasks(user_id)
        by_id = {t.id: t for t in all_tasks}
        ids = [task_id] + [i for i in descendant_ids(all_tasks, task_id) if i in by_id]

        snapshot = []
        for tid in ids:
            snapshot.append(
                {
                    "row": by_id.get(tid, task).model_dump(),
                    "tag_ids": await self.repo.task_tag_ids(tid),
                    "links": await self.repo.list_links(tid),
                    "images": await self.repo.list_images(tid),
                }
            )

        await self.repo.delete_task(task_id)
        logger.info(f"Deleted task {task_id} with {len(ids) - 1} subtasks")

        async def restore():
            row = snapshot[0]["row"]
            workspace_id = row["workspace_id"]
            if workspace_id is not None and await self.repo.get_workspace(workspace_id) is None:
                # The workspace was deleted meanwhile; its tasks went to the first remaining one
                workspace_id = await self.workspaces.first_workspace_id(user_id)
                if workspace_id is None:
                    raise NoWorkspaceError()
            parent_id = row["parent_task_id"]
            if parent_id is not None:
                parent = await self.repo.get_task(parent_id)
                if parent is None or parent.workspace_id != workspace_id:
                    parent_id = None

            # Parents come first in the snapshot so foreign keys resolve
            for index, entry in enumerate(snapshot):
                fields = {**entry["row"], "workspace_id": workspace_id}
                if index == 0:
                    fields["parent_task_id"] = parent_id
                restored = await self.repo.insert_task(fields)
                for tag_id in entry["tag_ids"]:
                    if await self.repo.get_tag(tag_id) is not None:
                        await self.repo.add_task_tag(restored.id, tag_id)
                for link in entry["links"]:
                    await self.repo.insert_link(restored.id, link.url, link.display_name)
                for image in entry["images"]:
                    await self.repo.insert_image(
                        restored.id, image.storage_path, image.file_name, image.file_size, image.mime_type
                    )
            return await self.repo.get_task(task_id)

        return self.undo.register(user_id, f'Deleted "{task.title}"', restore)

    async def add_ai_suggestions(self, user_id: str, task_id: str, suggestions: List[str]) -> List[Task]:
        """Append suggestions as subtasks of task_id, then record them as accepted."""
        parent = await self.get_owned(user_id, task_id)
        titles = [s.strip() for s in suggestions if s and s.strip()]
        if not titles:
            raise InvalidRequestError("No suggestions to add")

        top = await self.repo.max_task_position(user_id, parent.workspace_id, parent.id)
        start = top + 1 if top is not None else 0
        created = []
        for offset, title in enumerate(titles):
            created.append(
                await self.repo.insert_task(
                    {
                        "user_id": user_id,
                        "workspace_id": parent.workspace_id,
                        "parent_task_id": parent.id,
                        "title": title,
                        "position": start + offset,
                        "color_id": parent.color_id,
                    }
                )
            )

        try:
            await self.repo.insert_ai_suggestions(parent.id, titles, accepted=True)
        except Exception as e:
            logger.error(f"Failed to record AI suggestions for task {task_id}: {e}")

        logger.info(f"Added {len(created)} AI subtasks to task {task_id}")
        return created
