from __future__ import annotations

import logging
import uuid
from typing import Dict, List, Optional

from client.api_client import TaskspaceClient
from sync.change_feed import ChangeEvent
from sync.pending import PendingUpdates
from sync.reconcile import ReconcileAction, reconcile
from taskspace.errors import TaskspaceError
from taskspace.models import Task
from taskspace.tasks import TEMP_ID_PREFIX
from taskspace.tree import build_task_tree, descendant_ids, flatten_task_tree

logger = logging.getLogger(__name__)


class TaskView:
    """Device-side list of one workspace's tasks with optimistic writes.

    Every mutation is applied locally first, sent to the server, and rolled
    back if the server refuses it. Realtime events for ids with a write in
    flight are our own echoes and are skipped.
    """

    def __init__(self, client: TaskspaceClient, workspace_id: Optional[str] = None):
        self.client = client
        self.workspace_id = workspace_id
        self.pending = PendingUpdates()
        self.last_undo: Optional[dict] = None
        self._tasks: Dict[str, Task] = {}

    @property
    def tasks(self) -> List[Task]:
        return list(self._tasks.values())

    def tree(self):
        return build_task_tree(self.tasks, sort_roots=False)

    def get(self, task_id: str) -> Optional[Task]:
        return self._tasks.get(task_id)

    async def load(self) -> List[Task]:
        nodes = await self.client.list_tasks(self.workspace_id)
        self._tasks = {n.id: Task(**n.model_dump(exclude={"subtasks"})) for n in flatten_task_tree(nodes)}
        return self.tasks

    def _subtree(self, task_id: str) -> List[Task]:
        ids = [task_id] + descendant_ids(self.tasks, task_id)
        return [self._tasks[i] for i in ids if i in self._tasks]

    def _remove(self, tasks: List[Task]) -> None:
        for t in tasks:
            self._tasks.pop(t.id, None)

    def _restore(self, tasks: List[Task]) -> None:
        for t in tasks:
            self._tasks[t.id] = t

    async def create(self, title: str, **fields) -> Task:
        temp_id = f"{TEMP_ID_PREFIX}{uuid.uuid4().hex}"
        optimistic = Task(
            id=temp_id,
            user_id="",
            workspace_id=fields.get("workspace_id") or self.workspace_id,
            parent_task_id=fields.get("parent_task_id"),
            title=title,
            description=fields.get("description"),
            priority=fields.get("priority"),
        )
        self._tasks[temp_id] = optimistic
        self.pending.track(temp_id, "create")

        if self.workspace_id and "workspace_id" not in fields:
            fields["workspace_id"] = self.workspace_id
        try:
            created = await self.client.create_task(title, **fields)
        except TaskspaceError:
            self._tasks.pop(temp_id, None)
            self.pending.discard(temp_id)
            raise

        self._tasks.pop(temp_id, None)
        self.pending.discard(temp_id)
        self._tasks[created.id] = created
        self.pending.track(created.id, "create")
        self.pending.settle(created.id)
        return created

    async def update(self, task_id: str, **fields) -> Optional[Task]:
        """Apply a partial update. A workspace change is a move and leaves the view."""
        new_ws = fields.pop("workspace_id", None)
        if new_ws and new_ws != self.workspace_id:
            if fields:
                await self.update(task_id, **fields)
            await self.move(task_id, new_ws)
            return None

        previous = self._tasks.get(task_id)
        if previous is not None:
            self._tasks[task_id] = previous.model_copy(update=fields)
        self.pending.track(task_id, "update", previous=previous)
        try:
            updated = await self.client.update_task(task_id, **fields)
        except TaskspaceError:
            if previous is not None:
                self._tasks[task_id] = previous
            self.pending.discard(task_id)
            raise

        self._tasks[task_id] = updated
        self.pending.settle(task_id)
        return updated

    async def delete(self, task_id: str) -> Optional[dict]:
        removed = self._subtree(task_id)
        self._remove(removed)
        for t in removed:
            self.pending.track(t.id, "delete", previous=t)
        try:
            self.last_undo = await self.client.delete_task(task_id)
        except TaskspaceError:
            logger.warning(f"Delete of task {task_id} failed, restoring {len(removed)} tasks")
            self._restore(removed)
            for t in removed:
                self.pending.discard(t.id)
            raise

        for t in removed:
            self.pending.settle(t.id)
        return self.last_undo

    async def move(self, task_id: str, workspace_id: str) -> Optional[dict]:
        moved = self._subtree(task_id)
        if workspace_id != self.workspace_id:
            self._remove(moved)
        for t in moved:
            self.pending.track(t.id, "update", previous=t)
        try:
            result = await self.client.move_task(task_id, workspace_id)
        except TaskspaceError:
            self._restore(moved)
            for t in moved:
                self.pending.discard(t.id)
            raise

        for t in moved:
            self.pending.settle(t.id)
        self.last_undo = result["undo"]
        return self.last_undo

    async def undo(self, undo_id: Optional[str] = None) -> None:
        undo_id = undo_id or (self.last_undo or {}).get("undo_id")
        if not undo_id:
            return
        await self.client.undo(undo_id)
        self.last_undo = None
        await self.load()

    async def apply_event(self, event: ChangeEvent) -> ReconcileAction:
        """React to a realtime task change."""
        if event.table != "tasks":
            return ReconcileAction.IGNORE
        if self.pending.is_pending(event.record_id):
            return ReconcileAction.IGNORE

        action = reconcile(event, self.workspace_id)
        if action is ReconcileAction.REMOVE and event.record_id:
            self._remove(self._subtree(event.record_id))
        elif action is ReconcileAction.REFETCH:
            await self.load()
        return action
