"""
In-memory repository.

Used when USE_DATABASE is off (local development and tests). Mirrors the
Postgres schema closely enough that services behave the same: cascading
task deletes, ordering rules and change notifications.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Tuple

from storage.base import Repository
from sync.change_feed import ChangeEvent, ChangeFeed
from taskspace.models import (
    Calendar,
    Tag,
    Task,
    TaskImage,
    TaskLink,
    Workspace,
    utcnow,
)

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return str(uuid.uuid4())


class InMemoryRepository(Repository):
    def __init__(self, feed: Optional[ChangeFeed] = None):
        self.feed = feed
        self.workspaces: Dict[str, Workspace] = {}
        self.tasks: Dict[str, Task] = {}
        self.tags: Dict[str, Tag] = {}
        self.task_tags: Set[Tuple[str, str]] = set()
        self.links: Dict[str, TaskLink] = {}
        self.images: Dict[str, TaskImage] = {}
        self.ai_suggestions: List[Dict[str, Any]] = []
        self.calendars: Dict[str, Calendar] = {}
        self.google_tokens: Dict[str, Dict[str, Any]] = {}
        logger.info("Using in-memory repository")

    def _emit(self, table: str, event_type: str, user_id: str, new=None, old=None) -> None:
        if self.feed is None:
            return
        self.feed.publish(
            ChangeEvent(
                table=table,
                event_type=event_type,
                user_id=user_id,
                new=new.model_dump(mode="json") if new is not None else None,
                old=old.model_dump(mode="json") if old is not None else None,
            )
        )

    # Workspaces

    async def list_workspaces(self, user_id: str) -> List[Workspace]:
        rows = [w for w in self.workspaces.values() if w.user_id == user_id]
        return sorted(rows, key=lambda w: (w.order, w.created_at))

    async def get_workspace(self, workspace_id: str) -> Optional[Workspace]:
        return self.workspaces.get(workspace_id)

    async def insert_workspace(self, user_id: str, name: str, icon: str, color: str, order: int) -> Workspace:
        ws = Workspace(id=_new_id(), user_id=user_id, name=name, icon=icon, color=color, order=order)
        self.workspaces[ws.id] = ws
        self._emit("workspaces", "INSERT", user_id, new=ws)
        return ws

    async def update_workspace(self, workspace_id: str, fields: Dict[str, Any]) -> Optional[Workspace]:
        old = self.workspaces.get(workspace_id)
        if old is None:
            return None
        ws = old.model_copy(update=fields)
        self.workspaces[workspace_id] = ws
        self._emit("workspaces", "UPDATE", ws.user_id, new=ws, old=old)
        return ws

    async def delete_workspace(self, workspace_id: str) -> bool:
        old = self.workspaces.pop(workspace_id, None)
        if old is None:
            return False
        # ON DELETE SET NULL
        for t in list(self.tasks.values()):
            if t.workspace_id == workspace_id:
                await self.update_task(t.id, {"workspace_id": None})
        self._emit("workspaces", "DELETE", old.user_id, old=old)
        return True

    async def delete_workspace_with_fallback(self, workspace_id: str, fallback_workspace_id: str) -> int:
        if workspace_id not in self.workspaces or fallback_workspace_id not in self.workspaces:
            return 0
        ids = [t.id for t in self.tasks.values() if t.workspace_id == workspace_id]
        moved = await self.set_tasks_workspace(ids, fallback_workspace_id)
        await self.delete_workspace(workspace_id)
        return moved

    # Tasks

    async def list_tasks(self, user_id: str, workspace_id: Optional[str] = None) -> List[Task]:
        rows = [
            t
            for t in self.tasks.values()
            if t.user_id == user_id and (workspace_id is None or t.workspace_id == workspace_id)
        ]
        rows.sort(key=lambda t: t.created_at, reverse=True)
        rows.sort(key=lambda t: (t.position is None, t.position or 0))
        return rows

    async def get_task(self, task_id: str) -> Optional[Task]:
        return self.tasks.get(task_id)

    async def insert_task(self, fields: Dict[str, Any]) -> Task:
        data = dict(fields)
        data.setdefault("id", _new_id())
        task = Task(**data)
        self.tasks[task.id] = task
        self._emit("tasks", "INSERT", task.user_id, new=task)
        return task

    async def update_task(self, task_id: str, fields: Dict[str, Any]) -> Optional[Task]:
        old = self.tasks.get(task_id)
        if old is None:
            return None
        task = old.model_copy(update=fields)
        self.tasks[task_id] = task
        self._emit("tasks", "UPDATE", task.user_id, new=task, old=old)
        return task

    async def set_tasks_workspace(self, task_ids: List[str], workspace_id: str) -> int:
        count = 0
        now = utcnow()
        for task_id in task_ids:
            if await self.update_task(task_id, {"workspace_id": workspace_id, "updated_at": now}):
                count += 1
        return count

    async def adopt_orphan_tasks(self, user_id: str, workspace_id: str) -> int:
        ids = [t.id for t in self.tasks.values() if t.user_id == user_id and t.workspace_id is None]
        return await self.set_tasks_workspace(ids, workspace_id)

    async def delete_task(self, task_id: str) -> bool:
        old = self.tasks.pop(task_id, None)
        if old is None:
            return False
        for child in [t for t in self.tasks.values() if t.parent_task_id == task_id]:
            await self.delete_task(child.id)
        self.task_tags = {(t, g) for t, g in self.task_tags if t != task_id}
        self.links = {k: v for k, v in self.links.items() if v.task_id != task_id}
        self.images = {k: v for k, v in self.images.items() if v.task_id != task_id}
        self._emit("tasks", "DELETE", old.user_id, old=old)
        return True

    async def max_task_position(
        self, user_id: str, workspace_id: Optional[str], parent_task_id: Optional[str]
    ) -> Optional[int]:
        positions = [
            t.position
            for t in self.tasks.values()
            if t.user_id == user_id
            and t.workspace_id == workspace_id
            and t.parent_task_id == parent_task_id
            and t.position is not None
        ]
        return max(positions) if positions else None

    # Tags

    async def list_tags(self, user_id: str) -> List[Tag]:
        return sorted((t for t in self.tags.values() if t.user_id == user_id), key=lambda t: t.name)

    async def get_tag(self, tag_id: str) -> Optional[Tag]:
        return self.tags.get(tag_id)

    async def insert_tag(self, user_id: str, name: str, color: str) -> Tag:
        tag = Tag(id=_new_id(), user_id=user_id, name=name, color=color)
        self.tags[tag.id] = tag
        self._emit("tags", "INSERT", user_id, new=tag)
        return tag

    async def update_tag(self, tag_id: str, fields: Dict[str, Any]) -> Optional[Tag]:
        old = self.tags.get(tag_id)
        if old is None:
            return None
        tag = old.model_copy(update=fields)
        self.tags[tag_id] = tag
        self._emit("tags", "UPDATE", tag.user_id, new=tag, old=old)
        return tag

    async def delete_tag(self, tag_id: str) -> bool:
        self.task_tags = {(t, g) for t, g in self.task_tags if g != tag_id}
        old = self.tags.pop(tag_id, None)
        if old is None:
            return False
        self._emit("tags", "DELETE", old.user_id, old=old)
        return True

    async def task_tag_ids(self, task_id: str) -> List[str]:
        return sorted(g for t, g in self.task_tags if t == task_id)

    async def tags_by_ids(self, tag_ids: List[str]) -> List[Tag]:
        return sorted((self.tags[i] for i in tag_ids if i in self.tags), key=lambda t: t.name)

    async def add_task_tag(self, task_id: str, tag_id: str) -> bool:
        if (task_id, tag_id) in self.task_tags:
            return False
        self.task_tags.add((task_id, tag_id))
        return True

    async def remove_task_tag(self, task_id: str, tag_id: str) -> bool:
        if (task_id, tag_id) not in self.task_tags:
            return False
        self.task_tags.discard((task_id, tag_id))
        return True

    async def task_tag_map(self, tag_ids: List[str]) -> Dict[str, List[str]]:
        wanted = set(tag_ids)
        out: Dict[str, List[str]] = {}
        for task_id, tag_id in self.task_tags:
            if tag_id in wanted:
                out.setdefault(task_id, []).append(tag_id)
        return out

    # Attachments

    async def list_links(self, task_id: str) -> List[TaskLink]:
        return sorted((l for l in self.links.values() if l.task_id == task_id), key=lambda l: l.created_at)

    async def get_link(self, link_id: str) -> Optional[TaskLink]:
        return self.links.get(link_id)

    async def insert_link(self, task_id: str, url: str, display_name: Optional[str]) -> TaskLink:
        link = TaskLink(id=_new_id(), task_id=task_id, url=url, display_name=display_name)
        self.links[link.id] = link
        return link

    async def update_link(self, link_id: str, fields: Dict[str, Any]) -> Optional[TaskLink]:
        old = self.links.get(link_id)
        if old is None:
            return None
        link = old.model_copy(update=fields)
        self.links[link_id] = link
        return link

    async def delete_link(self, link_id: str) -> bool:
        return self.links.pop(link_id, None) is not None

    async def list_images(self, task_id: str) -> List[TaskImage]:
        return sorted((i for i in self.images.values() if i.task_id == task_id), key=lambda i: i.created_at)

    async def get_image(self, image_id: str) -> Optional[TaskImage]:
        return self.images.get(image_id)

    async def insert_image(
        self,
        task_id: str,
        storage_path: str,
        file_name: str,
        file_size: Optional[int],
        mime_type: Optional[str],
    ) -> TaskImage:
        image = TaskImage(
            id=_new_id(),
            task_id=task_id,
            storage_path=storage_path,
            file_name=file_name,
            file_size=file_size,
            mime_type=mime_type,
        )
        self.images[image.id] = image
        return image

    async def delete_image(self, image_id: str) -> bool:
        return self.images.pop(image_id, None) is not None

    # AI suggestions

    async def insert_ai_suggestions(self, task_id: str, suggestions: List[str], accepted: bool = True) -> int:
        for s in suggestions:
            self.ai_suggestions.append(
                {"id": _new_id(), "task_id": task_id, "suggestion": s, "accepted": accepted, "created_at": utcnow()}
            )
        return len(suggestions)

    # Calendars

    async def list_calendars(self, user_id: str) -> List[Calendar]:
        rows = [c for c in self.calendars.values() if c.user_id == user_id]
        return sorted(rows, key=lambda c: (not c.is_primary, c.name))

    async def upsert_calendar(
        self, user_id: str, google_calendar_id: str, name: str, color: str, is_primary: bool
    ) -> Calendar:
        for cal in self.calendars.values():
            if cal.user_id == user_id and cal.google_calendar_id == google_calendar_id:
                updated = cal.model_copy(
                    update={"name": name, "color": color, "is_primary": is_primary, "updated_at": utcnow()}
                )
                self.calendars[cal.id] = updated
                return updated
        cal = Calendar(
            id=_new_id(),
            user_id=user_id,
            name=name,
            color=color,
            is_primary=is_primary,
            google_calendar_id=google_calendar_id,
        )
        self.calendars[cal.id] = cal
        return cal

    # Google OAuth tokens

    async def save_google_tokens(
        self,
        user_id: str,
        access_token: str,
        refresh_token: Optional[str],
        token_expiry: Optional[datetime],
        email: Optional[str],
    ) -> None:
        row = self.google_tokens.get(user_id, {})
        row.update({"access_token": access_token, "token_expiry": token_expiry})
        if refresh_token:
            row["refresh_token"] = refresh_token
        row.setdefault("refresh_token", None)
        if email:
            row["email"] = email
        row.setdefault("email", None)
        row["updated_at"] = utcnow()
        self.google_tokens[user_id] = row

    async def get_google_tokens(self, user_id: str) -> Optional[Dict[str, Any]]:
        row = self.google_tokens.get(user_id)
        return dict(row) if row else None

    async def delete_google_tokens(self, user_id: str) -> None:
        self.google_tokens.pop(user_id, None)

    async def health_check(self) -> dict:
        return {"status": "healthy", "database": "in-memory"}
