from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from taskspace.models import Calendar, Tag, Task, TaskImage, TaskLink, Workspace


class Repository(ABC):
    """Row-level persistence for every Taskspace table.

    Implementations only move rows; invariants such as "a user keeps at least
    one workspace" are enforced by the services in the taskspace package.
    Every write to tasks, workspaces and tags must end up as a ChangeEvent on
    the realtime feed.
    """

    # Workspaces

    @abstractmethod
    async def list_workspaces(self, user_id: str) -> List[Workspace]:
        """Workspaces of a user ordered by their `order` column."""

    @abstractmethod
    async def get_workspace(self, workspace_id: str) -> Optional[Workspace]: ...

    @abstractmethod
    async def insert_workspace(
        self, user_id: str, name: str, icon: str, color: str, order: int
    ) -> Workspace: ...

    @abstractmethod
    async def update_workspace(self, workspace_id: str, fields: Dict[str, Any]) -> Optional[Workspace]: ...

    @abstractmethod
    async def delete_workspace(self, workspace_id: str) -> bool: ...

    @abstractmethod
    async def delete_workspace_with_fallback(self, workspace_id: str, fallback_workspace_id: str) -> int:
        """Move every task to the fallback and delete the workspace as one unit. Returns tasks moved."""

    # Tasks

    @abstractmethod
    async def list_tasks(self, user_id: str, workspace_id: Optional[str] = None) -> List[Task]:
        """Tasks ordered by position (missing last), then newest first."""

    @abstractmethod
    async def get_task(self, task_id: str) -> Optional[Task]: ...

    @abstractmethod
    async def insert_task(self, fields: Dict[str, Any]) -> Task:
        """Insert a task row. `fields` may carry an explicit id (undo restores)."""

    @abstractmethod
    async def update_task(self, task_id: str, fields: Dict[str, Any]) -> Optional[Task]: ...

    @abstractmethod
    async def set_tasks_workspace(self, task_ids: List[str], workspace_id: str) -> int: ...

    @abstractmethod
    async def adopt_orphan_tasks(self, user_id: str, workspace_id: str) -> int:
        """Point every task of the user without a workspace at workspace_id."""

    @abstractmethod
    async def delete_task(self, task_id: str) -> bool:
        """Delete a task; subtasks, tag links and attachments go with it."""

    @abstractmethod
    async def max_task_position(
        self, user_id: str, workspace_id: Optional[str], parent_task_id: Optional[str]
    ) -> Optional[int]: ...

    # Tags

    @abstractmethod
    async def list_tags(self, user_id: str) -> List[Tag]: ...

    @abstractmethod
    async def get_tag(self, tag_id: str) -> Optional[Tag]: ...

    @abstractmethod
    async def insert_tag(self, user_id: str, name: str, color: str) -> Tag: ...

    @abstractmethod
    async def update_tag(self, tag_id: str, fields: Dict[str, Any]) -> Optional[Tag]: ...

    @abstractmethod
    async def delete_tag(self, tag_id: str) -> bool:
        """Delete a tag after removing it from every task."""

    @abstractmethod
    async def task_tag_ids(self, task_id: str) -> List[str]: ...

    @abstractmethod
    async def tags_by_ids(self, tag_ids: List[str]) -> List[Tag]: ...

    @abstractmethod
    async def add_task_tag(self, task_id: str, tag_id: str) -> bool:
        """Returns False when the tag was already on the task."""

    @abstractmethod
    async def remove_task_tag(self, task_id: str, tag_id: str) -> bool: ...

    @abstractmethod
    async def task_tag_map(self, tag_ids: List[str]) -> Dict[str, List[str]]:
        """task_id -> ids of the given tags attached to it."""

    # Attachments

    @abstractmethod
    async def list_links(self, task_id: str) -> List[TaskLink]: ...

    @abstractmethod
    async def get_link(self, link_id: str) -> Optional[TaskLink]: ...

    @abstractmethod
    async def insert_link(self, task_id: str, url: str, display_name: Optional[str]) -> TaskLink: ...

    @abstractmethod
    async def update_link(self, link_id: str, fields: Dict[str, Any]) -> Optional[TaskLink]: ...

    @abstractmethod
    async def delete_link(self, link_id: str) -> bool: ...

    @abstractmethod
    async def list_images(self, task_id: str) -> List[TaskImage]: ...

    @abstractmethod
    async def get_image(self, image_id: str) -> Optional[TaskImage]: ...

    @abstractmethod
    async def insert_image(
        self,
        task_id: str,
        storage_path: str,
        file_name: str,
        file_size: Optional[int],
        mime_type: Optional[str],
    ) -> TaskImage: ...

    @abstractmethod
    async def delete_image(self, image_id: str) -> bool: ...

    # AI suggestions

    @abstractmethod
    async def insert_ai_suggestions(self, task_id: str, suggestions: List[str], accepted: bool = True) -> int: ...

    # Calendars

    @abstractmethod
    async def list_calendars(self, user_id: str) -> List[Calendar]:
        """Primary calendar first, then by name."""

    @abstractmethod
    async def upsert_calendar(
        self, user_id: str, google_calendar_id: str, name: str, color: str, is_primary: bool
    ) -> Calendar: ...

    # Google OAuth tokens (already encrypted by the caller)

    @abstractmethod
    async def save_google_tokens(
        self,
        user_id: str,
        access_token: str,
        refresh_token: Optional[str],
        token_expiry: Optional[datetime],
        email: Optional[str],
    ) -> None:
        """Upsert tokens. A missing refresh token keeps the stored one."""

    @abstractmethod
    async def get_google_tokens(self, user_id: str) -> Optional[Dict[str, Any]]: ...

    @abstractmethod
    async def delete_google_tokens(self, user_id: str) -> None: ...

    @abstractmethod
    async def health_check(self) -> dict: ...
