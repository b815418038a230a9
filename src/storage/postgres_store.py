"""
PostgreSQL repository.

Row changes reach realtime subscribers through the NOTIFY triggers in
schema.sql, so this module never publishes events itself.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from storage import db
from storage.base import Repository
from taskspace.models import Calendar, Tag, Task, TaskImage, TaskLink, Workspace

logger = logging.getLogger(__name__)

WORKSPACE_COLUMNS = {"name", "icon", "color", "order", "updated_at"}
TASK_COLUMNS = {
    "id",
    "user_id",
    "workspace_id",
    "parent_task_id",
    "title",
    "description",
    "priority",
    "deadline",
    "completed",
    "completed_at",
    "archived",
    "position",
    "background_image_url",
    "background_image_display_mode",
    "color_id",
    "created_at",
    "updated_at",
}
TAG_COLUMNS = {"name", "color"}
LINK_COLUMNS = {"url", "display_name", "updated_at"}


def _plain(record) -> Dict[str, Any]:
    """Record -> dict with UUIDs as strings."""
    return {k: (str(v) if isinstance(v, uuid.UUID) else v) for k, v in dict(record).items()}


def _parse_id(value: Optional[str]) -> Optional[uuid.UUID]:
    """UUID for a caller-supplied id, None when it is not one."""
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _set_clause(fields: Dict[str, Any], allowed: Iterable[str], start: int = 2) -> Tuple[str, List[Any]]:
    allowed = set(allowed)
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"Unknown columns: {sorted(unknown)}")
    parts = []
    values = []
    for i, (col, value) in enumerate(fields.items(), start=start):
        parts.append(f'"{col}" = ${i}')
        values.append(value)
    return ", ".join(parts), values


class PostgresRepository(Repository):
    def __init__(self):
        logger.info("Using PostgreSQL repository")

    # Workspaces

    async def list_workspaces(self, user_id: str) -> List[Workspace]:
        rows = await db.fetch(
            'SELECT * FROM workspaces WHERE user_id = $1 ORDER BY "order", created_at',
            user_id,
        )
        return [Workspace(**_plain(r)) for r in rows]

    async def get_workspace(self, workspace_id: str) -> Optional[Workspace]:
        key = _parse_id(workspace_id)
        if key is None:
            return None
        row = await db.fetchrow("SELECT * FROM workspaces WHERE id = $1", key)
        return Workspace(**_plain(row)) if row else None

    async def insert_workspace(self, user_id: str, name: str, icon: str, color: str, order: int) -> Workspace:
        row = await db.fetchrow(
            """
            INSERT INTO workspaces (user_id, name, icon, color, "order")
            VALUES ($1, $2, $3, $4, $5)
            RETURNING *
            """,
            user_id,
            name,
            icon,
            color,
            order,
        )
        return Workspace(**_plain(row))

    async def update_workspace(self, workspace_id: str, fields: Dict[str, Any]) -> Optional[Workspace]:
        fields = {"updated_at": datetime.now().astimezone(), **fields}
        clause, values = _set_clause(fields, WORKSPACE_COLUMNS)
        row = await db.fetchrow(
            f"UPDATE workspaces SET {clause} WHERE id = $1 RETURNING *",
            uuid.UUID(workspace_id),
            *values,
        )
        return Workspace(**_plain(row)) if row else None

    async def delete_workspace(self, workspace_id: str) -> bool:
        status = await db.execute("DELETE FROM workspaces WHERE id = $1", uuid.UUID(workspace_id))
        return _affected(status) > 0

    async def delete_workspace_with_fallback(self, workspace_id: str, fallback_workspace_id: str) -> int:
        async with db.transaction() as conn:
            status = await conn.execute(
                "UPDATE tasks SET workspace_id = $2, updated_at = NOW() WHERE workspace_id = $1",
                uuid.UUID(workspace_id),
                uuid.UUID(fallback_workspace_id),
            )
            await conn.execute("DELETE FROM workspaces WHERE id = $1", uuid.UUID(workspace_id))
        return _affected(status)

    # Tasks

    async def list_tasks(self, user_id: str, workspace_id: Optional[str] = None) -> List[Task]:
        if workspace_id is None:
            rows = await db.fetch(
                "SELECT * FROM tasks WHERE user_id = $1 ORDER BY position ASC NULLS LAST, created_at DESC",
                user_id,
            )
        else:
            rows = await db.fetch(
                """
                SELECT * FROM tasks WHERE user_id = $1 AND workspace_id = $2
                ORDER BY position ASC NULLS LAST, created_at DESC
                """,
                user_id,
                uuid.UUID(workspace_id),
            )
        return [Task(**_plain(r)) for r in rows]

    async def get_task(self, task_id: str) -> Optional[Task]:
        key = _parse_id(task_id)
        if key is None:
            return None
        row = await db.fetchrow("SELECT * FROM tasks WHERE id = $1", key)
        return Task(**_plain(row)) if row else None

    async def insert_task(self, fields: Dict[str, Any]) -> Task:
        unknown = set(fields) - TASK_COLUMNS
        if unknown:
            raise ValueError(f"Unknown columns: {sorted(unknown)}")
        cols = list(fields)
        values = [_to_db(c, fields[c]) for c in cols]
        placeholders = ", ".join(f"${i}" for i in range(1, len(cols) + 1))
        column_sql = ", ".join(f'"{c}"' for c in cols)
        row = await db.fetchrow(
            f"INSERT INTO tasks ({column_sql}) VALUES ({placeholders}) RETURNING *",
            *values,
        )
        return Task(**_plain(row))

    async def update_task(self, task_id: str, fields: Dict[str, Any]) -> Optional[Task]:
        clause, values = _set_clause(fields, TASK_COLUMNS - {"id", "user_id", "created_at"})
        values = [_to_db(c, v) for c, v in zip(fields, values)]
        row = await db.fetchrow(
            f"UPDATE tasks SET {clause} WHERE id = $1 RETURNING *",
            uuid.UUID(task_id),
            *values,
        )
        return Task(**_plain(row)) if row else None

    async def set_tasks_workspace(self, task_ids: List[str], workspace_id: str) -> int:
        if not task_ids:
            return 0
        status = await db.execute(
            "UPDATE tasks SET workspace_id = $1, updated_at = NOW() WHERE id = ANY($2::uuid[])",
            uuid.UUID(workspace_id),
            [uuid.UUID(t) for t in task_ids],
        )
        return _affected(status)

    async def adopt_orphan_tasks(self, user_id: str, workspace_id: str) -> int:
        status = await db.execute(
            "UPDATE tasks SET workspace_id = $2, updated_at = NOW() WHERE user_id = $1 AND workspace_id IS NULL",
            user_id,
            uuid.UUID(workspace_id),
        )
        return _affected(status)

    async def delete_task(self, task_id: str) -> bool:
        # Subtasks, tag links and attachments cascade
        status = await db.execute("DELETE FROM tasks WHERE id = $1", uuid.UUID(task_id))
        return _affected(status) > 0

    async def max_task_position(
        self, user_id: str, workspace_id: Optional[str], parent_task_id: Optional[str]
    ) -> Optional[int]:
        return await db.fetchval(
            """
            SELECT MAX(position) FROM tasks
            WHERE user_id = $1
              AND workspace_id IS NOT DISTINCT FROM $2::uuid
              AND parent_task_id IS NOT DISTINCT FROM $3::uuid
            """,
            user_id,
            uuid.UUID(workspace_id) if workspace_id else None,
            uuid.UUID(parent_task_id) if parent_task_id else None,
        )

    # Tags

    async def list_tags(self, user_id: str) -> List[Tag]:
        rows = await db.fetch("SELECT id, user_id, name, color FROM tags WHERE user_id = $1 ORDER BY name", user_id)
        return [Tag(**_plain(r)) for r in rows]

    async def get_tag(self, tag_id: str) -> Optional[Tag]:
        key = _parse_id(tag_id)
        if key is None:
            return None
        row = await db.fetchrow("SELECT id, user_id, name, color FROM tags WHERE id = $1", key)
        return Tag(**_plain(row)) if row else None

    async def insert_tag(self, user_id: str, name: str, color: str) -> Tag:
        row = await db.fetchrow(
            "INSERT INTO tags (user_id, name, color) VALUES ($1, $2, $3) RETURNING id, user_id, name, color",
            user_id,
            name,
            color,
        )
        return Tag(**_plain(row))

    async def update_tag(self, tag_id: str, fields: Dict[str, Any]) -> Optional[Tag]:
        if not fields:
            return await self.get_tag(tag_id)
        clause, values = _set_clause(fields, TAG_COLUMNS)
        row = await db.fetchrow(
            f"UPDATE tags SET {clause} WHERE id = $1 RETURNING id, user_id, name, color",
            uuid.UUID(tag_id),
            *values,
        )
        return Tag(**_plain(row)) if row else None

    async def delete_tag(self, tag_id: str) -> bool:
        async with db.transaction() as conn:
            await conn.execute("DELETE FROM task_tags WHERE tag_id = $1", uuid.UUID(tag_id))
            status = await conn.execute("DELETE FROM tags WHERE id = $1", uuid.UUID(tag_id))
        return _affected(status) > 0

    async def task_tag_ids(self, task_id: str) -> List[str]:
        rows = await db.fetch("SELECT tag_id FROM task_tags WHERE task_id = $1 ORDER BY tag_id", uuid.UUID(task_id))
        return [str(r["tag_id"]) for r in rows]

    async def tags_by_ids(self, tag_ids: List[str]) -> List[Tag]:
        if not tag_ids:
            return []
        rows = await db.fetch(
            "SELECT id, user_id, name, color FROM tags WHERE id = ANY($1::uuid[]) ORDER BY name",
            [k for k in map(_parse_id, tag_ids) if k is not None],
        )
        return [Tag(**_plain(r)) for r in rows]

    async def add_task_tag(self, task_id: str, tag_id: str) -> bool:
        status = await db.execute(
            "INSERT INTO task_tags (task_id, tag_id) VALUES ($1, $2) ON CONFLICT DO NOTHING",
            uuid.UUID(task_id),
            uuid.UUID(tag_id),
        )
        return _affected(status) > 0

    async def remove_task_tag(self, task_id: str, tag_id: str) -> bool:
        status = await db.execute(
            "DELETE FROM task_tags WHERE task_id = $1 AND tag_id = $2",
            uuid.UUID(task_id),
            uuid.UUID(tag_id),
        )
        return _affected(status) > 0

    async def task_tag_map(self, tag_ids: List[str]) -> Dict[str, List[str]]:
        if not tag_ids:
            return {}
        rows = await db.fetch(
            "SELECT task_id, tag_id FROM task_tags WHERE tag_id = ANY($1::uuid[])",
            [k for k in map(_parse_id, tag_ids) if k is not None],
        )
        out: Dict[str, List[str]] = {}
        for r in rows:
            out.setdefault(str(r["task_id"]), []).append(str(r["tag_id"]))
        return out

    # Attachments

    async def list_links(self, task_id: str) -> List[TaskLink]:
        rows = await db.fetch("SELECT * FROM task_links WHERE task_id = $1 ORDER BY created_at", uuid.UUID(task_id))
        return [TaskLink(**_plain(r)) for r in rows]

    async def get_link(self, link_id: str) -> Optional[TaskLink]:
        key = _parse_id(link_id)
        if key is None:
            return None
        row = await db.fetchrow("SELECT * FROM task_links WHERE id = $1", key)
        return TaskLink(**_plain(row)) if row else None

    async def insert_link(self, task_id: str, url: str, display_name: Optional[str]) -> TaskLink:
        row = await db.fetchrow(
            "INSERT INTO task_links (task_id, url, display_name) VALUES ($1, $2, $3) RETURNING *",
            uuid.UUID(task_id),
            url,
            display_name,
        )
        return TaskLink(**_plain(row))

    async def update_link(self, link_id: str, fields: Dict[str, Any]) -> Optional[TaskLink]:
        fields = {"updated_at": datetime.now().astimezone(), **fields}
        clause, values = _set_clause(fields, LINK_COLUMNS)
        row = await db.fetchrow(
            f"UPDATE task_links SET {clause} WHERE id = $1 RETURNING *",
            uuid.UUID(link_id),
            *values,
        )
        return TaskLink(**_plain(row)) if row else None

    async def delete_link(self, link_id: str) -> bool:
        status = await db.execute("DELETE FROM task_links WHERE id = $1", uuid.UUID(link_id))
        return _affected(status) > 0

    async def list_images(self, task_id: str) -> List[TaskImage]:
        rows = await db.fetch("SELECT * FROM task_images WHERE task_id = $1 ORDER BY created_at", uuid.UUID(task_id))
        return [TaskImage(**_plain(r)) for r in rows]

    async def get_image(self, image_id: str) -> Optional[TaskImage]:
        key = _parse_id(image_id)
        if key is None:
            return None
        row = await db.fetchrow("SELECT * FROM task_images WHERE id = $1", key)
        return TaskImage(**_plain(row)) if row else None

    async def insert_image(
        self,
        task_id: str,
        storage_path: str,
        file_name: str,
        file_size: Optional[int],
        mime_type: Optional[str],
    ) -> TaskImage:
        row = await db.fetchrow(
            """
            INSERT INTO task_images (task_id, storage_path, file_name, file_size, mime_type)
            VALUES ($1, $2, $3, $4, $5)
            RETURNING *
            """,
            uuid.UUID(task_id),
            storage_path,
            file_name,
            file_size,
            mime_type,
        )
        return TaskImage(**_plain(row))

    async def delete_image(self, image_id: str) -> bool:
        status = await db.execute("DELETE FROM task_images WHERE id = $1", uuid.UUID(image_id))
        return _affected(status) > 0

    # AI suggestions

    async def insert_ai_suggestions(self, task_id: str, suggestions: List[str], accepted: bool = True) -> int:
        if not suggestions:
            return 0
        async with db.get_connection() as conn:
            await conn.executemany(
                "INSERT INTO ai_suggestions (task_id, suggestion, accepted) VALUES ($1, $2, $3)",
                [(uuid.UUID(task_id), s, accepted) for s in suggestions],
            )
        return len(suggestions)

    # Calendars

    async def list_calendars(self, user_id: str) -> List[Calendar]:
        rows = await db.fetch(
            "SELECT * FROM calendars WHERE user_id = $1 ORDER BY is_primary DESC, name",
            user_id,
        )
        return [Calendar(**_plain(r)) for r in rows]

    async def upsert_calendar(
        self, user_id: str, google_calendar_id: str, name: str, color: str, is_primary: bool
    ) -> Calendar:
        row = await db.fetchrow(
            """
            INSERT INTO calendars (user_id, google_calendar_id, name, color, is_primary)
            VALUES ($1, $2, $3, $4, $5)
            ON CONFLICT (user_id, google_calendar_id) DO UPDATE SET
                name = EXCLUDED.name,
                color = EXCLUDED.color,
                is_primary = EXCLUDED.is_primary,
                updated_at = NOW()
            RETURNING *
            """,
            user_id,
            google_calendar_id,
            name,
            color,
            is_primary,
        )
        return Calendar(**_plain(row))

    # Google OAuth tokens

    async def save_google_tokens(
        self,
        user_id: str,
        access_token: str,
        refresh_token: Optional[str],
        token_expiry: Optional[datetime],
        email: Optional[str],
    ) -> None:
        await db.execute(
            """
            INSERT INTO google_credentials (user_id, access_token, refresh_token, token_expiry, email)
            VALUES ($1, $2, $3, $4, $5)
            ON CONFLICT (user_id) DO UPDATE SET
                access_token = EXCLUDED.access_token,
                refresh_token = COALESCE(EXCLUDED.refresh_token, google_credentials.refresh_token),
                token_expiry = EXCLUDED.token_expiry,
                email = COALESCE(EXCLUDED.email, google_credentials.email),
                updated_at = NOW()
            """,
            user_id,
            access_token,
            refresh_token,
            token_expiry,
            email,
        )

    async def get_google_tokens(self, user_id: str) -> Optional[Dict[str, Any]]:
        row = await db.fetchrow(
            "SELECT access_token, refresh_token, token_expiry, email, updated_at FROM google_credentials WHERE user_id = $1",
            user_id,
        )
        return dict(row) if row else None

    async def delete_google_tokens(self, user_id: str) -> None:
        await db.execute("DELETE FROM google_credentials WHERE user_id = $1", user_id)

    async def health_check(self) -> dict:
        return await db.health_check()


def _to_db(column: str, value: Any) -> Any:
    if column in ("id", "workspace_id", "parent_task_id") and value is not None:
        return uuid.UUID(str(value))
    return value


def _affected(status: str) -> int:
    """'UPDATE 3' -> 3"""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (ValueError, IndexError):
        return 0
