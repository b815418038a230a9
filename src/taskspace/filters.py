from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from taskspace.models import SortKey, StatusFilter, Task, TaskNode
from taskspace.tree import build_task_tree

PRIORITY_RANK = {"high": 3, "medium": 2, "low": 1, None: 0}

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


@dataclass
class TaskQuery:
    """View-side filtering and ordering of one workspace's tasks."""

    status: StatusFilter = "all"
    sort: SortKey = "created"
    search: str = ""
    tag_ids: List[str] = field(default_factory=list)
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None

    def filter(
        self,
        tasks: Iterable[Task],
        workspace_id: Optional[str],
        task_tags: Optional[Dict[str, List[str]]] = None,
    ) -> List[Task]:
        if not workspace_id:
            return []
        out = [t for t in tasks if t.workspace_id == workspace_id]

        needle = self.search.strip().lower()
        if needle:
            out = [
                t
                for t in out
                if needle in t.title.lower()
                or (t.description is not None and needle in t.description.lower())
            ]

        if self.status == "active":
            out = [t for t in out if not t.completed]
        elif self.status == "completed":
            out = [t for t in out if t.completed]

        if self.tag_ids:
            wanted = set(self.tag_ids)
            task_tags = task_tags or {}
            out = [t for t in out if wanted.intersection(task_tags.get(t.id, []))]

        if self.date_from or self.date_to:
            start = _aware(self.date_from) if self.date_from else None
            end = _aware(self.date_to) if self.date_to else None
            kept = []
            for t in out:
                if t.deadline is None:
                    continue
                d = _aware(t.deadline)
                if start is not None and d < start:
                    continue
                if end is not None and d > end:
                    continue
                kept.append(t)
            out = kept

        return self.order(out)

    def order(self, tasks: List[Task]) -> List[Task]:
        if self.sort == "deadline":
            dated = sorted((t for t in tasks if t.deadline), key=lambda t: _aware(t.deadline))
            return dated + [t for t in tasks if not t.deadline]
        if self.sort == "priority":
            return sorted(tasks, key=lambda t: PRIORITY_RANK.get(t.priority, 0), reverse=True)
        if self.sort == "title":
            return sorted(tasks, key=lambda t: t.title.lower())
        return sorted(tasks, key=lambda t: _aware(t.created_at) if t.created_at else _EPOCH, reverse=True)

    def apply(
        self,
        tasks: Iterable[Task],
        workspace_id: Optional[str],
        task_tags: Optional[Dict[str, List[str]]] = None,
    ) -> List[TaskNode]:
        return build_task_tree(self.filter(tasks, workspace_id, task_tags), sort_roots=False)
