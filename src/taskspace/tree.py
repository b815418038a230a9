from __future__ import annotations

from typing import Iterable, List, Set

from taskspace.models import Task, TaskNode


def build_task_tree(tasks: Iterable[Task], sort_roots: bool = True) -> List[TaskNode]:
    """Nest a flat task list by parent_task_id.

    Tasks whose parent is not in the list are dropped rather than promoted to
    roots, so a filtered list never shows a subtask without its parent.
    Siblings are ordered by position (missing positions count as 0); the
    sort is stable so the incoming order breaks ties. With sort_roots=False
    the roots keep the incoming order.
    """
    tasks = list(tasks)
    nodes = {t.id: TaskNode(**t.model_dump(exclude={"subtasks"})) for t in tasks}
    roots: List[TaskNode] = []

    for t in tasks:
        node = nodes[t.id]
        if t.parent_task_id:
            parent = nodes.get(t.parent_task_id)
            if parent is not None:
                parent.subtasks.append(node)
        else:
            roots.append(node)

    def _sort(level: List[TaskNode]) -> None:
        level.sort(key=lambda n: n.position or 0)
        for n in level:
            _sort(n.subtasks)

    if sort_roots:
        _sort(roots)
    else:
        for n in roots:
            _sort(n.subtasks)
    return roots


def flatten_task_tree(nodes: Iterable[TaskNode]) -> List[TaskNode]:
    out: List[TaskNode] = []

    def _walk(node: TaskNode) -> None:
        out.append(node)
        for child in node.subtasks:
            _walk(child)

    for n in nodes:
        _walk(n)
    return out


def completion_percentage(node: TaskNode) -> int:
    if not node.subtasks:
        return 100 if node.completed else 0
    total = sum(completion_percentage(child) for child in node.subtasks)
    return round(total / len(node.subtasks))


def descendant_ids(tasks: Iterable[Task], task_id: str) -> List[str]:
    """Ids of every task below task_id, parents before children."""
    children: dict = {}
    for t in tasks:
        if t.parent_task_id:
            children.setdefault(t.parent_task_id, []).append(t.id)

    out: List[str] = []
    seen: Set[str] = {task_id}
    stack = list(reversed(children.get(task_id, [])))
    while stack:
        current = stack.pop()
        if current in seen:
            continue
        seen.add(current)
        out.append(current)
        stack.extend(reversed(children.get(current, [])))
    return out
