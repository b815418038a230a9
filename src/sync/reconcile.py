from __future__ import annotations

from enum import Enum
from typing import Optional

from sync.change_feed import ChangeEvent


class ReconcileAction(str, Enum):
    REMOVE = "remove"
    REFETCH = "refetch"
    IGNORE = "ignore"


def reconcile(event: ChangeEvent, current_workspace_id: Optional[str]) -> ReconcileAction:
    """Decide what a view showing current_workspace_id does with a task change.

    Inserts and deletes count as workspace changes (one side is empty), so an
    insert into the current workspace refetches and a delete from it removes.
    """
    old_ws = (event.old or {}).get("workspace_id")
    new_ws = (event.new or {}).get("workspace_id")
    task_ws = new_ws or old_ws

    if not current_workspace_id:
        return ReconcileAction.REFETCH if not task_ws else ReconcileAction.IGNORE

    if old_ws != new_ws:
        if old_ws == current_workspace_id:
            return ReconcileAction.REMOVE
        if new_ws == current_workspace_id:
            return ReconcileAction.REFETCH
        return ReconcileAction.IGNORE

    if task_ws == current_workspace_id:
        return ReconcileAction.REFETCH
    return ReconcileAction.IGNORE
