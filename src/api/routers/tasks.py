import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from api.dependencies import get_current_user_id, get_task_service, get_undo_manager
from api.metrics import TASKS_CREATED_TOTAL, TASKS_MOVED_TOTAL, UNDO_TOTAL
from sync.undo import UndoManager
from taskspace.errors import TaskspaceError
from taskspace.filters import TaskQuery
from taskspace.models import SortKey, StatusFilter, Task, TaskCreate, TaskUpdate
from taskspace.tasks import TaskService

router = APIRouter()
logger = logging.getLogger(__name__)


class MoveIn(BaseModel):
    workspace_id: str


class SuggestionsIn(BaseModel):
    suggestions: List[str]


@router.get("/tasks")
async def list_tasks(
    workspace_id: Optional[str] = None,
    status: StatusFilter = "all",
    sort: SortKey = "created",
    search: str = "",
    tag_ids: List[str] = Query(default=[]),
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    user_id: str = Depends(get_current_user_id),
    service: TaskService = Depends(get_task_service),
) -> dict:
    """Task tree of one workspace (the user's first one when omitted)."""
    if not workspace_id:
        workspace_id = await service.workspaces.ensure_default_workspace(user_id)
    else:
        await service.workspaces.get_owned(user_id, workspace_id)

    query = TaskQuery(
        status=status,
        sort=sort,
        search=search,
        tag_ids=tag_ids,
        date_from=date_from,
        date_to=date_to,
    )
    tree = await service.list_tasks(user_id, workspace_id, query)
    return {"workspace_id": workspace_id, "tasks": tree}


@router.get("/tasks/{task_id}")
async def get_task(
    task_id: str,
    user_id: str = Depends(get_current_user_id),
    service: TaskService = Depends(get_task_service),
) -> Task:
    return await service.get_owned(user_id, task_id)


@router.post("/tasks", status_code=201)
async def create_task(
    payload: TaskCreate,
    user_id: str = Depends(get_current_user_id),
    service: TaskService = Depends(get_task_service),
) -> Task:
    task = await service.create_task(user_id, payload)
    TASKS_CREATED_TOTAL.inc()
    return task


@router.patch("/tasks/{task_id}")
async def update_task(
    task_id: str,
    payload: TaskUpdate,
    user_id: str = Depends(get_current_user_id),
    service: TaskService = Depends(get_task_service),
) -> Task:
    return await service.update_task(user_id, task_id, payload)


@router.post("/tasks/{task_id}/toggle")
async def toggle_task(
    task_id: str,
    user_id: str = Depends(get_current_user_id),
    service: TaskService = Depends(get_task_service),
) -> Task:
    return await service.toggle_complete(user_id, task_id)


@router.post("/tasks/{task_id}/move")
async def move_task(
    task_id: str,
    payload: MoveIn,
    user_id: str = Depends(get_current_user_id),
    service: TaskService = Depends(get_task_service),
) -> dict:
    """Move a task (with its subtasks). The response carries an undo handle."""
    task, action = await service.move_task(user_id, task_id, payload.workspace_id)
    if action is not None:
        TASKS_MOVED_TOTAL.inc()
    return {"task": task, "undo": action.public() if action else None}


@router.delete("/tasks/{task_id}")
async def delete_task(
    task_id: str,
    user_id: str = Depends(get_current_user_id),
    service: TaskService = Depends(get_task_service),
) -> dict:
    action = await service.delete_task(user_id, task_id)
    return {"deleted": task_id, "undo": action.public()}


@router.post("/tasks/{task_id}/subtasks/ai", status_code=201)
async def add_ai_subtasks(
    task_id: str,
    payload: SuggestionsIn,
    user_id: str = Depends(get_current_user_id),
    service: TaskService = Depends(get_task_service),
) -> dict:
    created = await service.add_ai_suggestions(user_id, task_id, payload.suggestions)
    TASKS_CREATED_TOTAL.inc(len(created))
    return {"subtasks": created}


@router.post("/undo/{undo_id}")
async def undo(
    undo_id: str,
    user_id: str = Depends(get_current_user_id),
    undo_manager: UndoManager = Depends(get_undo_manager),
) -> dict:
    try:
        result = await undo_manager.undo(user_id, undo_id)
    except TaskspaceError as e:
        UNDO_TOTAL.labels(outcome=str(e.status_code)).inc()
        raise
    UNDO_TOTAL.labels(outcome="ok").inc()
    return {"undone": undo_id, "task": result}
