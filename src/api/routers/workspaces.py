import logging
from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from api.dependencies import get_current_user_id, get_workspace_service
from taskspace.models import Workspace, WorkspaceCreate, WorkspaceUpdate
from taskspace.workspaces import WorkspaceService

router = APIRouter()
logger = logging.getLogger(__name__)


class ReorderIn(BaseModel):
    workspace_ids: List[str]


@router.get("/workspaces")
async def list_workspaces(
    user_id: str = Depends(get_current_user_id),
    service: WorkspaceService = Depends(get_workspace_service),
) -> dict:
    """Workspaces in display order. A first call creates the default workspace."""
    rows = await service.list_workspaces(user_id)
    return {"workspaces": rows}


@router.post("/workspaces", status_code=201)
async def create_workspace(
    payload: WorkspaceCreate,
    user_id: str = Depends(get_current_user_id),
    service: WorkspaceService = Depends(get_workspace_service),
) -> Workspace:
    return await service.create_workspace(user_id, payload)


@router.patch("/workspaces/{workspace_id}")
async def update_workspace(
    workspace_id: str,
    payload: WorkspaceUpdate,
    user_id: str = Depends(get_current_user_id),
    service: WorkspaceService = Depends(get_workspace_service),
) -> Workspace:
    return await service.update_workspace(user_id, workspace_id, payload)


@router.delete("/workspaces/{workspace_id}")
async def delete_workspace(
    workspace_id: str,
    user_id: str = Depends(get_current_user_id),
    service: WorkspaceService = Depends(get_workspace_service),
) -> dict:
    fallback_id = await service.delete_workspace(user_id, workspace_id)
    return {"deleted": workspace_id, "fallback_workspace_id": fallback_id}


@router.put("/workspaces/order")
async def reorder_workspaces(
    payload: ReorderIn,
    user_id: str = Depends(get_current_user_id),
    service: WorkspaceService = Depends(get_workspace_service),
) -> dict:
    rows = await service.reorder_workspaces(user_id, payload.workspace_ids)
    return {"workspaces": rows}
