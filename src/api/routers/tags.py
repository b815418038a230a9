import logging

from fastapi import APIRouter, Depends

from api.dependencies import get_current_user_id, get_tag_service
from taskspace.models import Tag, TagCreate, TagUpdate
from taskspace.tags import TagService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/tags")
async def list_tags(
    user_id: str = Depends(get_current_user_id),
    service: TagService = Depends(get_tag_service),
) -> dict:
    return {"tags": await service.list_tags(user_id)}


@router.post("/tags", status_code=201)
async def create_tag(
    payload: TagCreate,
    user_id: str = Depends(get_current_user_id),
    service: TagService = Depends(get_tag_service),
) -> Tag:
    return await service.create_tag(user_id, payload)


@router.patch("/tags/{tag_id}")
async def update_tag(
    tag_id: str,
    payload: TagUpdate,
    user_id: str = Depends(get_current_user_id),
    service: TagService = Depends(get_tag_service),
) -> Tag:
    return await service.update_tag(user_id, tag_id, payload)


@router.delete("/tags/{tag_id}")
async def delete_tag(
    tag_id: str,
    user_id: str = Depends(get_current_user_id),
    service: TagService = Depends(get_tag_service),
) -> dict:
    await service.delete_tag(user_id, tag_id)
    return {"deleted": tag_id}


@router.get("/tasks/{task_id}/tags")
async def task_tags(
    task_id: str,
    user_id: str = Depends(get_current_user_id),
    service: TagService = Depends(get_tag_service),
) -> dict:
    await service.check_task(user_id, task_id)
    return {"tags": await service.tags_for_task(task_id)}


@router.post("/tasks/{task_id}/tags/{tag_id}")
async def add_tag_to_task(
    task_id: str,
    tag_id: str,
    user_id: str = Depends(get_current_user_id),
    service: TagService = Depends(get_tag_service),
) -> dict:
    added = await service.add_tag_to_task(user_id, task_id, tag_id)
    return {"task_id": task_id, "tag_id": tag_id, "added": added}


@router.delete("/tasks/{task_id}/tags/{tag_id}")
async def remove_tag_from_task(
    task_id: str,
    tag_id: str,
    user_id: str = Depends(get_current_user_id),
    service: TagService = Depends(get_tag_service),
) -> dict:
    removed = await service.remove_tag_from_task(user_id, task_id, tag_id)
    return {"task_id": task_id, "tag_id": tag_id, "removed": removed}
