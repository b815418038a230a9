import logging

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import FileResponse
from pydantic import BaseModel

from api.dependencies import get_attachment_service, get_current_user_id, get_image_store
from storage.image_store import ImageStore
from taskspace.attachments import AttachmentService
from taskspace.errors import NotFoundError
from taskspace.models import BackgroundDisplayMode, Task, TaskLink, TaskLinkIn

router = APIRouter()
logger = logging.getLogger(__name__)


class BackgroundModeIn(BaseModel):
    display_mode: BackgroundDisplayMode


def _image_out(service: AttachmentService, image) -> dict:
    return {**image.model_dump(), "url": service.image_url(image)}


# Links

@router.get("/tasks/{task_id}/links")
async def list_links(
    task_id: str,
    user_id: str = Depends(get_current_user_id),
    service: AttachmentService = Depends(get_attachment_service),
) -> dict:
    return {"links": await service.list_links(user_id, task_id)}


@router.post("/tasks/{task_id}/links", status_code=201)
async def add_link(
    task_id: str,
    payload: TaskLinkIn,
    user_id: str = Depends(get_current_user_id),
    service: AttachmentService = Depends(get_attachment_service),
) -> TaskLink:
    return await service.add_link(user_id, task_id, payload)


@router.patch("/links/{link_id}")
async def update_link(
    link_id: str,
    payload: TaskLinkIn,
    user_id: str = Depends(get_current_user_id),
    service: AttachmentService = Depends(get_attachment_service),
) -> TaskLink:
    return await service.update_link(user_id, link_id, payload)


@router.delete("/links/{link_id}")
async def delete_link(
    link_id: str,
    user_id: str = Depends(get_current_user_id),
    service: AttachmentService = Depends(get_attachment_service),
) -> dict:
    await service.delete_link(user_id, link_id)
    return {"deleted": link_id}


# Images

@router.get("/tasks/{task_id}/images")
async def list_images(
    task_id: str,
    user_id: str = Depends(get_current_user_id),
    service: AttachmentService = Depends(get_attachment_service),
) -> dict:
    images = await service.list_images(user_id, task_id)
    return {"images": [_image_out(service, i) for i in images]}


@router.post("/tasks/{task_id}/images", status_code=201)
async def upload_image(
    task_id: str,
    file: UploadFile = File(...),
    user_id: str = Depends(get_current_user_id),
    service: AttachmentService = Depends(get_attachment_service),
) -> dict:
    data = await file.read()
    image = await service.add_image(user_id, task_id, file.filename or "image", file.content_type, data)
    return _image_out(service, image)


@router.delete("/images/{image_id}")
async def delete_image(
    image_id: str,
    user_id: str = Depends(get_current_user_id),
    service: AttachmentService = Depends(get_attachment_service),
) -> dict:
    await service.delete_image(user_id, image_id)
    return {"deleted": image_id}


# Background image

@router.put("/tasks/{task_id}/background")
async def set_background(
    task_id: str,
    file: UploadFile = File(...),
    display_mode: BackgroundDisplayMode = Form("thumbnail"),
    user_id: str = Depends(get_current_user_id),
    service: AttachmentService = Depends(get_attachment_service),
) -> Task:
    data = await file.read()
    return await service.set_background(
        user_id, task_id, file.filename or "background", file.content_type, data, display_mode
    )


@router.patch("/tasks/{task_id}/background")
async def set_background_mode(
    task_id: str,
    payload: BackgroundModeIn,
    user_id: str = Depends(get_current_user_id),
    service: AttachmentService = Depends(get_attachment_service),
) -> Task:
    return await service.set_background_mode(user_id, task_id, payload.display_mode)


@router.delete("/tasks/{task_id}/background")
async def clear_background(
    task_id: str,
    user_id: str = Depends(get_current_user_id),
    service: AttachmentService = Depends(get_attachment_service),
) -> Task:
    return await service.clear_background(user_id, task_id)


@router.get("/files/{storage_path:path}")
async def serve_file(
    storage_path: str,
    user_id: str = Depends(get_current_user_id),
    images: ImageStore = Depends(get_image_store),
) -> FileResponse:
    # Paths start with the owner's id
    if storage_path.split("/", 1)[0] != user_id:
        raise NotFoundError("File not found")
    path = images.resolve(storage_path)
    if not path.is_file():
        raise NotFoundError("File not found")
    return FileResponse(path)
