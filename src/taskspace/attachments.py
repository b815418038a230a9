from __future__ import annotations

import logging
from typing import List, Optional

from storage.base import Repository
from storage.image_store import ImageStore, build_storage_path, validate_image
from taskspace.errors import NotFoundError
from taskspace.models import BackgroundDisplayMode, Task, TaskImage, TaskLink, TaskLinkIn, utcnow
from taskspace.tasks import is_temp_id

logger = logging.getLogger(__name__)


class AttachmentService:
    """Links and images attached to tasks.

    Tasks that only exist optimistically on a device (temporary ids) have no
    attachments yet, so listing them yields nothing instead of an error.
    """

    def __init__(self, repo: Repository, images: ImageStore):
        self.repo = repo
        self.images = images

    async def _task(self, user_id: str, task_id: str) -> Task:
        task = await self.repo.get_task(task_id)
        if task is None or task.user_id != user_id:
            raise NotFoundError(f"Task {task_id} not found")
        return task

    # Links

    async def list_links(self, user_id: str, task_id: str) -> List[TaskLink]:
        if is_temp_id(task_id):
            return []
        await self._task(user_id, task_id)
        return await self.repo.list_links(task_id)

    async def add_link(self, user_id: str, task_id: str, payload: TaskLinkIn) -> TaskLink:
        await self._task(user_id, task_id)
        return await self.repo.insert_link(task_id, payload.url, payload.display_name)

    async def _owned_link(self, user_id: str, link_id: str) -> TaskLink:
        link = await self.repo.get_link(link_id)
        if link is None:
            raise NotFoundError(f"Link {link_id} not found")
        await self._task(user_id, link.task_id)
        return link

    async def update_link(self, user_id: str, link_id: str, payload: TaskLinkIn) -> TaskLink:
        await self._owned_link(user_id, link_id)
        return await self.repo.update_link(
            link_id, {"url": payload.url, "display_name": payload.display_name, "updated_at": utcnow()}
        )

    async def delete_link(self, user_id: str, link_id: str) -> None:
        await self._owned_link(user_id, link_id)
        await self.repo.delete_link(link_id)

    # Images

    async def list_images(self, user_id: str, task_id: str) -> List[TaskImage]:
        if is_temp_id(task_id):
            return []
        await self._task(user_id, task_id)
        return await self.repo.list_images(task_id)

    async def add_image(
        self, user_id: str, task_id: str, file_name: str, mime_type: Optional[str], data: bytes
    ) -> TaskImage:
        await self._task(user_id, task_id)
        validate_image(mime_type, len(data))
        path = build_storage_path(user_id, task_id, "attachment", file_name, mime_type)
        await self.images.save(path, data)
        return await self.repo.insert_image(task_id, path, file_name, len(data), mime_type)

    async def delete_image(self, user_id: str, image_id: str) -> None:
        image = await self.repo.get_image(image_id)
        if image is None:
            raise NotFoundError(f"Image {image_id} not found")
        await self._task(user_id, image.task_id)
        # Row first; a leftover file is only logged
        await self.repo.delete_image(image_id)
        await self.images.delete(image.storage_path)

    def image_url(self, image: TaskImage) -> str:
        return self.images.public_url(image.storage_path)

    # Background image

    async def set_background(
        self,
        user_id: str,
        task_id: str,
        file_name: str,
        mime_type: Optional[str],
        data: bytes,
        display_mode: BackgroundDisplayMode = "thumbnail",
    ) -> Task:
        task = await self._task(user_id, task_id)
        validate_image(mime_type, len(data))
        path = build_storage_path(user_id, task_id, "background", file_name, mime_type)
        await self.images.save(path, data)
        updated = await self.repo.update_task(
            task_id,
            {
                "background_image_url": self.images.public_url(path),
                "background_image_display_mode": display_mode,
                "updated_at": utcnow(),
            },
        )
        if task.background_image_url != updated.background_image_url:
            await self._drop_background_file(task)
        return updated

    async def set_background_mode(self, user_id: str, task_id: str, display_mode: BackgroundDisplayMode) -> Task:
        await self._task(user_id, task_id)
        return await self.repo.update_task(
            task_id, {"background_image_display_mode": display_mode, "updated_at": utcnow()}
        )

    async def clear_background(self, user_id: str, task_id: str) -> Task:
        task = await self._task(user_id, task_id)
        updated = await self.repo.update_task(
            task_id,
            {"background_image_url": None, "background_image_display_mode": None, "updated_at": utcnow()},
        )
        await self._drop_background_file(task)
        return updated

    async def _drop_background_file(self, task: Task) -> None:
        if not task.background_image_url:
            return
        path = self.images.storage_path_from_url(task.background_image_url)
        if path:
            await self.images.delete(path)
