from __future__ import annotations

import logging
from typing import Iterable, List

from storage.base import Repository
from taskspace.errors import InvalidRequestError, NotFoundError
from taskspace.models import Tag, TagCreate, TagUpdate

logger = logging.getLogger(__name__)


class TagService:
    def __init__(self, repo: Repository):
        self.repo = repo

    async def get_owned(self, user_id: str, tag_id: str) -> Tag:
        tag = await self.repo.get_tag(tag_id)
        if tag is None or tag.user_id != user_id:
            raise NotFoundError(f"Tag {tag_id} not found")
        return tag

    async def _check_unique(self, user_id: str, name: str, exclude_id: str = None) -> None:
        for tag in await self.repo.list_tags(user_id):
            if tag.name.lower() == name.lower() and tag.id != exclude_id:
                raise InvalidRequestError(f'Tag "{name}" already exists')

    async def list_tags(self, user_id: str) -> List[Tag]:
        return await self.repo.list_tags(user_id)

    async def create_tag(self, user_id: str, payload: TagCreate) -> Tag:
        await self._check_unique(user_id, payload.name)
        tag = await self.repo.insert_tag(user_id, payload.name, payload.color)
        logger.info(f"Created tag {tag.id} ({tag.name}) for user {user_id}")
        return tag

    async def update_tag(self, user_id: str, tag_id: str, payload: TagUpdate) -> Tag:
        await self.get_owned(user_id, tag_id)
        fields = payload.model_dump(exclude_unset=True, exclude_none=True)
        if "name" in fields:
            await self._check_unique(user_id, fields["name"], exclude_id=tag_id)
        return await self.repo.update_tag(tag_id, fields)

    async def delete_tag(self, user_id: str, tag_id: str) -> None:
        await self.get_owned(user_id, tag_id)
        await self.repo.delete_tag(tag_id)
        logger.info(f"Deleted tag {tag_id}")

    async def tags_for_task(self, task_id: str) -> List[Tag]:
        return await self.repo.tags_by_ids(await self.repo.task_tag_ids(task_id))

    async def add_tag_to_task(self, user_id: str, task_id: str, tag_id: str) -> bool:
        await self.check_task(user_id, task_id)
        await self.get_owned(user_id, tag_id)
        return await self.repo.add_task_tag(task_id, tag_id)

    async def remove_tag_from_task(self, user_id: str, task_id: str, tag_id: str) -> bool:
        await self.check_task(user_id, task_id)
        return await self.repo.remove_task_tag(task_id, tag_id)

    async def resolve_tag_names(self, user_id: str, names: Iterable[str]) -> List[Tag]:
        """Match detected tag names against the user's tags, ignoring case."""
        by_name = {t.name.lower(): t for t in await self.repo.list_tags(user_id)}
        out: List[Tag] = []
        for name in names:
            tag = by_name.get((name or "").strip().lower())
            if tag is not None and tag not in out:
                out.append(tag)
        return out

    async def check_task(self, user_id: str, task_id: str) -> None:
        task = await self.repo.get_task(task_id)
        if task is None or task.user_id != user_id:
            raise NotFoundError(f"Task {task_id} not found")
