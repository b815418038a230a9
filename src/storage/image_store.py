"""
Task image files on local disk.

Files live under IMAGE_STORAGE_DIR at `{user}/{task}/{kind}-{ms}.{ext}` and
are served back through IMAGE_PUBLIC_BASE_URL by the attachments router.
"""

import asyncio
import logging
import os
import pathlib
import time
from typing import Literal, Optional

from taskspace.errors import InvalidRequestError, NotFoundError

logger = logging.getLogger(__name__)

IMAGE_STORAGE_DIR = os.getenv("IMAGE_STORAGE_DIR", "data/task-images")
IMAGE_PUBLIC_BASE_URL = os.getenv("IMAGE_PUBLIC_BASE_URL", "/files")

MAX_IMAGE_BYTES = 10 * 1024 * 1024
ALLOWED_MIME_TYPES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
}

ImageKind = Literal["attachment", "background"]


def validate_image(mime_type: Optional[str], size: int) -> None:
    if mime_type not in ALLOWED_MIME_TYPES:
        raise InvalidRequestError("Invalid file type. Only JPEG, PNG, GIF, and WebP are allowed.")
    if size > MAX_IMAGE_BYTES:
        raise InvalidRequestError("File size exceeds 10MB limit")


def build_storage_path(
    user_id: str,
    task_id: str,
    kind: ImageKind,
    file_name: str,
    mime_type: Optional[str] = None,
    now_ms: Optional[int] = None,
) -> str:
    ext = pathlib.PurePath(file_name).suffix.lstrip(".").lower()
    if not ext:
        ext = ALLOWED_MIME_TYPES.get(mime_type or "", "bin")
    ms = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{user_id}/{task_id}/{kind}-{ms}.{ext}"


class ImageStore:
    def __init__(self, root: str = IMAGE_STORAGE_DIR, public_base_url: str = IMAGE_PUBLIC_BASE_URL):
        self.root = pathlib.Path(root).resolve()
        self.public_base_url = public_base_url.rstrip("/")

    def resolve(self, storage_path: str) -> pathlib.Path:
        """Absolute path for a storage path, refusing anything outside root."""
        path = (self.root / storage_path).resolve()
        if path != self.root and self.root not in path.parents:
            raise NotFoundError("File not found")
        return path

    def public_url(self, storage_path: str) -> str:
        return f"{self.public_base_url}/{storage_path}"

    def storage_path_from_url(self, url: str) -> Optional[str]:
        prefix = self.public_base_url + "/"
        if url.startswith(prefix):
            return url[len(prefix):]
        return None

    async def save(self, storage_path: str, data: bytes) -> None:
        path = self.resolve(storage_path)

        def _write():
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        await asyncio.to_thread(_write)
        logger.info(f"Stored image {storage_path} ({len(data)} bytes)")

    async def delete(self, storage_path: str) -> bool:
        """Remove a file. Failures are logged, never raised."""
        try:
            path = self.resolve(storage_path)
            await asyncio.to_thread(path.unlink)
        except (OSError, NotFoundError) as e:
            logger.warning(f"Failed to remove image file {storage_path}: {e}")
            return False
        return True
