import logging
from datetime import datetime
from typing import Optional

from extraction.dates import current_date_context
from llm.llm_client import LLMClient, extract_json_object
from llm.prompts import PHOTO_SYSTEM, photo_prompt
from llm.providers.base import ImageInput
from llm.schemas import PhotoAnalysis, PhotoSubtask, PhotoTask
from taskspace.errors import InvalidRequestError, TaskspaceError

logger = logging.getLogger(__name__)

NOTHING_DETECTED = "No tasks detected in the image. Please try a clearer photo of your to-do list."
UNPARSEABLE = "Failed to parse AI response. Please try again with a clearer image."


def _trimmed(value) -> Optional[str]:
    if value is None:
        return None
    return str(value).strip()


class PhotoExtractor:
    """Photo of a to-do list -> tasks with subtasks."""

    def __init__(self, llm_client: LLMClient):
        self.llm_client = llm_client

    def analyze_photo(
        self, image_base64: str, mime_type: str = "image/jpeg", now: Optional[datetime] = None
    ) -> PhotoAnalysis:
        if not image_base64:
            raise InvalidRequestError("imageBase64 is required")

        raw = self.llm_client.complete(
            system=PHOTO_SYSTEM,
            user=photo_prompt(current_date_context(now)),
            images=[ImageInput(data_base64=image_base64, mime_type=mime_type or "image/jpeg")],
            max_tokens=2000,
            temperature=0.3,
        )

        data = extract_json_object(raw)
        if data is None:
            raise TaskspaceError(UNPARSEABLE, status_code=500)
        if not isinstance(data.get("tasks"), list):
            raise TaskspaceError("Invalid response format: expected tasks array", status_code=500)

        tasks = []
        for item in data["tasks"]:
            if not isinstance(item, dict) or not str(item.get("title") or "").strip():
                continue
            subtasks = [
                PhotoSubtask(title=str(st["title"]).strip(), notes=_trimmed(st.get("notes")))
                for st in item.get("subtasks") or []
                if isinstance(st, dict) and str(st.get("title") or "").strip()
            ]
            priority = item.get("priority")
            tags = item.get("suggested_tags")
            tasks.append(
                PhotoTask(
                    title=str(item["title"]).strip(),
                    description=_trimmed(item.get("description")),
                    location=_trimmed(item.get("location")),
                    time=_trimmed(item.get("time")),
                    due_date=_trimmed(item.get("due_date")),
                    type=item.get("type") or "main",
                    priority=priority if priority in ("high", "medium", "low") else None,
                    suggested_tags=[str(t) for t in tags] if isinstance(tags, list) else [],
                    subtasks=subtasks,
                )
            )

        if not tasks:
            raise TaskspaceError(NOTHING_DETECTED, status_code=500)
        logger.info(f"Detected {len(tasks)} tasks in photo")
        return PhotoAnalysis(tasks=tasks)
