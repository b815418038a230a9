import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from api.dependencies import (
    get_current_user_id,
    get_photo_extractor,
    get_subtask_generator,
    get_tag_service,
    get_task_parser,
)
from api.metrics import LLM_CALLS_TOTAL
from extraction.photo_extractor import PhotoExtractor
from extraction.subtask_generator import SubtaskGenerator
from extraction.task_parser import TaskParser
from taskspace.errors import TaskspaceError
from taskspace.tags import TagService

router = APIRouter(prefix="/ai")
logger = logging.getLogger(__name__)


class ParseTaskIn(BaseModel):
    input: str = ""


class GenerateSubtasksIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    task_title: str = Field("", alias="taskTitle")
    task_description: Optional[str] = Field(None, alias="taskDescription")
    user_input: Optional[str] = Field(None, alias="userInput")


class AnalyzePhotoIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    image_base64: str = Field("", alias="imageBase64")
    image_mime_type: str = Field("image/jpeg", alias="imageMimeType")


async def _run(operation: str, fn, *args):
    """Run a blocking AI helper off the event loop and count the outcome."""
    try:
        result = await asyncio.to_thread(fn, *args)
    except TaskspaceError as e:
        LLM_CALLS_TOTAL.labels(operation=operation, outcome=str(e.status_code)).inc()
        raise
    LLM_CALLS_TOTAL.labels(operation=operation, outcome="ok").inc()
    return result


@router.post("/parse-task")
async def parse_task(
    payload: ParseTaskIn,
    user_id: str = Depends(get_current_user_id),
    parser: TaskParser = Depends(get_task_parser),
    tags: TagService = Depends(get_tag_service),
) -> dict:
    parsed = await _run("parse_task", parser.parse_task, payload.input)
    matched = await tags.resolve_tag_names(user_id, parsed.tags)
    return {**parsed.model_dump(mode="json"), "tag_ids": [t.id for t in matched]}


@router.post("/generate-subtasks")
async def generate_subtasks(
    payload: GenerateSubtasksIn,
    generator: SubtaskGenerator = Depends(get_subtask_generator),
) -> dict:
    suggestions = await _run(
        "generate_subtasks",
        generator.generate_subtasks,
        payload.task_title,
        payload.task_description,
        payload.user_input,
    )
    return {"suggestions": suggestions}


@router.post("/analyze-photo")
async def analyze_photo(
    payload: AnalyzePhotoIn,
    extractor: PhotoExtractor = Depends(get_photo_extractor),
) -> dict:
    analysis = await _run("analyze_photo", extractor.analyze_photo, payload.image_base64, payload.image_mime_type)
    return analysis.model_dump(mode="json")
