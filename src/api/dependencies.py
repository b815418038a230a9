import os
from typing import Optional

from fastapi import Depends, Header

from api import state
from extraction.photo_extractor import PhotoExtractor
from extraction.subtask_generator import SubtaskGenerator
from extraction.task_parser import TaskParser
from integration.calendar_integration import CalendarIntegration
from llm.llm_client import LLMClient
from storage.base import Repository
from storage.google_auth import GoogleTokenStore
from storage.image_store import ImageStore
from storage.memory_store import InMemoryRepository
from sync.change_feed import ChangeFeed
from sync.undo import UndoManager
from taskspace.attachments import AttachmentService
from taskspace.errors import NotConnectedError
from taskspace.tags import TagService
from taskspace.tasks import TaskService
from taskspace.workspaces import WorkspaceService

DEFAULT_USER_ID = os.getenv("DEFAULT_USER_ID", "default")


def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    return (x_user_id or "").strip() or DEFAULT_USER_ID


def get_change_feed() -> ChangeFeed:
    if state.feed is None:
        state.feed = ChangeFeed()
    return state.feed


def get_repository() -> Repository:
    # Startup has not run (TestClient without lifespan, ASGI transports)
    if state.repo is None:
        state.repo = InMemoryRepository(get_change_feed())
        state.backend_type = "in-memory"
    return state.repo


def get_undo_manager() -> UndoManager:
    if state.undo_manager is None:
        state.undo_manager = UndoManager()
    return state.undo_manager


def get_token_store(repo: Repository = Depends(get_repository)) -> GoogleTokenStore:
    if state.token_store is None:
        state.token_store = GoogleTokenStore(repo)
    return state.token_store


def get_image_store() -> ImageStore:
    if state.image_store is None:
        state.image_store = ImageStore()
    return state.image_store


def get_llm_client() -> LLMClient:
    if state.llm_client is None:
        state.llm_client = LLMClient()
    return state.llm_client


def get_workspace_service(repo: Repository = Depends(get_repository)) -> WorkspaceService:
    return WorkspaceService(repo)


def get_task_service(
    repo: Repository = Depends(get_repository),
    undo: UndoManager = Depends(get_undo_manager),
) -> TaskService:
    return TaskService(repo, undo)


def get_tag_service(repo: Repository = Depends(get_repository)) -> TagService:
    return TagService(repo)


def get_attachment_service(
    repo: Repository = Depends(get_repository),
    images: ImageStore = Depends(get_image_store),
) -> AttachmentService:
    return AttachmentService(repo, images)


def get_task_parser(llm: LLMClient = Depends(get_llm_client)) -> TaskParser:
    return TaskParser(llm_client=llm)


def get_subtask_generator(llm: LLMClient = Depends(get_llm_client)) -> SubtaskGenerator:
    return SubtaskGenerator(llm_client=llm)


def get_photo_extractor(llm: LLMClient = Depends(get_llm_client)) -> PhotoExtractor:
    return PhotoExtractor(llm_client=llm)


async def get_calendar_integration(
    user_id: str = Depends(get_current_user_id),
    token_store: GoogleTokenStore = Depends(get_token_store),
) -> CalendarIntegration:
    credentials = await token_store.get_credentials(user_id)
    if credentials is None:
        raise NotConnectedError()
    credentials = await token_store.refresh_if_needed(user_id, credentials)
    return CalendarIntegration(credentials=credentials)
