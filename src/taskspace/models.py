from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Literal, Optional, List

from pydantic import BaseModel, Field, field_validator

Priority = Literal["high", "medium", "low"]
BackgroundDisplayMode = Literal["thumbnail", "icon"]
StatusFilter = Literal["all", "active", "completed"]
SortKey = Literal["created", "deadline", "priority", "title"]

DEFAULT_WORKSPACE_NAME = "Main"
DEFAULT_WORKSPACE_ICON = "📋"
DEFAULT_WORKSPACE_COLOR = "#e1e1e1"

_HEX_COLOR = re.compile(r"^#[0-9a-fA-F]{6}$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _clean_title(v: str) -> str:
    v2 = v.strip()
    if not v2:
        raise ValueError("title must not be blank")
    return v2


def _clean_color(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    if not _HEX_COLOR.match(v):
        raise ValueError("color must be a #rrggbb hex string")
    return v.lower()


class Workspace(BaseModel):
    id: str
    user_id: str
    name: str
    icon: str = DEFAULT_WORKSPACE_ICON
    color: str = DEFAULT_WORKSPACE_COLOR
    order: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class WorkspaceCreate(BaseModel):
    name: str = Field(..., min_length=1)
    icon: str = DEFAULT_WORKSPACE_ICON
    color: str = DEFAULT_WORKSPACE_COLOR

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        return _clean_title(v)

    @field_validator("color")
    @classmethod
    def color_is_hex(cls, v: str) -> str:
        return _clean_color(v)


class WorkspaceUpdate(BaseModel):
    name: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: Optional[str]) -> Optional[str]:
        return _clean_title(v) if v is not None else v

    @field_validator("color")
    @classmethod
    def color_is_hex(cls, v: Optional[str]) -> Optional[str]:
        return _clean_color(v)


class Task(BaseModel):
    id: str
    user_id: str
    workspace_id: Optional[str] = None
    parent_task_id: Optional[str] = None

    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    priority: Optional[Priority] = None
    deadline: Optional[datetime] = None

    completed: bool = False
    completed_at: Optional[datetime] = None
    archived: bool = False
    position: Optional[int] = None

    background_image_url: Optional[str] = None
    background_image_display_mode: Optional[BackgroundDisplayMode] = None
    color_id: Optional[int] = Field(None, ge=1, le=11)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class TaskNode(Task):
    subtasks: List["TaskNode"] = Field(default_factory=list)


class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    priority: Optional[Priority] = None
    deadline: Optional[datetime] = None
    workspace_id: Optional[str] = None
    parent_task_id: Optional[str] = None
    color_id: Optional[int] = Field(None, ge=1, le=11)
    tag_ids: List[str] = Field(default_factory=list)

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        return _clean_title(v)

    @field_validator("description")
    @classmethod
    def description_or_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


class TaskUpdate(BaseModel):
    """Partial update. Only fields that were explicitly sent are applied."""

    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[Priority] = None
    deadline: Optional[datetime] = None
    completed: Optional[bool] = None
    archived: Optional[bool] = None
    position: Optional[int] = None
    color_id: Optional[int] = Field(None, ge=1, le=11)
    workspace_id: Optional[str] = None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: Optional[str]) -> Optional[str]:
        return _clean_title(v) if v is not None else v

    @field_validator("description")
    @classmethod
    def description_or_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


class Tag(BaseModel):
    id: str
    user_id: str
    name: str
    color: str


class TagCreate(BaseModel):
    name: str = Field(..., min_length=1)
    color: str = "#3b82f6"

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        return _clean_title(v)

    @field_validator("color")
    @classmethod
    def color_is_hex(cls, v: str) -> str:
        return _clean_color(v)


class TagUpdate(BaseModel):
    name: Optional[str] = None
    color: Optional[str] = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: Optional[str]) -> Optional[str]:
        return _clean_title(v) if v is not None else v

    @field_validator("color")
    @classmethod
    def color_is_hex(cls, v: Optional[str]) -> Optional[str]:
        return _clean_color(v)


class TaskLink(BaseModel):
    id: str
    task_id: str
    url: str
    display_name: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class TaskLinkIn(BaseModel):
    url: str
    display_name: Optional[str] = None

    @field_validator("url")
    @classmethod
    def url_is_http(cls, v: str) -> str:
        v2 = v.strip()
        if not (v2.startswith("http://") or v2.startswith("https://")):
            raise ValueError("url must start with http:// or https://")
        return v2

    @field_validator("display_name")
    @classmethod
    def display_name_or_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


class TaskImage(BaseModel):
    id: str
    task_id: str
    storage_path: str
    file_name: str
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class Calendar(BaseModel):
    id: str
    user_id: str
    name: str
    color: str = "#3b82f6"
    is_primary: bool = False
    google_calendar_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class CalendarEvent(BaseModel):
    id: str
    summary: str = "Untitled Event"
    description: Optional[str] = None
    start: str
    end: str
    color_id: Optional[str] = None
    location: Optional[str] = None
    calendar_id: Optional[str] = None
    color: Optional[str] = None
