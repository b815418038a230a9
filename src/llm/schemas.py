from __future__ import annotations
from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field

from taskspace.models import Priority


class ParsedTask(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    priority: Optional[Priority] = None
    due_date: Optional[str] = None  # YYYY-MM-DD
    time: Optional[str] = None  # HH:MM
    deadline: Optional[datetime] = None
    tags: List[str] = Field(default_factory=list)


class SubtaskSuggestions(BaseModel):
    suggestions: List[str] = Field(default_factory=list)


class PhotoSubtask(BaseModel):
    title: str
    notes: Optional[str] = None


class PhotoTask(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    location: Optional[str] = None
    time: Optional[str] = None
    due_date: Optional[str] = None
    type: str = "main"
    priority: Optional[Priority] = None
    suggested_tags: List[str] = Field(default_factory=list)
    subtasks: List[PhotoSubtask] = Field(default_factory=list)


class PhotoAnalysis(BaseModel):
    tasks: List[PhotoTask] = Field(default_factory=list)
