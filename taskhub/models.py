"""Pydantic models for users, tasks, tags and their partial updates."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, field_validator


def require_text(value: Optional[str]) -> Optional[str]:
    if value is not None and not value.strip():
        raise ValueError("must not be blank")
    return value


# ── Entities ───────────────────────────────────────────────────────

class User(BaseModel):
    id: Optional[int] = None
    name: str
    tasks: list[Task] = Field(default_factory=list)  # derived via user_tasks


class Task(BaseModel):
    id: Optional[int] = None
    title: str
    description: Optional[str] = None
    assignedUserId: Optional[int] = None
    tags: list[Tag] = Field(default_factory=list)  # derived via task_tag


class Tag(BaseModel):
    id: Optional[int] = None
    name: str
    tasks: list[Task] = Field(default_factory=list)  # derived via task_tag

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: Optional[str]) -> Optional[str]:
        return require_text(value)


# ── Partial updates (None = leave unchanged) ───────────────────────

class UserUpdate(BaseModel):
    name: Optional[str] = None


class TaskUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    assignedUserId: Optional[int] = None


class TagUpdate(BaseModel):
    name: Optional[str] = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: Optional[str]) -> Optional[str]:
        return require_text(value)


User.model_rebuild()
Task.model_rebuild()
Tag.model_rebuild()
