"""API routers for users, tasks and tags."""
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Request, Response
from pydantic import BaseModel, field_validator

from taskhub.db.factory import get_tag_repository, get_task_repository, get_user_repository
from taskhub.errors import NotFoundError
from taskhub.models import Tag, TagUpdate, Task, TaskUpdate, User, UserUpdate, require_text


class UserCreate(BaseModel):
    name: str


class TaskCreate(BaseModel):
    title: str
    description: Optional[str] = None
    assignedUserId: int


class TagCreate(BaseModel):
    name: str

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        return require_text(value)


class Created(BaseModel):
    id: int


def _get_db(request: Any):
    return request.app.state.db


def _no_content() -> Response:
    return Response(status_code=204)


# ── Users router ────────────────────────────────────────────────────

users_router = APIRouter(prefix="/api/users", tags=["users"])


@users_router.get("", response_model=list[User])
async def list_users(request: Request):
    """Return all users with their linked tasks."""
    return await get_user_repository(_get_db(request)).list_all()


@users_router.post("", response_model=Created, status_code=201)
async def create_user(request: Request, payload: UserCreate):
    repo = get_user_repository(_get_db(request))
    user_id = await repo.create(User(name=payload.name))
    return Created(id=user_id)


@users_router.get("/{user_id}", response_model=User)
async def get_user(request: Request, user_id: int):
    user = await get_user_repository(_get_db(request)).get_by_id(user_id)
    if not user:
        raise NotFoundError("User", user_id)
    return user


@users_router.put("/{user_id}", status_code=204)
async def update_user(request: Request, user_id: int, payload: UserUpdate):
    """Apply a partial update; omitted or null fields are left unchanged."""
    await get_user_repository(_get_db(request)).update(user_id, payload)
    return _no_content()


@users_router.delete("/{user_id}", status_code=204)
async def delete_user(request: Request, user_id: int):
    await get_user_repository(_get_db(request)).delete(user_id)
    return _no_content()


@users_router.get("/{user_id}/tasks", response_model=list[Task])
async def get_user_tasks(request: Request, user_id: int):
    return await get_user_repository(_get_db(request)).get_tasks(user_id)


@users_router.post("/{user_id}/tasks/{task_id}", status_code=204)
async def assign_user_task(request: Request, user_id: int, task_id: int):
    """Link a task to a user. Repeating the call is a no-op."""
    await get_user_repository(_get_db(request)).assign_task(user_id, task_id)
    return _no_content()


# ── Tasks router ────────────────────────────────────────────────────

tasks_router = APIRouter(prefix="/api/tasks", tags=["tasks"])


@tasks_router.get("", response_model=list[Task])
async def list_tasks(request: Request):
    """Return all tasks with their tags."""
    return await get_task_repository(_get_db(request)).list_all()


@tasks_router.post("", response_model=Created, status_code=201)
async def create_task(request: Request, payload: TaskCreate):
    """Create a task owned by ``assignedUserId``."""
    repo = get_task_repository(_get_db(request))
    task = Task(
        title=payload.title,
        description=payload.description,
        assignedUserId=payload.assignedUserId,
    )
    return Created(id=await repo.create(task))


@tasks_router.get("/{task_id}", response_model=Task)
async def get_task(request: Request, task_id: int):
    task = await get_task_repository(_get_db(request)).get_by_id(task_id)
    if not task:
        raise NotFoundError("Task", task_id)
    return task


@tasks_router.put("/{task_id}", status_code=204)
async def update_task(request: Request, task_id: int, payload: TaskUpdate):
    """Apply a partial update. Changing ``assignedUserId`` moves ownership."""
    await get_task_repository(_get_db(request)).update(task_id, payload)
    return _no_content()


@tasks_router.delete("/{task_id}", status_code=204)
async def delete_task(request: Request, task_id: int):
    await get_task_repository(_get_db(request)).delete(task_id)
    return _no_content()


@tasks_router.get("/{task_id}/tags", response_model=list[Tag])
async def get_task_tags(request: Request, task_id: int):
    return await get_task_repository(_get_db(request)).get_tags(task_id)


@tasks_router.post("/{task_id}/tags/{tag_id}", status_code=204)
async def assign_task_tag(request: Request, task_id: int, tag_id: int):
    await get_task_repository(_get_db(request)).assign_tag(task_id, tag_id)
    return _no_content()


# ── Tags router ─────────────────────────────────────────────────────

tags_router = APIRouter(prefix="/api/tags", tags=["tags"])


@tags_router.get("", response_model=list[Tag])
async def list_tags(request: Request):
    return await get_tag_repository(_get_db(request)).list_all()


@tags_router.post("", response_model=Created, status_code=201)
async def create_tag(request: Request, payload: TagCreate):
    repo = get_tag_repository(_get_db(request))
    return Created(id=await repo.create(Tag(name=payload.name)))


@tags_router.get("/{tag_id}", response_model=Tag)
async def get_tag(request: Request, tag_id: int):
    tag = await get_tag_repository(_get_db(request)).get_by_id(tag_id)
    if not tag:
        raise NotFoundError("Tag", tag_id)
    return tag


@tags_router.put("/{tag_id}", status_code=204)
async def update_tag(request: Request, tag_id: int, payload: TagUpdate):
    await get_tag_repository(_get_db(request)).update(tag_id, payload)
    return _no_content()


@tags_router.delete("/{tag_id}", status_code=204)
async def delete_tag(request: Request, tag_id: int):
    await get_tag_repository(_get_db(request)).delete(tag_id)
    return _no_content()


@tags_router.get("/{tag_id}/tasks", response_model=list[Task])
async def get_tag_tasks(request: Request, tag_id: int):
    return await get_tag_repository(_get_db(request)).get_tasks(tag_id)


@tags_router.post("/{tag_id}/tasks/{task_id}", status_code=204)
async def assign_tag_task(request: Request, tag_id: int, task_id: int):
    await get_tag_repository(_get_db(request)).assign_task(tag_id, task_id)
    return _no_content()
