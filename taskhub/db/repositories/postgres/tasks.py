"""PostgreSQL implementation of TaskRepository."""
from __future__ import annotations

import logging
from typing import Any

from taskhub.db.repositories.postgres.links import (
    DB_ERRORS,
    affected_rows,
    link,
    purge_task_links,
    repoint_owner,
    tags_by_task,
    tags_for_task,
)
from taskhub.db.rows import task_from_row
from taskhub.db.transactions import postgres_transaction
from taskhub.db.updates import TASK_FIELDS, changes_from, numbered, plan_update
from taskhub.errors import NotFoundError, PersistenceError
from taskhub.models import Tag, Task, TaskUpdate

logger = logging.getLogger("taskhub.db")

_SELECT_TASK = "SELECT id, title, description, assigned_user_id FROM tasks"


class PostgresTaskRepository:
    """PostgreSQL-backed task storage."""

    def __init__(self, db: Any):
        self.db = db

    async def create(self, task: Task) -> int:
        if task.assignedUserId is None:
            raise ValueError("assignedUserId is required to create a task")

        async with postgres_transaction(self.db, "create task") as conn:
            task_id = await conn.fetchval(
                """INSERT INTO tasks (title, description, assigned_user_id)
                   VALUES ($1, $2, $3) RETURNING id""",
                task.title, task.description, task.assignedUserId,
            )
            if task_id is None:
                raise PersistenceError("Creating task failed, no ID obtained.")
            await conn.execute(
                "INSERT INTO user_tasks (user_id, task_id) VALUES ($1, $2)",
                task.assignedUserId, task_id,
            )
        task.id = int(task_id)
        logger.debug("Task created id=%s user=%s", task.id, task.assignedUserId)
        return task.id

    async def get_by_id(self, task_id: int) -> Task | None:
        try:
            row = await self.db.fetchrow(f"{_SELECT_TASK} WHERE id = $1", task_id)
        except DB_ERRORS as exc:
            raise PersistenceError(f"Error retrieving task ID: {task_id}") from exc
        if not row:
            return None
        task = task_from_row(row)
        task.tags = await tags_for_task(self.db, task_id)
        return task

    async def list_all(self) -> list[Task]:
        try:
            rows = await self.db.fetch(f"{_SELECT_TASK} ORDER BY id")
        except DB_ERRORS as exc:
            raise PersistenceError("Error retrieving tasks") from exc
        linked = await tags_by_task(self.db)
        tasks = [task_from_row(r) for r in rows]
        for task in tasks:
            task.tags = linked.get(task.id, [])
        return tasks

    async def update(self, task_id: int, changes: TaskUpdate) -> None:
        async with postgres_transaction(self.db, "update task") as conn:
            current = await conn.fetchrow(f"{_SELECT_TASK} WHERE id = $1", task_id)
            if current is None:
                raise NotFoundError("Task", task_id)

            plan = plan_update("tasks", task_id, current, changes_from(changes, TASK_FIELDS), numbered)
            if plan is None:
                logger.debug("Task %s unchanged; no UPDATE issued", task_id)
                return
            await conn.execute(plan.sql, *plan.params)

            if "assigned_user_id" in plan.changed:
                await repoint_owner(conn, task_id, changes.assignedUserId)

    async def delete(self, task_id: int) -> None:
        async with postgres_transaction(self.db, "delete task") as conn:
            await purge_task_links(conn, task_id)
            status = await conn.execute("DELETE FROM tasks WHERE id = $1", task_id)
            if affected_rows(status) == 0:
                raise NotFoundError("Task", task_id)

    async def assign_tag(self, task_id: int, tag_id: int) -> bool:
        return await link(self.db, "task_tag", task_id, tag_id)

    async def get_tags(self, task_id: int) -> list[Tag]:
        return await tags_for_task(self.db, task_id)
