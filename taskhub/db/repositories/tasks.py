"""SQLite implementation of TaskRepository.

A task's owning user is recorded twice: in ``tasks.assigned_user_id`` and as a
``user_tasks`` row. Create and update keep the two in step inside one
transaction.
"""
from __future__ import annotations

import logging
import sqlite3

import aiosqlite

from taskhub.db.repositories.links import (
    link,
    purge_task_links,
    repoint_owner,
    tags_by_task,
    tags_for_task,
)
from taskhub.db.rows import task_from_row
from taskhub.db.transactions import hold_sqlite, sqlite_transaction
from taskhub.db.updates import TASK_FIELDS, changes_from, plan_update
from taskhub.errors import NotFoundError, PersistenceError
from taskhub.models import Tag, Task, TaskUpdate

logger = logging.getLogger("taskhub.db")

_SELECT_TASK = "SELECT id, title, description, assigned_user_id FROM tasks"


class SqliteTaskRepository:
    """SQLite-backed task storage."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def create(self, task: Task) -> int:
        if task.assignedUserId is None:
            raise ValueError("assignedUserId is required to create a task")

        async with sqlite_transaction(self.db, "create task"):
            async with self.db.execute(
                "INSERT INTO tasks (title, description, assigned_user_id) VALUES (?, ?, ?)",
                (task.title, task.description, task.assignedUserId),
            ) as cur:
                if cur.rowcount == 0:
                    raise PersistenceError("Creating task failed, no rows affected.")
                if not cur.lastrowid:
                    raise PersistenceError("Creating task failed, no ID obtained.")
                task_id = int(cur.lastrowid)
            await self.db.execute(
                "INSERT INTO user_tasks (user_id, task_id) VALUES (?, ?)",
                (task.assignedUserId, task_id),
            )
        task.id = task_id
        logger.debug("Task created id=%s user=%s", task_id, task.assignedUserId)
        return task_id

    async def get_by_id(self, task_id: int) -> Task | None:
        try:
            async with hold_sqlite(self.db), self.db.execute(f"{_SELECT_TASK} WHERE id = ?", (task_id,)) as cur:
                row = await cur.fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Error retrieving task ID: {task_id}") from exc
        if not row:
            return None
        task = task_from_row(row)
        task.tags = await tags_for_task(self.db, task_id)
        return task

    async def list_all(self) -> list[Task]:
        try:
            async with hold_sqlite(self.db), self.db.execute(f"{_SELECT_TASK} ORDER BY id") as cur:
                rows = await cur.fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError("Error retrieving tasks") from exc
        linked = await tags_by_task(self.db)
        tasks = [task_from_row(r) for r in rows]
        for task in tasks:
            task.tags = linked.get(task.id, [])
        return tasks

    async def update(self, task_id: int, changes: TaskUpdate) -> None:
        async with sqlite_transaction(self.db, "update task"):
            async with self.db.execute(f"{_SELECT_TASK} WHERE id = ?", (task_id,)) as cur:
                current = await cur.fetchone()
            if current is None:
                raise NotFoundError("Task", task_id)

            plan = plan_update("tasks", task_id, current, changes_from(changes, TASK_FIELDS))
            if plan is None:
                logger.debug("Task %s unchanged; no UPDATE issued", task_id)
                return
            await self.db.execute(plan.sql, plan.params)

            if "assigned_user_id" in plan.changed:
                await repoint_owner(self.db, task_id, changes.assignedUserId)

    async def delete(self, task_id: int) -> None:
        async with sqlite_transaction(self.db, "delete task"):
            await purge_task_links(self.db, task_id)
            async with self.db.execute("DELETE FROM tasks WHERE id = ?", (task_id,)) as cur:
                if cur.rowcount == 0:
                    raise NotFoundError("Task", task_id)

    async def assign_tag(self, task_id: int, tag_id: int) -> bool:
        return await link(self.db, "task_tag", task_id, tag_id)

    async def get_tags(self, task_id: int) -> list[Tag]:
        return await tags_for_task(self.db, task_id)
