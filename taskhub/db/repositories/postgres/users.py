"""PostgreSQL implementation of UserRepository."""
from __future__ import annotations

import logging
from typing import Any

from taskhub.db.repositories.postgres.links import (
    DB_ERRORS,
    affected_rows,
    link,
    purge_user_links,
    tasks_by_user,
    tasks_for_user,
)
from taskhub.db.rows import user_from_row
from taskhub.db.transactions import postgres_transaction
from taskhub.db.updates import USER_FIELDS, changes_from, numbered, plan_update
from taskhub.errors import NotFoundError, PersistenceError
from taskhub.models import Task, User, UserUpdate

logger = logging.getLogger("taskhub.db")


class PostgresUserRepository:
    """PostgreSQL-backed user storage."""

    def __init__(self, db: Any):
        self.db = db

    async def create(self, user: User) -> int:
        async with postgres_transaction(self.db, "create user") as conn:
            user_id = await conn.fetchval(
                "INSERT INTO users (name) VALUES ($1) RETURNING id", user.name
            )
            if user_id is None:
                raise PersistenceError("Creating user failed, no ID obtained.")
        user.id = int(user_id)
        logger.debug("User created id=%s", user.id)
        return user.id

    async def get_by_id(self, user_id: int) -> User | None:
        try:
            row = await self.db.fetchrow("SELECT id, name FROM users WHERE id = $1", user_id)
        except DB_ERRORS as exc:
            raise PersistenceError(f"Error retrieving user ID: {user_id}") from exc
        if not row:
            return None
        user = user_from_row(row)
        user.tasks = await tasks_for_user(self.db, user_id)
        return user

    async def list_all(self) -> list[User]:
        try:
            rows = await self.db.fetch("SELECT id, name FROM users ORDER BY id")
        except DB_ERRORS as exc:
            raise PersistenceError("Error retrieving users") from exc
        linked = await tasks_by_user(self.db)
        users = [user_from_row(r) for r in rows]
        for user in users:
            user.tasks = linked.get(user.id, [])
        return users

    async def update(self, user_id: int, changes: UserUpdate) -> None:
        async with postgres_transaction(self.db, "update user") as conn:
            current = await conn.fetchrow("SELECT id, name FROM users WHERE id = $1", user_id)
            if current is None:
                raise NotFoundError("User", user_id)
            plan = plan_update("users", user_id, current, changes_from(changes, USER_FIELDS), numbered)
            if plan is None:
                logger.debug("User %s unchanged; no UPDATE issued", user_id)
                return
            await conn.execute(plan.sql, *plan.params)

    async def delete(self, user_id: int) -> None:
        async with postgres_transaction(self.db, "delete user") as conn:
            await purge_user_links(conn, user_id)
            status = await conn.execute("DELETE FROM users WHERE id = $1", user_id)
            if affected_rows(status) == 0:
                raise NotFoundError("User", user_id)

    async def assign_task(self, user_id: int, task_id: int) -> bool:
        return await link(self.db, "user_tasks", user_id, task_id)

    async def get_tasks(self, user_id: int) -> list[Task]:
        return await tasks_for_user(self.db, user_id)
