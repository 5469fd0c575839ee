"""SQLite implementation of UserRepository."""
from __future__ import annotations

import logging
import sqlite3

import aiosqlite

from taskhub.db.repositories.links import link, purge_user_links, tasks_by_user, tasks_for_user
from taskhub.db.rows import user_from_row
from taskhub.db.transactions import hold_sqlite, sqlite_transaction
from taskhub.db.updates import USER_FIELDS, changes_from, plan_update
from taskhub.errors import NotFoundError, PersistenceError
from taskhub.models import Task, User, UserUpdate

logger = logging.getLogger("taskhub.db")


class SqliteUserRepository:
    """SQLite-backed user storage."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def create(self, user: User) -> int:
        async with sqlite_transaction(self.db, "create user"):
            async with self.db.execute("INSERT INTO users (name) VALUES (?)", (user.name,)) as cur:
                if cur.rowcount == 0:
                    raise PersistenceError("Creating user failed, no rows affected.")
                if not cur.lastrowid:
                    raise PersistenceError("Creating user failed, no ID obtained.")
                user_id = int(cur.lastrowid)
        user.id = user_id
        logger.debug("User created id=%s", user_id)
        return user_id

    async def get_by_id(self, user_id: int) -> User | None:
        try:
            async with hold_sqlite(self.db), self.db.execute("SELECT id, name FROM users WHERE id = ?", (user_id,)) as cur:
                row = await cur.fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Error retrieving user ID: {user_id}") from exc
        if not row:
            return None
        user = user_from_row(row)
        user.tasks = await tasks_for_user(self.db, user_id)
        return user

    async def list_all(self) -> list[User]:
        try:
            async with hold_sqlite(self.db), self.db.execute("SELECT id, name FROM users ORDER BY id") as cur:
                rows = await cur.fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError("Error retrieving users") from exc
        linked = await tasks_by_user(self.db)
        users = [user_from_row(r) for r in rows]
        for user in users:
            user.tasks = linked.get(user.id, [])
        return users

    async def update(self, user_id: int, changes: UserUpdate) -> None:
        async with sqlite_transaction(self.db, "update user"):
            async with self.db.execute("SELECT id, name FROM users WHERE id = ?", (user_id,)) as cur:
                current = await cur.fetchone()
            if current is None:
                raise NotFoundError("User", user_id)
            plan = plan_update("users", user_id, current, changes_from(changes, USER_FIELDS))
            if plan is None:
                logger.debug("User %s unchanged; no UPDATE issued", user_id)
                return
            await self.db.execute(plan.sql, plan.params)

    async def delete(self, user_id: int) -> None:
        async with sqlite_transaction(self.db, "delete user"):
            await purge_user_links(self.db, user_id)
            async with self.db.execute("DELETE FROM users WHERE id = ?", (user_id,)) as cur:
                if cur.rowcount == 0:
                    raise NotFoundError("User", user_id)

    async def assign_task(self, user_id: int, task_id: int) -> bool:
        return await link(self.db, "user_tasks", user_id, task_id)

    async def get_tasks(self, user_id: int) -> list[Task]:
        return await tasks_for_user(self.db, user_id)
