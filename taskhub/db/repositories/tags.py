"""SQLite implementation of TagRepository."""
from __future__ import annotations

import logging
import sqlite3

import aiosqlite

from taskhub.db.repositories.links import link, purge_tag_links, tasks_by_tag, tasks_for_tag
from taskhub.db.rows import tag_from_row
from taskhub.db.transactions import hold_sqlite, sqlite_transaction
from taskhub.db.updates import TAG_FIELDS, changes_from, plan_update
from taskhub.errors import NotFoundError, PersistenceError
from taskhub.models import Tag, TagUpdate, Task

logger = logging.getLogger("taskhub.db")


class SqliteTagRepository:
    """SQLite-backed tag storage."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def create(self, tag: Tag) -> int:
        async with sqlite_transaction(self.db, "create tag"):
            async with self.db.execute("INSERT INTO tags (name) VALUES (?)", (tag.name,)) as cur:
                if cur.rowcount == 0:
                    raise PersistenceError("Creating tag failed, no rows affected.")
                if not cur.lastrowid:
                    raise PersistenceError("Creating tag failed, no ID obtained.")
                tag_id = int(cur.lastrowid)
        tag.id = tag_id
        logger.debug("Tag created id=%s", tag_id)
        return tag_id

    async def get_by_id(self, tag_id: int) -> Tag | None:
        try:
            async with hold_sqlite(self.db), self.db.execute("SELECT id, name FROM tags WHERE id = ?", (tag_id,)) as cur:
                row = await cur.fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Error retrieving tag ID: {tag_id}") from exc
        if not row:
            return None
        tag = tag_from_row(row)
        tag.tasks = await tasks_for_tag(self.db, tag_id)
        return tag

    async def list_all(self) -> list[Tag]:
        try:
            async with hold_sqlite(self.db), self.db.execute("SELECT id, name FROM tags ORDER BY id") as cur:
                rows = await cur.fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError("Error retrieving tags") from exc
        linked = await tasks_by_tag(self.db)
        tags = [tag_from_row(r) for r in rows]
        for tag in tags:
            tag.tasks = linked.get(tag.id, [])
        return tags

    async def update(self, tag_id: int, changes: TagUpdate) -> None:
        async with sqlite_transaction(self.db, "update tag"):
            async with self.db.execute("SELECT id, name FROM tags WHERE id = ?", (tag_id,)) as cur:
                current = await cur.fetchone()
            if current is None:
                raise NotFoundError("Tag", tag_id)
            plan = plan_update("tags", tag_id, current, changes_from(changes, TAG_FIELDS))
            if plan is None:
                logger.debug("Tag %s unchanged; no UPDATE issued", tag_id)
                return
            await self.db.execute(plan.sql, plan.params)

    async def delete(self, tag_id: int) -> None:
        async with sqlite_transaction(self.db, "delete tag"):
            await purge_tag_links(self.db, tag_id)
            async with self.db.execute("DELETE FROM tags WHERE id = ?", (tag_id,)) as cur:
                if cur.rowcount == 0:
                    raise NotFoundError("Tag", tag_id)

    async def assign_task(self, tag_id: int, task_id: int) -> bool:
        return await link(self.db, "task_tag", task_id, tag_id)

    async def get_tasks(self, tag_id: int) -> list[Task]:
        return await tasks_for_tag(self.db, tag_id)
