"""PostgreSQL implementation of TagRepository."""
from __future__ import annotations

import logging
from typing import Any

from taskhub.db.repositories.postgres.links import (
    DB_ERRORS,
    affected_rows,
    link,
    purge_tag_links,
    tasks_by_tag,
    tasks_for_tag,
)
from taskhub.db.rows import tag_from_row
from taskhub.db.transactions import postgres_transaction
from taskhub.db.updates import TAG_FIELDS, changes_from, numbered, plan_update
from taskhub.errors import NotFoundError, PersistenceError
from taskhub.models import Tag, TagUpdate, Task

logger = logging.getLogger("taskhub.db")


class PostgresTagRepository:
    """PostgreSQL-backed tag storage."""

    def __init__(self, db: Any):
        self.db = db

    async def create(self, tag: Tag) -> int:
        async with postgres_transaction(self.db, "create tag") as conn:
            tag_id = await conn.fetchval(
                "INSERT INTO tags (name) VALUES ($1) RETURNING id", tag.name
            )
            if tag_id is None:
                raise PersistenceError("Creating tag failed, no ID obtained.")
        tag.id = int(tag_id)
        logger.debug("Tag created id=%s", tag.id)
        return tag.id

    async def get_by_id(self, tag_id: int) -> Tag | None:
        try:
            row = await self.db.fetchrow("SELECT id, name FROM tags WHERE id = $1", tag_id)
        except DB_ERRORS as exc:
            raise PersistenceError(f"Error retrieving tag ID: {tag_id}") from exc
        if not row:
            return None
        tag = tag_from_row(row)
        tag.tasks = await tasks_for_tag(self.db, tag_id)
        return tag

    async def list_all(self) -> list[Tag]:
        try:
            rows = await self.db.fetch("SELECT id, name FROM tags ORDER BY id")
        except DB_ERRORS as exc:
            raise PersistenceError("Error retrieving tags") from exc
        linked = await tasks_by_tag(self.db)
        tags = [tag_from_row(r) for r in rows]
        for tag in tags:
            tag.tasks = linked.get(tag.id, [])
        return tags

    async def update(self, tag_id: int, changes: TagUpdate) -> None:
        async with postgres_transaction(self.db, "update tag") as conn:
            current = await conn.fetchrow("SELECT id, name FROM tags WHERE id = $1", tag_id)
            if current is None:
                raise NotFoundError("Tag", tag_id)
            plan = plan_update("tags", tag_id, current, changes_from(changes, TAG_FIELDS), numbered)
            if plan is None:
                logger.debug("Tag %s unchanged; no UPDATE issued", tag_id)
                return
            await conn.execute(plan.sql, *plan.params)

    async def delete(self, tag_id: int) -> None:
        async with postgres_transaction(self.db, "delete tag") as conn:
            await purge_tag_links(conn, tag_id)
            status = await conn.execute("DELETE FROM tags WHERE id = $1", tag_id)
            if affected_rows(status) == 0:
                raise NotFoundError("Tag", tag_id)

    async def assign_task(self, tag_id: int, task_id: int) -> bool:
        return await link(self.db, "task_tag", task_id, tag_id)

    async def get_tasks(self, tag_id: int) -> list[Task]:
        return await tasks_for_tag(self.db, tag_id)
