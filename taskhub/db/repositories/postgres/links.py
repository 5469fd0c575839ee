"""PostgreSQL join-table maintenance: idempotent linking, owner re-pointing, cascades."""
from __future__ import annotations

from typing import Any

import asyncpg

from taskhub.db.rows import TAG_COLUMNS, TASK_COLUMNS, group_by, tag_from_row, task_from_row
from taskhub.errors import LinkError, PersistenceError
from taskhub.models import Tag, Task
from taskhub.observability import record_link

DB_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)

JOIN_TABLES: dict[str, tuple[str, str]] = {
    "user_tasks": ("user_id", "task_id"),
    "task_tag": ("task_id", "tag_id"),
}


def affected_rows(status: str) -> int:
    """Row count from an asyncpg command tag such as ``DELETE 1`` or ``INSERT 0 1``."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (ValueError, AttributeError):
        return 0


async def link(db: Any, table: str, first_id: int, second_id: int) -> bool:
    """Record the pair once. Returns True when a row was written."""
    first_col, second_col = JOIN_TABLES[table]
    try:
        count = await db.fetchval(
            f"SELECT COUNT(*) FROM {table} WHERE {first_col} = $1 AND {second_col} = $2",
            first_id, second_id,
        )
    except DB_ERRORS as exc:
        record_link(table, "error")
        raise LinkError(
            f"Error checking {table} link ({first_id}, {second_id})", phase="check"
        ) from exc

    if count:
        record_link(table, "exists")
        return False

    try:
        status = await db.execute(
            f"""INSERT INTO {table} ({first_col}, {second_col}) VALUES ($1, $2)
                ON CONFLICT ({first_col}, {second_col}) DO NOTHING""",
            first_id, second_id,
        )
    except DB_ERRORS as exc:
        record_link(table, "error")
        raise LinkError(
            f"Error inserting {table} link ({first_id}, {second_id})", phase="insert"
        ) from exc

    written = affected_rows(status) > 0
    record_link(table, "created" if written else "exists")
    return written


async def repoint_owner(conn: asyncpg.Connection, task_id: int, user_id: int) -> None:
    await conn.execute("DELETE FROM user_tasks WHERE task_id = $1", task_id)
    await conn.execute(
        "INSERT INTO user_tasks (user_id, task_id) VALUES ($1, $2)",
        user_id, task_id,
    )


async def purge_task_links(conn: asyncpg.Connection, task_id: int) -> None:
    await conn.execute("DELETE FROM user_tasks WHERE task_id = $1", task_id)
    await conn.execute("DELETE FROM task_tag WHERE task_id = $1", task_id)


async def purge_user_links(conn: asyncpg.Connection, user_id: int) -> None:
    await conn.execute("DELETE FROM user_tasks WHERE user_id = $1", user_id)
    await conn.execute(
        "UPDATE tasks SET assigned_user_id = NULL WHERE assigned_user_id = $1",
        user_id,
    )


async def purge_tag_links(conn: asyncpg.Connection, tag_id: int) -> None:
    await conn.execute("DELETE FROM task_tag WHERE tag_id = $1", tag_id)


async def tasks_for_user(db: Any, user_id: int) -> list[Task]:
    try:
        rows = await db.fetch(
            f"""SELECT {TASK_COLUMNS} FROM tasks t
                JOIN user_tasks ut ON t.id = ut.task_id
                WHERE ut.user_id = $1 ORDER BY t.id""",
            user_id,
        )
    except DB_ERRORS as exc:
        raise PersistenceError(f"Error retrieving tasks for user ID: {user_id}") from exc
    return [task_from_row(r) for r in rows]


async def tasks_for_tag(db: Any, tag_id: int) -> list[Task]:
    try:
        rows = await db.fetch(
            f"""SELECT {TASK_COLUMNS} FROM tasks t
                JOIN task_tag tt ON t.id = tt.task_id
                WHERE tt.tag_id = $1 ORDER BY t.id""",
            tag_id,
        )
    except DB_ERRORS as exc:
        raise PersistenceError(f"Error retrieving tasks for tag ID: {tag_id}") from exc
    return [task_from_row(r) for r in rows]


async def tags_for_task(db: Any, task_id: int) -> list[Tag]:
    try:
        rows = await db.fetch(
            f"""SELECT {TAG_COLUMNS} FROM tags g
                JOIN task_tag tt ON g.id = tt.tag_id
                WHERE tt.task_id = $1 ORDER BY g.id""",
            task_id,
        )
    except DB_ERRORS as exc:
        raise PersistenceError(f"Error retrieving tags for task ID: {task_id}") from exc
    return [tag_from_row(r) for r in rows]


async def tasks_by_user(db: Any) -> dict[int, list[Task]]:
    try:
        rows = await db.fetch(
            f"""SELECT ut.user_id AS parent_id, {TASK_COLUMNS} FROM tasks t
                JOIN user_tasks ut ON t.id = ut.task_id
                ORDER BY ut.user_id, t.id"""
        )
    except DB_ERRORS as exc:
        raise PersistenceError("Error retrieving tasks for users") from exc
    return group_by(rows, "parent_id", task_from_row)


async def tasks_by_tag(db: Any) -> dict[int, list[Task]]:
    try:
        rows = await db.fetch(
            f"""SELECT tt.tag_id AS parent_id, {TASK_COLUMNS} FROM tasks t
                JOIN task_tag tt ON t.id = tt.task_id
                ORDER BY tt.tag_id, t.id"""
        )
    except DB_ERRORS as exc:
        raise PersistenceError("Error retrieving tasks for tags") from exc
    return group_by(rows, "parent_id", task_from_row)


async def tags_by_task(db: Any) -> dict[int, list[Tag]]:
    try:
        rows = await db.fetch(
            f"""SELECT tt.task_id AS parent_id, {TAG_COLUMNS} FROM tags g
                JOIN task_tag tt ON g.id = tt.tag_id
                ORDER BY tt.task_id, g.id"""
        )
    except DB_ERRORS as exc:
        raise PersistenceError("Error retrieving tags for tasks") from exc
    return group_by(rows, "parent_id", tag_from_row)
