"""SQLite join-table maintenance: idempotent linking, owner re-pointing, cascades.

``user_tasks`` pairs users with tasks, ``task_tag`` pairs tasks with tags.
The synchronizer helpers run inside a caller-owned transaction and never
commit; ``link`` is a standalone operation and commits its own insert.
"""
from __future__ import annotations

import logging
import sqlite3

import aiosqlite

from taskhub.db.rows import TAG_COLUMNS, TASK_COLUMNS, group_by, tag_from_row, task_from_row
from taskhub.db.transactions import hold_sqlite
from taskhub.errors import LinkError, PersistenceError
from taskhub.models import Tag, Task
from taskhub.observability import record_link

logger = logging.getLogger("taskhub.db")

# join table -> (first column, second column)
JOIN_TABLES: dict[str, tuple[str, str]] = {
    "user_tasks": ("user_id", "task_id"),
    "task_tag": ("task_id", "tag_id"),
}


async def link(db: aiosqlite.Connection, table: str, first_id: int, second_id: int) -> bool:
    """Record the pair once. Returns True when a row was written.

    The check, insert and commit all run while holding the connection.
    """
    async with hold_sqlite(db):
        return await _link_pair(db, table, first_id, second_id)


async def _link_pair(db: aiosqlite.Connection, table: str, first_id: int, second_id: int) -> bool:
    first_col, second_col = JOIN_TABLES[table]
    try:
        async with db.execute(
            f"SELECT COUNT(*) FROM {table} WHERE {first_col} = ? AND {second_col} = ?",
            (first_id, second_id),
        ) as cur:
            (count,) = await cur.fetchone()
    except sqlite3.Error as exc:
        record_link(table, "error")
        raise LinkError(
            f"Error checking {table} link ({first_id}, {second_id})", phase="check"
        ) from exc

    if count > 0:
        record_link(table, "exists")
        return False

    try:
        # OR IGNORE closes the window between the count and the insert.
        async with db.execute(
            f"INSERT OR IGNORE INTO {table} ({first_col}, {second_col}) VALUES (?, ?)",
            (first_id, second_id),
        ) as cur:
            written = cur.rowcount > 0
        await db.commit()
    except sqlite3.Error as exc:
        record_link(table, "error")
        try:
            await db.rollback()
        except sqlite3.Error:
            logger.error("Rollback failed after %s insert", table, exc_info=True)
        raise LinkError(
            f"Error inserting {table} link ({first_id}, {second_id})", phase="insert"
        ) from exc

    record_link(table, "created" if written else "exists")
    return written


# ── Relationship synchronizer (caller owns the transaction) ────────

async def repoint_owner(db: aiosqlite.Connection, task_id: int, user_id: int) -> None:
    """Make ``user_id`` the only user_tasks row for the task."""
    await db.execute("DELETE FROM user_tasks WHERE task_id = ?", (task_id,))
    await db.execute(
        "INSERT INTO user_tasks (user_id, task_id) VALUES (?, ?)",
        (user_id, task_id),
    )


async def purge_task_links(db: aiosqlite.Connection, task_id: int) -> None:
    await db.execute("DELETE FROM user_tasks WHERE task_id = ?", (task_id,))
    await db.execute("DELETE FROM task_tag WHERE task_id = ?", (task_id,))


async def purge_user_links(db: aiosqlite.Connection, user_id: int) -> None:
    await db.execute("DELETE FROM user_tasks WHERE user_id = ?", (user_id,))
    # Owned tasks lose their owner column too, matching the removed join rows.
    await db.execute(
        "UPDATE tasks SET assigned_user_id = NULL WHERE assigned_user_id = ?",
        (user_id,),
    )


async def purge_tag_links(db: aiosqlite.Connection, tag_id: int) -> None:
    await db.execute("DELETE FROM task_tag WHERE tag_id = ?", (tag_id,))


# ── Linked lookups ─────────────────────────────────────────────────

async def tasks_for_user(db: aiosqlite.Connection, user_id: int) -> list[Task]:
    try:
        async with hold_sqlite(db), db.execute(
            f"""SELECT {TASK_COLUMNS} FROM tasks t
                JOIN user_tasks ut ON t.id = ut.task_id
                WHERE ut.user_id = ? ORDER BY t.id""",
            (user_id,),
        ) as cur:
            return [task_from_row(r) for r in await cur.fetchall()]
    except sqlite3.Error as exc:
        raise PersistenceError(f"Error retrieving tasks for user ID: {user_id}") from exc


async def tasks_for_tag(db: aiosqlite.Connection, tag_id: int) -> list[Task]:
    try:
        async with hold_sqlite(db), db.execute(
            f"""SELECT {TASK_COLUMNS} FROM tasks t
                JOIN task_tag tt ON t.id = tt.task_id
                WHERE tt.tag_id = ? ORDER BY t.id""",
            (tag_id,),
        ) as cur:
            return [task_from_row(r) for r in await cur.fetchall()]
    except sqlite3.Error as exc:
        raise PersistenceError(f"Error retrieving tasks for tag ID: {tag_id}") from exc


async def tags_for_task(db: aiosqlite.Connection, task_id: int) -> list[Tag]:
    try:
        async with hold_sqlite(db), db.execute(
            f"""SELECT {TAG_COLUMNS} FROM tags g
                JOIN task_tag tt ON g.id = tt.tag_id
                WHERE tt.task_id = ? ORDER BY g.id""",
            (task_id,),
        ) as cur:
            return [tag_from_row(r) for r in await cur.fetchall()]
    except sqlite3.Error as exc:
        raise PersistenceError(f"Error retrieving tags for task ID: {task_id}") from exc


async def tasks_by_user(db: aiosqlite.Connection) -> dict[int, list[Task]]:
    """Every user's tasks in one query, keyed by user id."""
    try:
        async with hold_sqlite(db), db.execute(
            f"""SELECT ut.user_id AS parent_id, {TASK_COLUMNS} FROM tasks t
                JOIN user_tasks ut ON t.id = ut.task_id
                ORDER BY ut.user_id, t.id"""
        ) as cur:
            return group_by(await cur.fetchall(), "parent_id", task_from_row)
    except sqlite3.Error as exc:
        raise PersistenceError("Error retrieving tasks for users") from exc


async def tasks_by_tag(db: aiosqlite.Connection) -> dict[int, list[Task]]:
    try:
        async with hold_sqlite(db), db.execute(
            f"""SELECT tt.tag_id AS parent_id, {TASK_COLUMNS} FROM tasks t
                JOIN task_tag tt ON t.id = tt.task_id
                ORDER BY tt.tag_id, t.id"""
        ) as cur:
            return group_by(await cur.fetchall(), "parent_id", task_from_row)
    except sqlite3.Error as exc:
        raise PersistenceError("Error retrieving tasks for tags") from exc


async def tags_by_task(db: aiosqlite.Connection) -> dict[int, list[Tag]]:
    try:
        async with hold_sqlite(db), db.execute(
            f"""SELECT tt.task_id AS parent_id, {TAG_COLUMNS} FROM tags g
                JOIN task_tag tt ON g.id = tt.tag_id
                ORDER BY tt.task_id, g.id"""
        ) as cur:
            return group_by(await cur.fetchall(), "parent_id", tag_from_row)
    except sqlite3.Error as exc:
        raise PersistenceError("Error retrieving tags for tasks") from exc
