"""Row-to-model mapping shared by the SQLite and Postgres repositories.

Both ``aiosqlite.Row`` and ``asyncpg.Record`` support lookup by column name.
"""
from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable, Iterable
from typing import Any, TypeVar

from taskhub.models import Tag, Task, User

M = TypeVar("M")

TASK_COLUMNS = "t.id, t.title, t.description, t.assigned_user_id"
TAG_COLUMNS = "g.id, g.name"


def user_from_row(row: Any) -> User:
    return User(id=row["id"], name=row["name"])


def task_from_row(row: Any) -> Task:
    return Task(
        id=row["id"],
        title=row["title"],
        description=row["description"],
        assignedUserId=row["assigned_user_id"],
    )


def tag_from_row(row: Any) -> Tag:
    return Tag(id=row["id"], name=row["name"])


def group_by(rows: Iterable[Any], key: str, build: Callable[[Any], M]) -> dict[int, list[M]]:
    """Group joined rows by their parent id column, preserving row order."""
    grouped: dict[int, list[M]] = defaultdict(list)
    for row in rows:
        grouped[row[key]].append(build(row))
    return grouped
