"""Repository factory to abstract DB backend (SQLite vs Postgres)."""
from __future__ import annotations

from typing import Any
import aiosqlite

from taskhub.db.repositories.users import SqliteUserRepository
from taskhub.db.repositories.tasks import SqliteTaskRepository
from taskhub.db.repositories.tags import SqliteTagRepository


def get_user_repository(db: Any):
    if isinstance(db, aiosqlite.Connection):
        return SqliteUserRepository(db)
    from taskhub.db.repositories.postgres.users import PostgresUserRepository
    return PostgresUserRepository(db)

def get_task_repository(db: Any):
    if isinstance(db, aiosqlite.Connection):
        return SqliteTaskRepository(db)
    from taskhub.db.repositories.postgres.tasks import PostgresTaskRepository
    return PostgresTaskRepository(db)

def get_tag_repository(db: Any):
    if isinstance(db, aiosqlite.Connection):
        return SqliteTagRepository(db)
    from taskhub.db.repositories.postgres.tags import PostgresTagRepository
    return PostgresTagRepository(db)
