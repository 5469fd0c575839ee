"""Database connection factory.

Opens an explicitly owned handle: an aiosqlite connection (default, WAL mode)
or an asyncpg pool. The caller that opens a handle is responsible for closing
it; the FastAPI lifespan keeps the application's handle on ``app.state.db``.
Backend selection via TASKHUB_DB_BACKEND env var.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Union

import aiosqlite
import asyncpg

from taskhub import config

logger = logging.getLogger("taskhub.db")

# Type alias for DB connection/pool
DbConnection = Union[aiosqlite.Connection, asyncpg.Pool]


async def open_sqlite(path: str | Path, *, busy_timeout_ms: int | None = None) -> aiosqlite.Connection:
    """Open and configure one SQLite connection."""
    target = str(path)
    if target != ":memory:":
        Path(target).parent.mkdir(parents=True, exist_ok=True)
    conn = await aiosqlite.connect(target)
    conn.row_factory = aiosqlite.Row
    timeout = config.SQLITE_BUSY_TIMEOUT_MS if busy_timeout_ms is None else busy_timeout_ms
    # Enable WAL mode for better concurrent read performance
    await conn.execute("PRAGMA journal_mode=WAL")
    await conn.execute("PRAGMA foreign_keys=ON")
    await conn.execute(f"PRAGMA busy_timeout={int(timeout)}")
    logger.info("Database connection established: %s", target)
    return conn


async def open_connection(backend: str | None = None, *, dsn: str | None = None) -> DbConnection:
    """Open a new database handle for the configured backend."""
    backend = backend or config.DB_BACKEND
    if backend == "postgres":
        url = dsn or config.DATABASE_URL
        logger.info("Connecting to PostgreSQL: %s", url)
        return await asyncpg.create_pool(url)
    return await open_sqlite(dsn or config.DB_PATH)


async def close_connection(db: DbConnection | None) -> None:
    """Close a handle returned by ``open_connection``."""
    if db is None:
        return
    await db.close()
    logger.info("Database connection closed")
