"""Scoped transaction guards for multi-statement mutations.

Each guard owns one transaction for the lifetime of an ``async with`` block::

    async with sqlite_transaction(db, "delete task"):
        await db.execute("DELETE FROM user_tasks WHERE task_id = ?", (task_id,))
        await db.execute("DELETE FROM tasks WHERE id = ?", (task_id,))

State per guard: Idle -> TransactionOpen -> Committed | RolledBack -> Idle.
SQLite callers sharing one connection are serialized per task; nesting is
refused. On any exception the transaction is rolled back before the
error leaves the block; taskhub errors propagate unchanged, any other
``Exception`` is re-raised as ``PersistenceError`` chained to the original. A
failed rollback is logged and attached to the primary error as
``rollback_error``; it never replaces it.
"""
from __future__ import annotations

import asyncio
import logging
import sqlite3
import time
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import aiosqlite
import asyncpg

from taskhub.errors import PersistenceError, TaskhubError
from taskhub.observability import record_transaction, start_span

logger = logging.getLogger("taskhub.db")


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000.0


def _translate(exc: BaseException, operation: str, rollback_error: BaseException | None) -> BaseException:
    if isinstance(exc, TaskhubError):
        error: BaseException = exc
    elif isinstance(exc, Exception):
        error = PersistenceError(f"{operation} failed")
    else:
        # Cancellation and interpreter exits propagate as-is.
        return exc
    if rollback_error is not None and error.rollback_error is None:
        error.rollback_error = rollback_error
    return error


async def _sqlite_rollback(db: aiosqlite.Connection, operation: str) -> Exception | None:
    try:
        await db.rollback()
    except Exception as exc:  # noqa: BLE001
        logger.error("Rollback failed for %s", operation, exc_info=True)
        return exc
    logger.warning("Transaction rolled back: %s", operation)
    return None


class _SqliteGuard:
    """Per-connection lock that remembers which task holds it."""

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.owner: asyncio.Task | None = None


_sqlite_guards: weakref.WeakKeyDictionary[Any, _SqliteGuard] = weakref.WeakKeyDictionary()


def _sqlite_guard(db: Any) -> _SqliteGuard:
    guard = _sqlite_guards.get(db)
    if guard is None:
        guard = _sqlite_guards[db] = _SqliteGuard()
    return guard


@asynccontextmanager
async def hold_sqlite(db: aiosqlite.Connection) -> AsyncIterator[aiosqlite.Connection]:
    """Hold the shared connection exclusively for the current task.

    Other tasks wait until the holder leaves. Re-entering from the holding task
    is a no-op, so a lookup can run inside a larger read.
    """
    guard = _sqlite_guard(db)
    task = asyncio.current_task()
    if guard.owner is not None and guard.owner is task:
        yield db
        return
    async with guard.lock:
        guard.owner = task
        try:
            yield db
        finally:
            guard.owner = None


@asynccontextmanager
async def sqlite_transaction(db: aiosqlite.Connection, operation: str) -> AsyncIterator[aiosqlite.Connection]:
    """Run the enclosed statements as one SQLite transaction.

    Concurrent callers on the same connection queue on ``hold_sqlite``; only a
    nested transaction from the holding task is refused.
    """
    if _sqlite_guard(db).owner is asyncio.current_task():
        raise PersistenceError(f"{operation}: connection already holds an open transaction")

    async with hold_sqlite(db):
        if db.in_transaction:
            raise PersistenceError(f"{operation}: connection already holds an open transaction")

        started = time.perf_counter()
        with start_span("taskhub.transaction", {"db.system": "sqlite", "db.operation": operation}):
            try:
                await db.execute("BEGIN")
            except sqlite3.Error as exc:
                raise PersistenceError(f"{operation} failed to begin a transaction") from exc

            try:
                yield db
                await db.commit()
            except BaseException as exc:
                rollback_error = await _sqlite_rollback(db, operation)
                record_transaction(operation, "rolled_back", _elapsed_ms(started))
                error = _translate(exc, operation, rollback_error)
                if error is exc:
                    raise
                raise error from exc
            finally:
                if db.in_transaction:
                    logger.error("Connection still inside a transaction after %s", operation)

        record_transaction(operation, "committed", _elapsed_ms(started))


async def _postgres_rollback(tx: Any, operation: str) -> Exception | None:
    try:
        await tx.rollback()
    except Exception as exc:  # noqa: BLE001
        logger.error("Rollback failed for %s", operation, exc_info=True)
        return exc
    logger.warning("Transaction rolled back: %s", operation)
    return None


@asynccontextmanager
async def _acquire(db: Any) -> AsyncIterator[asyncpg.Connection]:
    if isinstance(db, asyncpg.Pool):
        async with db.acquire() as conn:
            yield conn
    else:
        yield db


@asynccontextmanager
async def postgres_transaction(db: Any, operation: str) -> AsyncIterator[asyncpg.Connection]:
    """Run the enclosed statements as one Postgres transaction.

    ``db`` may be a pool or a single connection; with a pool, one connection is
    held exclusively until the transaction ends.
    """
    async with _acquire(db) as conn:
        if conn.is_in_transaction():
            raise PersistenceError(f"{operation}: connection already holds an open transaction")

        started = time.perf_counter()
        with start_span("taskhub.transaction", {"db.system": "postgresql", "db.operation": operation}):
            tx = conn.transaction()
            try:
                await tx.start()
            except (asyncpg.PostgresError, asyncpg.InterfaceError) as exc:
                raise PersistenceError(f"{operation} failed to begin a transaction") from exc

            try:
                yield conn
                await tx.commit()
            except BaseException as exc:
                rollback_error = await _postgres_rollback(tx, operation)
                record_transaction(operation, "rolled_back", _elapsed_ms(started))
                error = _translate(exc, operation, rollback_error)
                if error is exc:
                    raise
                raise error from exc

        record_transaction(operation, "committed", _elapsed_ms(started))
