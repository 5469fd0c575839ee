import asyncio
import sqlite3
import unittest

from taskhub.db.connection import open_sqlite
from taskhub.db.sqlite_migrations import run_migrations
from taskhub.db.transactions import postgres_transaction, sqlite_transaction
from taskhub.errors import NotFoundError, PersistenceError


class _FailingRollbackConnection:
    in_transaction = False

    def __init__(self) -> None:
        self.statements: list[str] = []

    async def execute(self, sql, params=()):
        self.statements.append(sql)

    async def commit(self) -> None:
        self.statements.append("COMMIT")

    async def rollback(self) -> None:
        raise sqlite3.OperationalError("disk I/O error")


class _FakePgTransaction:
    def __init__(self, fail_rollback: bool = False) -> None:
        self.events: list[str] = []
        self.fail_rollback = fail_rollback

    async def start(self) -> None:
        self.events.append("start")

    async def commit(self) -> None:
        self.events.append("commit")

    async def rollback(self) -> None:
        if self.fail_rollback:
            raise OSError("connection lost")
        self.events.append("rollback")


class _FakePgConnection:
    def __init__(self, in_transaction: bool = False, fail_rollback: bool = False) -> None:
        self._in_transaction = in_transaction
        self.tx = _FakePgTransaction(fail_rollback)

    def is_in_transaction(self) -> bool:
        return self._in_transaction

    def transaction(self):
        return self.tx


class SqliteTransactionTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.db = await open_sqlite(":memory:")
        await run_migrations(self.db)

    async def asyncTearDown(self) -> None:
        await self.db.close()

    async def _user_count(self) -> int:
        async with self.db.execute("SELECT COUNT(*) FROM users") as cur:
            (count,) = await cur.fetchone()
        return count

    async def test_commits_on_success(self) -> None:
        async with sqlite_transaction(self.db, "seed") as conn:
            await conn.execute("INSERT INTO users (name) VALUES ('Ada')")
            await conn.execute("INSERT INTO users (name) VALUES ('Grace')")

        self.assertFalse(self.db.in_transaction)
        self.assertEqual(await self._user_count(), 2)

    async def test_rolls_back_and_wraps_foreign_errors(self) -> None:
        with self.assertRaises(PersistenceError) as ctx:
            async with sqlite_transaction(self.db, "seed"):
                await self.db.execute("INSERT INTO users (name) VALUES ('Ada')")
                raise RuntimeError("boom")

        self.assertIsInstance(ctx.exception.__cause__, RuntimeError)
        self.assertIn("seed", ctx.exception.message)
        self.assertFalse(self.db.in_transaction)
        self.assertEqual(await self._user_count(), 0)

    async def test_driver_errors_become_persistence_errors(self) -> None:
        with self.assertRaises(PersistenceError) as ctx:
            async with sqlite_transaction(self.db, "bad insert"):
                await self.db.execute("INSERT INTO users (name) VALUES (NULL)")

        self.assertIsInstance(ctx.exception.__cause__, sqlite3.IntegrityError)

    async def test_taskhub_errors_propagate_unchanged(self) -> None:
        error = NotFoundError("User", 42)
        with self.assertRaises(NotFoundError) as ctx:
            async with sqlite_transaction(self.db, "update user"):
                await self.db.execute("INSERT INTO users (name) VALUES ('Ada')")
                raise error

        self.assertIs(ctx.exception, error)
        self.assertEqual(await self._user_count(), 0)

    async def test_nested_transaction_is_refused(self) -> None:
        with self.assertRaises(PersistenceError) as ctx:
            async with sqlite_transaction(self.db, "outer"):
                await self.db.execute("INSERT INTO users (name) VALUES ('Ada')")
                async with sqlite_transaction(self.db, "inner"):
                    pass

        self.assertIn("already holds an open transaction", ctx.exception.message)
        self.assertFalse(self.db.in_transaction)
        self.assertEqual(await self._user_count(), 0)

    async def test_cancellation_rolls_back_and_propagates(self) -> None:
        with self.assertRaises(asyncio.CancelledError):
            async with sqlite_transaction(self.db, "seed"):
                await self.db.execute("INSERT INTO users (name) VALUES ('Ada')")
                raise asyncio.CancelledError()

        self.assertFalse(self.db.in_transaction)
        self.assertEqual(await self._user_count(), 0)

    async def test_failed_rollback_is_attached_not_raised(self) -> None:
        conn = _FailingRollbackConnection()

        with self.assertRaises(PersistenceError) as ctx:
            async with sqlite_transaction(conn, "seed"):
                raise RuntimeError("primary")

        self.assertIsInstance(ctx.exception.__cause__, RuntimeError)
        self.assertIsInstance(ctx.exception.rollback_error, sqlite3.OperationalError)
        self.assertEqual(conn.statements, ["BEGIN"])


class PostgresTransactionTests(unittest.IsolatedAsyncioTestCase):
    async def test_commit_path(self) -> None:
        conn = _FakePgConnection()

        async with postgres_transaction(conn, "create user") as held:
            self.assertIs(held, conn)

        self.assertEqual(conn.tx.events, ["start", "commit"])

    async def test_rollback_path_wraps_error(self) -> None:
        conn = _FakePgConnection()

        with self.assertRaises(PersistenceError) as ctx:
            async with postgres_transaction(conn, "create user"):
                raise ValueError("bad value")

        self.assertEqual(conn.tx.events, ["start", "rollback"])
        self.assertIsInstance(ctx.exception.__cause__, ValueError)

    async def test_failed_rollback_keeps_primary_error(self) -> None:
        conn = _FakePgConnection(fail_rollback=True)
        error = NotFoundError("Task", 3)

        with self.assertRaises(NotFoundError) as ctx:
            async with postgres_transaction(conn, "delete task"):
                raise error

        self.assertIs(ctx.exception, error)
        self.assertIsInstance(ctx.exception.rollback_error, OSError)

    async def test_nested_transaction_is_refused(self) -> None:
        conn = _FakePgConnection(in_transaction=True)

        with self.assertRaises(PersistenceError):
            async with postgres_transaction(conn, "update tag"):
                pass

        self.assertEqual(conn.tx.events, [])


if __name__ == "__main__":
    unittest.main()
