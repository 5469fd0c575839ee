import asyncio
import unittest

from taskhub.db.connection import open_sqlite
from taskhub.db.repositories.tags import SqliteTagRepository
from taskhub.db.repositories.tasks import SqliteTaskRepository
from taskhub.db.repositories.users import SqliteUserRepository
from taskhub.db.sqlite_migrations import run_migrations
from taskhub.db.transactions import sqlite_transaction
from taskhub.errors import PersistenceError
from taskhub.models import Tag, Task, TaskUpdate, User


class SharedSqliteConnectionTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.db = await open_sqlite(":memory:")
        await run_migrations(self.db)
        self.users = SqliteUserRepository(self.db)
        self.tasks = SqliteTaskRepository(self.db)
        self.tags = SqliteTagRepository(self.db)
        self.ada = await self.users.create(User(name="Ada"))

    async def asyncTearDown(self) -> None:
        await self.db.close()

    async def _names(self) -> list[str]:
        async with self.db.execute("SELECT name FROM users ORDER BY id") as cur:
            return [row["name"] for row in await cur.fetchall()]

    async def _pending_then_abort(self, started: asyncio.Event, release: asyncio.Event) -> None:
        async with sqlite_transaction(self.db, "pending user"):
            await self.db.execute("INSERT INTO users (name) VALUES ('pending')")
            started.set()
            await release.wait()
            raise RuntimeError("abort")

    async def test_concurrent_mutations_all_succeed(self) -> None:
        first = await self.tasks.create(Task(title="T1", assignedUserId=self.ada))
        second = await self.tasks.create(Task(title="T2", assignedUserId=self.ada))

        results = await asyncio.gather(
            self.tasks.update(first, TaskUpdate(title="A")),
            self.tasks.update(second, TaskUpdate(title="B")),
            self.users.create(User(name="Grace")),
            self.users.create(User(name="Linus")),
            return_exceptions=True,
        )

        for result in results:
            self.assertNotIsInstance(result, BaseException)
        self.assertEqual([t.title for t in await self.tasks.list_all()], ["A", "B"])
        self.assertEqual(sorted(await self._names()), ["Ada", "Grace", "Linus"])

    async def test_reader_waits_for_open_transaction(self) -> None:
        started, release = asyncio.Event(), asyncio.Event()
        writer = asyncio.create_task(self._pending_then_abort(started, release))
        await started.wait()

        reader = asyncio.create_task(self.users.list_all())
        await asyncio.sleep(0.05)
        self.assertFalse(reader.done())

        release.set()
        with self.assertRaises(PersistenceError):
            await writer
        self.assertEqual([u.name for u in await reader], ["Ada"])

    async def test_link_does_not_commit_another_tasks_statements(self) -> None:
        task_id = await self.tasks.create(Task(title="T1", assignedUserId=self.ada))
        tag_id = await self.tags.create(Tag(name="red"))
        started, release = asyncio.Event(), asyncio.Event()
        writer = asyncio.create_task(self._pending_then_abort(started, release))
        await started.wait()

        linker = asyncio.create_task(self.tasks.assign_tag(task_id, tag_id))
        await asyncio.sleep(0.05)
        self.assertFalse(linker.done())

        release.set()
        with self.assertRaises(PersistenceError):
            await writer
        self.assertTrue(await linker)
        self.assertEqual(await self._names(), ["Ada"])
        self.assertEqual([g.id for g in await self.tasks.get_tags(task_id)], [tag_id])


if __name__ == "__main__":
    unittest.main()
