import unittest

from taskhub.db.connection import open_sqlite
from taskhub.db.repositories.tasks import SqliteTaskRepository
from taskhub.db.repositories.users import SqliteUserRepository
from taskhub.db.sqlite_migrations import run_migrations
from taskhub.errors import NotFoundError
from taskhub.models import Task, User, UserUpdate


class UserRepositoryTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.db = await open_sqlite(":memory:")
        await run_migrations(self.db)
        self.repo = SqliteUserRepository(self.db)
        self.tasks = SqliteTaskRepository(self.db)

    async def asyncTearDown(self) -> None:
        await self.db.close()

    async def test_create_then_get_round_trip(self) -> None:
        user = User(name="Ada")

        user_id = await self.repo.create(user)

        self.assertEqual(await self.repo.get_by_id(user_id), user)

    async def test_get_by_id_loads_linked_tasks(self) -> None:
        ada = await self.repo.create(User(name="Ada"))
        grace = await self.repo.create(User(name="Grace"))
        own = await self.tasks.create(Task(title="own", assignedUserId=ada))
        shared = await self.tasks.create(Task(title="shared", assignedUserId=grace))

        self.assertTrue(await self.repo.assign_task(ada, shared))

        user = await self.repo.get_by_id(ada)
        self.assertEqual([t.id for t in user.tasks], [own, shared])
        self.assertEqual([t.id for t in await self.repo.get_tasks(grace)], [shared])

    async def test_assign_task_is_idempotent(self) -> None:
        ada = await self.repo.create(User(name="Ada"))
        task_id = await self.tasks.create(Task(title="own", assignedUserId=ada))

        self.assertFalse(await self.repo.assign_task(ada, task_id))
        self.assertFalse(await self.repo.assign_task(ada, task_id))

        self.assertEqual(len(await self.repo.get_tasks(ada)), 1)

    async def test_list_all_groups_tasks_per_user(self) -> None:
        ada = await self.repo.create(User(name="Ada"))
        grace = await self.repo.create(User(name="Grace"))
        idle = await self.repo.create(User(name="Idle"))
        await self.tasks.create(Task(title="a1", assignedUserId=ada))
        await self.tasks.create(Task(title="a2", assignedUserId=ada))
        await self.tasks.create(Task(title="g1", assignedUserId=grace))

        users = {u.id: u for u in await self.repo.list_all()}

        self.assertEqual([t.title for t in users[ada].tasks], ["a1", "a2"])
        self.assertEqual([t.title for t in users[grace].tasks], ["g1"])
        self.assertEqual(users[idle].tasks, [])

    async def test_update_changes_name(self) -> None:
        user_id = await self.repo.create(User(name="Ada"))

        await self.repo.update(user_id, UserUpdate(name="Ada Lovelace"))

        self.assertEqual((await self.repo.get_by_id(user_id)).name, "Ada Lovelace")

    async def test_update_missing_user_raises_not_found(self) -> None:
        with self.assertRaises(NotFoundError) as ctx:
            await self.repo.update(77, UserUpdate(name="nobody"))

        self.assertEqual(ctx.exception.entity, "User")
        self.assertEqual(ctx.exception.entity_id, 77)

    async def test_delete_purges_links_and_clears_ownership(self) -> None:
        ada = await self.repo.create(User(name="Ada"))
        task_id = await self.tasks.create(Task(title="own", assignedUserId=ada))

        await self.repo.delete(ada)

        self.assertIsNone(await self.repo.get_by_id(ada))
        async with self.db.execute("SELECT COUNT(*) FROM user_tasks WHERE user_id = ?", (ada,)) as cur:
            (count,) = await cur.fetchone()
        self.assertEqual(count, 0)
        task = await self.tasks.get_by_id(task_id)
        self.assertIsNotNone(task)
        self.assertIsNone(task.assignedUserId)

    async def test_delete_missing_user_leaves_store_unchanged(self) -> None:
        ada = await self.repo.create(User(name="Ada"))

        with self.assertRaises(NotFoundError):
            await self.repo.delete(ada + 100)

        self.assertEqual([u.id for u in await self.repo.list_all()], [ada])


if __name__ == "__main__":
    unittest.main()
