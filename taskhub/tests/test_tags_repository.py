import unittest

from pydantic import ValidationError

from taskhub.db.connection import open_sqlite
from taskhub.db.repositories.tags import SqliteTagRepository
from taskhub.db.repositories.tasks import SqliteTaskRepository
from taskhub.db.sqlite_migrations import run_migrations
from taskhub.errors import NotFoundError
from taskhub.models import Tag, TagUpdate, Task


class TagRepositoryTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.db = await open_sqlite(":memory:")
        await run_migrations(self.db)
        await self.db.execute("INSERT INTO users (id, name) VALUES (1, 'Ada')")
        await self.db.commit()
        self.repo = SqliteTagRepository(self.db)
        self.tasks = SqliteTaskRepository(self.db)

    async def asyncTearDown(self) -> None:
        await self.db.close()

    async def test_create_then_get_round_trip(self) -> None:
        tag = Tag(name="urgent")

        tag_id = await self.repo.create(tag)

        self.assertEqual(await self.repo.get_by_id(tag_id), tag)

    async def test_blank_names_are_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            Tag(name="   ")
        with self.assertRaises(ValidationError):
            TagUpdate(name="")

    async def test_assign_task_links_both_directions_once(self) -> None:
        tag_id = await self.repo.create(Tag(name="urgent"))
        task_id = await self.tasks.create(Task(title="T1", assignedUserId=1))

        self.assertTrue(await self.repo.assign_task(tag_id, task_id))
        self.assertFalse(await self.tasks.assign_tag(task_id, tag_id))

        self.assertEqual([t.id for t in await self.repo.get_tasks(tag_id)], [task_id])
        self.assertEqual([g.id for g in await self.tasks.get_tags(task_id)], [tag_id])

    async def test_list_all_groups_tasks_per_tag(self) -> None:
        red = await self.repo.create(Tag(name="red"))
        blue = await self.repo.create(Tag(name="blue"))
        first = await self.tasks.create(Task(title="A", assignedUserId=1))
        second = await self.tasks.create(Task(title="B", assignedUserId=1))
        await self.repo.assign_task(red, second)
        await self.repo.assign_task(red, first)

        tags = await self.repo.list_all()

        self.assertEqual([g.name for g in tags], ["red", "blue"])
        self.assertEqual([t.id for t in tags[0].tasks], [first, second])
        self.assertEqual(tags[1].tasks, [])
        self.assertEqual(blue, tags[1].id)

    async def test_update_same_name_is_a_no_op(self) -> None:
        tag_id = await self.repo.create(Tag(name="red"))
        statements: list[str] = []
        await self.db.set_trace_callback(statements.append)

        await self.repo.update(tag_id, TagUpdate(name="red"))

        self.assertFalse(any(sql.startswith("UPDATE") for sql in statements))

    async def test_update_renames(self) -> None:
        tag_id = await self.repo.create(Tag(name="red"))

        await self.repo.update(tag_id, TagUpdate(name="crimson"))

        self.assertEqual((await self.repo.get_by_id(tag_id)).name, "crimson")

    async def test_delete_purges_task_links(self) -> None:
        tag_id = await self.repo.create(Tag(name="red"))
        task_id = await self.tasks.create(Task(title="T1", assignedUserId=1))
        await self.repo.assign_task(tag_id, task_id)

        await self.repo.delete(tag_id)

        self.assertIsNone(await self.repo.get_by_id(tag_id))
        self.assertEqual(await self.tasks.get_tags(task_id), [])
        self.assertIsNotNone(await self.tasks.get_by_id(task_id))

    async def test_delete_missing_tag_raises_not_found(self) -> None:
        with self.assertRaises(NotFoundError) as ctx:
            await self.repo.delete(12)

        self.assertEqual(str(ctx.exception), "Tag not found with ID: 12")


if __name__ == "__main__":
    unittest.main()
