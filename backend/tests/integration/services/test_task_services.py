"""
Task, comment and attachment service tests.

WHAT: Assignment, updates, comments and file attachments on tasks, and
how each of them shows up on the owning task.
"""

from pathlib import Path

import pytest
import pytest_asyncio

from taskhub.core.exceptions import ErrorKind
from taskhub.services.task_attachment_service import random_name

from tests.factories import (
    CommentFactory,
    OrganisationFactory,
    ProjectFactory,
    TaskFactory,
    ctx_for,
)


@pytest_asyncio.fixture
async def task(broker, admin, manager):
    org = await OrganisationFactory.create(broker, admin)
    project = await ProjectFactory.create(broker, manager, org["id"])
    task = await TaskFactory.create(broker, manager, project["id"])
    await broker.drain()
    return task


async def call(broker, action, caller, **params):
    return await broker.call(action, params, ctx_for(caller))


class TestTaskActions:
    @pytest.mark.asyncio
    async def test_assign_and_unassign(self, broker, manager, employee, task):
        assigned = (await call(broker, "task.assign", manager, id=task["id"], user=employee.id)).unwrap()
        assert assigned["assignee"]["id"] == employee.id

        wrong = await call(broker, "task.unassign", manager, id=task["id"], user=manager.id)
        assert wrong.error.kind == ErrorKind.NOT_FOUND
        assert wrong.error.message == "Task with provided user not found"

        cleared = (await call(broker, "task.unassign", manager, id=task["id"], user=employee.id)).unwrap()
        assert cleared["assignee"] is None

    @pytest.mark.asyncio
    async def test_assign_requires_manager(self, broker, employee, task):
        result = await call(broker, "task.assign", employee, id=task["id"], user=employee.id)
        assert result.error.kind == ErrorKind.FORBIDDEN

    @pytest.mark.asyncio
    async def test_unassign_requires_manager(self, broker, manager, employee, task):
        await call(broker, "task.assign", manager, id=task["id"], user=manager.id)

        result = await call(broker, "task.unassign", employee, id=task["id"], user=manager.id)
        assert result.error.kind == ErrorKind.FORBIDDEN

        current = (await call(broker, "task.get", employee, id=task["id"])).unwrap()
        assert current["assignee"]["id"] == manager.id

    @pytest.mark.asyncio
    async def test_unassign_missing_task(self, broker, manager):
        result = await call(broker, "task.unassign", manager, id="0" * 32, user=manager.id)
        assert result.error.kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_assign_unknown_user(self, broker, manager, task):
        result = await call(broker, "task.assign", manager, id=task["id"], user="0" * 32)
        assert result.error.kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_update_status(self, broker, employee, task):
        updated = (
            await call(broker, "task.update", employee, id=task["id"], status="in_progress", priority="high")
        ).unwrap()

        assert updated["status"] == "in_progress"
        assert updated["priority"] == "high"
        assert updated["name"] == task["name"]

    @pytest.mark.asyncio
    async def test_update_missing_task(self, broker, employee):
        result = await call(broker, "task.update", employee, id="0" * 32, name="Nope")
        assert result.error.kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_remove_requires_manager(self, broker, manager, employee, task):
        denied = await call(broker, "task.remove", employee, id=task["id"])
        assert denied.error.kind == ErrorKind.FORBIDDEN

        removed = await call(broker, "task.remove", manager, id=task["id"])
        await broker.drain()
        assert removed.value == {"message": "Task deleted"}

        project = (await call(broker, "project.get", manager, id=task["project"])).unwrap()
        assert project["tasks"] == []


class TestComments:
    @pytest.mark.asyncio
    async def test_comment_shows_author(self, broker, employee, task):
        comment = await CommentFactory.create(broker, employee, task["id"])

        assert comment["author"] == {"id": employee.id, "name": "Eve Employee", "role": "employee"}
        assert comment["author_name"] == "Eve Employee"
        assert comment["task"] == task["id"]

    @pytest.mark.asyncio
    async def test_explicit_author_must_exist(self, broker, employee, task):
        result = await call(
            broker, "task.comment.create", employee, task=task["id"], text="Hi", author="0" * 32
        )
        assert result.error.kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_update_requires_manager(self, broker, manager, employee, task):
        comment = await CommentFactory.create(broker, employee, task["id"])

        denied = await call(broker, "task.comment.update", employee, id=comment["id"], text="Edited")
        allowed = await call(broker, "task.comment.update", manager, id=comment["id"], text="Edited")

        assert denied.error.kind == ErrorKind.FORBIDDEN
        assert allowed.value["text"] == "Edited"

    @pytest.mark.asyncio
    async def test_remove_updates_task(self, broker, manager, employee, task):
        first = await CommentFactory.create(broker, employee, task["id"], text="First")
        second = await CommentFactory.create(broker, employee, task["id"], text="Second")
        await broker.drain()

        listed = (await call(broker, "task.comment.list", manager, task=task["id"])).unwrap()
        assert [c["id"] for c in listed] == [first["id"], second["id"]]

        await call(broker, "task.comment.remove", employee, id=first["id"])
        await broker.drain()

        refreshed = (await call(broker, "task.get", manager, id=task["id"])).unwrap()
        assert refreshed["comments"] == [second["id"]]

    @pytest.mark.asyncio
    async def test_remove_missing(self, broker, employee):
        result = await call(broker, "task.comment.remove", employee, id="0" * 32)
        assert result.error.kind == ErrorKind.NOT_FOUND


class TestAttachments:
    @pytest.mark.asyncio
    async def test_save_get_remove(self, broker, manager, task):
        saved = (
            await call(
                broker,
                "task.attachment.save",
                manager,
                task=task["id"],
                filename="report.pdf",
                content=b"%PDF-1.4 test",
            )
        ).unwrap()
        await broker.drain()

        assert saved["file"].endswith(".pdf")
        assert saved["media_type"] == "application/pdf"
        assert saved["size"] == len(b"%PDF-1.4 test")
        assert Path(saved["path"]).read_bytes() == b"%PDF-1.4 test"
        assert (await call(broker, "task.get", manager, id=task["id"])).value["attachments"] == [
            saved["file"]
        ]

        fetched = (
            await call(broker, "task.attachment.get", manager, task=task["id"], file=saved["file"])
        ).unwrap()
        assert fetched == saved

        await call(broker, "task.attachment.remove", manager, task=task["id"], file=saved["file"])
        await broker.drain()

        assert not Path(saved["path"]).exists()
        assert (await call(broker, "task.get", manager, id=task["id"])).value["attachments"] == []

        gone = await call(broker, "task.attachment.get", manager, task=task["id"], file=saved["file"])
        assert gone.error.kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_unknown_task(self, broker, manager):
        result = await call(
            broker, "task.attachment.save", manager, task="0" * 32, filename="a.pdf", content=b"x"
        )
        assert result.error.kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_remove_for_unknown_task(self, broker, manager, tmp_path):
        stray = tmp_path / "attachments" / ("0" * 32) / "stray.pdf"
        stray.parent.mkdir(parents=True)
        stray.write_bytes(b"x")

        result = await call(
            broker, "task.attachment.remove", manager, task="0" * 32, file="stray.pdf"
        )

        assert result.error.kind == ErrorKind.NOT_FOUND
        assert result.error.message == "Provided task not found"
        assert stray.exists()

    @pytest.mark.asyncio
    async def test_path_traversal_rejected(self, broker, manager, task):
        result = await call(
            broker, "task.attachment.get", manager, task=task["id"], file="../../etc/passwd"
        )
        assert result.error.kind == ErrorKind.VALIDATION

    @pytest.mark.asyncio
    async def test_task_removal_deletes_files(self, broker, manager, task):
        saved = (
            await call(
                broker, "task.attachment.save", manager, task=task["id"], filename="a.pdf", content=b"x"
            )
        ).unwrap()
        await broker.drain()

        await call(broker, "task.remove", manager, id=task["id"])
        await broker.drain()

        assert not Path(saved["path"]).parent.exists()


class TestRandomName:
    def test_random_hex_stem(self):
        name = random_name("holiday photo.png")
        stem, extension = name.split(".")

        assert len(stem) == 40
        assert int(stem, 16) >= 0
        assert extension == "png"

    def test_unknown_type_keeps_suffix(self):
        assert random_name("data.zzq").endswith(".zzq")

    def test_no_suffix(self):
        assert random_name("README").endswith(".bin")

    def test_names_differ(self):
        assert random_name("a.pdf") != random_name("a.pdf")
