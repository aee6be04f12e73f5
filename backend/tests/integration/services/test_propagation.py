"""
Back-reference propagation through events.

WHAT: End-to-end checks that removals cascade and references converge
once every in-flight event has been handled (broker.drain()).

WHY: No service writes another's store. Consistency between them rests
entirely on these handlers being complete and idempotent.
"""

import pytest
import pytest_asyncio

from taskhub.bus.events import (
    ProjectCreated,
    ProjectMemberAdded,
    ProjectMemberRemoved,
    TaskCreated,
    TaskRemoved,
    UserOrgRemoved,
)
from taskhub.core.exceptions import ErrorKind

from tests.factories import (
    CommentFactory,
    OrganisationFactory,
    ProjectFactory,
    TaskFactory,
    ctx_for,
)


@pytest_asyncio.fixture
async def acme(broker, admin):
    return await OrganisationFactory.create(broker, admin, name="Acme")


async def get(broker, action, caller, **params):
    return (await broker.call(action, params, ctx_for(caller))).unwrap()


class TestProjectLifecycle:
    @pytest.mark.asyncio
    async def test_acme_p1_scenario(self, broker, admin, manager, employee, acme):
        """Organisation tracks P1 while it exists; removing P1 removes its tasks."""
        p1 = await ProjectFactory.create(broker, manager, acme["id"], name="P1")
        await broker.drain()

        org = await get(broker, "organisation.get", admin, id=acme["id"])
        assert [p["id"] for p in org["projects"]] == [p1["id"]]
        assert org["projects"][0] == {"id": p1["id"], "name": "P1", "budget": 1000.0}

        task = await TaskFactory.create(broker, manager, p1["id"], assignee=employee.id)
        comment = await CommentFactory.create(broker, employee, task["id"])
        await broker.drain()

        assert (await get(broker, "project.get", manager, id=p1["id"]))["tasks"] == [task["id"]]
        assert (await get(broker, "task.get", manager, id=task["id"]))["comments"] == [comment["id"]]

        await get(broker, "project.remove", manager, id=p1["id"])
        await broker.drain()

        org = await get(broker, "organisation.get", admin, id=acme["id"])
        assert org["projects"] == []
        assert await get(broker, "organisation.projects", admin, id=acme["id"]) == []
        assert await get(broker, "task.list", manager, project=p1["id"]) == []

        missing_task = await broker.call("task.get", {"id": task["id"]}, ctx_for(manager))
        assert missing_task.error.kind == ErrorKind.NOT_FOUND
        assert await get(broker, "task.comment.list", manager, task=task["id"]) == []

    @pytest.mark.asyncio
    async def test_initial_members_recorded_on_users(self, broker, manager, employee, acme):
        project = await ProjectFactory.create(
            broker, manager, acme["id"], members=[employee.id, employee.id]
        )
        await broker.drain()

        assert project["members"] == [employee.id]
        assert (await get(broker, "user.get", employee, id=employee.id))["projects"] == [project["id"]]

        await get(broker, "project.removeMember", manager, id=project["id"], user=employee.id)
        await broker.drain()
        assert (await get(broker, "user.get", employee, id=employee.id))["projects"] == []

    @pytest.mark.asyncio
    async def test_member_added_then_project_removed(self, broker, manager, employee, acme):
        project = await ProjectFactory.create(broker, manager, acme["id"])
        updated = await get(broker, "project.addMember", manager, id=project["id"], user=employee.id)
        await broker.drain()

        assert updated["members"] == [employee.id]
        assert (await get(broker, "user.get", employee, id=employee.id))["projects"] == [project["id"]]

        await get(broker, "project.remove", manager, id=project["id"])
        await broker.drain()
        assert (await get(broker, "user.get", employee, id=employee.id))["projects"] == []

    @pytest.mark.asyncio
    async def test_project_cannot_move(self, broker, admin, manager, acme):
        project = await ProjectFactory.create(broker, manager, acme["id"])
        other = await OrganisationFactory.create(broker, admin, name="Globex")

        result = await broker.call(
            "project.update",
            {"id": project["id"], "organisation": other["id"], "name": "Moved"},
            ctx_for(manager),
        )
        assert result.error.kind == ErrorKind.VALIDATION

        same = await get(broker, "project.update", manager, id=project["id"], organisation=acme["id"], budget="5")
        assert same["budget"] == 5.0
        assert same["organisation"] == acme["id"]

    @pytest.mark.asyncio
    async def test_tasks_proxy(self, broker, manager, acme):
        project = await ProjectFactory.create(broker, manager, acme["id"])
        task = await TaskFactory.create(broker, manager, project["id"])

        tasks = await get(broker, "project.tasks", manager, id=project["id"])
        assert [t["id"] for t in tasks] == [task["id"]]


class TestUserRemoval:
    @pytest.mark.asyncio
    async def test_references_dropped_everywhere(self, broker, admin, manager, employee, acme):
        await get(broker, "organisation.addMember", admin, id=acme["id"], user=employee.id)
        project = await ProjectFactory.create(broker, manager, acme["id"], members=[employee.id])
        task = await TaskFactory.create(broker, manager, project["id"], assignee=employee.id)
        comment = await CommentFactory.create(broker, employee, task["id"], text="On it")
        await broker.drain()

        result = await get(broker, "user.remove", employee, id=employee.id)
        await broker.drain()

        assert result == {"message": "User deleted"}
        org = await get(broker, "organisation.get", admin, id=acme["id"])
        assert org["members"] == []
        assert (await get(broker, "project.get", manager, id=project["id"]))["members"] == []
        assert (await get(broker, "task.get", manager, id=task["id"]))["assignee"] is None

        kept = await get(broker, "task.comment.get", manager, id=comment["id"])
        assert kept["author"] is None
        assert kept["author_name"] == "Eve Employee"
        assert kept["text"] == "On it"

    @pytest.mark.asyncio
    async def test_removed_user_loses_access(self, broker, employee):
        await get(broker, "user.remove", employee, id=employee.id)

        result = await broker.call("user.isAuthorized", {"id": employee.id, "actionRank": "employee"})
        assert result.value is False


class TestOrganisationRemoval:
    @pytest.mark.asyncio
    async def test_members_reset_and_projects_cascade(self, broker, admin, manager, acme):
        await get(broker, "organisation.addMember", admin, id=acme["id"], user=manager.id)
        project = await ProjectFactory.create(broker, manager, acme["id"])
        task = await TaskFactory.create(broker, manager, project["id"])
        await broker.drain()

        assert (await get(broker, "user.get", manager, id=manager.id))["organisation"] == acme["id"]

        await get(broker, "organisation.remove", admin, id=acme["id"])
        await broker.drain()

        user = await get(broker, "user.get", manager, id=manager.id)
        assert user["organisation"] is None
        assert user["role"] == "employee"
        assert await get(broker, "project.list", admin, organisation=acme["id"]) == []
        assert await get(broker, "task.list", admin, project=project["id"]) == []
        assert (await broker.call("task.get", {"id": task["id"]}, ctx_for(admin))).error.kind == (
            ErrorKind.NOT_FOUND
        )

    @pytest.mark.asyncio
    async def test_member_removed(self, broker, admin, employee, acme):
        await get(broker, "organisation.addMember", admin, id=acme["id"], user=employee.id)
        await broker.drain()
        await get(broker, "organisation.removeMember", admin, id=acme["id"], user=employee.id)
        await broker.drain()

        assert (await get(broker, "user.get", employee, id=employee.id))["organisation"] is None
        assert await get(broker, "user.getByOrg", admin, organisation=acme["id"]) == []


class TestOrganisationMove:
    @pytest.mark.asyncio
    async def test_member_moves_to_new_organisation(self, broker, admin, employee, acme):
        """Joining a second organisation leaves the first one's roster."""
        globex = await OrganisationFactory.create(broker, admin, name="Globex")
        await get(broker, "organisation.addMember", admin, id=acme["id"], user=employee.id)
        await broker.drain()

        moved = await get(broker, "organisation.addMember", admin, id=globex["id"], user=employee.id)
        await broker.drain()

        assert [m["id"] for m in moved["members"]] == [employee.id]
        assert (await get(broker, "organisation.get", admin, id=acme["id"]))["members"] == []
        assert await get(broker, "user.getByOrg", admin, organisation=acme["id"]) == []
        assert (await get(broker, "user.get", employee, id=employee.id))["organisation"] == globex["id"]

    @pytest.mark.asyncio
    async def test_move_emits_removal_for_old_organisation(self, broker, admin, employee, acme):
        removed = []

        async def record(event):
            removed.append(event)

        broker.events.subscribe(UserOrgRemoved, record)
        globex = await OrganisationFactory.create(broker, admin, name="Globex")
        await get(broker, "organisation.addMember", admin, id=acme["id"], user=employee.id)
        await get(broker, "organisation.addMember", admin, id=globex["id"], user=employee.id)
        await broker.drain()

        assert removed == [UserOrgRemoved(id=acme["id"], user=employee.id)]


class TestIdempotentHandlers:
    """Duplicate or late deliveries must leave references unchanged."""

    @pytest.mark.asyncio
    async def test_duplicate_member_added(self, broker, manager, employee, acme):
        project = await ProjectFactory.create(broker, manager, acme["id"])
        await broker.drain()

        event = ProjectMemberAdded(project=project["id"], user=employee.id)
        broker.emit(event)
        broker.emit(event)
        await broker.drain()

        assert (await get(broker, "user.get", employee, id=employee.id))["projects"] == [project["id"]]

    @pytest.mark.asyncio
    async def test_duplicate_project_created(self, broker, admin, manager, acme):
        project = await ProjectFactory.create(broker, manager, acme["id"])
        await broker.drain()

        broker.emit(ProjectCreated(org=acme["id"], project=project["id"]))
        await broker.drain()

        org = await get(broker, "organisation.get", admin, id=acme["id"])
        assert [p["id"] for p in org["projects"]] == [project["id"]]

    @pytest.mark.asyncio
    async def test_removal_of_absent_reference(self, broker, employee, acme):
        broker.emit(ProjectMemberRemoved(project="p" * 32, user=employee.id))
        broker.emit(UserOrgRemoved(id=acme["id"], user=employee.id))
        broker.emit(TaskRemoved(task="t" * 32, project="p" * 32))
        await broker.drain()

        user = await get(broker, "user.get", employee, id=employee.id)
        assert user["projects"] == []
        assert user["organisation"] is None

    @pytest.mark.asyncio
    async def test_late_create_for_removed_task_ignored(self, broker, manager, acme):
        """A task.created that arrives after the task is gone adds nothing."""
        project = await ProjectFactory.create(broker, manager, acme["id"])
        await broker.drain()

        broker.emit(TaskCreated(project=project["id"], task="t" * 32))
        await broker.drain()

        assert (await get(broker, "project.get", manager, id=project["id"]))["tasks"] == []

    @pytest.mark.asyncio
    async def test_stale_org_removed_keeps_newer_org(self, broker, admin, employee, acme):
        """user.orgRemoved for an old organisation doesn't detach the current one."""
        other = await OrganisationFactory.create(broker, admin, name="Globex")
        await get(broker, "organisation.addMember", admin, id=other["id"], user=employee.id)
        await broker.drain()

        broker.emit(UserOrgRemoved(id=acme["id"], user=employee.id))
        await broker.drain()

        assert (await get(broker, "user.get", employee, id=employee.id))["organisation"] == other["id"]
