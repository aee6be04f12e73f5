"""
Project Service.

WHAT: Owns projects, their member roster and their task roster.

WHY: A project must point at a live organisation when it is created; the
Organisation Service learns about it from project.created. Removing a
project (directly, or because its organisation went away) emits
project.removed so tasks cascade and rosters elsewhere drop it.
"""

import logging
from typing import Any, Dict, List

from taskhub.bus.actions import ActionDef, CallerContext
from taskhub.bus.events import (
    OrganisationRemoved,
    ProjectCreated,
    ProjectMemberAdded,
    ProjectMemberRemoved,
    ProjectRemoved,
    TaskCreated,
    TaskRemoved,
    UserRemoved,
)
from taskhub.core.exceptions import ConflictError, NotFoundError, ValidationError
from taskhub.core.roles import MANAGERS
from taskhub.dao.project import ProjectDAO
from taskhub.models.project import Project
from taskhub.schemas.common import IdParams
from taskhub.schemas.project import (
    ProjectCreate,
    ProjectListParams,
    ProjectMemberParams,
    ProjectResponse,
    ProjectUpdateParams,
)
from taskhub.services.base import BaseService, dump, still_exists

logger = logging.getLogger(__name__)


class ProjectService(BaseService):
    """Project Service: actions under "project.*"."""

    prefix = "project"
    store_name = "projects"

    def actions(self) -> Dict[str, ActionDef]:
        return {
            "create": ActionDef(self.create, ProjectCreate),
            "update": ActionDef(self.update, ProjectUpdateParams),
            "get": ActionDef(self.get, IdParams, idempotent=True),
            "list": ActionDef(self.list, ProjectListParams, idempotent=True),
            "remove": ActionDef(self.remove, IdParams),
            "addMember": ActionDef(self.add_member, ProjectMemberParams),
            "removeMember": ActionDef(self.remove_member, ProjectMemberParams),
            "tasks": ActionDef(self.list_tasks, IdParams, idempotent=True),
            "isCreated": ActionDef(
                self.is_created, IdParams, auth_required=False, idempotent=True, internal=True
            ),
        }

    def subscriptions(self):
        return [
            (OrganisationRemoved, self.on_organisation_removed),
            (TaskCreated, self.on_task_created),
            (TaskRemoved, self.on_task_removed),
            (UserRemoved, self.on_user_removed),
        ]

    def _dao(self, session) -> ProjectDAO:
        return ProjectDAO(session, self.change_listeners)

    async def _to_response(self, dao: ProjectDAO, project: Project) -> Dict[str, Any]:
        return dump(
            ProjectResponse,
            project,
            members=await dao.members.refs(project.id),
            tasks=await dao.tasks.refs(project.id),
        )

    async def _require_project(self, project_id: str) -> Project:
        async with self.store.session() as session:
            project = await self._dao(session).get_by_id(project_id)
        if project is None:
            raise NotFoundError(message="Project not found", id=project_id)
        return project

    # ========================================================================
    # Actions
    # ========================================================================

    async def create(self, params: ProjectCreate, ctx: CallerContext) -> Dict[str, Any]:
        """
        Create a project inside an existing organisation.

        WHAT: Validates every reference, then inserts the project with its
        initial members.

        WHY: All checks run before the write, so a rejected creation leaves
        no project behind and emits nothing.

        Raises:
            NotFoundError: Organisation or an initial member does not exist
            ForbiddenError: Caller is not an admin or project manager

        Emits:
            project.created{org, project, members}
        """
        members = list(dict.fromkeys(params.members))
        await self.organisations.require_exists(params.organisation, ctx)
        for user_id in members:
            await self.users.require_exists(user_id, ctx)
        await self.users.require_role(MANAGERS, ctx)

        async with self.store.session() as session:
            dao = self._dao(session)
            project = await dao.insert(
                name=params.name,
                organisation=params.organisation,
                budget=params.budget,
            )
            await dao.members.add_many(project.id, members)
            body = await self._to_response(dao, project)

        self.emit(ProjectCreated(org=project.organisation, project=project.id, members=members))
        logger.info(f"Project created: {project.id} in organisation {project.organisation}")
        return body

    async def update(self, params: ProjectUpdateParams, ctx: CallerContext) -> Dict[str, Any]:
        """
        Raises:
            ValidationError: If the update tries to move the project
        """
        project = await self._require_project(params.id)
        if params.organisation is not None and params.organisation != project.organisation:
            raise ValidationError(message="A project can't be moved to another organisation")
        await self.users.require_role(MANAGERS, ctx)

        changes = params.model_dump(exclude_unset=True, exclude={"id", "organisation"})
        changes = {k: v for k, v in changes.items() if v is not None}
        async with self.store.session() as session:
            dao = self._dao(session)
            project = await dao.update_by_id(params.id, **changes)
            if project is None:
                raise NotFoundError(message="Project not found", id=params.id)
            return await self._to_response(dao, project)

    async def get(self, params: IdParams, ctx: CallerContext) -> Dict[str, Any]:
        async with self.store.session() as session:
            dao = self._dao(session)
            project = await dao.get_by_id(params.id)
            if project is None:
                raise NotFoundError(message="Project not found", id=params.id)
            return await self._to_response(dao, project)

    async def list(self, params: ProjectListParams, ctx: CallerContext) -> List[Dict[str, Any]]:
        filters = {"organisation": params.organisation} if params.organisation else {}
        async with self.store.session() as session:
            dao = self._dao(session)
            return [await self._to_response(dao, p) for p in await dao.find(**filters)]

    async def remove(self, params: IdParams, ctx: CallerContext) -> Dict[str, Any]:
        """
        Emits:
            project.removed{project, org}: tasks cascade, rosters drop it
        """
        await self._require_project(params.id)
        await self.users.require_role(MANAGERS, ctx)

        async with self.store.session() as session:
            project = await self._dao(session).remove_by_id(params.id)
            if project is None:
                raise NotFoundError(message="Project not found", id=params.id)

        self.emit(ProjectRemoved(project=project.id, org=project.organisation))
        logger.info(f"Project removed: {project.id}")
        return {"message": "Project deleted"}

    async def add_member(self, params: ProjectMemberParams, ctx: CallerContext) -> Dict[str, Any]:
        """
        Raises:
            ConflictError: User is already a member

        Emits:
            project.memberAdded{project, user}
        """
        await self._require_project(params.id)
        await self.users.require_exists(params.user, ctx)
        await self.users.require_role(MANAGERS, ctx)

        async with self.store.session() as session:
            dao = self._dao(session)
            project = await dao.get_by_id(params.id)
            if project is None:
                raise NotFoundError(message="Project not found", id=params.id)
            if not await dao.members.add(params.id, params.user):
                raise ConflictError(message="User is already member of this project")
            body = await self._to_response(dao, project)

        self.emit(ProjectMemberAdded(project=params.id, user=params.user))
        return body

    async def remove_member(self, params: ProjectMemberParams, ctx: CallerContext) -> Dict[str, Any]:
        """
        Raises:
            ValidationError: User is not a member

        Emits:
            project.memberRemoved{project, user}
        """
        await self._require_project(params.id)
        await self.users.require_role(MANAGERS, ctx)

        async with self.store.session() as session:
            dao = self._dao(session)
            if not await dao.members.remove(params.id, params.user):
                raise ValidationError(message="User is not member of this project")
            project = await dao.get_by_id(params.id)
            body = await self._to_response(dao, project) if project else None

        self.emit(ProjectMemberRemoved(project=params.id, user=params.user))
        if body is None:
            raise NotFoundError(message="Project not found", id=params.id)
        return body

    async def list_tasks(self, params: IdParams, ctx: CallerContext) -> List[Dict[str, Any]]:
        await self._require_project(params.id)
        return await self.tasks.request("list", ctx, project=params.id)

    async def is_created(self, params: IdParams, ctx: CallerContext) -> bool:
        async with self.store.session() as session:
            return await self._dao(session).exists(id=params.id)

    # ========================================================================
    # Event handlers
    # ========================================================================

    async def on_organisation_removed(self, event: OrganisationRemoved) -> None:
        """Cascade: delete the organisation's projects, announcing each one."""
        async with self.store.session() as session:
            dao = self._dao(session)
            removed = []
            for project in await dao.get_by_organisation(event.org):
                if await dao.remove_by_id(project.id) is not None:
                    removed.append(project.id)

        for project_id in removed:
            self.emit(ProjectRemoved(project=project_id, org=event.org))
        logger.info(f"organisation.removed: removed {len(removed)} project(s) of {event.org}")

    async def on_task_created(self, event: TaskCreated) -> None:
        if not await still_exists(self.tasks, event.task):
            logger.info(f"task.created: {event.task} already gone, ignoring")
            return
        async with self.store.session() as session:
            dao = self._dao(session)
            if not await dao.exists(id=event.project):
                logger.debug(f"task.created: project {event.project} not found")
                return
            await dao.tasks.add(event.project, event.task)

    async def on_task_removed(self, event: TaskRemoved) -> None:
        async with self.store.session() as session:
            await self._dao(session).tasks.remove(event.project, event.task)

    async def on_user_removed(self, event: UserRemoved) -> None:
        async with self.store.session() as session:
            await self._dao(session).members.remove_everywhere(event.user)
