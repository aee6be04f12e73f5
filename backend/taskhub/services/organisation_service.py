"""
Organisation Service.

WHAT: Owns organisations, their member roster and their project roster.

WHY: Both rosters are back-references. Members change through this
service's own addMember / removeMember actions (which tell the User
Service via user.orgAdded / user.orgRemoved); projects change only in
response to project.created / project.removed.
"""

import logging
from typing import Any, Dict, List

from taskhub.bus.actions import ActionDef, CallerContext
from taskhub.bus.events import (
    OrganisationRemoved,
    ProjectCreated,
    ProjectRemoved,
    UserOrgAdded,
    UserOrgRemoved,
    UserRemoved,
)
from taskhub.core.exceptions import ConflictError, NotFoundError, ValidationError
from taskhub.core.roles import ADMIN_ONLY
from taskhub.dao.organisation import OrganisationDAO
from taskhub.models.organisation import Organisation
from taskhub.schemas.common import EmptyParams, IdParams
from taskhub.schemas.organisation import (
    OrganisationCreate,
    OrganisationMemberParams,
    OrganisationResponse,
    OrganisationUpdateParams,
)
from taskhub.services.base import BaseService, conflict_on_duplicate, dump, still_exists

logger = logging.getLogger(__name__)

NAME_TAKEN = "Organisation with that name already exists"


class OrganisationService(BaseService):
    """Organisation Service: actions under "organisation.*"."""

    prefix = "organisation"
    store_name = "organisations"

    def actions(self) -> Dict[str, ActionDef]:
        return {
            "create": ActionDef(self.create, OrganisationCreate),
            "update": ActionDef(self.update, OrganisationUpdateParams),
            "get": ActionDef(self.get, IdParams, idempotent=True),
            "list": ActionDef(self.list, EmptyParams, idempotent=True),
            "remove": ActionDef(self.remove, IdParams),
            "addMember": ActionDef(self.add_member, OrganisationMemberParams),
            "removeMember": ActionDef(self.remove_member, OrganisationMemberParams),
            "projects": ActionDef(self.list_projects, IdParams, idempotent=True),
            "isCreated": ActionDef(
                self.is_created, IdParams, auth_required=False, idempotent=True, internal=True
            ),
        }

    def subscriptions(self):
        return [
            (UserRemoved, self.on_user_removed),
            (ProjectCreated, self.on_project_created),
            (ProjectRemoved, self.on_project_removed),
        ]

    def _dao(self, session) -> OrganisationDAO:
        return OrganisationDAO(session, self.change_listeners)

    async def _load(self, org_id: str) -> tuple:
        """Fetch an organisation and its raw rosters in one session."""
        async with self.store.session() as session:
            dao = self._dao(session)
            org = await dao.get_by_id(org_id)
            if org is None:
                raise NotFoundError(message="Organisation not found", id=org_id)
            return org, await dao.members.refs(org_id), await dao.projects.refs(org_id)

    async def _populate(
        self, org: Organisation, members: List[str], projects: List[str], ctx: CallerContext
    ) -> Dict[str, Any]:
        """
        Replace roster IDs with display data.

        IDs whose targets are gone (or can't be fetched) are skipped; the
        rosters are weak references and converge through events.
        """
        member_data = []
        for user_id in members:
            basic = await self.users.get_basic_data(user_id, ctx)
            if basic is not None:
                member_data.append(basic)
        project_data = []
        for project_id in projects:
            summary = await self.projects.get_summary(project_id, ctx)
            if summary is not None:
                project_data.append(summary)
        return dump(OrganisationResponse, org, members=member_data, projects=project_data)

    # ========================================================================
    # Actions
    # ========================================================================

    async def create(self, params: OrganisationCreate, ctx: CallerContext) -> Dict[str, Any]:
        """
        Raises:
            ConflictError: If the name is taken
        """
        with conflict_on_duplicate(NAME_TAKEN, name=params.name):
            async with self.store.session() as session:
                dao = self._dao(session)
                if await dao.name_exists(params.name):
                    raise ConflictError(message=NAME_TAKEN, name=params.name)
                org = await dao.insert(**params.model_dump())

        logger.info(f"Organisation created: {org.id}")
        return dump(OrganisationResponse, org, members=[], projects=[])

    async def update(self, params: OrganisationUpdateParams, ctx: CallerContext) -> Dict[str, Any]:
        changes = params.model_dump(exclude_unset=True, exclude={"id"})
        changes = {k: v for k, v in changes.items() if v is not None}

        await self._load(params.id)
        await self.users.require_role(ADMIN_ONLY, ctx)

        with conflict_on_duplicate(NAME_TAKEN, name=changes.get("name")):
            async with self.store.session() as session:
                dao = self._dao(session)
                if "name" in changes and await dao.name_exists(changes["name"], exclude_id=params.id):
                    raise ConflictError(message=NAME_TAKEN, name=changes["name"])
                org = await dao.update_by_id(params.id, **changes)
                if org is None:
                    raise NotFoundError(message="Organisation not found", id=params.id)
                members, projects = await dao.members.refs(org.id), await dao.projects.refs(org.id)

        return await self._populate(org, members, projects, ctx)

    async def get(self, params: IdParams, ctx: CallerContext) -> Dict[str, Any]:
        org, members, projects = await self._load(params.id)
        return await self._populate(org, members, projects, ctx)

    async def list(self, params: EmptyParams, ctx: CallerContext) -> List[Dict[str, Any]]:
        async with self.store.session() as session:
            dao = self._dao(session)
            rows = [
                (org, await dao.members.refs(org.id), await dao.projects.refs(org.id))
                for org in await dao.find()
            ]
        return [await self._populate(org, members, projects, ctx) for org, members, projects in rows]

    async def remove(self, params: IdParams, ctx: CallerContext) -> Dict[str, Any]:
        """
        Delete an organisation.

        Emits:
            organisation.removed{org}: users reset their role, projects cascade
        """
        await self._load(params.id)
        await self.users.require_role(ADMIN_ONLY, ctx)

        async with self.store.session() as session:
            org = await self._dao(session).remove_by_id(params.id)
            if org is None:
                raise NotFoundError(message="Organisation not found", id=params.id)

        self.emit(OrganisationRemoved(org=org.id))
        logger.info(f"Organisation removed: {org.id}")
        return {"message": "Organisation deleted"}

    async def add_member(self, params: OrganisationMemberParams, ctx: CallerContext) -> Dict[str, Any]:
        """
        Add a user to the organisation.

        A user belongs to at most one organisation, so a member of another
        organisation is moved: dropped from the old roster in the same
        write, with user.orgRemoved emitted for the old organisation.

        Raises:
            NotFoundError: Unknown organisation or user
            ForbiddenError: Caller is not an admin
            ConflictError: User is already a member

        Emits:
            user.orgRemoved{id, user} for a previous organisation, then
            user.orgAdded{id, user}
        """
        await self._load(params.id)
        await self.users.require_exists(params.user, ctx)
        await self.users.require_role(ADMIN_ONLY, ctx)

        async with self.store.session() as session:
            dao = self._dao(session)
            if await dao.get_by_id(params.id) is None:
                raise NotFoundError(message="Organisation not found", id=params.id)
            if not await dao.members.add(params.id, params.user):
                raise ConflictError(message="User is already member of this organisation")
            previous = [o for o in await dao.members.owners_of(params.user) if o != params.id]
            for org_id in previous:
                await dao.members.remove(org_id, params.user)

        for org_id in previous:
            self.emit(UserOrgRemoved(id=org_id, user=params.user))
        if previous:
            logger.info(f"User {params.user} moved from organisation {previous[0]} to {params.id}")
        self.emit(UserOrgAdded(id=params.id, user=params.user))
        return await self.get(IdParams(id=params.id), ctx)

    async def remove_member(self, params: OrganisationMemberParams, ctx: CallerContext) -> Dict[str, Any]:
        """
        Raises:
            ValidationError: User is not a member

        Emits:
            user.orgRemoved{id, user}
        """
        _, members, _ = await self._load(params.id)
        if params.user not in members:
            raise ValidationError(message="User is not member of this organisation")
        await self.users.require_role(ADMIN_ONLY, ctx)

        async with self.store.session() as session:
            removed = await self._dao(session).members.remove(params.id, params.user)

        if removed:
            self.emit(UserOrgRemoved(id=params.id, user=params.user))
        return await self.get(IdParams(id=params.id), ctx)

    async def list_projects(self, params: IdParams, ctx: CallerContext) -> List[Dict[str, Any]]:
        _, _, projects = await self._load(params.id)
        summaries = []
        for project_id in projects:
            summary = await self.projects.get_summary(project_id, ctx)
            if summary is not None:
                summaries.append(summary)
        return summaries

    async def is_created(self, params: IdParams, ctx: CallerContext) -> bool:
        async with self.store.session() as session:
            return await self._dao(session).exists(id=params.id)

    # ========================================================================
    # Event handlers
    # ========================================================================

    async def on_user_removed(self, event: UserRemoved) -> None:
        async with self.store.session() as session:
            count = await self._dao(session).members.remove_everywhere(event.user)
        logger.debug(f"user.removed: {event.user} dropped from {count} organisation(s)")

    async def on_project_created(self, event: ProjectCreated) -> None:
        if not await still_exists(self.projects, event.project):
            logger.info(f"project.created: {event.project} already gone, ignoring")
            return
        async with self.store.session() as session:
            dao = self._dao(session)
            if not await dao.exists(id=event.org):
                logger.debug(f"project.created: organisation {event.org} not found")
                return
            await dao.projects.add(event.org, event.project)

    async def on_project_removed(self, event: ProjectRemoved) -> None:
        async with self.store.session() as session:
            await self._dao(session).projects.remove(event.org, event.project)
