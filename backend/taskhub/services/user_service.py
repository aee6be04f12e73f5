"""
User Service.

WHAT: Owns user identity, credentials and roles, and answers the
authorization queries every other service delegates to it.

WHY: Role data lives here and nowhere else. Other services never cache a
role; they ask user.isAuthorized on every protected write, and a user that
no longer exists is never authorized.

HOW:
- Registration checks email uniqueness against the local store
- Login issues a JWT; resolveToken turns one back into a caller identity
- Removal emits user.removed so other services drop their references
- Organisation and project membership arrive as events and are applied
  with conditional updates / link-table set operations
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
    UserOrgAdded,
    UserOrgRemoved,
    UserRemoved,
)
from taskhub.core.auth import decode_access_token, hash_password, issue_access_token, verify_password
from taskhub.core.exceptions import (
    AppException,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from taskhub.core.roles import ADMIN_ONLY, RoleSet, parse_roles, role_allowed
from taskhub.dao.user import UserDAO
from taskhub.models.token import TokenType
from taskhub.models.user import User, UserRole, DEFAULT_ROLE
from taskhub.schemas.common import EmptyParams, IdParams
from taskhub.schemas.user import (
    ForgotPasswordParams,
    GetByOrgParams,
    IsAuthorizedParams,
    ResetPasswordParams,
    ResolveTokenParams,
    UserBasicData,
    UserCreate,
    UserFirstParams,
    UserLogin,
    UserResponse,
    UserUpdateParams,
)
from taskhub.services.base import BaseService, conflict_on_duplicate, dump, require_caller

logger = logging.getLogger(__name__)

EMAIL_TAKEN = "User with that email already exists"


class UserService(BaseService):
    """User Service: actions under "user.*"."""

    prefix = "user"
    store_name = "users"

    def actions(self) -> Dict[str, ActionDef]:
        return {
            "first": ActionDef(self.first, UserFirstParams, auth_required=False),
            "create": ActionDef(self.create, UserCreate, auth_required=False),
            "login": ActionDef(self.login, UserLogin, auth_required=False),
            "resolveToken": ActionDef(
                self.resolve_token, ResolveTokenParams, auth_required=False, idempotent=True, internal=True
            ),
            "get": ActionDef(self.get, IdParams, idempotent=True),
            "list": ActionDef(self.list, EmptyParams, idempotent=True),
            "getByOrg": ActionDef(self.get_by_org, GetByOrgParams, idempotent=True),
            "getBasicData": ActionDef(
                self.get_basic_data, IdParams, auth_required=False, idempotent=True, internal=True
            ),
            "update": ActionDef(self.update, UserUpdateParams),
            "remove": ActionDef(self.remove, IdParams),
            "isCreated": ActionDef(
                self.is_created, IdParams, auth_required=False, idempotent=True, internal=True
            ),
            "isAuthorized": ActionDef(
                self.is_authorized, IsAuthorizedParams, auth_required=False, idempotent=True, internal=True
            ),
            "forgotPassword": ActionDef(self.forgot_password, ForgotPasswordParams, auth_required=False),
            "resetPassword": ActionDef(self.reset_password, ResetPasswordParams, auth_required=False),
        }

    def subscriptions(self):
        return [
            (UserOrgAdded, self.on_org_added),
            (UserOrgRemoved, self.on_org_removed),
            (OrganisationRemoved, self.on_organisation_removed),
            (ProjectCreated, self.on_project_created),
            (ProjectRemoved, self.on_project_removed),
            (ProjectMemberAdded, self.on_project_member_added),
            (ProjectMemberRemoved, self.on_project_member_removed),
        ]

    def _dao(self, session) -> UserDAO:
        return UserDAO(session, self.change_listeners)

    async def _to_response(self, dao: UserDAO, user: User) -> Dict[str, Any]:
        return dump(UserResponse, user, projects=await dao.projects.refs(user.id))

    async def _has_role(self, user_id: str, roles: RoleSet) -> bool:
        async with self.store.session() as session:
            user = await self._dao(session).get_by_id(user_id)
            return user is not None and role_allowed(user.role, roles)

    async def _require_self_or_admin(self, target_id: str, ctx: CallerContext) -> None:
        caller = require_caller(ctx)
        if caller != target_id and not await self._has_role(caller, ADMIN_ONLY):
            raise ForbiddenError(message="Only the user or an admin can do that")

    # ========================================================================
    # Registration & authentication
    # ========================================================================

    async def first(self, params: UserFirstParams, ctx: CallerContext) -> Dict[str, Any]:
        """
        Bootstrap the first admin together with their organisation.

        WHAT: Creates an admin user, then asks the Organisation Service to
        create the organisation and add the admin to it.

        WHY: Every other protected action needs an admin to exist first.

        HOW: The organisation calls run after the user commit, acting as the
        new admin. If they fail, the user is removed again so that first can
        be retried.

        Raises:
            ForbiddenError: If any user already exists
        """
        async with self.store.session() as session:
            dao = self._dao(session)
            if await dao.count() > 0:
                raise ForbiddenError(message="Setup has already been completed")
            user = await dao.insert(
                email=params.email.lower(),
                hashed_password=hash_password(params.password),
                first_name=params.first_name,
                last_name=params.last_name,
                role=UserRole.ADMIN,
                settings=params.settings,
            )

        admin_ctx = CallerContext(user_id=user.id, role=UserRole.ADMIN, request_id=ctx.request_id)
        try:
            created = await self.organisations.request(
                "create", admin_ctx, **params.organisation.model_dump()
            )
            organisation = await self.organisations.request(
                "addMember", admin_ctx, id=created["id"], user=user.id
            )
        except AppException:
            logger.warning(f"First-user setup failed, removing user {user.id}")
            async with self.store.session() as session:
                await self._dao(session).remove_by_id(user.id)
            raise

        logger.info(f"First admin {user.id} created with organisation {organisation['id']}")
        token = issue_access_token(user.id, user.role.value)
        async with self.store.session() as session:
            dao = self._dao(session)
            user = await dao.get_by_id(user.id)
            body = await self._to_response(dao, user)
        return {"token": token, "token_type": "bearer", "user": body, "organisation": organisation}

    async def create(self, params: UserCreate, ctx: CallerContext) -> Dict[str, Any]:
        """
        Register a user.

        Raises:
            ForbiddenError: If a non-admin asks for a non-default role
            ConflictError: If the email is taken
        """
        role = params.role or DEFAULT_ROLE
        if role != DEFAULT_ROLE:
            if ctx.user_id is None or not await self._has_role(ctx.user_id, ADMIN_ONLY):
                raise ForbiddenError(message="Only an admin can assign roles")

        hashed_password = hash_password(params.password)
        with conflict_on_duplicate(EMAIL_TAKEN, email=params.email):
            async with self.store.session() as session:
                dao = self._dao(session)
                if await dao.email_exists(params.email):
                    raise ConflictError(message=EMAIL_TAKEN, email=params.email)
                user = await dao.insert(
                    email=params.email.lower(),
                    hashed_password=hashed_password,
                    first_name=params.first_name,
                    last_name=params.last_name,
                    role=role,
                    settings=params.settings,
                )
                body = await self._to_response(dao, user)

        logger.info(f"User created: {user.id}")
        return body

    async def login(self, params: UserLogin, ctx: CallerContext) -> Dict[str, Any]:
        """
        Raises:
            UnauthorizedError: On unknown email or wrong password
        """
        async with self.store.session() as session:
            dao = self._dao(session)
            user = await dao.get_by_email(params.email)
            if user is None or not verify_password(params.password, user.hashed_password):
                raise UnauthorizedError(message="Invalid credentials")
            body = await self._to_response(dao, user)

        token = issue_access_token(user.id, user.role.value)
        return {"token": token, "token_type": "bearer", "user": body}

    async def resolve_token(self, params: ResolveTokenParams, ctx: CallerContext) -> Dict[str, Any]:
        """
        Turn a bearer token into {id, role} for the gateway.

        Raises:
            UnauthorizedError: If the token is invalid or its user is gone
        """
        user_id = decode_access_token(params.token)["sub"]
        async with self.store.session() as session:
            user = await self._dao(session).get_by_id(user_id)
        if user is None:
            raise UnauthorizedError(message="User no longer exists")
        return {"id": user.id, "role": user.role.value}

    # ========================================================================
    # Queries
    # ========================================================================

    async def get(self, params: IdParams, ctx: CallerContext) -> Dict[str, Any]:
        async with self.store.session() as session:
            dao = self._dao(session)
            user = await dao.get_by_id(params.id)
            if user is None:
                raise NotFoundError(message="User not found", id=params.id)
            return await self._to_response(dao, user)

    async def list(self, params: EmptyParams, ctx: CallerContext) -> List[Dict[str, Any]]:
        async with self.store.session() as session:
            dao = self._dao(session)
            return [await self._to_response(dao, user) for user in await dao.find()]

    async def get_by_org(self, params: GetByOrgParams, ctx: CallerContext) -> List[Dict[str, Any]]:
        async with self.store.session() as session:
            dao = self._dao(session)
            users = await dao.find(organisation=params.organisation)
            return [await self._to_response(dao, user) for user in users]

    async def get_basic_data(self, params: IdParams, ctx: CallerContext) -> Dict[str, Any]:
        async with self.store.session() as session:
            user = await self._dao(session).get_by_id(params.id)
        if user is None:
            raise NotFoundError(message="User not found", id=params.id)
        return UserBasicData.model_validate(user).model_dump(mode="json")

    async def is_created(self, params: IdParams, ctx: CallerContext) -> bool:
        async with self.store.session() as session:
            return await self._dao(session).exists(id=params.id)

    async def is_authorized(self, params: IsAuthorizedParams, ctx: CallerContext) -> bool:
        """
        True iff the user exists and their current role is accepted.

        Raises:
            ValidationError: If the accepted roles name an unknown role
        """
        return await self._has_role(params.id, parse_roles(params.accepted))

    # ========================================================================
    # Mutations
    # ========================================================================

    async def update(self, params: UserUpdateParams, ctx: CallerContext) -> Dict[str, Any]:
        """
        Partial profile update by the user themselves or an admin.

        Raises:
            ForbiddenError: Caller is neither the user nor an admin, or a
                non-admin tried to change a role
            NotFoundError: No such user
            ConflictError: New email is taken
        """
        await self._require_self_or_admin(params.id, ctx)

        changes = params.model_dump(exclude_unset=True, exclude={"id", "password"})
        if params.password is not None:
            changes["hashed_password"] = hash_password(params.password)
        if "email" in changes and changes["email"] is not None:
            changes["email"] = changes["email"].lower()
        if params.role is not None and not await self._has_role(require_caller(ctx), ADMIN_ONLY):
            raise ForbiddenError(message="Only an admin can change roles")
        changes = {k: v for k, v in changes.items() if v is not None}

        with conflict_on_duplicate(EMAIL_TAKEN, email=changes.get("email")):
            async with self.store.session() as session:
                dao = self._dao(session)
                if await dao.get_by_id(params.id) is None:
                    raise NotFoundError(message="User not found", id=params.id)
                if "email" in changes and await dao.email_exists(changes["email"], exclude_id=params.id):
                    raise ConflictError(message=EMAIL_TAKEN, email=changes["email"])
                user = await dao.update_by_id(params.id, **changes)
                return await self._to_response(dao, user)

    async def remove(self, params: IdParams, ctx: CallerContext) -> Dict[str, Any]:
        """
        Delete a user and tell everyone holding a reference.

        Emits:
            user.removed{user, org, old_nick}
        """
        await self._require_self_or_admin(params.id, ctx)

        # Re-read after the authorization await; the user may be gone already
        async with self.store.session() as session:
            user = await self._dao(session).remove_by_id(params.id)
            if user is None:
                raise NotFoundError(message="User not found", id=params.id)

        self.emit(UserRemoved(user=user.id, org=user.organisation, old_nick=user.name))
        logger.info(f"User removed: {user.id}")
        return {"message": "User deleted"}

    # ========================================================================
    # Password reset
    # ========================================================================

    async def forgot_password(self, params: ForgotPasswordParams, ctx: CallerContext) -> Dict[str, Any]:
        """
        Issue a password-reset token and mail it to the user.

        Raises:
            NotFoundError: If no user has that email
        """
        async with self.store.session() as session:
            user = await self._dao(session).get_by_email(params.email)
        if user is None:
            raise NotFoundError(message="User with that email not found")

        token = await self.tokens.generate(TokenType.PASSWORD_RESET, user.id)
        await self.mail.send(
            to=user.email,
            subject="Password reset",
            text=f"Use this token to reset your password: {token['token']}",
        )
        return {"message": "Password reset email sent"}

    async def reset_password(self, params: ResetPasswordParams, ctx: CallerContext) -> Dict[str, Any]:
        """
        Consume a password-reset token and set the new password.

        Raises:
            ValidationError: If the token is invalid, expired or used
        """
        info = await self.tokens.check(TokenType.PASSWORD_RESET, params.token)
        if not info:
            raise ValidationError(message="Invalid or expired token")

        async with self.store.session() as session:
            user = await self._dao(session).update_by_id(
                info["owner"], hashed_password=hash_password(params.password)
            )
        if user is None:
            raise NotFoundError(message="User not found")
        return {"message": "Password updated"}

    # ========================================================================
    # Event handlers
    # ========================================================================

    async def on_org_added(self, event: UserOrgAdded) -> None:
        async with self.store.session() as session:
            if not await self._dao(session).set_organisation(event.user, event.id):
                logger.debug(f"user.orgAdded: user {event.user} not found")

    async def on_org_removed(self, event: UserOrgRemoved) -> None:
        async with self.store.session() as session:
            await self._dao(session).clear_organisation(event.user, event.id)

    async def on_organisation_removed(self, event: OrganisationRemoved) -> None:
        """Members of a removed organisation go back to the default role."""
        async with self.store.session() as session:
            count = await self._dao(session).detach_organisation(event.org)
        logger.info(f"organisation.removed: reset {count} user(s) of {event.org}")

    async def _add_project(self, user_id: str, project_id: str) -> None:
        async with self.store.session() as session:
            dao = self._dao(session)
            if not await dao.exists(id=user_id):
                logger.debug(f"Project {project_id} member {user_id} not found")
                return
            await dao.projects.add(user_id, project_id)

    async def on_project_created(self, event: ProjectCreated) -> None:
        for user_id in event.members:
            await self._add_project(user_id, event.project)

    async def on_project_member_added(self, event: ProjectMemberAdded) -> None:
        await self._add_project(event.user, event.project)

    async def on_project_member_removed(self, event: ProjectMemberRemoved) -> None:
        async with self.store.session() as session:
            await self._dao(session).projects.remove(event.user, event.project)

    async def on_project_removed(self, event: ProjectRemoved) -> None:
        async with self.store.session() as session:
            await self._dao(session).projects.remove_everywhere(event.project)
