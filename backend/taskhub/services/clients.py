"""
Typed clients for calling other services over the action bus.

WHAT: Thin wrappers that name the actions a service depends on and turn
their ActionResults into values or exceptions.

WHY: Existence and authorization checks sit on the hot path of every
protected write. They must fail closed:
- a service that cannot answer (timeout, not registered, internal error)
  raises ServiceUnavailableError, never a default "yes"
- a False authorization answer raises ForbiddenError
- a False existence answer raises NotFoundError
Display-only lookups (basic user data, project summaries) are the opposite:
a missing or unreachable target is skipped.
"""

import logging
from typing import Any, Dict, Iterable, Optional, Union

from taskhub.bus.actions import ActionBus, ActionResult, CallerContext, ANONYMOUS
from taskhub.core.exceptions import (
    ErrorKind,
    ForbiddenError,
    NotFoundError,
    ServiceUnavailableError,
)
from taskhub.core.roles import RoleSet, format_roles
from taskhub.models.token import TokenType

logger = logging.getLogger(__name__)

_UNREACHABLE = (ErrorKind.UNAVAILABLE, ErrorKind.INTERNAL)


class ServiceClient:
    """Base client bound to one service's action prefix."""

    prefix: str = ""
    entity: str = "entity"

    def __init__(self, bus: ActionBus):
        self.bus = bus

    async def call(self, action: str, ctx: CallerContext = ANONYMOUS, **params: Any) -> ActionResult:
        return await self.bus.call(f"{self.prefix}.{action}", params, ctx)

    async def request(self, action: str, ctx: CallerContext = ANONYMOUS, **params: Any) -> Any:
        """
        Call an action and return its value.

        Raises:
            ServiceUnavailableError: If the service could not answer
            AppException: The remote error, rebuilt from its kind
        """
        name = f"{self.prefix}.{action}"
        result = await self.bus.call(name, params, ctx)
        if result.ok:
            return result.value
        if result.error.kind in _UNREACHABLE:
            logger.warning(f"{name} unavailable: {result.error.message}")
            raise ServiceUnavailableError(
                message=f"Could not reach {name}: {result.error.message}",
                action=name,
            )
        return result.unwrap()

    async def is_created(self, id: str, ctx: CallerContext = ANONYMOUS) -> bool:
        return bool(await self.request("isCreated", ctx, id=id))

    async def require_exists(self, id: str, ctx: CallerContext = ANONYMOUS) -> None:
        """
        Raises:
            NotFoundError: If the owning service has no such entity
        """
        if not await self.is_created(id, ctx):
            raise NotFoundError(message=f"Provided {self.entity} not found", id=id)


class UserClient(ServiceClient):
    """Authorization delegation and user lookups."""

    prefix = "user"
    entity = "user"

    async def is_authorized(
        self,
        user_id: str,
        roles: Union[RoleSet, Iterable[str], str],
        ctx: CallerContext = ANONYMOUS,
    ) -> bool:
        if isinstance(roles, (set, frozenset)):
            roles = format_roles(frozenset(roles))
        elif not isinstance(roles, str):
            roles = "|".join(roles)
        return bool(await self.request("isAuthorized", ctx, id=user_id, actionRank=roles))

    async def require_role(
        self,
        roles: RoleSet,
        ctx: CallerContext,
        user_id: Optional[str] = None,
    ) -> None:
        """
        Fail unless the acting user's current role is in roles.

        Args:
            roles: Accepted roles
            ctx: Caller context; its user is checked unless user_id is given
            user_id: Explicit user to check

        Raises:
            ForbiddenError: If the role is outside the set (or the user is gone)
            ServiceUnavailableError: If the User Service could not answer
        """
        subject = user_id or ctx.user_id
        if subject is None or not await self.is_authorized(subject, roles, ctx):
            raise ForbiddenError(user=subject)

    async def get_basic_data(
        self, user_id: str, ctx: CallerContext = ANONYMOUS
    ) -> Optional[Dict[str, Any]]:
        """{id, name, role} for display, or None if the user can't be shown."""
        result = await self.call("getBasicData", ctx, id=user_id)
        if not result.ok:
            if result.error.kind != ErrorKind.NOT_FOUND:
                logger.warning(f"user.getBasicData({user_id}) failed: {result.error.message}")
            return None
        return result.value


class OrganisationClient(ServiceClient):
    prefix = "organisation"
    entity = "organisation"


class ProjectClient(ServiceClient):
    prefix = "project"
    entity = "project"

    async def get_summary(
        self, project_id: str, ctx: CallerContext = ANONYMOUS
    ) -> Optional[Dict[str, Any]]:
        """{id, name, budget} for display, or None if the project can't be shown."""
        result = await self.call("get", ctx, id=project_id)
        if not result.ok:
            return None
        project = result.value
        return {"id": project["id"], "name": project["name"], "budget": project["budget"]}


class TaskClient(ServiceClient):
    prefix = "task"
    entity = "task"


class TaskCommentClient(ServiceClient):
    prefix = "task.comment"
    entity = "task comment"


class TokenClient(ServiceClient):
    prefix = "tokens"
    entity = "token"

    async def generate(
        self, token_type: TokenType, owner: str, expiry: Optional[float] = None
    ) -> Dict[str, Any]:
        return await self.request("generate", type=token_type.value, owner=owner, expiry=expiry)

    async def check(self, token_type: TokenType, token: str) -> Optional[Dict[str, Any]]:
        """Consume a token. Returns its info, or None if invalid or used."""
        return await self.request("check", type=token_type.value, token=token)


class MailClient(ServiceClient):
    prefix = "mail"
    entity = "mail"

    async def send(self, to: str, subject: str, text: str) -> bool:
        return bool(await self.request("send", to=to, subject=subject, text=text))
