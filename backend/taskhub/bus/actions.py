"""
Action bus: request/response calls between services.

WHAT: Named actions ("project.create", "user.isAuthorized") with a pydantic
params schema, called with the caller's identity and answered with an
ActionResult that carries either a value or a structured error.

WHY: A remote call can fail for reasons the callee never sees (timeouts,
missing services). Returning the failure as data, with an ErrorKind, makes
those outcomes explicit at every call site. unwrap() turns a failure back
into the matching AppException where raising is the natural flow.

HOW:
1. Look up the action (unknown -> UNAVAILABLE)
2. Reject anonymous callers of protected actions (UNAUTHORIZED)
3. Validate params with the action's schema (VALIDATION)
4. Run the handler under ACTION_TIMEOUT_SECONDS; idempotent actions are
   retried with exponential backoff on UNAVAILABLE
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Type

from pydantic import BaseModel, ValidationError as PydanticValidationError

from taskhub.core.config import settings
from taskhub.core.exceptions import AppException, ErrorKind, exception_for
from taskhub.models.user import UserRole

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallerContext:
    """
    Identity attached to every action call.

    Fields:
    - user_id: Authenticated user, None for anonymous calls
    - role: Role at resolution time (informational; authorization always
      asks the User Service)
    - request_id: Correlation ID from the gateway
    """

    user_id: Optional[str] = None
    role: Optional[UserRole] = None
    request_id: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None


ANONYMOUS = CallerContext()


@dataclass(frozen=True)
class ActionError:
    kind: ErrorKind
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_exception(cls, exc: AppException) -> "ActionError":
        payload = exc.to_dict()
        return cls(kind=exc.kind, message=exc.message, details=payload["details"] or {})


@dataclass(frozen=True)
class ActionResult:
    """Outcome of an action call: exactly one of value / error is meaningful."""

    value: Any = None
    error: Optional[ActionError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Any:
        """
        Return the value or raise the error as an AppException.

        Raises:
            AppException: Subclass registered for the error's kind
        """
        if self.error is not None:
            raise exception_for(self.error.kind, self.error.message, **self.error.details)
        return self.value


ActionHandler = Callable[[Any, CallerContext], Awaitable[Any]]


@dataclass
class ActionDef:
    """
    A registered action.

    Fields:
    - handler: async handler(params, ctx)
    - params: pydantic model validated from the raw params
    - auth_required: Reject calls without ctx.user_id
    - idempotent: Safe to retry (read-only checks and queries)
    - internal: Service-to-service only, never reachable through the gateway
    """

    handler: ActionHandler
    params: Type[BaseModel]
    auth_required: bool = True
    idempotent: bool = False
    internal: bool = False


class ActionBus:
    """
    In-process action registry and caller.

    Every failure, including ones raised by the handler, comes back as an
    ActionResult; call() itself only raises on cancellation.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        retry_attempts: Optional[int] = None,
        retry_backoff: Optional[float] = None,
    ) -> None:
        self._actions: Dict[str, ActionDef] = {}
        self.timeout = timeout if timeout is not None else settings.ACTION_TIMEOUT_SECONDS
        self.retry_attempts = (
            retry_attempts if retry_attempts is not None else settings.ACTION_RETRY_ATTEMPTS
        )
        self.retry_backoff = (
            retry_backoff if retry_backoff is not None else settings.ACTION_RETRY_BACKOFF_SECONDS
        )

    def register(self, name: str, action: ActionDef) -> None:
        if name in self._actions:
            raise ValueError(f"Action '{name}' is already registered")
        self._actions[name] = action

    def unregister(self, name: str) -> None:
        self._actions.pop(name, None)

    def has(self, name: str) -> bool:
        return name in self._actions

    def get(self, name: str) -> Optional[ActionDef]:
        return self._actions.get(name)

    @property
    def names(self) -> list:
        return sorted(self._actions)

    async def call(
        self,
        name: str,
        params: Optional[Dict[str, Any]] = None,
        ctx: CallerContext = ANONYMOUS,
    ) -> ActionResult:
        """
        Call an action and return its outcome.

        Args:
            name: Action name, e.g. "organisation.isCreated"
            params: Raw params, validated against the action's schema
            ctx: Caller identity

        Returns:
            ActionResult with the handler's return value or an ActionError
        """
        action = self._actions.get(name)
        if action is None:
            logger.warning(f"Call to unknown action {name} (request_id={ctx.request_id})")
            return ActionResult(
                error=ActionError(ErrorKind.UNAVAILABLE, f"Action '{name}' is not available")
            )

        if action.auth_required and not ctx.is_authenticated:
            return ActionResult(error=ActionError(ErrorKind.UNAUTHORIZED, "Authentication required"))

        try:
            parsed = action.params.model_validate(params or {})
        except PydanticValidationError as e:
            return ActionResult(
                error=ActionError(
                    ErrorKind.VALIDATION,
                    "Invalid parameters",
                    {"errors": e.errors(include_url=False, include_context=False)},
                )
            )

        attempts = self.retry_attempts if action.idempotent else 1
        result = ActionResult()
        for attempt in range(1, attempts + 1):
            result = await self._invoke(name, action, parsed, ctx)
            if result.ok or result.error.kind != ErrorKind.UNAVAILABLE or attempt == attempts:
                break
            delay = self.retry_backoff * (2 ** (attempt - 1))
            logger.info(f"Retrying {name} in {delay:.2f}s (attempt {attempt + 1}/{attempts})")
            await asyncio.sleep(delay)
        return result

    async def _invoke(
        self, name: str, action: ActionDef, params: BaseModel, ctx: CallerContext
    ) -> ActionResult:
        try:
            value = await asyncio.wait_for(action.handler(params, ctx), timeout=self.timeout)
            return ActionResult(value=value)
        except asyncio.TimeoutError:
            logger.warning(f"Action {name} timed out after {self.timeout}s (request_id={ctx.request_id})")
            return ActionResult(
                error=ActionError(ErrorKind.UNAVAILABLE, f"Action '{name}' timed out")
            )
        except AppException as e:
            logger.debug(f"Action {name} failed with {e.kind.value}: {e.message}")
            return ActionResult(error=ActionError.from_exception(e))
        except PydanticValidationError as e:
            return ActionResult(
                error=ActionError(
                    ErrorKind.VALIDATION,
                    "Invalid data",
                    {"errors": e.errors(include_url=False, include_context=False)},
                )
            )
        except Exception:
            logger.exception(f"Action {name} raised an unexpected error (request_id={ctx.request_id})")
            return ActionResult(error=ActionError(ErrorKind.INTERNAL, "Internal error"))
