"""
Base class for bus services.

WHAT: Common plumbing for every service: its store, its clients for other
services, event emission and the action / subscription tables the broker
reads at registration.

WHY: Each service owns exactly one store and writes nothing else. All
cross-service effects go through events (after commit) or through the owning
service's actions (before the local write).
"""

import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple, Type, TYPE_CHECKING

from sqlalchemy import Table
from sqlalchemy.exc import IntegrityError

from taskhub.bus.actions import ActionDef, CallerContext
from taskhub.bus.events import DomainEvent
from taskhub.core.exceptions import ConflictError, ServiceUnavailableError, UnauthorizedError
from taskhub.dao.base import ChangeListener
from taskhub.db.session import ServiceStore
from taskhub.models import SERVICE_TABLES
from taskhub.services.clients import (
    UserClient,
    OrganisationClient,
    ProjectClient,
    TaskClient,
    TaskCommentClient,
    TokenClient,
    MailClient,
)

if TYPE_CHECKING:
    from taskhub.bus.broker import ServiceBroker

logger = logging.getLogger(__name__)

Subscription = Tuple[Type[DomainEvent], Callable[[Any], Any]]


class BaseService:
    """
    Base class for services registered on a ServiceBroker.

    Subclasses set:
    - prefix: Action namespace ("user" -> "user.create")
    - store_name: Key into SERVICE_TABLES, or None for storeless services
    and implement actions() / subscriptions().
    """

    prefix: str = ""
    store_name: Optional[str] = None

    def __init__(self, broker: "ServiceBroker"):
        self.broker = broker
        self.store: Optional[ServiceStore] = (
            broker.create_store(self.store_name) if self.store_name else None
        )
        self.change_listeners: List[ChangeListener] = []

        bus = broker.actions
        self.users = UserClient(bus)
        self.organisations = OrganisationClient(bus)
        self.projects = ProjectClient(bus)
        self.tasks = TaskClient(bus)
        self.comments = TaskCommentClient(bus)
        self.tokens = TokenClient(bus)
        self.mail = MailClient(bus)

    @property
    def tables(self) -> Sequence[Table]:
        return SERVICE_TABLES.get(self.store_name, []) if self.store_name else []

    def actions(self) -> Dict[str, ActionDef]:
        return {}

    def subscriptions(self) -> List[Subscription]:
        return []

    def add_change_listener(self, listener: ChangeListener) -> None:
        """Register a hook fired after every write to this service's store."""
        self.change_listeners.append(listener)

    def emit(self, event: DomainEvent) -> None:
        """
        Publish a domain event.

        Call only after the write it describes has committed.
        """
        logger.info(f"{self.prefix}: emitting {event.kind.value}")
        self.broker.emit(event)

    async def started(self) -> None:
        pass

    async def stopped(self) -> None:
        pass

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(prefix={self.prefix})>"


def dump(schema: Type[Any], obj: Any, **overrides: Any) -> Dict[str, Any]:
    """
    Serialize an entity through its response schema into JSON-ready data.

    overrides replace attributes the entity doesn't carry itself
    (populated references, link-table lists).
    """
    data = {
        field: getattr(obj, field)
        for field in schema.model_fields
        if field not in overrides and hasattr(obj, field)
    }
    data.update(overrides)
    return schema.model_validate(data).model_dump(mode="json")


def require_caller(ctx: CallerContext) -> str:
    """Return the caller's user ID."""
    if ctx.user_id is None:
        raise UnauthorizedError()
    return ctx.user_id


async def still_exists(client: Any, entity_id: str) -> bool:
    """
    Re-check a creation event's subject before recording a reference to it.

    WHY: A create event can arrive after the matching remove event has
    already been handled. Recording the reference then would leave it
    dangling forever, so late creates for vanished entities are dropped.
    If the owner can't answer, the reference is recorded anyway; readers
    skip dangling references.
    """
    try:
        return await client.is_created(entity_id)
    except ServiceUnavailableError:
        logger.warning(f"Could not re-check {client.entity} {entity_id}, keeping reference")
        return True


@contextmanager
def conflict_on_duplicate(message: str, **context: Any) -> Iterator[None]:
    """
    Report a unique-constraint violation as ConflictError.

    WHY: The uniqueness lookup and the write are separate statements, so a
    concurrent call can pass the lookup too. The store's unique index then
    rejects the later write; wrap the whole session block so violations
    raised at flush or at commit are both caught.
    """
    try:
        yield
    except IntegrityError as e:
        logger.info(f"Unique constraint rejected a write: {e.orig}")
        raise ConflictError(message=message, **context) from e
