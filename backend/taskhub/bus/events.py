"""
Event bus: typed, fire-and-forget domain events.

WHAT: A closed set of event kinds, one frozen payload class per kind, and a
publisher that never waits for its subscribers.

WHY: Services keep their back-references in step by reacting to each
other's lifecycle events. The publisher gets no acknowledgment, so:
- handlers run as independent asyncio tasks, in no guaranteed order
- a handler failure is logged and swallowed, never re-raised to the emitter
- every handler must be idempotent and treat a missing target as a no-op

HOW: Subscriptions are keyed by payload class. A handler registered for
ProjectCreated only ever receives ProjectCreated instances.
"""

import asyncio
import enum
import logging
from collections import defaultdict
from typing import Awaitable, Callable, ClassVar, Dict, List, Optional, Set, Type, TypeVar

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)


class EventKind(str, enum.Enum):
    """Every event name services may publish."""

    USER_REMOVED = "user.removed"
    USER_ORG_ADDED = "user.orgAdded"
    USER_ORG_REMOVED = "user.orgRemoved"
    ORGANISATION_REMOVED = "organisation.removed"
    PROJECT_CREATED = "project.created"
    PROJECT_REMOVED = "project.removed"
    PROJECT_MEMBER_ADDED = "project.memberAdded"
    PROJECT_MEMBER_REMOVED = "project.memberRemoved"
    TASK_CREATED = "task.created"
    TASK_REMOVED = "task.removed"
    TASK_COMMENT_CREATED = "task.comment.created"
    TASK_COMMENT_REMOVED = "task.comment.removed"
    TASK_ATTACHMENT_UPLOADED = "task.attachment.uploaded"
    TASK_ATTACHMENT_REMOVED = "task.attachment.removed"


class DomainEvent(BaseModel):
    """Base class for event payloads. Payloads are immutable once emitted."""

    model_config = ConfigDict(frozen=True)

    kind: ClassVar[EventKind]


# ============================================================================
# User events
# ============================================================================


class UserRemoved(DomainEvent):
    kind: ClassVar[EventKind] = EventKind.USER_REMOVED

    user: str
    org: Optional[str] = None
    old_nick: str = ""


class UserOrgAdded(DomainEvent):
    """A user joined an organisation (id is the organisation)."""

    kind: ClassVar[EventKind] = EventKind.USER_ORG_ADDED

    id: str
    user: str


class UserOrgRemoved(DomainEvent):
    kind: ClassVar[EventKind] = EventKind.USER_ORG_REMOVED

    id: str
    user: str


# ============================================================================
# Organisation and project events
# ============================================================================


class OrganisationRemoved(DomainEvent):
    kind: ClassVar[EventKind] = EventKind.ORGANISATION_REMOVED

    org: str


class ProjectCreated(DomainEvent):
    kind: ClassVar[EventKind] = EventKind.PROJECT_CREATED

    org: str
    project: str
    members: List[str] = []


class ProjectRemoved(DomainEvent):
    kind: ClassVar[EventKind] = EventKind.PROJECT_REMOVED

    project: str
    org: str


class ProjectMemberAdded(DomainEvent):
    kind: ClassVar[EventKind] = EventKind.PROJECT_MEMBER_ADDED

    project: str
    user: str


class ProjectMemberRemoved(DomainEvent):
    kind: ClassVar[EventKind] = EventKind.PROJECT_MEMBER_REMOVED

    project: str
    user: str


# ============================================================================
# Task events
# ============================================================================


class TaskCreated(DomainEvent):
    kind: ClassVar[EventKind] = EventKind.TASK_CREATED

    project: str
    task: str
    user: Optional[str] = None


class TaskRemoved(DomainEvent):
    kind: ClassVar[EventKind] = EventKind.TASK_REMOVED

    task: str
    project: str


class TaskCommentCreated(DomainEvent):
    kind: ClassVar[EventKind] = EventKind.TASK_COMMENT_CREATED

    comment: str
    task: str


class TaskCommentRemoved(DomainEvent):
    kind: ClassVar[EventKind] = EventKind.TASK_COMMENT_REMOVED

    comment: str
    task: str


class TaskAttachmentUploaded(DomainEvent):
    kind: ClassVar[EventKind] = EventKind.TASK_ATTACHMENT_UPLOADED

    task: str
    file: str


class TaskAttachmentRemoved(DomainEvent):
    kind: ClassVar[EventKind] = EventKind.TASK_ATTACHMENT_REMOVED

    task: str
    file: str


EVENT_TYPES: Dict[EventKind, Type[DomainEvent]] = {
    cls.kind: cls
    for cls in (
        UserRemoved,
        UserOrgAdded,
        UserOrgRemoved,
        OrganisationRemoved,
        ProjectCreated,
        ProjectRemoved,
        ProjectMemberAdded,
        ProjectMemberRemoved,
        TaskCreated,
        TaskRemoved,
        TaskCommentCreated,
        TaskCommentRemoved,
        TaskAttachmentUploaded,
        TaskAttachmentRemoved,
    )
}


E = TypeVar("E", bound=DomainEvent)
EventHandler = Callable[[E], Awaitable[None]]


class EventBus:
    """
    In-process publish/subscribe bus.

    Delivery is at-most-once and best-effort. drain() exists for shutdown
    and tests; publishers never call it.
    """

    def __init__(self) -> None:
        self._handlers: Dict[Type[DomainEvent], List[EventHandler]] = defaultdict(list)
        self._pending: Set[asyncio.Task] = set()

    def subscribe(self, event_type: Type[E], handler: EventHandler) -> None:
        """
        Register an async handler for one event type.

        Raises:
            TypeError: If event_type is not a registered event payload class
        """
        if EVENT_TYPES.get(getattr(event_type, "kind", None)) is not event_type:
            raise TypeError(f"{event_type!r} is not a registered domain event")
        self._handlers[event_type].append(handler)

    def handlers_for(self, event_type: Type[DomainEvent]) -> List[EventHandler]:
        return list(self._handlers.get(event_type, ()))

    def emit(self, event: DomainEvent) -> None:
        """
        Publish an event without waiting for any subscriber.

        Each handler runs in its own task, so a slow or failing handler
        cannot delay or affect the others.
        """
        handlers = self.handlers_for(type(event))
        logger.debug(f"Emitting {event.kind.value} to {len(handlers)} handler(s): {event}")
        for handler in handlers:
            task = asyncio.create_task(self._deliver(handler, event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _deliver(self, handler: EventHandler, event: DomainEvent) -> None:
        try:
            await handler(event)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(
                f"Handler {getattr(handler, '__qualname__', handler)} failed for {event.kind.value}"
            )

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """
        Wait until no deliveries are in flight.

        Handlers may emit further events, so this loops until a pass
        finds nothing pending.
        """
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def cancel_pending(self) -> None:
        for task in list(self._pending):
            task.cancel()
        await self.drain()
