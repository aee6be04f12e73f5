"""Action bus, event bus and the broker that wires services onto them."""

from taskhub.bus.actions import (
    ActionBus,
    ActionDef,
    ActionError,
    ActionResult,
    CallerContext,
    ANONYMOUS,
)
from taskhub.bus.events import DomainEvent, EventBus, EventKind, EVENT_TYPES
from taskhub.bus.broker import ServiceBroker

__all__ = [
    "ActionBus",
    "ActionDef",
    "ActionError",
    "ActionResult",
    "CallerContext",
    "ANONYMOUS",
    "DomainEvent",
    "EventBus",
    "EventKind",
    "EVENT_TYPES",
    "ServiceBroker",
]
