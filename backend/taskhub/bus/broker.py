"""
Service broker.

WHAT: Owns the action bus and event bus, and the lifecycle of every service
registered on them.

WHY: Services never import each other. They are wired together here:
their actions land on the action bus under "<prefix>.<name>", their event
handlers on the event bus, and each gets its own store.

HOW:
1. register(service) records actions and subscriptions
2. start() creates each service's tables and calls its started() hook
3. stop() drains in-flight events, calls stopped() and disposes stores
"""

import logging
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from taskhub.bus.actions import ActionBus, ActionResult, CallerContext, ANONYMOUS
from taskhub.bus.events import EventBus, DomainEvent
from taskhub.db.session import ServiceStore, create_store

if TYPE_CHECKING:
    from taskhub.services.base import BaseService

logger = logging.getLogger(__name__)


class ServiceBroker:
    """
    Registry and lifecycle owner for services.

    Args:
        database_urls: Per-store URL overrides keyed by store name
            (tests point each store at its own SQLite file)
        action_bus: Pre-built action bus (tests tune timeout and retries)
    """

    def __init__(
        self,
        database_urls: Optional[Dict[str, str]] = None,
        action_bus: Optional[ActionBus] = None,
    ) -> None:
        self.database_urls = database_urls or {}
        self.actions = action_bus or ActionBus()
        self.events = EventBus()
        self.services: Dict[str, "BaseService"] = {}
        self.started = False

    def create_store(self, name: str) -> ServiceStore:
        return create_store(name, self.database_urls.get(name))

    def register(self, service: "BaseService") -> "BaseService":
        """
        Attach a service's actions and event handlers to the buses.

        Raises:
            ValueError: If a service with the same prefix is already registered
        """
        if service.prefix in self.services:
            raise ValueError(f"Service '{service.prefix}' is already registered")

        for name, action in service.actions().items():
            self.actions.register(f"{service.prefix}.{name}", action)
        for event_type, handler in service.subscriptions():
            self.events.subscribe(event_type, handler)

        self.services[service.prefix] = service
        logger.debug(f"Registered service {service.prefix}")
        return service

    def get(self, prefix: str) -> "BaseService":
        return self.services[prefix]

    async def start(self) -> None:
        for service in self.services.values():
            if service.store is not None:
                await service.store.create_tables(service.tables)
            await service.started()
        self.started = True
        logger.info(f"Broker started with services: {', '.join(self.services)}")

    async def stop(self) -> None:
        await self.events.drain()
        for service in reversed(list(self.services.values())):
            await service.stopped()
            if service.store is not None:
                await service.store.dispose()
        self.started = False
        logger.info("Broker stopped")

    async def call(
        self,
        name: str,
        params: Optional[Dict[str, Any]] = None,
        ctx: CallerContext = ANONYMOUS,
    ) -> ActionResult:
        return await self.actions.call(name, params, ctx)

    def emit(self, event: DomainEvent) -> None:
        self.events.emit(event)

    async def drain(self) -> None:
        await self.events.drain()

    @property
    def action_names(self) -> List[str]:
        return self.actions.names
