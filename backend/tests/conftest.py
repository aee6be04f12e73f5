"""
Pytest configuration and fixtures.

WHY: Fixtures provide reusable test setup/teardown logic, reducing
duplication and ensuring consistent test environments.
"""

import os

# Cheap hashing and a fixed signing key; must be set before taskhub imports
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
import pytest_asyncio
from typing import AsyncGenerator, Dict
from httpx import AsyncClient, ASGITransport

from taskhub.bus.actions import ActionBus
from taskhub.bus.broker import ServiceBroker
from taskhub.main import create_app
from taskhub.models import SERVICE_TABLES
from taskhub.models.user import UserRole
from taskhub.services import create_broker

from tests.factories import UserFactory


@pytest.fixture
def database_urls(tmp_path) -> Dict[str, str]:
    """
    One SQLite file per store.

    WHY: Services never share a database, and tests shouldn't either. Files
    (rather than :memory:) let concurrent event handlers open their own
    connections to the same store.
    """
    return {
        name: f"sqlite+aiosqlite:///{tmp_path / f'{name}.db'}" for name in SERVICE_TABLES
    }


@pytest.fixture
def action_bus() -> ActionBus:
    """Short timeout and backoff so failure-path tests stay fast."""
    return ActionBus(timeout=5, retry_attempts=2, retry_backoff=0.01)


@pytest_asyncio.fixture
async def broker(database_urls, action_bus, tmp_path) -> AsyncGenerator[ServiceBroker, None]:
    """
    A started broker with every service registered.

    Yields:
        ServiceBroker: Drained and stopped after the test
    """
    service_broker = create_broker(
        database_urls=database_urls,
        upload_dir=str(tmp_path / "attachments"),
        action_bus=action_bus,
    )
    await service_broker.start()
    yield service_broker
    await service_broker.stop()


@pytest_asyncio.fixture
async def client(broker: ServiceBroker) -> AsyncGenerator[AsyncClient, None]:
    """
    Create a test HTTP client.

    WHY: ASGITransport doesn't run the lifespan, so the app gets the
    already-started broker and no scheduler.

    Yields:
        AsyncClient: HTTP client for making test requests
    """
    app = create_app(broker=broker, run_scheduler=False)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def admin(broker):
    """An admin user (not attached to any organisation)."""
    return await UserFactory.create(
        broker, email="admin@example.com", first_name="Ada", last_name="Admin", role=UserRole.ADMIN
    )


@pytest_asyncio.fixture
async def manager(broker):
    return await UserFactory.create(
        broker,
        email="manager@example.com",
        first_name="Max",
        last_name="Manager",
        role=UserRole.PROJECT_MANAGER,
    )


@pytest_asyncio.fixture
async def employee(broker):
    return await UserFactory.create(
        broker, email="employee@example.com", first_name="Eve", last_name="Employee"
    )
