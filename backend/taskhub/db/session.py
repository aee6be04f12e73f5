"""
Database session management.

WHY: Services share no database. Each one gets its own engine and session
factory built from the service name, so a commit in one store can never be
part of a transaction in another.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Iterable, Optional

from sqlalchemy import Table
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker

from taskhub.core.config import settings
from taskhub.models.base import Base


@dataclass
class ServiceStore:
    """
    Engine and session factory owned by a single service.

    Fields:
    - name: Owning service name (used for the database URL)
    - engine: Async engine bound to the service's database
    - session_factory: Factory for sessions on that engine
    """

    name: str
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]

    async def create_tables(self, tables: Iterable[Table]) -> None:
        """Create the service's own tables (and nothing else) in its database."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all, tables=list(tables))

    async def dispose(self) -> None:
        await self.engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Open a session that commits on success and rolls back on error.

        Yields:
            AsyncSession: Session for one unit of work
        """
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise


def create_store(name: str, url: Optional[str] = None) -> ServiceStore:
    """
    Build the store for a service.

    Args:
        name: Service name, substituted into DATABASE_URL_TEMPLATE
        url: Explicit database URL (tests pass per-test SQLite files)

    Returns:
        ServiceStore with its own engine
    """
    database_url = url or settings.database_url(name)
    sqlite_path = make_url(database_url).database
    if database_url.startswith("sqlite") and sqlite_path and sqlite_path != ":memory:":
        Path(sqlite_path).parent.mkdir(parents=True, exist_ok=True)

    kwargs = {"echo": settings.DEBUG, "pool_pre_ping": True}
    if database_url.startswith("postgresql"):
        kwargs.update(pool_size=10, max_overflow=20)

    engine = create_async_engine(database_url, **kwargs)

    # expire_on_commit=False lets handlers read entities after the commit
    # that precedes event emission
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    return ServiceStore(name=name, engine=engine, session_factory=session_factory)
