"""
Main FastAPI application.

WHY: This is the entry point for the gateway. It builds the service broker,
starts the background scheduler and mounts the action routes.
"""

import logging
from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from taskhub.api import router
from taskhub.bus.broker import ServiceBroker
from taskhub.core.config import settings
from taskhub.core.exception_handlers import register_exception_handlers
from taskhub.core.logging import configure_logging
from taskhub.middleware import RequestContextMiddleware
from taskhub.services import create_broker
from taskhub.services.scheduler import start_scheduler, shutdown_scheduler, get_scheduler_status

logger = logging.getLogger(__name__)


def create_app(
    broker: Optional[ServiceBroker] = None,
    database_urls: Optional[Dict[str, str]] = None,
    run_scheduler: bool = True,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    WHY: Factory pattern lets tests pass their own broker (per-test
    databases) and skip the scheduler.

    Args:
        broker: Pre-built broker; one with every service is created if None
        database_urls: Store URL overrides when building the broker here
        run_scheduler: Start the token sweep job

    Returns:
        Configured FastAPI application instance
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        service_broker = app.state.broker
        if not service_broker.started:
            await service_broker.start()
        if run_scheduler:
            await start_scheduler(service_broker)
        try:
            yield
        finally:
            if run_scheduler:
                await shutdown_scheduler()
            await service_broker.stop()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Project management services behind one gateway",
        version=settings.VERSION,
        docs_url=f"{settings.API_PREFIX}/docs",
        openapi_url=f"{settings.API_PREFIX}/openapi.json",
        lifespan=lifespan,
    )
    app.state.broker = broker or create_broker(database_urls=database_urls)

    # Consistent error responses for every failure path
    register_exception_handlers(app)

    app.add_middleware(RequestContextMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", tags=["health"])
    async def health_check() -> dict:
        """Liveness plus the registered services and scheduler state."""
        return {
            "status": "healthy",
            "version": settings.VERSION,
            "services": sorted(app.state.broker.services),
            "scheduler": get_scheduler_status(),
        }

    app.include_router(router, prefix=settings.API_PREFIX)

    return app


def get_app() -> FastAPI:
    """uvicorn factory: `uvicorn taskhub.main:get_app --factory`."""
    configure_logging()
    return create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "taskhub.main:get_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="info" if settings.DEBUG else "warning",
    )
