"""Application entry point for the serverlister API."""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import APIRouter, FastAPI, Request
from sqlalchemy.orm import Session, sessionmaker

from .api.email import router as email_router
from .api.notifications import router as notifications_router
from .api.scan import router as scan_router
from .api.sse import router as sse_router
from .api.workers import router as workers_router
from .config import Settings, settings
from .db import create_db_engine, create_session_factory, init_db
from .logging import configure_logging, get_logger
from .notify.bridge import DeliveryBridge, LocalDeliveryBridge
from .queue import JobQueue
from .realtime.manager import SSEConnectionManager

configure_logging()
logger = get_logger(__name__)

health_router = APIRouter(tags=["health"])


@health_router.get("/health", summary="Infra healthcheck")
def healthcheck(request: Request) -> dict[str, str]:
    """Simple health endpoint for infrastructure smoke tests."""

    return {"status": "ok", "environment": request.app.state.settings.environment}


def create_app(
    *,
    config: Settings | None = None,
    queue: JobQueue | None = None,
    session_factory: sessionmaker[Session] | None = None,
    connection_manager: SSEConnectionManager | None = None,
    delivery_bridge: DeliveryBridge | None = None,
) -> FastAPI:
    """Build the API with its per-process resources.

    Anything not injected is created from *config* when the app starts: the
    broker connection is checked up front so a missing Redis aborts startup.
    """

    config = config or settings
    manager = connection_manager or SSEConnectionManager(
        ping_interval=config.sse_ping_interval,
        max_queue_size=config.sse_queue_size,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned_queue: JobQueue | None = None
        engine = None
        if app.state.queue is None:
            owned_queue = JobQueue.connect(config)
            app.state.queue = owned_queue
        if app.state.session_factory is None:
            engine = create_db_engine(config.database_url)
            init_db(engine)
            app.state.session_factory = create_session_factory(engine)
        logger.info(
            "app.startup",
            environment=config.environment,
            queue_name=app.state.queue.name,
        )
        try:
            yield
        finally:
            if owned_queue is not None:
                owned_queue.close()
                app.state.queue = None
            if engine is not None:
                engine.dispose()
                app.state.session_factory = None
            logger.info("app.shutdown")

    app = FastAPI(title="serverlister", version="0.1.0", lifespan=lifespan)
    app.state.settings = config
    app.state.queue = queue
    app.state.session_factory = session_factory
    app.state.connection_manager = manager
    app.state.delivery_bridge = delivery_bridge or LocalDeliveryBridge(manager)

    app.include_router(health_router)
    app.include_router(notifications_router)
    app.include_router(workers_router)
    app.include_router(scan_router)
    app.include_router(email_router)
    app.include_router(sse_router)
    return app


app = create_app()
