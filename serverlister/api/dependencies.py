"""FastAPI dependencies exposing per-process resources to the routers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from serverlister.config import Settings
from serverlister.models import User
from serverlister.notify.bridge import DeliveryBridge
from serverlister.queue import JobQueue
from serverlister.realtime.manager import SSEConnectionManager


@dataclass(slots=True, frozen=True)
class Identity:
    """Authenticated caller as reported by the session layer."""

    user_id: str
    roles: frozenset[str]


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_session(request: Request) -> Iterator[Session]:
    """Yield a database session for request lifecycle management."""

    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_queue(request: Request) -> JobQueue:
    queue = request.app.state.queue
    if queue is None:  # pragma: no cover - lifespan guarantees a queue
        raise RuntimeError("Job queue is not initialised")
    return queue


def get_connection_manager(request: Request) -> SSEConnectionManager:
    return request.app.state.connection_manager


def get_delivery_bridge(request: Request) -> DeliveryBridge:
    return request.app.state.delivery_bridge


def get_identity(
    x_user_id: str | None = Header(default=None),
    session: Session = Depends(get_session),
) -> Identity:
    """Resolve the caller from the ``X-User-Id`` header set upstream."""

    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    user = session.get(User, x_user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return Identity(user_id=user.id, roles=frozenset(user.roles or ()))


__all__ = [
    "Identity",
    "get_connection_manager",
    "get_delivery_bridge",
    "get_identity",
    "get_queue",
    "get_session",
    "get_settings",
]
