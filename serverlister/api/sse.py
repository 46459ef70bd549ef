"""Server-sent event stream and the internal push endpoint feeding it."""

from __future__ import annotations

import secrets
from typing import Any

from fastapi import APIRouter, Body, Depends, Header, HTTPException, status
from fastapi.responses import StreamingResponse

from serverlister.config import Settings
from serverlister.logging import get_logger
from serverlister.realtime.manager import SSEConnectionManager

from .dependencies import Identity, get_connection_manager, get_identity, get_settings

router = APIRouter(prefix="/sse", tags=["sse"])

logger = get_logger(__name__)

STREAM_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.get("/notifications", summary="Live notification stream for the current user")
async def notification_stream(
    identity: Identity = Depends(get_identity),
    manager: SSEConnectionManager = Depends(get_connection_manager),
) -> StreamingResponse:
    queue = manager.connect(identity.user_id)
    return StreamingResponse(
        manager.stream(identity.user_id, queue),
        media_type="text/event-stream",
        headers=STREAM_HEADERS,
    )


@router.post("/notify", summary="Push an event to a connected user")
def notify(
    payload: dict[str, Any] = Body(...),
    x_internal_token: str | None = Header(default=None),
    config: Settings = Depends(get_settings),
    manager: SSEConnectionManager = Depends(get_connection_manager),
) -> dict[str, Any]:
    """Used by the worker to reach streams held by this process.

    ``success`` is ``False`` when the user has no open stream.
    """

    expected = config.internal_api_token
    if expected and not secrets.compare_digest(
        (x_internal_token or "").encode(), expected.encode()
    ):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    user_id = payload.get("userId")
    event = payload.get("event")
    if not user_id or not event:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="userId and event are required",
        )

    delivered = manager.publish(str(user_id), str(event), payload.get("data"))
    if not delivered:
        return {"success": False, "message": "User not connected"}
    return {"success": True, "message": "Notification sent"}


@router.get("/status", summary="Open stream diagnostics")
def stream_status(
    manager: SSEConnectionManager = Depends(get_connection_manager),
) -> dict[str, Any]:
    return manager.status()


__all__ = ["STREAM_HEADERS", "router"]
