"""Endpoints for a user's own notifications and for requesting new ones."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel
from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from serverlister.config import Settings
from serverlister.logging import get_logger
from serverlister.models import Notification, NotificationModel
from serverlister.notify.recipients import EmptyRecipientsError
from serverlister.queue import JobName, JobQueue
from serverlister.schemas import NotificationRequest

from .dependencies import Identity, get_identity, get_queue, get_session, get_settings

router = APIRouter(prefix="/notifications", tags=["notifications"])

logger = get_logger(__name__)


class ReadStateBody(BaseModel):
    read: bool


class BulkDeleteBody(BaseModel):
    ids: list[int] | None = None


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _owned(identity: Identity):
    return Notification.user_id == identity.user_id


@router.get("", summary="Latest notifications of the current user")
def list_notifications(
    *,
    unread_only: bool = Query(False, description="Only return unread notifications"),
    limit: int | None = Query(None, ge=1, le=200),
    offset: int = Query(0, ge=0),
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
    config: Settings = Depends(get_settings),
) -> list[dict[str, Any]]:
    """Return the caller's notifications, newest first."""

    page_size = limit or config.notifications_page_size

    statement = select(Notification).where(_owned(identity))
    if unread_only is True:
        statement = statement.where(Notification.read.is_(False))
    statement = (
        statement.order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset(offset)
        .limit(page_size)
    )
    items = session.scalars(statement).all()
    return [NotificationModel.model_validate(item).model_dump(mode="json") for item in items]


@router.get("/count", summary="Unread notification count")
def unread_count(
    response: Response,
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
) -> dict[str, int]:
    """Return how many of the caller's notifications are still unread."""

    count = session.scalar(
        select(func.count())
        .select_from(Notification)
        .where(_owned(identity), Notification.read.is_(False))
    )
    response.headers["Cache-Control"] = "no-store, max-age=0"
    return {"count": int(count or 0)}


@router.post(
    "/request",
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue a notification for roles and/or users",
)
def request_notification(
    body: NotificationRequest,
    identity: Identity = Depends(get_identity),
    queue: JobQueue = Depends(get_queue),
) -> dict[str, str]:
    """Validate the recipients and hand the fan-out to the worker.

    Only the job handle is returned; the outcome is observable through the
    recipients' notifications or their live stream.
    """

    if not body.has_recipients:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(EmptyRecipientsError()),
        )
    handle = queue.enqueue(JobName.NOTIFICATION, body.to_job_payload())
    logger.info(
        "notification.request.queued",
        job_id=handle.id,
        requested_by=identity.user_id,
        roles=body.role_names,
        user_ids=len(body.user_ids),
    )
    return {"job_id": handle.id, "job_name": handle.name, "queue": handle.queue}


@router.post("/mark-all-read", summary="Mark every notification as read")
def mark_all_read(
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
) -> dict[str, Any]:
    result = session.execute(
        update(Notification)
        .where(_owned(identity), Notification.read.is_(False))
        .values(read=True, updated_at=_now())
    )
    session.commit()
    return {"success": True, "updated": result.rowcount}


@router.post("/delete", summary="Delete several notifications")
def delete_many(
    body: BulkDeleteBody,
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
) -> dict[str, Any]:
    if not body.ids:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid request body")
    result = session.execute(
        delete(Notification).where(_owned(identity), Notification.id.in_(body.ids))
    )
    session.commit()
    return {"success": True, "deleted": result.rowcount}


@router.patch("/{notification_id}", summary="Mark a notification as read or unread")
def set_read_state(
    notification_id: int,
    body: ReadStateBody,
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
) -> dict[str, Any]:
    notification = _get_owned(session, identity, notification_id)
    notification.read = body.read
    notification.updated_at = _now()
    session.commit()
    session.refresh(notification)
    return NotificationModel.model_validate(notification).model_dump(mode="json")


@router.delete("/{notification_id}", summary="Delete a notification")
def delete_notification(
    notification_id: int,
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
) -> dict[str, bool]:
    notification = _get_owned(session, identity, notification_id)
    session.delete(notification)
    session.commit()
    return {"success": True}


def _get_owned(session: Session, identity: Identity, notification_id: int) -> Notification:
    notification = session.scalars(
        select(Notification).where(
            Notification.id == notification_id, _owned(identity)
        )
    ).one_or_none()
    if notification is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found or not authorized",
        )
    return notification


__all__ = ["router"]
