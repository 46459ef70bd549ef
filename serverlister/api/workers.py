"""Notification fan-out HTTP boundary."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from serverlister.logging import get_logger
from serverlister.notify.bridge import DeliveryBridge
from serverlister.notify.fanout import NotificationFanoutService, serialize_notification
from serverlister.notify.recipients import EmptyRecipientsError, RecipientResolver
from serverlister.queue import JobQueue
from serverlister.schemas import NotificationRequest

from .dependencies import get_delivery_bridge, get_queue, get_session

router = APIRouter(prefix="/workers", tags=["workers"])

logger = get_logger(__name__)


@router.post("/notification", summary="Create notifications for roles and/or users")
def create_notifications(
    body: NotificationRequest,
    session: Session = Depends(get_session),
    bridge: DeliveryBridge = Depends(get_delivery_bridge),
    queue: JobQueue = Depends(get_queue),
) -> list[dict[str, Any]]:
    """Resolve recipients, store one notification each and push it live."""

    if not body.has_recipients:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(EmptyRecipientsError()),
        )

    logger.info(
        "notification.request.received",
        title=body.title,
        roles=body.role_names,
        user_ids=len(body.user_ids),
    )
    try:
        user_ids = RecipientResolver(session).resolve(
            role_names=body.role_names, user_ids=body.user_ids
        )
        created = NotificationFanoutService(
            session, bridge=bridge, email_queue=queue
        ).create_bulk_notifications(
            title=body.title,
            message=body.message,
            html_message=body.html_message,
            user_ids=user_ids,
            delivery_type=body.delivery_type,
        )
        return [serialize_notification(notification) for notification in created]
    except EmptyRecipientsError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("notification.request.failed", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create notifications",
        ) from exc


__all__ = ["router"]
