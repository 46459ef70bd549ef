"""Create one notification per recipient and trigger its delivery."""

from __future__ import annotations

from typing import Any, Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from serverlister.logging import get_logger
from serverlister.models import DeliveryType, Notification, NotificationModel, User
from serverlister.queue import JobName, JobQueue

from .bridge import NOTIFICATION_EVENT, DeliveryBridge, NullDeliveryBridge, push_safely


NOTIFICATION_EMAIL_TEMPLATE = "notification"


class FanoutPersistenceError(RuntimeError):
    """Raised when not a single notification of a fan-out could be stored."""

    def __init__(self, failed_user_ids: list[str]) -> None:
        super().__init__(
            f"Failed to persist notifications for {len(failed_user_ids)} recipient(s)"
        )
        self.failed_user_ids = failed_user_ids


def serialize_notification(notification: Notification) -> dict[str, Any]:
    """Return the JSON representation pushed to clients and returned by jobs."""

    return NotificationModel.model_validate(notification).model_dump(mode="json")


class NotificationFanoutService:
    """Persist per-user notification rows and deliver each one best-effort.

    Every row is committed on its own: a failure for one recipient never rolls
    back rows already stored for others, and a failed push never undoes the
    row it concerns.
    """

    def __init__(
        self,
        session: Session,
        *,
        bridge: DeliveryBridge | None = None,
        email_queue: JobQueue | None = None,
    ) -> None:
        self._session = session
        self._bridge = bridge or NullDeliveryBridge()
        self._email_queue = email_queue
        self._logger = get_logger(__name__)

    def create_bulk_notifications(
        self,
        *,
        title: str,
        message: str,
        user_ids: Iterable[str],
        html_message: str | None = None,
        delivery_type: DeliveryType | str = DeliveryType.BROWSER,
    ) -> list[Notification]:
        """Store and deliver one notification for each id in *user_ids*."""

        delivery = DeliveryType(delivery_type)
        recipients = list(dict.fromkeys(user_ids))
        created: list[Notification] = []
        failed: list[str] = []

        for user_id in recipients:
            notification = self._persist(
                user_id=user_id,
                title=title,
                message=message,
                html_message=html_message,
                delivery=delivery,
            )
            if notification is None:
                failed.append(user_id)
                continue
            self._deliver(notification, delivery)
            created.append(notification)

        self._logger.info(
            "notification.fanout.completed",
            recipients=len(recipients),
            created=len(created),
            failed=len(failed),
            delivery_type=delivery.value,
        )
        if failed and not created:
            raise FanoutPersistenceError(failed)
        return created

    def _persist(
        self,
        *,
        user_id: str,
        title: str,
        message: str,
        html_message: str | None,
        delivery: DeliveryType,
    ) -> Notification | None:
        notification = Notification(
            user_id=user_id,
            title=title,
            message=message,
            html_message=html_message,
            delivery_type=delivery.value,
            delivery_status={},
            read=False,
        )
        try:
            self._session.add(notification)
            self._session.commit()
            self._session.refresh(notification)
        except SQLAlchemyError as exc:
            self._session.rollback()
            self._logger.error(
                "notification.persist.failed", user_id=user_id, error=str(exc)
            )
            return None
        return notification

    def _deliver(self, notification: Notification, delivery: DeliveryType) -> None:
        status: dict[str, Any] = {}
        if delivery.includes_browser:
            status["browser"] = push_safely(
                self._bridge,
                notification.user_id,
                NOTIFICATION_EVENT,
                serialize_notification(notification),
            )
        if delivery.includes_email:
            status["email"] = self._queue_email(notification)
        if not status:
            return

        notification.delivery_status = status
        try:
            self._session.commit()
        except SQLAlchemyError as exc:
            # The row itself is already stored; only the status is lost.
            self._session.rollback()
            self._logger.warning(
                "notification.delivery_status.not_saved",
                notification_id=notification.id,
                error=str(exc),
            )

    def _queue_email(self, notification: Notification) -> dict[str, Any]:
        if self._email_queue is None:
            return {"queued": False, "error": "email queue unavailable"}
        user = self._session.get(User, notification.user_id)
        if user is None or not user.email:
            return {"queued": False, "error": "User email not found"}

        try:
            handle = self._email_queue.enqueue(
                JobName.EMAIL,
                {
                    "to": user.email,
                    "subject": notification.title,
                    "template": NOTIFICATION_EMAIL_TEMPLATE,
                    "context": {
                        "title": notification.title,
                        "message": notification.message,
                        "html_message": notification.html_message,
                    },
                },
            )
        except Exception as exc:
            self._logger.warning(
                "notification.email.not_queued",
                notification_id=notification.id,
                error=str(exc),
            )
            return {"queued": False, "error": str(exc)}
        return {"queued": True, "job_id": handle.id}


__all__ = [
    "FanoutPersistenceError",
    "NotificationFanoutService",
    "serialize_notification",
]
