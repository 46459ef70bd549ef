"""Handlers for the job types processed by the worker."""

from __future__ import annotations

from typing import Any, Callable, Mapping

from jinja2 import TemplateNotFound
from pydantic import ValidationError
from sqlalchemy.orm import Session

from serverlister.notify.adapters import EmailSMTPAdapter
from serverlister.notify.bridge import DeliveryBridge
from serverlister.notify.fanout import NotificationFanoutService, serialize_notification
from serverlister.notify.recipients import EmptyRecipientsError, RecipientResolver
from serverlister.queue import JobName, JobQueue
from serverlister.schemas import EmailPayload, NotificationRequest, ScanResult
from serverlister.services.scan_ingest import ScanIngestionService

from .exceptions import InvalidJobPayloadError


def _validation_detail(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in error['loc']) or '<root>'}: {error['msg']}"
        for error in exc.errors()
    )


class NotificationJobHandler:
    """Resolve recipients and fan a notification request out to them."""

    job_name = JobName.NOTIFICATION.value

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        bridge: DeliveryBridge,
        email_queue: JobQueue | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._bridge = bridge
        self._email_queue = email_queue

    def __call__(self, payload: Mapping[str, Any]) -> list[dict[str, Any]]:
        try:
            request = NotificationRequest.model_validate(dict(payload))
        except ValidationError as exc:
            raise InvalidJobPayloadError(self.job_name, _validation_detail(exc)) from exc

        with self._session_factory() as session:
            try:
                user_ids = RecipientResolver(session).resolve(
                    role_names=request.role_names, user_ids=request.user_ids
                )
            except EmptyRecipientsError as exc:
                raise InvalidJobPayloadError(self.job_name, str(exc)) from exc

            fanout = NotificationFanoutService(
                session, bridge=self._bridge, email_queue=self._email_queue
            )
            created = fanout.create_bulk_notifications(
                title=request.title,
                message=request.message,
                html_message=request.html_message,
                user_ids=user_ids,
                delivery_type=request.delivery_type,
            )
            return [serialize_notification(notification) for notification in created]


class ServerScanJobHandler:
    """Upsert the server described by a scan report."""

    job_name = JobName.SERVER_SCAN.value

    def __init__(self, service: ScanIngestionService) -> None:
        self._service = service

    def __call__(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        try:
            scan = ScanResult.model_validate(dict(payload))
        except ValidationError as exc:
            raise InvalidJobPayloadError(self.job_name, _validation_detail(exc)) from exc

        result = self._service.ingest(scan)
        return {
            "server_id": result.server_id,
            "scan_id": result.scan_id,
            "hostname": result.hostname,
            "created": result.created,
        }


class EmailJobHandler:
    """Send an email through the configured SMTP adapter."""

    job_name = JobName.EMAIL.value

    def __init__(self, adapter: EmailSMTPAdapter) -> None:
        self._adapter = adapter

    def __call__(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        try:
            email = EmailPayload.model_validate(dict(payload))
        except ValidationError as exc:
            raise InvalidJobPayloadError(self.job_name, _validation_detail(exc)) from exc

        try:
            return self._adapter.send(email)
        except TemplateNotFound as exc:
            raise InvalidJobPayloadError(
                self.job_name, f"unknown email template '{exc.name}'"
            ) from exc


__all__ = ["EmailJobHandler", "NotificationJobHandler", "ServerScanJobHandler"]
