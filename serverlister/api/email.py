"""Email producer: validate the message and queue it for the worker."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, status
from pydantic import ValidationError

from serverlister.logging import get_logger
from serverlister.queue import JobName, JobQueue
from serverlister.schemas import EmailPayload

from .dependencies import Identity, get_identity, get_queue

router = APIRouter(prefix="/email", tags=["email"])

logger = get_logger(__name__)

MISSING_FIELDS_DETAIL = "Missing required fields (to, subject, and either text or html)"


@router.post("/send", summary="Queue an email for delivery")
def send_email(
    body: dict[str, Any] = Body(...),
    identity: Identity = Depends(get_identity),
    queue: JobQueue = Depends(get_queue),
) -> dict[str, Any]:
    """Return the id of the queued email job; delivery happens asynchronously.

    The body is checked against the same model the worker uses, so anything
    queued here is accepted by the email handler.
    """

    try:
        email = EmailPayload.model_validate(body)
    except ValidationError as exc:
        logger.info(
            "email.request.rejected",
            requested_by=identity.user_id,
            errors=len(exc.errors()),
        )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=MISSING_FIELDS_DETAIL
        ) from exc

    payload = email.model_dump(mode="json", exclude_none=True, exclude_defaults=True)
    handle = queue.enqueue(JobName.EMAIL, payload)
    logger.info(
        "email.request.queued",
        job_id=handle.id,
        requested_by=identity.user_id,
    )
    return {"success": True, "job_id": handle.id}


__all__ = ["router"]
