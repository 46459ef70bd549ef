"""Scan ingestion producer: authenticate the agent and queue its report."""
from __future__ import annotations

import secrets
from typing import Any

from fastapi import APIRouter, Body, Depends, Header, HTTPException, status

from serverlister.config import Settings
from serverlister.logging import get_logger
from serverlister.queue import JobName, JobQueue

from .dependencies import get_queue, get_settings

router = APIRouter(prefix="/scan", tags=["scan"])

logger = get_logger(__name__)


def _token_matches(provided: str | None, expected: str) -> bool:
    if not expected or provided is None:
        return False
    return secrets.compare_digest(provided.encode(), expected.encode())


@router.post("", summary="Queue a scanning-agent report for ingestion")
def submit_scan(
    payload: dict[str, Any] = Body(...),
    authorization: str | None = Header(default=None),
    config: Settings = Depends(get_settings),
    queue: JobQueue = Depends(get_queue),
) -> dict[str, str]:
    """Enqueue the report and answer immediately; ingestion happens in the worker."""

    if not _token_matches(authorization, config.scan_token):
        logger.warning(
            "scan.request.rejected",
            reason="missing_token" if not config.scan_token else "bad_token",
        )
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    host = payload.get("host")
    hostname = host.get("hostname") if isinstance(host, dict) else None
    handle = queue.enqueue(JobName.SERVER_SCAN, payload)
    logger.info("scan.request.queued", job_id=handle.id, hostname=hostname)
    return {"message": "Success"}


__all__ = ["router"]
