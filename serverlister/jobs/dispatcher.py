"""Route claimed jobs to the handler registered for their name."""

from __future__ import annotations

from typing import Any, Callable, Mapping

from serverlister.logging import get_logger

from .exceptions import NON_RETRYABLE_ERRORS, UnknownJobTypeError


JobHandler = Callable[[Mapping[str, Any]], Any]
"""Callable receiving a job payload and returning a JSON-serialisable result."""


class JobDispatcher:
    """Dispatch jobs synchronously to their handlers.

    Handler exceptions are logged and re-raised so the broker marks the job as
    failed; the consuming worker loop keeps running either way.
    """

    def __init__(self, handlers: Mapping[str, JobHandler] | None = None) -> None:
        self._handlers: dict[str, JobHandler] = dict(handlers or {})
        self._logger = get_logger(__name__)

    def register(self, job_name: str, handler: JobHandler) -> None:
        """Register *handler* for *job_name*, replacing any previous one."""

        self._handlers[str(job_name)] = handler

    @property
    def job_names(self) -> list[str]:
        return sorted(self._handlers)

    def dispatch(self, job_name: str, payload: Mapping[str, Any]) -> Any:
        """Execute the handler matching *job_name* with *payload*."""

        handler = self._handlers.get(job_name)
        if handler is None:
            self._logger.error(
                "worker.job.unknown_type",
                job_name=job_name,
                known=self.job_names,
            )
            raise UnknownJobTypeError(job_name)

        self._logger.info("worker.job.start", job_name=job_name)
        try:
            result = handler(payload)
        except NON_RETRYABLE_ERRORS as exc:
            self._logger.error(
                "worker.job.rejected", job_name=job_name, error=str(exc)
            )
            raise
        except Exception as exc:
            self._logger.exception(
                "worker.job.failed", job_name=job_name, error=str(exc)
            )
            raise
        self._logger.info("worker.job.completed", job_name=job_name)
        return result


def discard_retries_for_fatal_errors(job, connection, exc_type, exc_value, traceback) -> None:
    """RQ failure callback that skips redelivery for non-retryable errors.

    RQ invokes it with the worker's own job instance before deciding whether
    to retry, so zeroing ``retries_left`` sends the job straight to the failed
    registry.
    """

    if exc_type is not None and issubclass(exc_type, NON_RETRYABLE_ERRORS):
        job.retries_left = 0
        get_logger(__name__).warning(
            "worker.job.retries_discarded",
            job_id=getattr(job, "id", None),
            error=str(exc_value),
        )


__all__ = ["JobDispatcher", "JobHandler", "discard_retries_for_fatal_errors"]
