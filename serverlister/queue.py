"""Background queue client backed by Redis/RQ.

A :class:`JobQueue` is built once per process (API lifespan or worker
bootstrap) and handed to every producer explicitly. Enqueuing only returns a
:class:`JobHandle`; the outcome of a job is never reported back to the caller.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from redis import Redis
from redis.exceptions import RedisError
from rq import Queue, Retry

from .config import Settings
from .jobs.dispatcher import discard_retries_for_fatal_errors
from .logging import get_logger


JOB_FUNCTION = "serverlister.worker.process_job"
"""Import path of the single entry point executed by workers."""


class JobName(str, Enum):
    """Job types understood by the worker."""

    NOTIFICATION = "notification"
    SERVER_SCAN = "serverScan"
    EMAIL = "email"


class QueueConnectionError(RuntimeError):
    """Raised when the broker cannot be reached while bootstrapping a process."""

    def __init__(self, url: str, error: Exception) -> None:
        super().__init__(f"Unable to connect to the job broker at '{url}': {error}")
        self.url = url
        self.original_error = error


@dataclass(slots=True, frozen=True)
class JobHandle:
    """Reference to an enqueued job; never carries its result."""

    id: str
    name: str
    queue: str


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    """Redelivery policy attached to every job at enqueue time."""

    max_retries: int = 3
    intervals: tuple[int, ...] = (5, 10, 20)

    @classmethod
    def from_settings(cls, config: Settings) -> "RetryPolicy":
        return cls(
            max_retries=config.job_max_retries,
            intervals=tuple(config.job_retry_intervals),
        )

    def to_rq(self) -> Retry | None:
        if self.max_retries <= 0:
            return None
        interval: int | list[int] = list(self.intervals) if self.intervals else 0
        return Retry(max=self.max_retries, interval=interval)


class JobQueue:
    """Enqueue named jobs with a payload on the shared RQ queue."""

    def __init__(
        self,
        queue: Queue,
        *,
        retry_policy: RetryPolicy | None = None,
        job_timeout: int | None = None,
        result_ttl: int | None = None,
        failure_ttl: int | None = None,
    ) -> None:
        self._queue = queue
        self._retry_policy = retry_policy or RetryPolicy()
        self._job_timeout = job_timeout
        self._result_ttl = result_ttl
        self._failure_ttl = failure_ttl
        self._logger = get_logger(__name__)

    @classmethod
    def connect(cls, config: Settings) -> "JobQueue":
        """Connect to the broker, failing loudly when it is unreachable."""

        connection = Redis.from_url(config.redis_url, decode_responses=False)
        try:
            connection.ping()
        except RedisError as exc:
            connection.close()
            raise QueueConnectionError(config.redis_url, exc) from exc
        queue = Queue(config.queue_name, connection=connection)
        return cls(
            queue,
            retry_policy=RetryPolicy.from_settings(config),
            job_timeout=config.job_timeout,
            result_ttl=config.job_result_ttl,
            failure_ttl=config.job_failure_ttl,
        )

    @property
    def name(self) -> str:
        return self._queue.name

    @property
    def connection(self) -> Redis:
        return self._queue.connection

    @property
    def rq_queue(self) -> Queue:
        """Underlying RQ queue, consumed by the worker bootstrap."""

        return self._queue

    def enqueue(
        self,
        job_name: JobName | str,
        payload: Mapping[str, Any],
        *,
        job_id: str | None = None,
    ) -> JobHandle:
        """Submit *payload* for asynchronous processing under *job_name*.

        Raises ``ValueError`` for names outside :class:`JobName`; payload
        contents are validated by the consuming handler, not here.
        """

        name = JobName(job_name).value
        job = self._queue.enqueue(
            JOB_FUNCTION,
            name,
            dict(payload),
            job_id=job_id,
            description=name,
            retry=self._retry_policy.to_rq(),
            job_timeout=self._job_timeout,
            result_ttl=self._result_ttl,
            failure_ttl=self._failure_ttl,
            on_failure=discard_retries_for_fatal_errors,
            meta={"job_name": name, "attempts": 0},
        )
        self._logger.info(
            "queue.job.enqueued",
            job_id=job.id,
            job_name=name,
            queue_name=self._queue.name,
        )
        return JobHandle(id=job.id, name=name, queue=self._queue.name)

    def close(self) -> None:
        """Release the broker connection pool."""

        self._queue.connection.close()


__all__ = [
    "JOB_FUNCTION",
    "JobHandle",
    "JobName",
    "JobQueue",
    "QueueConnectionError",
    "RetryPolicy",
]
