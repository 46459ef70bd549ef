"""Errors raised while executing queued jobs."""


class JobError(RuntimeError):
    """Base exception for failures that are a property of the job itself."""


class UnknownJobTypeError(JobError):
    """Raised when a job names a type no handler is registered for."""

    def __init__(self, job_name: str) -> None:
        super().__init__(f"Unknown job type '{job_name}'")
        self.job_name = job_name


class InvalidJobPayloadError(JobError):
    """Raised when a handler rejects the shape of its payload."""

    def __init__(self, job_name: str, detail: str) -> None:
        super().__init__(f"Invalid payload for job '{job_name}': {detail}")
        self.job_name = job_name
        self.detail = detail


NON_RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    UnknownJobTypeError,
    InvalidJobPayloadError,
)
"""Failures that would repeat identically on redelivery."""


__all__ = [
    "InvalidJobPayloadError",
    "JobError",
    "NON_RETRYABLE_ERRORS",
    "UnknownJobTypeError",
]
