"""
Custom exceptions for vmsflow.

Provides a hierarchy of exceptions for the job runner and the remote
task poller, so callers can tell validation problems, exhausted retries
and pool misuse apart.
"""

from __future__ import annotations

from typing import Any


class VmsFlowError(Exception):
    """
    Base exception for all vmsflow errors.

    All custom exceptions inherit from this class.
    """

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for reports."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(VmsFlowError):
    """
    Invalid input.

    Never retried; raised at the call that introduced the bad value.
    """

    pass


class ConfigurationError(ValidationError):
    """Configuration is missing or invalid."""

    def __init__(
        self,
        message: str,
        config_key: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.config_key = config_key


class InvalidTaskHandleError(ValidationError):
    """One or more remote task handles do not match `TypeName[n]`."""

    def __init__(
        self,
        handles: list[str],
        details: dict[str, Any] | None = None,
    ):
        shown = ", ".join(repr(h) for h in handles[:5])
        if len(handles) > 5:
            shown += f", ... ({len(handles) - 5} more)"
        super().__init__(f"Malformed remote task handle(s): {shown}", details)
        self.handles = handles


class DuplicateTargetError(ValidationError):
    """Two fan-out targets resolved to the same entity key."""

    def __init__(self, key: str, details: dict[str, Any] | None = None):
        super().__init__(f"Duplicate target key: {key!r}", details)
        self.key = key


# =============================================================================
# Pool / Runner Errors
# =============================================================================


class PoolError(VmsFlowError):
    """Worker pool misuse or failure."""

    pass


class PoolConfigurationError(PoolError, ValidationError):
    """Invalid pool size."""

    def __init__(self, max_workers: object):
        super().__init__(
            f"Pool capacity must be a positive integer, got {max_workers!r}",
            details={"max_workers": max_workers},
        )
        self.max_workers = max_workers


class PoolShutdownError(PoolError):
    """Work was submitted to a pool that has been shut down."""

    def __init__(self, message: str = "Worker pool has been shut down"):
        super().__init__(message)


class JobAlreadyRetrievedError(PoolError):
    """The result of a job was already collected."""

    def __init__(self, job_id: str):
        super().__init__(f"Result of job {job_id} was already retrieved", {"job_id": job_id})
        self.job_id = job_id


class RunnerDisposedError(PoolError):
    """The job runner has been disposed."""

    def __init__(self) -> None:
        super().__init__("Local job runner has been disposed")


# =============================================================================
# Remote Task Errors
# =============================================================================


class TransientCommunicationError(VmsFlowError):
    """
    A status query failed in a way that may succeed on retry.

    Remote clients raise this (or ConnectionError/TimeoutError) to ask the
    poller to reconnect and try again.
    """

    pass


class PollRetryExhaustedError(VmsFlowError):
    """Status query kept failing after every retry; the poll is aborted."""

    def __init__(
        self,
        task_path: str,
        attempts: int,
        cause: Exception | None = None,
    ):
        message = f"Status query for {task_path} failed after {attempts} attempts"
        if cause is not None:
            message += f": {cause}"
        super().__init__(
            message,
            details={"task": task_path, "attempts": attempts},
            cause=cause,
        )
        self.task_path = task_path
        self.attempts = attempts


class RemoteTaskError(VmsFlowError):
    """A remote task finished in the Error state."""

    def __init__(
        self,
        task_path: str,
        error_text: str | None = None,
        error_code: str | None = None,
    ):
        message = f"Remote task {task_path} failed"
        if error_text:
            message += f": {error_text}"
        super().__init__(message, details={"task": task_path, "error_code": error_code})
        self.task_path = task_path
        self.error_text = error_text
        self.error_code = error_code


class TaskCleanupError(VmsFlowError):
    """The cleanup call for a finished remote task failed."""

    def __init__(self, task_path: str, cause: Exception | None = None):
        super().__init__(
            f"Cleanup of remote task {task_path} failed: {cause}",
            details={"task": task_path},
            cause=cause,
        )
        self.task_path = task_path


__all__ = [
    "VmsFlowError",
    "ValidationError",
    "ConfigurationError",
    "InvalidTaskHandleError",
    "DuplicateTargetError",
    "PoolError",
    "PoolConfigurationError",
    "PoolShutdownError",
    "JobAlreadyRetrievedError",
    "RunnerDisposedError",
    "TransientCommunicationError",
    "PollRetryExhaustedError",
    "RemoteTaskError",
    "TaskCleanupError",
]
