"""Utility modules for vmsflow."""

from vmsflow.utils.errors import (
    ConfigurationError,
    DuplicateTargetError,
    InvalidTaskHandleError,
    JobAlreadyRetrievedError,
    PollRetryExhaustedError,
    PoolConfigurationError,
    PoolError,
    PoolShutdownError,
    RemoteTaskError,
    RunnerDisposedError,
    TaskCleanupError,
    TransientCommunicationError,
    ValidationError,
    VmsFlowError,
)
from vmsflow.utils.logging import LogContext, PollerLogger, get_logger, setup_logging

__all__ = [
    # Errors
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
    # Logging
    "get_logger",
    "setup_logging",
    "LogContext",
    "PollerLogger",
]
