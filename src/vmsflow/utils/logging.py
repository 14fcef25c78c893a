"""
Structured logging setup for vmsflow.

Provides consistent logging across all modules with support for
JSON formatting (production) and pretty printing (development).
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import Processor


def setup_logging(
    level: str = "INFO",
    json_format: bool = False,
    log_file: str | None = None,
) -> None:
    """
    Configure logging for the entire application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: If True, output JSON logs (for log shipping)
        log_file: Optional file path to write logs to

    Example:
        # Interactive runs
        setup_logging(level="DEBUG", json_format=False)

        # Scheduled audits
        setup_logging(level="INFO", json_format=True)
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=numeric_level,
        format="%(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(numeric_level)
        logging.getLogger().addHandler(file_handler)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if json_format:
        processors: list[Processor] = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.plain_traceback,
            ),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a logger for a specific module.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger

    Example:
        logger = get_logger(__name__)
        logger.info("Job submitted", job_id="job-1a2b", key="recorder-01")
    """
    return structlog.get_logger(name)


class LogContext:
    """
    Context manager for adding contextual information to logs.

    Example:
        with LogContext(target="recorder-01", operation="statistics"):
            logger.info("Collecting")  # Includes target and operation
    """

    def __init__(self, **context: Any):
        self.context = context
        self._token: object | None = None

    def __enter__(self) -> LogContext:
        self._token = structlog.contextvars.bind_contextvars(**self.context)
        return self

    def __exit__(self, *args: Any) -> None:
        if self._token:
            structlog.contextvars.unbind_contextvars(*self.context.keys())


def log_execution(
    logger: structlog.BoundLogger,
    operation: str,
    **extra: Any,
) -> None:
    """Log the start of an operation."""
    logger.info(
        f"Executing: {operation}",
        operation=operation,
        **extra,
    )


def log_completion(
    logger: structlog.BoundLogger,
    operation: str,
    duration_ms: float,
    **extra: Any,
) -> None:
    """
    Log operation completion with duration.

    Args:
        logger: Logger instance
        operation: Operation name
        duration_ms: Duration in milliseconds
        **extra: Additional context
    """
    logger.info(
        f"Completed: {operation}",
        operation=operation,
        duration_ms=round(duration_ms, 2),
        **extra,
    )


def log_error(
    logger: structlog.BoundLogger,
    operation: str,
    error: Exception,
    **extra: Any,
) -> None:
    """Log an error with standard format."""
    logger.error(
        f"Failed: {operation}",
        operation=operation,
        error_type=type(error).__name__,
        error_message=str(error),
        exc_info=True,
        **extra,
    )


# =============================================================================
# Specialized Loggers
# =============================================================================


class PollerLogger:
    """Logger for remote task polling."""

    def __init__(self, name: str = "poller"):
        self.logger = get_logger(f"vmsflow.remote.{name}")

    def debug(self, message: str, **extra: Any) -> None:
        self.logger.debug(message, **extra)

    def info(self, message: str, **extra: Any) -> None:
        self.logger.info(message, **extra)

    def warning(self, message: str, **extra: Any) -> None:
        self.logger.warning(message, **extra)

    def error(self, message: str, **extra: Any) -> None:
        self.logger.error(message, **extra)

    def log_status(
        self,
        task: str,
        state: str,
        progress_percent: int,
        queued: int,
        **extra: Any,
    ) -> None:
        """Log one status query result."""
        self.logger.debug(
            "Task status",
            task=task,
            state=state,
            progress_percent=progress_percent,
            queued=queued,
            **extra,
        )

    def log_retry(
        self,
        task: str,
        attempt: int,
        max_attempts: int,
        error: BaseException | None,
    ) -> None:
        """Log a transient failure that is about to be retried."""
        self.logger.warning(
            "Status query failed, reconnecting",
            task=task,
            attempt=attempt,
            max_attempts=max_attempts,
            error_type=type(error).__name__ if error else None,
            error_message=str(error) if error else None,
        )

    def log_estimate(
        self,
        completed: int,
        total: int,
        elapsed_seconds: float,
        remaining_seconds: float | None,
    ) -> None:
        """Log the current progress estimate."""
        self.logger.debug(
            "Poll progress",
            completed=completed,
            total=total,
            elapsed_seconds=round(elapsed_seconds, 2),
            remaining_seconds=(
                round(remaining_seconds, 2) if remaining_seconds is not None else None
            ),
        )


# Initialize default logging on import
setup_logging()
