"""
Remote Task Poller for vmsflow.

Tracks server-side asynchronous operations (scans, provisioning, snapshot
capture) until each one reaches a terminal state.

Features:
- Eager validation of task handles before any status query
- Round-robin FIFO polling on a fixed interval
- Lazy results: each finished task is yielded as soon as it is seen
- Transient failures retried with a reconnect between attempts
- Optional cleanup of finished tasks
- ETA recomputed every cycle
"""

from __future__ import annotations

import time
from collections import deque
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from typing import Any

from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from vmsflow.core.config import PollerConfig
from vmsflow.core.types import ProgressEstimate, RemoteTaskHandle, TaskOutcome, TaskStatus
from vmsflow.remote.client import ClientFactory, RemoteTaskClient
from vmsflow.remote.progress import (
    LoggingProgressReporter,
    ProgressReporter,
    estimate_remaining,
)
from vmsflow.utils.errors import (
    InvalidTaskHandleError,
    PollRetryExhaustedError,
    TaskCleanupError,
    TransientCommunicationError,
)
from vmsflow.utils.logging import PollerLogger

DEFAULT_TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    TransientCommunicationError,
    ConnectionError,
    TimeoutError,
)


@dataclass
class _QueueEntry:
    """One queued handle; duplicates get their own entry."""

    handle: RemoteTaskHandle
    polls: int = 0


class RemoteTaskPoller:
    """
    Polls remote tasks to completion.

    Usage:
        poller = RemoteTaskPoller(connect=lambda: RecorderTaskClient(session))

        for outcome in poller.poll(["Task[12]", "Task[13]"], cleanup=True):
            if outcome.succeeded:
                print(outcome.handle, "done")
            else:
                print(outcome.handle, outcome.status.error_text)

    There is no cancellation token. Stopping the iteration early leaves the
    remaining tasks unpolled; the channel is closed when the generator is
    closed or garbage collected.
    """

    def __init__(
        self,
        connect: ClientFactory,
        config: PollerConfig | None = None,
        *,
        reporter: ProgressReporter | None = None,
        transient_errors: tuple[type[BaseException], ...] = (),
        sleep: Callable[[float], Any] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the poller.

        Args:
            connect: Factory that opens a channel; called again after failures
            config: Poller configuration (uses defaults if None)
            reporter: Progress sink (defaults to structured logging)
            transient_errors: Extra exception types worth a retry
            sleep: Sleep function (injectable for tests)
            clock: Monotonic clock (injectable for tests)
        """
        self._connect = connect
        self._config = config or PollerConfig()
        self._reporter = reporter or LoggingProgressReporter()
        self._transient = DEFAULT_TRANSIENT_ERRORS + tuple(transient_errors)
        self._sleep = sleep
        self._clock = clock
        self._client: RemoteTaskClient | None = None
        self._logger = PollerLogger()

        # Statistics
        self.connections = 0
        self.queries = 0

    @property
    def config(self) -> PollerConfig:
        return self._config

    # =========================================================================
    # Public API
    # =========================================================================

    def poll(
        self,
        handles: Iterable[str | RemoteTaskHandle],
        *,
        cleanup: bool | None = None,
    ) -> Iterator[TaskOutcome]:
        """
        Poll tasks until every one is terminal, yielding each as it finishes.

        Handles are validated before anything else happens, so a malformed
        handle fails here rather than on first iteration.

        Args:
            handles: Task handles or `TypeName[n]` strings
            cleanup: Clean up finished tasks (default: config.cleanup)

        Returns:
            Lazy iterator of TaskOutcome, in completion order

        Raises:
            InvalidTaskHandleError: If a handle is malformed and
                config.skip_invalid is off
            PollRetryExhaustedError: (during iteration) when a status query
                keeps failing after max_attempts
            TaskCleanupError: (during iteration) when a cleanup call fails
        """
        parsed = self._validate(handles)
        do_cleanup = self._config.cleanup if cleanup is None else cleanup
        return self._poll(parsed, do_cleanup)

    def wait_all(
        self,
        handles: Iterable[str | RemoteTaskHandle],
        *,
        cleanup: bool | None = None,
    ) -> list[TaskOutcome]:
        """Poll to completion and return every outcome."""
        return list(self.poll(handles, cleanup=cleanup))

    def close(self) -> None:
        """Close the current channel, if any."""
        self._disconnect()

    def __enter__(self) -> RemoteTaskPoller:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # =========================================================================
    # Polling Loop
    # =========================================================================

    def _validate(self, handles: Iterable[str | RemoteTaskHandle]) -> list[RemoteTaskHandle]:
        valid: list[RemoteTaskHandle] = []
        invalid: list[str] = []
        for handle in handles:
            if RemoteTaskHandle.is_valid(handle):
                valid.append(RemoteTaskHandle.parse(handle))
            else:
                invalid.append(handle if isinstance(handle, str) else repr(handle))

        if invalid:
            if not self._config.skip_invalid:
                raise InvalidTaskHandleError(invalid)
            self._logger.warning("Skipping malformed task handles", handles=invalid)
        return valid

    def _poll(self, handles: list[RemoteTaskHandle], cleanup: bool) -> Iterator[TaskOutcome]:
        total = len(handles)
        if total == 0:
            return

        queue = deque(_QueueEntry(handle) for handle in handles)
        completed = 0
        started = self._clock()
        estimate = ProgressEstimate(elapsed=0.0, remaining=None, completed=0, total=total)

        self._logger.info("Polling remote tasks", total=total, cleanup=cleanup)
        self._reporter.start(total)
        try:
            while queue:
                self._sleep(self._config.poll_interval)
                entry = queue.popleft()
                status = self._query(entry.handle)
                entry.polls += 1

                self._logger.log_status(
                    task=entry.handle.path,
                    state=status.state.value,
                    progress_percent=status.progress_percent,
                    queued=len(queue),
                )

                if status.is_terminal:
                    completed += 1
                    if status.failed:
                        self._logger.warning(
                            "Remote task failed",
                            task=entry.handle.path,
                            error_code=status.error_code,
                            error_text=status.error_text,
                        )
                    if cleanup:
                        self._cleanup(entry.handle)
                else:
                    queue.append(entry)

                elapsed = self._clock() - started
                estimate = ProgressEstimate(
                    elapsed=elapsed,
                    remaining=estimate_remaining(
                        elapsed, total, completed, status.progress_percent
                    ),
                    completed=completed,
                    total=total,
                )
                self._reporter.update(estimate, status)

                if status.is_terminal:
                    yield TaskOutcome(handle=entry.handle, status=status, polls=entry.polls)

            self._logger.info(
                "Remote tasks finished",
                total=total,
                elapsed_seconds=round(estimate.elapsed, 2),
                queries=self.queries,
            )
        finally:
            self._reporter.finish(estimate)
            self._disconnect()

    # =========================================================================
    # Status Queries
    # =========================================================================

    def _query(self, handle: RemoteTaskHandle) -> TaskStatus:
        """Query one status, retrying transient failures over a new channel."""
        retrying = Retrying(
            stop=stop_after_attempt(self._config.max_attempts),
            wait=wait_fixed(self._config.retry_delay),
            retry=retry_if_exception_type(self._transient),
            before_sleep=self._before_retry,
            sleep=self._sleep,
        )
        try:
            return retrying(self._fetch_status, handle)
        except RetryError as e:
            cause = e.last_attempt.exception()
            self._logger.error(
                "Status query retries exhausted",
                task=handle.path,
                attempts=self._config.max_attempts,
                error=str(cause),
            )
            raise PollRetryExhaustedError(
                handle.path,
                self._config.max_attempts,
                cause=cause if isinstance(cause, Exception) else None,
            ) from cause

    def _fetch_status(self, handle: RemoteTaskHandle) -> TaskStatus:
        self.queries += 1
        return self._get_client().get_status(handle)

    def _before_retry(self, retry_state: RetryCallState) -> None:
        handle = retry_state.args[0] if retry_state.args else None
        error = retry_state.outcome.exception() if retry_state.outcome else None
        self._logger.log_retry(
            task=handle.path if isinstance(handle, RemoteTaskHandle) else str(handle),
            attempt=retry_state.attempt_number,
            max_attempts=self._config.max_attempts,
            error=error,
        )
        # Next attempt opens a fresh channel
        self._disconnect()

    def _cleanup(self, handle: RemoteTaskHandle) -> None:
        client = self._get_client()
        if not client.supports_cleanup(handle):
            self._logger.debug("Cleanup not supported", task=handle.path)
            return
        try:
            client.cleanup(handle)
        except Exception as e:
            raise TaskCleanupError(handle.path, cause=e) from e
        self._logger.debug("Task cleaned up", task=handle.path)

    # =========================================================================
    # Channel Management
    # =========================================================================

    def _get_client(self) -> RemoteTaskClient:
        if self._client is None:
            self._client = self._connect()
            self.connections += 1
            if self.connections > 1:
                self._logger.info("Channel re-established", connections=self.connections)
        return self._client

    def _disconnect(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            client.close()
        except Exception as e:
            self._logger.debug("Closing channel failed", error=str(e))


__all__ = [
    "DEFAULT_TRANSIENT_ERRORS",
    "RemoteTaskPoller",
]
