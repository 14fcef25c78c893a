"""
Worker Pool for vmsflow.

Runs work items on a fixed number of reusable OS threads.

Features:
- Bounded parallelism (default: number of processors)
- Excess work queues inside the pool instead of spawning threads
- Execution errors captured into the job result, never raised on the
  caller's thread
- Per-job completion handles with single retrieval
"""

from __future__ import annotations

import os
import threading
import time
import uuid
from collections.abc import Callable, Iterator, Mapping
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from vmsflow.core.config import PoolConfig
from vmsflow.core.types import ErrorRecord, JobResult, JobState, WorkItem
from vmsflow.utils.errors import (
    JobAlreadyRetrievedError,
    PoolConfigurationError,
    PoolError,
    PoolShutdownError,
)
from vmsflow.utils.logging import LogContext, get_logger

logger = get_logger(__name__)


# =============================================================================
# Enums
# =============================================================================


class PoolStatus(Enum):
    """Current status of the pool."""

    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class PoolStats:
    """
    Pool statistics.

    Attributes:
        capacity: Maximum number of concurrently executing work items
        active: Work items executing right now
        peak_active: Highest observed concurrency
        submitted: Total work items accepted
        completed: Work items that finished (with or without errors)
        failed: Finished work items that recorded at least one error
        uptime: Seconds since the pool was created
    """

    capacity: int
    active: int
    peak_active: int
    submitted: int
    completed: int
    failed: int
    uptime: float

    @property
    def queued(self) -> int:
        return max(0, self.submitted - self.completed - self.active)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "capacity": self.capacity,
            "active": self.active,
            "peak_active": self.peak_active,
            "queued": self.queued,
            "submitted": self.submitted,
            "completed": self.completed,
            "failed": self.failed,
            "uptime": round(self.uptime, 2),
        }


class Job:
    """
    Handle for a submitted work item.

    Created by WorkerPool.submit(); only the pool's worker threads change
    its execution state. The execution future is dropped once the result has
    been retrieved.
    """

    def __init__(self, work_item: WorkItem, pool: WorkerPool) -> None:
        self.id = f"job-{uuid.uuid4().hex[:8]}"
        self.work_item = work_item
        self.submitted_at = datetime.now()
        self._pool = pool
        self._future: Future[JobResult] | None = None
        self._state = JobState.SUBMITTED

    @property
    def key(self) -> str | None:
        return self.work_item.key

    @property
    def state(self) -> JobState:
        if self._state is JobState.RETRIEVED:
            return JobState.RETRIEVED
        if self._future is not None and self._future.done():
            return JobState.COMPLETED
        return self._state

    def done(self) -> bool:
        """Whether execution has finished (retrieved jobs count as done)."""
        return self.state in (JobState.COMPLETED, JobState.RETRIEVED)

    def add_done_callback(self, fn: Callable[[Job], Any]) -> None:
        """Call fn(job) from the worker thread once execution finishes."""
        future = self._future
        if future is None:
            fn(self)
            return
        future.add_done_callback(lambda _future: fn(self))

    def __repr__(self) -> str:
        return f"Job(id={self.id!r}, key={self.key!r}, state={self.state.value})"


# =============================================================================
# Output Collection
# =============================================================================


def _collect_output(
    value: Any,
    output: list[Any],
    errors: list[ErrorRecord],
    key: str | None,
) -> None:
    """
    Normalize a work item's return value into output and error streams.

    Lists, tuples and iterators are flattened one level; ErrorRecord values
    go to the error stream. Values are appended as they are produced, so a
    generator that raises keeps what it emitted before failing.
    """
    if value is None:
        return

    if isinstance(value, (str, bytes, bytearray, Mapping)):
        output.append(value)
        return

    if isinstance(value, (list, tuple, Iterator)):
        items = value
    else:
        items = (value,)

    for item in items:
        if isinstance(item, ErrorRecord):
            errors.append(item if item.target is not None else item.with_target(key))
        else:
            output.append(item)


# =============================================================================
# Worker Pool
# =============================================================================


class WorkerPool:
    """
    Fixed-capacity pool of worker threads.

    Usage:
        with WorkerPool(max_workers=4) as pool:
            job = pool.submit(WorkItem.of(fetch, key="rec-1", host="10.0.0.5"))
            ...
            if pool.is_complete(job):
                result = pool.end_invoke(job)

    Attributes:
        capacity: Maximum number of concurrently executing work items
    """

    def __init__(
        self,
        max_workers: int | None = None,
        thread_name_prefix: str = "vmsflow-worker",
    ) -> None:
        """
        Initialize the pool.

        Args:
            max_workers: Parallelism degree (None = number of processors)
            thread_name_prefix: Name prefix for worker threads

        Raises:
            PoolConfigurationError: If max_workers is not a positive integer
        """
        if max_workers is None:
            max_workers = os.cpu_count() or 1
        if isinstance(max_workers, bool) or not isinstance(max_workers, int) or max_workers < 1:
            raise PoolConfigurationError(max_workers)

        self._capacity = max_workers
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix=thread_name_prefix,
        )

        # Statistics
        self._lock = threading.Lock()
        self._created_at = time.monotonic()
        self._active = 0
        self._peak_active = 0
        self._submitted = 0
        self._completed = 0
        self._failed = 0

        self._status = PoolStatus.RUNNING

        logger.debug(
            "WorkerPool initialized",
            capacity=self._capacity,
            thread_name_prefix=thread_name_prefix,
        )

    @classmethod
    def from_config(cls, config: PoolConfig) -> WorkerPool:
        return cls(max_workers=config.max_workers, thread_name_prefix=config.thread_name_prefix)

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def status(self) -> PoolStatus:
        return self._status

    @property
    def active_count(self) -> int:
        """Number of work items executing right now."""
        with self._lock:
            return self._active

    # =========================================================================
    # Submission and Retrieval
    # =========================================================================

    def submit(self, work_item: WorkItem) -> Job:
        """
        Queue a work item for execution.

        Never waits for a free worker; excess work queues inside the pool.

        Raises:
            PoolShutdownError: If the pool has been shut down
        """
        if self._status is not PoolStatus.RUNNING:
            raise PoolShutdownError(
                f"Worker pool is not running (status: {self._status.value})"
            )

        job = Job(work_item, self)
        try:
            job._future = self._executor.submit(self._execute, job)
        except RuntimeError as e:
            # Executor shut down between the status check and submit()
            raise PoolShutdownError(str(e)) from e

        with self._lock:
            self._submitted += 1

        logger.debug("Job submitted", job_id=job.id, key=job.key, work_item=work_item.name)
        return job

    def is_complete(self, job: Job) -> bool:
        """Non-blocking completion check."""
        self._check_owner(job)
        return job.done()

    def end_invoke(self, job: Job) -> JobResult:
        """
        Block until the job finishes and return its result.

        Must be called at most once per job. Work items cancelled by a
        shutdown produce a result holding a cancellation error.

        Raises:
            JobAlreadyRetrievedError: If the result was already collected
            PoolError: If the job belongs to another pool
        """
        self._check_owner(job)
        if job._state is JobState.RETRIEVED or job._future is None:
            raise JobAlreadyRetrievedError(job.id)

        try:
            result = job._future.result()
        except CancelledError:
            result = JobResult(
                job_id=job.id,
                key=job.key,
                errors=[
                    ErrorRecord(
                        message="Job was cancelled before it started",
                        error_type="CancelledError",
                        target=job.key,
                    )
                ],
            )

        job._state = JobState.RETRIEVED
        job._future = None
        return result

    def _check_owner(self, job: Job) -> None:
        if job._pool is not self:
            raise PoolError(f"Job {job.id} was not submitted to this pool", {"job_id": job.id})

    # =========================================================================
    # Execution
    # =========================================================================

    def _execute(self, job: Job) -> JobResult:
        """Run one work item on a worker thread, capturing its errors."""
        job._state = JobState.RUNNING
        with self._lock:
            self._active += 1
            self._peak_active = max(self._peak_active, self._active)

        output: list[Any] = []
        errors: list[ErrorRecord] = []
        started_at = datetime.now()
        try:
            with LogContext(job_id=job.id, key=job.key):
                _collect_output(job.work_item.run(), output, errors, job.key)
        except Exception as e:
            errors.append(ErrorRecord.from_exception(e, target=job.key))
            logger.warning(
                "Work item raised",
                job_id=job.id,
                key=job.key,
                error_type=type(e).__name__,
                error=str(e),
            )
        finally:
            with self._lock:
                self._active -= 1
                self._completed += 1
                if errors:
                    self._failed += 1

        return JobResult(
            job_id=job.id,
            key=job.key,
            output=output,
            errors=errors,
            started_at=started_at,
            finished_at=datetime.now(),
        )

    # =========================================================================
    # Statistics and Lifecycle
    # =========================================================================

    def get_stats(self) -> PoolStats:
        """Snapshot of pool counters."""
        with self._lock:
            return PoolStats(
                capacity=self._capacity,
                active=self._active,
                peak_active=self._peak_active,
                submitted=self._submitted,
                completed=self._completed,
                failed=self._failed,
                uptime=time.monotonic() - self._created_at,
            )

    def shutdown(self, wait: bool = True, cancel_pending: bool = False) -> None:
        """
        Stop accepting work and release the worker threads.

        Args:
            wait: Block until running work items finish
            cancel_pending: Cancel work items that have not started yet
        """
        if self._status is not PoolStatus.RUNNING:
            return

        self._status = PoolStatus.SHUTTING_DOWN
        logger.debug(
            "Shutting down worker pool",
            active=self.active_count,
            cancel_pending=cancel_pending,
        )
        self._executor.shutdown(wait=wait, cancel_futures=cancel_pending)
        self._status = PoolStatus.STOPPED

        stats = self.get_stats()
        logger.debug(
            "Worker pool stopped",
            completed=stats.completed,
            failed=stats.failed,
            peak_active=stats.peak_active,
        )

    def __enter__(self) -> WorkerPool:
        return self

    def __exit__(self, *args: Any) -> None:
        self.shutdown()

    def __repr__(self) -> str:
        return (
            f"WorkerPool("
            f"capacity={self._capacity}, "
            f"active={self.active_count}, "
            f"status={self._status.value})"
        )


__all__ = [
    "PoolStatus",
    "PoolStats",
    "Job",
    "WorkerPool",
]
