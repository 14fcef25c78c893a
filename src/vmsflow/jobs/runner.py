"""
Local Job Runner for vmsflow.

Keeps track of every job submitted to a WorkerPool so callers can submit
many work items and later collect only the finished ones.

Job lifecycle:
    submitted -> running -> completed (pending retrieval) -> retrieved

receive_jobs() is the only operation that moves a job out of `completed`.
The runner is meant to be driven from a single caller thread; sharing one
runner between threads needs external locking.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable, Iterator
from typing import Any

from vmsflow.core.config import RunnerConfig, VmsFlowConfig
from vmsflow.core.types import JobResult, WorkItem
from vmsflow.jobs.pool import Job, PoolStats, WorkerPool
from vmsflow.utils.errors import RunnerDisposedError, ValidationError
from vmsflow.utils.logging import get_logger

logger = get_logger(__name__)


class LocalJobRunner:
    """
    Bookkeeping layer over a WorkerPool.

    Usage:
        with LocalJobRunner(max_workers=4, poll_interval=0.5) as runner:
            for recorder in recorders:
                runner.add_job(collect_statistics, key=recorder.name, recorder=recorder)

            runner.wait()
            results = runner.receive_jobs()

        # Or drive the loop yourself
        while runner.has_pending_jobs():
            results.extend(runner.receive_jobs())
            time.sleep(1)
    """

    def __init__(
        self,
        pool: WorkerPool | None = None,
        *,
        max_workers: int | None = None,
        poll_interval: float | None = None,
        config: RunnerConfig | None = None,
    ) -> None:
        """
        Initialize the runner.

        Args:
            pool: Existing pool to use (not shut down by dispose())
            max_workers: Capacity of the pool created when none is given
            poll_interval: Longest pause between completion checks in wait()
            config: Runner configuration (poll_interval overrides it)
        """
        self._config = config or RunnerConfig()
        interval = poll_interval if poll_interval is not None else self._config.poll_interval
        if interval <= 0:
            raise ValidationError(f"poll_interval must be > 0, got {interval!r}")
        self.poll_interval = interval

        self._owns_pool = pool is None
        self._pool = pool or WorkerPool(max_workers=max_workers)
        self._jobs: list[Job] = []
        self._disposed = False
        self._wakeup = threading.Event()

        logger.debug(
            "LocalJobRunner initialized",
            capacity=self._pool.capacity,
            poll_interval=self.poll_interval,
            owns_pool=self._owns_pool,
        )

    @classmethod
    def from_config(cls, config: VmsFlowConfig) -> LocalJobRunner:
        """Create a runner and its pool from the pool and runner sections."""
        runner = cls(WorkerPool.from_config(config.pool), config=config.runner)
        runner._owns_pool = True
        return runner

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def pool(self) -> WorkerPool:
        return self._pool

    @property
    def capacity(self) -> int:
        return self._pool.capacity

    @property
    def tracked_jobs(self) -> tuple[Job, ...]:
        """Snapshot of the jobs whose results have not been retrieved."""
        return tuple(self._jobs)

    @property
    def pending_count(self) -> int:
        return len(self._jobs)

    @property
    def stats(self) -> PoolStats:
        return self._pool.get_stats()

    @property
    def disposed(self) -> bool:
        return self._disposed

    # =========================================================================
    # Job Operations
    # =========================================================================

    def add_job(
        self,
        work: WorkItem | Callable[..., Any],
        *,
        key: str | None = None,
        **parameters: Any,
    ) -> Job:
        """
        Submit a work item and start tracking it.

        Args:
            work: A WorkItem, or a callable to wrap in one
            key: Entity key (only when wrapping a callable)
            **parameters: Parameters (only when wrapping a callable)

        Returns:
            Job handle
        """
        if self._disposed:
            raise RunnerDisposedError()

        if isinstance(work, WorkItem):
            if key is not None or parameters:
                raise ValidationError("key/parameters cannot be combined with a WorkItem")
            work_item = work
        else:
            work_item = WorkItem.of(work, key=key, **parameters)

        job = self._pool.submit(work_item)
        self._jobs.append(job)
        job.add_done_callback(self._on_job_done)
        return job

    def _on_job_done(self, job: Job) -> None:
        self._wakeup.set()

    def receive_jobs(self, jobs: Iterable[Job] | None = None) -> list[JobResult]:
        """
        Collect results of the completed jobs.

        Incomplete jobs stay tracked and untouched. Jobs that are not tracked
        (already received, or never added here) are ignored, so a result is
        delivered at most once.

        Args:
            jobs: Jobs to consider (default: every tracked job)

        Returns:
            Results of the jobs that had finished, in no particular order
        """
        if jobs is None:
            candidates = list(self._jobs)
        else:
            tracked = {id(job) for job in self._jobs}
            candidates = [job for job in jobs if id(job) in tracked]

        results: list[JobResult] = []
        for job in candidates:
            if not self._pool.is_complete(job):
                continue
            results.append(self._pool.end_invoke(job))
            self._jobs.remove(job)

        if results:
            logger.debug(
                "Received jobs",
                received=len(results),
                still_tracked=len(self._jobs),
            )
        return results

    def wait(
        self,
        jobs: Iterable[Job] | None = None,
        timeout: float | None = None,
    ) -> bool:
        """
        Block until every job in the set has finished.

        Wakes as soon as a job completes and re-checks at least every
        poll_interval seconds. Results are not retrieved; call
        receive_jobs() afterwards.

        Args:
            jobs: Jobs to wait for (default: every tracked job)
            timeout: Give up after this many seconds

        Returns:
            True if all jobs finished, False on timeout or after dispose()
        """
        waiting = list(self._jobs) if jobs is None else list(jobs)
        return self._wait_for(waiting, timeout, first_only=False)

    def wait_any(
        self,
        jobs: Iterable[Job] | None = None,
        timeout: float | None = None,
    ) -> bool:
        """
        Block until at least one job in the set has finished.

        Returns:
            True if a job finished (or the set is empty), False on timeout
            or after dispose()
        """
        waiting = list(self._jobs) if jobs is None else list(jobs)
        return self._wait_for(waiting, timeout, first_only=True)

    def _wait_for(self, waiting: list[Job], timeout: float | None, first_only: bool) -> bool:
        deadline = None if timeout is None else time.monotonic() + timeout

        while True:
            # Cleared before checking so a completion after the check still wakes us
            self._wakeup.clear()
            unfinished = [job for job in waiting if not job.done()]
            if not unfinished or (first_only and len(unfinished) < len(waiting)):
                return True
            if self._disposed:
                return False

            interval = self.poll_interval
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    logger.debug("Wait timed out", unfinished=len(unfinished))
                    return False
                interval = min(interval, remaining)

            self._wakeup.wait(interval)

    def has_pending_jobs(self) -> bool:
        """True while any tracked job has not been received yet."""
        return bool(self._jobs)

    def iter_results(self, jobs: Iterable[Job] | None = None) -> Iterator[JobResult]:
        """
        Yield results as jobs finish, until the set is exhausted.

        Waits for the next completion between receive passes that produced
        nothing.
        """
        remaining = list(self._jobs) if jobs is None else list(jobs)
        while remaining and not self._disposed:
            received = self.receive_jobs(remaining)
            if received:
                done_ids = {result.job_id for result in received}
                remaining = [job for job in remaining if job.id not in done_ids]
                yield from received
                continue
            tracked = {id(job) for job in self._jobs}
            remaining = [job for job in remaining if id(job) in tracked]
            if remaining:
                self.wait_any(remaining)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def dispose(self) -> None:
        """
        Stop tracking all jobs and release the pool.

        Results that were never received are lost. A pool passed in by the
        caller is left running; an owned pool is shut down and its queued
        work cancelled.
        """
        if self._disposed:
            return

        self._disposed = True
        discarded = len(self._jobs)
        if discarded:
            logger.warning("Disposing runner with unretrieved jobs", discarded=discarded)
        self._jobs.clear()
        self._wakeup.set()

        if self._owns_pool:
            self._pool.shutdown(wait=False, cancel_pending=True)

        logger.debug("LocalJobRunner disposed", discarded=discarded)

    def __enter__(self) -> LocalJobRunner:
        return self

    def __exit__(self, *args: Any) -> None:
        self.dispose()

    def __repr__(self) -> str:
        return (
            f"LocalJobRunner("
            f"capacity={self.capacity}, "
            f"tracked={len(self._jobs)}, "
            f"disposed={self._disposed})"
        )


# =============================================================================
# Convenience Functions
# =============================================================================


def run_work_items(
    work_items: Iterable[WorkItem],
    max_workers: int | None = None,
    poll_interval: float = 0.1,
) -> list[JobResult]:
    """
    Run work items to completion on a temporary runner.

    Results come back in completion order, not submission order.

    Example:
        results = run_work_items(
            [WorkItem.of(ping, key=host, host=host) for host in hosts],
            max_workers=8,
        )
    """
    with LocalJobRunner(max_workers=max_workers, poll_interval=poll_interval) as runner:
        for item in work_items:
            runner.add_job(item)
        return list(runner.iter_results())


__all__ = [
    "LocalJobRunner",
    "run_work_items",
]
