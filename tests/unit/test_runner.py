"""
Unit tests for LocalJobRunner.

Tests:
- Job tracking and single delivery of results
- Non-blocking receive of completed jobs only
- Waiting with timeout
- Dispose semantics
- run_work_items convenience function
"""

import threading
import time

import pytest

from vmsflow.core.config import PoolConfig, RunnerConfig, VmsFlowConfig
from vmsflow.core.types import WorkItem
from vmsflow.jobs.pool import PoolStatus, WorkerPool
from vmsflow.jobs.runner import LocalJobRunner, run_work_items
from vmsflow.utils.errors import RunnerDisposedError, ValidationError


def nap(seconds: float, value: int) -> int:
    time.sleep(seconds)
    return value


# =============================================================================
# Construction Tests
# =============================================================================


class TestRunnerConstruction:
    """Tests for runner construction."""

    def test_creates_pool(self) -> None:
        """Test that a pool is created with the given capacity."""
        with LocalJobRunner(max_workers=3, poll_interval=0.1) as runner:
            assert runner.capacity == 3
            assert runner.poll_interval == 0.1

    @pytest.mark.parametrize("interval", [0, -1.0])
    def test_invalid_poll_interval(self, interval: float) -> None:
        """Test that non-positive intervals are rejected."""
        with pytest.raises(ValidationError):
            LocalJobRunner(max_workers=1, poll_interval=interval)

    def test_shared_pool_left_running(self) -> None:
        """Test that dispose() leaves a caller-owned pool alone."""
        pool = WorkerPool(max_workers=2)
        runner = LocalJobRunner(pool, poll_interval=0.05)
        runner.dispose()

        assert pool.status == PoolStatus.RUNNING
        pool.shutdown()

    def test_from_config(self) -> None:
        """Test building a runner and its pool from configuration."""
        config = VmsFlowConfig(pool=PoolConfig(max_workers=2), runner=RunnerConfig(poll_interval=0.2))
        runner = LocalJobRunner.from_config(config)

        assert runner.capacity == 2
        assert runner.poll_interval == 0.2
        runner.dispose()
        assert runner.pool.status == PoolStatus.STOPPED

    def test_owned_pool_shut_down(self) -> None:
        """Test that dispose() stops a pool the runner created."""
        runner = LocalJobRunner(max_workers=1, poll_interval=0.05)
        runner.dispose()
        assert runner.pool.status == PoolStatus.STOPPED


# =============================================================================
# Job Tracking Tests
# =============================================================================


class TestJobTracking:
    """Tests for add_job / receive_jobs."""

    def test_add_callable_with_parameters(self, runner: LocalJobRunner) -> None:
        """Test wrapping a callable into a work item."""
        job = runner.add_job(nap, key="rec-1", seconds=0, value=7)
        runner.wait([job])

        results = runner.receive_jobs()
        assert [(r.key, r.output) for r in results] == [("rec-1", [7])]

    def test_add_work_item(self, runner: LocalJobRunner) -> None:
        """Test submitting a prepared work item."""
        job = runner.add_job(WorkItem.of(nap, key="k", seconds=0, value=1))
        assert job.key == "k"
        assert runner.pending_count == 1

    def test_work_item_with_extra_arguments(self, runner: LocalJobRunner) -> None:
        """Test that key/parameters cannot be combined with a WorkItem."""
        with pytest.raises(ValidationError):
            runner.add_job(WorkItem(lambda: 1), key="k")

    def test_receive_only_completed(self, runner: LocalJobRunner, gate: threading.Event) -> None:
        """Test that unfinished jobs stay tracked."""
        fast = runner.add_job(nap, key="fast", seconds=0, value=1)
        slow = runner.add_job(gate.wait)
        runner.wait([fast])

        results = runner.receive_jobs()
        assert [r.key for r in results] == ["fast"]
        assert runner.tracked_jobs == (slow,)
        assert runner.has_pending_jobs() is True

        gate.set()
        runner.wait()
        assert len(runner.receive_jobs()) == 1
        assert runner.has_pending_jobs() is False

    def test_results_delivered_once(self, runner: LocalJobRunner) -> None:
        """Test that receiving again returns nothing for retrieved jobs."""
        job = runner.add_job(nap, seconds=0, value=1)
        runner.wait()

        assert len(runner.receive_jobs([job])) == 1
        assert runner.receive_jobs([job]) == []
        assert runner.receive_jobs() == []

    def test_receive_subset(self, runner: LocalJobRunner) -> None:
        """Test receiving a chosen subset of jobs."""
        first = runner.add_job(nap, key="a", seconds=0, value=1)
        second = runner.add_job(nap, key="b", seconds=0, value=2)
        runner.wait()

        assert [r.key for r in runner.receive_jobs([second])] == ["b"]
        assert runner.tracked_jobs == (first,)

    def test_receive_ignores_foreign_jobs(self, runner: LocalJobRunner) -> None:
        """Test that jobs not tracked by this runner are skipped."""
        with LocalJobRunner(max_workers=1, poll_interval=0.02) as other:
            foreign = other.add_job(nap, seconds=0, value=1)
            other.wait()
            assert runner.receive_jobs([foreign]) == []
            assert len(other.receive_jobs()) == 1

    def test_failure_does_not_affect_others(self, runner: LocalJobRunner) -> None:
        """Test that a failing job is reported alongside successful ones."""

        def broken() -> None:
            raise ValueError("bad credentials")

        runner.add_job(broken, key="bad")
        runner.add_job(nap, key="good", seconds=0, value=1)
        runner.wait()

        results = {r.key: r for r in runner.receive_jobs()}
        assert results["good"].succeeded
        assert results["bad"].errors[0].message == "bad credentials"


# =============================================================================
# Waiting Tests
# =============================================================================


class TestWaiting:
    """Tests for wait() and iter_results()."""

    def test_wait_timeout(self, runner: LocalJobRunner, gate: threading.Event) -> None:
        """Test that wait() gives up after the timeout."""
        runner.add_job(gate.wait)

        started = time.monotonic()
        assert runner.wait(timeout=0.1) is False
        assert time.monotonic() - started < 1.0

    def test_wait_empty(self, runner: LocalJobRunner) -> None:
        """Test that waiting on nothing returns immediately."""
        assert runner.wait() is True

    def test_ten_items_on_two_workers(self) -> None:
        """Test that work is spread over the pool without extra threads."""
        with LocalJobRunner(max_workers=2, poll_interval=0.05) as runner:
            started = time.monotonic()
            for i in range(10):
                runner.add_job(nap, key=f"item-{i}", seconds=0.1, value=i)

            results = []
            while runner.has_pending_jobs():
                results.extend(runner.receive_jobs())
                time.sleep(0.05)
            elapsed = time.monotonic() - started
            stats = runner.stats

        assert sorted(r.output[0] for r in results) == list(range(10))
        assert 0.5 <= elapsed < 2.0
        assert stats.peak_active <= 2

    def test_wait_then_receive_with_default_interval(self) -> None:
        """Test wait() + receive_jobs() for 10 items on 2 workers."""
        with LocalJobRunner(max_workers=2) as runner:
            assert runner.poll_interval == 1.0
            started = time.monotonic()
            for i in range(10):
                runner.add_job(nap, key=f"item-{i}", seconds=0.1, value=i)

            assert runner.wait() is True
            elapsed = time.monotonic() - started
            results = runner.receive_jobs()

        assert len(results) == 10
        assert sorted(r.output[0] for r in results) == list(range(10))
        assert 0.5 <= elapsed < 2.0

    def test_wait_wakes_on_completion(self, gate: threading.Event) -> None:
        """Test that wait() returns soon after the last job, not on the next interval."""
        with LocalJobRunner(max_workers=1, poll_interval=5.0) as runner:
            job = runner.add_job(gate.wait)
            threading.Timer(0.05, gate.set).start()

            started = time.monotonic()
            assert runner.wait([job]) is True
            assert time.monotonic() - started < 1.0

    def test_wait_any(self, gate: threading.Event) -> None:
        """Test that wait_any() returns once one job of the set finishes."""
        with LocalJobRunner(max_workers=2, poll_interval=5.0) as runner:
            slow = runner.add_job(gate.wait)
            fast = runner.add_job(nap, seconds=0.05, value=1)

            started = time.monotonic()
            assert runner.wait_any([slow, fast]) is True
            assert time.monotonic() - started < 1.0
            assert fast.done() and not slow.done()
            assert runner.wait_any([slow], timeout=0.05) is False

    def test_wait_any_empty(self, runner: LocalJobRunner) -> None:
        """Test that an empty set counts as finished."""
        assert runner.wait_any([]) is True

    def test_iter_results(self, runner: LocalJobRunner) -> None:
        """Test that iter_results yields every result once."""
        for i in range(5):
            runner.add_job(nap, key=str(i), seconds=0.01, value=i)

        keys = sorted(result.key for result in runner.iter_results())
        assert keys == ["0", "1", "2", "3", "4"]
        assert runner.has_pending_jobs() is False


# =============================================================================
# Dispose Tests
# =============================================================================


class TestDispose:
    """Tests for dispose()."""

    def test_dispose_discards_tracking(self, gate: threading.Event) -> None:
        """Test that dispose() forgets unretrieved jobs."""
        runner = LocalJobRunner(max_workers=1, poll_interval=0.05)
        runner.add_job(gate.wait)
        runner.dispose()

        assert runner.has_pending_jobs() is False
        assert runner.receive_jobs() == []

    def test_add_after_dispose(self) -> None:
        """Test that a disposed runner refuses work."""
        runner = LocalJobRunner(max_workers=1, poll_interval=0.05)
        runner.dispose()

        with pytest.raises(RunnerDisposedError):
            runner.add_job(lambda: 1)

    def test_dispose_idempotent(self) -> None:
        """Test that disposing twice is harmless."""
        runner = LocalJobRunner(max_workers=1, poll_interval=0.05)
        runner.dispose()
        runner.dispose()


# =============================================================================
# Convenience Function Tests
# =============================================================================


class TestRunWorkItems:
    """Tests for run_work_items()."""

    def test_runs_everything(self) -> None:
        """Test that every item runs and reports a result."""
        items = [WorkItem.of(nap, key=f"host-{i}", seconds=0, value=i) for i in range(6)]
        results = run_work_items(items, max_workers=3, poll_interval=0.01)

        assert sorted(r.key for r in results) == sorted(item.key for item in items)
        assert all(r.succeeded for r in results)
