"""
Unit tests for RemoteTaskPoller.

Tests:
- Eager handle validation
- Round-robin polling and lazy results
- Retry with reconnect on transient failures
- Fatal errors
- Cleanup of finished tasks
- Progress estimation
"""

from unittest.mock import MagicMock

import pytest

from vmsflow.core.config import PollerConfig
from vmsflow.core.types import TaskState, TaskStatus
from vmsflow.remote.client import RemoteTaskClient
from vmsflow.remote.poller import RemoteTaskPoller
from vmsflow.utils.errors import (
    InvalidTaskHandleError,
    PollRetryExhaustedError,
    TaskCleanupError,
    TransientCommunicationError,
)


class StepClock:
    """Monotonic clock that advances a fixed step per reading."""

    def __init__(self, step: float = 10.0):
        self.step = step
        self.now = -step

    def __call__(self) -> float:
        self.now += self.step
        return self.now


# =============================================================================
# Validation Tests
# =============================================================================


class TestValidation:
    """Tests for handle validation."""

    def test_malformed_handle_raises_before_polling(self, make_server, make_poller) -> None:
        """Test that validation happens at call time, not on iteration."""
        server = make_server({"Task[1]": ["Success"]})
        poller = make_poller(server)

        with pytest.raises(InvalidTaskHandleError) as exc_info:
            poller.poll(["Task[1]", "Task(2)", "Task[0]"])

        assert exc_info.value.handles == ["Task(2)", "Task[0]"]
        assert server.queries == []
        assert server.connections == 0

    def test_skip_invalid(self, make_server, make_poller) -> None:
        """Test that malformed handles can be dropped instead."""
        server = make_server({"Task[1]": ["Success"]})
        poller = make_poller(server, skip_invalid=True)

        outcomes = poller.wait_all(["Task[1]", "garbage"])
        assert [o.handle.path for o in outcomes] == ["Task[1]"]

    def test_empty_input(self, make_server, make_poller, reporter) -> None:
        """Test that an empty batch returns at once without connecting."""
        server = make_server({})
        poller = make_poller(server, reporter=reporter)

        assert poller.wait_all([]) == []
        assert server.connections == 0
        assert reporter.started == []


# =============================================================================
# Polling Loop Tests
# =============================================================================


class TestPolling:
    """Tests for the polling loop."""

    def test_round_robin_order(self, make_server, make_poller, sleeps) -> None:
        """Test FIFO polling with re-queue of unfinished tasks."""
        server = make_server(
            {
                "Task[1]": ["InProgress", "Success"],
                "Task[2]": ["Success"],
            }
        )
        outcomes = make_poller(server).wait_all(["Task[1]", "Task[2]"])

        assert server.queries == ["Task[1]", "Task[2]", "Task[1]"]
        assert [o.handle.path for o in outcomes] == ["Task[2]", "Task[1]"]
        assert [o.polls for o in outcomes] == [1, 2]
        assert sleeps == [0.5, 0.5, 0.5]

    def test_single_channel_reused(self, make_server, make_poller) -> None:
        """Test that one connection serves every query."""
        server = make_server({"Task[1]": ["Pending", "InProgress", "Success"]})
        poller = make_poller(server)
        poller.wait_all(["Task[1]"])

        assert server.connections == 1
        assert server.closed == 1
        assert poller.queries == 3

    def test_error_state_is_an_outcome(self, make_server, make_poller) -> None:
        """Test that tasks ending in Error are yielded, not raised."""
        server = make_server({"Task[1]": ["InProgress", "Error"], "Task[2]": ["Completed"]})
        outcomes = {o.handle.path: o for o in make_poller(server).wait_all(["Task[1]", "Task[2]"])}

        failed = outcomes["Task[1]"]
        assert failed.succeeded is False
        assert failed.status.state is TaskState.ERROR
        assert failed.error.error_code == "E42"
        assert outcomes["Task[2]"].succeeded is True

    def test_duplicate_handles(self, make_server, make_poller) -> None:
        """Test that each occurrence of a handle yields its own outcome."""
        server = make_server({"Task[5]": ["Success"]})
        outcomes = make_poller(server).wait_all(["Task[5]", "Task[5]"])

        assert [o.handle.path for o in outcomes] == ["Task[5]", "Task[5]"]
        assert server.queries == ["Task[5]", "Task[5]"]

    def test_results_are_lazy(self, make_server, make_poller) -> None:
        """Test that finished tasks are yielded before a later fatal error."""
        server = make_server(
            {
                "Task[1]": ["Success"],
                "Task[2]": ["InProgress", "InProgress", "Success"],
                "Task[3]": ["InProgress", "InProgress", ConnectionError("server down")],
            }
        )
        poller = make_poller(server, max_attempts=2)
        outcomes = poller.poll(["Task[1]", "Task[2]", "Task[3]"])

        assert server.queries == []
        assert next(outcomes).handle.path == "Task[1]"
        assert next(outcomes).handle.path == "Task[2]"
        with pytest.raises(PollRetryExhaustedError) as exc_info:
            next(outcomes)

        assert exc_info.value.task_path == "Task[3]"
        assert server.queries == [
            "Task[1]",
            "Task[2]",
            "Task[3]",
            "Task[2]",
            "Task[3]",
            "Task[2]",
            "Task[3]",
            "Task[3]",
        ]

    def test_close_failure_is_not_fatal(self) -> None:
        """Test that an error while closing the channel is only logged."""
        client = MagicMock(spec=RemoteTaskClient)
        client.get_status.side_effect = lambda handle: TaskStatus(handle, TaskState.SUCCESS, 100)
        client.close.side_effect = OSError("socket already closed")
        poller = RemoteTaskPoller(lambda: client, PollerConfig(poll_interval=0), sleep=lambda s: None)

        outcomes = poller.wait_all(["Task[1]"])

        assert outcomes[0].succeeded
        client.close.assert_called_once()

    def test_closing_early_releases_channel(self, make_server, make_poller) -> None:
        """Test that abandoning the iteration closes the connection."""
        server = make_server({"Task[1]": ["Success"], "Task[2]": ["InProgress"]})
        outcomes = make_poller(server).poll(["Task[1]", "Task[2]"])

        next(outcomes)
        outcomes.close()
        assert server.closed == 1


# =============================================================================
# Retry Tests
# =============================================================================


class TestRetry:
    """Tests for transient failure handling."""

    def test_reconnect_after_transient_failure(self, make_server, make_poller, sleeps) -> None:
        """Test that a failed query reconnects and succeeds."""
        server = make_server({"Task[1]": [TransientCommunicationError("reset"), "Success"]})
        poller = make_poller(server)

        outcomes = poller.wait_all(["Task[1]"])

        assert outcomes[0].succeeded
        assert server.connections == 2
        assert server.closed == 2
        assert sleeps == [0.5, 1.0]

    def test_four_failures_then_success(self, make_server, make_poller) -> None:
        """Test that max_attempts counts every attempt."""
        server = make_server({"Task[1]": [TimeoutError("slow")] * 4 + ["Success"]})
        poller = make_poller(server, max_attempts=5)

        outcomes = poller.wait_all(["Task[1]"])

        assert outcomes[0].succeeded
        assert poller.queries == 5
        assert poller.connections == 5

    def test_retries_exhausted(self, make_server, make_poller, sleeps) -> None:
        """Test that persistent failures abort the poll."""
        server = make_server({"Task[1]": [ConnectionResetError("reset")]})
        poller = make_poller(server, max_attempts=5)

        with pytest.raises(PollRetryExhaustedError) as exc_info:
            poller.wait_all(["Task[1]"])

        error = exc_info.value
        assert error.attempts == 5
        assert isinstance(error.cause, ConnectionResetError)
        assert len(server.queries) == 5
        assert sleeps == [0.5, 1.0, 1.0, 1.0, 1.0]

    def test_other_errors_not_retried(self, make_server, make_poller) -> None:
        """Test that non-transient errors propagate immediately."""
        server = make_server({"Task[1]": [PermissionError("access denied")]})
        poller = make_poller(server)

        with pytest.raises(PermissionError):
            poller.wait_all(["Task[1]"])
        assert len(server.queries) == 1

    def test_custom_transient_errors(self, make_server, sleeps) -> None:
        """Test extending the set of retried exceptions."""
        server = make_server({"Task[1]": [KeyError("stale session"), "Success"]})
        poller = RemoteTaskPoller(
            server.connect,
            PollerConfig(poll_interval=0, retry_delay=0),
            transient_errors=(KeyError,),
            sleep=sleeps.append,
        )

        assert poller.wait_all(["Task[1]"])[0].succeeded
        assert server.connections == 2


# =============================================================================
# Cleanup Tests
# =============================================================================


class TestCleanup:
    """Tests for cleanup of finished tasks."""

    def test_cleanup_supported_types_only(self, make_server, make_poller) -> None:
        """Test that unsupported task types are skipped silently."""
        server = make_server({"Task[1]": ["Success"], "HardwareScan[2]": ["Success"]})
        make_poller(server).wait_all(["Task[1]", "HardwareScan[2]"], cleanup=True)

        assert server.cleaned == ["Task[1]"]

    def test_cleanup_before_yield(self, make_server, make_poller) -> None:
        """Test that a task is cleaned up before its outcome is delivered."""
        server = make_server({"Task[1]": ["Error"]})
        outcomes = make_poller(server, cleanup=True).poll(["Task[1]"])

        assert next(outcomes).succeeded is False
        assert server.cleaned == ["Task[1]"]

    def test_cleanup_off_by_default(self, make_server, make_poller) -> None:
        """Test that nothing is cleaned up unless requested."""
        server = make_server({"Task[1]": ["Success"]})
        make_poller(server).wait_all(["Task[1]"])

        assert server.cleaned == []

    def test_cleanup_failure_raises(self, make_server, make_poller) -> None:
        """Test that a failing cleanup call aborts the poll."""
        server = make_server({"Task[1]": ["Success"]}, failing_cleanup=("Task[1]",))

        with pytest.raises(TaskCleanupError) as exc_info:
            make_poller(server).wait_all(["Task[1]"], cleanup=True)

        assert exc_info.value.task_path == "Task[1]"
        assert isinstance(exc_info.value.cause, RuntimeError)


# =============================================================================
# Progress Tests
# =============================================================================


class TestProgress:
    """Tests for per-cycle progress estimates."""

    def test_estimate_from_finished_tasks(self, make_server, make_poller, reporter) -> None:
        """Test the average-time estimate once tasks finish."""
        server = make_server({"Task[1]": ["Success"], "Task[2]": [("InProgress", 50), "Success"]})
        poller = make_poller(server, reporter=reporter, clock=StepClock(10.0))

        poller.wait_all(["Task[1]", "Task[2]"])

        estimates = [estimate for estimate, _ in reporter.updates]
        assert [e.elapsed for e in estimates] == [10.0, 20.0, 30.0]
        assert [e.remaining for e in estimates] == [10.0, 20.0, 0.0]
        assert [e.completed for e in estimates] == [1, 1, 2]
        assert reporter.started == [2]
        assert reporter.finished == [estimates[-1]]

    def test_estimate_from_head_percent(self, make_server, make_poller, reporter) -> None:
        """Test the percent-based estimate before anything finished."""
        server = make_server({"Task[1]": [("InProgress", 25), ("Pending", 0), "Success"]})
        poller = make_poller(server, reporter=reporter, clock=StepClock(10.0))

        poller.wait_all(["Task[1]"])

        remaining = [estimate.remaining for estimate, _ in reporter.updates]
        assert remaining == [30.0, None, 0.0]

    def test_statuses_reported(self, make_server, make_poller, reporter) -> None:
        """Test that every status snapshot reaches the reporter."""
        server = make_server({"Task[1]": ["InProgress", "Success"]})
        make_poller(server, reporter=reporter).wait_all(["Task[1]"])

        states = [status.state for _, status in reporter.updates]
        assert states == [TaskState.IN_PROGRESS, TaskState.SUCCESS]
