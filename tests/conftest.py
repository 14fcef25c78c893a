"""
Pytest configuration and fixtures for vmsflow tests.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any

import pytest

from vmsflow.core.config import PollerConfig
from vmsflow.core.types import RemoteTaskHandle, TaskState, TaskStatus
from vmsflow.jobs.runner import LocalJobRunner
from vmsflow.remote.client import RemoteTaskClient
from vmsflow.remote.poller import RemoteTaskPoller
from vmsflow.remote.progress import ProgressReporter

# =============================================================================
# Fake Remote Server
# =============================================================================


class FakeServer:
    """
    In-memory stand-in for a management server.

    Each task path maps to a script of steps. A step is a TaskState (or
    state name), a (state, percent) tuple, a TaskStatus, or an exception to
    raise. The last step repeats once the script runs out.
    """

    def __init__(
        self,
        scripts: dict[str, list[Any]],
        cleanup_types: tuple[str, ...] = ("Task",),
        failing_cleanup: tuple[str, ...] = (),
    ):
        self.scripts = {path: list(steps) for path, steps in scripts.items()}
        self.cleanup_types = cleanup_types
        self.failing_cleanup = failing_cleanup
        self.queries: list[str] = []
        self.cleaned: list[str] = []
        self.connections = 0
        self.closed = 0

    def connect(self) -> RemoteTaskClient:
        self.connections += 1
        return FakeServerClient(self)

    def next_status(self, handle: RemoteTaskHandle) -> TaskStatus:
        self.queries.append(handle.path)
        steps = self.scripts[handle.path]
        step = steps.pop(0) if len(steps) > 1 else steps[0]

        if isinstance(step, BaseException):
            raise step
        if isinstance(step, TaskStatus):
            return step
        state, percent = step if isinstance(step, tuple) else (step, 0)
        state = TaskState.parse(state)
        return TaskStatus(
            handle=handle,
            state=state,
            progress_percent=100 if state.is_terminal else percent,
            display_name=f"Scan {handle.number}",
            error_code="E42" if state == TaskState.ERROR else None,
            error_text="Device unreachable" if state == TaskState.ERROR else None,
        )


class FakeServerClient(RemoteTaskClient):
    """One channel to a FakeServer."""

    def __init__(self, server: FakeServer):
        self.server = server

    def get_status(self, handle: RemoteTaskHandle) -> TaskStatus:
        return self.server.next_status(handle)

    def supports_cleanup(self, handle: RemoteTaskHandle) -> bool:
        return handle.type_name in self.server.cleanup_types

    def cleanup(self, handle: RemoteTaskHandle) -> None:
        if handle.path in self.server.failing_cleanup:
            raise RuntimeError(f"cannot delete {handle.path}")
        self.server.cleaned.append(handle.path)

    def close(self) -> None:
        self.server.closed += 1


class RecordingReporter(ProgressReporter):
    """Keeps every progress callback for assertions."""

    def __init__(self) -> None:
        self.started: list[int] = []
        self.updates: list[Any] = []
        self.finished: list[Any] = []

    def start(self, total: int) -> None:
        self.started.append(total)

    def update(self, estimate, status=None) -> None:
        self.updates.append((estimate, status))

    def finish(self, estimate) -> None:
        self.finished.append(estimate)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def make_server() -> Callable[..., FakeServer]:
    """Factory for scripted fake servers."""
    return FakeServer


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture
def sleeps() -> list[float]:
    """Durations the poller asked to sleep, in order."""
    return []


@pytest.fixture
def make_poller(sleeps: list[float]) -> Callable[..., RemoteTaskPoller]:
    """Factory for pollers that never actually sleep."""

    def factory(
        server: FakeServer,
        reporter: ProgressReporter | None = None,
        clock: Callable[[], float] | None = None,
        **overrides: Any,
    ) -> RemoteTaskPoller:
        config = PollerConfig(**{"poll_interval": 0.5, "retry_delay": 1.0, **overrides})
        kwargs: dict[str, Any] = {"reporter": reporter, "sleep": sleeps.append}
        if clock is not None:
            kwargs["clock"] = clock
        return RemoteTaskPoller(server.connect, config, **kwargs)

    return factory


@pytest.fixture
def runner():
    """Runner with a small pool and a short polling interval."""
    job_runner = LocalJobRunner(max_workers=4, poll_interval=0.02)
    yield job_runner
    job_runner.dispose()


@pytest.fixture
def gate():
    """Event that blocking work items wait on; released on teardown."""
    event = threading.Event()
    yield event
    event.set()
