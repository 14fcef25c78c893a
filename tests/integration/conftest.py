"""
Integration test fixtures for vmsflow.

Provides a fleet of simulated recorders and orchestrators wired to the
fake server from the top-level conftest.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

import pytest

from vmsflow.core.config import FanOutConfig
from vmsflow.core.types import ErrorRecord
from vmsflow.jobs.runner import LocalJobRunner
from vmsflow.orchestration.fanout import FanOutOrchestrator

# =============================================================================
# Simulated Recorders
# =============================================================================


@dataclass(frozen=True)
class Recorder:
    """Recording server as seen by an audit."""

    name: str
    online: bool = True
    free_space_mb: int = 100_000
    license_expiry: str = "12/31/2099"
    cameras: int = 2


def query_recorder(target: Recorder, delay: float = 0.0) -> list[Any]:
    """Return one row per camera, or fail like an unreachable recorder."""
    time.sleep(delay)
    if not target.online:
        raise ConnectionRefusedError(f"{target.name} is unreachable")

    rows: list[Any] = [
        {
            "Recorder": target.name,
            "Camera": f"{target.name}-cam-{index}",
            "Enabled": True,
            "FreeSpaceMB": target.free_space_mb,
            "LicenseExpiry": target.license_expiry,
        }
        for index in range(target.cameras)
    ]
    if target.cameras == 0:
        rows.append(ErrorRecord(message="No cameras configured", error_type="EmptyRecorder"))
    return rows


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def recorders() -> list[Recorder]:
    return [
        Recorder("rec-01"),
        Recorder("rec-02", online=False),
        Recorder("rec-03", free_space_mb=512),
        Recorder("rec-04", license_expiry="1/1/2020"),
        Recorder("rec-05", cameras=0),
    ]


@pytest.fixture
def orchestrator():
    runner = LocalJobRunner(max_workers=3, poll_interval=0.01)
    with FanOutOrchestrator(runner=runner) as instance:
        yield instance
    runner.dispose()


@pytest.fixture
def make_orchestrator():
    """Factory for orchestrators; closes everything it creates."""
    created: list[tuple[FanOutOrchestrator, LocalJobRunner]] = []

    def factory(poller=None, max_workers: int = 3, max_in_flight: int | None = None):
        runner = LocalJobRunner(max_workers=max_workers, poll_interval=0.01)
        instance = FanOutOrchestrator(
            runner=runner,
            poller=poller,
            config=FanOutConfig(max_in_flight=max_in_flight),
        )
        created.append((instance, runner))
        return instance

    yield factory
    for instance, runner in created:
        instance.close()
        runner.dispose()
