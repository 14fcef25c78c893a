#!/usr/bin/env python
"""
Remote Task Polling Example.

Starts a hardware scan per device on a simulated management server and
follows the server-side tasks to completion:
- A RemoteTaskClient implementation with an occasional dropped connection
- Reconnect-and-retry on transient failures
- Live progress bar with an ETA
- Cleanup of finished tasks
- Remote fan-out that attributes each task's result to its device

Prerequisites:
    - Install vmsflow: pip install -e .

Run:
    python examples/02_remote_tasks.py
"""

import itertools
import random
import sys
from pathlib import Path

# Add parent to path for development
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from vmsflow import FanOutOrchestrator, RemoteTaskClient, RemoteTaskPoller, TaskStatus
from vmsflow.core.config import PollerConfig
from vmsflow.core.types import RemoteTaskHandle
from vmsflow.remote.progress import RichProgressReporter
from vmsflow.utils.errors import TransientCommunicationError

# =============================================================================
# Simulated Management Server
# =============================================================================


class SimulatedServer:
    """Holds scan tasks whose progress advances each time they are read."""

    def __init__(self) -> None:
        self._numbers = itertools.count(1)
        self.progress: dict[str, int] = {}

    def start_scan(self, device: str) -> str:
        path = f"Task[{next(self._numbers)}]"
        self.progress[path] = 0
        return path

    def advance(self, path: str) -> int:
        self.progress[path] = min(100, self.progress[path] + random.randint(10, 40))
        return self.progress[path]


class SimulatedTaskClient(RemoteTaskClient):
    """Client for SimulatedServer; drops the connection now and then."""

    def __init__(self, server: SimulatedServer) -> None:
        self._server = server

    def get_status(self, handle: RemoteTaskHandle) -> TaskStatus:
        if random.random() < 0.1:
            raise TransientCommunicationError("Connection reset by peer")

        percent = self._server.advance(handle.path)
        if percent < 100:
            return TaskStatus(handle, "InProgress", percent, display_name=f"Scan {handle.path}")
        if handle.number % 5 == 0:
            return TaskStatus(
                handle,
                "Error",
                100,
                display_name=f"Scan {handle.path}",
                error_code="0x80004005",
                error_text="Device did not respond to discovery",
            )
        return TaskStatus(handle, "Success", 100, display_name=f"Scan {handle.path}")

    def supports_cleanup(self, handle: RemoteTaskHandle) -> bool:
        return handle.type_name == "Task"

    def cleanup(self, handle: RemoteTaskHandle) -> None:
        self._server.progress.pop(handle.path, None)


# =============================================================================
# Examples
# =============================================================================


def main() -> None:
    server = SimulatedServer()
    devices = [f"camera-{index:02d}" for index in range(1, 11)]

    poller = RemoteTaskPoller(
        connect=lambda: SimulatedTaskClient(server),
        config=PollerConfig(poll_interval=0.1, retry_delay=0.2, max_attempts=5),
        reporter=RichProgressReporter(description="Hardware scan"),
    )

    with poller, FanOutOrchestrator(poller=poller) as orchestrator:
        report = orchestrator.run_remote(
            devices,
            server.start_scan,
            cleanup=True,
            name="hardware-scan",
        )

    for key in report:
        outcome = report[key]
        if outcome.passed:
            print(f"{key}: {outcome.task_path} finished")
        else:
            print(f"{key}: {outcome.task_path} failed ({outcome.errors[0].message})")

    print(report.summary())
    print(f"Tasks left on server: {len(server.progress)}")


if __name__ == "__main__":
    main()
