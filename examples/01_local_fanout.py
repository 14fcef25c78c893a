#!/usr/bin/env python
"""
Local Fan-out Example.

Audits a fleet of simulated recording servers in parallel:
- One work item per recorder on a bounded worker pool
- Per-recorder failures recorded without stopping the others
- Column checks (expected values, minimum free space, license expiry)
- Per-counter statistics series built from the same fan-out

Prerequisites:
    - Install vmsflow: pip install -e .

Run:
    python examples/01_local_fanout.py
"""

import random
import sys
import time
from datetime import datetime, timedelta
from pathlib import Path

# Add parent to path for development
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from rich.console import Console
from rich.table import Table

from vmsflow import FanOutOrchestrator, LocalJobRunner
from vmsflow.orchestration.statistics import collect_statistics

console = Console()

# =============================================================================
# Simulated Recorders
# =============================================================================

RECORDERS = [f"recorder-{index:02d}" for index in range(1, 9)]
UNREACHABLE = {"recorder-05"}


def read_storage(target: str) -> list[dict]:
    """Pretend to query storage and license info from one recorder."""
    time.sleep(random.uniform(0.1, 0.4))
    if target in UNREACHABLE:
        raise ConnectionRefusedError(f"{target} did not answer on port 7563")

    return [
        {
            "Recorder": target,
            "Storage": "Local default",
            "Enabled": True,
            "FreeSpaceMB": random.choice([512, 40_000, 250_000]),
            "LicenseExpiry": random.choice(["12/31/2030", "1/15/2021"]),
        }
    ]


def read_statistics(target: str, samples: int = 4) -> list[dict]:
    """Pretend to read CPU samples from one recorder."""
    time.sleep(0.1)
    start = datetime(2024, 1, 1, 12, 0)
    return [
        {
            "Path": "CPU",
            "TimeStamp": (start + timedelta(minutes=minute)).isoformat(),
            "Value": round(random.uniform(5, 95), 1),
            "Max": 100,
        }
        for minute in range(samples)
    ]


# =============================================================================
# Examples
# =============================================================================


def storage_audit(orchestrator: FanOutOrchestrator) -> None:
    """Run the storage audit and print a pass/fail table."""
    console.print("\n[bold]Storage audit[/bold]")

    report = orchestrator.run_local(
        RECORDERS,
        read_storage,
        checks={
            "Enabled": True,
            "FreeSpaceMB": "isLessThan1024",
            "LicenseExpiry": "isPassDate",
        },
        name="storage-audit",
    )

    table = Table("Recorder", "Result", "Details")
    for key in report:
        outcome = report[key]
        details = "; ".join(error.message for error in outcome.errors) or "-"
        result = "[green]pass[/green]" if outcome.passed else "[red]fail[/red]"
        table.add_row(key, result, details)
    console.print(table)
    console.print(report.summary())


def cpu_statistics(orchestrator: FanOutOrchestrator) -> None:
    """Collect CPU series from every recorder."""
    console.print("\n[bold]CPU statistics[/bold]")

    report = orchestrator.run_local(
        RECORDERS,
        read_statistics,
        parameters={"samples": 6},
        name="statistics",
    )
    for key, series in sorted(collect_statistics(report).get("CPU", {}).items()):
        console.print(f"{key}: latest={series.latest}% peak={series.peak}%")


def main() -> None:
    with LocalJobRunner(max_workers=4) as runner, FanOutOrchestrator(runner=runner) as orchestrator:
        storage_audit(orchestrator)
        cpu_statistics(orchestrator)


if __name__ == "__main__":
    main()
