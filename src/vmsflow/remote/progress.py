"""
Progress and ETA reporting for remote task polling.

The estimate is recomputed on every poll cycle:
- once at least one task has finished, remaining time is the outstanding
  task count times the average time per finished task
- before that, the progress percent of the task at the head of the queue
  is extrapolated
- otherwise there is no estimate
"""

from __future__ import annotations

from typing import Any

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

from vmsflow.core.types import ProgressEstimate, TaskStatus
from vmsflow.utils.logging import PollerLogger


def estimate_remaining(
    elapsed: float,
    total: int,
    completed: int,
    head_percent: int | None = None,
) -> float | None:
    """
    Estimate the seconds left in a polling batch.

    Args:
        elapsed: Seconds since polling started
        total: Tasks in the batch
        completed: Tasks that reached a terminal state
        head_percent: Progress percent reported by the task just polled

    Returns:
        Estimated seconds remaining, or None when no estimate is possible

    Example:
        estimate_remaining(elapsed=30.0, total=4, completed=1)  # 90.0
        estimate_remaining(elapsed=10.0, total=1, completed=0, head_percent=25)  # 30.0
    """
    outstanding = total - completed
    if outstanding <= 0:
        return 0.0
    if completed > 0:
        return outstanding * (elapsed / completed)
    if head_percent is not None and head_percent > 0:
        return (100 - head_percent) * (elapsed / head_percent)
    return None


def format_duration(seconds: float | None) -> str:
    """Render seconds as H:MM:SS, or "--:--:--" when unknown."""
    if seconds is None:
        return "--:--:--"
    total = int(round(seconds))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours}:{minutes:02d}:{secs:02d}"


# =============================================================================
# Reporters
# =============================================================================


class ProgressReporter:
    """
    Receives progress updates from the poller.

    The base class ignores every update; subclasses override what they need.
    """

    def start(self, total: int) -> None:
        pass

    def update(self, estimate: ProgressEstimate, status: TaskStatus | None = None) -> None:
        pass

    def finish(self, estimate: ProgressEstimate) -> None:
        pass


class LoggingProgressReporter(ProgressReporter):
    """Writes each estimate to the structured log."""

    def __init__(self) -> None:
        self._logger = PollerLogger("progress")

    def start(self, total: int) -> None:
        self._logger.info("Polling started", total=total)

    def update(self, estimate: ProgressEstimate, status: TaskStatus | None = None) -> None:
        self._logger.log_estimate(
            completed=estimate.completed,
            total=estimate.total,
            elapsed_seconds=estimate.elapsed,
            remaining_seconds=estimate.remaining,
        )

    def finish(self, estimate: ProgressEstimate) -> None:
        self._logger.info(
            "Polling finished",
            completed=estimate.completed,
            total=estimate.total,
            elapsed_seconds=round(estimate.elapsed, 2),
        )


class RichProgressReporter(ProgressReporter):
    """
    Console progress bar with the poller's own ETA.

    Example:
        reporter = RichProgressReporter(description="Hardware scan")
        outcomes = list(poller.poll(handles))  # with reporter=reporter
    """

    def __init__(
        self,
        description: str = "Waiting for remote tasks",
        console: Console | None = None,
        transient: bool = False,
    ) -> None:
        self.description = description
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            TextColumn("ETA {task.fields[eta]}"),
            TextColumn("[dim]{task.fields[current]}"),
            console=console,
            transient=transient,
        )
        self._task_id: TaskID | None = None

    def start(self, total: int) -> None:
        self._progress.start()
        self._task_id = self._progress.add_task(
            self.description,
            total=total,
            eta=format_duration(None),
            current="",
        )

    def update(self, estimate: ProgressEstimate, status: TaskStatus | None = None) -> None:
        if self._task_id is None:
            return
        fields: dict[str, Any] = {"eta": format_duration(estimate.remaining)}
        if status is not None:
            label = status.display_name or status.handle.path
            fields["current"] = f"{label} {status.state.value} {status.progress_percent}%"
        self._progress.update(self._task_id, completed=estimate.completed, **fields)

    def finish(self, estimate: ProgressEstimate) -> None:
        if self._task_id is not None:
            self._progress.update(
                self._task_id,
                completed=estimate.completed,
                eta=format_duration(0.0),
                current="",
            )
        self._progress.stop()
        self._task_id = None


__all__ = [
    "estimate_remaining",
    "format_duration",
    "ProgressReporter",
    "LoggingProgressReporter",
    "RichProgressReporter",
]
