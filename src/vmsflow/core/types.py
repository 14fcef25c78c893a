"""
Core type definitions for vmsflow.

This module contains the Enums and Dataclasses shared by the worker pool,
the job runner, the remote task poller and the fan-out orchestrator.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from traceback import format_exception
from types import MappingProxyType
from typing import Any

from vmsflow.utils.errors import InvalidTaskHandleError, RemoteTaskError, ValidationError

# =============================================================================
# Enums
# =============================================================================


class JobState(str, Enum):
    """Lifecycle of a local job: submitted -> running -> completed -> retrieved."""

    SUBMITTED = "submitted"
    RUNNING = "running"
    COMPLETED = "completed"  # Finished, result not yet collected
    RETRIEVED = "retrieved"

    def __str__(self) -> str:
        return self.value


class TaskState(str, Enum):
    """State of a server-side task as reported by the status query."""

    PENDING = "Pending"
    IN_PROGRESS = "InProgress"
    SUCCESS = "Success"
    ERROR = "Error"
    COMPLETED = "Completed"

    def __str__(self) -> str:
        return self.value

    @property
    def is_terminal(self) -> bool:
        """Whether no further transition can occur."""
        return self in _TERMINAL_STATES

    @classmethod
    def parse(cls, value: str | TaskState) -> TaskState:
        """
        Parse a state name case-insensitively.

        Accepts the wire spelling ("InProgress"), the member name
        ("IN_PROGRESS") and spaced variants ("in progress").
        """
        if isinstance(value, cls):
            return value
        normalized = re.sub(r"[\s_-]", "", str(value)).casefold()
        for state in cls:
            if state.value.casefold() == normalized:
                return state
        raise ValidationError(f"Unknown task state: {value!r}", {"state": value})


_TERMINAL_STATES = frozenset({TaskState.SUCCESS, TaskState.ERROR, TaskState.COMPLETED})


class ErrorCategory(str, Enum):
    """Where an attributed error came from."""

    EXECUTION = "execution"  # Work item raised
    REMOTE_TASK = "remote_task"  # Task finished in Error state
    SUBMISSION = "submission"  # Starting the remote operation failed
    COMMUNICATION = "communication"  # Status query retries exhausted
    VALIDATION = "validation"  # Malformed input for that target
    CHECK = "check"  # A report check did not pass

    def __str__(self) -> str:
        return self.value


# =============================================================================
# Work Items and Jobs
# =============================================================================


@dataclass(frozen=True, eq=False)
class WorkItem:
    """
    A self-contained unit of work: a callable plus its parameters.

    Parameters are copied on construction and exposed read-only, so a
    submitted item cannot change under the worker executing it. Anything the
    action needs (clients, credentials, settings) travels as a parameter.

    Example:
        item = WorkItem.of(fetch_statistics, key="recorder-01", recorder=rec)
        item.run()  # fetch_statistics(recorder=rec)
    """

    action: Callable[..., Any]
    parameters: Mapping[str, Any] = field(default_factory=dict)
    key: str | None = None
    name: str | None = None

    def __post_init__(self) -> None:
        if not callable(self.action):
            raise ValidationError(
                "Work item action must be callable",
                {"action": repr(self.action)},
            )
        object.__setattr__(self, "parameters", MappingProxyType(dict(self.parameters)))
        if self.name is None:
            name = getattr(self.action, "__name__", type(self.action).__name__)
            object.__setattr__(self, "name", name)

    @classmethod
    def of(
        cls,
        action: Callable[..., Any],
        *,
        key: str | None = None,
        name: str | None = None,
        **parameters: Any,
    ) -> WorkItem:
        """Build a work item from keyword parameters."""
        return cls(action=action, parameters=parameters, key=key, name=name)

    def run(self) -> Any:
        """Invoke the action with the stored parameters."""
        return self.action(**self.parameters)

    def __repr__(self) -> str:
        return f"WorkItem(name={self.name!r}, key={self.key!r}, parameters={list(self.parameters)})"


@dataclass
class ErrorRecord:
    """
    Structured error attributed to a target.

    Attributes:
        message: Human readable error message
        error_type: Exception class name (or a remote error label)
        target: Entity key the error belongs to
        category: Error origin
        error_code: Remote error code, when one was reported
        traceback: Formatted traceback for execution errors
        timestamp: When the error was recorded
    """

    message: str
    error_type: str = "Error"
    target: str | None = None
    category: ErrorCategory = ErrorCategory.EXECUTION
    error_code: str | None = None
    traceback: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)

    @classmethod
    def from_exception(
        cls,
        error: BaseException,
        *,
        target: str | None = None,
        category: ErrorCategory = ErrorCategory.EXECUTION,
    ) -> ErrorRecord:
        """Capture an exception, including its traceback."""
        return cls(
            message=str(error) or type(error).__name__,
            error_type=type(error).__name__,
            target=target,
            category=category,
            error_code=getattr(error, "error_code", None),
            traceback="".join(format_exception(type(error), error, error.__traceback__)),
        )

    def with_target(self, target: str | None) -> ErrorRecord:
        """Copy of this record attributed to another target."""
        return replace(self, target=target)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "message": self.message,
            "error_type": self.error_type,
            "target": self.target,
            "category": self.category.value,
            "error_code": self.error_code,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class JobResult:
    """
    Result of one job, produced once when the job is retrieved.

    Attributes:
        job_id: Identifier of the job that produced this result
        key: Entity key copied from the work item
        output: Values emitted by the work item (possibly empty)
        errors: Errors raised or emitted during execution
        started_at: When a worker picked the job up
        finished_at: When execution ended
    """

    job_id: str
    key: str | None = None
    output: list[Any] = field(default_factory=list)
    errors: list[ErrorRecord] = field(default_factory=list)
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def succeeded(self) -> bool:
        return not self.errors

    @property
    def duration(self) -> float:
        """Execution time in seconds (0.0 if the job never ran)."""
        if self.started_at is None or self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "key": self.key,
            "output": list(self.output),
            "errors": [error.to_dict() for error in self.errors],
            "succeeded": self.succeeded,
            "duration": round(self.duration, 3),
        }


# =============================================================================
# Remote Tasks
# =============================================================================

_HANDLE_PATTERN = re.compile(r"(?P<type_name>[A-Za-z_][A-Za-z0-9_]*)\[(?P<number>[1-9][0-9]*)\]")


@dataclass(frozen=True)
class RemoteTaskHandle:
    """
    Address of a server-side task, rendered as `TypeName[n]`.

    Example:
        handle = RemoteTaskHandle.parse("Task[42]")
        handle.type_name  # "Task"
        handle.number  # 42
    """

    type_name: str
    number: int

    def __post_init__(self) -> None:
        if not _HANDLE_PATTERN.fullmatch(f"{self.type_name}[{self.number}]"):
            raise InvalidTaskHandleError([f"{self.type_name}[{self.number}]"])

    @property
    def path(self) -> str:
        return f"{self.type_name}[{self.number}]"

    def __str__(self) -> str:
        return self.path

    @classmethod
    def parse(cls, value: str | RemoteTaskHandle) -> RemoteTaskHandle:
        """
        Parse a handle string.

        Raises:
            InvalidTaskHandleError: If value does not match `TypeName[n]`
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise InvalidTaskHandleError([repr(value)])
        match = _HANDLE_PATTERN.fullmatch(value)
        if match is None:
            raise InvalidTaskHandleError([value])
        return cls(type_name=match["type_name"], number=int(match["number"]))

    @classmethod
    def is_valid(cls, value: object) -> bool:
        if isinstance(value, cls):
            return True
        return isinstance(value, str) and _HANDLE_PATTERN.fullmatch(value) is not None


@dataclass
class TaskStatus:
    """
    One status snapshot of a remote task.

    Attributes:
        handle: Task the snapshot belongs to
        state: Reported state
        progress_percent: Progress 0-100 (out-of-range values are clamped)
        display_name: Human readable task description
        error_code: Remote error code for failed tasks
        error_text: Remote error message for failed tasks
    """

    handle: RemoteTaskHandle
    state: TaskState
    progress_percent: int = 0
    display_name: str = ""
    error_code: str | None = None
    error_text: str | None = None

    def __post_init__(self) -> None:
        self.handle = RemoteTaskHandle.parse(self.handle)
        self.state = TaskState.parse(self.state)
        raw = self.progress_percent if self.progress_percent is not None else 0
        try:
            number = float(raw)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Progress percent must be an integer, got {raw!r}") from e
        if not number.is_integer():
            raise ValidationError(f"Progress percent must be an integer, got {raw!r}")
        self.progress_percent = max(0, min(100, int(number)))

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def failed(self) -> bool:
        return self.state == TaskState.ERROR


@dataclass
class TaskOutcome:
    """
    Final result for one remote task handle.

    Attributes:
        handle: The polled task
        status: Terminal status snapshot
        polls: Number of status snapshots taken for this handle
    """

    handle: RemoteTaskHandle
    status: TaskStatus
    polls: int = 1

    @property
    def succeeded(self) -> bool:
        return not self.status.failed

    @property
    def error(self) -> ErrorRecord | None:
        """Error record for tasks that ended in the Error state."""
        if not self.status.failed:
            return None
        message = self.status.error_text or f"Remote task {self.handle.path} failed"
        return ErrorRecord(
            message=message,
            error_type="RemoteTaskError",
            target=self.handle.path,
            category=ErrorCategory.REMOTE_TASK,
            error_code=self.status.error_code,
        )

    def raise_for_error(self) -> None:
        """Raise RemoteTaskError if the task ended in the Error state."""
        if self.status.failed:
            raise RemoteTaskError(self.handle.path, self.status.error_text, self.status.error_code)

    def to_dict(self) -> dict[str, Any]:
        return {
            "task": self.handle.path,
            "state": self.status.state.value,
            "display_name": self.status.display_name,
            "progress_percent": self.status.progress_percent,
            "error_code": self.status.error_code,
            "error_text": self.status.error_text,
            "polls": self.polls,
        }


@dataclass(frozen=True)
class ProgressEstimate:
    """
    Progress snapshot of a polling batch, recomputed every poll cycle.

    Attributes:
        elapsed: Seconds since polling started
        remaining: Estimated seconds left, or None when no estimate is possible
        completed: Tasks that reached a terminal state
        total: Tasks in the batch
    """

    elapsed: float
    remaining: float | None
    completed: int
    total: int

    @property
    def percent_complete(self) -> float:
        if self.total == 0:
            return 100.0
        return self.completed / self.total * 100.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "elapsed": round(self.elapsed, 2),
            "remaining": round(self.remaining, 2) if self.remaining is not None else None,
            "completed": self.completed,
            "total": self.total,
            "percent_complete": round(self.percent_complete, 1),
        }


__all__ = [
    "JobState",
    "TaskState",
    "ErrorCategory",
    "WorkItem",
    "ErrorRecord",
    "JobResult",
    "RemoteTaskHandle",
    "TaskStatus",
    "TaskOutcome",
    "ProgressEstimate",
]
