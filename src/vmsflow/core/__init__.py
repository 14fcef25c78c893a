"""Core types and configuration shared by every vmsflow component."""

from vmsflow.core.config import (
    FanOutConfig,
    LoggingConfig,
    PollerConfig,
    PoolConfig,
    RunnerConfig,
    VmsFlowConfig,
    get_config,
    set_config,
)
from vmsflow.core.types import (
    ErrorCategory,
    ErrorRecord,
    JobResult,
    JobState,
    ProgressEstimate,
    RemoteTaskHandle,
    TaskOutcome,
    TaskState,
    TaskStatus,
    WorkItem,
)

__all__ = [
    # Types
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
    # Config
    "VmsFlowConfig",
    "PoolConfig",
    "RunnerConfig",
    "PollerConfig",
    "FanOutConfig",
    "LoggingConfig",
    "get_config",
    "set_config",
]
