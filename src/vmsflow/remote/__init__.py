"""
Remote task tracking for vmsflow.

Provides:
- RemoteTaskClient / ClientFactory: the status-query seam to the server
- RemoteTaskPoller: polls task handles to a terminal state
- Progress reporters and ETA estimation
"""

from vmsflow.remote.client import (
    ClientFactory,
    RemoteTaskClient,
    RemoteTaskSubmitter,
)
from vmsflow.remote.poller import (
    DEFAULT_TRANSIENT_ERRORS,
    RemoteTaskPoller,
)
from vmsflow.remote.progress import (
    LoggingProgressReporter,
    ProgressReporter,
    RichProgressReporter,
    estimate_remaining,
    format_duration,
)

__all__ = [
    # Client
    "RemoteTaskClient",
    "ClientFactory",
    "RemoteTaskSubmitter",
    # Poller
    "RemoteTaskPoller",
    "DEFAULT_TRANSIENT_ERRORS",
    # Progress
    "ProgressReporter",
    "LoggingProgressReporter",
    "RichProgressReporter",
    "estimate_remaining",
    "format_duration",
]
