"""
vmsflow - Concurrent job execution and remote task polling for VMS automation

Runs many independent operations against video-management servers
(hardware scans, device provisioning, statistics retrieval, snapshots)
on a bounded worker pool, tracks server-side tasks to completion, and
joins partial results and failures into one report per query.

Basic Usage:
    from vmsflow import FanOutOrchestrator, LocalJobRunner

    with FanOutOrchestrator(runner=LocalJobRunner(max_workers=8)) as orchestrator:
        report = orchestrator.run_local(recorders, collect_statistics, key=lambda r: r.name)

    print(report.summary())
"""

from vmsflow.core.config import VmsFlowConfig
from vmsflow.core.types import (
    ErrorRecord,
    JobResult,
    RemoteTaskHandle,
    TaskOutcome,
    TaskState,
    TaskStatus,
    WorkItem,
)
from vmsflow.jobs.pool import Job, WorkerPool
from vmsflow.jobs.runner import LocalJobRunner
from vmsflow.orchestration.fanout import FanOutOrchestrator
from vmsflow.orchestration.report import AggregateReport, CheckRule, TargetOutcome
from vmsflow.remote.client import RemoteTaskClient
from vmsflow.remote.poller import RemoteTaskPoller

__version__ = "0.1.0"
__all__ = [
    # Main classes
    "WorkerPool",
    "LocalJobRunner",
    "RemoteTaskPoller",
    "FanOutOrchestrator",
    # Config
    "VmsFlowConfig",
    # Types
    "WorkItem",
    "Job",
    "JobResult",
    "ErrorRecord",
    "RemoteTaskHandle",
    "TaskState",
    "TaskStatus",
    "TaskOutcome",
    "RemoteTaskClient",
    "AggregateReport",
    "TargetOutcome",
    "CheckRule",
    # Version
    "__version__",
]
