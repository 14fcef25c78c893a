"""
Local job execution for vmsflow.

Provides:
- WorkerPool: bounded set of worker threads running work items
- LocalJobRunner: job bookkeeping with non-destructive result collection
"""

from vmsflow.jobs.pool import (
    # Data Classes
    Job,
    PoolStats,
    # Enums
    PoolStatus,
    # Main Class
    WorkerPool,
)
from vmsflow.jobs.runner import (
    # Main Class
    LocalJobRunner,
    # Convenience Functions
    run_work_items,
)

__all__ = [
    # Pool
    "PoolStatus",
    "PoolStats",
    "Job",
    "WorkerPool",
    # Runner
    "LocalJobRunner",
    "run_work_items",
]
