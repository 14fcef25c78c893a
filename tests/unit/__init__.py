"""
Unit tests for vmsflow modules.

This package contains unit tests for:
- types: work items, task handles and status normalization
- pool: WorkerPool capacity, error capture and retrieval
- runner: LocalJobRunner tracking, waiting and dispose
- poller: RemoteTaskPoller ordering, retries and cleanup
- progress: ETA computation and reporters
- config: environment and YAML configuration
- report / statistics: aggregate reports, checks and counter series
"""
