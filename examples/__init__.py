"""
vmsflow Examples.

This package contains runnable examples that use in-process simulated
recorders and servers, so no real management server is needed.

Examples:
    01_local_fanout.py  - Parallel audit and statistics over many recorders
    02_remote_tasks.py  - Server-side task polling with retries and cleanup

Running Examples:
    python examples/01_local_fanout.py
    python examples/02_remote_tasks.py

Prerequisites:
    - Install vmsflow: pip install -e .
"""

__all__ = [
    "EXAMPLE_MODULES",
]

EXAMPLE_MODULES = [
    "01_local_fanout",
    "02_remote_tasks",
]
