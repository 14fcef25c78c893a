"""
Integration tests for vmsflow.

This package contains end-to-end fan-out tests that run the job runner and
the remote task poller against simulated recorders and a scripted server.

Test Modules:
    - test_fanout: Local and remote fan-out with checks and statistics
"""

__all__ = [
    "test_fanout",
]
