"""
Abstract interfaces for the remote side of vmsflow.

The vendor protocol lives outside this package. It is reached through
two narrow seams:
- a RemoteTaskClient that reports task status (and optionally cleans up
  finished tasks)
- a ClientFactory, the `connect()` callable the poller invokes to open or
  re-open the channel
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from vmsflow.core.types import RemoteTaskHandle, TaskStatus


class RemoteTaskClient(ABC):
    """
    Status query interface for server-side tasks.

    Implementations raise TransientCommunicationError (or ConnectionError /
    TimeoutError) for failures worth retrying over a fresh connection. Any
    other exception is treated as fatal by the poller.

    Example implementation:
        class RecorderTaskClient(RemoteTaskClient):
            def __init__(self, session):
                self._session = session

            def get_status(self, handle):
                raw = self._session.get_task(handle.path)
                return TaskStatus(
                    handle=handle,
                    state=raw["State"],
                    progress_percent=raw["Progress"],
                    display_name=raw["DisplayName"],
                )
    """

    @abstractmethod
    def get_status(self, handle: RemoteTaskHandle) -> TaskStatus:
        """
        Query the current status of a task.

        Args:
            handle: Task to query

        Returns:
            Current TaskStatus
        """
        pass

    def supports_cleanup(self, handle: RemoteTaskHandle) -> bool:
        """Whether finished tasks of this type can be cleaned up."""
        return False

    def cleanup(self, handle: RemoteTaskHandle) -> None:
        """Remove a finished task on the server."""
        raise NotImplementedError(f"{type(self).__name__} does not support task cleanup")

    def close(self) -> None:
        """Release the underlying channel."""
        return None

    def __enter__(self) -> RemoteTaskClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


ClientFactory = Callable[[], RemoteTaskClient]
"""Opens a new channel to the server; called again before every retry."""

RemoteTaskSubmitter = Callable[[Any], "str | RemoteTaskHandle"]
"""Starts a remote operation for one target and returns its task handle."""


__all__ = [
    "RemoteTaskClient",
    "ClientFactory",
    "RemoteTaskSubmitter",
]
