"""Cooperative cancellation for interactively triggered jobs."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from app.core.exceptions import CancellationError

logger = logging.getLogger(__name__)


class CancellationToken:
    """Shared cancellation flag for one in-flight single-item job.

    The orchestrator checks the flag between phases. When a task is bound,
    ``cancel`` also cancels it so the awaited collaborator call is aborted
    instead of running to completion in the background.
    """

    def __init__(self) -> None:
        self.cancelled = False
        self.reason: str | None = None
        self._task: asyncio.Task | None = None
        self._listeners: list[Callable[[str], None]] = []

    def bind_task(self, task: asyncio.Task) -> None:
        """Attach the task running the job this token guards."""
        self._task = task

    def add_listener(self, callback: Callable[[str], None]) -> None:
        """Register a callback fired synchronously when cancellation is requested."""
        self._listeners.append(callback)

    def cancel(self, reason: str = "User cancelled") -> bool:
        """Request cancellation. Returns False if already requested."""
        if self.cancelled:
            return False
        self.cancelled = True
        self.reason = reason
        logger.warning("Cancellation requested", extra={"reason": reason})

        for callback in self._listeners:
            callback(reason)

        if self._task is not None and not self._task.done():
            self._task.cancel(reason)
        return True

    def raise_if_cancelled(self) -> None:
        """Raise ``CancellationError`` if cancellation was requested.

        Raises:
            CancellationError: When the token has been cancelled.
        """
        if self.cancelled:
            raise CancellationError(self.reason or "User cancelled")
