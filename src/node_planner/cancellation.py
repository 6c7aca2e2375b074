"""Cooperative cancellation shared by the refinement loop and the retry policy."""

from __future__ import annotations

import threading
import time
from typing import Optional

__all__ = ["CancellationToken", "PlanningCancelled"]


class PlanningCancelled(RuntimeError):
    """Raised when the caller cancels a session or its deadline passes."""


class CancellationToken:
    """Thread-safe cancel flag with an optional monotonic deadline."""

    def __init__(self, *, deadline: Optional[float] = None) -> None:
        self._event = threading.Event()
        self._deadline = deadline
        self._reason = "planning cancelled"

    @classmethod
    def with_timeout(cls, seconds: float) -> "CancellationToken":
        """Return a token that expires ``seconds`` from now."""
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self, reason: str | None = None) -> None:
        """Flag the token; any pending ``wait`` returns immediately."""
        if reason:
            self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or ``None`` without one."""
        if self._deadline is None:
            return None
        return max(self._deadline - time.monotonic(), 0.0)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise PlanningCancelled(self._reason)
        if self._deadline is not None and time.monotonic() >= self._deadline:
            raise PlanningCancelled("planning deadline exceeded")

    def wait(self, seconds: float) -> None:
        """Sleep for ``seconds`` unless cancelled first.

        Raises ``PlanningCancelled`` as soon as the token fires, including when
        the deadline falls inside the requested wait.
        """
        self.raise_if_cancelled()
        timeout = seconds
        remaining = self.remaining()
        if remaining is not None and remaining < timeout:
            timeout = remaining
        if self._event.wait(timeout):
            raise PlanningCancelled(self._reason)
        if remaining is not None and remaining < seconds:
            raise PlanningCancelled("planning deadline exceeded")
