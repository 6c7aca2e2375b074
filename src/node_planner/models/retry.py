"""Bounded exponential-backoff retries for model calls."""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterator, Optional, TypeVar

from ..cancellation import CancellationToken, PlanningCancelled
from .errors import LLMRetryError

__all__ = ["RetryPolicy"]

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy:
    """Run a fallible operation up to ``max_attempts`` times with backoff.

    Attempt 1 runs immediately. After a failure the policy waits
    ``min(delay, max_delay)`` and multiplies ``delay`` by ``multiplier`` for the
    next wait. Every exception is retried unless ``retry_if`` says otherwise.
    """

    def __init__(
        self,
        *,
        max_attempts: int,
        initial_delay: float,
        max_delay: float,
        multiplier: float,
        retry_if: Optional[Callable[[BaseException], bool]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if initial_delay < 0 or max_delay < 0:
            raise ValueError("retry delays must not be negative")
        if multiplier <= 1.0:
            raise ValueError("multiplier must be greater than 1.0")
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.multiplier = multiplier
        self._retry_if = retry_if
        self._sleep = sleep

    def backoff_schedule(self, count: int) -> Iterator[float]:
        """Yield the first ``count`` wait durations the policy would use."""
        delay = self.initial_delay
        for _ in range(count):
            yield min(delay, self.max_delay)
            delay *= self.multiplier

    def call(
        self,
        operation: Callable[[], T],
        *,
        cancel: Optional[CancellationToken] = None,
        description: str = "operation",
    ) -> T:
        """Return the first successful result of ``operation``."""
        waits = self.backoff_schedule(self.max_attempts - 1)
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_attempts + 1):
            if cancel is not None:
                cancel.raise_if_cancelled()
            try:
                return operation()
            except PlanningCancelled:
                raise
            except Exception as error:
                last_error = error
                if self._retry_if is not None and not self._retry_if(error):
                    LOGGER.debug("%s failed with a non-retryable error: %s", description, error)
                    raise
                if attempt >= self.max_attempts:
                    break
                delay = next(waits)
                LOGGER.warning(
                    "%s failed (attempt %d/%d), retrying in %.2fs: %s",
                    description,
                    attempt,
                    self.max_attempts,
                    delay,
                    error,
                )
                self._wait(delay, cancel)

        message = f"max retry attempts ({self.max_attempts}) exceeded: {last_error}"
        raise LLMRetryError(message, attempts=self.max_attempts, last_error=last_error) from last_error

    def _wait(self, delay: float, cancel: Optional[CancellationToken]) -> None:
        if cancel is not None:
            cancel.wait(delay)
        else:
            self._sleep(delay)
