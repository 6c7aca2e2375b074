"""Error taxonomy for the model-completion boundary."""

from __future__ import annotations

from typing import Optional

__all__ = [
    "LLMClientError",
    "LLMResponseFormatError",
    "LLMRetryError",
    "LLMTransportError",
    "is_transient",
]


class LLMClientError(RuntimeError):
    """Base error raised for LLM client failures."""


class LLMTransportError(LLMClientError):
    """Raised when the underlying transport fails to return a response.

    ``transient`` separates failures that may succeed on a plain retry (timeouts,
    rate limits, 5xx) from permanent ones such as rejected credentials.
    """

    def __init__(self, message: str, *, transient: bool = True, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.transient = transient
        self.status = status


class LLMResponseFormatError(LLMClientError):
    """Raised when the provider answers with a payload we cannot read."""


class LLMRetryError(LLMClientError):
    """Raised after the retry policy gives up on an operation."""

    def __init__(self, message: str, *, attempts: int, last_error: Optional[BaseException]) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


def is_transient(error: BaseException) -> bool:
    """Return True when ``error`` is worth retrying without changing the request."""
    if isinstance(error, LLMTransportError):
        return error.transient
    return isinstance(error, (TimeoutError, ConnectionError))
