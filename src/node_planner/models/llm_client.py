"""Typed client base class shared by all language-model integrations."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..cancellation import CancellationToken
from .errors import (
    LLMClientError,
    LLMResponseFormatError,
    LLMRetryError,
    LLMTransportError,
)
from .retry import RetryPolicy

__all__ = [
    "CompletionRequest",
    "CompletionResponse",
    "LLMClient",
    "LLMClientError",
    "LLMResponseFormatError",
    "LLMRetryError",
    "LLMTransportError",
    "UsageSnapshot",
    "UsageStats",
]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class CompletionRequest:
    """Provider-neutral completion request."""

    user_prompt: str
    system_prompt: str = ""
    max_tokens: int = 4096
    temperature: float = 0.0
    stop_sequences: List[str] = field(default_factory=list)
    model: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class CompletionResponse:
    """Text returned by the model together with its accounting data."""

    content: str
    model: str = ""
    tokens_used: int = 0
    finish_reason: str = ""


@dataclass(frozen=True, slots=True)
class UsageSnapshot:
    """Point-in-time copy of the usage counters."""

    total_tokens: int = 0
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0


class UsageStats:
    """Process-wide token and call counters, safe for concurrent sessions."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._total_tokens = 0
        self._total_calls = 0
        self._successful_calls = 0
        self._failed_calls = 0

    def add_call(self, tokens_used: int, success: bool) -> None:
        with self._lock:
            self._total_calls += 1
            self._total_tokens += max(tokens_used, 0)
            if success:
                self._successful_calls += 1
            else:
                self._failed_calls += 1

    def snapshot(self) -> UsageSnapshot:
        with self._lock:
            return UsageSnapshot(
                total_tokens=self._total_tokens,
                total_calls=self._total_calls,
                successful_calls=self._successful_calls,
                failed_calls=self._failed_calls,
            )

    def reset(self) -> None:
        with self._lock:
            self._total_tokens = 0
            self._total_calls = 0
            self._successful_calls = 0
            self._failed_calls = 0


def default_retry_policy() -> RetryPolicy:
    """Retry settings used when a client is built without explicit ones."""
    return RetryPolicy(max_attempts=3, initial_delay=1.0, max_delay=10.0, multiplier=2.0)


class LLMClient:
    """Model-completion port: retries transport failures and records usage."""

    provider = "generic"

    def __init__(
        self,
        model: str,
        *,
        retry_policy: Optional[RetryPolicy] = None,
        usage: Optional[UsageStats] = None,
    ) -> None:
        self._model = model
        self._retry = retry_policy or default_retry_policy()
        self._usage = usage if usage is not None else UsageStats()

    @property
    def model(self) -> str:
        """Return the default model name configured for this client."""
        return self._model

    @property
    def usage(self) -> UsageStats:
        return self._usage

    def complete(
        self,
        request: CompletionRequest,
        *,
        cancel: Optional[CancellationToken] = None,
    ) -> CompletionResponse:
        """Send ``request`` through the retry policy and return the reply."""
        LOGGER.debug(
            "sending %s completion request (max_tokens=%d, temperature=%.2f)",
            self.provider,
            request.max_tokens,
            request.temperature,
        )

        def _attempt() -> CompletionResponse:
            timeout = cancel.remaining() if cancel is not None else None
            return self._raw_complete(request, timeout=timeout)

        try:
            response = self._retry.call(
                _attempt,
                cancel=cancel,
                description=f"{self.provider} completion",
            )
        except Exception:
            self._usage.add_call(0, False)
            raise

        self._usage.add_call(response.tokens_used, True)
        LOGGER.debug(
            "received %s response (tokens_used=%d, finish_reason=%s)",
            self.provider,
            response.tokens_used,
            response.finish_reason or "unknown",
        )
        return response

    def _raw_complete(self, request: CompletionRequest, *, timeout: Optional[float]) -> CompletionResponse:
        """Perform a single transport call. Subclasses must implement."""
        raise NotImplementedError("Subclasses must implement _raw_complete().")
