"""Convenience exports for node planner LLM client implementations."""

from .anthropic import AnthropicClient
from .llm_client import (
    CompletionRequest,
    CompletionResponse,
    LLMClient,
    LLMClientError,
    LLMResponseFormatError,
    LLMRetryError,
    LLMTransportError,
    UsageSnapshot,
    UsageStats,
)
from .offline import OfflineLLMClient
from .openai import OpenAIClient
from .retry import RetryPolicy

__all__ = [
    "AnthropicClient",
    "CompletionRequest",
    "CompletionResponse",
    "LLMClient",
    "LLMClientError",
    "LLMResponseFormatError",
    "LLMRetryError",
    "LLMTransportError",
    "OfflineLLMClient",
    "OpenAIClient",
    "RetryPolicy",
    "UsageSnapshot",
    "UsageStats",
]
