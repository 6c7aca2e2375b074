"""Anthropic Messages API adapter."""

from __future__ import annotations

import json
import os
from typing import Any, Dict, Optional

from .errors import LLMResponseFormatError, LLMTransportError
from .http import Transport, post_json
from .llm_client import CompletionRequest, CompletionResponse, LLMClient, UsageStats
from .retry import RetryPolicy

__all__ = ["AnthropicClient"]

ANTHROPIC_VERSION = "2023-06-01"


class AnthropicClient(LLMClient):
    """Thin adapter around the Anthropic Messages API."""

    provider = "anthropic"

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: str = "https://api.anthropic.com/v1/messages",
        model: str = "claude-3-5-sonnet-20241022",
        transport: Optional[Transport] = None,
        timeout: float = 60.0,
        retry_policy: Optional[RetryPolicy] = None,
        usage: Optional[UsageStats] = None,
    ) -> None:
        super().__init__(model=model, retry_policy=retry_policy, usage=usage)
        self._api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        self._base_url = base_url
        self._timeout = timeout
        self._transport = transport or self._http_transport

        if transport is None and not self._api_key:
            raise ValueError("An API key is required when using the default transport.")

    def build_payload(self, request: CompletionRequest) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": request.model or self._model,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "messages": [{"role": "user", "content": request.user_prompt}],
        }
        if request.system_prompt:
            payload["system"] = request.system_prompt
        if request.stop_sequences:
            payload["stop_sequences"] = list(request.stop_sequences)
        return payload

    def _raw_complete(self, request: CompletionRequest, *, timeout: Optional[float]) -> CompletionResponse:
        payload = self.build_payload(request)
        try:
            raw_response = self._transport(payload, timeout)
        except LLMTransportError:
            raise
        except Exception as error:  # pragma: no cover - defensive path
            raise LLMTransportError(f"Transport rejected the request: {error}") from error
        return self._parse_response(raw_response, payload["model"])

    def _http_transport(self, payload: Dict[str, Any], timeout: Optional[float]) -> str:
        effective = self._timeout if timeout is None else min(self._timeout, max(timeout, 0.001))
        return post_json(
            self._base_url,
            payload,
            headers={
                "x-api-key": str(self._api_key),
                "anthropic-version": ANTHROPIC_VERSION,
            },
            timeout=effective,
            label="Anthropic",
        )

    @staticmethod
    def _parse_response(raw_response: str, requested_model: str) -> CompletionResponse:
        try:
            data = json.loads(raw_response)
        except json.JSONDecodeError as error:
            raise LLMResponseFormatError(f"Anthropic returned a non-JSON body: {raw_response[:200]}") from error
        if not isinstance(data, dict):
            raise LLMResponseFormatError("Anthropic response was not a JSON object.")

        blocks = data.get("content")
        if not isinstance(blocks, list):
            raise LLMResponseFormatError("Anthropic response did not contain content blocks.")
        # Only text blocks carry the answer; tool or thinking blocks are skipped.
        parts = []
        for block in blocks:
            if not isinstance(block, dict) or block.get("type") != "text":
                continue
            value = block.get("text") or ""
            if not isinstance(value, str):
                raise LLMResponseFormatError(f"Anthropic text block was not a string: {value!r}")
            parts.append(value)
        text = "".join(parts)
        if not text:
            raise LLMResponseFormatError("Anthropic returned empty content.")

        usage = data.get("usage") if isinstance(data.get("usage"), dict) else {}
        try:
            tokens = int(usage.get("input_tokens") or 0) + int(usage.get("output_tokens") or 0)
        except (TypeError, ValueError) as error:
            raise LLMResponseFormatError(f"Anthropic returned malformed usage counters: {usage}") from error

        return CompletionResponse(
            content=text,
            model=str(data.get("model") or requested_model),
            tokens_used=tokens,
            finish_reason=str(data.get("stop_reason") or ""),
        )
