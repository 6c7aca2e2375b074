"""OpenAI Chat Completions adapter."""

from __future__ import annotations

import json
import os
from typing import Any, Dict, Optional

from .errors import LLMResponseFormatError, LLMTransportError
from .http import Transport, post_json
from .llm_client import CompletionRequest, CompletionResponse, LLMClient, UsageStats
from .retry import RetryPolicy

__all__ = ["OpenAIClient"]


class OpenAIClient(LLMClient):
    """Thin adapter around the OpenAI Chat Completions API."""

    provider = "openai"

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: str = "https://api.openai.com/v1/chat/completions",
        model: str = "gpt-4o-mini",
        transport: Optional[Transport] = None,
        timeout: float = 60.0,
        retry_policy: Optional[RetryPolicy] = None,
        usage: Optional[UsageStats] = None,
    ) -> None:
        super().__init__(model=model, retry_policy=retry_policy, usage=usage)
        self._api_key = api_key or os.getenv("OPENAI_API_KEY")
        self._base_url = base_url
        self._timeout = timeout
        self._transport = transport or self._http_transport

        if transport is None and not self._api_key:
            raise ValueError("An API key is required when using the default transport.")

    def build_payload(self, request: CompletionRequest) -> Dict[str, Any]:
        """Render a transport-ready Chat Completions payload."""
        messages: list[Dict[str, str]] = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": request.user_prompt})

        payload: Dict[str, Any] = {
            "model": request.model or self._model,
            "messages": messages,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
        }
        if request.stop_sequences:
            payload["stop"] = list(request.stop_sequences)
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
        """Default HTTP transport that targets the Chat Completions endpoint."""
        effective = self._timeout if timeout is None else min(self._timeout, max(timeout, 0.001))
        return post_json(
            self._base_url,
            payload,
            headers={"Authorization": f"Bearer {self._api_key}"},
            timeout=effective,
            label="OpenAI",
        )

    @staticmethod
    def _parse_response(raw_response: str, requested_model: str) -> CompletionResponse:
        try:
            data = json.loads(raw_response)
        except json.JSONDecodeError as error:
            raise LLMResponseFormatError(f"OpenAI returned a non-JSON body: {raw_response[:200]}") from error
        if not isinstance(data, dict):
            raise LLMResponseFormatError("OpenAI response was not a JSON object.")

        choices = data.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            raise LLMResponseFormatError("OpenAI response did not contain any choices.")
        first = choices[0]
        message = first.get("message") if isinstance(first.get("message"), dict) else {}
        content = message.get("content")
        if not isinstance(content, str):
            raise LLMResponseFormatError("OpenAI returned empty content.")

        usage = data.get("usage") if isinstance(data.get("usage"), dict) else {}
        total_tokens = usage.get("total_tokens")
        if not isinstance(total_tokens, int):
            try:
                total_tokens = int(usage.get("prompt_tokens") or 0) + int(usage.get("completion_tokens") or 0)
            except (TypeError, ValueError) as error:
                raise LLMResponseFormatError(f"OpenAI returned malformed usage counters: {usage}") from error

        return CompletionResponse(
            content=content,
            model=str(data.get("model") or requested_model),
            tokens_used=total_tokens,
            finish_reason=str(first.get("finish_reason") or ""),
        )
