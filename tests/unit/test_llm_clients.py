from __future__ import annotations

import json
import threading

import pytest

from node_planner.models import (
    AnthropicClient,
    CompletionRequest,
    LLMResponseFormatError,
    LLMRetryError,
    LLMTransportError,
    OpenAIClient,
    UsageStats,
)
from node_planner.models.errors import is_transient
from node_planner.models.http import is_transient_status


def _openai_body(content: str, **usage) -> str:
    return json.dumps(
        {
            "model": "gpt-4o-mini-2024",
            "choices": [{"message": {"role": "assistant", "content": content}, "finish_reason": "stop"}],
            "usage": usage,
        }
    )


def test_openai_client_builds_payload_and_parses_reply(retry_policy) -> None:
    seen: list = []

    def transport(payload, timeout):
        seen.append((payload, timeout))
        return _openai_body("hello", total_tokens=42)

    client = OpenAIClient(model="gpt-4o-mini", transport=transport, retry_policy=retry_policy(1))
    response = client.complete(
        CompletionRequest(user_prompt="plan it", system_prompt="be brief", stop_sequences=["END"])
    )

    assert response.content == "hello"
    assert response.tokens_used == 42
    assert response.finish_reason == "stop"
    assert response.model == "gpt-4o-mini-2024"

    payload, timeout = seen[0]
    assert payload["messages"] == [
        {"role": "system", "content": "be brief"},
        {"role": "user", "content": "plan it"},
    ]
    assert payload["stop"] == ["END"]
    assert payload["max_tokens"] == 4096
    assert payload["temperature"] == 0.0
    assert timeout is None


def test_openai_tokens_fall_back_to_prompt_plus_completion() -> None:
    response = OpenAIClient._parse_response(
        _openai_body("x", prompt_tokens=5, completion_tokens=7), "gpt-4o-mini"
    )
    assert response.tokens_used == 12


def test_openai_rejects_reply_without_choices() -> None:
    with pytest.raises(LLMResponseFormatError):
        OpenAIClient._parse_response(json.dumps({"choices": []}), "gpt-4o-mini")


def test_format_errors_surface_through_retry_exhaustion(retry_policy) -> None:
    client = OpenAIClient(transport=lambda payload, timeout: "<html>", retry_policy=retry_policy(2))

    with pytest.raises(LLMRetryError) as excinfo:
        client.complete(CompletionRequest(user_prompt="x"))

    assert isinstance(excinfo.value.last_error, LLMResponseFormatError)
    snapshot = client.usage.snapshot()
    assert snapshot.total_calls == 1
    assert snapshot.failed_calls == 1


def test_transient_failure_is_retried_then_counted_once(retry_policy) -> None:
    replies = [LLMTransportError("HTTP 503", status=503), _openai_body("ok", total_tokens=9)]

    def transport(payload, timeout):
        reply = replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    client = OpenAIClient(transport=transport, retry_policy=retry_policy(3))
    assert client.complete(CompletionRequest(user_prompt="x")).content == "ok"

    snapshot = client.usage.snapshot()
    assert snapshot.total_calls == 1
    assert snapshot.successful_calls == 1
    assert snapshot.total_tokens == 9


def test_anthropic_client_joins_text_blocks_and_sums_usage(retry_policy) -> None:
    seen: list = []

    def transport(payload, timeout):
        seen.append(payload)
        return json.dumps(
            {
                "model": "claude-3-5-sonnet-20241022",
                "content": [
                    {"type": "text", "text": "Reasoning: "},
                    {"type": "tool_use", "id": "t1"},
                    {"type": "text", "text": "done"},
                ],
                "stop_reason": "end_turn",
                "usage": {"input_tokens": 30, "output_tokens": 12},
            }
        )

    client = AnthropicClient(transport=transport, retry_policy=retry_policy(1))
    response = client.complete(CompletionRequest(user_prompt="plan it", system_prompt="be brief"))

    assert response.content == "Reasoning: done"
    assert response.tokens_used == 42
    assert response.finish_reason == "end_turn"
    assert seen[0]["system"] == "be brief"
    assert seen[0]["messages"] == [{"role": "user", "content": "plan it"}]
    assert "stop_sequences" not in seen[0]


def test_anthropic_null_text_blocks_are_treated_as_empty() -> None:
    body = {"content": [{"type": "text", "text": None}, {"type": "text", "text": "ok"}], "usage": {}}
    response = AnthropicClient._parse_response(json.dumps(body), "claude-3-5-sonnet-20241022")
    assert response.content == "ok"
    assert response.tokens_used == 0

    with pytest.raises(LLMResponseFormatError):
        AnthropicClient._parse_response(json.dumps({"content": [{"type": "text", "text": None}]}), "m")
    with pytest.raises(LLMResponseFormatError):
        AnthropicClient._parse_response(json.dumps({"content": [{"type": "text", "text": 7}]}), "m")
    with pytest.raises(LLMResponseFormatError):
        AnthropicClient._parse_response(
            json.dumps({"content": [{"type": "text", "text": "ok"}], "usage": {"input_tokens": "many"}}), "m"
        )


def test_usage_stats_are_thread_safe_and_resettable() -> None:
    usage = UsageStats()

    def record() -> None:
        for _ in range(1000):
            usage.add_call(2, True)

    threads = [threading.Thread(target=record) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    snapshot = usage.snapshot()
    assert snapshot.total_calls == 8000
    assert snapshot.successful_calls == 8000
    assert snapshot.total_tokens == 16000

    usage.add_call(5, False)
    usage.reset()
    cleared = usage.snapshot()
    assert cleared.total_calls == 0
    assert cleared.successful_calls == 0
    assert cleared.failed_calls == 0
    assert cleared.total_tokens == 0


def test_clients_require_a_key_for_http_transport(monkeypatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    with pytest.raises(ValueError):
        OpenAIClient()
    with pytest.raises(ValueError):
        AnthropicClient()


def test_transient_classification() -> None:
    assert is_transient_status(429)
    assert is_transient_status(503)
    assert not is_transient_status(400)
    assert not is_transient_status(401)
    assert is_transient(LLMTransportError("timeout"))
    assert not is_transient(LLMTransportError("denied", transient=False, status=401))
    assert is_transient(TimeoutError())
    assert not is_transient(ValueError("bad"))
