from __future__ import annotations

import json

from node_planner.cancellation import CancellationToken, PlanningCancelled
from node_planner.models.errors import LLMRetryError, LLMTransportError
from node_planner.planning.errors import IterationBudgetExceeded, error_kind
from node_planner.planning.extractor import Extractor
from node_planner.planning.generator import Generator
from node_planner.planning.prompter import Prompter
from node_planner.planning.session import (
    AttemptStatus,
    RefinementSession,
    SessionState,
    ValidationOutcome,
)
from node_planner.validation import GraphValidator


def _reply(graph, reasoning: str = "draft") -> str:
    return f"Reasoning: {reasoning}\n```json\n{json.dumps(graph)}\n```"


def _generator(client, validator=None) -> Generator:
    return Generator(client, Prompter(), Extractor(), validator or GraphValidator())


def test_first_valid_attempt_ends_the_loop(scripted_client, valid_graph) -> None:
    client = scripted_client(_reply(valid_graph, "one router"), _reply(valid_graph))
    session = RefinementSession(task="route tickets", max_iterations=3)

    _generator(client).generate(session)

    assert session.state is SessionState.SUCCEEDED
    assert session.iteration_count == 1
    assert len(client.requests) == 1
    assert json.loads(session.artifact) == valid_graph
    assert session.reasoning == "one router"
    assert client.requests[0].metadata["phase"] == "plan"


def test_budget_of_three_is_never_exceeded(scripted_client) -> None:
    client = scripted_client(*["no graph here"] * 5)
    session = RefinementSession(task="route tickets", max_iterations=3)

    _generator(client).generate(session)

    assert session.state is SessionState.FAILED
    assert session.iteration_count == 3
    assert len(client.requests) == 3
    assert [attempt.index for attempt in session.attempts] == [1, 2, 3]
    assert isinstance(session.error, IterationBudgetExceeded)
    assert session.error.__cause__ is session.attempts[-1].error
    assert error_kind(session.error) == "iteration_budget"


def test_corrective_prompt_lists_only_previous_messages(scripted_client, scripted_validator) -> None:
    validator = scripted_validator(
        ValidationOutcome.failed(["old problem"]),
        ValidationOutcome.failed(["node 'a' has no mode", "edge 0 points nowhere"]),
        ValidationOutcome.passed(),
    )
    client = scripted_client('{"nodes": [1]}', '{"nodes": [2]}', '{"nodes": [3]}')
    session = RefinementSession(task="route tickets", max_iterations=3)

    _generator(client, validator).generate(session)

    assert session.succeeded
    third_prompt = client.requests[2].user_prompt
    assert "1. node 'a' has no mode\n2. edge 0 points nowhere" in third_prompt
    assert "old problem" not in third_prompt
    assert "Previous Graph (attempt 2):" in third_prompt
    assert '{"nodes": [2]}' in third_prompt
    assert client.requests[2].metadata["phase"] == "fix"
    assert validator.candidates == [b'{"nodes": [1]}', b'{"nodes": [2]}', b'{"nodes": [3]}']


def test_extraction_failure_feeds_raw_response_back(scripted_client, valid_graph) -> None:
    client = scripted_client("Sorry, I cannot draw graphs.", _reply(valid_graph))
    session = RefinementSession(task="route tickets", max_iterations=3)

    _generator(client).generate(session)

    assert session.succeeded
    first = session.attempts[0]
    assert first.status is AttemptStatus.EXTRACTION_FAILED
    assert first.log_line() == "Extraction error: no JSON found"
    second_prompt = client.requests[1].user_prompt
    assert "Sorry, I cannot draw graphs." in second_prompt
    assert "1. no JSON found" in second_prompt


def test_retry_exhaustion_ends_session_without_attempts(scripted_client, retry_policy) -> None:
    client = scripted_client(
        LLMTransportError("503"),
        LLMTransportError("503"),
        retry_policy=retry_policy(2),
    )
    session = RefinementSession(task="route tickets", max_iterations=3)

    _generator(client).generate(session)

    assert session.state is SessionState.FAILED
    assert session.attempts == []
    assert isinstance(session.error, LLMRetryError)
    assert error_kind(session.error) == "retry_exhausted"
    assert len(client.requests) == 2


def test_cancelled_token_stops_before_calling_the_model(scripted_client, valid_graph) -> None:
    token = CancellationToken()
    token.cancel()
    client = scripted_client(_reply(valid_graph))
    session = RefinementSession(task="route tickets", max_iterations=3)

    _generator(client).generate(session, cancel=token)

    assert session.state is SessionState.CANCELLED
    assert isinstance(session.error, PlanningCancelled)
    assert client.requests == []
    assert error_kind(session.error) == "cancelled"


def test_tokens_are_recorded_per_attempt(scripted_client, valid_graph) -> None:
    client = scripted_client("nothing", _reply(valid_graph), tokens_per_reply=7)
    session = RefinementSession(task="route tickets", max_iterations=3)

    _generator(client).generate(session)

    assert [attempt.tokens_used for attempt in session.attempts] == [7, 7]
    assert client.usage.snapshot().total_tokens == 14
