from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from node_planner.models.llm_client import (  # noqa: E402
    CompletionRequest,
    CompletionResponse,
    LLMClient,
    LLMTransportError,
)
from node_planner.models.retry import RetryPolicy  # noqa: E402
from node_planner.planning.session import ValidationOutcome  # noqa: E402

Reply = Union[str, BaseException]


class ScriptedClient(LLMClient):
    """Client that replays canned replies and records every request."""

    provider = "scripted"

    def __init__(
        self,
        replies: Sequence[Reply],
        *,
        tokens_per_reply: int = 10,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        super().__init__(
            "scripted-model",
            retry_policy=retry_policy or no_wait_policy(1),
        )
        self._replies: List[Reply] = list(replies)
        self._tokens = tokens_per_reply
        self.requests: List[CompletionRequest] = []

    def _raw_complete(self, request: CompletionRequest, *, timeout: Optional[float]) -> CompletionResponse:
        self.requests.append(request)
        if not self._replies:
            raise LLMTransportError("no scripted reply left")
        reply = self._replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return CompletionResponse(
            content=reply,
            model="scripted-model",
            tokens_used=self._tokens,
            finish_reason="stop",
        )


class ScriptedValidator:
    """Schema authority that returns queued outcomes and keeps the candidates."""

    def __init__(self, outcomes: Sequence[ValidationOutcome]) -> None:
        self._outcomes = list(outcomes)
        self.candidates: List[bytes] = []

    def validate(self, candidate: bytes) -> ValidationOutcome:
        self.candidates.append(candidate)
        return self._outcomes.pop(0)


def no_wait_policy(max_attempts: int, *, sleeps: Optional[List[float]] = None) -> RetryPolicy:
    recorded = sleeps if sleeps is not None else []
    return RetryPolicy(
        max_attempts=max_attempts,
        initial_delay=1.0,
        max_delay=10.0,
        multiplier=2.0,
        sleep=recorded.append,
    )


@pytest.fixture()
def scripted_client() -> Callable[..., ScriptedClient]:
    def _make(*replies: Reply, **kwargs: Any) -> ScriptedClient:
        return ScriptedClient(replies, **kwargs)

    return _make


@pytest.fixture()
def scripted_validator() -> Callable[..., ScriptedValidator]:
    def _make(*outcomes: ValidationOutcome) -> ScriptedValidator:
        return ScriptedValidator(outcomes)

    return _make


@pytest.fixture()
def retry_policy() -> Callable[..., RetryPolicy]:
    return no_wait_policy


@pytest.fixture()
def valid_graph() -> Dict[str, Any]:
    return {
        "name": "ticket-router",
        "description": "Route support tickets by sentiment.",
        "nodes": [
            {"id": "classify", "type": "router", "mode": "llm", "description": "Score sentiment."},
            {"id": "escalate", "type": "executor", "mode": "agent", "description": "Hand to a human."},
            {"id": "reply", "type": "executor", "mode": "llm", "description": "Send a reply."},
        ],
        "edges": [
            {"from": "classify", "to": "escalate", "condition": "negative"},
            {"from": "classify", "to": "reply", "condition": "positive"},
        ],
        "entry_point": "classify",
    }


@pytest.fixture(autouse=True)
def _restore_planner_logger():
    """Undo handler changes made by ``configure_logging`` during a test."""
    logger = logging.getLogger("node_planner")
    handlers = list(logger.handlers)
    level = logger.level
    propagate = logger.propagate
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate
