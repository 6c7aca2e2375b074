"""State owned by a single refinement session."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, List, Mapping, Optional, Sequence
from uuid import uuid4

from .errors import PlannerError
from .schemas import Constraints, TaskAnalysis, utc_now

__all__ = [
    "Attempt",
    "AttemptStatus",
    "RefinementSession",
    "SessionState",
    "ValidationOutcome",
]


class SessionState(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class AttemptStatus(str, Enum):
    SUCCEEDED = "succeeded"
    EXTRACTION_FAILED = "extraction_failed"
    VALIDATION_FAILED = "validation_failed"


@dataclass(frozen=True, slots=True)
class ValidationOutcome:
    """Verdict of the schema authority on one candidate."""

    valid: bool
    messages: tuple[str, ...] = ()

    @classmethod
    def passed(cls) -> "ValidationOutcome":
        return cls(valid=True)

    @classmethod
    def failed(cls, messages: Sequence[str]) -> "ValidationOutcome":
        return cls(valid=False, messages=tuple(messages))


@dataclass(frozen=True, slots=True)
class Attempt:
    """One generate, extract, validate cycle. Never modified once recorded."""

    index: int
    prompt: str
    response: str
    status: AttemptStatus
    candidate: Optional[str] = None
    reasoning: str = ""
    outcome: Optional[ValidationOutcome] = None
    error: Optional[PlannerError] = None
    tokens_used: int = 0
    duration: float = 0.0
    timestamp: datetime = field(default_factory=utc_now)

    @property
    def succeeded(self) -> bool:
        return self.status is AttemptStatus.SUCCEEDED

    @property
    def messages(self) -> tuple[str, ...]:
        """Feedback lines handed to the next corrective prompt."""
        if self.outcome is not None and not self.outcome.valid:
            return self.outcome.messages
        if self.error is not None:
            return (str(self.error),)
        return ()

    def log_line(self) -> str:
        if self.status is AttemptStatus.SUCCEEDED:
            return "Validation successful"
        if self.status is AttemptStatus.EXTRACTION_FAILED:
            return f"Extraction error: {self.error}"
        return "Validation failed: " + "; ".join(self.messages)


@dataclass(slots=True)
class RefinementSession:
    """Working state of one planning request, owned by the refinement loop."""

    task: str
    max_iterations: int
    context: Mapping[str, Any] = field(default_factory=dict)
    constraints: Optional[Constraints] = None
    analysis: Optional[TaskAnalysis] = None
    session_id: str = field(default_factory=lambda: uuid4().hex)
    attempts: List[Attempt] = field(default_factory=list)
    state: SessionState = SessionState.PENDING
    artifact: Optional[str] = None
    reasoning: str = ""
    error: Optional[BaseException] = None

    @property
    def last_attempt(self) -> Optional[Attempt]:
        return self.attempts[-1] if self.attempts else None

    @property
    def succeeded(self) -> bool:
        return self.state is SessionState.SUCCEEDED

    @property
    def iteration_count(self) -> int:
        return len(self.attempts)

    def record(self, attempt: Attempt) -> None:
        """Append ``attempt``, enforcing ordering and the budget."""
        if self.state is not SessionState.PENDING:
            raise RuntimeError(f"session {self.session_id} is already {self.state.value}")
        if attempt.index != len(self.attempts) + 1:
            raise ValueError(f"attempt {attempt.index} recorded out of order")
        if attempt.index > self.max_iterations:
            raise ValueError(f"attempt {attempt.index} exceeds the budget of {self.max_iterations}")
        self.attempts.append(attempt)
        if attempt.succeeded:
            self.state = SessionState.SUCCEEDED
            self.artifact = attempt.candidate
            self.reasoning = attempt.reasoning

    def fail(self, error: BaseException, *, cancelled: bool = False) -> None:
        self.error = error
        self.state = SessionState.CANCELLED if cancelled else SessionState.FAILED

    def raise_for_error(self) -> None:
        """Re-raise the terminal error of a failed or cancelled session."""
        if self.error is not None:
            raise self.error
