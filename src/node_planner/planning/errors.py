"""Failures raised or recorded by the planning pipeline."""

from __future__ import annotations

from typing import Optional, Sequence

from ..cancellation import PlanningCancelled
from ..models.errors import LLMClientError, LLMRetryError

__all__ = [
    "AnalysisError",
    "CandidateValidationError",
    "ExtractionError",
    "IterationBudgetExceeded",
    "PlannerError",
    "PlanningCancelled",
    "error_kind",
]


class PlannerError(RuntimeError):
    """Base error for planning failures."""

    kind = "planner"


class ExtractionError(PlannerError):
    """No well-formed JSON document could be recovered from a model reply."""

    kind = "extraction"

    NO_JSON = "no JSON found"
    MALFORMED = "malformed JSON"

    def __init__(self, reason: str, detail: Optional[str] = None) -> None:
        message = reason if not detail else f"{reason}: {detail}"
        super().__init__(message)
        self.reason = reason
        self.detail = detail


class CandidateValidationError(PlannerError):
    """The schema authority rejected a candidate graph."""

    kind = "validation"

    def __init__(self, messages: Sequence[str]) -> None:
        self.messages = tuple(messages)
        joined = "; ".join(self.messages) if self.messages else "no details"
        super().__init__(f"validation failed: {joined}")


class AnalysisError(PlannerError):
    """The task analysis call failed or returned something unusable."""

    kind = "analysis"


class IterationBudgetExceeded(PlannerError):
    """The refinement loop used every allotted attempt without a valid graph."""

    kind = "iteration_budget"

    def __init__(self, max_iterations: int, last_error: Optional[BaseException]) -> None:
        super().__init__(f"max iterations ({max_iterations}) exceeded: {last_error}")
        self.max_iterations = max_iterations
        self.last_error = last_error


def error_kind(error: BaseException) -> str:
    """Return the short label reported to callers for ``error``."""
    if isinstance(error, PlannerError):
        return error.kind
    if isinstance(error, PlanningCancelled):
        return "cancelled"
    if isinstance(error, LLMRetryError):
        return "retry_exhausted"
    if isinstance(error, LLMClientError):
        return "model"
    return "internal"
