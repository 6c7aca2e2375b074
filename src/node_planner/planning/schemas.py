"""Pydantic models exchanged with callers of the planner."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


class WireModel(BaseModel):
    """Base model for request and response payloads."""

    model_config = ConfigDict(extra="forbid")


class ComplexityLevel(str, Enum):
    """Coarse task complexity reported by the analyzer."""

    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


class Constraints(WireModel):
    """Caller limits and preferences for graph generation."""

    max_nodes: Optional[int] = Field(default=None, ge=1)
    preferred_modes: List[str] = Field(default_factory=list)
    available_tools: List[str] = Field(default_factory=list)
    max_iterations: Optional[int] = Field(default=None, ge=1)


class TaskAnalysis(BaseModel):
    """Structured result of the optional analysis step."""

    # Model output routinely carries extra keys; they are dropped, not rejected.
    model_config = ConfigDict(extra="ignore")

    task_id: str = Field(default_factory=lambda: uuid4().hex)
    complexity: ComplexityLevel
    requires_tools: bool = False
    requires_routing: bool = False
    suggested_node_types: List[str] = Field(default_factory=list)
    key_entities: List[str] = Field(default_factory=list)
    intent: str = ""
    reasoning: str = ""
    analyzed_at: datetime = Field(default_factory=utc_now)

    @field_validator("complexity", mode="before")
    @classmethod
    def _normalise_complexity(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("suggested_node_types", "key_entities", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class PlanRequest(WireModel):
    """Request to turn a task description into an execution graph."""

    task: str = Field(min_length=1)
    context: Dict[str, Any] = Field(default_factory=dict)
    constraints: Optional[Constraints] = None
    skip_analysis: bool = False


class ValidationResult(WireModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)


class IterationLog(WireModel):
    """One refinement attempt as reported to callers."""

    iteration: int
    status: str
    prompt: str = ""
    response: Optional[str] = None
    graph_json: Optional[str] = None
    reasoning: str = ""
    validation: Optional[ValidationResult] = None
    error: Optional[str] = None
    tokens_used: int = 0
    duration_seconds: float = 0.0
    timestamp: datetime = Field(default_factory=utc_now)


class ErrorInfo(WireModel):
    kind: str
    message: str


class PlanMetadata(WireModel):
    """Accounting data about one planning session."""

    llm_provider: str
    llm_model: str
    tokens_used: int = 0
    duration_seconds: float = 0.0
    success: bool = False
    error_message: Optional[str] = None


class PlanResponse(WireModel):
    """Terminal result of a planning session, successful or not."""

    plan_id: str
    success: bool
    graph: Optional[Dict[str, Any]] = None
    graph_json: Optional[str] = None
    reasoning: str = ""
    analysis: Optional[TaskAnalysis] = None
    iterations: int = 0
    validation_logs: List[str] = Field(default_factory=list)
    attempts: List[IterationLog] = Field(default_factory=list)
    error: Optional[ErrorInfo] = None
    metadata: PlanMetadata
    created_at: datetime = Field(default_factory=utc_now)
