"""Planning service: optional analysis, refinement, and result assembly."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Mapping, Optional
from uuid import uuid4

from pydantic import ValidationError

from ..cancellation import CancellationToken, PlanningCancelled
from ..config import PlannerConfig, PlanningConfig
from ..models.llm_client import LLMClient
from ..validation.base import SchemaValidator
from ..validation.graph import GraphValidator
from .analyzer import Analyzer
from .errors import AnalysisError, ExtractionError, error_kind
from .extractor import Extractor
from .generator import Generator
from .prompter import Prompter
from .schemas import (
    ErrorInfo,
    IterationLog,
    PlanMetadata,
    PlanRequest,
    PlanResponse,
    TaskAnalysis,
    ValidationResult,
)
from .session import Attempt, RefinementSession, SessionState, ValidationOutcome
from .trace import write_session_trace

__all__ = ["PlannerService"]

LOGGER = logging.getLogger(__name__)


class PlannerService:
    """Turn ``PlanRequest`` payloads into validated execution graphs."""

    def __init__(
        self,
        client: LLMClient,
        validator: SchemaValidator,
        config: Optional[PlanningConfig] = None,
        *,
        prompter: Optional[Prompter] = None,
        extractor: Optional[Extractor] = None,
        max_tokens: int = 4096,
        temperature: float = 0.0,
        trace_dir: Path | str | None = None,
    ) -> None:
        self._client = client
        self._validator = validator
        self._config = config or PlanningConfig()
        self._prompter = prompter or Prompter(self._config.prompt_path)
        self._extractor = extractor or Extractor()
        self._analyzer = Analyzer(client)
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._trace_dir = Path(trace_dir) if trace_dir else None

    @classmethod
    def from_config(
        cls,
        config: PlannerConfig,
        client: LLMClient,
        validator: Optional[SchemaValidator] = None,
    ) -> "PlannerService":
        return cls(
            client,
            validator or GraphValidator(max_nodes=config.planning.max_nodes),
            config.planning,
            max_tokens=config.llm.max_tokens,
            temperature=config.llm.temperature,
            trace_dir=config.logging.trace_dir,
        )

    def plan(
        self,
        request: PlanRequest | Mapping[str, Any],
        *,
        cancel: Optional[CancellationToken] = None,
    ) -> PlanResponse:
        """Run one planning session. Failures are reported in the response."""
        plan_request = self._coerce_request(request)
        plan_id = uuid4().hex
        started = time.monotonic()
        LOGGER.info("starting graph planning %s: %s", plan_id, plan_request.task)

        constraints = plan_request.constraints
        max_iterations = self._config.max_iterations
        if constraints is not None and constraints.max_iterations:
            # Request limits only tighten the configured budget.
            max_iterations = min(max_iterations, constraints.max_iterations)
        session = RefinementSession(
            task=plan_request.task,
            max_iterations=max_iterations,
            context=dict(plan_request.context),
            constraints=constraints,
            session_id=plan_id,
        )

        try:
            session.analysis = self._maybe_analyze(plan_request, cancel)
        except PlanningCancelled as error:
            session.fail(error, cancelled=True)
        except AnalysisError as error:
            session.fail(error)

        if session.state is SessionState.PENDING:
            generator = Generator(
                self._client,
                self._prompter,
                self._extractor,
                self._validator_for(plan_request),
                max_tokens=self._max_tokens,
                temperature=self._temperature,
            )
            generator.generate(session, cancel=cancel)

        response = self._assemble(session, time.monotonic() - started)
        if response.success:
            LOGGER.info(
                "graph planning %s completed in %d iteration(s), %d tokens",
                plan_id,
                response.iterations,
                response.metadata.tokens_used,
            )
        else:
            LOGGER.warning("graph planning %s failed: %s", plan_id, response.metadata.error_message)

        if self._trace_dir is not None:
            write_session_trace(self._trace_dir, plan_request, response)
        return response

    def validate_graph(self, graph_json: str) -> ValidationOutcome:
        """Validate a graph document with the configured schema authority."""
        return self._validator.validate(graph_json.encode("utf-8"))

    def _maybe_analyze(
        self,
        request: PlanRequest,
        cancel: Optional[CancellationToken],
    ) -> Optional[TaskAnalysis]:
        if request.skip_analysis or not self._config.enable_analysis:
            return None
        try:
            analysis = self._analyzer.analyze(request.task, cancel=cancel)
        except AnalysisError as error:
            if not self._config.continue_without_analysis:
                raise
            LOGGER.warning("task analysis failed, continuing without it: %s", error)
            return None
        LOGGER.debug(
            "task analysis completed (complexity=%s, requires_tools=%s, requires_routing=%s)",
            analysis.complexity.value,
            analysis.requires_tools,
            analysis.requires_routing,
        )
        return analysis

    def _validator_for(self, request: PlanRequest) -> SchemaValidator:
        constraints = request.constraints
        if constraints is None or constraints.max_nodes is None:
            return self._validator
        if isinstance(self._validator, GraphValidator):
            limit = constraints.max_nodes
            if self._validator.max_nodes is not None:
                limit = min(limit, self._validator.max_nodes)
            return self._validator.with_max_nodes(limit)
        return self._validator

    @staticmethod
    def _coerce_request(request: PlanRequest | Mapping[str, Any]) -> PlanRequest:
        if isinstance(request, PlanRequest):
            return request
        try:
            return PlanRequest.model_validate(request)
        except ValidationError as error:
            raise ValueError(f"Payload for PlanRequest did not validate: {error}") from error

    def _assemble(self, session: RefinementSession, duration: float) -> PlanResponse:
        success = session.succeeded
        graph = None
        if success and session.artifact is not None:
            try:
                graph = self._extractor.parse_graph(session.artifact)
            except ExtractionError:
                # Custom authorities may accept non-object documents; graph_json still carries them.
                graph = None

        error_info = None
        if session.error is not None:
            error_info = ErrorInfo(kind=error_kind(session.error), message=str(session.error))

        metadata = PlanMetadata(
            llm_provider=self._client.provider,
            llm_model=self._client.model,
            tokens_used=sum(attempt.tokens_used for attempt in session.attempts),
            duration_seconds=round(duration, 6),
            success=success,
            error_message=error_info.message if error_info else None,
        )
        return PlanResponse(
            plan_id=session.session_id,
            success=success,
            graph=graph,
            graph_json=session.artifact if success else None,
            reasoning=session.reasoning,
            analysis=session.analysis,
            iterations=session.iteration_count,
            validation_logs=[attempt.log_line() for attempt in session.attempts],
            attempts=[_iteration_log(attempt) for attempt in session.attempts],
            error=error_info,
            metadata=metadata,
        )


def _iteration_log(attempt: Attempt) -> IterationLog:
    validation = None
    if attempt.outcome is not None:
        validation = ValidationResult(valid=attempt.outcome.valid, errors=list(attempt.outcome.messages))
    return IterationLog(
        iteration=attempt.index,
        status=attempt.status.value,
        prompt=attempt.prompt,
        response=attempt.response,
        graph_json=attempt.candidate,
        reasoning=attempt.reasoning,
        validation=validation,
        error=str(attempt.error) if attempt.error is not None else None,
        tokens_used=attempt.tokens_used,
        duration_seconds=round(attempt.duration, 6),
        timestamp=attempt.timestamp,
    )
