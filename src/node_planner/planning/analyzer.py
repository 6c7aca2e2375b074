"""Optional pre-step that classifies a task before graph generation."""

from __future__ import annotations

import json
import logging
from typing import Optional

from pydantic import ValidationError

from ..cancellation import CancellationToken, PlanningCancelled
from ..models.llm_client import CompletionRequest, LLMClient, LLMClientError
from .errors import AnalysisError, ExtractionError
from .extractor import extract_json
from .schemas import TaskAnalysis

__all__ = ["ANALYSIS_SYSTEM_PROMPT", "Analyzer"]

LOGGER = logging.getLogger(__name__)

ANALYSIS_MAX_TOKENS = 1024

ANALYSIS_SYSTEM_PROMPT = """You are a task analysis expert for a graph-based workflow orchestration system.

Your role is to analyze natural language task descriptions and extract:
1. Task complexity (simple, moderate, complex)
2. Whether the task requires external tools
3. Whether the task requires conditional routing/branching
4. Suggested node types (executor nodes, router nodes)
5. Key entities mentioned in the task
6. Overall intent of the task

Respond with a JSON object in this exact format:
{
  "complexity": "simple|moderate|complex",
  "requires_tools": true|false,
  "requires_routing": true|false,
  "suggested_node_types": ["executor", "router"],
  "key_entities": ["entity1", "entity2"],
  "intent": "Brief description of task intent",
  "reasoning": "Explanation of your analysis"
}

Be concise and accurate. Focus on extracting actionable insights for graph planning."""


class Analyzer:
    """Issue a single model call and parse its answer into ``TaskAnalysis``."""

    def __init__(self, client: LLMClient) -> None:
        self._client = client

    def analyze(self, task: str, *, cancel: Optional[CancellationToken] = None) -> TaskAnalysis:
        LOGGER.debug("analyzing task: %s", task)
        request = CompletionRequest(
            system_prompt=ANALYSIS_SYSTEM_PROMPT,
            user_prompt=f"Analyze this task:\n\n{task}",
            max_tokens=ANALYSIS_MAX_TOKENS,
            temperature=0.0,
            metadata={"phase": "analyze", "task": task},
        )
        try:
            response = self._client.complete(request, cancel=cancel)
        except PlanningCancelled:
            raise
        except LLMClientError as error:
            raise AnalysisError(f"LLM analysis failed: {error}") from error
        return self.parse(response.content)

    @staticmethod
    def parse(content: str) -> TaskAnalysis:
        """Parse a model reply into ``TaskAnalysis`` or raise ``AnalysisError``."""
        try:
            document = extract_json(content, marker_key='"complexity"')
        except ExtractionError as error:
            raise AnalysisError(f"failed to parse analysis: {error}") from error

        payload = json.loads(document)
        if not isinstance(payload, dict):
            raise AnalysisError("failed to parse analysis: expected a JSON object")
        # Identity and timestamp are assigned locally, never taken from the model.
        payload.pop("task_id", None)
        payload.pop("analyzed_at", None)
        try:
            return TaskAnalysis.model_validate(payload)
        except ValidationError as error:
            raise AnalysisError(f"failed to parse analysis: {error}") from error
