"""Prompt templates and rendering for graph planning."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence

from .schemas import Constraints, TaskAnalysis

__all__ = [
    "DEFAULT_ERROR_FIXING_TEMPLATE",
    "DEFAULT_PLANNING_TEMPLATE",
    "DEFAULT_SYSTEM_PROMPT",
    "Prompter",
    "render_analysis",
    "render_constraints",
    "render_context",
    "render_validation_errors",
]

LOGGER = logging.getLogger(__name__)

SYSTEM_PROMPT_FILE = "system-prompt.txt"
PLANNING_TEMPLATE_FILE = "task-planning.txt"
ERROR_FIXING_TEMPLATE_FILE = "error-fixing.txt"

_PLACEHOLDER = re.compile(r"\{\{([A-Z_]+)\}\}")

SCHEMAS_SUMMARY = (
    "Graph schema: an object with \"nodes\", \"edges\" and \"entry_point\".\n"
    "- Executor nodes (\"type\": \"executor\") use mode agent, llm or tool.\n"
    "- Router nodes (\"type\": \"router\") use mode deterministic, llm or hybrid.\n"
    "- Every node has a unique \"id\"; edges connect nodes with \"from\" and \"to\" "
    "and may carry a \"condition\"; \"entry_point\" names the first node."
)

DEFAULT_SYSTEM_PROMPT = """You are an expert graph planning assistant for a workflow orchestration system.

Your role is to convert natural language task descriptions into valid execution graphs.

A graph consists of:
1. Executor nodes: perform actions using LLMs, tools, or both
2. Router nodes: make routing decisions (deterministic or LLM-based)
3. Edges: connect nodes to define execution flow

You must respond with a valid JSON graph that conforms to the graph schema.

Always include:
- A short "Reasoning:" section explaining your graph design
- Proper node IDs and edge connections
- Valid node configurations for each node type

Be concise and focus on creating minimal, effective graphs."""

DEFAULT_PLANNING_TEMPLATE = """Generate an execution graph for the following task:

{{TASK}}
{{CONTEXT}}
{{ANALYSIS}}
{{CONSTRAINTS}}
{{SCHEMAS}}

Respond with:
1. A "Reasoning:" section explaining your graph design
2. The complete JSON graph in a ```json fenced block

The graph must conform to the graph schema and be executable."""

DEFAULT_ERROR_FIXING_TEMPLATE = """The previous graph had validation errors. Please fix them.

Original Task: {{TASK}}

Previous Graph (attempt {{ATTEMPT}}):
{{PREVIOUS_GRAPH}}

Validation Errors:
{{VALIDATION_ERRORS}}

Generate a corrected graph that fixes these validation errors while maintaining the intent of the original task.

Respond with:
1. A "Reasoning:" section explaining your fixes
2. The corrected JSON graph in a ```json fenced block"""


def render_analysis(analysis: Optional[TaskAnalysis]) -> str:
    """Summarise the analysis for the planning prompt; empty when absent."""
    if analysis is None:
        return ""
    node_types = ", ".join(analysis.suggested_node_types) or "none"
    lines = [
        "Task Analysis:",
        f"- Complexity: {analysis.complexity.value}",
        f"- Requires Tools: {str(analysis.requires_tools).lower()}",
        f"- Requires Routing: {str(analysis.requires_routing).lower()}",
        f"- Suggested Node Types: {node_types}",
    ]
    if analysis.key_entities:
        lines.append(f"- Key Entities: {', '.join(analysis.key_entities)}")
    if analysis.intent:
        lines.append(f"- Intent: {analysis.intent}")
    return "\n" + "\n".join(lines) + "\n"


def render_constraints(constraints: Optional[Constraints]) -> str:
    """Summarise caller constraints; empty when none are set."""
    if constraints is None:
        return ""
    lines: list[str] = []
    if constraints.max_nodes is not None:
        lines.append(f"- Max Nodes: {constraints.max_nodes}")
    if constraints.preferred_modes:
        lines.append(f"- Preferred Modes: {', '.join(constraints.preferred_modes)}")
    if constraints.available_tools:
        lines.append(f"- Available Tools: {', '.join(constraints.available_tools)}")
    if not lines:
        return ""
    return "\nConstraints:\n" + "\n".join(lines) + "\n"


def render_context(context: Optional[Mapping[str, Any]]) -> str:
    """Render caller-supplied context entries as a bullet list."""
    if not context:
        return ""
    lines = ["Additional Context:"]
    for key, value in context.items():
        if isinstance(value, str):
            formatted = value
        else:
            try:
                formatted = json.dumps(value, sort_keys=True, ensure_ascii=False)
            except (TypeError, ValueError):
                formatted = str(value)
        lines.append(f"- {key}: {formatted}")
    return "\n" + "\n".join(lines) + "\n"


def render_validation_errors(messages: Sequence[str]) -> str:
    """Number violation messages starting at 1, one per line."""
    return "\n".join(f"{index}. {message}" for index, message in enumerate(messages, start=1))


def _substitute(template: str, values: Mapping[str, str]) -> str:
    # Single pass: substituted text is never re-scanned and unknown names stay literal.
    return _PLACEHOLDER.sub(lambda match: values.get(match.group(1), match.group(0)), template)


class Prompter:
    """Build planning and corrective prompts from templates.

    Templates are read from ``prompt_path`` when the files exist there; any
    missing file falls back to the built-in text.
    """

    def __init__(self, prompt_path: Path | str | None = None) -> None:
        self._prompt_path = Path(prompt_path) if prompt_path else None
        self.system_prompt = self._load(SYSTEM_PROMPT_FILE, DEFAULT_SYSTEM_PROMPT)
        self.planning_template = self._load(PLANNING_TEMPLATE_FILE, DEFAULT_PLANNING_TEMPLATE)
        self.error_fixing_template = self._load(ERROR_FIXING_TEMPLATE_FILE, DEFAULT_ERROR_FIXING_TEMPLATE)

    def _load(self, filename: str, default: str) -> str:
        if self._prompt_path is None:
            return default
        path = self._prompt_path / filename
        try:
            return path.read_text(encoding="utf-8")
        except OSError:
            LOGGER.debug("prompt file %s not found, using default", path)
            return default

    def build_planning_prompt(
        self,
        task: str,
        *,
        analysis: Optional[TaskAnalysis] = None,
        constraints: Optional[Constraints] = None,
        context: Optional[Mapping[str, Any]] = None,
    ) -> str:
        return _substitute(
            self.planning_template,
            {
                "TASK": task,
                "CONTEXT": render_context(context),
                "ANALYSIS": render_analysis(analysis),
                "CONSTRAINTS": render_constraints(constraints),
                "SCHEMAS": SCHEMAS_SUMMARY,
            },
        )

    def build_error_fixing_prompt(
        self,
        task: str,
        previous_graph: str,
        validation_errors: Sequence[str],
        attempt: int,
    ) -> str:
        return _substitute(
            self.error_fixing_template,
            {
                "TASK": task,
                "PREVIOUS_GRAPH": previous_graph,
                "ATTEMPT": str(attempt),
                "VALIDATION_ERRORS": render_validation_errors(validation_errors),
            },
        )
