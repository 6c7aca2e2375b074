"""Offline client that synthesizes deterministic replies for demos and tests."""

from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Optional

from .llm_client import CompletionRequest, CompletionResponse, LLMClient, UsageStats
from .retry import RetryPolicy

__all__ = ["OfflineLLMClient"]

_ROUTING_WORDS = {"route", "routes", "routing", "classify", "triage", "branch", "depending", "if", "by"}
_TOOL_WORDS = {"fetch", "search", "api", "query", "download", "scrape", "call", "lookup"}
_STOPWORDS = {"a", "an", "the", "and", "or", "of", "to", "by", "for", "in", "on", "with", "from", "into"}


class OfflineLLMClient(LLMClient):
    """Local stub that answers analysis and planning prompts heuristically."""

    provider = "offline"

    def __init__(self, *, usage: Optional[UsageStats] = None) -> None:
        super().__init__(
            "offline",
            retry_policy=RetryPolicy(max_attempts=1, initial_delay=0.0, max_delay=0.0, multiplier=2.0),
            usage=usage,
        )

    def _raw_complete(self, request: CompletionRequest, *, timeout: Optional[float]) -> CompletionResponse:
        phase = str(request.metadata.get("phase", "plan"))
        task = str(request.metadata.get("task") or request.user_prompt)
        if phase == "analyze":
            content = json.dumps(self._analysis(task), indent=2)
        else:
            graph = self._graph(task)
            content = (
                f"Reasoning: Offline heuristic graph for the task '{task.strip()}'.\n\n"
                f"```json\n{json.dumps(graph, indent=2)}\n```"
            )
        prompt_chars = len(request.system_prompt) + len(request.user_prompt)
        return CompletionResponse(
            content=content,
            model=self._model,
            tokens_used=(prompt_chars + len(content)) // 4,
            finish_reason="stop",
        )

    @staticmethod
    def _words(task: str) -> List[str]:
        return [word.lower() for word in re.findall(r"[A-Za-z0-9]+", task)]

    def _analysis(self, task: str) -> Dict[str, Any]:
        words = self._words(task)
        requires_routing = any(word in _ROUTING_WORDS for word in words)
        requires_tools = any(word in _TOOL_WORDS for word in words)
        if len(words) > 25:
            complexity = "complex"
        elif requires_routing or requires_tools:
            complexity = "moderate"
        else:
            complexity = "simple"
        entities = [word for word in words if word not in _STOPWORDS and len(word) > 3][:5]
        node_types = ["executor", "router"] if requires_routing else ["executor"]
        return {
            "complexity": complexity,
            "requires_tools": requires_tools,
            "requires_routing": requires_routing,
            "suggested_node_types": node_types,
            "key_entities": entities,
            "intent": task.strip()[:120],
            "reasoning": "Keyword heuristics from the offline client.",
        }

    def _graph(self, task: str) -> Dict[str, Any]:
        words = self._words(task)
        nodes: List[Dict[str, Any]] = [
            {"id": "intake", "type": "executor", "mode": "llm", "description": "Interpret the incoming request."}
        ]
        edges: List[Dict[str, Any]] = []
        if any(word in _ROUTING_WORDS for word in words):
            nodes.extend(
                [
                    {"id": "router", "type": "router", "mode": "llm", "description": "Choose a branch."},
                    {"id": "branch_primary", "type": "executor", "mode": "llm", "description": "Primary handling."},
                    {"id": "branch_fallback", "type": "executor", "mode": "llm", "description": "Fallback handling."},
                ]
            )
            edges.extend(
                [
                    {"from": "intake", "to": "router"},
                    {"from": "router", "to": "branch_primary", "condition": "primary"},
                    {"from": "router", "to": "branch_fallback", "condition": "fallback"},
                ]
            )
        else:
            mode = "tool" if any(word in _TOOL_WORDS for word in words) else "llm"
            nodes.extend(
                [
                    {"id": "execute", "type": "executor", "mode": mode, "description": "Carry out the task."},
                    {"id": "summarize", "type": "executor", "mode": "llm", "description": "Summarise the result."},
                ]
            )
            edges.extend([{"from": "intake", "to": "execute"}, {"from": "execute", "to": "summarize"}])
        return {
            "name": "offline-plan",
            "description": task.strip()[:200],
            "nodes": nodes,
            "edges": edges,
            "entry_point": "intake",
        }
