"""Default schema authority for execution graphs."""

from __future__ import annotations

import json
from collections import Counter
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from ..planning.session import ValidationOutcome

__all__ = ["EXECUTOR_MODES", "ROUTER_MODES", "Edge", "Graph", "GraphValidator", "Node"]

EXECUTOR_MODES = ("agent", "llm", "tool")
ROUTER_MODES = ("deterministic", "llm", "hybrid")


class GraphModel(BaseModel):
    """Base model for graph documents; unknown keys are ignored."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class Node(GraphModel):
    id: str = Field(min_length=1)
    type: Literal["executor", "router"]
    mode: str
    description: str = ""
    config: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_mode(self) -> "Node":
        allowed = EXECUTOR_MODES if self.type == "executor" else ROUTER_MODES
        if self.mode not in allowed:
            raise ValueError(
                f"mode '{self.mode}' is not valid for {self.type} nodes "
                f"(expected one of: {', '.join(allowed)})"
            )
        return self


class Edge(GraphModel):
    source: str = Field(alias="from", min_length=1)
    target: str = Field(alias="to", min_length=1)
    condition: Optional[str] = None


class Graph(GraphModel):
    name: str = ""
    description: str = ""
    nodes: List[Node] = Field(min_length=1)
    edges: List[Edge]
    entry_point: str = Field(min_length=1)


def _format_error(entry: Dict[str, Any]) -> str:
    location = ".".join(str(part) for part in entry.get("loc", ()))
    message = str(entry.get("msg", "invalid value"))
    return f"{location}: {message}" if location else message


class GraphValidator:
    """Validate graph JSON against the node/edge schema and graph structure."""

    def __init__(self, *, max_nodes: Optional[int] = None) -> None:
        self._max_nodes = max_nodes

    @property
    def max_nodes(self) -> Optional[int]:
        return self._max_nodes

    def with_max_nodes(self, max_nodes: Optional[int]) -> "GraphValidator":
        """Return a validator with a different node limit."""
        return GraphValidator(max_nodes=max_nodes)

    def validate(self, candidate: bytes | str) -> ValidationOutcome:
        text = candidate.decode("utf-8", errors="replace") if isinstance(candidate, bytes) else candidate
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as error:
            return ValidationOutcome.failed([f"graph is not valid JSON: {error}"])
        if not isinstance(payload, dict):
            return ValidationOutcome.failed(["graph must be a JSON object"])

        try:
            graph = Graph.model_validate(payload)
        except ValidationError as error:
            return ValidationOutcome.failed([_format_error(entry) for entry in error.errors()])

        messages = self._structural_errors(graph)
        if messages:
            return ValidationOutcome.failed(messages)
        return ValidationOutcome.passed()

    def _structural_errors(self, graph: Graph) -> List[str]:
        messages: List[str] = []
        counts = Counter(node.id for node in graph.nodes)
        for node_id, count in counts.items():
            if count > 1:
                messages.append(f"nodes: duplicate node id '{node_id}'")

        known = set(counts)
        if graph.entry_point not in known:
            messages.append(f"entry_point: '{graph.entry_point}' does not match any node id")

        for index, edge in enumerate(graph.edges):
            if edge.source not in known:
                messages.append(f"edges.{index}.from: unknown node '{edge.source}'")
            if edge.target not in known:
                messages.append(f"edges.{index}.to: unknown node '{edge.target}'")

        if self._max_nodes is not None and len(graph.nodes) > self._max_nodes:
            messages.append(
                f"nodes: graph has {len(graph.nodes)} nodes, exceeding the limit of {self._max_nodes}"
            )
        return messages
