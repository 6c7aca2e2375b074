"""
Planning pipeline: analysis, prompt assembly, extraction and refinement.
"""

from importlib import import_module
from typing import Any

_EXPORTS = {
    "Analyzer": "analyzer",
    "Extractor": "extractor",
    "Generator": "generator",
    "PlannerService": "service",
    "PlanRequest": "schemas",
    "PlanResponse": "schemas",
    "Prompter": "prompter",
    "RefinementSession": "session",
}

__all__ = sorted(_EXPORTS)


def __getattr__(name: str) -> Any:
    """Lazily import planning helpers so validators can depend on session types."""
    if name in _EXPORTS:
        module = import_module(f"node_planner.planning.{_EXPORTS[name]}")
        return getattr(module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
