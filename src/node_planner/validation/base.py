"""Port through which the planner consults a schema authority."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from ..planning.session import ValidationOutcome

__all__ = ["SchemaValidator"]


@runtime_checkable
class SchemaValidator(Protocol):
    """Judge whether a candidate graph is structurally valid."""

    def validate(self, candidate: bytes) -> ValidationOutcome:
        ...
