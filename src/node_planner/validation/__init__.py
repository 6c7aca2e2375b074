"""Schema authorities consulted by the refinement loop."""

from .base import SchemaValidator
from .graph import GraphValidator

__all__ = ["GraphValidator", "SchemaValidator"]
