"""LLM-backed planner that turns task descriptions into validated execution graphs."""

from .cancellation import CancellationToken, PlanningCancelled
from .config import PlannerConfig, load_config
from .planning.schemas import Constraints, PlanRequest, PlanResponse, TaskAnalysis
from .planning.service import PlannerService
from .validation import GraphValidator

__all__ = [
    "CancellationToken",
    "Constraints",
    "GraphValidator",
    "PlanRequest",
    "PlanResponse",
    "PlannerConfig",
    "PlannerService",
    "PlanningCancelled",
    "TaskAnalysis",
    "load_config",
]

__version__ = "0.1.0"
