"""Pipeline supervision: lifecycle, health checks and wiring."""

from .factory import build_pipeline, build_transport
from .manager import PipelineManager
from .models import HealthIssue, HealthTier, ManagerState, PipelineStatus

__all__ = [
    "PipelineManager",
    "PipelineStatus",
    "HealthIssue",
    "HealthTier",
    "ManagerState",
    "build_pipeline",
    "build_transport",
]
