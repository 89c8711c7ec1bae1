"""Manager lifecycle and health reporting models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from ..notifications.models import QueueStats
from ..utils.timestamps import format_timestamp


class ManagerState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"


class HealthTier(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class HealthIssue:
    """A problem recorded by initialization or a health check."""

    severity: HealthTier
    message: str
    recorded_at: datetime


@dataclass
class PipelineStatus:
    """Point-in-time view of the pipeline, derived on request."""

    initialized: bool
    listener_active: bool
    queue_stats: QueueStats
    last_health_check: Optional[datetime]
    health: HealthTier
    errors: List[str] = field(default_factory=list)
    state: ManagerState = ManagerState.UNINITIALIZED

    def summary_lines(self) -> List[str]:
        """Human-readable report for the CLI."""
        stats = self.queue_stats
        lines = [
            f"State:            {self.state.value}",
            f"Listener active:  {'yes' if self.listener_active else 'no'}",
            f"Health:           {self.health.value.upper()}",
            f"Last health check: {format_timestamp(self.last_health_check) or 'never'}",
            (
                f"Jobs:             total={stats.total_jobs} pending={stats.pending_jobs} "
                f"processing={stats.processing_jobs} sent={stats.sent_jobs} "
                f"failed={stats.failed_jobs} cancelled={stats.cancelled_jobs}"
            ),
        ]
        if self.errors:
            lines.append("Recent problems:")
            lines.extend(f"  - {message}" for message in self.errors[-5:])
        return lines
