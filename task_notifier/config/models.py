"""Configuration schema models using Pydantic."""

from enum import Enum
from typing import List, Literal, Optional

from pydantic import AnyHttpUrl, BaseModel, Field, field_validator, model_validator

from .duration import DurationParseError, parse_duration, validate_duration_range

DEFAULT_NOTIFY_STATUSES = [
    "ASSIGNED",
    "IN_PROGRESS",
    "WAITING_CONFIRM",
    "APPROVED",
    "REJECTED",
]

DEFAULT_APP_URL = "http://localhost:5173"


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    KEY_VALUE = "key-value"


def _checked_duration(value: str, min_seconds: int, max_seconds: int, label: str) -> int:
    try:
        seconds = parse_duration(value)
        validate_duration_range(seconds, min_seconds, max_seconds, label=label)
    except DurationParseError as e:
        raise ValueError(str(e)) from e
    return seconds


class QueueConfig(BaseModel):
    """Delivery queue settings."""

    dispatch_interval: str = Field("5s", description="How often the queue dispatches a job")
    max_retries: int = Field(
        3, ge=1, le=10, description="Total delivery attempts before a job is failed"
    )
    backoff_unit: str = Field(
        "1m", description="Retry delay unit; attempt n waits 2**n units"
    )
    max_concurrent_sends: int = Field(
        5, ge=1, le=50, description="Parallel per-recipient sends within one job"
    )
    send_timeout: str = Field("30s", description="Deadline for a single recipient send")
    default_priority: Literal["low", "normal", "high"] = "normal"

    dispatch_interval_seconds: Optional[int] = None
    backoff_unit_seconds: Optional[int] = None
    send_timeout_seconds: Optional[int] = None

    @model_validator(mode="after")
    def compute_durations(self):
        self.dispatch_interval_seconds = _checked_duration(
            self.dispatch_interval, 1, 3600, "dispatch_interval"
        )
        self.backoff_unit_seconds = _checked_duration(
            self.backoff_unit, 1, 3600, "backoff_unit"
        )
        self.send_timeout_seconds = _checked_duration(
            self.send_timeout, 1, 600, "send_timeout"
        )
        return self


class ListenerConfig(BaseModel):
    """Change-event listener settings."""

    notify_statuses: List[str] = Field(
        default_factory=lambda: list(DEFAULT_NOTIFY_STATUSES),
        description="Task states that may trigger a notification",
    )
    dedup_window: str = Field("5m", description="Repeat events inside this window are dropped")
    dedup_retention: str = Field("1h", description="Age after which dedup keys are pruned")
    app_url: AnyHttpUrl = Field(
        DEFAULT_APP_URL, description="Base URL used for task deep links"
    )
    poll_interval: str = Field("10s", description="Polling change feed interval")

    dedup_window_seconds: Optional[int] = None
    dedup_retention_seconds: Optional[int] = None
    poll_interval_seconds: Optional[int] = None

    @field_validator("notify_statuses")
    @classmethod
    def normalize_statuses(cls, v: List[str]) -> List[str]:
        """Uppercase and deduplicate state names, dropping blanks."""
        normalized: List[str] = []
        for status in v:
            cleaned = status.strip().upper()
            if cleaned and cleaned not in normalized:
                normalized.append(cleaned)
        if not normalized:
            raise ValueError("notify_statuses must name at least one status")
        return normalized

    @model_validator(mode="after")
    def compute_durations(self):
        self.dedup_window_seconds = _checked_duration(
            self.dedup_window, 1, 86400, "dedup_window"
        )
        self.dedup_retention_seconds = _checked_duration(
            self.dedup_retention, 1, 7 * 86400, "dedup_retention"
        )
        if self.dedup_retention_seconds < self.dedup_window_seconds:
            raise ValueError("dedup_retention must be at least as long as dedup_window")
        self.poll_interval_seconds = _checked_duration(
            self.poll_interval, 1, 3600, "poll_interval"
        )
        return self

    @property
    def base_url(self) -> str:
        """App URL without a trailing slash."""
        return str(self.app_url).rstrip("/")


class HealthConfig(BaseModel):
    """Health check thresholds and housekeeping."""

    check_interval: str = Field("5m", description="How often the health check runs")
    failed_ratio_error: float = Field(0.2, gt=0, le=1)
    pending_error: int = Field(200, ge=1)
    failed_ratio_warning: float = Field(0.1, gt=0, le=1)
    pending_warning: int = Field(100, ge=1)
    sweep_after_hours: float = Field(1, ge=0, description="Age at which finished jobs are swept")
    log_retention_hours: float = Field(24, ge=0, description="Age at which log entries are pruned")

    check_interval_seconds: Optional[int] = None

    @model_validator(mode="after")
    def validate_thresholds(self):
        self.check_interval_seconds = _checked_duration(
            self.check_interval, 10, 86400, "check_interval"
        )
        if self.failed_ratio_warning > self.failed_ratio_error:
            raise ValueError("failed_ratio_warning cannot exceed failed_ratio_error")
        if self.pending_warning > self.pending_error:
            raise ValueError("pending_warning cannot exceed pending_error")
        return self


class EventLogConfig(BaseModel):
    """Event log buffer settings."""

    capacity: int = Field(1000, ge=10, le=100000)
    level: Literal["debug", "info", "warn", "error"] = "info"


class TransportConfig(BaseModel):
    """Mail transport settings (credentials come from the environment)."""

    use_tls: bool = Field(True, description="Use STARTTLS (implicit TLS on port 465)")
    timeout: int = Field(30, ge=1, le=300, description="SMTP socket timeout in seconds")
    dry_run: bool = Field(False, description="Log messages instead of sending them")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(
        LogFormat.KEY_VALUE, description="Log output format (json or key-value)"
    )

    model_config = {"use_enum_values": True, "validate_default": True}


class AppConfig(BaseModel):
    """Root configuration object for the task notifier. Every section is optional."""

    queue: QueueConfig = Field(default_factory=QueueConfig)
    listener: ListenerConfig = Field(default_factory=ListenerConfig)
    health: HealthConfig = Field(default_factory=HealthConfig)
    event_log: EventLogConfig = Field(default_factory=EventLogConfig)
    transport: TransportConfig = Field(default_factory=TransportConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"extra": "forbid"}
