"""Configuration management for the task notifier."""

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .loader import load_app_config, load_config
from .models import (
    AppConfig,
    EventLogConfig,
    HealthConfig,
    ListenerConfig,
    LogFormat,
    LoggingConfig,
    LogLevel,
    QueueConfig,
    TransportConfig,
)

__all__ = [
    "load_config",
    "load_app_config",
    "load_environment_config",
    "AppConfig",
    "QueueConfig",
    "ListenerConfig",
    "HealthConfig",
    "EventLogConfig",
    "TransportConfig",
    "LoggingConfig",
    "EnvironmentConfig",
    "LogLevel",
    "LogFormat",
    "ConfigurationError",
]
