"""Configuration loader for the task notifier."""

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from pydantic import ValidationError

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .models import AppConfig
from .validators import check_for_warnings, emit_warnings

DEFAULT_CANDIDATES = (
    Path("config.yaml"),
    Path("config") / "config.yaml",
)


def load_config(
    config_path: Optional[Path] = None, require_smtp: bool = True
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load the YAML settings and the environment variables.

    Args:
        config_path: Optional explicit path to the YAML file
        require_smtp: Whether SMTP variables must be present

    Returns:
        Tuple of (AppConfig, EnvironmentConfig)

    Raises:
        ConfigurationError: If either source is invalid
    """
    app_config = load_app_config(config_path)
    return app_config, load_environment_config(require_smtp=require_smtp)


def load_app_config(config_path: Optional[Path] = None) -> AppConfig:
    """
    Load and validate the YAML settings.

    Lookup order:
    1. ``config_path`` if given (must exist)
    2. ``config.yaml`` in the current directory
    3. ``config/config.yaml``
    4. Built-in defaults when no file is found

    Raises:
        ConfigurationError: If the file is unreadable or fails validation
    """
    config_file = _find_config_file(config_path)
    if config_file is None:
        return AppConfig()

    config_dict = _read_yaml(config_file)

    warning_messages = check_for_warnings(config_dict)
    if warning_messages:
        emit_warnings(warning_messages)

    try:
        return AppConfig.model_validate(config_dict)
    except ValidationError as e:
        raise ConfigurationError(
            f"Configuration validation failed: {config_file}",
            errors=_format_validation_errors(e),
            suggestions=[
                "Review config.example.yaml for correct format",
                "Durations look like '5s', '5m', '1h' or 'PT5M'",
            ],
        ) from e


def _read_yaml(config_file: Path) -> Dict[str, Any]:
    try:
        with open(config_file, "r", encoding="utf-8") as f:
            config_dict = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Failed to parse YAML configuration: {e}",
            suggestions=[
                "Check YAML syntax in your config file",
                "Ensure proper indentation (use spaces, not tabs)",
            ],
        ) from e
    except OSError as e:
        raise ConfigurationError(
            f"Failed to read configuration file: {e}",
            suggestions=[f"Ensure {config_file} is readable"],
        ) from e

    if config_dict is None:
        return {}
    if not isinstance(config_dict, dict):
        raise ConfigurationError(
            f"Configuration root must be a mapping, got {type(config_dict).__name__}",
            suggestions=["Copy config.example.yaml to config.yaml"],
        )
    return config_dict


def _format_validation_errors(error: ValidationError) -> List[str]:
    messages = []
    for detail in error.errors():
        field_path = " -> ".join(str(loc) for loc in detail["loc"]) or "(root)"
        if detail["type"] == "extra_forbidden":
            messages.append(f"Unknown field: {field_path}")
        elif detail["type"].endswith("_type"):
            expected = detail["type"][: -len("_type")]
            messages.append(
                f"Invalid type for '{field_path}': expected {expected}, got {detail.get('input')!r}"
            )
        else:
            messages.append(f"{field_path}: {detail['msg']}")
    return messages


def _find_config_file(config_path: Optional[Path]) -> Optional[Path]:
    if config_path is not None:
        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigurationError(
                f"Specified configuration file not found: {config_path}",
                suggestions=[f"Ensure {config_path} exists", "Check the path and try again"],
            )
        return config_path

    for candidate in DEFAULT_CANDIDATES:
        if candidate.exists():
            return candidate
    return None
