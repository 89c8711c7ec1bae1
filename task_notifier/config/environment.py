"""Environment variable loading and validation."""

import os
from typing import Optional

from email_validator import EmailNotValidError, validate_email

from .exceptions import ConfigurationError
from .models import DEFAULT_APP_URL

VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class EnvironmentConfig:
    """Secrets and deployment settings read from the process environment."""

    def __init__(
        self,
        smtp_host: Optional[str] = None,
        smtp_port: int = 587,
        smtp_user: Optional[str] = None,
        smtp_pass: Optional[str] = None,
        smtp_sender_name: Optional[str] = None,
        smtp_sender_email: Optional[str] = None,
        database_url: Optional[str] = None,
        app_url: Optional[str] = None,
        log_level: Optional[str] = None,
        environment: Optional[str] = None,
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_pass = smtp_pass
        self.smtp_sender_name = smtp_sender_name or "Tasko"
        self.smtp_sender_email = smtp_sender_email or smtp_user
        self.database_url = database_url
        self.app_url = app_url
        self.log_level = log_level
        self.environment = environment or "local"

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_sender_email)

    @property
    def resolved_app_url(self) -> str:
        return (self.app_url or DEFAULT_APP_URL).rstrip("/")


def load_environment_config(require_smtp: bool = True) -> EnvironmentConfig:
    """
    Load and validate environment variables.

    SMTP variables:
    - SMTP_HOST, SMTP_PORT (default 587)
    - SMTP_USER / SMTP_PASS (set both or neither)
    - SMTP_SENDER_NAME (default "Tasko"), SMTP_SENDER_EMAIL (default SMTP_USER)

    Other variables:
    - DATABASE_URL: SQLAlchemy URL of the host application's database
    - APP_URL: Base URL for task deep links
    - LOG_LEVEL: Overrides the configured log level
    - ENVIRONMENT: Label stamped on every log record

    Args:
        require_smtp: When False (dry runs) a missing SMTP_HOST is accepted

    Returns:
        EnvironmentConfig with validated values

    Raises:
        ConfigurationError: If variables are missing or invalid
    """
    errors = []

    smtp_host = os.getenv("SMTP_HOST")
    smtp_port_str = os.getenv("SMTP_PORT")
    smtp_user = os.getenv("SMTP_USER")
    smtp_pass = os.getenv("SMTP_PASS")
    sender_email = os.getenv("SMTP_SENDER_EMAIL")
    log_level = os.getenv("LOG_LEVEL")

    if require_smtp and not smtp_host:
        errors.append("Missing required environment variable: SMTP_HOST")

    smtp_port = 587
    if smtp_port_str:
        try:
            smtp_port = int(smtp_port_str)
        except ValueError:
            errors.append(f"Invalid SMTP_PORT: '{smtp_port_str}'. Must be a valid integer.")
        else:
            if not 1 <= smtp_port <= 65535:
                errors.append(f"Invalid SMTP_PORT: {smtp_port}. Must be between 1 and 65535.")

    if bool(smtp_user) != bool(smtp_pass):
        present, missing = ("SMTP_USER", "SMTP_PASS") if smtp_user else ("SMTP_PASS", "SMTP_USER")
        errors.append(f"{present} is set but {missing} is not. Both must be set for authentication.")

    if require_smtp and not (sender_email or smtp_user):
        errors.append("Missing sender address: set SMTP_SENDER_EMAIL or SMTP_USER")

    if sender_email:
        try:
            sender_email = validate_email(sender_email, check_deliverability=False).normalized
        except EmailNotValidError as e:
            errors.append(f"Invalid SMTP_SENDER_EMAIL '{sender_email}': {e}")

    if log_level and log_level.upper() not in VALID_LOG_LEVELS:
        errors.append(
            f"Invalid LOG_LEVEL: '{log_level}'. Must be one of: {', '.join(VALID_LOG_LEVELS)}"
        )

    if errors:
        raise ConfigurationError(
            "Environment variable validation failed",
            errors=errors,
            suggestions=[
                "Copy .env.example to .env and fill in your credentials",
                "Use --dry-run to run without SMTP settings",
            ],
        )

    return EnvironmentConfig(
        smtp_host=smtp_host,
        smtp_port=smtp_port,
        smtp_user=smtp_user,
        smtp_pass=smtp_pass,
        smtp_sender_name=os.getenv("SMTP_SENDER_NAME"),
        smtp_sender_email=sender_email,
        database_url=os.getenv("DATABASE_URL"),
        app_url=os.getenv("APP_URL"),
        log_level=log_level.upper() if log_level else None,
        environment=os.getenv("ENVIRONMENT"),
    )
