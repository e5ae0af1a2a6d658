"""Environment variable loading and validation."""

import os
from email.utils import formataddr, parseaddr
from typing import Optional

from email_validator import EmailNotValidError, validate_email

from .exceptions import ConfigurationError

DEFAULT_FROM_EMAIL = "noreply@your-domain.com"
DEFAULT_APP_URL = "https://your-app-url.com"
DEFAULT_DATABASE_URL = "sqlite:///./data/notifications.db"
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class EnvironmentConfig:
    """Environment variable configuration holder."""

    def __init__(
        self,
        resend_api_key: str,
        from_email: Optional[str] = None,
        app_url: Optional[str] = None,
        database_url: Optional[str] = None,
        log_level: Optional[str] = None,
        environment: Optional[str] = None,
    ):
        self.resend_api_key = resend_api_key
        self.from_email = from_email or DEFAULT_FROM_EMAIL
        self.app_url = (app_url or DEFAULT_APP_URL).rstrip("/")
        self.database_url = database_url or DEFAULT_DATABASE_URL
        self.log_level = log_level
        self.environment = environment or "local"


def load_environment_config() -> EnvironmentConfig:
    """
    Load and validate environment variables.

    Required environment variables:
    - RESEND_API_KEY: API key for the email HTTP API

    Optional environment variables:
    - FROM_EMAIL: Sender address, plain or "Name <addr>" (default: noreply@your-domain.com)
    - APP_URL: Base URL used to build call-to-action links
    - DATABASE_URL: SQLAlchemy URL of the notification store
    - LOG_LEVEL: Override log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - ENVIRONMENT: Environment label attached to every log line

    Raises:
        ConfigurationError: If required variables are missing or invalid
    """
    errors = []

    resend_api_key = (os.getenv("RESEND_API_KEY") or "").strip()
    from_email = os.getenv("FROM_EMAIL")
    app_url = os.getenv("APP_URL")
    database_url = os.getenv("DATABASE_URL")
    log_level = os.getenv("LOG_LEVEL")
    environment = os.getenv("ENVIRONMENT")

    if not resend_api_key:
        errors.append("Missing required environment variable: RESEND_API_KEY")

    if from_email:
        try:
            from_email = normalize_sender(from_email)
        except ValueError as e:
            errors.append(str(e))

    if app_url and not app_url.strip().startswith(("http://", "https://")):
        errors.append(f"Invalid APP_URL: '{app_url}'. Must start with http:// or https://")

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
                "Ensure RESEND_API_KEY is set",
                "Check that FROM_EMAIL is a valid address",
            ],
        )

    return EnvironmentConfig(
        resend_api_key=resend_api_key,
        from_email=from_email,
        app_url=app_url.strip() if app_url else None,
        database_url=database_url,
        log_level=log_level.upper() if log_level else None,
        environment=environment,
    )


def normalize_sender(value: str) -> str:
    """
    Validate a sender address and return it in canonical form.

    Display names are kept: "Conclav <hello@conclav.club>" stays formatted
    that way with a normalized address part.

    Raises:
        ValueError: If the address part is not a valid email address
    """
    name, address = parseaddr(value.strip())
    try:
        normalized = validate_email(address, check_deliverability=False).normalized
    except EmailNotValidError as e:
        raise ValueError(f"Invalid email address in FROM_EMAIL: '{value}' - {e}") from e

    if name:
        return formataddr((name, normalized))
    return normalized
