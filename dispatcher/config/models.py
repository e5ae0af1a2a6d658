"""Configuration schema models using Pydantic."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .duration import DurationParseError, parse_duration, validate_duration_range


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


def _duration_field(value: str, field_name: str, min_seconds: int, max_seconds: int) -> str:
    try:
        seconds = parse_duration(value)
        validate_duration_range(
            seconds, min_seconds=min_seconds, max_seconds=max_seconds, label=field_name
        )
    except DurationParseError as e:
        raise ValueError(str(e)) from e
    return value


class DispatchConfig(BaseModel):
    """Settings for a single dispatch invocation and its schedule."""

    batch_size: int = Field(
        50, ge=1, le=1000, description="Maximum queue entries read per invocation"
    )
    send_delay_ms: int = Field(
        600, ge=0, le=60000, description="Pause after each successful send (milliseconds)"
    )
    retention_days: int = Field(
        7, ge=1, le=365, description="Days a sent entry is kept before it is purged"
    )
    claim_lease: str = Field(
        "10m", description="How long a claimed entry stays reserved for one runner"
    )
    schedule_interval: str = Field(
        "1m", description="Interval between scheduled invocations in daemon mode"
    )
    max_attempts: int = Field(
        1, ge=1, le=20, description="Send attempts per entry before a transient failure is final"
    )
    retry_initial_delay: str = Field("1m", description="Delay before the first retry")
    retry_backoff_multiplier: float = Field(
        2.0, ge=1.0, le=5.0, description="Exponential backoff multiplier for retries"
    )
    retry_max_delay: str = Field("6h", description="Upper bound for the retry delay")

    # Computed fields
    claim_lease_seconds: Optional[int] = None
    schedule_interval_seconds: Optional[int] = None
    retry_initial_delay_seconds: Optional[int] = None
    retry_max_delay_seconds: Optional[int] = None

    @field_validator("claim_lease")
    @classmethod
    def validate_claim_lease(cls, v: str) -> str:
        """Lease must outlive a full batch of throttled sends."""
        return _duration_field(v, "claim_lease", 60, 86400)

    @field_validator("schedule_interval")
    @classmethod
    def validate_schedule_interval(cls, v: str) -> str:
        return _duration_field(v, "schedule_interval", 30, 86400)

    @field_validator("retry_initial_delay", "retry_max_delay")
    @classmethod
    def validate_retry_delay(cls, v: str, info) -> str:
        return _duration_field(v, info.field_name, 1, 7 * 86400)

    @model_validator(mode="after")
    def compute_durations(self):
        """Parse duration strings once so callers can use plain seconds."""
        self.claim_lease_seconds = parse_duration(self.claim_lease)
        self.schedule_interval_seconds = parse_duration(self.schedule_interval)
        self.retry_initial_delay_seconds = parse_duration(self.retry_initial_delay)
        self.retry_max_delay_seconds = parse_duration(self.retry_max_delay)

        if self.retry_max_delay_seconds < self.retry_initial_delay_seconds:
            raise ValueError(
                "retry_max_delay must be greater than or equal to retry_initial_delay"
            )

        return self

    @property
    def send_delay_seconds(self) -> float:
        return self.send_delay_ms / 1000.0


class EmailConfig(BaseModel):
    """Email transport settings."""

    api_url: str = Field(
        "https://api.resend.com/emails", description="Endpoint of the email HTTP API"
    )
    request_timeout: int = Field(
        30, ge=5, le=300, description="Request timeout for email API calls (seconds)"
    )

    @field_validator("api_url")
    @classmethod
    def validate_api_url(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped.startswith(("http://", "https://")):
            raise ValueError("api_url must be an http(s) URL")
        return stripped


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(
        LogFormat.KEY_VALUE, description="Log output format (json or key-value)"
    )

    model_config = {"use_enum_values": True}


class AppConfig(BaseModel):
    """Root configuration object for the notification dispatcher."""

    dispatch: DispatchConfig = Field(
        default_factory=DispatchConfig, description="Dispatch batching and scheduling"
    )
    email: EmailConfig = Field(default_factory=EmailConfig, description="Email settings")
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
