"""Configuration management for the notification dispatcher."""

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .loader import load_config, validate_config_file
from .models import (
    AppConfig,
    DispatchConfig,
    EmailConfig,
    LogFormat,
    LogLevel,
    LoggingConfig,
)

__all__ = [
    "load_config",
    "validate_config_file",
    "load_environment_config",
    "AppConfig",
    "DispatchConfig",
    "EmailConfig",
    "LoggingConfig",
    "EnvironmentConfig",
    "LogLevel",
    "LogFormat",
    "ConfigurationError",
]
