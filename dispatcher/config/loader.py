"""Configuration loader for the notification dispatcher."""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .models import AppConfig
from .validators import check_for_warnings, emit_warnings

DEFAULT_CONFIG_LOCATIONS = (
    Path("config.yaml"),
    Path("config") / "config.yaml",
)


def load_config(config_path: Optional[Path] = None) -> tuple[AppConfig, EnvironmentConfig]:
    """
    Load and validate configuration from YAML and environment variables.

    Config file lookup:
    1. Use config_path if given (it must exist)
    2. Try config.yaml in the current directory
    3. Try ./config/config.yaml
    4. Fall back to built-in defaults

    Returns:
        Tuple of (AppConfig, EnvironmentConfig)

    Raises:
        ConfigurationError: If the file or the environment is invalid
    """
    config_file = _find_config_file(config_path)
    config_dict = _read_yaml(config_file) if config_file else {}

    warnings = check_for_warnings(config_dict)
    if warnings:
        emit_warnings(warnings)

    app_config = _validate(config_dict)

    try:
        env_config = load_environment_config()
    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(
            f"Failed to load environment configuration: {e}",
            suggestions=[
                "Copy .env.example to .env and fill in your credentials",
                "Ensure all required environment variables are set",
            ],
        )

    return app_config, env_config


def _read_yaml(config_file: Path) -> Dict[str, Any]:
    try:
        with open(config_file, "r") as f:
            config_dict = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Failed to parse YAML configuration: {e}",
            suggestions=[
                "Check YAML syntax in your config file",
                "Ensure proper indentation (use spaces, not tabs)",
            ],
        )
    except OSError as e:
        raise ConfigurationError(
            f"Failed to read configuration file: {e}",
            suggestions=[f"Ensure {config_file} is readable"],
        )

    if config_dict is None:
        return {}

    if not isinstance(config_dict, dict):
        raise ConfigurationError(
            "Configuration file must contain a mapping at the top level",
            suggestions=["Review config.example.yaml for the expected layout"],
        )

    return config_dict


def _validate(config_dict: Dict[str, Any]) -> AppConfig:
    try:
        return AppConfig.model_validate(config_dict)
    except ValidationError as e:
        errors = []
        for error in e.errors():
            field_path = " -> ".join(str(loc) for loc in error["loc"])
            error_type = error["type"]

            if error_type == "missing":
                errors.append(f"Missing required field: {field_path}")
            elif error_type in ("string_type", "int_type", "int_parsing", "float_type", "bool_type"):
                expected_type = error_type.split("_")[0]
                errors.append(
                    f"Invalid type for '{field_path}': expected {expected_type}, got {error.get('input')!r}"
                )
            elif error_type == "extra_forbidden":
                errors.append(f"Unknown field: {field_path}")
            else:
                errors.append(f"{field_path}: {error['msg']}")

        raise ConfigurationError(
            "Configuration validation failed",
            errors=errors,
            suggestions=[
                "Review config.example.yaml for correct format",
                "Durations accept values like '30s', '10m', '1h30m' or 'PT10M'",
            ],
        )


def _find_config_file(config_path: Optional[Path] = None) -> Optional[Path]:
    """Resolve the config file, or None when the defaults should be used."""
    if config_path:
        if not config_path.exists():
            raise ConfigurationError(
                f"Specified configuration file not found: {config_path}",
                suggestions=[
                    f"Ensure {config_path} exists",
                    "Omit --config to run with built-in defaults",
                ],
            )
        return config_path

    for candidate in DEFAULT_CONFIG_LOCATIONS:
        if candidate.exists():
            return candidate

    return None


def validate_config_file(config_path: Path) -> bool:
    """
    Validate a configuration file without loading environment variables.

    Returns:
        True if valid, False otherwise (errors printed to stdout)
    """
    try:
        _validate(_read_yaml(config_path))
        print(f"✓ Configuration file {config_path} is valid")
        return True
    except ConfigurationError as e:
        print(f"✗ Configuration validation failed:\n{e}")
        return False
