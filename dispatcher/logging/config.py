"""Root logger setup: JSON or key-value lines on stdout."""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Literal

from .context import get_log_context

LogFormat = Literal["json", "key-value"]

SERVICE_NAME = "notification-dispatcher"

# LogRecord attributes that are never emitted as extra fields
_RECORD_ATTRS = frozenset(
    {
        "name", "msg", "args", "created", "filename", "funcName", "levelname",
        "levelno", "lineno", "module", "msecs", "message", "pathname", "process",
        "processName", "relativeCreated", "thread", "threadName", "asctime",
        "exc_info", "exc_text", "stack_info", "taskName",
    }
)

# extra fields whose values must never reach the log stream
_SECRET_FIELDS = frozenset({"api_key", "authorization", "resend_api_key"})


def _extra_fields(record: logging.LogRecord, skip=frozenset()) -> Dict[str, Any]:
    fields = {}
    for key, value in record.__dict__.items():
        if key in _RECORD_ATTRS or key in skip or key.startswith("_"):
            continue
        fields[key] = "***" if key in _SECRET_FIELDS else value
    return fields


class ContextualFilter(logging.Filter):
    """Adds ``service``/``environment`` and the active log context to records.

    Explicit ``extra=`` values on the call win over context fields.
    """

    def __init__(self, service: str = SERVICE_NAME, environment: str = "local"):
        super().__init__()
        self.service = service
        self.environment = environment

    def filter(self, record: logging.LogRecord) -> bool:
        record.service = self.service
        record.environment = self.environment

        for key, value in get_log_context().items():
            if not hasattr(record, key):
                setattr(record, key, value)

        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line with ``timestamp``, ``level``, ``message`` first."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj: Dict[str, Any] = {
            "timestamp": self._format_timestamp(record.created),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, value in _extra_fields(record).items():
            if isinstance(value, datetime):
                log_obj[key] = value.isoformat()
            elif isinstance(value, (str, int, float, bool, type(None), list, dict)):
                log_obj[key] = value
            else:
                log_obj[key] = str(value)

        if record.exc_info:
            log_obj["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(log_obj, ensure_ascii=False, default=str)

    @staticmethod
    def _format_timestamp(created: float) -> str:
        dt = datetime.fromtimestamp(created, tz=timezone.utc)
        return dt.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


class KeyValueFormatter(logging.Formatter):
    """``2025-01-01 10:00:00 [INFO] name: message key=value ...`` lines."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)

        pairs = []
        extras = _extra_fields(record, skip={"service", "environment"})
        for key in sorted(extras):
            pairs.append(f"{key}={self._format_value(extras[key])}")

        return f"{base} {' '.join(pairs)}" if pairs else base

    @staticmethod
    def _format_value(value: Any) -> str:
        if value is None:
            return "null"
        if isinstance(value, bool):
            return str(value).lower()
        if isinstance(value, datetime):
            return value.isoformat()
        text = str(value)
        if any(ch in text for ch in " =,"):
            return f'"{text}"'
        return text


def configure_logging(
    level: str = "INFO",
    format_type: LogFormat = "key-value",
    environment: str = "local",
) -> None:
    """
    Install a single stdout handler on the root logger.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        format_type: 'json' for machine-readable lines, 'key-value' for humans
        environment: Label added to every record (production, staging, local)

    Raises:
        ValueError: If level or format_type is invalid
    """
    numeric_level = getattr(logging, level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {level}")

    if format_type not in ("json", "key-value"):
        raise ValueError(f"Invalid log format: {format_type}. Must be 'json' or 'key-value'")

    handler = logging.StreamHandler(sys.stdout)
    if format_type == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            KeyValueFormatter(
                "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
    handler.addFilter(ContextualFilter(service=SERVICE_NAME, environment=environment))

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    # urllib3 logs every request at DEBUG, including the email API endpoint
    logging.getLogger("urllib3").setLevel(max(numeric_level, logging.INFO))

    logging.getLogger(__name__).info(
        "Logging configured",
        extra={
            "event": "logging.configured",
            "component": "logging",
            "log_level": level.upper(),
            "log_format": format_type,
        },
    )
