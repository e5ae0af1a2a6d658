"""Tests for logging configuration and formatters."""

import json
import logging

import pytest

from dispatcher.logging import ComponentLoggerAdapter, get_logger
from dispatcher.logging.config import (
    ContextualFilter,
    JSONFormatter,
    KeyValueFormatter,
    configure_logging,
)
from dispatcher.logging.context import clear_log_context, log_context


@pytest.fixture(autouse=True)
def clean_context():
    """Clear logging context before and after each test."""
    clear_log_context()
    yield
    clear_log_context()


@pytest.fixture
def logger():
    """Create a test logger with handler for capturing output."""
    test_logger = logging.getLogger("test_logger")
    test_logger.setLevel(logging.DEBUG)
    test_logger.handlers.clear()

    yield test_logger

    test_logger.handlers.clear()


@pytest.fixture
def key_value_formatter():
    return KeyValueFormatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def test_json_formatter_basic(logger):
    """Test JSONFormatter produces valid JSON with mandatory fields."""
    record = logger.makeRecord("test", logging.INFO, "test.py", 1, "Test message", (), None)

    log_obj = json.loads(JSONFormatter().format(record))

    assert log_obj["level"] == "INFO"
    assert log_obj["message"] == "Test message"
    assert log_obj["logger"] == "test"
    assert "timestamp" in log_obj


def test_json_formatter_with_extra_fields(logger):
    """Test JSONFormatter includes extra fields."""
    record = logger.makeRecord(
        "test",
        logging.INFO,
        "test.py",
        1,
        "Sent email",
        (),
        None,
        extra={"event": "notification.send.success", "entry_count": 3, "flag": True},
    )

    log_obj = json.loads(JSONFormatter().format(record))

    assert log_obj["event"] == "notification.send.success"
    assert log_obj["entry_count"] == 3
    assert log_obj["flag"] is True


def test_json_formatter_masks_secret_fields(logger):
    """API keys passed as extra fields never reach the output."""
    record = logger.makeRecord(
        "test",
        logging.INFO,
        "test.py",
        1,
        "Transport ready",
        (),
        None,
        extra={"api_key": "re_live_secret"},
    )

    output = JSONFormatter().format(record)

    assert "re_live_secret" not in output
    assert json.loads(output)["api_key"] == "***"


def test_contextual_filter_adds_static_fields(logger):
    """Test ContextualFilter adds static service and environment fields."""
    record_filter = ContextualFilter(service="test-service", environment="test")
    record = logger.makeRecord("test", logging.INFO, "test.py", 1, "Test message", (), None)

    record_filter.filter(record)

    assert record.service == "test-service"
    assert record.environment == "test"


def test_contextual_filter_adds_context_fields(logger):
    """Test ContextualFilter adds fields from log context."""
    record_filter = ContextualFilter()

    with log_context(run_id="abc123", group_key="u1_n1_news"):
        record = logger.makeRecord("test", logging.INFO, "test.py", 1, "Test message", (), None)
        record_filter.filter(record)

    assert record.run_id == "abc123"
    assert record.group_key == "u1_n1_news"


def test_contextual_filter_keeps_explicit_extra(logger):
    """An explicit extra field wins over the same key in the context."""
    record_filter = ContextualFilter()

    with log_context(run_id="from-context"):
        record = logger.makeRecord(
            "test", logging.INFO, "test.py", 1, "msg", (), None, extra={"run_id": "explicit"}
        )
        record_filter.filter(record)

    assert record.run_id == "explicit"


def test_json_formatter_with_context(logger):
    """Test full pipeline: context + filter + JSON formatter."""
    formatter = JSONFormatter()
    record_filter = ContextualFilter(service="notification-dispatcher", environment="test")

    with log_context(run_id="abc123", group_key="u1_n1_event"):
        record = logger.makeRecord(
            "test",
            logging.INFO,
            "test.py",
            1,
            "Dispatching group",
            (),
            None,
            extra={"event": "pipeline.group.started"},
        )
        record_filter.filter(record)
        log_obj = json.loads(formatter.format(record))

    assert log_obj["message"] == "Dispatching group"
    assert log_obj["event"] == "pipeline.group.started"
    assert log_obj["service"] == "notification-dispatcher"
    assert log_obj["environment"] == "test"
    assert log_obj["run_id"] == "abc123"
    assert log_obj["group_key"] == "u1_n1_event"


def test_key_value_formatter_basic(logger, key_value_formatter):
    """Test KeyValueFormatter produces readable output."""
    record = logger.makeRecord("test", logging.INFO, "test.py", 1, "Test message", (), None)

    output = key_value_formatter.format(record)

    assert "[INFO]" in output
    assert "Test message" in output


def test_key_value_formatter_with_extras(logger, key_value_formatter):
    """Test KeyValueFormatter includes extra fields as sorted key=value pairs."""
    record = logger.makeRecord(
        "test",
        logging.INFO,
        "test.py",
        1,
        "Test message",
        (),
        None,
        extra={"event": "test.event", "count": 42, "had_errors": False, "error": None},
    )

    output = key_value_formatter.format(record)

    assert "event=test.event" in output
    assert "count=42" in output
    assert "had_errors=false" in output
    assert "error=null" in output
    assert output.index("count=") < output.index("event=")


def test_key_value_formatter_quotes_values_with_spaces(logger, key_value_formatter):
    record = logger.makeRecord(
        "test",
        logging.INFO,
        "test.py",
        1,
        "Test message",
        (),
        None,
        extra={"error": "Email API responded with status 500"},
    )

    output = key_value_formatter.format(record)

    assert 'error="Email API responded with status 500"' in output


def test_get_logger_with_component_adds_field(caplog):
    """get_logger(component=...) stamps the component on every record."""
    component_logger = get_logger("dispatcher.test", component="grouping")
    assert isinstance(component_logger, ComponentLoggerAdapter)

    with caplog.at_level(logging.INFO, logger="dispatcher.test"):
        component_logger.info("Grouped", extra={"event": "grouping.completed"})

    record = caplog.records[-1]
    assert record.component == "grouping"
    assert record.event == "grouping.completed"


def test_get_logger_without_component_returns_plain_logger():
    assert isinstance(get_logger("dispatcher.plain"), logging.Logger)


def test_configure_logging_invalid_level():
    """Test configure_logging rejects invalid log level."""
    with pytest.raises(ValueError, match="Invalid log level"):
        configure_logging(level="INVALID")


def test_configure_logging_invalid_format():
    """Test configure_logging rejects invalid format type."""
    with pytest.raises(ValueError, match="Invalid log format"):
        configure_logging(format_type="invalid")


def test_configure_logging_json_format():
    """Test configure_logging with JSON format."""
    configure_logging(level="INFO", format_type="json", environment="test")

    root_logger = logging.getLogger()
    assert len(root_logger.handlers) == 1
    assert isinstance(root_logger.handlers[0].formatter, JSONFormatter)


def test_configure_logging_key_value_format():
    """Test configure_logging with key-value format."""
    configure_logging(level="DEBUG", format_type="key-value", environment="test")

    root_logger = logging.getLogger()
    assert root_logger.level == logging.DEBUG
    assert isinstance(root_logger.handlers[0].formatter, KeyValueFormatter)
    # urllib3 stays quiet even at DEBUG
    assert logging.getLogger("urllib3").level == logging.INFO


def test_timestamp_format_in_json(logger):
    """Test that JSON formatter produces correct ISO-8601 timestamp format."""
    record = logger.makeRecord("test", logging.INFO, "test.py", 1, "Test message", (), None)

    timestamp = json.loads(JSONFormatter().format(record))["timestamp"]

    assert timestamp.endswith("Z")
    assert "T" in timestamp
    assert len(timestamp) == 24  # 2025-11-04T10:30:00.123Z


def test_json_formatter_no_duplicate_fields(logger):
    """Test that JSON formatter doesn't duplicate standard fields in extras."""
    record = logger.makeRecord(
        "test", logging.INFO, "test.py", 1, "Test message", (), None, extra={"event": "x"}
    )

    log_obj = json.loads(JSONFormatter().format(record))

    assert "name" not in log_obj
    assert "levelname" not in log_obj
    assert "event" in log_obj
