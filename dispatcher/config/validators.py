"""Soft checks that warn about risky but valid configuration values."""

import warnings
from typing import Any, Dict, List

from .duration import DurationParseError, parse_duration


def check_for_warnings(config_dict: Dict[str, Any]) -> List[str]:
    """
    Inspect a raw configuration dictionary and collect warning messages.

    Args:
        config_dict: Raw configuration dictionary (before validation)

    Returns:
        List of warning messages
    """
    warning_messages = []

    dispatch = config_dict.get("dispatch", {})
    if not isinstance(dispatch, dict):
        return warning_messages

    send_delay = dispatch.get("send_delay_ms")
    if isinstance(send_delay, int) and send_delay == 0:
        warning_messages.append(
            "send_delay_ms is 0; the email API may reject bursts with HTTP 429"
        )

    batch_size = dispatch.get("batch_size")
    if isinstance(batch_size, int) and batch_size > 500:
        warning_messages.append(
            f"Large batch_size ({batch_size}) makes a single invocation take at least "
            f"{batch_size * 0.6:.0f}s with the default send delay"
        )

    lease = dispatch.get("claim_lease")
    if isinstance(lease, str):
        try:
            if parse_duration(lease) < 300:
                warning_messages.append(
                    f"Short claim_lease ({lease}) may expire while a batch is still sending"
                )
        except DurationParseError:
            # reported by model validation
            pass

    max_attempts = dispatch.get("max_attempts")
    if isinstance(max_attempts, int) and max_attempts > 10:
        warning_messages.append(
            f"High max_attempts ({max_attempts}) keeps failing entries pending for a long time"
        )

    return warning_messages


def emit_warnings(warning_messages: List[str]) -> None:
    """Emit each message through Python's warnings module."""
    for message in warning_messages:
        warnings.warn(message, UserWarning, stacklevel=2)
