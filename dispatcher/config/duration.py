"""Duration parsing for lease, schedule and retry settings."""

import re

_ISO_PATTERN = re.compile(
    r"^P(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+(?:\.\d+)?)S)?)?$"
)
_HUMAN_PATTERN = re.compile(r"(\d+)\s*([smhd])")
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


class DurationParseError(ValueError):
    """Raised when a duration string cannot be parsed."""


def parse_duration(duration_str: str) -> int:
    """
    Parse a duration string to seconds.

    Accepts human-readable values ("30s", "10m", "1h30m", "2d") and ISO-8601
    durations ("PT10M", "P1DT2H").

    Raises:
        DurationParseError: If the string is empty, malformed or zero

    Examples:
        >>> parse_duration("10m")
        600
        >>> parse_duration("PT1H30M")
        5400
    """
    if not isinstance(duration_str, str):
        raise DurationParseError(f"Duration must be a string, got {type(duration_str).__name__}")

    duration_str = duration_str.strip()
    if not duration_str:
        raise DurationParseError("Duration string cannot be empty")

    if duration_str.upper().startswith("P"):
        total = _parse_iso8601(duration_str.upper())
    else:
        total = _parse_human_readable(duration_str.lower())

    if total == 0:
        raise DurationParseError(f"Duration cannot be zero: '{duration_str}'")
    return total


def _parse_iso8601(value: str) -> int:
    match = _ISO_PATTERN.match(value)
    if not match or value in ("P", "PT"):
        raise DurationParseError(
            f"Invalid ISO-8601 duration format: '{value}'. "
            "Expected format like 'P1D', 'PT1H30M' or 'PT45S'"
        )

    days, hours, minutes, seconds = match.groups()
    return (
        int(days or 0) * _UNIT_SECONDS["d"]
        + int(hours or 0) * _UNIT_SECONDS["h"]
        + int(minutes or 0) * _UNIT_SECONDS["m"]
        + int(float(seconds or 0))
    )


def _parse_human_readable(value: str) -> int:
    matches = _HUMAN_PATTERN.findall(value)
    if not matches:
        raise DurationParseError(
            f"Invalid duration format: '{value}'. "
            "Expected format like '30s', '10m', '1h' or combinations like '1h30m'"
        )

    # every character must belong to a number+unit pair
    consumed = "".join(f"{num}{unit}" for num, unit in matches)
    if consumed != re.sub(r"\s+", "", value):
        raise DurationParseError(
            f"Invalid characters in duration: '{value}'. "
            "Use only digits and units: s, m, h, d"
        )

    return sum(int(num) * _UNIT_SECONDS[unit] for num, unit in matches)


def validate_duration_range(
    duration_seconds: int,
    min_seconds: int = 30,
    max_seconds: int = 86400,
    label: str = "Duration",
) -> None:
    """
    Check that a parsed duration lies within [min_seconds, max_seconds].

    Raises:
        DurationParseError: If the duration is outside the allowed range
    """
    if duration_seconds < min_seconds:
        raise DurationParseError(
            f"{label} too short: {seconds_to_human_readable(duration_seconds)}. "
            f"Minimum is {seconds_to_human_readable(min_seconds)}."
        )

    if duration_seconds > max_seconds:
        raise DurationParseError(
            f"{label} too long: {seconds_to_human_readable(duration_seconds)}. "
            f"Maximum is {seconds_to_human_readable(max_seconds)}."
        )


def seconds_to_human_readable(seconds: int) -> str:
    """Render a number of seconds using its largest whole unit ("10 minutes")."""
    for unit_name, unit_seconds in (("day", 86400), ("hour", 3600), ("minute", 60)):
        if seconds >= unit_seconds:
            count = seconds // unit_seconds
            return f"{count} {unit_name}{'s' if count != 1 else ''}"
    return f"{seconds} second{'s' if seconds != 1 else ''}"
