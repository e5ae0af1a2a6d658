"""UTC timestamp helpers.

Everything the dispatcher stores or compares is timezone-aware UTC. Parsing
is lenient because event dates come from user-facing forms.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_iso_datetime(iso_string: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 string to an aware UTC datetime.

    Accepts ``2024-01-01T12:00:00Z``, offsets, fractional seconds, naive
    values and bare dates. Returns None instead of raising.

    Example:
        >>> parse_iso_datetime("2024-01-01T09:30:00+02:00").hour
        7
    """
    if not iso_string or not iso_string.strip():
        return None

    cleaned = iso_string.strip()
    if cleaned.endswith(("Z", "z")):
        cleaned = cleaned[:-1] + "+00:00"

    try:
        return ensure_utc(datetime.fromisoformat(cleaned))
    except ValueError:
        pass

    for fmt in ("%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S", "%Y-%m-%d"):
        try:
            return ensure_utc(datetime.strptime(cleaned, fmt))
        except ValueError:
            continue

    return None


def format_timestamp(dt: datetime, include_microseconds: bool = False) -> str:
    """Format as ISO 8601 UTC with a ``Z`` suffix.

    Example:
        >>> format_timestamp(datetime(2024, 1, 1, 12, tzinfo=timezone.utc))
        '2024-01-01T12:00:00Z'
    """
    dt_utc = ensure_utc(dt)
    if include_microseconds:
        return dt_utc.strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    return dt_utc.strftime("%Y-%m-%dT%H:%M:%SZ")


def format_long_date(dt: datetime) -> str:
    """Long English rendering used in event emails.

    Example:
        >>> format_long_date(datetime(2024, 1, 1, 18, 30, tzinfo=timezone.utc))
        'Monday, January 1, 2024 at 06:30 PM'
    """
    dt_utc = ensure_utc(dt)
    # built by hand so the output does not depend on the process locale
    weekday = _WEEKDAYS[dt_utc.weekday()]
    month = _MONTHS[dt_utc.month - 1]
    hour = dt_utc.hour % 12 or 12
    meridiem = "AM" if dt_utc.hour < 12 else "PM"
    return (
        f"{weekday}, {month} {dt_utc.day}, {dt_utc.year} "
        f"at {hour:02d}:{dt_utc.minute:02d} {meridiem}"
    )


def days_ago(days: int, now: Optional[datetime] = None) -> datetime:
    """``now - days`` in UTC."""
    return (ensure_utc(now) if now else utc_now()) - timedelta(days=days)


_WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
_MONTHS = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)
