"""Time handling utilities."""

from .timestamps import (
    days_ago,
    ensure_utc,
    format_long_date,
    format_timestamp,
    parse_iso_datetime,
    utc_now,
)

__all__ = [
    "utc_now",
    "ensure_utc",
    "parse_iso_datetime",
    "format_timestamp",
    "format_long_date",
    "days_ago",
]
