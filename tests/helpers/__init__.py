"""Test helper utilities for notification dispatcher tests."""

from .fixture_queue import (
    RecordingTransport,
    load_fixture_queue,
    make_entry,
    seed_queue,
)

__all__ = ["RecordingTransport", "load_fixture_queue", "make_entry", "seed_queue"]
