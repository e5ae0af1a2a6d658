"""Grouping of queue entries into dispatch groups, sender buckets and units."""

from .engine import dispatch_units, group_entries, split_by_sender
from .models import DispatchGroup, DispatchUnit, GroupingResult, SenderBucket

__all__ = [
    "group_entries",
    "split_by_sender",
    "dispatch_units",
    "DispatchGroup",
    "DispatchUnit",
    "GroupingResult",
    "SenderBucket",
]
