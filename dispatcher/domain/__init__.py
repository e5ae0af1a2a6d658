"""Domain models for the notification dispatcher."""

from .models import (
    STATS_TYPES,
    EntryState,
    Network,
    NotificationQueueEntry,
    NotificationType,
    QueueStats,
    Recipient,
    RecentActivity,
    parse_metadata,
)

__all__ = [
    "NotificationQueueEntry",
    "Recipient",
    "Network",
    "NotificationType",
    "EntryState",
    "QueueStats",
    "RecentActivity",
    "STATS_TYPES",
    "parse_metadata",
]
