"""Core domain models for the notification queue.

- NotificationQueueEntry: one queued notification row, with its joined
  recipient and network
- Recipient / Network: read-only join data
- NotificationType: the types that have a dedicated email template
- EntryState: derived lifecycle state (pending, sent, failed)
"""

import json
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from dispatcher.utils.timestamps import ensure_utc

logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    """Notification types with a dedicated template.

    Any other string is valid on an entry and renders with the fallback
    template.
    """

    NEWS = "news"
    POST = "post"
    EVENT = "event"
    MENTION = "mention"
    EVENT_PROPOSAL = "event_proposal"
    EVENT_STATUS = "event_status"
    DIRECT_MESSAGE = "direct_message"

    @classmethod
    def from_value(cls, value: str) -> Optional["NotificationType"]:
        try:
            return cls(value)
        except ValueError:
            return None


class EntryState(str, Enum):
    """Lifecycle state derived from ``is_sent`` and ``error_message``."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


# metadata key holding the display name of the actor, per notification type
ACTOR_NAME_KEYS: Dict[str, str] = {
    NotificationType.DIRECT_MESSAGE.value: "senderName",
    NotificationType.EVENT.value: "organizerName",
    NotificationType.NEWS.value: "authorName",
    NotificationType.POST.value: "authorName",
    NotificationType.MENTION.value: "mentionerName",
    NotificationType.EVENT_PROPOSAL.value: "proposerName",
}


class Recipient(BaseModel):
    """Profile data joined onto a queue entry."""

    id: str
    contact_email: Optional[str] = None
    full_name: Optional[str] = None

    @field_validator("contact_email", "full_name")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        stripped = v.strip()
        return stripped or None

    @property
    def has_email(self) -> bool:
        return bool(self.contact_email)


class Network(BaseModel):
    """Network data joined onto a queue entry."""

    id: str
    name: Optional[str] = None


class NotificationQueueEntry(BaseModel):
    """A queued notification.

    ``metadata`` is kept as the raw serialized text the producer wrote;
    ``metadata_dict`` parses it without ever raising.
    """

    id: str = Field(..., description="Queue entry identifier")
    recipient_id: str = Field(..., description="Profile the email goes to")
    network_id: Optional[str] = Field(None, description="Network the notification belongs to")
    notification_type: str = Field(..., min_length=1, description="Template selector")
    subject_line: Optional[str] = Field(None, description="Precomputed subject line")
    content_preview: Optional[str] = Field(None, description="Free-text body source")
    related_item_id: Optional[str] = Field(None, description="Originating message/post/event")
    metadata: Optional[str] = Field(None, description="Serialized JSON payload")
    is_sent: bool = False
    sent_at: Optional[datetime] = None
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    claimed_at: Optional[datetime] = None
    claimed_by: Optional[str] = None
    attempt_count: int = 0
    next_attempt_at: Optional[datetime] = None
    last_error: Optional[str] = None

    recipient: Optional[Recipient] = None
    network: Optional[Network] = None

    @field_validator("sent_at", "created_at", "updated_at", "claimed_at", "next_attempt_at")
    @classmethod
    def validate_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @property
    def state(self) -> EntryState:
        if self.is_sent:
            return EntryState.SENT
        if self.error_message is not None:
            return EntryState.FAILED
        return EntryState.PENDING

    @property
    def group_key(self) -> str:
        """``{recipient}_{network}_{type}``; a missing network renders as ``null``."""
        network = self.network_id if self.network_id is not None else "null"
        return f"{self.recipient_id}_{network}_{self.notification_type}"

    @property
    def network_name(self) -> Optional[str]:
        return self.network.name if self.network else None

    def metadata_dict(self) -> Dict[str, Any]:
        """Parsed metadata, or an empty dict when it is absent or unparseable."""
        return parse_metadata(self.metadata, entry_id=self.id)

    def actor_name(self) -> Optional[str]:
        """Display name of whoever triggered the notification, if known."""
        key = ACTOR_NAME_KEYS.get(self.notification_type, "senderName")
        value = self.metadata_dict().get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None


def parse_metadata(raw: Optional[str], entry_id: Optional[str] = None) -> Dict[str, Any]:
    """Decode a metadata payload, degrading to ``{}`` on any problem."""
    if raw is None or raw == "":
        return {}

    try:
        value = json.loads(raw)
    except (TypeError, ValueError) as e:
        logger.warning(
            f"Failed to parse metadata for entry {entry_id}: {e}",
            extra={"event": "metadata.parse_failed", "entry_id": entry_id},
        )
        return {}

    if not isinstance(value, dict):
        logger.warning(
            f"Ignoring non-object metadata for entry {entry_id}",
            extra={"event": "metadata.parse_failed", "entry_id": entry_id},
        )
        return {}

    return value


# types reported in statistics even when no entry of that type exists
STATS_TYPES = (
    "news",
    "event",
    "mention",
    "direct_message",
    "post",
    "event_proposal",
    "event_status",
    "event_reminder",
    "comment",
    "comment_reply",
)


class RecentActivity(BaseModel):
    """Entries created since the start of the day, week (Sunday) and month."""

    today: int = 0
    this_week: int = 0
    this_month: int = 0


class QueueStats(BaseModel):
    """Aggregate view of the queue, optionally scoped to one network."""

    total: int = 0
    sent: int = 0
    pending: int = 0
    failed: int = 0
    by_type: Dict[str, int] = Field(default_factory=dict)
    recent_activity: RecentActivity = Field(default_factory=RecentActivity)
