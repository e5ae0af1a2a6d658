"""Pydantic models describing queue entries returned by the admin routes."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from dispatcher.domain.models import EntryState, NotificationQueueEntry


class NotificationRead(BaseModel):
    """A queue entry with its joined recipient and network."""

    id: str
    recipient_id: str
    recipient_name: Optional[str] = None
    recipient_email: Optional[str] = None
    network_id: Optional[str] = None
    network_name: Optional[str] = None
    notification_type: str
    subject_line: Optional[str] = None
    content_preview: Optional[str] = None
    related_item_id: Optional[str] = None
    status: EntryState
    is_sent: bool
    sent_at: Optional[datetime] = None
    error_message: Optional[str] = None
    attempt_count: int = 0
    next_attempt_at: Optional[datetime] = None
    last_error: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_entry(cls, entry: NotificationQueueEntry) -> "NotificationRead":
        return cls(
            id=entry.id,
            recipient_id=entry.recipient_id,
            recipient_name=entry.recipient.full_name if entry.recipient else None,
            recipient_email=entry.recipient.contact_email if entry.recipient else None,
            network_id=entry.network_id,
            network_name=entry.network_name,
            notification_type=entry.notification_type,
            subject_line=entry.subject_line,
            content_preview=entry.content_preview,
            related_item_id=entry.related_item_id,
            status=entry.state,
            is_sent=entry.is_sent,
            sent_at=entry.sent_at,
            error_message=entry.error_message,
            attempt_count=entry.attempt_count,
            next_attempt_at=entry.next_attempt_at,
            last_error=entry.last_error,
            created_at=entry.created_at,
            updated_at=entry.updated_at,
        )


class HistoryResponse(BaseModel):
    """One page of history, newest first."""

    notifications: List[NotificationRead]
    total_count: int
    page: int
    limit: int
    total_pages: int
