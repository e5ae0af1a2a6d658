"""Database schema definition and ORM models.

Tables mirror the platform's relational store: ``notification_queue`` plus
the two tables it joins for dispatch (``profiles`` and ``networks``).
Timestamps are stored as ISO 8601 strings with a ``Z`` suffix, so string
comparison orders them chronologically.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, Column, ForeignKey, Index, Integer, String, Text, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from dispatcher.domain.models import Network, NotificationQueueEntry, Recipient

logger = logging.getLogger(__name__)

Base = declarative_base()

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


class ProfileModel(Base):
    """Recipient contact data."""

    __tablename__ = "profiles"

    id = Column(String(64), primary_key=True)
    contact_email = Column(String(320), nullable=True)
    full_name = Column(String(255), nullable=True)

    def to_domain(self) -> Recipient:
        return Recipient(id=self.id, contact_email=self.contact_email, full_name=self.full_name)


class NetworkModel(Base):
    """Network display data."""

    __tablename__ = "networks"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=True)

    def to_domain(self) -> Network:
        return Network(id=self.id, name=self.name)


class NotificationQueueModel(Base):
    """ORM model for the notification_queue table."""

    __tablename__ = "notification_queue"

    id = Column(String(64), primary_key=True, nullable=False)

    recipient_id = Column(String(64), ForeignKey("profiles.id"), nullable=False)
    network_id = Column(String(64), ForeignKey("networks.id"), nullable=True)

    notification_type = Column(String(50), nullable=False)
    subject_line = Column(Text, nullable=True)
    content_preview = Column(Text, nullable=True)
    related_item_id = Column(String(64), nullable=True)
    # "metadata" is reserved on declarative classes
    metadata_json = Column("metadata", Text, nullable=True)

    is_sent = Column(Boolean, nullable=False, default=False)
    sent_at = Column(String(50), nullable=True)
    error_message = Column(Text, nullable=True)

    created_at = Column(String(50), nullable=False)
    updated_at = Column(String(50), nullable=True)

    # lease held by the runner currently dispatching the row
    claimed_at = Column(String(50), nullable=True)
    claimed_by = Column(String(64), nullable=True)

    # transient failure bookkeeping
    attempt_count = Column(Integer, nullable=False, default=0)
    next_attempt_at = Column(String(50), nullable=True)
    last_error = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_queue_pending", "is_sent", "error_message", "created_at"),
        Index("idx_queue_sent_at", "is_sent", "sent_at"),
        Index("idx_queue_recipient", "recipient_id"),
        Index("idx_queue_network", "network_id"),
    )

    def to_domain(
        self,
        profile: Optional[ProfileModel] = None,
        network: Optional[NetworkModel] = None,
    ) -> NotificationQueueEntry:
        return NotificationQueueEntry(
            id=self.id,
            recipient_id=self.recipient_id,
            network_id=self.network_id,
            notification_type=self.notification_type,
            subject_line=self.subject_line,
            content_preview=self.content_preview,
            related_item_id=self.related_item_id,
            metadata=self.metadata_json,
            is_sent=bool(self.is_sent),
            sent_at=_parse_datetime(self.sent_at),
            error_message=self.error_message,
            created_at=_parse_datetime(self.created_at),
            updated_at=_parse_datetime(self.updated_at),
            claimed_at=_parse_datetime(self.claimed_at),
            claimed_by=self.claimed_by,
            attempt_count=self.attempt_count or 0,
            next_attempt_at=_parse_datetime(self.next_attempt_at),
            last_error=self.last_error,
            recipient=profile.to_domain() if profile is not None else None,
            network=network.to_domain() if network is not None else None,
        )


def _format_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Render a datetime for storage (UTC, microseconds, ``Z`` suffix)."""
    if dt is None:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)

    return dt.strftime(TIMESTAMP_FORMAT)


def _parse_datetime(dt_str: Optional[str]) -> Optional[datetime]:
    """Read a stored timestamp back as an aware UTC datetime."""
    if dt_str is None or dt_str == "":
        return None

    dt_str = dt_str.rstrip("Z")
    try:
        dt = datetime.strptime(dt_str, "%Y-%m-%dT%H:%M:%S.%f")
    except ValueError:
        dt = datetime.strptime(dt_str, "%Y-%m-%dT%H:%M:%S")

    return dt.replace(tzinfo=timezone.utc)


def create_schema(engine: Engine) -> None:
    """Create all tables and indexes that do not exist yet (idempotent)."""
    logger.info("Creating database schema if not exists")

    try:
        Base.metadata.create_all(engine, checkfirst=True)
        tables = inspect(engine).get_table_names()
        logger.info(f"Database schema ready. Tables: {', '.join(tables)}")
    except Exception as e:
        logger.error(f"Failed to create database schema: {e}", exc_info=True)
        raise
