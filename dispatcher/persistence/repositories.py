"""Data access layer for the notification queue.

Repositories wrap one SQLAlchemy session and return domain models. They
flush but never commit; the caller owns the transaction.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Union
from uuid import uuid4

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from dispatcher.domain.models import (
    STATS_TYPES,
    EntryState,
    NotificationQueueEntry,
    QueueStats,
    RecentActivity,
)
from dispatcher.utils.timestamps import utc_now

from .exceptions import DataIntegrityError, PersistenceError, RecordNotFoundError
from .schema import NetworkModel, NotificationQueueModel, ProfileModel, _format_datetime

logger = logging.getLogger(__name__)

Q = NotificationQueueModel


@dataclass
class HistoryPage:
    """One page of queue history, newest first."""

    entries: List[NotificationQueueEntry]
    total_count: int
    page: int
    limit: int
    total_pages: int = field(init=False)

    def __post_init__(self):
        self.total_pages = -(-self.total_count // self.limit) if self.limit else 0


def _pending_condition():
    return and_(Q.is_sent.is_(False), Q.error_message.is_(None))


def _lease_free_condition(lease_cutoff: str):
    return or_(Q.claimed_at.is_(None), Q.claimed_at < lease_cutoff)


def _status_condition(status: EntryState):
    if status == EntryState.SENT:
        return Q.is_sent.is_(True)
    if status == EntryState.FAILED:
        return Q.error_message.is_not(None)
    return _pending_condition()


class NotificationQueueRepository:
    """Reads and writes ``notification_queue`` rows."""

    def __init__(self, session: Session):
        self.session = session

    def _joined_select(self):
        return (
            select(Q, ProfileModel, NetworkModel)
            .outerjoin(ProfileModel, ProfileModel.id == Q.recipient_id)
            .outerjoin(NetworkModel, NetworkModel.id == Q.network_id)
        )

    def fetch_pending(
        self,
        limit: int,
        lease_seconds: int,
        now: Optional[datetime] = None,
    ) -> List[NotificationQueueEntry]:
        """Fetch up to ``limit`` pending entries with recipient and network data.

        Excludes rows leased by another runner and rows waiting for a scheduled
        retry. Oldest entries come first.

        Raises:
            PersistenceError: If the query fails
        """
        now = now or utc_now()
        now_str = _format_datetime(now)
        lease_cutoff = _format_datetime(now - timedelta(seconds=lease_seconds))

        try:
            stmt = (
                self._joined_select()
                .where(
                    _pending_condition(),
                    _lease_free_condition(lease_cutoff),
                    or_(Q.next_attempt_at.is_(None), Q.next_attempt_at <= now_str),
                )
                .order_by(Q.created_at.asc(), Q.id.asc())
                .limit(limit)
            )
            rows = self.session.execute(stmt).all()
            return [queue.to_domain(profile, network) for queue, profile, network in rows]

        except SQLAlchemyError as e:
            logger.error(f"Error fetching pending notifications: {e}", exc_info=True)
            raise PersistenceError(f"Failed to fetch pending notifications: {e}") from e

    def claim(
        self,
        entry_ids: Iterable[str],
        run_id: str,
        lease_seconds: int,
        now: Optional[datetime] = None,
    ) -> List[str]:
        """Atomically reserve entries for ``run_id``.

        The conditional UPDATE only touches rows that are still pending and not
        under a live lease, so two runners never own the same row. Returns the
        ids this runner now holds.
        """
        ids = list(entry_ids)
        if not ids:
            return []

        now = now or utc_now()
        lease_cutoff = _format_datetime(now - timedelta(seconds=lease_seconds))

        try:
            self.session.execute(
                update(Q)
                .where(
                    Q.id.in_(ids),
                    _pending_condition(),
                    _lease_free_condition(lease_cutoff),
                )
                .values(claimed_at=_format_datetime(now), claimed_by=run_id)
                .execution_options(synchronize_session=False)
            )
            self.session.flush()

            owned = self.session.execute(
                select(Q.id).where(Q.id.in_(ids), Q.claimed_by == run_id)
            ).scalars().all()
            return list(owned)

        except SQLAlchemyError as e:
            logger.error(f"Error claiming notifications for run {run_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to claim notifications: {e}") from e

    def release(self, entry_ids: Iterable[str], run_id: str) -> int:
        """Drop the lease ``run_id`` holds on the given entries."""
        ids = list(entry_ids)
        if not ids:
            return 0

        try:
            result = self.session.execute(
                update(Q)
                .where(Q.id.in_(ids), Q.claimed_by == run_id)
                .values(claimed_at=None, claimed_by=None)
                .execution_options(synchronize_session=False)
            )
            self.session.flush()
            return result.rowcount

        except SQLAlchemyError as e:
            logger.error(f"Error releasing notifications for run {run_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to release notifications: {e}") from e

    def mark_sent(self, entry_ids: Iterable[str], sent_at: datetime) -> int:
        """Mark entries sent with one shared ``sent_at`` and clear their lease."""
        ids = list(entry_ids)
        if not ids:
            return 0

        sent_at_str = _format_datetime(sent_at)
        try:
            result = self.session.execute(
                update(Q)
                .where(Q.id.in_(ids))
                .values(
                    is_sent=True,
                    sent_at=sent_at_str,
                    updated_at=sent_at_str,
                    claimed_at=None,
                    claimed_by=None,
                    next_attempt_at=None,
                )
                .execution_options(synchronize_session=False)
            )
            self.session.flush()
            return result.rowcount

        except SQLAlchemyError as e:
            logger.error(f"Error marking notifications sent: {e}", exc_info=True)
            raise PersistenceError(f"Failed to mark notifications sent: {e}") from e

    def mark_failed(
        self, entry_ids: Iterable[str], error_message: str, now: Optional[datetime] = None
    ) -> int:
        """Record a permanent failure.

        ``is_sent`` and ``sent_at`` are reset so an entry can never be both
        sent and failed.
        """
        ids = list(entry_ids)
        if not ids:
            return 0

        now_str = _format_datetime(now or utc_now())
        try:
            result = self.session.execute(
                update(Q)
                .where(Q.id.in_(ids))
                .values(
                    is_sent=False,
                    sent_at=None,
                    error_message=error_message,
                    last_error=error_message,
                    attempt_count=Q.attempt_count + 1,
                    next_attempt_at=None,
                    updated_at=now_str,
                    claimed_at=None,
                    claimed_by=None,
                )
                .execution_options(synchronize_session=False)
            )
            self.session.flush()
            return result.rowcount

        except SQLAlchemyError as e:
            logger.error(f"Error marking notifications failed: {e}", exc_info=True)
            raise PersistenceError(f"Failed to mark notifications failed: {e}") from e

    def schedule_retry(
        self,
        entry_ids: Iterable[str],
        error_message: str,
        next_attempt_at: datetime,
        now: Optional[datetime] = None,
    ) -> int:
        """Keep entries pending after a transient failure, not before ``next_attempt_at``."""
        ids = list(entry_ids)
        if not ids:
            return 0

        try:
            result = self.session.execute(
                update(Q)
                .where(Q.id.in_(ids))
                .values(
                    is_sent=False,
                    sent_at=None,
                    last_error=error_message,
                    attempt_count=Q.attempt_count + 1,
                    next_attempt_at=_format_datetime(next_attempt_at),
                    updated_at=_format_datetime(now or utc_now()),
                    claimed_at=None,
                    claimed_by=None,
                )
                .execution_options(synchronize_session=False)
            )
            self.session.flush()
            return result.rowcount

        except SQLAlchemyError as e:
            logger.error(f"Error scheduling notification retry: {e}", exc_info=True)
            raise PersistenceError(f"Failed to schedule notification retry: {e}") from e

    def purge_sent_before(self, cutoff: datetime) -> int:
        """Delete sent entries whose ``sent_at`` is older than ``cutoff``."""
        try:
            result = self.session.execute(
                delete(Q)
                .where(Q.is_sent.is_(True), Q.sent_at < _format_datetime(cutoff))
                .execution_options(synchronize_session=False)
            )
            self.session.flush()
            return result.rowcount

        except SQLAlchemyError as e:
            logger.error(f"Error purging sent notifications: {e}", exc_info=True)
            raise PersistenceError(f"Failed to purge sent notifications: {e}") from e

    def get(self, entry_id: str) -> Optional[NotificationQueueEntry]:
        """Retrieve one entry with its joins, or None."""
        try:
            row = self.session.execute(
                self._joined_select().where(Q.id == entry_id)
            ).first()
            if row is None:
                return None
            queue, profile, network = row
            return queue.to_domain(profile, network)

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving notification {entry_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve notification: {e}") from e

    def enqueue(
        self,
        recipient_id: str,
        notification_type: str,
        network_id: Optional[str] = None,
        subject_line: Optional[str] = None,
        content_preview: Optional[str] = None,
        related_item_id: Optional[str] = None,
        metadata: Union[str, Dict[str, Any], None] = None,
        created_at: Optional[datetime] = None,
        entry_id: Optional[str] = None,
    ) -> NotificationQueueEntry:
        """Insert a pending entry.

        ``metadata`` may be a dict (serialized to JSON here) or text that is
        stored as given, so malformed payloads can be reproduced.
        """
        if isinstance(metadata, dict):
            metadata = json.dumps(metadata)
        created_str = _format_datetime(created_at or utc_now())
        model = Q(
            id=entry_id or uuid4().hex,
            recipient_id=recipient_id,
            network_id=network_id,
            notification_type=notification_type,
            subject_line=subject_line,
            content_preview=content_preview,
            related_item_id=related_item_id,
            metadata_json=metadata,
            is_sent=False,
            created_at=created_str,
            updated_at=created_str,
            attempt_count=0,
        )

        try:
            self.session.add(model)
            self.session.flush()
        except IntegrityError as e:
            logger.error(f"Integrity error enqueueing notification: {e}", exc_info=True)
            raise DataIntegrityError(
                f"Failed to enqueue notification due to constraint violation: {e}"
            ) from e
        except SQLAlchemyError as e:
            logger.error(f"Error enqueueing notification: {e}", exc_info=True)
            raise PersistenceError(f"Failed to enqueue notification: {e}") from e

        return self.get(model.id)

    def requeue(self, entry_id: str, now: Optional[datetime] = None) -> NotificationQueueEntry:
        """Clear the failure on an entry so the next run picks it up again.

        Raises:
            RecordNotFoundError: If the entry does not exist
        """
        try:
            result = self.session.execute(
                update(Q)
                .where(Q.id == entry_id)
                .values(
                    error_message=None,
                    last_error=None,
                    attempt_count=0,
                    next_attempt_at=None,
                    claimed_at=None,
                    claimed_by=None,
                    updated_at=_format_datetime(now or utc_now()),
                )
                .execution_options(synchronize_session=False)
            )
            self.session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Error requeueing notification {entry_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to requeue notification: {e}") from e

        if result.rowcount == 0:
            raise RecordNotFoundError(f"Notification {entry_id} not found")

        return self.get(entry_id)

    def delete(self, entry_id: str) -> None:
        """Delete one entry.

        Raises:
            RecordNotFoundError: If the entry does not exist
        """
        try:
            result = self.session.execute(
                delete(Q).where(Q.id == entry_id).execution_options(synchronize_session=False)
            )
            self.session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Error deleting notification {entry_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to delete notification: {e}") from e

        if result.rowcount == 0:
            raise RecordNotFoundError(f"Notification {entry_id} not found")

    def get_stats(
        self, network_id: Optional[str] = None, now: Optional[datetime] = None
    ) -> QueueStats:
        """Counts by state and type plus creation activity for today/week/month.

        The week starts on Sunday; all boundaries are UTC midnights.
        """
        now = now or utc_now()
        today = now.replace(hour=0, minute=0, second=0, microsecond=0)
        # weekday(): Monday=0 ... Sunday=6
        week_start = today - timedelta(days=(today.weekday() + 1) % 7)
        month_start = today.replace(day=1)

        scope = [Q.network_id == network_id] if network_id is not None else []

        def count(*conditions) -> int:
            stmt = select(func.count()).select_from(Q).where(*scope, *conditions)
            return self.session.execute(stmt).scalar_one()

        try:
            by_type: Dict[str, int] = {type_name: 0 for type_name in STATS_TYPES}
            type_rows = self.session.execute(
                select(Q.notification_type, func.count())
                .where(*scope)
                .group_by(Q.notification_type)
            ).all()
            for type_name, type_count in type_rows:
                by_type[type_name] = type_count

            return QueueStats(
                total=count(),
                sent=count(_status_condition(EntryState.SENT)),
                pending=count(_status_condition(EntryState.PENDING)),
                failed=count(_status_condition(EntryState.FAILED)),
                by_type=by_type,
                recent_activity=RecentActivity(
                    today=count(Q.created_at >= _format_datetime(today)),
                    this_week=count(Q.created_at >= _format_datetime(week_start)),
                    this_month=count(Q.created_at >= _format_datetime(month_start)),
                ),
            )

        except SQLAlchemyError as e:
            logger.error(f"Error computing notification stats: {e}", exc_info=True)
            raise PersistenceError(f"Failed to compute notification stats: {e}") from e

    def list_history(
        self,
        network_id: Optional[str] = None,
        status: Optional[EntryState] = None,
        notification_type: Optional[str] = None,
        recipient_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        page: int = 0,
        limit: int = 20,
    ) -> HistoryPage:
        """Filtered, paginated history ordered newest first. Pages start at 0."""
        conditions = _history_conditions(
            network_id, status, notification_type, recipient_id, start_date, end_date
        )

        try:
            total = self.session.execute(
                select(func.count()).select_from(Q).where(*conditions)
            ).scalar_one()

            rows = self.session.execute(
                self._joined_select()
                .where(*conditions)
                .order_by(Q.created_at.desc(), Q.id.desc())
                .offset(page * limit)
                .limit(limit)
            ).all()

            return HistoryPage(
                entries=[queue.to_domain(profile, network) for queue, profile, network in rows],
                total_count=total,
                page=page,
                limit=limit,
            )

        except SQLAlchemyError as e:
            logger.error(f"Error listing notification history: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list notification history: {e}") from e

    def export_history(
        self,
        network_id: Optional[str] = None,
        status: Optional[EntryState] = None,
        notification_type: Optional[str] = None,
        recipient_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[NotificationQueueEntry]:
        """Every entry matching the history filters, newest first."""
        conditions = _history_conditions(
            network_id, status, notification_type, recipient_id, start_date, end_date
        )
        try:
            rows = self.session.execute(
                self._joined_select()
                .where(*conditions)
                .order_by(Q.created_at.desc(), Q.id.desc())
            ).all()
            return [queue.to_domain(profile, network) for queue, profile, network in rows]

        except SQLAlchemyError as e:
            logger.error(f"Error exporting notification history: {e}", exc_info=True)
            raise PersistenceError(f"Failed to export notification history: {e}") from e


def _history_conditions(
    network_id: Optional[str],
    status: Optional[EntryState],
    notification_type: Optional[str],
    recipient_id: Optional[str],
    start_date: Optional[datetime],
    end_date: Optional[datetime],
) -> List[Any]:
    conditions: List[Any] = []
    if network_id is not None:
        conditions.append(Q.network_id == network_id)
    if status is not None:
        conditions.append(_status_condition(status))
    if notification_type:
        conditions.append(Q.notification_type == notification_type)
    if recipient_id:
        conditions.append(Q.recipient_id == recipient_id)
    if start_date is not None:
        conditions.append(Q.created_at >= _format_datetime(start_date))
    if end_date is not None:
        conditions.append(Q.created_at <= _format_datetime(end_date))
    return conditions


class DirectoryRepository:
    """Profiles and networks, the read-only side of the dispatch join.

    The platform owns these tables; writes here exist for seeding and tests.
    """

    def __init__(self, session: Session):
        self.session = session

    def upsert_profile(
        self, profile_id: str, contact_email: Optional[str], full_name: Optional[str] = None
    ) -> None:
        try:
            existing = self.session.get(ProfileModel, profile_id)
            if existing:
                existing.contact_email = contact_email
                existing.full_name = full_name
            else:
                self.session.add(
                    ProfileModel(id=profile_id, contact_email=contact_email, full_name=full_name)
                )
            self.session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Error upserting profile {profile_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to upsert profile: {e}") from e

    def upsert_network(self, network_id: str, name: Optional[str]) -> None:
        try:
            existing = self.session.get(NetworkModel, network_id)
            if existing:
                existing.name = name
            else:
                self.session.add(NetworkModel(id=network_id, name=name))
            self.session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Error upserting network {network_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to upsert network: {e}") from e

