"""Retention sweep of old sent entries."""

from datetime import datetime

from sqlalchemy.orm import Session

from dispatcher.logging import get_logger
from dispatcher.persistence.repositories import NotificationQueueRepository
from dispatcher.utils.timestamps import days_ago

logger = get_logger(__name__, component="sweeper")


class RetentionSweeper:
    """Deletes sent entries whose ``sent_at`` is older than ``retention_days``.

    Failed and pending entries are never touched. Sweeping twice in a row
    deletes nothing the second time.
    """

    def __init__(self, retention_days: int = 7):
        self.retention_days = retention_days

    def sweep(self, session: Session, now: datetime) -> int:
        cutoff = days_ago(self.retention_days, now=now)
        deleted = NotificationQueueRepository(session).purge_sent_before(cutoff)
        logger.info(
            f"Retention sweep deleted {deleted} sent notifications",
            extra={
                "event": "sweeper.completed",
                "deleted": deleted,
                "retention_days": self.retention_days,
            },
        )
        return deleted
