"""Reading and leasing the pending batch."""

from datetime import datetime
from typing import List

from sqlalchemy.orm import Session

from dispatcher.config.models import DispatchConfig
from dispatcher.domain.models import NotificationQueueEntry
from dispatcher.logging import get_logger
from dispatcher.persistence.exceptions import PersistenceError
from dispatcher.persistence.repositories import NotificationQueueRepository

from .exceptions import QueueFetchError

logger = get_logger(__name__, component="reader")


class QueueReader:
    """Fetches up to ``batch_size`` pending entries, oldest first, and claims them."""

    def __init__(self, config: DispatchConfig):
        self.batch_size = config.batch_size
        self.lease_seconds = config.claim_lease_seconds

    def read(self, session: Session, now: datetime) -> List[NotificationQueueEntry]:
        """Pending entries joined with recipient and network.

        Raises:
            QueueFetchError: If the data store query fails
        """
        try:
            entries = NotificationQueueRepository(session).fetch_pending(
                limit=self.batch_size,
                lease_seconds=self.lease_seconds,
                now=now,
            )
        except PersistenceError as e:
            raise QueueFetchError(f"Failed to fetch notifications: {e}") from e

        logger.info(
            f"Found {len(entries)} pending notifications",
            extra={"event": "reader.fetched", "count": len(entries), "limit": self.batch_size},
        )
        return entries

    def claim(
        self,
        session: Session,
        entries: List[NotificationQueueEntry],
        run_id: str,
        now: datetime,
    ) -> List[NotificationQueueEntry]:
        """Lease ``entries`` for ``run_id`` and return only the ones it now owns.

        Entries leased by a concurrent runner in the meantime are dropped.

        Raises:
            QueueFetchError: If the conditional update fails
        """
        try:
            owned_ids = set(
                NotificationQueueRepository(session).claim(
                    [entry.id for entry in entries],
                    run_id=run_id,
                    lease_seconds=self.lease_seconds,
                    now=now,
                )
            )
        except PersistenceError as e:
            raise QueueFetchError(f"Failed to fetch notifications: {e}") from e

        owned = [entry for entry in entries if entry.id in owned_ids]
        lost = len(entries) - len(owned)
        if lost:
            logger.warning(
                f"{lost} notifications were claimed by another runner",
                extra={"event": "reader.claim.contended", "lost": lost},
            )
        return owned
