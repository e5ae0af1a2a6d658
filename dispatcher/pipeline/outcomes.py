"""Writing the result of each dispatch unit and group back to the queue."""

from datetime import datetime, timedelta
from typing import Iterable, List, Sequence, Tuple

from sqlalchemy.orm import Session

from dispatcher.config.models import DispatchConfig
from dispatcher.grouping.models import DispatchGroup
from dispatcher.logging import get_logger
from dispatcher.persistence.repositories import NotificationQueueRepository

logger = get_logger(__name__, component="outcomes")

FAILED = "failed"
RETRY = "retry"


class OutcomeRecorder:
    """Marks entries sent, failed or due for a retry.

    A permanent failure is recorded for every entry of the group, including
    sender buckets that were sent before the failing one. A retry only
    covers the buckets that were not delivered.
    """

    def __init__(self, config: DispatchConfig):
        self.max_attempts = config.max_attempts
        self.initial_delay = config.retry_initial_delay_seconds
        self.multiplier = config.retry_backoff_multiplier
        self.max_delay = config.retry_max_delay_seconds

    def record_sent(self, session: Session, entry_ids: Iterable[str], sent_at: datetime) -> int:
        return NotificationQueueRepository(session).mark_sent(entry_ids, sent_at)

    def record_failure(
        self,
        session: Session,
        group: DispatchGroup,
        message: str,
        retryable: bool,
        now: datetime,
        delivered: Sequence[Tuple[List[str], datetime]] = (),
    ) -> str:
        """Record a group failure.

        A retryable failure whose attempts are not exhausted keeps the
        undelivered entries pending until ``next_attempt_at``. Units listed in
        ``delivered`` already went out, so they are marked sent instead of
        being retried. Any other failure sets ``error_message`` on every entry
        of the group.

        Returns:
            ``"retry"`` or ``"failed"``
        """
        repo = NotificationQueueRepository(session)
        attempt = max((entry.attempt_count for entry in group.entries), default=0) + 1

        if retryable and attempt < self.max_attempts:
            delivered_ids = set()
            for entry_ids, sent_at in delivered:
                repo.mark_sent(entry_ids, sent_at)
                delivered_ids.update(entry_ids)
            pending_ids = [entry_id for entry_id in group.entry_ids if entry_id not in delivered_ids]

            delay = self.retry_delay(attempt)
            next_attempt_at = now + timedelta(seconds=delay)
            repo.schedule_retry(pending_ids, message, next_attempt_at, now=now)
            logger.warning(
                f"Group {group.key} will be retried in {delay:.0f}s "
                f"(attempt {attempt}/{self.max_attempts})",
                extra={
                    "event": "outcome.retry_scheduled",
                    "attempt": attempt,
                    "max_attempts": self.max_attempts,
                    "delay_seconds": delay,
                    "retry_count": len(pending_ids),
                    "delivered_count": len(delivered_ids),
                },
            )
            return RETRY

        repo.mark_failed(group.entry_ids, message, now=now)
        logger.error(
            f"Group {group.key} failed permanently: {message}",
            extra={
                "event": "outcome.failed",
                "attempt": attempt,
                "entry_count": len(group.entries),
                "retryable": retryable,
            },
        )
        return FAILED

    def retry_delay(self, attempt: int) -> float:
        """Backoff before the attempt after ``attempt``, capped at the maximum delay."""
        delay = self.initial_delay * (self.multiplier ** (attempt - 1))
        return float(min(delay, self.max_delay))

    def release(self, session: Session, entry_ids: Iterable[str], run_id: str) -> int:
        return NotificationQueueRepository(session).release(entry_ids, run_id)
