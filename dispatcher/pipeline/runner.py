"""Dispatch orchestration: read, group, send, record, sweep."""

import threading
from datetime import datetime
from typing import Callable, ContextManager, List, Optional, Tuple
from uuid import uuid4

from sqlalchemy.orm import Session

from dispatcher.config.models import DispatchConfig
from dispatcher.grouping import DispatchGroup, dispatch_units, group_entries
from dispatcher.logging import get_logger
from dispatcher.logging.context import log_context
from dispatcher.notifications.models import TransportError
from dispatcher.notifications.service import NotificationService
from dispatcher.persistence.database import get_session
from dispatcher.persistence.exceptions import PersistenceError
from dispatcher.utils.timestamps import utc_now

from .models import DispatchRunResult, GroupOutcome
from .outcomes import RETRY, OutcomeRecorder
from .reader import QueueReader
from .sweeper import RetentionSweeper

logger = get_logger(__name__, component="pipeline")


class DispatchPipeline:
    """
    Runs one dispatch invocation over the notification queue.

    The pipeline reads and leases a batch of pending entries, groups them by
    recipient, network and type, sends one email per dispatch unit and writes
    the outcome of each group in its own transaction. One failing group never
    stops the ones after it. A retention sweep closes every non-empty run.
    """

    def __init__(
        self,
        config: DispatchConfig,
        notification_service: NotificationService,
        reader: Optional[QueueReader] = None,
        recorder: Optional[OutcomeRecorder] = None,
        sweeper: Optional[RetentionSweeper] = None,
        session_factory: Callable[[], ContextManager[Session]] = get_session,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the dispatch pipeline.

        Args:
            config: Dispatch settings (batch size, lease, retention, retries)
            notification_service: Renders and sends dispatch units
            reader: Queue reader (built from config if None)
            recorder: Outcome recorder (built from config if None)
            sweeper: Retention sweeper (built from config if None)
            session_factory: Context manager yielding a database session
            clock: Source of the current UTC time
        """
        self.config = config
        self.notification_service = notification_service
        self.reader = reader or QueueReader(config)
        self.recorder = recorder or OutcomeRecorder(config)
        self.sweeper = sweeper or RetentionSweeper(config.retention_days)
        self._session_factory = session_factory
        self._clock = clock
        self._lock = threading.Lock()

    def run_once(self) -> DispatchRunResult:
        """
        Execute one dispatch invocation.

        Returns:
            DispatchRunResult with per-entry counts and per-group outcomes

        Raises:
            QueueFetchError: If the batch cannot be read or leased. Nothing has
                been sent or written in that case.
        """
        run_id = uuid4().hex
        result = DispatchRunResult(run_id=run_id, run_started_at=self._clock())

        if not self._lock.acquire(blocking=False):
            with log_context(run_id=run_id):
                logger.warning(
                    "Dispatch run skipped: previous run still in progress",
                    extra={"event": "pipeline.run.skipped", "reason": "lock_held"},
                )
            result.skipped = True
            return result.finish(self._clock())

        try:
            with log_context(run_id=run_id):
                logger.info("Dispatch run started", extra={"event": "pipeline.run.started"})

                now = self._clock()
                with self._session_factory() as session:
                    entries = self.reader.read(session, now)
                    if not entries:
                        logger.info(
                            "No pending notifications",
                            extra={"event": "pipeline.run.empty"},
                        )
                        return result.finish(self._clock())
                    owned = self.reader.claim(session, entries, run_id, now)

                result.processed = len(entries)
                result.claimed = len(owned)

                grouping = group_entries(owned)
                result.skipped_entries = len(grouping.skipped)
                if grouping.skipped:
                    self._release(grouping.skipped, run_id, result)

                logger.info(
                    f"Dispatching {len(grouping.groups)} groups",
                    extra={
                        "event": "pipeline.groups.enumerated",
                        "group_count": len(grouping.groups),
                        "skipped_count": len(grouping.skipped),
                    },
                )

                for group in grouping.groups:
                    result.group_outcomes.append(self._process_group(group))

                self._sweep(result)

                result.finish(self._clock())
                logger.info(
                    "Dispatch run completed",
                    extra={
                        "event": "pipeline.run.completed",
                        "duration_ms": int(result.total_duration_seconds * 1000),
                        "processed": result.processed,
                        "sent": result.sent,
                        "failed": result.failed,
                        "retried": result.retried,
                        "emails_sent": result.emails_sent,
                        "purged": result.purged,
                        "had_errors": result.had_errors,
                    },
                )
                return result

        finally:
            self._lock.release()

    def _process_group(self, group: DispatchGroup) -> GroupOutcome:
        """
        Send every unit of a group, then record the group's outcome.

        Sent timestamps are buffered per unit and only written once every unit
        of the group succeeded. A permanent failure marks the whole group
        failed and no entry sent. A retryable failure marks the delivered units
        sent and schedules only the rest for another attempt.
        """
        outcome = GroupOutcome(
            group_key=group.key,
            notification_type=group.notification_type,
            entry_count=len(group),
        )
        sent_units: List[Tuple[List[str], datetime]] = []

        with log_context(
            group_key=group.key,
            notification_type=group.notification_type,
            recipient_id=group.recipient.id,
        ):
            try:
                for unit in dispatch_units(group):
                    self.notification_service.send_unit(unit)
                    sent_units.append((unit.entry_ids, self._clock()))
                    outcome.emails_sent += 1

            except Exception as e:
                message = str(e) or "Unknown error"
                retryable = isinstance(e, TransportError) and e.retryable
                logger.error(
                    f"Error processing group {group.key}: {message}",
                    extra={
                        "event": "pipeline.group.failed",
                        "error_type": type(e).__name__,
                        "entry_count": len(group),
                        "emails_sent": outcome.emails_sent,
                    },
                    exc_info=True,
                )
                outcome.error_message = message
                self._record_failure(group, message, retryable, outcome, sent_units)
                return outcome

            try:
                with self._session_factory() as session:
                    for entry_ids, sent_at in sent_units:
                        self.recorder.record_sent(session, entry_ids, sent_at)
                outcome.sent_count = len(group)
            except PersistenceError as e:
                # the emails went out; the lease keeps the rows away from
                # other runners until it expires
                outcome.had_errors = True
                logger.error(
                    f"Sent group {group.key} but could not record it: {e}",
                    extra={"event": "pipeline.group.record_failed", "entry_count": len(group)},
                    exc_info=True,
                )

        return outcome

    def _record_failure(
        self,
        group: DispatchGroup,
        message: str,
        retryable: bool,
        outcome: GroupOutcome,
        sent_units: List[Tuple[List[str], datetime]],
    ) -> None:
        try:
            with self._session_factory() as session:
                disposition = self.recorder.record_failure(
                    session, group, message, retryable, self._clock(), delivered=sent_units
                )
        except PersistenceError as e:
            outcome.had_errors = True
            logger.error(
                f"Could not record failure for group {group.key}: {e}",
                extra={"event": "pipeline.group.record_failed", "entry_count": len(group)},
                exc_info=True,
            )
            return

        if disposition == RETRY:
            delivered = sum(len(entry_ids) for entry_ids, _ in sent_units)
            outcome.sent_count = delivered
            outcome.retried_count = len(group) - delivered
        else:
            outcome.failed_count = len(group)

    def _release(self, entries, run_id: str, result: DispatchRunResult) -> None:
        try:
            with self._session_factory() as session:
                self.recorder.release(session, [entry.id for entry in entries], run_id)
        except PersistenceError as e:
            result.had_errors = True
            logger.error(
                f"Could not release skipped notifications: {e}",
                extra={"event": "pipeline.release.failed", "count": len(entries)},
                exc_info=True,
            )

    def _sweep(self, result: DispatchRunResult) -> None:
        try:
            with self._session_factory() as session:
                result.purged = self.sweeper.sweep(session, self._clock())
        except Exception as e:
            result.had_errors = True
            logger.error(
                f"Retention sweep failed: {e}",
                extra={"event": "sweeper.failed", "error_type": type(e).__name__},
                exc_info=True,
            )
