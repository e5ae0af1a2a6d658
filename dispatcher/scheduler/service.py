"""Scheduler service for periodic dispatch runs."""

import threading
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MAX_INSTANCES, JobEvent
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from dispatcher.logging import get_logger

logger = get_logger(__name__, component="scheduler")

JOB_ID = "notification-dispatch"


class SchedulerService:
    """
    Triggers dispatch runs at a fixed interval on a background thread.

    The main thread stays free to handle signals. A tick that arrives while a
    run is still going is dropped (``max_instances=1``) and logged; ticks
    missed while the process was busy collapse into one (``coalesce``).
    """

    def __init__(
        self,
        dispatch_callable: Callable[[], None],
        interval_seconds: int,
        shutdown_event: Optional[threading.Event] = None,
    ):
        """
        Args:
            dispatch_callable: Function to call on each scheduled run
            interval_seconds: Interval between runs in seconds
            shutdown_event: Optional event set once the scheduler has stopped
        """
        self.dispatch_callable = dispatch_callable
        self.interval_seconds = interval_seconds
        self.shutdown_event = shutdown_event
        self.completed_runs = 0
        self.skipped_ticks = 0

        self.scheduler = BackgroundScheduler(
            job_defaults={
                "max_instances": 1,
                "coalesce": True,
                "misfire_grace_time": interval_seconds,
            },
            timezone=timezone.utc,
        )
        self.scheduler.add_listener(self._on_job_event, EVENT_JOB_MAX_INSTANCES | EVENT_JOB_ERROR)

    def start(self) -> None:
        """
        Register the dispatch job and start the scheduler.

        The first run executes immediately. Calling start on a running
        scheduler does nothing.
        """
        if self.scheduler.running:
            logger.warning(
                "Scheduler already running, start ignored",
                extra={"event": "scheduler.start.ignored"},
            )
            return

        next_run = datetime.now(timezone.utc)
        self.scheduler.add_job(
            func=self._run_job,
            trigger=IntervalTrigger(seconds=self.interval_seconds, timezone=timezone.utc),
            id=JOB_ID,
            name="Notification Dispatch",
            replace_existing=True,
            next_run_time=next_run,
        )
        self.scheduler.start()

        logger.info(
            f"Scheduler started with interval: {self.interval_seconds} seconds",
            extra={
                "event": "scheduler.started",
                "interval_seconds": self.interval_seconds,
                "next_run_time": next_run.isoformat(),
            },
        )

    def _run_job(self) -> None:
        started = time.monotonic()
        self.dispatch_callable()
        self.completed_runs += 1
        logger.debug(
            "Scheduled dispatch finished",
            extra={
                "event": "scheduler.run.finished",
                "duration_ms": int((time.monotonic() - started) * 1000),
                "completed_runs": self.completed_runs,
            },
        )

    def _on_job_event(self, event: JobEvent) -> None:
        if event.code == EVENT_JOB_MAX_INSTANCES:
            self.skipped_ticks += 1
            logger.warning(
                "Scheduled dispatch skipped: previous run still in progress",
                extra={"event": "scheduler.run.skipped", "skipped_ticks": self.skipped_ticks},
            )
        elif event.code == EVENT_JOB_ERROR:
            logger.error(
                f"Scheduled dispatch raised: {event.exception}",
                extra={
                    "event": "scheduler.run.failed",
                    "error_type": type(event.exception).__name__,
                },
            )

    def shutdown(self, wait: bool = False) -> None:
        """
        Stop the scheduler and set the shutdown event.

        Args:
            wait: If True, wait for a running dispatch to complete before returning
        """
        logger.info(
            "Shutting down scheduler",
            extra={"event": "scheduler.stopping", "wait_for_jobs": wait},
        )

        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)

        if self.shutdown_event:
            self.shutdown_event.set()

        logger.info(
            "Scheduler shutdown complete",
            extra={"event": "scheduler.stopped", "completed_runs": self.completed_runs},
        )

    def trigger_now(self) -> None:
        """Run one dispatch synchronously in the current thread."""
        logger.info("Triggering immediate dispatch run", extra={"event": "scheduler.trigger_now"})
        self._run_job()

    def is_running(self) -> bool:
        return self.scheduler.running

    def get_next_run_time(self) -> Optional[datetime]:
        job = self.scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None
