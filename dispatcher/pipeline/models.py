"""Data models for dispatch run tracking and reporting."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass
class GroupOutcome:
    """
    Result of dispatching one group.

    Attributes:
        group_key: ``{recipient}_{network}_{type}`` key of the group
        notification_type: Type shared by the group's entries
        entry_count: Entries in the group
        emails_sent: Emails accepted by the API before the group finished or failed
        sent_count: Entries marked sent
        failed_count: Entries marked permanently failed
        retried_count: Entries scheduled for another attempt
        error_message: Error recorded for the group, if it failed
        had_errors: Whether the outcome could not be fully recorded
    """

    group_key: str
    notification_type: str
    entry_count: int
    emails_sent: int = 0
    sent_count: int = 0
    failed_count: int = 0
    retried_count: int = 0
    error_message: Optional[str] = None
    had_errors: bool = False

    @property
    def succeeded(self) -> bool:
        return self.error_message is None and not self.had_errors


@dataclass
class DispatchRunResult:
    """
    Aggregate results of one dispatch invocation.

    Attributes:
        run_id: Identifier that also owns this run's leases
        run_started_at: UTC timestamp when the run began
        run_finished_at: UTC timestamp when the run completed
        total_duration_seconds: Total time for the run
        processed: Entries read from the queue
        claimed: Entries this run managed to lease
        skipped_entries: Entries left alone because the recipient has no email
        sent: Entries marked sent
        failed: Entries marked permanently failed
        retried: Entries scheduled for a later attempt
        emails_sent: Emails accepted by the API
        purged: Sent entries deleted by the retention sweep
        group_outcomes: Per-group results in dispatch order
        had_errors: Whether any group failed or the sweep errored
        skipped: Whether the run was skipped (another run holds the lock)
    """

    run_id: str
    run_started_at: datetime
    run_finished_at: Optional[datetime] = None
    total_duration_seconds: float = 0.0
    processed: int = 0
    claimed: int = 0
    skipped_entries: int = 0
    sent: int = 0
    failed: int = 0
    retried: int = 0
    emails_sent: int = 0
    purged: int = 0
    group_outcomes: List[GroupOutcome] = field(default_factory=list)
    had_errors: bool = False
    skipped: bool = False

    def finish(self, finished_at: datetime) -> "DispatchRunResult":
        """Aggregate group outcomes and stamp the finish time."""
        self.run_finished_at = finished_at
        self.total_duration_seconds = (finished_at - self.run_started_at).total_seconds()

        if self.group_outcomes:
            self.sent = sum(o.sent_count for o in self.group_outcomes)
            self.failed = sum(o.failed_count for o in self.group_outcomes)
            self.retried = sum(o.retried_count for o in self.group_outcomes)
            self.emails_sent = sum(o.emails_sent for o in self.group_outcomes)
            if any(not o.succeeded for o in self.group_outcomes):
                self.had_errors = True

        return self

    def summary(self) -> Dict[str, Any]:
        """JSON body returned by the HTTP trigger."""
        if self.skipped:
            return {"success": True, "message": "Dispatch already in progress", "processed": 0}
        if self.processed == 0:
            return {"success": True, "message": "No pending notifications", "processed": 0}
        return {
            "success": True,
            "processed": self.processed,
            "sent": self.sent,
            "failed": self.failed,
        }
