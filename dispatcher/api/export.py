"""CSV rendering of queue history."""

import csv
import io
from typing import Iterable

from dispatcher.domain.models import EntryState, NotificationQueueEntry

CSV_HEADERS = ["Date", "Time", "Type", "Recipient", "Email", "Subject", "Status", "Error"]

STATUS_LABELS = {
    EntryState.SENT: "Sent",
    EntryState.FAILED: "Failed",
    EntryState.PENDING: "Pending",
}


def history_to_csv(entries: Iterable[NotificationQueueEntry]) -> str:
    """One row per entry; the header is bare, every data cell is quoted."""
    buffer = io.StringIO()
    csv.writer(buffer, lineterminator="\n").writerow(CSV_HEADERS)
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")

    for entry in entries:
        created = entry.created_at
        recipient = entry.recipient
        writer.writerow(
            [
                created.strftime("%Y-%m-%d") if created else "",
                created.strftime("%H:%M:%S") if created else "",
                entry.notification_type,
                (recipient.full_name if recipient else None) or "Unknown",
                (recipient.contact_email if recipient else None) or "",
                entry.subject_line or "",
                STATUS_LABELS[entry.state],
                entry.error_message or "",
            ]
        )

    return buffer.getvalue().rstrip("\n")
