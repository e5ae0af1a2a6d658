"""End-to-end dispatch over a seeded SQLite queue.

Seeds tests/fixtures/sample_queue.yaml into a file database, runs the real
pipeline with a recording transport and checks what was sent and what was
written back.
"""

import base64
from pathlib import Path

import pytest

from dispatcher.config.models import DispatchConfig
from dispatcher.domain.models import EntryState
from dispatcher.notifications.service import NotificationService
from dispatcher.notifications.templates import MessageRenderer
from dispatcher.persistence import (
    NotificationQueueRepository,
    close_database,
    get_session,
    init_database,
)
from dispatcher.pipeline import DispatchPipeline
from tests.helpers import RecordingTransport, load_fixture_queue, seed_queue

pytestmark = pytest.mark.integration

FIXTURE = Path(__file__).parent.parent / "fixtures" / "sample_queue.yaml"


@pytest.fixture
def seeded_database(tmp_path):
    init_database(f"sqlite:///{tmp_path / 'queue.db'}")
    with get_session() as session:
        seed_queue(session, load_fixture_queue(FIXTURE))
    yield
    close_database()


def build_pipeline(transport, **dispatch):
    service = NotificationService(
        renderer=MessageRenderer(app_url="https://app.example.com"),
        transport=transport,
        sender="Conclav <hello@conclav.club>",
        send_delay_seconds=0,
    )
    return DispatchPipeline(config=DispatchConfig(**dispatch), notification_service=service)


def entry(entry_id):
    with get_session() as session:
        return NotificationQueueRepository(session).get(entry_id)


class TestDispatchEndToEnd:
    """Full runs against the sample queue."""

    def test_sample_queue_is_dispatched(self, seeded_database):
        transport = RecordingTransport()

        result = build_pipeline(transport).run_once()

        assert result.processed == 9
        assert result.skipped_entries == 1
        assert result.sent == 8
        assert result.failed == 0
        assert result.had_errors is False
        assert len(result.group_outcomes) == 5
        assert [(email.to, email.subject) for email in transport.sent] == [
            ("ada@example.com", "2 new news posts in Builders"),
            ("ada@example.com", "New event in Builders: Launch Party"),
            ("grace@example.com", "Alan sent you 2 messages"),
            ("grace@example.com", "Edsger sent you a message"),
            ("grace@example.com", "New post in Makers"),
            ("ada@example.com", "Notification from Makers"),
        ]

    def test_event_email_carries_invite(self, seeded_database):
        transport = RecordingTransport()

        build_pipeline(transport).run_once()

        event_email = transport.sent[1]
        attachment = event_email.attachments[0]
        assert attachment.filename == "event-ev-42.ics"
        assert base64.b64decode(attachment.content).decode().startswith("BEGIN:VCALENDAR")
        assert "Monday, January 1, 2024 at 06:30 PM" in event_email.html
        assert "Join us!" in event_email.html

    def test_rejected_status_uses_rejected_banner(self, seeded_database):
        transport = RecordingTransport()

        build_pipeline(transport).run_once()

        assert "Event Proposal Not Approved" in transport.sent[4].html

    def test_entry_states_after_run(self, seeded_database):
        build_pipeline(RecordingTransport()).run_once()

        assert entry("q-news-1").state == EntryState.SENT
        assert entry("q-dm-3").sent_at is not None
        skipped = entry("q-mention-nomail")
        assert skipped.state == EntryState.PENDING
        assert skipped.claimed_by is None

        with get_session() as session:
            stats = NotificationQueueRepository(session).get_stats()
        assert stats.sent == 8
        assert stats.pending == 1
        assert stats.failed == 0

    def test_second_run_only_sees_skipped_entry(self, seeded_database):
        transport = RecordingTransport()
        pipeline = build_pipeline(transport)
        pipeline.run_once()

        second = pipeline.run_once()

        assert second.processed == 1
        assert second.skipped_entries == 1
        assert len(transport.sent) == 6

    def test_rate_limited_direct_messages_are_retried(self, seeded_database):
        def limit_edsger(email):
            if "Edsger" in email.subject:
                return RecordingTransport.rate_limited(email)
            return None

        transport = RecordingTransport(fail_when=limit_edsger)

        result = build_pipeline(transport, max_attempts=3).run_once()

        assert result.retried == 1
        assert result.sent == 7
        assert entry("q-dm-1").state == EntryState.SENT
        assert entry("q-dm-2").state == EntryState.SENT
        retried = entry("q-dm-3")
        assert retried.state == EntryState.PENDING
        assert retried.attempt_count == 1
        assert retried.next_attempt_at is not None

    def test_batch_size_caps_each_run(self, seeded_database):
        transport = RecordingTransport()

        result = build_pipeline(transport, batch_size=3).run_once()

        assert result.processed == 3
        assert [email.subject for email in transport.sent] == [
            "2 new news posts in Builders",
            "New event in Builders: Launch Party",
        ]
