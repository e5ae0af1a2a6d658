"""Unit tests for content extraction and template context building."""

import base64
import json

import pytest

from dispatcher.grouping import dispatch_units, group_entries
from dispatcher.notifications.content import (
    build_attachments,
    build_items,
    build_message_context,
    build_subject,
    extract_media,
    format_event_date,
    parse_event_content,
    parse_post_content,
    template_for,
)
from tests.helpers import make_entry

APP_URL = "https://app.example.com"


def unit_for(*entries):
    """The first dispatch unit of the first group built from ``entries``."""
    return dispatch_units(group_entries(list(entries)).groups[0])[0]


def meta(**values):
    return json.dumps(values)


class TestExtractMedia:
    """Tests for the trailing [MediaType:URL] suffix."""

    def test_image_suffix(self):
        text, media = extract_media("Look at this [image:http://x/y.png]")

        assert text == "Look at this"
        assert media == {"type": "image", "url": "http://x/y.png"}

    def test_type_is_lowercased(self):
        _, media = extract_media("Clip [Video:https://cdn.example.com/v.mp4]  ")

        assert media == {"type": "video", "url": "https://cdn.example.com/v.mp4"}

    def test_no_suffix(self):
        assert extract_media("Plain text ") == ("Plain text", None)

    def test_suffix_must_be_at_the_end(self):
        text, media = extract_media("See [image:http://x/y.png] above")

        assert media is None
        assert text == "See [image:http://x/y.png] above"

    @pytest.mark.parametrize("content", [None, ""])
    def test_empty(self, content):
        assert extract_media(content) == ("", None)


class TestParsePostContent:
    """Tests for the 'shared a new post' sentence."""

    def test_title_description_and_media(self):
        parsed = parse_post_content(
            "Linus shared a new post: Release day. We shipped 2.0 [image:https://cdn.example.com/r.png]"
        )

        assert parsed["title"] == "Release day"
        assert parsed["description"] == "We shipped 2.0"
        assert parsed["media"] == {"type": "image", "url": "https://cdn.example.com/r.png"}

    def test_title_only(self):
        parsed = parse_post_content("Linus shared a new post: Release day.")

        assert parsed["title"] == "Release day"
        assert parsed["description"] is None

    def test_free_text_is_the_description(self):
        parsed = parse_post_content("Weekly digest is out")

        assert parsed == {"title": None, "description": "Weekly digest is out", "media": None}


class TestParseEventContent:
    """Tests for the 'created an event' sentence."""

    def test_full_sentence(self):
        parsed = parse_event_content(
            "Alice created an event: Launch Party on 2024-01-01. Join us! [image:http://x/y.png]"
        )

        assert parsed["title"] == "Launch Party"
        assert parsed["date"] == "2024-01-01"
        assert parsed["description"] == "Join us!"
        assert parsed["media"] == {"type": "image", "url": "http://x/y.png"}

    def test_without_media(self):
        parsed = parse_event_content("Alice created an event: Demo Night on Friday. Bring a laptop")

        assert parsed["title"] == "Demo Night"
        assert parsed["description"] == "Bring a laptop"
        assert parsed["media"] is None

    def test_without_description(self):
        parsed = parse_event_content("Alice created an event: Demo Night on Friday.")

        assert parsed["description"] is None

    def test_title_stops_at_first_on(self):
        parsed = parse_event_content("Alice created an event: Talk on AI on 2024-05-01. Desc")

        assert parsed["title"] == "Talk"
        assert parsed["date"] == "AI on 2024-05-01"
        assert parsed["description"] == "Desc"

    @pytest.mark.parametrize("content", [None, "", "Casual meetup at the usual place"])
    def test_other_text_does_not_match(self, content):
        assert parse_event_content(content) is None


class TestFormatEventDate:
    def test_iso_date(self):
        assert format_event_date("2024-01-01T18:30:00Z") == "Monday, January 1, 2024 at 06:30 PM"

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_missing_date(self, raw):
        assert format_event_date(raw) == "Date TBD"

    def test_unparseable_date_shown_as_given(self):
        assert format_event_date("next friday, 7pm") == "next friday, 7pm"

    def test_non_string_date(self):
        assert format_event_date(1704067200) == "1704067200"


class TestBuildItems:
    """Per-type content blocks."""

    def test_post_item_prefers_typed_metadata(self):
        entry = make_entry(
            "n1",
            "post",
            content_preview="Linus shared a new post: Old title. Old body [image:http://old/img.png]",
            metadata=meta(
                authorName="Linus",
                title="Typed title",
                description="Typed body",
                media={"type": "Video", "url": "https://cdn.example.com/v.mp4"},
            ),
        )

        item = build_items(unit_for(entry), "Builders")[0]

        assert item["title"] == "Typed title"
        assert item["body"] == "Typed body"
        assert item["media"] == {"type": "video", "url": "https://cdn.example.com/v.mp4"}
        assert item["actor_name"] == "Linus"

    def test_post_item_placeholders(self):
        titled = make_entry("n1", "news", content_preview="X shared a new post: Only a title.")
        empty = make_entry("n2", "news", content_preview=None)

        items = build_items(unit_for(titled, empty), "Builders")

        assert items[0]["body"] == "No description provided"
        assert items[1]["body"] == "Content not available"
        assert items[1]["actor_name"] == "Someone"

    def test_event_item_from_sentence(self):
        entry = make_entry(
            "n1",
            "event",
            content_preview="Alice created an event: Launch Party on 2024-01-01. Join us! [image:http://x/y.png]",
            metadata=meta(organizerName="Alice", eventDate="2024-01-01T18:30:00Z", eventLocation="Main Hall"),
        )

        item = build_items(unit_for(entry), "Builders")[0]

        assert item["title"] == "Launch Party"
        assert item["body"] == "Join us!"
        assert item["media"] == {"type": "image", "url": "http://x/y.png"}
        assert item["date_label"] == "Monday, January 1, 2024 at 06:30 PM"
        assert item["location"] == "Main Hall"

    def test_event_item_title_from_subject_line(self):
        entry = make_entry(
            "n1",
            "event",
            subject_line="New event in Builders: Launch Party",
            content_preview="Casual meetup",
        )

        item = build_items(unit_for(entry), "Builders")[0]

        assert item["title"] == "Launch Party"
        assert item["body"] == "Casual meetup"
        assert item["date_label"] == "Date TBD"
        assert item["location"] is None

    def test_event_item_placeholders(self):
        item = build_items(unit_for(make_entry("n1", "event")), "Builders")[0]

        assert item["title"] == "Event Details"
        assert item["body"] == "Event description not available"

    def test_mention_item(self):
        entry = make_entry(
            "n1",
            "mention",
            content_preview="@ada can you review?",
            metadata=meta(mentionerName="Ken", messageContext="#general"),
        )

        item = build_items(unit_for(entry), "Builders")[0]

        assert item == {
            "body": "@ada can you review?",
            "message_context": "#general",
            "actor_name": "Ken",
        }

    def test_status_item_rejected_is_case_sensitive(self):
        rejected = make_entry("n1", "event_status", content_preview="Your proposal was rejected")
        upper = make_entry("n2", "event_status", content_preview="Your proposal was REJECTED")

        items = build_items(unit_for(rejected, upper), "Builders")

        assert items[0]["rejected"] is True
        assert items[1]["rejected"] is False

    def test_fallback_item_keeps_content_verbatim(self):
        entry = make_entry("n1", "comment", content_preview="  Barbara commented  ")

        item = build_items(unit_for(entry), "Builders")[0]

        assert item["body"] == "  Barbara commented  "
        assert item["actor_name"] == "Network Update"


class TestBuildSubject:
    """Subject lines for single and grouped emails."""

    def test_single_entry_keeps_subject_line(self):
        entry = make_entry("n1", "news", subject_line="Linus posted in Builders")

        assert build_subject(unit_for(entry), "Builders") == "Linus posted in Builders"

    def test_single_entry_without_subject(self):
        assert build_subject(unit_for(make_entry("n1", "news")), "Builders") == "New post in Builders"

    def test_unknown_type_without_subject(self):
        unit = unit_for(make_entry("n1", "comment"))

        assert build_subject(unit, "Builders") == "Notification from Builders"

    @pytest.mark.parametrize(
        "notification_type,expected",
        [
            ("news", "2 new news posts in Builders"),
            ("post", "2 new posts in Builders"),
            ("event", "2 new events in Builders"),
            ("mention", "2 new mentions in Builders"),
            ("event_proposal", "2 new event proposals in Builders"),
            ("event_status", "2 new event updates in Builders"),
            ("comment", "2 new notifications in Builders"),
        ],
    )
    def test_grouped_subject(self, notification_type, expected):
        unit = unit_for(
            make_entry("n1", notification_type, subject_line="ignored"),
            make_entry("n2", notification_type),
        )

        assert build_subject(unit, "Builders") == expected

    def test_grouped_dm_subject(self):
        entries = [
            make_entry(f"d{i}", "direct_message", network_id=None, metadata=meta(senderId="s1", senderName="Alan"))
            for i in range(3)
        ]

        assert build_subject(unit_for(*entries), "Network") == "Alan sent you 3 messages"

    def test_single_dm_subject(self):
        entry = make_entry("d1", "direct_message", network_id=None, metadata=meta(senderName="Alan"))

        assert build_subject(unit_for(entry), "Network") == "Alan sent you a message"

    def test_single_dm_keeps_subject_line(self):
        entry = make_entry(
            "d1",
            "direct_message",
            network_id=None,
            subject_line="New message from Alan",
            metadata=meta(senderName="Alan"),
        )

        assert build_subject(unit_for(entry), "Network") == "New message from Alan"


class TestBuildAttachments:
    """Calendar invites on event emails."""

    def test_string_ics_is_base64_encoded(self):
        ics = "BEGIN:VCALENDAR\nEND:VCALENDAR\n"
        entry = make_entry("n1", "event", related_item_id="ev-42", metadata=meta(icsAttachment=ics))

        attachments = build_attachments(unit_for(entry))

        assert len(attachments) == 1
        assert attachments[0].filename == "event-ev-42.ics"
        assert base64.b64decode(attachments[0].content).decode("utf-8") == ics

    def test_filename_falls_back_to_entry_id(self):
        entry = make_entry("n1", "event", metadata=meta(icsAttachment="BEGIN:VCALENDAR"))

        assert build_attachments(unit_for(entry))[0].filename == "event-n1.ics"

    def test_prepared_attachment_passes_through(self):
        entry = make_entry(
            "n1", "event", metadata=meta(icsAttachment={"filename": "party.ics", "content": "QkVHSU4="})
        )

        attachment = build_attachments(unit_for(entry))[0]

        assert attachment.to_payload() == {"filename": "party.ics", "content": "QkVHSU4="}

    def test_one_attachment_per_event_entry(self):
        entries = [
            make_entry("n1", "event", metadata=meta(icsAttachment="A")),
            make_entry("n2", "event"),
            make_entry("n3", "event", metadata=meta(icsAttachment="B")),
        ]

        attachments = build_attachments(unit_for(*entries))

        assert [a.filename for a in attachments] == ["event-n1.ics", "event-n3.ics"]

    def test_malformed_attachment_ignored(self):
        entry = make_entry("n1", "event", metadata=meta(icsAttachment={"filename": 3}))

        assert build_attachments(unit_for(entry)) == []

    def test_only_event_units_get_attachments(self):
        entry = make_entry("n1", "news", metadata=meta(icsAttachment="BEGIN:VCALENDAR"))

        assert build_attachments(unit_for(entry)) == []


class TestBuildMessageContext:
    """Tests for the full template context."""

    def test_context_fields(self):
        entry = make_entry("n1", "news", metadata=meta(authorName="Linus"))

        context = build_message_context(unit_for(entry), APP_URL + "/")

        assert context["notification_type"] == "news"
        assert context["network_name"] == "Builders"
        assert context["has_network"] is True
        assert context["recipient_name"] == "Member One"
        assert context["actor_name"] == "Linus"
        assert context["app_url"] == APP_URL
        assert context["count"] == 1
        assert context["rejected"] is False

    def test_missing_network_defaults(self):
        entry = make_entry("d1", "direct_message", network_id=None, metadata=meta(senderName="Alan"))

        context = build_message_context(unit_for(entry), APP_URL)

        assert context["network_name"] == "Network"
        assert context["has_network"] is False
        assert context["actor_name"] == "Alan"

    def test_rejected_only_when_every_item_is_rejected(self):
        both = unit_for(
            make_entry("n1", "event_status", content_preview="A was rejected"),
            make_entry("n2", "event_status", content_preview="B was rejected"),
        )
        mixed = unit_for(
            make_entry("n1", "event_status", content_preview="A was rejected"),
            make_entry("n2", "event_status", content_preview="B was approved"),
        )

        assert build_message_context(both, APP_URL)["rejected"] is True
        assert build_message_context(mixed, APP_URL)["rejected"] is False


def test_template_for_unknown_type_uses_fallback():
    assert template_for("event") == "event.html.j2"
    assert template_for("comment_reply") == "fallback.html.j2"
