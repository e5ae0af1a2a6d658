"""Unit tests for notification template rendering.

Tests the MessageRenderer for:
- One template per notification type, fallback for the rest
- Colors and call-to-action links per type
- HTML auto-escaping of user content
- Strict undefined variable detection
"""

import json

import pytest
from jinja2 import DictLoader, Environment, StrictUndefined

from dispatcher.grouping import DispatchUnit, dispatch_units, group_entries
from dispatcher.notifications.models import NotificationTemplateError
from dispatcher.notifications.templates import MessageRenderer
from tests.helpers import make_entry

APP_URL = "https://app.example.com"


@pytest.fixture
def renderer():
    return MessageRenderer(app_url=APP_URL + "/")


def units_for(*entries):
    return dispatch_units(group_entries(list(entries)).groups[0])


def render_one(renderer, *entries):
    return renderer.render(units_for(*entries)[0])


def meta(**values):
    return json.dumps(values)


def test_renderer_initialization(renderer):
    assert renderer.app_url == APP_URL
    assert renderer.env.autoescape is True
    assert renderer.env.undefined is StrictUndefined


@pytest.mark.parametrize(
    "notification_type,color,cta_path,cta_label",
    [
        ("news", "#2196f3", "/dashboard", "View Full Post &amp; Comments"),
        ("post", "#673ab7", "/dashboard", "View Post &amp; Connect"),
        ("event", "#ff9800", "/dashboard", "View Event Details &amp; RSVP"),
        ("mention", "#9c27b0", "/dashboard", "View Message &amp; Reply"),
        ("event_proposal", "#3f51b5", "/admin", "Review Proposal"),
        ("direct_message", "#4caf50", "/direct-messages", "Read &amp; Reply to Message"),
        ("comment", "#f8f9fa", "/dashboard", "View Notification"),
    ],
)
def test_each_type_has_its_color_and_cta(renderer, notification_type, color, cta_path, cta_label):
    network_id = None if notification_type == "direct_message" else "net1"
    entry = make_entry("n1", notification_type, network_id=network_id, content_preview="Hello")

    message = render_one(renderer, entry)

    assert f"background-color: {color}" in message.html_body
    assert f'href="{APP_URL}{cta_path}"' in message.html_body
    assert cta_label in message.html_body


def test_footer_links_to_preferences(renderer):
    message = render_one(renderer, make_entry("n1", "news"))

    assert f"{APP_URL}/profile/edit" in message.html_body
    assert "Manage your notification preferences" in message.html_body


def test_news_email_renders_post_and_media(renderer):
    entry = make_entry(
        "n1",
        "news",
        subject_line="New post in Builders",
        content_preview="Linus shared a new post: Release day. We shipped 2.0 [image:https://cdn.example.com/r.png]",
        metadata=meta(authorName="Linus"),
    )

    message = render_one(renderer, entry)

    assert message.subject == "New post in Builders"
    assert "New Post in Builders" in message.html_body
    assert "Release day" in message.html_body
    assert "We shipped 2.0" in message.html_body
    assert '<img src="https://cdn.example.com/r.png"' in message.html_body
    assert "Linus" in message.html_body
    assert message.attachments == []


def test_video_media_renders_label_not_image(renderer):
    entry = make_entry(
        "n1", "post", content_preview="Clip of the demo [video:https://cdn.example.com/v.mp4]"
    )

    html = render_one(renderer, entry).html_body

    assert "Video attached" in html
    assert "<img" not in html


def test_grouped_email_lists_every_entry(renderer):
    entries = [
        make_entry(
            f"n{i}",
            "news",
            content_preview=f"Author{i} shared a new post: Title {i}. Body {i}",
            metadata=meta(authorName=f"Author{i}"),
        )
        for i in range(3)
    ]

    message = render_one(renderer, *entries)

    assert message.subject == "3 new news posts in Builders"
    assert "3 New Posts in Builders" in message.html_body
    for i in range(3):
        assert f"Title {i}" in message.html_body
        assert f"Author{i}" in message.html_body


def test_event_email_has_date_location_and_invite(renderer):
    entry = make_entry(
        "n1",
        "event",
        subject_line="New event in Builders: Launch Party",
        related_item_id="ev-42",
        content_preview="Alice created an event: Launch Party on 2024-01-01. Join us! [image:http://x/y.png]",
        metadata=meta(
            organizerName="Alice",
            eventDate="2024-01-01T18:30:00Z",
            eventLocation="Main Hall",
            icsAttachment="BEGIN:VCALENDAR\nEND:VCALENDAR",
        ),
    )

    message = render_one(renderer, entry)

    assert "Launch Party" in message.html_body
    assert "Join us!" in message.html_body
    assert "Monday, January 1, 2024 at 06:30 PM" in message.html_body
    assert "Main Hall" in message.html_body
    assert "Organized by <strong>Alice</strong>" in message.html_body
    assert [a.filename for a in message.attachments] == ["event-ev-42.ics"]


def test_mention_email_shows_context(renderer):
    entry = make_entry(
        "n1",
        "mention",
        content_preview="@ada please review",
        metadata=meta(mentionerName="Ken", messageContext="#releases"),
    )

    html = render_one(renderer, entry).html_body

    assert "You were mentioned in Builders" in html
    assert "@ada please review" in html
    assert "In: #releases" in html


def test_event_proposal_email(renderer):
    entry = make_entry(
        "n1",
        "event_proposal",
        content_preview="Grace proposed Hack Night",
        metadata=meta(proposerName="Grace", eventTitle="Hack Night"),
    )

    html = render_one(renderer, entry).html_body

    assert "Hack Night" in html
    assert "Proposed by <strong>Grace</strong>" in html
    assert f'href="{APP_URL}/dashboard"' in html


def test_event_status_approved(renderer):
    entry = make_entry("n1", "event_status", content_preview="Your event was approved")

    html = render_one(renderer, entry).html_body

    assert "Event Proposal Approved" in html
    assert "background-color: #4caf50" in html
    assert "View Event" in html


def test_event_status_rejected(renderer):
    entry = make_entry("n1", "event_status", content_preview="Your event was rejected")

    html = render_one(renderer, entry).html_body

    assert "Event Proposal Not Approved" in html
    assert "background-color: #f44336" in html
    assert "Go to Dashboard" in html


def test_event_status_mixed_group_uses_approved_banner(renderer):
    entries = [
        make_entry("n1", "event_status", content_preview="A was rejected"),
        make_entry("n2", "event_status", content_preview="B was approved"),
    ]

    html = render_one(renderer, *entries).html_body

    assert "Event Proposal Approved" in html
    # each item keeps its own color
    assert "border-left: 4px solid #f44336" in html
    assert "border-left: 4px solid #4caf50" in html


def test_direct_message_per_sender(renderer):
    entries = [
        make_entry("d1", "direct_message", network_id=None, content_preview="Hi", metadata=meta(senderId="s1", senderName="Alan")),
        make_entry("d2", "direct_message", network_id=None, content_preview="Lunch?", metadata=meta(senderId="s2", senderName="Edsger")),
        make_entry("d3", "direct_message", network_id=None, content_preview="Ping", metadata=meta(senderId="s1", senderName="Alan")),
    ]
    units = units_for(*entries)

    messages = [renderer.render(unit) for unit in units]

    assert [m.subject for m in messages] == ["Alan sent you 2 messages", "Edsger sent you a message"]
    assert "From: <strong>Alan</strong>" in messages[0].html_body
    assert "2 New Direct Messages" in messages[0].html_body
    assert "Lunch?" not in messages[0].html_body
    assert "Network:" not in messages[0].html_body


def test_fallback_template_for_unknown_type(renderer):
    entry = make_entry("n1", "comment_reply", network_name=None, content_preview="Barbara replied")

    message = render_one(renderer, entry)

    assert message.subject == "Notification from Network"
    assert "Notification from Network" in message.html_body
    assert "Barbara replied" in message.html_body


def test_user_content_is_escaped(renderer):
    entry = make_entry(
        "n1", "mention", content_preview='<script>alert("x")</script>', metadata=meta(mentionerName="<b>Ken</b>")
    )

    html = render_one(renderer, entry).html_body

    assert "<script>" not in html
    assert "&lt;script&gt;" in html
    assert "&lt;b&gt;Ken&lt;/b&gt;" in html


def test_subject_whitespace_is_collapsed(renderer):
    entry = make_entry("n1", "news", subject_line="  New post\n in   Builders ")

    assert render_one(renderer, entry).subject == "New post in Builders"


def test_rendering_is_deterministic(renderer):
    entry = make_entry("n1", "event", content_preview="Casual meetup")

    assert render_one(renderer, entry) == render_one(renderer, entry)


def test_empty_unit_raises(renderer):
    group = group_entries([make_entry("n1", "news")]).groups[0]

    with pytest.raises(NotificationTemplateError, match="empty"):
        renderer.render(DispatchUnit(group=group, entries=[]))


def test_undefined_variable_raises_template_error():
    """Strict undefined turns template mistakes into NotificationTemplateError."""
    env = Environment(
        loader=DictLoader({"news.html.j2": "{{ does_not_exist }}"}),
        autoescape=True,
        undefined=StrictUndefined,
    )
    renderer = MessageRenderer(app_url=APP_URL, env=env)

    with pytest.raises(NotificationTemplateError, match="news.html.j2"):
        render_one(renderer, make_entry("n1", "news"))
