"""Template context for each notification type.

Producers either send a typed payload in ``metadata`` (``title``,
``description``, ``media: {type, url}``) or encode the same information in
``content_preview`` as a sentence. Typed values win; the regexes below only
read the sentence form.
"""

import base64
import re
from typing import Any, Dict, List, Optional, Tuple

from dispatcher.domain.models import NotificationQueueEntry, NotificationType
from dispatcher.grouping.models import DispatchUnit
from dispatcher.logging import get_logger
from dispatcher.utils.timestamps import format_long_date, parse_iso_datetime

from .models import Attachment

logger = get_logger(__name__, component="notification")

DEFAULT_NETWORK_NAME = "Network"
DEFAULT_ACTOR_NAME = "Someone"
DEFAULT_SENDER_LABEL = "Network Update"

TEMPLATES: Dict[str, str] = {
    NotificationType.NEWS.value: "news.html.j2",
    NotificationType.POST.value: "post.html.j2",
    NotificationType.EVENT.value: "event.html.j2",
    NotificationType.MENTION.value: "mention.html.j2",
    NotificationType.EVENT_PROPOSAL.value: "event_proposal.html.j2",
    NotificationType.EVENT_STATUS.value: "event_status.html.j2",
    NotificationType.DIRECT_MESSAGE.value: "direct_message.html.j2",
}
FALLBACK_TEMPLATE = "fallback.html.j2"

# plural noun used in the subject of a grouped email
SUBJECT_NOUNS: Dict[str, str] = {
    NotificationType.NEWS.value: "news posts",
    NotificationType.POST.value: "posts",
    NotificationType.EVENT.value: "events",
    NotificationType.MENTION.value: "mentions",
    NotificationType.EVENT_PROPOSAL.value: "event proposals",
    NotificationType.EVENT_STATUS.value: "event updates",
}

MEDIA_SUFFIX_RE = re.compile(r"\[([^:\]]+):([^\]]+)\]\s*$")
POST_RE = re.compile(r"shared a new post: ([^.]+)\.\s*(.*)$", re.DOTALL)
# the title ends at the first " on ", so a title containing " on " spills into
# the date
EVENT_RE = re.compile(
    r"created an event: (.+?) on (.+?)\.\s*(.*?)\s*(\[([^:\]]+):([^\]]+)\])?\s*$",
    re.DOTALL,
)


def template_for(notification_type: str) -> str:
    return TEMPLATES.get(notification_type, FALLBACK_TEMPLATE)


def extract_media(content: Optional[str]) -> Tuple[str, Optional[Dict[str, str]]]:
    """Split a trailing ``[MediaType:URL]`` suffix off ``content``.

    Returns the remaining text and ``{"type", "url"}`` or None.

    Example:
        >>> extract_media("Look at this [image:http://x/y.png]")
        ('Look at this', {'type': 'image', 'url': 'http://x/y.png'})
    """
    if not content:
        return "", None

    match = MEDIA_SUFFIX_RE.search(content)
    if not match:
        return content.strip(), None

    media = {"type": match.group(1).strip().lower(), "url": match.group(2).strip()}
    return content[: match.start()].strip(), media


def parse_post_content(content: Optional[str]) -> Dict[str, Any]:
    """Read ``"shared a new post: <Title>. <Description> [media]"``.

    Returns ``title`` (None when the sentence form is absent), ``description``
    and ``media``.
    """
    text, media = extract_media(content)
    match = POST_RE.search(text)
    if not match:
        return {"title": None, "description": text or None, "media": media}

    return {
        "title": match.group(1).strip(),
        "description": match.group(2).strip() or None,
        "media": media,
    }


def parse_event_content(content: Optional[str]) -> Optional[Dict[str, Any]]:
    """Read ``"created an event: <title> on <date>. <description> [media]"``.

    Returns None when ``content`` does not follow that form.

    Example:
        >>> parsed = parse_event_content(
        ...     "Alice created an event: Launch Party on 2024-01-01. Join us! [image:http://x/y.png]"
        ... )
        >>> parsed["description"], parsed["media"]
        ('Join us!', {'type': 'image', 'url': 'http://x/y.png'})
    """
    if not content:
        return None

    match = EVENT_RE.search(content)
    if not match:
        return None

    media = None
    if match.group(5) and match.group(6):
        media = {"type": match.group(5).strip().lower(), "url": match.group(6).strip()}

    return {
        "title": match.group(1).strip(),
        "date": match.group(2).strip(),
        "description": match.group(3).strip() or None,
        "media": media,
    }


def format_event_date(raw: Any) -> str:
    """Long English date for ``metadata.eventDate``.

    Unparseable values are shown as given; a missing value reads "Date TBD".
    """
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return "Date TBD"

    parsed = parse_iso_datetime(raw) if isinstance(raw, str) else None
    if parsed is None:
        return str(raw)
    return format_long_date(parsed)


def _text(metadata: Dict[str, Any], key: str) -> Optional[str]:
    value = metadata.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _typed_media(metadata: Dict[str, Any]) -> Optional[Dict[str, str]]:
    media = metadata.get("media")
    if not isinstance(media, dict):
        return None
    media_type = media.get("type")
    url = media.get("url")
    if isinstance(media_type, str) and isinstance(url, str) and url.strip():
        return {"type": media_type.strip().lower(), "url": url.strip()}
    return None


def _post_item(entry: NotificationQueueEntry) -> Dict[str, Any]:
    metadata = entry.metadata_dict()
    parsed = parse_post_content(entry.content_preview)

    title = _text(metadata, "title") or parsed["title"]
    description = _text(metadata, "description") or parsed["description"]
    if not description:
        description = "No description provided" if title else "Content not available"

    return {
        "title": title,
        "body": description,
        "media": _typed_media(metadata) or parsed["media"],
        "actor_name": entry.actor_name() or DEFAULT_ACTOR_NAME,
    }


def _event_item(entry: NotificationQueueEntry, network_name: str) -> Dict[str, Any]:
    metadata = entry.metadata_dict()
    parsed = parse_event_content(entry.content_preview) or {}

    title = _text(metadata, "title") or parsed.get("title")
    if not title and entry.subject_line:
        title = entry.subject_line.replace(f"New event in {network_name}: ", "").strip()

    if parsed:
        description = parsed.get("description")
    else:
        description = (entry.content_preview or "").strip() or None
    description = _text(metadata, "description") or description

    return {
        "title": title or "Event Details",
        "body": description or "Event description not available",
        "media": _typed_media(metadata) or parsed.get("media"),
        "date_label": format_event_date(metadata.get("eventDate")),
        "location": _text(metadata, "eventLocation"),
        "actor_name": entry.actor_name() or DEFAULT_ACTOR_NAME,
    }


def _mention_item(entry: NotificationQueueEntry) -> Dict[str, Any]:
    metadata = entry.metadata_dict()
    return {
        "body": (entry.content_preview or "").strip() or "Message content not available",
        "message_context": _text(metadata, "messageContext"),
        "actor_name": entry.actor_name() or DEFAULT_ACTOR_NAME,
    }


def _proposal_item(entry: NotificationQueueEntry) -> Dict[str, Any]:
    metadata = entry.metadata_dict()
    return {
        "title": _text(metadata, "eventTitle") or _text(metadata, "title"),
        "body": (entry.content_preview or "").strip()
        or "A new event proposal is waiting for review",
        "actor_name": entry.actor_name() or DEFAULT_ACTOR_NAME,
    }


def _status_item(entry: NotificationQueueEntry) -> Dict[str, Any]:
    metadata = entry.metadata_dict()
    content = entry.content_preview or ""
    return {
        "title": _text(metadata, "eventTitle") or _text(metadata, "title"),
        "body": content.strip() or "Your event proposal has been reviewed",
        "rejected": "rejected" in content,
    }


def _message_item(entry: NotificationQueueEntry) -> Dict[str, Any]:
    return {
        "body": (entry.content_preview or "").strip() or "Message content not available",
        "actor_name": entry.actor_name() or DEFAULT_ACTOR_NAME,
    }


def _fallback_item(entry: NotificationQueueEntry) -> Dict[str, Any]:
    return {
        "body": entry.content_preview or "Notification content not available",
        "actor_name": entry.actor_name() or DEFAULT_SENDER_LABEL,
    }


def build_items(unit: DispatchUnit, network_name: str) -> List[Dict[str, Any]]:
    """One content block per entry of the unit."""
    ntype = unit.notification_type
    items = []
    for entry in unit.entries:
        if ntype in (NotificationType.NEWS.value, NotificationType.POST.value):
            items.append(_post_item(entry))
        elif ntype == NotificationType.EVENT.value:
            items.append(_event_item(entry, network_name))
        elif ntype == NotificationType.MENTION.value:
            items.append(_mention_item(entry))
        elif ntype == NotificationType.EVENT_PROPOSAL.value:
            items.append(_proposal_item(entry))
        elif ntype == NotificationType.EVENT_STATUS.value:
            items.append(_status_item(entry))
        elif ntype == NotificationType.DIRECT_MESSAGE.value:
            items.append(_message_item(entry))
        else:
            items.append(_fallback_item(entry))
    return items


def build_subject(unit: DispatchUnit, network_name: str) -> str:
    """Subject line for a unit.

    A single entry keeps its precomputed ``subject_line``. Grouped emails
    state the count; direct messages read "N messages" or "a message".
    """
    entries = unit.entries
    count = len(entries)
    ntype = unit.notification_type

    if ntype == NotificationType.DIRECT_MESSAGE.value:
        sender = unit.sender_name or DEFAULT_ACTOR_NAME
        if count > 1:
            return f"{sender} sent you {count} messages"
        return entries[0].subject_line or f"{sender} sent you a message"

    if count > 1:
        noun = SUBJECT_NOUNS.get(ntype, "notifications")
        return f"{count} new {noun} in {network_name}"

    if entries[0].subject_line:
        return entries[0].subject_line
    if ntype in TEMPLATES:
        return f"New post in {network_name}"
    return f"Notification from {network_name}"


def build_attachments(unit: DispatchUnit) -> List[Attachment]:
    """Calendar invites for ``event`` units whose metadata has ``icsAttachment``.

    A string is an ICS body and is base64 encoded here; an object
    ``{filename, content}`` is passed through as given.
    """
    if unit.notification_type != NotificationType.EVENT.value:
        return []

    attachments = []
    for entry in unit.entries:
        ics = entry.metadata_dict().get("icsAttachment")
        if ics is None:
            continue

        if isinstance(ics, str) and ics.strip():
            attachments.append(
                Attachment(
                    filename=f"event-{entry.related_item_id or entry.id}.ics",
                    content=base64.b64encode(ics.encode("utf-8")).decode("ascii"),
                )
            )
        elif (
            isinstance(ics, dict)
            and isinstance(ics.get("filename"), str)
            and isinstance(ics.get("content"), str)
        ):
            attachments.append(Attachment(filename=ics["filename"], content=ics["content"]))
        else:
            logger.warning(
                f"Ignoring malformed icsAttachment on entry {entry.id}",
                extra={"event": "notification.attachment.ignored", "entry_id": entry.id},
            )

    return attachments


def build_message_context(unit: DispatchUnit, app_url: str) -> Dict[str, Any]:
    """Full template context for a dispatch unit."""
    network_name = unit.group.network_name or DEFAULT_NETWORK_NAME
    items = build_items(unit, network_name)

    if unit.notification_type == NotificationType.DIRECT_MESSAGE.value:
        actor_name = unit.sender_name or DEFAULT_ACTOR_NAME
    else:
        actor_name = items[0].get("actor_name") if items else None

    return {
        "notification_type": unit.notification_type,
        "network_name": network_name,
        "has_network": unit.group.network is not None and bool(unit.group.network_name),
        "recipient_name": unit.group.recipient.full_name,
        "actor_name": actor_name or DEFAULT_ACTOR_NAME,
        "app_url": app_url.rstrip("/"),
        "items": items,
        "count": len(items),
        "rejected": bool(items) and all(item.get("rejected") for item in items),
    }
