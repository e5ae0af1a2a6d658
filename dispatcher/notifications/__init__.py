"""Notification rendering and delivery.

This package turns dispatch units into emails:
- MessageRenderer: Jinja2 templates per notification type
- ResendTransport: HTTP client for the Resend email API
- NotificationService: render, send, then throttle
- Content helpers: media, post and event extraction from queue entries
"""

from .content import (
    build_message_context,
    build_subject,
    extract_media,
    format_event_date,
    parse_event_content,
    parse_post_content,
)
from .models import (
    Attachment,
    NotificationError,
    NotificationTemplateError,
    OutboundEmail,
    RenderedMessage,
    SendResult,
    TransportError,
)
from .service import NotificationService
from .templates import MessageRenderer
from .transport import ResendTransport, extract_error_details

__all__ = [
    # Main service
    "NotificationService",
    # Components
    "MessageRenderer",
    "ResendTransport",
    # Models
    "Attachment",
    "OutboundEmail",
    "RenderedMessage",
    "SendResult",
    # Exceptions
    "NotificationError",
    "NotificationTemplateError",
    "TransportError",
    # Utilities
    "build_message_context",
    "build_subject",
    "extract_media",
    "format_event_date",
    "parse_event_content",
    "parse_post_content",
    "extract_error_details",
]
