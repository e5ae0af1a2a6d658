"""Data models and exceptions for rendering and sending notification emails."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


class NotificationError(Exception):
    """Base exception for notification-related errors."""

    pass


class NotificationTemplateError(NotificationError):
    """Raised when a template cannot be rendered for a dispatch unit."""

    pass


class TransportError(NotificationError):
    """The email API rejected a message or could not be reached.

    Attributes:
        status_code: HTTP status returned by the API (0 when no response)
        payload: Decoded error body, if the API returned one
        retryable: True for 429, 5xx, timeouts and connection failures
    """

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        payload: Any = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload
        self.retryable = retryable


@dataclass
class Attachment:
    """File attached to an outbound email; ``content`` is base64 encoded."""

    filename: str
    content: str

    def to_payload(self) -> Dict[str, str]:
        return {"filename": self.filename, "content": self.content}


@dataclass
class RenderedMessage:
    """Subject, HTML body and attachments for one dispatch unit."""

    subject: str
    html_body: str
    attachments: List[Attachment] = field(default_factory=list)


@dataclass
class OutboundEmail:
    """A message ready for the email API."""

    sender: str
    to: str
    subject: str
    html: str
    attachments: List[Attachment] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "from": self.sender,
            "to": self.to,
            "subject": self.subject,
            "html": self.html,
        }
        if self.attachments:
            payload["attachments"] = [a.to_payload() for a in self.attachments]
        return payload


@dataclass
class SendResult:
    """Outcome of one successful send.

    Attributes:
        message_id: Identifier returned by the email API, if any
        entry_ids: Queue entries covered by the email
    """

    entry_ids: List[str]
    message_id: Optional[str] = None
