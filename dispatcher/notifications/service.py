"""Notification service: render a dispatch unit and hand it to the email API.

Sending is strictly sequential. After every successful send the service
blocks for the configured delay before returning, which keeps the process
under the email API's rate limit.
"""

import logging
import time
from typing import Callable, Optional

from email_validator import EmailNotValidError, validate_email

from dispatcher.grouping.models import DispatchUnit
from dispatcher.logging import get_logger

from .models import NotificationError, OutboundEmail, SendResult
from .templates import MessageRenderer
from .transport import ResendTransport

logger = get_logger(__name__, component="notification")


class NotificationService:
    """Sends one email per dispatch unit.

    Errors are not caught here: NotificationTemplateError, TransportError and
    NotificationError propagate so the pipeline can record the failure for
    the whole group.
    """

    def __init__(
        self,
        renderer: MessageRenderer,
        transport: ResendTransport,
        sender: str,
        send_delay_seconds: float = 0.6,
        sleep: Callable[[float], None] = time.sleep,
        logger_instance: Optional[logging.Logger] = None,
    ):
        """Initialize notification service.

        Args:
            renderer: Template renderer for dispatch units
            transport: Email API client
            sender: ``From`` address, optionally ``Name <addr>``
            send_delay_seconds: Pause after each successful send
            sleep: Blocking sleep function (injected by tests)
            logger_instance: Logger instance (uses module logger if None)
        """
        self.renderer = renderer
        self.transport = transport
        self.sender = sender
        self.send_delay_seconds = send_delay_seconds
        self._sleep = sleep
        self.logger = logger_instance or logger

    def send_unit(self, unit: DispatchUnit) -> SendResult:
        """Render and send the email for one dispatch unit.

        Raises:
            NotificationTemplateError: If rendering fails
            NotificationError: If the recipient address is invalid
            TransportError: If the email API rejects the message
        """
        recipient = self._recipient_address(unit)
        rendered = self.renderer.render(unit)

        email = OutboundEmail(
            sender=self.sender,
            to=recipient,
            subject=rendered.subject,
            html=rendered.html_body,
            attachments=rendered.attachments,
        )

        message_id = self.transport.send(email)

        self.logger.info(
            f"Sent {unit.notification_type} email to {recipient} "
            f"covering {len(unit.entries)} notification(s)",
            extra={
                "event": "notification.send.success",
                "group_key": unit.group.key,
                "entry_count": len(unit.entries),
                "message_id": message_id,
                "attachments": len(rendered.attachments),
            },
        )

        if self.send_delay_seconds > 0:
            self._sleep(self.send_delay_seconds)

        return SendResult(entry_ids=unit.entry_ids, message_id=message_id)

    @staticmethod
    def _recipient_address(unit: DispatchUnit) -> str:
        address = unit.group.recipient.contact_email
        if not address:
            raise NotificationError(f"Recipient {unit.group.recipient.id} has no email address")
        try:
            return validate_email(address, check_deliverability=False).normalized
        except EmailNotValidError as e:
            raise NotificationError(f"Invalid recipient email {address!r}: {e}") from e
