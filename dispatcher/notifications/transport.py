"""HTTP client for the Resend email API."""

import json
from typing import Any, Optional

import requests

from dispatcher.logging import get_logger

from .models import OutboundEmail, TransportError

logger = get_logger(__name__, component="transport")

DEFAULT_API_URL = "https://api.resend.com/emails"


def extract_error_details(body: Any) -> Optional[str]:
    """Return a human readable description for an email API error payload."""
    if body in (None, ""):
        return None

    if isinstance(body, bytes):
        try:
            body = body.decode("utf-8")
        except UnicodeDecodeError:
            return None

    if isinstance(body, str):
        body = body.strip()
        if not body:
            return None
        try:
            parsed = json.loads(body)
        except json.JSONDecodeError:
            return body
    else:
        parsed = body

    if isinstance(parsed, dict):
        message = parsed.get("message")
        name = parsed.get("name")
        if message and name:
            return f"{name}: {message}"
        if message:
            return str(message)
        errors = parsed.get("errors")
        if isinstance(errors, list):
            messages = [
                str(item.get("message")) for item in errors if isinstance(item, dict) and item.get("message")
            ]
            if messages:
                return "; ".join(messages)
        try:
            return json.dumps(parsed)
        except (TypeError, ValueError):
            return None

    if isinstance(parsed, list):
        return "; ".join(str(item) for item in parsed)

    return None


def _decode_body(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None


def is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class ResendTransport:
    """Sends rendered emails through the Resend HTTP API.

    One ``requests.Session`` is reused across sends. Any status >= 400 or
    network failure raises TransportError; nothing is retried here.
    """

    def __init__(
        self,
        api_key: str,
        api_url: str = DEFAULT_API_URL,
        timeout: int = 30,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not api_key:
            raise ValueError("api_key cannot be empty")

        self.api_url = api_url
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            }
        )

    def send(self, email: OutboundEmail) -> Optional[str]:
        """POST one email.

        Returns:
            The message id reported by the API, if any

        Raises:
            TransportError: On HTTP errors, timeouts and connection failures
        """
        logger.debug(
            f"Sending email to {email.to}",
            extra={
                "event": "transport.send.request",
                "url": self.api_url,
                "attachments": len(email.attachments),
            },
        )

        try:
            response = self._session.post(
                self.api_url,
                json=email.to_payload(),
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            logger.warning(
                f"Email API request timed out after {self.timeout} seconds",
                extra={"event": "transport.send.retryable_error", "error_type": "Timeout"},
            )
            raise TransportError(
                f"Email API request timed out after {self.timeout} seconds",
                retryable=True,
            ) from e
        except requests.exceptions.ConnectionError as e:
            logger.warning(
                f"Email API connection failed: {e}",
                extra={"event": "transport.send.retryable_error", "error_type": "ConnectionError"},
            )
            raise TransportError(f"Email API connection failed: {e}", retryable=True) from e
        except requests.exceptions.RequestException as e:
            logger.error(
                f"Email API request failed: {e}",
                extra={"event": "transport.send.error", "error_type": type(e).__name__},
            )
            raise TransportError(f"Email API request failed: {e}") from e

        body = _decode_body(response)

        if response.status_code >= 400:
            retryable = is_retryable_status(response.status_code)
            details = extract_error_details(body)
            message = f"Email API responded with status {response.status_code}"
            if details:
                message = f"{message}: {details}"

            logger.warning(
                message,
                extra={
                    "event": "transport.send.retryable_error" if retryable else "transport.send.error",
                    "status_code": response.status_code,
                },
            )
            raise TransportError(
                message,
                status_code=response.status_code,
                payload=body,
                retryable=retryable,
            )

        message_id = body.get("id") if isinstance(body, dict) else None
        logger.debug(
            "Email API accepted message",
            extra={
                "event": "transport.send.succeeded",
                "status_code": response.status_code,
                "message_id": message_id,
            },
        )
        return message_id

    def close(self) -> None:
        self._session.close()
