"""
Notification Dispatcher.

Sends a formatted message to one address through a pluggable transport,
retrying up to 3 attempts (waits of 1s then 2s). Any transport exception,
including a non-success HTTP status, counts as a retryable failure. When
all attempts fail, DeliveryError is raised to the caller.

Transports:
- SesTransport: Amazon SES via boto3 (default)
- SendGridTransport: SendGrid v3 mail/send via httpx
"""

import logging
import os
from typing import Callable, Optional, Protocol

import httpx
from botocore.exceptions import BotoCoreError, ClientError

from shared.aws_clients import get_ses
from shared.constants import DEFAULT_HTTP_TIMEOUT
from shared.email_content import NotificationContent
from shared.errors import DeliveryError, TransportError
from shared.logging_utils import mask_email
from shared.retry import NOTIFICATION_RETRY_POLICY, RetryPolicy, retry_call
from shared.secret_utils import read_secret

logger = logging.getLogger(__name__)

NOTIFICATION_SENDER = os.environ.get("NOTIFICATION_SENDER", "noreply@aifes.example.com")
SENDGRID_API_KEY_ARN = os.environ.get("SENDGRID_API_KEY_ARN")
SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"


class NotificationTransport(Protocol):
    def send(self, recipient: str, subject: str, content: NotificationContent) -> None: ...


class SesTransport:
    """Send via SES. Raises TransportError on any failure."""

    def __init__(self, sender: str = NOTIFICATION_SENDER):
        self.sender = sender

    def send(self, recipient: str, subject: str, content: NotificationContent) -> None:
        try:
            get_ses().send_email(
                Source=self.sender,
                Destination={"ToAddresses": [recipient]},
                Message={
                    "Subject": {"Data": subject, "Charset": "UTF-8"},
                    "Body": {
                        "Html": {"Data": content.html, "Charset": "UTF-8"},
                        "Text": {"Data": content.text, "Charset": "UTF-8"},
                    },
                },
            )
        except (ClientError, BotoCoreError) as e:
            raise TransportError(f"SES send failed: {e}") from e


class SendGridTransport:
    """Send via the SendGrid HTTP API. Non-2xx responses are failures."""

    def __init__(
        self,
        api_key: str,
        sender: str = NOTIFICATION_SENDER,
        client: Optional[httpx.Client] = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ):
        self.api_key = api_key
        self.sender = sender
        self._client = client or httpx.Client(timeout=timeout)

    def send(self, recipient: str, subject: str, content: NotificationContent) -> None:
        payload = {
            "personalizations": [{"to": [{"email": recipient}]}],
            "from": {"email": self.sender},
            "subject": subject,
            "content": [
                {"type": "text/plain", "value": content.text},
                {"type": "text/html", "value": content.html},
            ],
        }
        try:
            response = self._client.post(
                SENDGRID_SEND_URL,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except httpx.HTTPError as e:
            raise TransportError(f"SendGrid request failed: {e}") from e

        if not response.is_success:
            raise TransportError(f"SendGrid API error: {response.status_code} {response.text[:200]}")


class NotificationDispatcher:
    """send(recipient, subject, content) with bounded retry."""

    def __init__(
        self,
        transport: NotificationTransport,
        policy: RetryPolicy = NOTIFICATION_RETRY_POLICY,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.transport = transport
        self.policy = policy
        self._sleep = sleep

    def send(self, recipient: str, subject: str, content: NotificationContent) -> None:
        try:
            retry_call(
                self.transport.send,
                recipient,
                subject,
                content,
                policy=self.policy,
                sleep=self._sleep,
            )
        except Exception as e:
            raise DeliveryError(recipient, subject, self.policy.max_attempts, e) from e

        logger.info(f"Notification sent to {mask_email(recipient)}")


def build_transport() -> NotificationTransport:
    """Transport selected by NOTIFICATION_TRANSPORT ('ses' or 'sendgrid')."""
    kind = (os.environ.get("NOTIFICATION_TRANSPORT") or "ses").lower()
    if kind == "sendgrid":
        api_key = read_secret(SENDGRID_API_KEY_ARN, "key")
        if not api_key:
            raise RuntimeError("SendGrid transport selected but SENDGRID_API_KEY_ARN is not readable")
        return SendGridTransport(api_key)
    if kind != "ses":
        raise ValueError(f"Unknown NOTIFICATION_TRANSPORT: {kind}")
    return SesTransport()
