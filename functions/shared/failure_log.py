"""
Append-only log of notifications that exhausted their retries.

Entries are written by the webhook processor and only read out-of-band
(see scripts/list_failed_notifications.py).
"""

import logging
import os
import threading
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Protocol

from shared.aws_clients import get_dynamodb

logger = logging.getLogger(__name__)

FAILED_NOTIFICATIONS_TABLE = os.environ.get(
    "FAILED_NOTIFICATIONS_TABLE", "eventpass-failed-notifications"
)


@dataclass(frozen=True)
class FailedNotification:
    recipient: str
    subject: str
    error: str
    recorded_at: str
    context: str = ""


class FailureLog(Protocol):
    def record(
        self, recipient: str, subject: str, error: str, context: str = ""
    ) -> FailedNotification: ...


def _new_entry(recipient: str, subject: str, error: str, context: str) -> FailedNotification:
    return FailedNotification(
        recipient=recipient,
        subject=subject,
        error=error,
        recorded_at=datetime.now(timezone.utc).isoformat(),
        context=context,
    )


class InMemoryFailureLog:
    """Process-local log. Entries are kept for inspection in tests."""

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: list[FailedNotification] = []

    def record(self, recipient: str, subject: str, error: str, context: str = "") -> FailedNotification:
        entry = _new_entry(recipient, subject, error, context)
        with self._lock:
            self._entries.append(entry)
        return entry

    @property
    def entries(self) -> list[FailedNotification]:
        with self._lock:
            return list(self._entries)


class DynamoFailureLog:
    """One item per failure: pk = recipient, sk = recorded_at#id."""

    def __init__(self, table_name: str = FAILED_NOTIFICATIONS_TABLE):
        self._table_name = table_name

    def record(self, recipient: str, subject: str, error: str, context: str = "") -> FailedNotification:
        entry = _new_entry(recipient, subject, error, context)
        table = get_dynamodb().Table(self._table_name)
        table.put_item(
            Item={
                "pk": recipient,
                "sk": f"{entry.recorded_at}#{uuid.uuid4().hex[:8]}",
                **asdict(entry),
            }
        )
        return entry
