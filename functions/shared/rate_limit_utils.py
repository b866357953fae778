"""
Rate Limiting Utilities

Per-identity sliding-window limiter guarding POST /archive/verify.

Each identity (normalized email) owns an ordered list of attempt
timestamps. On every check, timestamps older than the window are
discarded; the request is allowed when fewer than `limit` remain, and
only allowed requests are recorded. A denied request never consumes a
slot.

The check-then-append step lives in the window store so each backend
can make it atomic:

- InMemoryWindowStore: threading.Lock, single instance.
- DynamoWindowStore: optimistic concurrency on a version attribute,
  shared across Lambda instances.
"""

import logging
import os
import threading
import time
from typing import Callable, Protocol

from botocore.exceptions import ClientError

from shared.aws_clients import get_dynamodb
from shared.constants import DEFAULT_ARCHIVE_RATE_LIMIT, DEFAULT_ARCHIVE_RATE_WINDOW_SECONDS

logger = logging.getLogger(__name__)

RATE_LIMIT_TABLE = os.environ.get("RATE_LIMIT_TABLE", "eventpass-rate-limits")

# Version conflicts tolerated before a request is denied
MAX_WRITE_CONFLICTS = 5


def normalize_identity(identity: str) -> str:
    return (identity or "").strip().lower()


class WindowStore(Protocol):
    def try_append(self, key: str, now: float, window_seconds: float, limit: int) -> bool: ...


class InMemoryWindowStore:
    """Window map held in process memory."""

    def __init__(self):
        self._lock = threading.Lock()
        self._windows: dict[str, list[float]] = {}

    def try_append(self, key: str, now: float, window_seconds: float, limit: int) -> bool:
        with self._lock:
            timestamps = [t for t in self._windows.get(key, []) if now - t < window_seconds]
            if len(timestamps) >= limit:
                self._windows[key] = timestamps
                return False
            timestamps.append(now)
            self._windows[key] = timestamps
            return True

    def window(self, key: str) -> list[float]:
        with self._lock:
            return list(self._windows.get(key, []))


class DynamoWindowStore:
    """Window per identity in DynamoDB.

    Item layout (pk = "archive#<identity>"):
        timestamps: list of epoch milliseconds
        version: incremented on every write
        ttl: expiry so idle windows are cleaned up
    """

    def __init__(self, table_name: str = RATE_LIMIT_TABLE, max_conflicts: int = MAX_WRITE_CONFLICTS):
        self._table_name = table_name
        self._max_conflicts = max_conflicts

    def try_append(self, key: str, now: float, window_seconds: float, limit: int) -> bool:
        table = get_dynamodb().Table(self._table_name)
        pk = f"archive#{key}"
        now_ms = int(now * 1000)
        window_ms = int(window_seconds * 1000)

        for _ in range(self._max_conflicts):
            item = table.get_item(Key={"pk": pk}, ConsistentRead=True).get("Item")
            version = int(item.get("version", 0)) if item else 0
            timestamps = [int(t) for t in (item or {}).get("timestamps", [])]
            timestamps = [t for t in timestamps if now_ms - t < window_ms]

            if len(timestamps) >= limit:
                return False

            timestamps.append(now_ms)
            try:
                table.put_item(
                    Item={
                        "pk": pk,
                        "timestamps": timestamps,
                        "version": version + 1,
                        "ttl": int(now + window_seconds) + 60,
                    },
                    ConditionExpression="attribute_not_exists(pk) OR version = :version",
                    ExpressionAttributeValues={":version": version},
                )
                return True
            except ClientError as e:
                if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                    continue
                raise

        logger.warning(f"Rate limit window for {pk[:12]}*** kept changing; denying request")
        return False


class SlidingWindowRateLimiter:
    """allow(identity) -> bool over a pluggable window store."""

    def __init__(
        self,
        store: WindowStore,
        limit: int = DEFAULT_ARCHIVE_RATE_LIMIT,
        window_seconds: float = DEFAULT_ARCHIVE_RATE_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self.store = store
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock

    def allow(self, identity: str) -> bool:
        key = normalize_identity(identity)
        return self.store.try_append(key, self._clock(), self.window_seconds, self.limit)


def archive_rate_limit_from_env() -> tuple[int, int]:
    """Ceiling and window for archive checks (looser values for staging)."""
    limit = int(os.environ.get("ARCHIVE_RATE_LIMIT_MAX") or DEFAULT_ARCHIVE_RATE_LIMIT)
    window = int(
        os.environ.get("ARCHIVE_RATE_LIMIT_WINDOW_SECONDS") or DEFAULT_ARCHIVE_RATE_WINDOW_SECONDS
    )
    return limit, window

