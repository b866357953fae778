"""
Idempotency Store for webhook events.

An event id moves through two states:

- claimed: a handler is working on it. Claims carry a lease so a crashed
  invocation does not block redelivery forever.
- processed: all side effects are done. Permanent; has_processed() is the
  gate that short-circuits redeliveries.

Two backends share the same interface:

- InMemoryIdempotencyStore: single-instance deployments and tests.
- DynamoIdempotencyStore: conditional writes, safe across Lambda instances.
"""

import logging
import os
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

from botocore.exceptions import ClientError

from shared.aws_clients import get_dynamodb

logger = logging.getLogger(__name__)

PROCESSED_EVENTS_TABLE = os.environ.get("PROCESSED_EVENTS_TABLE", "eventpass-processed-events")
EVENT_CLAIM_LEASE_SECONDS = int(os.environ.get("EVENT_CLAIM_LEASE_SECONDS", "300"))

STATUS_PROCESSING = "processing"
STATUS_PROCESSED = "processed"


class IdempotencyStore(Protocol):
    def has_processed(self, event_id: str) -> bool: ...

    def claim(self, event_id: str, event_type: str = "") -> bool: ...

    def release(self, event_id: str) -> None: ...

    def mark_processed(self, event_id: str, event_type: str = "", livemode: bool = False) -> None: ...


class InMemoryIdempotencyStore:
    """Process-local store guarded by a lock."""

    def __init__(
        self,
        lease_seconds: int = EVENT_CLAIM_LEASE_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._lease_seconds = lease_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._processed: dict[str, float] = {}
        self._claims: dict[str, float] = {}

    def has_processed(self, event_id: str) -> bool:
        with self._lock:
            return event_id in self._processed

    def claim(self, event_id: str, event_type: str = "") -> bool:
        now = self._clock()
        with self._lock:
            if event_id in self._processed:
                return False
            expires_at = self._claims.get(event_id)
            if expires_at is not None and expires_at > now:
                return False
            self._claims[event_id] = now + self._lease_seconds
            return True

    def release(self, event_id: str) -> None:
        with self._lock:
            self._claims.pop(event_id, None)

    def mark_processed(self, event_id: str, event_type: str = "", livemode: bool = False) -> None:
        with self._lock:
            # setdefault keeps the first processing timestamp
            self._processed.setdefault(event_id, self._clock())
            self._claims.pop(event_id, None)

    def processed_at(self, event_id: str) -> Optional[float]:
        with self._lock:
            return self._processed.get(event_id)


class DynamoIdempotencyStore:
    """DynamoDB-backed store using conditional writes.

    Item layout (pk = event id):
        status: "processing" | "processed"
        event_type, claimed_at, lease_expires_at, processed_at, livemode
    """

    def __init__(
        self,
        table_name: str = PROCESSED_EVENTS_TABLE,
        lease_seconds: int = EVENT_CLAIM_LEASE_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._table_name = table_name
        self._lease_seconds = lease_seconds
        self._clock = clock

    @property
    def table(self):
        return get_dynamodb().Table(self._table_name)

    def has_processed(self, event_id: str) -> bool:
        response = self.table.get_item(
            Key={"pk": event_id},
            ConsistentRead=True,
            ProjectionExpression="#status",
            ExpressionAttributeNames={"#status": "status"},
        )
        item = response.get("Item")
        return bool(item) and item.get("status") == STATUS_PROCESSED

    def claim(self, event_id: str, event_type: str = "") -> bool:
        """Atomically claim an event unless it is processed or leased.

        Returns:
            True if claimed (caller should process)
            False if processed or another invocation holds a live lease
        """
        now = int(self._clock())
        try:
            self.table.put_item(
                Item={
                    "pk": event_id,
                    "status": STATUS_PROCESSING,
                    "event_type": event_type,
                    "claimed_at": datetime.now(timezone.utc).isoformat(),
                    "lease_expires_at": now + self._lease_seconds,
                },
                ConditionExpression=(
                    "attribute_not_exists(pk) OR "
                    "(#status = :processing AND lease_expires_at < :now)"
                ),
                ExpressionAttributeNames={"#status": "status"},
                ExpressionAttributeValues={":processing": STATUS_PROCESSING, ":now": now},
            )
            return True
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                return False
            raise

    def release(self, event_id: str) -> None:
        """Release a claim so provider redelivery can re-process.

        Processed records are never removed.
        """
        try:
            self.table.delete_item(
                Key={"pk": event_id},
                ConditionExpression="#status = :processing",
                ExpressionAttributeNames={"#status": "status"},
                ExpressionAttributeValues={":processing": STATUS_PROCESSING},
            )
            logger.info(f"Released event claim for {event_id} to allow retry")
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                return
            # Best-effort - the lease expires on its own
            logger.error(f"Failed to release event claim {event_id}: {e}")

    def mark_processed(self, event_id: str, event_type: str = "", livemode: bool = False) -> None:
        self.table.update_item(
            Key={"pk": event_id},
            UpdateExpression=(
                "SET #status = :processed, event_type = :event_type, livemode = :livemode, "
                "processed_at = if_not_exists(processed_at, :now) "
                "REMOVE lease_expires_at"
            ),
            ExpressionAttributeNames={"#status": "status"},
            ExpressionAttributeValues={
                ":processed": STATUS_PROCESSED,
                ":event_type": event_type,
                ":livemode": livemode,
                ":now": datetime.now(timezone.utc).isoformat(),
            },
        )
