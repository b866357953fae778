"""
Process-wide instances of the shared mutable state.

STATE_BACKEND selects where idempotency records, rate-limit windows and
failed notifications live:

- dynamodb (default): shared across Lambda instances
- memory: single-instance deployments and local runs

Instances are created lazily and reused across invocations.
"""

import os

from shared.failure_log import DynamoFailureLog, FailureLog, InMemoryFailureLog
from shared.idempotency import DynamoIdempotencyStore, IdempotencyStore, InMemoryIdempotencyStore
from shared.rate_limit_utils import (
    DynamoWindowStore,
    InMemoryWindowStore,
    SlidingWindowRateLimiter,
    archive_rate_limit_from_env,
)

_idempotency_store = None
_failure_log = None
_rate_limiter = None


def state_backend() -> str:
    backend = (os.environ.get("STATE_BACKEND") or "dynamodb").lower()
    if backend not in ("dynamodb", "memory"):
        raise ValueError(f"Unknown STATE_BACKEND: {backend}")
    return backend


def get_idempotency_store() -> IdempotencyStore:
    global _idempotency_store
    if _idempotency_store is None:
        if state_backend() == "dynamodb":
            _idempotency_store = DynamoIdempotencyStore()
        else:
            _idempotency_store = InMemoryIdempotencyStore()
    return _idempotency_store


def get_failure_log() -> FailureLog:
    global _failure_log
    if _failure_log is None:
        _failure_log = DynamoFailureLog() if state_backend() == "dynamodb" else InMemoryFailureLog()
    return _failure_log


def get_archive_rate_limiter() -> SlidingWindowRateLimiter:
    global _rate_limiter
    if _rate_limiter is None:
        limit, window = archive_rate_limit_from_env()
        store = DynamoWindowStore() if state_backend() == "dynamodb" else InMemoryWindowStore()
        _rate_limiter = SlidingWindowRateLimiter(store, limit=limit, window_seconds=window)
    return _rate_limiter


def reset_state() -> None:
    """Drop cached instances. Used in tests for clean state."""
    global _idempotency_store, _failure_log, _rate_limiter
    _idempotency_store = None
    _failure_log = None
    _rate_limiter = None
