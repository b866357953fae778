"""
Centralized retry logic with a bounded backoff schedule.

Features:
- Configurable attempt count and delay schedule
- Exponential schedule helper (1s, 2s, 4s, ...)
- Retryable exception filtering
- Structured logging for observability

The executor is independent of what it retries; the notification
dispatcher is the main caller. Sleeps happen outside any lock held
by the caller.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple, Type, TypeVar

from shared.constants import NOTIFICATION_MAX_ATTEMPTS, NOTIFICATION_RETRY_DELAYS

logger = logging.getLogger(__name__)

T = TypeVar("T")


def exponential_delays(base_delay: float, count: int, exponential_base: float = 2.0) -> Tuple[float, ...]:
    """Build a fixed delay schedule: base, base*2, base*4, ..."""
    return tuple(base_delay * (exponential_base**i) for i in range(count))


@dataclass(frozen=True)
class RetryPolicy:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    delays: Tuple[float, ...] = field(default_factory=lambda: exponential_delays(1.0, 3))
    retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,)

    def delay_after(self, attempt: int) -> float:
        """Delay to wait after the given 1-based attempt failed."""
        if not self.delays:
            return 0.0
        index = min(attempt - 1, len(self.delays) - 1)
        return self.delays[index]


def retry_call(
    func: Callable[..., T],
    *args,
    policy: Optional[RetryPolicy] = None,
    sleep: Optional[Callable[[float], None]] = None,
    **kwargs,
) -> T:
    """
    Execute function with retry logic.

    Args:
        func: Function to call
        *args: Positional arguments for func
        policy: Retry policy
        sleep: Sleep function (injectable for tests)
        **kwargs: Keyword arguments for func

    Returns:
        Result from successful function call

    Raises:
        Last exception if all attempts are exhausted
    """
    policy = policy or RetryPolicy()
    sleep = sleep or time.sleep
    name = getattr(func, "__name__", repr(func))

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return func(*args, **kwargs)
        except policy.retryable_exceptions as e:
            if attempt == policy.max_attempts:
                logger.error(
                    f"All {policy.max_attempts} attempts failed for {name}",
                    extra={
                        "function": name,
                        "attempts": policy.max_attempts,
                        "final_error": str(e),
                        "error_type": type(e).__name__,
                    },
                )
                raise

            delay = policy.delay_after(attempt)
            logger.warning(
                f"Attempt {attempt}/{policy.max_attempts} failed for "
                f"{name}, retrying in {delay:.2f}s: {e}",
                extra={
                    "function": name,
                    "attempt": attempt,
                    "delay_seconds": delay,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            sleep(delay)

    raise RuntimeError("Unexpected retry state")


NOTIFICATION_RETRY_POLICY = RetryPolicy(
    max_attempts=NOTIFICATION_MAX_ATTEMPTS,
    delays=NOTIFICATION_RETRY_DELAYS,
)
