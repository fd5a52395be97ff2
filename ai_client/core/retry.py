"""
Retry execution with exponential backoff.

Re-runs transient API failures with capped exponential delays plus
random jitter so concurrent clients don't retry in lockstep.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from .errors import classify_error, is_retryable

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_JITTER_MS = 250.0

RetryObserver = Callable[[int, float], None]


@dataclass(frozen=True)
class RetryPolicy:
    """Retry limits and delay bounds."""
    max_retries: int = 3
    base_delay_ms: float = 1000
    max_delay_ms: float = 8000

    def __post_init__(self):
        """Validate retry bounds."""
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay_ms <= 0:
            raise ValueError("base_delay_ms must be > 0")
        if self.max_delay_ms < self.base_delay_ms:
            raise ValueError("max_delay_ms must be >= base_delay_ms")


def compute_delay(attempt: int, policy: RetryPolicy, jitter_ms: float = 0.0) -> float:
    """Delay before the retry following a zero-indexed failed attempt.

    Args:
        attempt: Zero-indexed retry count (0 for the first retry)
        policy: Retry policy supplying base and cap
        jitter_ms: Random perturbation to add on top of the capped delay

    Returns:
        Total delay in milliseconds
    """
    exponential = policy.base_delay_ms * (2 ** attempt)
    return min(exponential, policy.max_delay_ms) + jitter_ms


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    on_retry: Optional[RetryObserver] = None
) -> T:
    """Run an async operation, retrying retry-eligible failures.

    The observer, if given, is called with the 1-indexed attempt number and
    the total delay in milliseconds just before each backoff sleep. It is
    never called for the attempt that succeeds or for the final failure.

    Args:
        operation: Zero-argument callable returning an awaitable
        policy: Retry limits and delays
        on_retry: Optional observer invoked before each delay

    Returns:
        The operation's result

    Raises:
        AIClientError: The classified failure once it is non-retryable or
            the retry budget is spent
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as exc:
            error = classify_error(exc)

            if not is_retryable(error) or attempt >= policy.max_retries:
                if error is exc:
                    raise
                raise error from exc

            # random() is in [0, 1), so jitter stays below MAX_JITTER_MS
            total_delay = compute_delay(attempt, policy, random.random() * MAX_JITTER_MS)

            logger.debug(
                "Retry %d/%d after %s: waiting %.0fms",
                attempt + 1, policy.max_retries, error.kind.name, total_delay
            )
            if on_retry is not None:
                on_retry(attempt + 1, total_delay)

            await asyncio.sleep(total_delay / 1000)
            attempt += 1
