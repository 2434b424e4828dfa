"""
Bounded exponential-backoff retry for async operations.

Usage:
    from snoozeplus.core.retry import RetryPolicy, retry_async

    result = await retry_async(lambda: client.post(...), "sendMessage")

    # Explicit policy (seconds)
    policy = RetryPolicy(retries=3, factor=2, min_timeout=1.0, max_timeout=5.0)
    result = await retry_async(fetch, "fetch", policy)

Every exception is retried until the budget is spent; the last exception the
operation raised is re-raised unchanged. asyncio.CancelledError is not an
Exception subclass, so a cancelled caller (e.g. a circuit breaker timeout)
stops the retry loop immediately.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

import structlog

from snoozeplus.core.config import Settings, settings

logger = structlog.get_logger(__name__)

T = TypeVar("T")

__all__ = ["RetryPolicy", "retry_async"]


@dataclass(frozen=True)
class RetryPolicy:
    retries: int = 3
    factor: float = 2.0
    min_timeout: float = 1.0  # seconds
    max_timeout: float = 5.0  # seconds
    randomize: bool = False

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "RetryPolicy":
        """Build the policy from RETRY_* settings (configured in milliseconds)."""
        config = config or settings
        return cls(
            retries=config.RETRY_ATTEMPTS,
            factor=config.RETRY_FACTOR,
            min_timeout=config.RETRY_MIN_TIMEOUT / 1000,
            max_timeout=config.RETRY_MAX_TIMEOUT / 1000,
            randomize=config.RETRY_RANDOMIZE,
        )

    def compute_delay(self, attempt: int) -> float:
        """
        Delay before the retry that follows failed attempt number `attempt`.

        min(max_timeout, min_timeout * factor ** (attempt - 1)), or a uniform
        draw from [0, that value] when randomize is on.
        """
        delay = min(self.max_timeout, self.min_timeout * self.factor ** (attempt - 1))
        if self.randomize:
            delay = random.uniform(0, delay)
        return delay


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    description: str,
    policy: Optional[RetryPolicy] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run `operation` until it succeeds or `policy.retries` retries are used up.

    The operation is invoked at most retries + 1 times.

    Args:
        operation: Zero-argument coroutine factory
        description: Operation name for logs
        policy: Backoff settings (defaults to RETRY_* settings)
        sleep: Awaitable used between attempts

    Returns:
        The operation's result

    Raises:
        The exception from the final attempt
    """
    policy = policy or RetryPolicy.from_settings()
    attempt = 1

    while True:
        try:
            return await operation()
        except Exception as e:
            logger.error(
                "operation attempt failed",
                operation=description,
                attempt=attempt,
                error=str(e),
                error_type=type(e).__name__,
            )
            if attempt > policy.retries:
                raise

            delay = policy.compute_delay(attempt)
            logger.warning(
                "retrying operation",
                operation=description,
                attempt=attempt,
                next_attempt=attempt + 1,
                delay_seconds=round(delay, 3),
            )
            await sleep(delay)
            attempt += 1
