"""Database utilities for handling transient connection failures.

A dropped connection in the middle of a delivery (for example while
archiving a message that was just sent) would otherwise leave the row
pending until the next dispatch pass. Store calls that are safe to repeat
are wrapped in db_retry.
"""

import functools
import time
from typing import Any, Callable, ParamSpec, TypeVar

import structlog
from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError

logger = structlog.get_logger(__name__)

T = TypeVar("T")
P = ParamSpec("P")

# DBAPI connection-level failures; integrity and programming errors are not retried
RETRYABLE_ERRORS = (OperationalError, DisconnectionError, InterfaceError)


def db_retry(
    max_retries: int = 2,
    base_delay: float = 0.2,
    max_delay: float = 2.0,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """
    Decorator that retries a sync database operation on connection failures.

    Each attempt calls the wrapped function again, so a function that opens
    its own Session gets a fresh connection from the pool.

    Args:
        max_retries: Maximum number of retry attempts
        base_delay: Delay before the first retry (seconds), doubled per retry
        max_delay: Maximum delay between retries (seconds)
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        func_name = getattr(func, "__name__", "unknown")

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)  # type: ignore[arg-type]
                except RETRYABLE_ERRORS as e:
                    if attempt >= max_retries:
                        logger.error(
                            "database operation failed",
                            operation=func_name,
                            attempts=attempt + 1,
                            error=str(e),
                        )
                        raise

                    delay = min(base_delay * 2**attempt, max_delay)
                    logger.warning(
                        "retrying database operation",
                        operation=func_name,
                        attempt=attempt + 1,
                        max_attempts=max_retries + 1,
                        delay_seconds=delay,
                        error=str(e),
                    )
                    time.sleep(delay)

            raise RuntimeError("Unexpected state in db_retry")

        return wrapper  # type: ignore[return-value]

    return decorator
