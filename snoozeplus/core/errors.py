"""
Exception types raised by the Snooze+ delivery core.

Every error the core raises on purpose derives from SnoozePlusError so callers
can tell them apart from transport failures (httpx.HTTPError), which are
propagated unchanged so the real cause stays visible after retries.
"""

from typing import Optional

__all__ = [
    "SnoozePlusError",
    "CircuitOpenError",
    "CircuitTimeoutError",
    "IntercomAPIError",
    "DecryptionError",
    "SchedulerShuttingDownError",
]


class SnoozePlusError(Exception):
    """Base class for Snooze+ errors."""


class CircuitOpenError(SnoozePlusError):
    """The circuit breaker rejected a call without executing it."""

    def __init__(self, name: str, reset_timeout: float):
        self.name = name
        self.reset_timeout = reset_timeout
        super().__init__(f"Circuit breaker '{name}' is OPEN. Retry after {reset_timeout:g}s")


class CircuitTimeoutError(SnoozePlusError, TimeoutError):
    """A guarded call did not complete within the breaker's call timeout."""

    def __init__(self, name: str, timeout: float):
        self.name = name
        self.timeout = timeout
        super().__init__(f"Circuit breaker '{name}' timeout after {timeout:g}s")


class IntercomAPIError(SnoozePlusError):
    """Intercom answered with a non-2xx status."""

    def __init__(self, operation: str, status_code: int, body: Optional[str] = None):
        self.operation = operation
        self.status_code = status_code
        self.body = body or ""
        super().__init__(f"Intercom API error during {operation}: {status_code} - {self.body[:500]}")


class DecryptionError(SnoozePlusError):
    """Ciphertext was malformed, tampered with, or encrypted under another key."""


class SchedulerShuttingDownError(SnoozePlusError):
    """New work was submitted while the message scheduler is draining."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Scheduler is shutting down; refused to schedule {job_id}")
