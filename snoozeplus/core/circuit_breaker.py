import asyncio
from datetime import datetime
from enum import Enum
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

import structlog

from snoozeplus.core.errors import CircuitOpenError, CircuitTimeoutError
from snoozeplus.core.typing import utc_now

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Successes required in HALF_OPEN before the circuit closes again
HALF_OPEN_SUCCESS_THRESHOLD = 3


class CircuitState(Enum):
    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject requests
    HALF_OPEN = "half_open"  # Testing if recovered


@dataclass(frozen=True)
class CircuitSnapshot:
    """Read-only view of a breaker for health checks."""

    name: str
    state: CircuitState
    failure_count: int
    success_count: int
    last_failure_time: Optional[datetime]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "last_failure_time": self.last_failure_time.isoformat() if self.last_failure_time else None,
        }


@dataclass
class CircuitBreaker:
    name: str
    failure_threshold: int = 5
    call_timeout: float = 10.0  # seconds
    reset_timeout: float = 60.0  # seconds
    half_open_success_threshold: int = HALF_OPEN_SUCCESS_THRESHOLD
    clock: Callable[[], datetime] = field(default=utc_now, repr=False)

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failure_count: int = field(default=0, init=False)
    _success_count: int = field(default=0, init=False)
    _last_failure_time: datetime | None = field(default=None, init=False)
    _lock: Lock = field(default_factory=Lock, init=False, repr=False)

    @property
    def state(self) -> CircuitState:
        """Return current state. Use allow_request() for state transitions."""
        return self._state

    def snapshot(self) -> CircuitSnapshot:
        with self._lock:
            return CircuitSnapshot(
                name=self.name,
                state=self._state,
                failure_count=self._failure_count,
                success_count=self._success_count,
                last_failure_time=self._last_failure_time,
            )

    def _check_recovery_transition(self) -> None:
        """Move OPEN -> HALF_OPEN once reset_timeout has elapsed since the last failure.

        Must be called while holding self._lock.
        """
        if self._state == CircuitState.OPEN and self._last_failure_time:
            elapsed = (self.clock() - self._last_failure_time).total_seconds()
            if elapsed > self.reset_timeout:
                self._state = CircuitState.HALF_OPEN
                self._success_count = 0
                logger.info("circuit state change", circuit=self.name, transition="OPEN -> HALF_OPEN")

    def record_success(self):
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._success_count += 1
                if self._success_count >= self.half_open_success_threshold:
                    self._state = CircuitState.CLOSED
                    self._failure_count = 0
                    self._success_count = 0
                    logger.info("circuit state change", circuit=self.name, transition="HALF_OPEN -> CLOSED")
            else:
                self._failure_count = 0

    def record_failure(self):
        with self._lock:
            self._failure_count += 1
            self._last_failure_time = self.clock()

            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.OPEN
                logger.warning(
                    "circuit state change",
                    circuit=self.name,
                    transition="HALF_OPEN -> OPEN",
                    reason="failure during recovery",
                )
            elif self._state == CircuitState.CLOSED and self._failure_count >= self.failure_threshold:
                self._state = CircuitState.OPEN
                logger.warning(
                    "circuit state change",
                    circuit=self.name,
                    transition="CLOSED -> OPEN",
                    failure_count=self._failure_count,
                )

    def allow_request(self) -> bool:
        with self._lock:
            self._check_recovery_transition()
            return self._state != CircuitState.OPEN

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run `operation` under breaker protection.

        Raises:
            CircuitOpenError: circuit is OPEN; operation was not invoked
            CircuitTimeoutError: operation exceeded call_timeout (it is cancelled)
            Exception: whatever the operation raised
        """
        if not self.allow_request():
            raise CircuitOpenError(self.name, self.reset_timeout)

        try:
            result = await asyncio.wait_for(operation(), timeout=self.call_timeout)
        except asyncio.TimeoutError:
            self.record_failure()
            raise CircuitTimeoutError(self.name, self.call_timeout) from None
        except Exception:
            self.record_failure()
            raise

        self.record_success()
        return result

    def reset(self) -> None:
        """Force the breaker back to CLOSED with all counters cleared."""
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._success_count = 0
            self._last_failure_time = None
        logger.info("circuit reset", circuit=self.name)
