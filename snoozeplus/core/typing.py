"""
Type helpers for SQLAlchemy/SQLModel compatibility with type checkers.

SQLModel fields are declared with Python types (e.g., `archived: bool`) but at
the class level they're actually InstrumentedAttribute descriptors with
SQLAlchemy column methods like .desc(), .in_(), .is_(), etc.

Type checkers (mypy, ty) see them as plain Python types and report errors when
column methods are called. This module provides helpers to bridge that gap.
"""

from typing import TYPE_CHECKING, Optional, TypeVar
from datetime import datetime, timezone

if TYPE_CHECKING:
    from sqlalchemy.orm.attributes import InstrumentedAttribute

T = TypeVar("T")


def col(attr: T) -> "InstrumentedAttribute[T]":
    """
    Type helper for SQLAlchemy column operations in queries.

    At runtime this is a no-op - it just returns the input unchanged.

    Usage:
        from snoozeplus.core.typing import col

        select(Message).order_by(col(Message.send_date).asc())
    """
    return attr  # type: ignore[return-value]


def utc_now() -> datetime:
    """
    Get current UTC time (timezone-aware).

    Use as default_factory in SQLModel fields and as the default clock for
    the circuit breaker and message scheduler.
    """
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Attach UTC to naive datetimes read back from the database.

    SQLite drops tzinfo on round-trip; every timestamp we store is UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


__all__ = [
    "col",
    "utc_now",
    "ensure_utc",
]
