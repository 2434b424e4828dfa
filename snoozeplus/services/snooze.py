"""
Snooze request building and the HTML notes Snooze+ posts to conversations.
"""

import math
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

import structlog

from snoozeplus.core.typing import utc_now
from snoozeplus.schemas import SnoozeMessage, SnoozeRequest, SnoozeStep
from snoozeplus.services.crypto import CryptoService

logger = structlog.get_logger(__name__)


def _plural(count: int, singular: str, plural: str) -> str:
    return singular if count == 1 else plural


def unix_timestamp(value: datetime) -> int:
    return math.floor(value.timestamp())


def days_until_sending(send_date: datetime, now: Optional[datetime] = None) -> int:
    """Whole days from now until `send_date`, rounded up."""
    now = now or utc_now()
    return math.ceil((send_date - now).total_seconds() / 86400)


def create_snooze_request(
    steps: Sequence[SnoozeStep],
    then_close: bool,
    crypto: CryptoService,
    now: Optional[datetime] = None,
) -> SnoozeRequest:
    """
    Turn the agent's snooze steps into encrypted messages with send dates.

    Each step's send date is `now` plus the cumulative snooze days so far.
    Only the last message closes the conversation, and only when `then_close`.

    Raises:
        ValueError: no steps were given
    """
    if not steps:
        raise ValueError("A snooze needs at least one message")

    now = now or utc_now()
    total_days = 0
    messages: List[SnoozeMessage] = []

    for index, step in enumerate(steps, start=1):
        total_days += step.snooze_days
        messages.append(
            SnoozeMessage(
                message=crypto.encrypt(step.message),
                send_date=now + timedelta(days=total_days),
                close_conversation=then_close and index == len(steps),
            )
        )

    snooze_until = messages[-1].send_date
    logger.debug(
        "snooze request created",
        snooze_count=len(messages),
        total_days=total_days,
        snooze_until=snooze_until.isoformat(),
    )

    return SnoozeRequest(
        messages=messages,
        note=snooze_set_note(len(messages), total_days, snooze_until),
        snooze_until_unix_timestamp=unix_timestamp(snooze_until),
    )


def snooze_set_note(snooze_count: int, snooze_days: int, snooze_until: datetime) -> str:
    day_label = _plural(snooze_days, "day", "days")
    message_label = _plural(snooze_count, "message", "messages")
    return (
        "<p><strong>Snooze+ has been set.</strong></p><br />"
        f"<p>The conversation will be snoozed for a total of {snooze_days} {day_label}, "
        f"with {snooze_count} {message_label} being sent. "
        f"The last message will send on {snooze_until.strftime('%Y-%m-%d')}.</p>"
    )


def send_message_note(remaining: int) -> str:
    message_label = _plural(remaining, "message", "messages")
    verb = _plural(remaining, "is", "are")
    return (
        "<p><strong>Snooze+ message sent.</strong></p><br />"
        "<p>A message has been sent.</p>"
        f"<p>There {verb} {remaining} {message_label} waiting to be sent.</p>"
    )


def last_message_close_note() -> str:
    return (
        "<p><strong>Snooze+ has ended.</strong></p><br />"
        "<p>The last message has been sent and has closed the conversation.</p>"
    )


def snooze_cancelled_note(cancelled: int) -> str:
    message_label = _plural(cancelled, "message", "messages")
    return (
        "<p><strong>Snooze+ has been canceled.</strong></p><br />"
        f"<p>The remaining {cancelled} {message_label} will not be sent.</p>"
    )


def close_note(reason: str, cancelled: int) -> str:
    message_label = _plural(cancelled, "message", "messages")
    return (
        "<p><strong>Snooze+ has ended.</strong></p><br />"
        f"<p>The conversation has been {reason}.</p>"
        f"<p>The remaining {cancelled} {message_label} will not be sent.</p>"
    )
