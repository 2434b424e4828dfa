"""
Daily dispatch loop.

Every run fetches the messages due before the end of the current UTC day and
registers one scheduler job per message. When a job fires, the delivery
chain runs strictly in order:

    send -> archive -> "message sent" note -> (close note -> close)

Each step is caught and logged on its own. A failed send ends the chain
before archiving so the next run picks the message up again; any later
failure leaves the earlier steps in place.
"""

import time
from functools import partial
from typing import Protocol

import structlog

from snoozeplus.core.job_scheduler import MessageScheduler
from snoozeplus.schemas import DueMessage
from snoozeplus.services.message_store import MessageStore
from snoozeplus.services.snooze import last_message_close_note, send_message_note

logger = structlog.get_logger(__name__)


class ConversationGateway(Protocol):
    async def send_message(self, conversation_id: int, admin_id: int, access_token: str, message: str): ...

    async def add_note(self, conversation_id: int, admin_id: int, access_token: str, note: str): ...

    async def close_conversation(self, conversation_id: int, admin_id: int, access_token: str): ...

    async def set_snooze(self, conversation_id: int, admin_id: int, access_token: str, snoozed_until: int): ...

    async def cancel_snooze(self, conversation_id: int, admin_id: int, access_token: str): ...


class MessageDispatcher:
    def __init__(
        self,
        store: MessageStore,
        gateway: ConversationGateway,
        job_scheduler: MessageScheduler,
    ):
        self.store = store
        self.gateway = gateway
        self.job_scheduler = job_scheduler

    async def schedule_messages(self) -> int:
        """
        Register a delivery job for every due message.

        Returns:
            Number of messages scheduled
        """
        logger.info("running dispatch to retrieve today's messages")
        start = time.perf_counter()

        try:
            messages = self.store.get_due_messages()
        except Exception as e:
            logger.error("error retrieving due messages", error=str(e), error_type=type(e).__name__)
            return 0

        logger.info(
            "due messages retrieved",
            count=len(messages),
            duration_ms=round((time.perf_counter() - start) * 1000, 1),
        )

        scheduled = 0
        for message in messages:
            try:
                entry = self.job_scheduler.schedule_message(
                    message.id,
                    message.send_date,
                    partial(self.deliver_message, message),
                )
                if entry.task is not None:
                    logger.info("message already being delivered", message_id=message.id)
                    continue
                scheduled += 1
                logger.info(
                    "message scheduled",
                    message_id=message.id,
                    conversation_id=message.conversation_id,
                    send_date=message.send_date.isoformat(),
                )
            except Exception as e:
                logger.error(
                    "error scheduling message",
                    message_id=message.id,
                    error=str(e),
                    error_type=type(e).__name__,
                )

        logger.info("dispatch complete", scheduled=scheduled, total=len(messages))
        return scheduled

    async def deliver_message(self, message: DueMessage) -> None:
        log = logger.bind(message_id=message.id, conversation_id=message.conversation_id)

        try:
            log.info("sending message")
            await self.gateway.send_message(
                message.conversation_id,
                message.admin_id,
                message.access_token,
                message.message,
            )
        except Exception as e:
            log.error("error sending message", error=str(e), error_type=type(e).__name__)
            return

        try:
            archived = self.store.archive_message(message.id)
            log.info("message archived", archived=archived)
        except Exception as e:
            log.error("error archiving message", error=str(e), error_type=type(e).__name__)

        try:
            remaining = self.store.get_remaining_count(message)
            await self.gateway.add_note(
                message.conversation_id,
                message.admin_id,
                message.access_token,
                send_message_note(remaining),
            )
            log.info("sent note added", remaining=remaining)
        except Exception as e:
            log.error("error adding sent note", error=str(e), error_type=type(e).__name__)

        if not message.close_conversation:
            return

        try:
            await self.gateway.add_note(
                message.conversation_id,
                message.admin_id,
                message.access_token,
                last_message_close_note(),
            )
            await self.gateway.close_conversation(
                message.conversation_id,
                message.admin_id,
                message.access_token,
            )
            log.info("conversation closed after last message")
        except Exception as e:
            log.error("error closing conversation", error=str(e), error_type=type(e).__name__)
