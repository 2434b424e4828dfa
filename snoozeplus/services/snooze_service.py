"""
Snooze orchestration for the web layer.

These operations only write persistence and call the gateway; delivery of the
snoozed messages is always left to the dispatch loop.
"""

from datetime import datetime
from typing import Optional, Sequence

import structlog

from snoozeplus.models.workspace import Workspace
from snoozeplus.schemas import SnoozeRequest, SnoozeStep
from snoozeplus.services.crypto import CryptoService
from snoozeplus.services.dispatch import ConversationGateway
from snoozeplus.services.message_store import MessageStore
from snoozeplus.services.snooze import close_note, create_snooze_request, snooze_cancelled_note

logger = structlog.get_logger(__name__)


class SnoozeService:
    def __init__(self, store: MessageStore, gateway: ConversationGateway, crypto: CryptoService):
        self.store = store
        self.gateway = gateway
        self.crypto = crypto

    async def set_snooze(
        self,
        workspace: Workspace,
        conversation_id: int,
        steps: Sequence[SnoozeStep],
        then_close: bool,
        now: Optional[datetime] = None,
    ) -> SnoozeRequest:
        """
        Persist a new snooze and snooze the conversation until the last message.

        Pending messages from an earlier snooze on the same conversation are
        archived first so only one snooze is active at a time.
        """
        request = create_snooze_request(steps, then_close, self.crypto, now=now)

        replaced = self.store.archive_conversation_messages(workspace.id, conversation_id)
        if replaced:
            logger.info("replacing active snooze", conversation_id=conversation_id, archived=replaced)

        self.store.save_messages(workspace, conversation_id, request.messages)
        await self.gateway.set_snooze(
            conversation_id,
            workspace.admin_id,
            workspace.access_token,
            request.snooze_until_unix_timestamp,
        )
        await self.gateway.add_note(conversation_id, workspace.admin_id, workspace.access_token, request.note)

        logger.info(
            "snooze set",
            workspace_id=workspace.id,
            conversation_id=conversation_id,
            messages=len(request.messages),
            then_close=then_close,
        )
        return request

    async def cancel_snooze(self, workspace: Workspace, conversation_id: int) -> int:
        """Archive pending messages, reopen the conversation and note it. Returns the number cancelled."""
        cancelled = self.store.archive_conversation_messages(workspace.id, conversation_id)
        await self.gateway.cancel_snooze(conversation_id, workspace.admin_id, workspace.access_token)
        await self.gateway.add_note(
            conversation_id,
            workspace.admin_id,
            workspace.access_token,
            snooze_cancelled_note(cancelled),
        )
        logger.info("snooze cancelled", workspace_id=workspace.id, conversation_id=conversation_id, cancelled=cancelled)
        return cancelled

    async def end_snooze(self, workspace: Workspace, conversation_id: int, reason: str) -> int:
        """
        End an active snooze because the customer replied or an admin closed
        the conversation. Does nothing when no messages are pending.
        """
        ended = self.store.archive_conversation_messages(workspace.id, conversation_id)
        if not ended:
            logger.debug("no active snooze to end", workspace_id=workspace.id, conversation_id=conversation_id)
            return 0

        await self.gateway.add_note(
            conversation_id,
            workspace.admin_id,
            workspace.access_token,
            close_note(reason, ended),
        )
        logger.info("snooze ended", workspace_id=workspace.id, conversation_id=conversation_id, reason=reason, ended=ended)
        return ended
