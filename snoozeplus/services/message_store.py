"""
Message Store

Persistence for scheduled snooze messages and the workspaces that own them.

The sync functions take an open sqlmodel Session; MessageStore wraps them with
a session per call so the dispatch loop and snooze service can share one
injectable object. Reads and archives are retried on connection failures
(see db_retry); inserts are not.

Usage:
    from snoozeplus.services.message_store import MessageStore

    store = MessageStore()
    for message in store.get_due_messages():
        ...
        store.archive_message(message.id)
        remaining = store.get_remaining_count(message)
"""

from datetime import datetime, time, timedelta, timezone
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.engine import Engine
from sqlmodel import Session, select
import structlog

from snoozeplus.core.db_utils import db_retry
from snoozeplus.core.typing import col, ensure_utc, utc_now
from snoozeplus.models.message import Message
from snoozeplus.models.workspace import Workspace
from snoozeplus.schemas import DueMessage, SnoozeMessage

logger = structlog.get_logger(__name__)


def dispatch_window_end(now: Optional[datetime] = None) -> datetime:
    """Start of the next UTC day; messages sending before it are due."""
    now = now or utc_now()
    tomorrow = now.astimezone(timezone.utc).date() + timedelta(days=1)
    return datetime.combine(tomorrow, time.min, tzinfo=timezone.utc)


def get_due_messages_sync(
    session: Session,
    window_end: Optional[datetime] = None,
) -> List[DueMessage]:
    """
    Unarchived messages sending before `window_end` (default: end of today UTC),
    joined with their workspace's encrypted access token, oldest first.
    """
    window_end = window_end or dispatch_window_end()

    stmt = (
        select(Message, Workspace.access_token)
        .join(Workspace, col(Message.workspace_id) == col(Workspace.id))
        .where(
            col(Message.archived) == False,  # noqa: E712
            col(Message.send_date) < window_end,
        )
        .order_by(col(Message.send_date).asc())
    )

    due = []
    for message, access_token in session.exec(stmt).all():
        due.append(
            DueMessage(
                id=message.id,
                workspace_id=message.workspace_id,
                admin_id=message.admin_id,
                conversation_id=message.conversation_id,
                message=message.message,
                send_date=ensure_utc(message.send_date),
                close_conversation=message.close_conversation,
                access_token=access_token,
            )
        )

    logger.debug("due messages retrieved", message_ids=[m.id for m in due])
    return due


def archive_message_sync(session: Session, message_id: str) -> int:
    """
    Mark one message archived.

    Returns:
        1 if archived, 0 if missing or already archived
    """
    message = session.exec(
        select(Message).where(
            col(Message.id) == message_id,
            col(Message.archived) == False,  # noqa: E712
        )
    ).first()

    if message is None:
        return 0

    message.archived = True
    session.add(message)
    session.commit()
    return 1


def get_remaining_count_sync(session: Session, workspace_id: str, conversation_id: int) -> int:
    """Unarchived messages left for a workspace's conversation."""
    stmt = select(func.count()).select_from(Message).where(
        col(Message.workspace_id) == workspace_id,
        col(Message.conversation_id) == conversation_id,
        col(Message.archived) == False,  # noqa: E712
    )
    return int(session.exec(stmt).one())


def save_messages_sync(
    session: Session,
    workspace: Workspace,
    conversation_id: int,
    messages: List[SnoozeMessage],
) -> List[str]:
    """Persist the messages of a new snooze. Returns the new message ids."""
    rows = [
        Message(
            workspace_id=workspace.id,
            admin_id=workspace.admin_id,
            conversation_id=conversation_id,
            message=m.message,
            send_date=m.send_date,
            close_conversation=m.close_conversation,
        )
        for m in messages
    ]
    for row in rows:
        session.add(row)
    session.commit()

    ids = [row.id for row in rows]
    logger.info("messages saved", conversation_id=conversation_id, count=len(ids))
    return ids


def get_messages_sync(session: Session, workspace_id: str, conversation_id: int) -> List[Message]:
    """Pending (unarchived) messages for a conversation, in send order."""
    stmt = (
        select(Message)
        .where(
            col(Message.workspace_id) == workspace_id,
            col(Message.conversation_id) == conversation_id,
            col(Message.archived) == False,  # noqa: E712
        )
        .order_by(col(Message.send_date).asc())
    )
    return list(session.exec(stmt).all())


def archive_conversation_messages_sync(session: Session, workspace_id: str, conversation_id: int) -> int:
    """Archive every pending message of a conversation. Returns the number archived."""
    pending = get_messages_sync(session, workspace_id, conversation_id)
    for message in pending:
        message.archived = True
        session.add(message)

    if pending:
        session.commit()
        logger.info("conversation messages archived", conversation_id=conversation_id, count=len(pending))
    return len(pending)


def get_workspace_sync(session: Session, workspace_id: str) -> Optional[Workspace]:
    return session.get(Workspace, workspace_id)


def save_workspace_sync(session: Session, workspace_id: str, admin_id: int, access_token: str) -> Workspace:
    """Create or update a workspace's admin and encrypted access token."""
    workspace = session.get(Workspace, workspace_id)
    if workspace:
        workspace.admin_id = admin_id
        workspace.access_token = access_token
        workspace.updated_at = utc_now()
    else:
        workspace = Workspace(id=workspace_id, admin_id=admin_id, access_token=access_token)

    session.add(workspace)
    session.commit()
    session.refresh(workspace)
    return workspace


class MessageStore:
    """Session-per-call wrapper used by the dispatcher and snooze service."""

    def __init__(self, engine: Optional[Engine] = None):
        if engine is None:
            from snoozeplus.db import engine as default_engine

            engine = default_engine
        self._engine = engine

    @db_retry()
    def get_due_messages(self, window_end: Optional[datetime] = None) -> List[DueMessage]:
        with Session(self._engine) as session:
            return get_due_messages_sync(session, window_end)

    @db_retry()
    def archive_message(self, message_id: str) -> int:
        with Session(self._engine) as session:
            return archive_message_sync(session, message_id)

    @db_retry()
    def get_remaining_count(self, message: DueMessage) -> int:
        with Session(self._engine) as session:
            return get_remaining_count_sync(session, message.workspace_id, message.conversation_id)

    def save_messages(self, workspace: Workspace, conversation_id: int, messages: List[SnoozeMessage]) -> List[str]:
        with Session(self._engine) as session:
            return save_messages_sync(session, workspace, conversation_id, messages)

    @db_retry()
    def get_messages(self, workspace_id: str, conversation_id: int) -> List[Message]:
        with Session(self._engine) as session:
            return get_messages_sync(session, workspace_id, conversation_id)

    @db_retry()
    def archive_conversation_messages(self, workspace_id: str, conversation_id: int) -> int:
        with Session(self._engine) as session:
            return archive_conversation_messages_sync(session, workspace_id, conversation_id)

    @db_retry()
    def get_workspace(self, workspace_id: str) -> Optional[Workspace]:
        with Session(self._engine) as session:
            return get_workspace_sync(session, workspace_id)

    def save_workspace(self, workspace_id: str, admin_id: int, access_token: str) -> Workspace:
        with Session(self._engine) as session:
            return save_workspace_sync(session, workspace_id, admin_id, access_token)
