"""
Message Model

One scheduled follow-up in a snooze. A snooze of N steps stores N rows; the
dispatch loop picks up the unarchived rows due today and archives each one
once it has been delivered.

Usage:
    from snoozeplus.models.message import Message

    message = Message(
        workspace_id="abc123",
        admin_id=42,
        conversation_id=1001,
        message=crypto.encrypt("Just checking in!"),
        send_date=send_date,
    )
"""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, Index
from sqlmodel import Field, SQLModel

from snoozeplus.core.typing import utc_now


def _new_message_id() -> str:
    return str(uuid.uuid4())


class Message(SQLModel, table=True):
    """
    Attributes:
        id: UUID primary key, also the scheduler job id
        workspace_id: Owning Intercom workspace
        admin_id: Admin the reply is sent as
        conversation_id: Intercom conversation
        message: Encrypted message body
        send_date: When to send (UTC)
        close_conversation: Close the conversation after sending (last step only)
        archived: True once delivered or cancelled; terminal
        created_at: When the snooze was set
    """

    id: str = Field(default_factory=_new_message_id, primary_key=True)
    workspace_id: str = Field(foreign_key="workspace.id", index=True)
    admin_id: int
    conversation_id: int = Field(index=True)
    message: str
    send_date: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    close_conversation: bool = Field(default=False)
    archived: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utc_now)

    __table_args__ = (
        # Due-message query: archived + send_date
        Index("ix_message_due", "archived", "send_date"),
        # Remaining count / cancel: workspace + conversation + archived
        Index("ix_message_conversation", "workspace_id", "conversation_id", "archived"),
    )


__all__ = ["Message"]
