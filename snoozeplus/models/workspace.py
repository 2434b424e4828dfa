from datetime import datetime

from sqlmodel import Field, SQLModel

from snoozeplus.core.typing import utc_now


class Workspace(SQLModel, table=True):
    """
    An Intercom workspace that installed Snooze+.

    The access token is stored encrypted and only decrypted by the Intercom
    gateway immediately before an outbound call.
    """

    id: str = Field(primary_key=True)  # Intercom workspace (app) id
    admin_id: int = Field(index=True)  # Admin who installed the app
    access_token: str  # Encrypted OAuth access token
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


__all__ = ["Workspace"]
