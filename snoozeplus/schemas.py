from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field
from datetime import datetime

class DueMessage(BaseModel):
    """A message due in the current dispatch window, with its workspace token."""
    id: str
    workspace_id: str
    admin_id: int
    conversation_id: int
    message: str  # Encrypted body
    send_date: datetime  # UTC
    close_conversation: bool = False
    access_token: str  # Encrypted workspace access token

class SnoozeMessage(BaseModel):
    message: str  # Encrypted body
    send_date: datetime
    close_conversation: bool = False

class SnoozeRequest(BaseModel):
    messages: List[SnoozeMessage]
    note: str  # HTML note added when the snooze is set
    snooze_until_unix_timestamp: int

class SnoozeStep(BaseModel):
    message: str
    snooze_days: int = Field(gt=0)

# Requests from the inbox app
class SnoozeIn(BaseModel):
    workspace_id: str
    conversation_id: int
    steps: List[SnoozeStep] = Field(min_length=1)
    then_close: bool = False

class SnoozeCancelIn(BaseModel):
    workspace_id: str
    conversation_id: int

class SnoozeOut(BaseModel):
    status: str
    conversation_id: int
    messages: int
    snoozed_until: int

class WorkspaceIn(BaseModel):
    admin_id: int
    access_token: str  # Plaintext; encrypted before it is stored

class WorkspaceOut(BaseModel):
    id: str
    admin_id: int

# Intercom webhook notification (only the fields we read)
class WebhookItem(BaseModel):
    id: Optional[int] = None
    type: Optional[str] = None

class WebhookData(BaseModel):
    item: WebhookItem

class IntercomWebhookNotification(BaseModel):
    app_id: str
    topic: str
    data: Optional[WebhookData] = None

    @property
    def conversation_id(self) -> Optional[int]:
        return self.data.item.id if self.data else None

class HealthOut(BaseModel):
    status: str
    timestamp: datetime
    checks: Dict[str, bool]
    circuit_breaker: Dict[str, Any]
    active_jobs: int
