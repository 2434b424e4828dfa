"""
Snooze endpoints called by the Intercom inbox app.

Requests are signed with X-Body-Signature. Setting a snooze stores the
follow-up messages for the dispatch loop; nothing is delivered here.
"""

from fastapi import APIRouter, Depends, HTTPException
import structlog

from snoozeplus.api.deps import get_message_store, get_snooze_service, verify_intercom_canvas
from snoozeplus.core.errors import CircuitOpenError
from snoozeplus.models.workspace import Workspace
from snoozeplus.schemas import SnoozeCancelIn, SnoozeIn, SnoozeOut
from snoozeplus.services.message_store import MessageStore
from snoozeplus.services.snooze_service import SnoozeService

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/snooze",
    tags=["snooze"],
    dependencies=[Depends(verify_intercom_canvas)],
)


def _get_workspace(store: MessageStore, workspace_id: str) -> Workspace:
    workspace = store.get_workspace(workspace_id)
    if workspace is None:
        logger.warning("snooze request for unknown workspace", workspace_id=workspace_id)
        raise HTTPException(status_code=404, detail="Workspace not found")
    return workspace


@router.post("", response_model=SnoozeOut)
async def set_snooze(
    payload: SnoozeIn,
    store: MessageStore = Depends(get_message_store),
    snooze_service: SnoozeService = Depends(get_snooze_service),
):
    workspace = _get_workspace(store, payload.workspace_id)

    try:
        request = await snooze_service.set_snooze(
            workspace,
            payload.conversation_id,
            payload.steps,
            payload.then_close,
        )
    except CircuitOpenError:
        raise HTTPException(status_code=503, detail="Intercom is unavailable, try again later")
    except Exception as e:
        logger.exception(
            "error setting snooze",
            workspace_id=workspace.id,
            conversation_id=payload.conversation_id,
            error=str(e),
        )
        raise HTTPException(status_code=500, detail="Failed to set snooze")

    return SnoozeOut(
        status="snoozed",
        conversation_id=payload.conversation_id,
        messages=len(request.messages),
        snoozed_until=request.snooze_until_unix_timestamp,
    )


@router.post("/cancel")
async def cancel_snooze(
    payload: SnoozeCancelIn,
    store: MessageStore = Depends(get_message_store),
    snooze_service: SnoozeService = Depends(get_snooze_service),
):
    workspace = _get_workspace(store, payload.workspace_id)

    try:
        cancelled = await snooze_service.cancel_snooze(workspace, payload.conversation_id)
    except CircuitOpenError:
        raise HTTPException(status_code=503, detail="Intercom is unavailable, try again later")
    except Exception as e:
        logger.exception(
            "error cancelling snooze",
            workspace_id=workspace.id,
            conversation_id=payload.conversation_id,
            error=str(e),
        )
        raise HTTPException(status_code=500, detail="Failed to cancel snooze")

    return {"status": "cancelled", "conversation_id": payload.conversation_id, "cancelled": cancelled}
