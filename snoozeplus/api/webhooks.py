"""
Intercom webhook receiver.

A customer reply or an admin close ends any active snooze on the
conversation; every other topic is acknowledged and ignored. Notifications
must carry a valid X-Hub-Signature.
"""

from fastapi import APIRouter, Depends, HTTPException, Response
import structlog

from snoozeplus.api.deps import get_message_store, get_snooze_service, verify_intercom_webhook
from snoozeplus.schemas import IntercomWebhookNotification
from snoozeplus.services.message_store import MessageStore
from snoozeplus.services.snooze_service import SnoozeService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

# topic -> wording used in the close note
END_SNOOZE_TOPICS = {
    "conversation.user.replied": "replied to",
    "conversation.admin.closed": "closed",
}


@router.head("/intercom")
def validate_intercom_webhook():
    """Intercom sends HEAD to validate the endpoint before subscribing."""
    return Response(status_code=200)


@router.post("/intercom", dependencies=[Depends(verify_intercom_webhook)])
async def intercom_webhook(
    notification: IntercomWebhookNotification,
    store: MessageStore = Depends(get_message_store),
    snooze_service: SnoozeService = Depends(get_snooze_service),
):
    logger.info("intercom webhook received", topic=notification.topic, workspace_id=notification.app_id)

    reason = END_SNOOZE_TOPICS.get(notification.topic)
    conversation_id = notification.conversation_id
    if reason is None or conversation_id is None:
        return {"status": "ignored", "topic": notification.topic}

    workspace = store.get_workspace(notification.app_id)
    if workspace is None:
        logger.warning("webhook for unknown workspace", workspace_id=notification.app_id)
        return {"status": "ignored", "topic": notification.topic}

    try:
        ended = await snooze_service.end_snooze(workspace, conversation_id, reason)
    except Exception as e:
        logger.exception(
            "error ending snooze from webhook",
            workspace_id=workspace.id,
            conversation_id=conversation_id,
            error=str(e),
        )
        raise HTTPException(status_code=500, detail="Failed to process webhook")

    return {"status": "processed", "topic": notification.topic, "ended": ended}
