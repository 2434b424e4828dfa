"""
Operator endpoint that registers a workspace's admin and access token.
"""

from fastapi import APIRouter, Depends
import structlog

from snoozeplus.api.deps import get_crypto, get_message_store, require_admin_key
from snoozeplus.schemas import WorkspaceIn, WorkspaceOut
from snoozeplus.services.crypto import CryptoService
from snoozeplus.services.message_store import MessageStore

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/workspaces",
    tags=["workspaces"],
    dependencies=[Depends(require_admin_key)],
)


@router.put("/{workspace_id}", response_model=WorkspaceOut)
def save_workspace(
    workspace_id: str,
    payload: WorkspaceIn,
    store: MessageStore = Depends(get_message_store),
    crypto: CryptoService = Depends(get_crypto),
):
    workspace = store.save_workspace(workspace_id, payload.admin_id, crypto.encrypt(payload.access_token))
    logger.info("workspace saved", workspace_id=workspace.id, admin_id=workspace.admin_id)
    return WorkspaceOut(id=workspace.id, admin_id=workspace.admin_id)
