import hashlib
import hmac
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request
from fastapi.security import APIKeyHeader
import structlog

from snoozeplus.core.config import settings
from snoozeplus.core.job_scheduler import MessageScheduler
from snoozeplus.core.scheduler import message_scheduler
from snoozeplus.services.crypto import CryptoService, get_crypto_service
from snoozeplus.services.intercom import IntercomService, get_intercom_service
from snoozeplus.services.message_store import MessageStore
from snoozeplus.services.snooze_service import SnoozeService

logger = structlog.get_logger(__name__)

ADMIN_KEY_HEADER = "X-Admin-Key"
admin_key_header = APIKeyHeader(name=ADMIN_KEY_HEADER, auto_error=False)


def get_intercom() -> IntercomService:
    return get_intercom_service()


def get_crypto() -> CryptoService:
    return get_crypto_service()


def get_job_scheduler() -> MessageScheduler:
    return message_scheduler


def get_message_store() -> MessageStore:
    return MessageStore()


def get_snooze_service() -> SnoozeService:
    return SnoozeService(
        store=get_message_store(),
        gateway=get_intercom_service(),
        crypto=get_crypto_service(),
    )


def verify_signature(payload: bytes, signature: str, secret: str, digestmod) -> bool:
    """Constant-time check of a hex HMAC digest of the raw request body."""
    if not signature or not secret:
        return False
    expected = hmac.new(secret.encode("utf-8"), payload, digestmod).hexdigest()
    return hmac.compare_digest(expected, signature)


async def verify_intercom_webhook(
    request: Request,
    x_hub_signature: Optional[str] = Header(None),
) -> None:
    """
    Intercom webhook notifications carry `X-Hub-Signature: sha1=<hex>`.

    400 when the header is missing or malformed, 401 when it does not match.
    """
    if not x_hub_signature:
        logger.error("missing X-Hub-Signature header")
        raise HTTPException(status_code=400, detail="Missing X-Hub-Signature header")

    prefix, _, digest = x_hub_signature.partition("sha1=")
    if prefix or not digest:
        logger.error("invalid X-Hub-Signature header format")
        raise HTTPException(status_code=400, detail="Invalid X-Hub-Signature header format")

    body = await request.body()
    if not verify_signature(body, digest, settings.INTERCOM_CLIENT_SECRET, hashlib.sha1):
        logger.error("invalid webhook signature")
        raise HTTPException(status_code=401, detail="Invalid signature")


async def verify_intercom_canvas(
    request: Request,
    x_body_signature: Optional[str] = Header(None),
) -> None:
    """Requests from the Intercom inbox app carry `X-Body-Signature: <sha256 hex>`."""
    if not x_body_signature:
        logger.error("missing X-Body-Signature header")
        raise HTTPException(status_code=400, detail="Missing X-Body-Signature header")

    body = await request.body()
    if not verify_signature(body, x_body_signature, settings.INTERCOM_CLIENT_SECRET, hashlib.sha256):
        logger.error("invalid canvas signature")
        raise HTTPException(status_code=401, detail="Invalid signature")


def require_admin_key(api_key: Optional[str] = Depends(admin_key_header)) -> None:
    """Guard for operator endpoints. 403 while ADMIN_API_KEY is unset."""
    if not settings.ADMIN_API_KEY:
        raise HTTPException(status_code=403, detail="Admin API is disabled")
    if not api_key or not hmac.compare_digest(api_key, settings.ADMIN_API_KEY):
        logger.warning("rejected admin request")
        raise HTTPException(status_code=401, detail="Invalid admin key")
