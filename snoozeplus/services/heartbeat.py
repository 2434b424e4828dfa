"""
Better Stack heartbeat pings for the dispatch loop.

A successful loop run pings BETTERSTACK_HEARTBEAT_URL; a failed setup pings
`<url>/fail`. Heartbeats never raise: a monitoring outage must not take the
dispatch loop down with it.
"""

from typing import Optional

import httpx
import structlog

from snoozeplus.core.config import settings
from snoozeplus.core.retry import RetryPolicy, retry_async

logger = structlog.get_logger(__name__)

HEARTBEAT_TIMEOUT_SECONDS = 10.0


async def send_heartbeat(
    success: bool = True,
    client: Optional[httpx.AsyncClient] = None,
    url: Optional[str] = None,
    retry_policy: Optional[RetryPolicy] = None,
) -> bool:
    """
    Ping the heartbeat monitor.

    Returns:
        True if the monitor acknowledged the ping
    """
    base_url = url if url is not None else settings.BETTERSTACK_HEARTBEAT_URL
    if not base_url:
        logger.info("heartbeat skipped, no url configured", success=success)
        return False

    target = base_url if success else f"{base_url.rstrip('/')}/fail"
    owns_client = client is None
    client = client or httpx.AsyncClient(timeout=HEARTBEAT_TIMEOUT_SECONDS)

    try:
        response = await retry_async(lambda: client.head(target), "heartbeat", retry_policy)
    except Exception as e:
        logger.error("heartbeat failed", success=success, error=str(e), error_type=type(e).__name__)
        return False
    finally:
        if owns_client:
            await client.aclose()

    if not response.is_success:
        logger.error("heartbeat rejected", success=success, status_code=response.status_code)
        return False

    logger.info("heartbeat sent", success=success)
    return True
