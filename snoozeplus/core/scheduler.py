"""
Recurring dispatch wiring.

One AsyncIOScheduler carries the 6-hourly dispatch cron, the message
scheduler's cleanup sweep and every one-shot message job.
"""

from typing import Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from snoozeplus.core.config import settings
from snoozeplus.core.job_scheduler import MessageScheduler
from snoozeplus.services.dispatch import MessageDispatcher
from snoozeplus.services.heartbeat import send_heartbeat
from snoozeplus.services.intercom import get_intercom_service
from snoozeplus.services.message_store import MessageStore

logger = structlog.get_logger(__name__)

DISPATCH_JOB_ID = "job_dispatch_messages"

scheduler = AsyncIOScheduler(timezone="UTC")
message_scheduler = MessageScheduler(scheduler)

_dispatcher: Optional[MessageDispatcher] = None


def get_dispatcher() -> MessageDispatcher:
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = MessageDispatcher(
            store=MessageStore(),
            gateway=get_intercom_service(),
            job_scheduler=message_scheduler,
        )
    return _dispatcher


async def job_dispatch_messages():
    """Schedule today's due messages, then report to the heartbeat monitor."""
    try:
        scheduled = await get_dispatcher().schedule_messages()
        logger.info(
            "dispatch job finished",
            scheduled=scheduled,
            active_jobs=message_scheduler.get_active_job_count(),
        )
    except Exception as e:
        logger.exception("dispatch job failed", error=str(e))

    if settings.is_production:
        await send_heartbeat(success=True)


async def start_scheduler() -> bool:
    """
    Register the dispatch cron and start APScheduler.

    Setup errors are logged (and reported with a failure heartbeat in
    production) instead of raised, so the web process keeps serving.
    """
    # Job configuration:
    # - max_instances=1: never overlap dispatch runs
    # - coalesce=True: missed runs collapse into one
    try:
        scheduler.add_job(
            job_dispatch_messages,
            CronTrigger(hour="*/6", minute=0, timezone="UTC"),
            id=DISPATCH_JOB_ID,
            max_instances=1,
            misfire_grace_time=3600,  # 1 hour
            coalesce=True,
            replace_existing=True,
        )
        message_scheduler.start()
    except Exception as e:
        logger.exception("scheduler setup failed", error=str(e))
        if settings.is_production:
            await send_heartbeat(success=False)
        return False

    logger.info("scheduler started", dispatch="every 6 hours (0 */6 * * *)")
    return True


async def stop_scheduler():
    await message_scheduler.shutdown()
    logger.info("scheduler stopped")
