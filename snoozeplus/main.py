from contextlib import asynccontextmanager
from typing import Any, cast

from fastapi import FastAPI
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from snoozeplus.api import health, snooze, webhooks, workspaces
from snoozeplus.core.config import settings
from snoozeplus.core.logging_config import get_logger
from snoozeplus.core.scheduler import start_scheduler, stop_scheduler
from snoozeplus.db import create_db_and_tables
from snoozeplus.services.intercom import close_intercom_service

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Snooze+ starting", environment=settings.ENVIRONMENT)
    create_db_and_tables()

    scheduler_started = False
    if settings.RUN_SCHEDULER:
        scheduler_started = await start_scheduler()
    else:
        logger.info("RUN_SCHEDULER is false, skipping scheduler startup in this process")

    try:
        yield
    finally:
        # Shutdown: refuse new jobs and cancel pending deliveries
        if scheduler_started:
            await stop_scheduler()
        await close_intercom_service()
        logger.info("Snooze+ stopped")


app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

# Trust X-Forwarded-* headers from the hosting proxy
app.add_middleware(cast(Any, ProxyHeadersMiddleware), trusted_hosts=["*"])

app.include_router(health.router)
app.include_router(webhooks.router)
app.include_router(snooze.router)
app.include_router(workspaces.router)


@app.get("/")
def root():
    return {"message": "Snooze+ Intercom integration"}
