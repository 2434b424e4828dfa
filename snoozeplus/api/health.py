"""
Health and operability endpoints.

GET /health answers 503 when the database is unreachable or the Intercom
circuit breaker is OPEN, so the platform's health check sees a degraded
delivery path.
"""

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import text
from sqlmodel import Session
import structlog

from snoozeplus.api.deps import get_intercom, get_job_scheduler, require_admin_key
from snoozeplus.core.circuit_breaker import CircuitState
from snoozeplus.core.job_scheduler import MessageScheduler
from snoozeplus.core.typing import utc_now
from snoozeplus.db import get_session
from snoozeplus.schemas import HealthOut
from snoozeplus.services.intercom import IntercomService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


def check_database(session: Session) -> bool:
    """SELECT 1 against the configured database."""
    try:
        session.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error("database health check failed", error=str(e))
        return False


@router.get("", response_model=HealthOut)
def health(
    response: Response,
    session: Session = Depends(get_session),
    intercom: IntercomService = Depends(get_intercom),
    job_scheduler: MessageScheduler = Depends(get_job_scheduler),
):
    database_ok = check_database(session)
    breaker = intercom.circuit_breaker.snapshot()
    healthy = database_ok and breaker.state != CircuitState.OPEN

    if not healthy:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        logger.warning("health check degraded", database=database_ok, circuit_state=breaker.state.value)

    return HealthOut(
        status="healthy" if healthy else "unhealthy",
        timestamp=utc_now(),
        checks={"database": database_ok, "scheduler": job_scheduler.is_running},
        circuit_breaker=breaker.to_dict(),
        active_jobs=job_scheduler.get_active_job_count(),
    )


@router.get("/ready")
def ready(response: Response, session: Session = Depends(get_session)):
    """Readiness check: database connectivity only."""
    if not check_database(session):
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "not_ready"}
    return {"status": "ready"}


@router.post("/circuit-breaker/reset", dependencies=[Depends(require_admin_key)])
def reset_circuit_breaker(intercom: IntercomService = Depends(get_intercom)):
    """Force the Intercom circuit breaker back to CLOSED."""
    before = intercom.circuit_breaker.state
    intercom.circuit_breaker.reset()
    logger.warning("circuit breaker reset by operator", previous_state=before.value)
    return {"previous_state": before.value, "circuit_breaker": intercom.get_circuit_breaker_state()}
