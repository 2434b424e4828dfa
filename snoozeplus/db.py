from sqlmodel import create_engine, SQLModel, Session
from sqlalchemy.pool import StaticPool
import structlog

from snoozeplus.core.config import settings

logger = structlog.get_logger(__name__)

DATABASE_URL = settings.DATABASE_URL


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # Share one in-memory database across sessions
            kwargs["poolclass"] = StaticPool
        return kwargs
    return {
        "pool_size": 5,
        "max_overflow": 10,
        "pool_pre_ping": True,  # Verify connections before use
        "pool_recycle": 300,
        "pool_timeout": 30,
    }


engine = create_engine(DATABASE_URL, echo=False, **_engine_kwargs(DATABASE_URL))


def get_session():
    with Session(engine) as session:
        yield session


def create_db_and_tables():
    # Register table metadata before create_all
    import snoozeplus.models  # noqa: F401

    SQLModel.metadata.create_all(engine)
    logger.info("database tables ensured")
