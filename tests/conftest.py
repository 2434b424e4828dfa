"""
Test fixtures for Snooze+ tests.

Provides an in-memory database, a crypto service, fake clocks and sample
workspaces/messages.
"""

import os

# Settings are read on import; configure before any snoozeplus import
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "development"
os.environ["RUN_SCHEDULER"] = "false"
os.environ["BETTERSTACK_HEARTBEAT_URL"] = ""
os.environ.setdefault("ENCRYPTION_KEY", "11" * 32)
os.environ["INTERCOM_CLIENT_SECRET"] = "test-client-secret"
os.environ["ADMIN_API_KEY"] = "test-admin-key"

import pytest
from datetime import datetime, timedelta, timezone
from typing import Generator, List
from sqlmodel import Session, SQLModel, create_engine
from sqlalchemy.pool import StaticPool

from snoozeplus.models import Message, Workspace
from snoozeplus.schemas import DueMessage
from snoozeplus.services.crypto import CryptoService
from snoozeplus.services.message_store import MessageStore

TEST_DATABASE_URL = "sqlite:///:memory:"
TEST_ENCRYPTION_KEY = "11" * 32
ACCESS_TOKEN = "tok_live_abc123"


def pytest_collection_modifyitems(config, items):
    """Skip integration tests in CI."""
    if os.environ.get("CI") == "true":
        skip_integration = pytest.mark.skip(reason="Integration tests skipped in CI")
        for item in items:
            if "integration" in item.keywords:
                item.add_marker(skip_integration)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(scope="session")
def crypto() -> CryptoService:
    return CryptoService(TEST_ENCRYPTION_KEY)


@pytest.fixture(scope="function")
def test_engine():
    """Create a test database engine with in-memory SQLite."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def test_session(test_engine) -> Generator[Session, None, None]:
    """Provide a test database session."""
    with Session(test_engine) as session:
        yield session


@pytest.fixture
def store(test_engine) -> MessageStore:
    return MessageStore(test_engine)


@pytest.fixture(scope="session")
def encrypted_token(crypto: CryptoService) -> str:
    return crypto.encrypt(ACCESS_TOKEN)


@pytest.fixture
def sample_workspace(test_session: Session, encrypted_token: str) -> Workspace:
    workspace = Workspace(id="ws_1", admin_id=7, access_token=encrypted_token)
    test_session.add(workspace)
    test_session.commit()
    test_session.refresh(workspace)
    return workspace


@pytest.fixture
def sample_messages(test_session: Session, sample_workspace: Workspace, crypto: CryptoService) -> List[Message]:
    """
    Messages around 2024-03-01 (UTC):

    - msg_due_early: sent this morning, pending
    - msg_due_late: later today, pending, closes the conversation
    - msg_tomorrow: tomorrow, pending (outside today's window)
    - msg_archived: earlier today but already archived
    - msg_other_conversation: due today on another conversation
    """
    day = datetime(2024, 3, 1, tzinfo=timezone.utc)
    messages = [
        Message(id="msg_due_early", workspace_id="ws_1", admin_id=7, conversation_id=123,
                message=crypto.encrypt("First follow-up"), send_date=day + timedelta(hours=8)),
        Message(id="msg_due_late", workspace_id="ws_1", admin_id=7, conversation_id=123,
                message=crypto.encrypt("Last follow-up"), send_date=day + timedelta(hours=20),
                close_conversation=True),
        Message(id="msg_tomorrow", workspace_id="ws_1", admin_id=7, conversation_id=123,
                message=crypto.encrypt("Tomorrow"), send_date=day + timedelta(days=1, hours=9)),
        Message(id="msg_archived", workspace_id="ws_1", admin_id=7, conversation_id=123,
                message=crypto.encrypt("Already sent"), send_date=day + timedelta(hours=1),
                archived=True),
        Message(id="msg_other_conversation", workspace_id="ws_1", admin_id=7, conversation_id=456,
                message=crypto.encrypt("Other"), send_date=day + timedelta(hours=10)),
    ]
    for m in messages:
        test_session.add(m)
    test_session.commit()
    return messages


def make_due_message(**overrides) -> DueMessage:
    values = dict(
        id="msg_1",
        workspace_id="ws_1",
        admin_id=7,
        conversation_id=123,
        message="encrypted-body",
        send_date=datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc),
        close_conversation=False,
        access_token="encrypted-token",
    )
    values.update(overrides)
    return DueMessage(**values)


@pytest.fixture
def due_message():
    """Factory for DueMessage records."""
    return make_due_message
