"""
Tests for database retry utilities.

Tests cover:
- db_retry decorator behavior
- Exponential backoff with max delay cap
- MessageStore delivery-path calls surviving a dropped connection
"""

from datetime import datetime, timezone

import pytest
from unittest.mock import MagicMock, patch
from sqlalchemy.exc import DisconnectionError, IntegrityError, InterfaceError, OperationalError

from snoozeplus.core.db_utils import db_retry
from snoozeplus.services import message_store as message_store_module


def dropped_connection() -> OperationalError:
    return OperationalError("SELECT 1", None, Exception("server closed the connection unexpectedly"))


@pytest.fixture
def sleep():
    with patch("snoozeplus.core.db_utils.time.sleep") as mock_sleep:
        yield mock_sleep


class TestDbRetry:
    """Tests for the db_retry decorator."""

    def test_returns_first_success(self, sleep):
        func = MagicMock(return_value="ok", __name__="func")

        assert db_retry()(func)() == "ok"
        func.assert_called_once()
        sleep.assert_not_called()

    @pytest.mark.parametrize("error", [
        dropped_connection(),
        DisconnectionError("connection invalidated"),
        InterfaceError("SELECT 1", None, Exception("connection already closed")),
    ])
    def test_retries_connection_errors(self, sleep, error):
        func = MagicMock(side_effect=[error, "ok"], __name__="func")

        assert db_retry(max_retries=2, base_delay=0.5)(func)() == "ok"
        assert func.call_count == 2
        sleep.assert_called_once_with(0.5)

    def test_gives_up_after_max_retries(self, sleep):
        error = dropped_connection()
        func = MagicMock(side_effect=error, __name__="func")

        with pytest.raises(OperationalError) as exc_info:
            db_retry(max_retries=2)(func)()

        assert exc_info.value is error
        assert func.call_count == 3
        assert sleep.call_count == 2

    def test_backoff_is_capped(self, sleep):
        func = MagicMock(side_effect=[dropped_connection()] * 4 + ["ok"], __name__="func")

        db_retry(max_retries=4, base_delay=1.0, max_delay=3.0)(func)()

        assert [c.args[0] for c in sleep.call_args_list] == [1.0, 2.0, 3.0, 3.0]

    def test_integrity_errors_are_not_retried(self, sleep):
        func = MagicMock(side_effect=IntegrityError("INSERT", None, Exception("duplicate key")), __name__="func")

        with pytest.raises(IntegrityError):
            db_retry()(func)()

        func.assert_called_once()
        sleep.assert_not_called()

    def test_preserves_function_name(self):
        @db_retry()
        def archive_message():
            pass

        assert archive_message.__name__ == "archive_message"


class TestMessageStoreRetry:
    """Delivery-path store calls survive one dropped connection."""

    def test_archive_retried_after_dropped_connection(self, store, sample_messages, sleep):
        real_archive = message_store_module.archive_message_sync
        attempts = []

        def flaky_archive(session, message_id):
            attempts.append(message_id)
            if len(attempts) == 1:
                raise dropped_connection()
            return real_archive(session, message_id)

        with patch.object(message_store_module, "archive_message_sync", side_effect=flaky_archive):
            assert store.archive_message("msg_due_early") == 1

        assert attempts == ["msg_due_early", "msg_due_early"]
        assert "msg_due_early" not in [m.id for m in store.get_messages("ws_1", 123)]

    def test_due_messages_retried_after_dropped_connection(self, store, sample_messages, sleep):
        real_query = message_store_module.get_due_messages_sync
        calls = []

        def flaky_query(session, window_end=None):
            calls.append(window_end)
            if len(calls) == 1:
                raise dropped_connection()
            return real_query(session, window_end)

        with patch.object(message_store_module, "get_due_messages_sync", side_effect=flaky_query):
            due = store.get_due_messages(window_end=datetime(2024, 3, 2, tzinfo=timezone.utc))

        assert len(calls) == 2
        assert [m.id for m in due] == ["msg_due_early", "msg_other_conversation", "msg_due_late"]

    def test_remaining_count_retried_after_dropped_connection(self, store, sample_messages, due_message, sleep):
        with patch.object(
            message_store_module,
            "get_remaining_count_sync",
            side_effect=[dropped_connection(), 3],
        ):
            assert store.get_remaining_count(due_message()) == 3

        sleep.assert_called_once()

    def test_inserts_are_not_retried(self, store, sample_workspace, sleep):
        with patch.object(message_store_module, "save_messages_sync", side_effect=dropped_connection()) as save:
            with pytest.raises(OperationalError):
                store.save_messages(sample_workspace, 123, [])

        save.assert_called_once()
