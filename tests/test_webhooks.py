"""
Tests for the Intercom webhook receiver.
"""

import hashlib
import hmac
import json
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi.testclient import TestClient

from snoozeplus.api.deps import get_message_store, get_snooze_service
from snoozeplus.core.errors import CircuitOpenError
from snoozeplus.main import app

CLIENT_SECRET = "test-client-secret"


def notification(topic: str, app_id: str = "ws_1", conversation_id: str = "123") -> dict:
    return {
        "type": "notification_event",
        "app_id": app_id,
        "topic": topic,
        "data": {
            "type": "notification_event_data",
            "item": {"type": "conversation", "id": conversation_id},
        },
    }


def hub_signature(body: bytes, secret: str = CLIENT_SECRET) -> str:
    return "sha1=" + hmac.new(secret.encode(), body, hashlib.sha1).hexdigest()


def post_signed(client: TestClient, payload: dict, signature: str | None = None):
    body = json.dumps(payload).encode()
    headers = {"Content-Type": "application/json", "X-Hub-Signature": signature or hub_signature(body)}
    return client.post("/webhooks/intercom", content=body, headers=headers)


@pytest.fixture
def snooze_service():
    return Mock(end_snooze=AsyncMock(return_value=2))


@pytest.fixture
def client(store, snooze_service, sample_workspace):
    app.dependency_overrides[get_message_store] = lambda: store
    app.dependency_overrides[get_snooze_service] = lambda: snooze_service
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestValidate:
    def test_head_returns_ok(self, client):
        assert client.head("/webhooks/intercom").status_code == 200


class TestReceiver:
    def test_user_reply_ends_snooze(self, client, snooze_service):
        response = post_signed(client, notification("conversation.user.replied"))

        assert response.status_code == 200
        assert response.json() == {"status": "processed", "topic": "conversation.user.replied", "ended": 2}
        workspace, conversation_id, reason = snooze_service.end_snooze.await_args.args
        assert workspace.id == "ws_1"
        assert conversation_id == 123
        assert reason == "replied to"

    def test_admin_close_ends_snooze(self, client, snooze_service):
        post_signed(client, notification("conversation.admin.closed"))

        assert snooze_service.end_snooze.await_args.args[2] == "closed"

    def test_other_topics_are_ignored(self, client, snooze_service):
        response = post_signed(client, notification("conversation.admin.assigned"))

        assert response.status_code == 200
        assert response.json()["status"] == "ignored"
        snooze_service.end_snooze.assert_not_awaited()

    def test_ping_without_item(self, client, snooze_service):
        response = post_signed(client, {"app_id": "ws_1", "topic": "ping"})

        assert response.status_code == 200
        assert response.json()["status"] == "ignored"

    def test_unknown_workspace_is_ignored(self, client, snooze_service):
        response = post_signed(client, notification("conversation.user.replied", app_id="ws_unknown"))

        assert response.status_code == 200
        assert response.json()["status"] == "ignored"
        snooze_service.end_snooze.assert_not_awaited()

    def test_processing_error_returns_500(self, client, snooze_service):
        snooze_service.end_snooze.side_effect = CircuitOpenError("intercom", 60)

        response = post_signed(client, notification("conversation.user.replied"))

        assert response.status_code == 500

    def test_invalid_payload(self, client):
        response = post_signed(client, {"topic": "ping"})

        assert response.status_code == 422


class TestSignature:
    """Notifications must be signed with the app's client secret."""

    def test_unsigned_request_is_rejected(self, client, snooze_service):
        response = client.post("/webhooks/intercom", json=notification("conversation.admin.closed"))

        assert response.status_code == 400
        snooze_service.end_snooze.assert_not_awaited()

    def test_malformed_header_is_rejected(self, client, snooze_service):
        body = json.dumps(notification("conversation.admin.closed")).encode()
        digest = hub_signature(body).removeprefix("sha1=")

        response = post_signed(client, notification("conversation.admin.closed"), signature=digest)

        assert response.status_code == 400
        snooze_service.end_snooze.assert_not_awaited()

    def test_wrong_secret_is_rejected(self, client, snooze_service):
        body = json.dumps(notification("conversation.admin.closed")).encode()

        response = post_signed(
            client,
            notification("conversation.admin.closed"),
            signature=hub_signature(body, secret="someone-else"),
        )

        assert response.status_code == 401
        snooze_service.end_snooze.assert_not_awaited()

    def test_tampered_body_is_rejected(self, client, snooze_service):
        signed = json.dumps(notification("conversation.admin.assigned")).encode()
        tampered = json.dumps(notification("conversation.admin.closed")).encode()

        response = client.post(
            "/webhooks/intercom",
            content=tampered,
            headers={"Content-Type": "application/json", "X-Hub-Signature": hub_signature(signed)},
        )

        assert response.status_code == 401
        snooze_service.end_snooze.assert_not_awaited()
