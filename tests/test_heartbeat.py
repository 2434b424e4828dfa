"""
Tests for Better Stack heartbeats.
"""

import httpx
import pytest

from snoozeplus.core.retry import RetryPolicy
from snoozeplus.services.heartbeat import send_heartbeat

HEARTBEAT_URL = "https://uptime.betterstack.test/api/v1/heartbeat/abc"
NO_RETRY = RetryPolicy(retries=0)


def client_for(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestSendHeartbeat:
    @pytest.mark.asyncio
    async def test_success_ping(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200)

        assert await send_heartbeat(True, client=client_for(handler), url=HEARTBEAT_URL) is True
        assert requests[0].method == "HEAD"
        assert str(requests[0].url) == HEARTBEAT_URL

    @pytest.mark.asyncio
    async def test_failure_ping_uses_fail_path(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200)

        assert await send_heartbeat(False, client=client_for(handler), url=HEARTBEAT_URL + "/") is True
        assert str(requests[0].url) == f"{HEARTBEAT_URL}/fail"

    @pytest.mark.asyncio
    async def test_skipped_without_url(self):
        def handler(request):
            raise AssertionError("no request expected")

        assert await send_heartbeat(True, client=client_for(handler), url="") is False

    @pytest.mark.asyncio
    async def test_rejected_status_returns_false(self):
        client = client_for(lambda request: httpx.Response(404))

        assert await send_heartbeat(True, client=client, url=HEARTBEAT_URL, retry_policy=NO_RETRY) is False

    @pytest.mark.asyncio
    async def test_transport_error_is_swallowed(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        result = await send_heartbeat(True, client=client_for(handler), url=HEARTBEAT_URL, retry_policy=NO_RETRY)

        assert result is False

    @pytest.mark.asyncio
    async def test_retries_transport_errors(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200)

        policy = RetryPolicy(retries=2, min_timeout=0, max_timeout=0)
        result = await send_heartbeat(True, client=client_for(handler), url=HEARTBEAT_URL, retry_policy=policy)

        assert result is True
        assert len(attempts) == 2
