"""
Intercom conversation API client.

Every outbound call goes through one CircuitBreaker per client, and the
breaker's protected unit is the retrying call:

    breaker.call(retry_async(POST ...))

so an OPEN circuit short-circuits before any attempt is made, and a burst of
retries that finally fails counts as a single breaker failure.

Access tokens (and message bodies for send_message) arrive encrypted and are
decrypted here, right before the request, outside the retry loop: a
DecryptionError is never retried and never trips the breaker.

Usage:
    from snoozeplus.services.intercom import get_intercom_service

    intercom = get_intercom_service()
    await intercom.send_message(conversation_id, admin_id, access_token, encrypted_body)
    intercom.get_circuit_breaker_state()
"""

from typing import Any, Dict, Optional

import httpx
import structlog

from snoozeplus.core.circuit_breaker import CircuitBreaker
from snoozeplus.core.config import settings
from snoozeplus.core.errors import IntercomAPIError
from snoozeplus.core.retry import RetryPolicy, retry_async
from snoozeplus.services.crypto import CryptoService, get_crypto_service

logger = structlog.get_logger(__name__)

REQUEST_TIMEOUT_SECONDS = 10.0


class IntercomService:
    def __init__(
        self,
        crypto: CryptoService,
        client: Optional[httpx.AsyncClient] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        retry_policy: Optional[RetryPolicy] = None,
        base_url: Optional[str] = None,
        api_version: Optional[str] = None,
    ):
        self.crypto = crypto
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            name="intercom",
            failure_threshold=settings.CIRCUIT_FAILURE_THRESHOLD,
            call_timeout=settings.CIRCUIT_CALL_TIMEOUT / 1000,
            reset_timeout=settings.CIRCUIT_RESET_TIMEOUT / 1000,
        )
        self.api_version = api_version or settings.INTERCOM_VERSION
        self._client = client or httpx.AsyncClient(
            base_url=base_url or settings.INTERCOM_URL,
            timeout=REQUEST_TIMEOUT_SECONDS,
        )

    async def send_message(
        self,
        conversation_id: int,
        admin_id: int,
        access_token: str,
        message: str,
    ) -> Dict[str, Any]:
        """Reply to a conversation as the admin. `message` is the encrypted body."""
        body = self.crypto.decrypt(message)
        logger.info("sending message via intercom", conversation_id=conversation_id, admin_id=admin_id)
        data = await self._post(
            "sendMessage",
            access_token,
            f"/conversations/{conversation_id}/reply",
            {
                "message_type": "comment",
                "type": "admin",
                "admin_id": str(admin_id),
                "body": f"<p>{body}</p>",
            },
        )
        logger.info("message sent", conversation_id=conversation_id)
        return data

    async def add_note(
        self,
        conversation_id: int,
        admin_id: int,
        access_token: str,
        note: str,
    ) -> Dict[str, Any]:
        """Add an internal (HTML) note to a conversation."""
        logger.info("adding note via intercom", conversation_id=conversation_id, admin_id=admin_id)
        data = await self._post(
            "addNote",
            access_token,
            f"/conversations/{conversation_id}/reply",
            {
                "message_type": "note",
                "type": "admin",
                "admin_id": str(admin_id),
                "body": note,
            },
        )
        logger.info("note added", conversation_id=conversation_id)
        return data

    async def cancel_snooze(
        self,
        conversation_id: int,
        admin_id: int,
        access_token: str,
    ) -> Dict[str, Any]:
        """Reopen a snoozed conversation."""
        logger.info("cancelling snooze via intercom", conversation_id=conversation_id, admin_id=admin_id)
        data = await self._post(
            "cancelSnooze",
            access_token,
            f"/conversations/{conversation_id}/parts",
            {
                "message_type": "open",
                "admin_id": str(admin_id),
            },
        )
        logger.info("snooze cancelled", conversation_id=conversation_id)
        return data

    async def set_snooze(
        self,
        conversation_id: int,
        admin_id: int,
        access_token: str,
        snoozed_until: int,
    ) -> Dict[str, Any]:
        """Snooze a conversation until a unix timestamp."""
        logger.info(
            "setting snooze via intercom",
            conversation_id=conversation_id,
            admin_id=admin_id,
            snoozed_until=snoozed_until,
        )
        data = await self._post(
            "setSnooze",
            access_token,
            f"/conversations/{conversation_id}/parts",
            {
                "message_type": "snoozed",
                "admin_id": str(admin_id),
                "snoozed_until": snoozed_until,
            },
        )
        logger.info("snooze set", conversation_id=conversation_id, snoozed_until=snoozed_until)
        return data

    async def close_conversation(
        self,
        conversation_id: int,
        admin_id: int,
        access_token: str,
    ) -> Dict[str, Any]:
        logger.info("closing conversation via intercom", conversation_id=conversation_id, admin_id=admin_id)
        data = await self._post(
            "closeConversation",
            access_token,
            f"/conversations/{conversation_id}/parts",
            {
                "message_type": "close",
                "type": "admin",
                "admin_id": str(admin_id),
            },
        )
        logger.info("conversation closed", conversation_id=conversation_id)
        return data

    def get_circuit_breaker_state(self) -> Dict[str, Any]:
        return self.circuit_breaker.snapshot().to_dict()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(
        self,
        operation: str,
        access_token: str,
        path: str,
        payload: Dict[str, Any],
    ) -> Dict[str, Any]:
        token = self.crypto.decrypt(access_token)
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
            "Intercom-Version": self.api_version,
        }

        async def attempt() -> Dict[str, Any]:
            response = await self._client.post(path, json=payload, headers=headers)
            if not response.is_success:
                raise IntercomAPIError(operation, response.status_code, response.text)
            return response.json() if response.content else {}

        return await self.circuit_breaker.call(
            lambda: retry_async(attempt, operation, self.retry_policy)
        )


_service: Optional[IntercomService] = None


def get_intercom_service() -> IntercomService:
    """Process-wide client sharing one circuit breaker."""
    global _service
    if _service is None:
        _service = IntercomService(crypto=get_crypto_service())
    return _service


async def close_intercom_service() -> None:
    """Close the shared HTTP client, if one was created."""
    global _service
    if _service is not None:
        await _service.aclose()
        _service = None
