"""Per-user webhook channel."""

import uuid

import httpx

from execalert.core.errors import DeliveryError
from execalert.core.logging import get_logger
from execalert.notification.channels.base import DeliveryChannel, OutgoingMessage

logger = get_logger(__name__)


class WebhookChannel(DeliveryChannel):
    """Posts the rendered message as JSON to a user-supplied URL."""

    def __init__(self, client: httpx.AsyncClient | None = None):
        self._client = client or httpx.AsyncClient(timeout=10.0)

    @property
    def channel_type(self) -> str:
        return "webhook"

    async def send(self, message: OutgoingMessage) -> str:
        message_id = f"webhook-{uuid.uuid4().hex[:12]}"
        response = await self._client.post(
            message.recipient,
            json={
                "id": message_id,
                "subject": message.subject,
                "content": message.text,
                **message.extra,
            },
        )
        if not response.is_success:
            raise DeliveryError(f"Webhook returned status {response.status_code}")

        logger.info("Webhook message sent", message_id=message_id, status_code=response.status_code)
        return message_id

    async def close(self) -> None:
        """Close HTTP client."""
        await self._client.aclose()
