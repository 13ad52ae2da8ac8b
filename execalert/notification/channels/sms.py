"""SMS delivery channel via an HTTP gateway."""

import uuid

import httpx

from execalert.core.config import Settings
from execalert.core.errors import ChannelConfigurationError, DeliveryError
from execalert.core.logging import get_logger
from execalert.notification.channels.base import DeliveryChannel, OutgoingMessage

logger = get_logger(__name__)

SMS_MAX_LENGTH = 1600  # Gateways split longer bodies into at most 10 segments


class SMSChannel(DeliveryChannel):
    """SMS gateway channel posting JSON to the configured endpoint."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None):
        self._settings = settings
        self._client = client or httpx.AsyncClient(timeout=10.0)

    @property
    def channel_type(self) -> str:
        return "sms"

    @property
    def is_configured(self) -> bool:
        return bool(self._settings.sms_gateway_url)

    async def send(self, message: OutgoingMessage) -> str:
        """Send an SMS through the gateway.

        Raises:
            ChannelConfigurationError: If no gateway is configured
            httpx.HTTPError: On transport errors
            DeliveryError: On non-2xx responses
        """
        if not self.is_configured:
            raise ChannelConfigurationError("SMS gateway not configured")

        headers = {}
        if self._settings.sms_gateway_api_key:
            headers["Authorization"] = f"Bearer {self._settings.sms_gateway_api_key}"

        response = await self._client.post(
            self._settings.sms_gateway_url,
            json={"to": message.recipient, "message": message.text[:SMS_MAX_LENGTH]},
            headers=headers,
        )
        if not response.is_success:
            raise DeliveryError(f"SMS gateway returned status {response.status_code}")

        message_id = _message_id(response) or f"sms-{uuid.uuid4().hex[:12]}"
        logger.info("SMS sent", recipient=message.recipient, message_id=message_id)
        return message_id

    async def close(self) -> None:
        """Close HTTP client."""
        await self._client.aclose()


def _message_id(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        value = body.get("message_id") or body.get("messageId") or body.get("sid")
        return str(value) if value else None
    return None
