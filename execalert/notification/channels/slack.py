"""Slack incoming-webhook channel."""

import json
import uuid
from typing import Any

import httpx

from execalert.core.errors import DeliveryError
from execalert.core.logging import get_logger
from execalert.notification.channels.base import DeliveryChannel, OutgoingMessage

logger = get_logger(__name__)


def build_slack_payload(message: OutgoingMessage) -> dict[str, Any]:
    """Use the rendered Block Kit JSON when it parses, plain text otherwise."""
    try:
        payload = json.loads(message.text)
    except ValueError:
        return {"text": message.text}
    if not isinstance(payload, dict):
        return {"text": message.text}
    payload.setdefault("text", message.subject or "Test execution notification")
    return payload


class SlackChannel(DeliveryChannel):
    """Posts to the Slack incoming webhook URL given as the recipient."""

    def __init__(self, client: httpx.AsyncClient | None = None):
        self._client = client or httpx.AsyncClient(timeout=10.0)

    @property
    def channel_type(self) -> str:
        return "slack"

    async def send(self, message: OutgoingMessage) -> str:
        response = await self._client.post(message.recipient, json=build_slack_payload(message))
        if not response.is_success:
            raise DeliveryError(f"Slack returned status {response.status_code}")

        message_id = f"slack-{uuid.uuid4().hex[:12]}"
        logger.info("Slack message sent", message_id=message_id)
        return message_id

    async def close(self) -> None:
        """Close HTTP client."""
        await self._client.aclose()
