"""In-app channel. Nothing is transported; the notification is only logged."""

import time

from execalert.core.logging import get_logger
from execalert.notification.channels.base import DeliveryChannel, OutgoingMessage

logger = get_logger(__name__)


class InAppChannel(DeliveryChannel):
    """Log-only channel that always succeeds."""

    @property
    def channel_type(self) -> str:
        return "in_app"

    async def send(self, message: OutgoingMessage) -> str:
        message_id = f"in-app-{int(time.time() * 1000)}"
        logger.info(
            "In-app notification",
            user_id=message.recipient,
            title=message.subject,
            message_id=message_id,
        )
        return message_id
