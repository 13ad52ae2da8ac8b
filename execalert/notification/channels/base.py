"""Base class for delivery channels."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class OutgoingMessage:
    """Rendered message addressed to one recipient."""

    recipient: str
    subject: str
    text: str
    html: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)


class DeliveryChannel(ABC):
    """Abstract base class for delivery channels.

    ``send`` raises on failure so callers can retry it.
    """

    @property
    @abstractmethod
    def channel_type(self) -> str:
        """Return channel type identifier."""
        pass

    @property
    def is_configured(self) -> bool:
        """Whether the channel has the settings it needs to send."""
        return True

    @abstractmethod
    async def send(self, message: OutgoingMessage) -> str:
        """Send a message.

        Args:
            message: Rendered message

        Returns:
            Provider message ID
        """
        pass

    async def close(self) -> None:
        """Clean up resources. Override if needed."""
        pass
