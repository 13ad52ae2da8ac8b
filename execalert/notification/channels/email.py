"""Email delivery channel."""

from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid

import aiosmtplib

from execalert.core.config import Settings
from execalert.core.errors import ChannelConfigurationError
from execalert.core.logging import get_logger
from execalert.notification.channels.base import DeliveryChannel, OutgoingMessage

logger = get_logger(__name__)


class EmailChannel(DeliveryChannel):
    """Email delivery channel using SMTP."""

    def __init__(self, settings: Settings):
        self._settings = settings

    @property
    def channel_type(self) -> str:
        return "email"

    @property
    def is_configured(self) -> bool:
        return bool(self._settings.smtp_host)

    def build_message(self, message: OutgoingMessage) -> MIMEMultipart:
        """Build a multipart message with plain text and optional HTML parts."""
        msg = MIMEMultipart("alternative")
        msg["Subject"] = message.subject[:200]
        msg["From"] = self._settings.smtp_from or self._settings.smtp_user
        msg["To"] = message.recipient
        msg["Message-ID"] = make_msgid(domain=self._sender_domain())

        msg.attach(MIMEText(message.text, "plain", "utf-8"))
        if message.html:
            msg.attach(MIMEText(message.html, "html", "utf-8"))
        return msg

    async def send(self, message: OutgoingMessage) -> str:
        """Send email over SMTP.

        Returns:
            The Message-ID header of the sent email

        Raises:
            ChannelConfigurationError: If SMTP is not configured
        """
        if not self.is_configured:
            raise ChannelConfigurationError("SMTP not configured")

        msg = self.build_message(message)
        await aiosmtplib.send(
            msg,
            hostname=self._settings.smtp_host,
            port=self._settings.smtp_port,
            username=self._settings.smtp_user or None,
            password=self._settings.smtp_password or None,
            use_tls=not self._settings.smtp_use_tls,
            start_tls=self._settings.smtp_use_tls,
        )
        logger.info("Email sent", recipient=message.recipient, message_id=msg["Message-ID"])
        return msg["Message-ID"]

    def _sender_domain(self) -> str | None:
        sender = self._settings.smtp_from or self._settings.smtp_user
        return sender.rpartition("@")[2] or None
