"""Multi-channel notification delivery.

Every send goes through :class:`RetryExecutor`; callers always get a
:class:`DeliveryResult` back, never an exception.
"""

import html
import re
from datetime import datetime, timezone
from typing import Any

from execalert.core.config import Settings
from execalert.core.logging import get_logger
from execalert.delivery.retry import RetryConfig, RetryExecutor
from execalert.models.notification import DeliveryResult, NotificationPayload, NotificationType
from execalert.models.template import NotificationChannel
from execalert.notification.channels.base import DeliveryChannel, OutgoingMessage
from execalert.notification.channels.email import EmailChannel
from execalert.notification.channels.in_app import InAppChannel
from execalert.notification.channels.slack import SlackChannel
from execalert.notification.channels.sms import SMSChannel
from execalert.notification.channels.webhook import WebhookChannel
from execalert.observability.metrics import NOTIFICATIONS_SENT, RETRY_ATTEMPTS

logger = get_logger(__name__)

IN_APP = "in_app"

_BLOCK_END_RE = re.compile(r"(?i)</(?:p|div|h[1-6]|tr|li|table)>|<br\s*/?>")
_TAG_RE = re.compile(r"<[^>]+>")
_BLANK_LINES_RE = re.compile(r"\n\s*\n+")


def format_email_text(payload: NotificationPayload) -> str:
    """Plain text email body with a ``Details:`` section from ``payload.data``."""
    body = f"{payload.title}\n\n{payload.message}\n\n"
    if payload.data:
        body += "Details:\n"
        for key, value in payload.data.items():
            body += f"  {key}: {value}\n"
    body += "\n---\nTest Execution Notifications\n"
    return body


def format_email_html(payload: NotificationPayload) -> str:
    """HTML email body; every interpolated value is escaped."""
    rows = ""
    if payload.data:
        rows = "".join(
            '<tr><td style="padding: 6px; border: 1px solid #ddd;"><strong>'
            f"{html.escape(str(key))}</strong></td>"
            f'<td style="padding: 6px; border: 1px solid #ddd;">{html.escape(str(value))}</td></tr>'
            for key, value in payload.data.items()
        )
        rows = f'<h3>Details:</h3><table style="border-collapse: collapse;">{rows}</table>'

    return (
        '<html><body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">'
        f"<h1>{html.escape(payload.title)}</h1>"
        f"<p>{html.escape(payload.message)}</p>"
        f"{rows}"
        '<p style="font-size: 12px; color: #666;">'
        "This is an automated notification. Please do not reply to this email.</p>"
        "</body></html>"
    )


def html_to_text(markup: str) -> str:
    text = _BLOCK_END_RE.sub("\n", markup)
    text = html.unescape(_TAG_RE.sub("", text))
    return _BLANK_LINES_RE.sub("\n\n", text).strip()


class NotificationService:
    """Sends notifications over email, SMS, Slack, webhook or in-app."""

    def __init__(
        self,
        settings: Settings,
        channels: dict[str, DeliveryChannel] | None = None,
        retry_executor: RetryExecutor | None = None,
        retry_config: RetryConfig | None = None,
    ):
        """Initialize service.

        Args:
            settings: Application settings
            channels: Channel implementations keyed by channel type; built
                from settings when omitted
            retry_executor: Executor wrapping each send
            retry_config: Retry budget; defaults to the configured one
        """
        self._settings = settings
        self._channels = channels if channels is not None else self._default_channels(settings)
        self._retry = retry_executor or RetryExecutor()
        self._retry_config = retry_config or RetryConfig.from_settings(settings)

    @staticmethod
    def _default_channels(settings: Settings) -> dict[str, DeliveryChannel]:
        return {
            NotificationChannel.EMAIL.value: EmailChannel(settings),
            NotificationChannel.SMS.value: SMSChannel(settings),
            NotificationChannel.SLACK.value: SlackChannel(),
            NotificationChannel.WEBHOOK.value: WebhookChannel(),
            IN_APP: InAppChannel(),
        }

    async def close(self) -> None:
        """Clean up channel resources."""
        for channel in self._channels.values():
            await channel.close()

    async def send_notification(self, payload: NotificationPayload) -> DeliveryResult:
        """Send a direct notification.

        Routed by contact field: email first, then phone number, otherwise
        in-app.
        """
        try:
            logger.info("Sending notification", user_id=payload.user_id, type=payload.type.value)

            if payload.email:
                message = OutgoingMessage(
                    recipient=payload.email,
                    subject=payload.title,
                    text=format_email_text(payload),
                    html=format_email_html(payload),
                )
                return await self._send(NotificationChannel.EMAIL.value, message)

            if payload.phone_number:
                message = OutgoingMessage(
                    recipient=payload.phone_number,
                    subject=payload.title,
                    text=f"{payload.title}\n\n{payload.message}",
                )
                return await self._send(NotificationChannel.SMS.value, message)

            message = OutgoingMessage(
                recipient=payload.user_id,
                subject=payload.title,
                text=payload.message,
                extra={"type": payload.type.value},
            )
            return await self._send(IN_APP, message)

        except Exception as e:
            logger.error("Failed to send notification", user_id=payload.user_id, error=str(e))
            return DeliveryResult(success=False, error=str(e) or type(e).__name__, attempt_count=0)

    async def deliver(
        self,
        channel: NotificationChannel,
        recipient: str,
        subject: str,
        content: str,
        is_html: bool = False,
    ) -> DeliveryResult:
        """Deliver already-rendered content to one recipient on one channel.

        Args:
            channel: Target channel
            recipient: Email address, phone number or URL, depending on channel
            subject: Subject line (email) or title
            content: Rendered template body
            is_html: Whether ``content`` is HTML; a text part is derived from it
        """
        message = OutgoingMessage(
            recipient=recipient,
            subject=subject,
            text=html_to_text(content) if is_html else content,
            html=content if is_html else None,
        )
        try:
            return await self._send(channel.value, message)
        except Exception as e:
            logger.error("Channel delivery failed", channel=channel.value, error=str(e))
            return DeliveryResult(success=False, error=str(e) or type(e).__name__, attempt_count=0)

    async def _send(self, channel_type: str, message: OutgoingMessage) -> DeliveryResult:
        channel = self._channels.get(channel_type)
        if channel is None:
            return DeliveryResult(success=False, error=f"Unsupported channel: {channel_type}", attempt_count=0)
        if not channel.is_configured:
            logger.warning("Channel not configured", channel=channel_type)
            NOTIFICATIONS_SENT.labels(channel=channel_type, status="failed").inc()
            return DeliveryResult(
                success=False,
                error=f"Channel {channel_type} is not configured",
                attempt_count=0,
            )

        outcome = await self._retry.execute_with_retry(lambda: channel.send(message), self._retry_config)
        RETRY_ATTEMPTS.labels(channel=channel_type).observe(outcome.attempt_count)

        if outcome.success:
            NOTIFICATIONS_SENT.labels(channel=channel_type, status="sent").inc()
            return DeliveryResult(success=True, message_id=outcome.result, attempt_count=outcome.attempt_count)

        NOTIFICATIONS_SENT.labels(channel=channel_type, status="failed").inc()
        error = outcome.error
        return DeliveryResult(
            success=False,
            error=(str(error) or type(error).__name__) if error else "Delivery failed",
            attempt_count=outcome.attempt_count,
        )

    # Convenience helpers

    async def notify_execution_complete(
        self,
        user_id: str,
        execution_id: str,
        test_name: str,
        result: str,
        email: str | None = None,
    ) -> DeliveryResult:
        return await self.send_notification(
            NotificationPayload(
                user_id=user_id,
                type=NotificationType.EXECUTION_COMPLETE,
                title="Test Execution Complete",
                message=f'Test "{test_name}" has completed with result: {result}.',
                data={
                    "execution_id": execution_id,
                    "test_name": test_name,
                    "result": result,
                    "timestamp": _now_iso(),
                },
                email=email,
            )
        )

    async def notify_execution_failure(
        self,
        user_id: str,
        execution_id: str,
        test_name: str,
        error_message: str,
        email: str | None = None,
    ) -> DeliveryResult:
        return await self.send_notification(
            NotificationPayload(
                user_id=user_id,
                type=NotificationType.EXECUTION_FAILED,
                title="Test Execution Failed",
                message=f'Test "{test_name}" failed: {error_message}',
                data={
                    "execution_id": execution_id,
                    "test_name": test_name,
                    "error": error_message,
                    "timestamp": _now_iso(),
                },
                email=email,
            )
        )

    async def notify_system_error(
        self,
        error_id: str,
        error_message: str,
        context: dict[str, Any] | None = None,
    ) -> DeliveryResult | None:
        """Email the configured admin; returns None when no admin email is set."""
        if not self._settings.admin_email:
            logger.debug("No admin email configured, system error not sent", error_id=error_id)
            return None

        return await self.send_notification(
            NotificationPayload(
                user_id="system",
                type=NotificationType.SYSTEM_ERROR,
                title="System Error Alert",
                message=f"A system error has occurred: {error_message}",
                data={
                    "error_id": error_id,
                    "error": error_message,
                    "context": context,
                    "timestamp": _now_iso(),
                },
                email=self._settings.admin_email,
            )
        )


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
