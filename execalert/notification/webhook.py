"""Optional outbound delivery to a workflow automation webhook."""

import asyncio
import time
from typing import Any

import httpx

from execalert.core.cache import LazyCell
from execalert.core.config import Settings
from execalert.core.logging import get_logger
from execalert.models.notification import WebhookDeliveryResult, WebhookMetadata, WebhookPayload
from execalert.observability.metrics import WEBHOOK_LATENCY

logger = get_logger(__name__)


class WebhookIntegration:
    """Posts notification events to the configured automation webhook.

    Failures are returned as :class:`WebhookDeliveryResult`, never raised.
    """

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None):
        """Initialize integration.

        Args:
            settings: Application settings
            client: HTTP client; created on first use when omitted
        """
        self._settings = settings
        self._client = LazyCell(self._create_client, dispose=lambda c: c.aclose())
        if client is not None:
            self._client = LazyCell(lambda: _ready(client))

    async def _create_client(self) -> httpx.AsyncClient:
        # Same budget as the wait_for around each request
        return httpx.AsyncClient(timeout=self.timeout_ms / 1000)

    @property
    def timeout_ms(self) -> int:
        return self._settings.webhook_timeout_ms

    def is_enabled(self) -> bool:
        """Enabled flag set and a URL configured."""
        return self._settings.webhook_enabled and bool(self._settings.webhook_url)

    def validate_configuration(self) -> bool:
        """Check the webhook URL parses and uses http or https."""
        url = self._settings.webhook_url
        if not url:
            logger.warning("Webhook URL not configured")
            return False

        try:
            parsed = httpx.URL(url)
        except httpx.InvalidURL as e:
            logger.error("Invalid webhook URL format", error=str(e))
            return False

        if parsed.scheme not in ("http", "https") or not parsed.host:
            logger.warning("Webhook URL must use HTTP or HTTPS protocol", scheme=parsed.scheme)
            return False
        return True

    def authentication_headers(self) -> dict[str, str]:
        """API key wins over bearer token; neither configured means no auth."""
        if self._settings.webhook_api_key:
            return {"X-API-Key": self._settings.webhook_api_key}
        if self._settings.webhook_bearer_token:
            return {"Authorization": f"Bearer {self._settings.webhook_bearer_token}"}
        return {}

    async def send_to_webhook(self, payload: WebhookPayload) -> WebhookDeliveryResult:
        """POST the payload with metadata attached.

        Args:
            payload: Event payload

        Returns:
            Delivery result with status code, response body and duration in ms
        """
        url = self._settings.webhook_url
        if not url:
            return WebhookDeliveryResult(success=False, error_message="Webhook URL not configured", duration=0)

        enriched = payload.model_copy(
            update={
                "metadata": WebhookMetadata(
                    source=self._settings.webhook_source,
                    version=self._settings.app_version,
                )
            }
        )
        headers = {"Content-Type": "application/json", **self.authentication_headers()}

        start = time.monotonic()
        try:
            client = await self._client.get()
            response = await asyncio.wait_for(
                client.post(url, content=enriched.model_dump_json(), headers=headers),
                timeout=self.timeout_ms / 1000,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            duration = _elapsed_ms(start)
            WEBHOOK_LATENCY.labels(outcome="timeout").observe(duration / 1000)
            logger.warning("Webhook request timed out", event_id=payload.event_id, timeout_ms=self.timeout_ms)
            return WebhookDeliveryResult(
                success=False,
                error_message=f"Webhook request timed out after {self.timeout_ms}ms",
                duration=duration,
            )
        except Exception as e:
            duration = _elapsed_ms(start)
            WEBHOOK_LATENCY.labels(outcome="error").observe(duration / 1000)
            logger.error("Webhook request failed", event_id=payload.event_id, error=str(e))
            return WebhookDeliveryResult(
                success=False,
                error_message=str(e) or type(e).__name__,
                duration=duration,
            )

        duration = _elapsed_ms(start)
        if response.is_success:
            WEBHOOK_LATENCY.labels(outcome="success").observe(duration / 1000)
            logger.info("Webhook delivered", event_id=payload.event_id, status_code=response.status_code)
            return WebhookDeliveryResult(
                success=True,
                status_code=response.status_code,
                response_body=response.text,
                duration=duration,
            )

        WEBHOOK_LATENCY.labels(outcome="error").observe(duration / 1000)
        logger.warning("Webhook returned error status", event_id=payload.event_id, status_code=response.status_code)
        return WebhookDeliveryResult(
            success=False,
            status_code=response.status_code,
            response_body=response.text,
            error_message=f"Webhook returned status {response.status_code}",
            duration=duration,
        )

    async def close(self) -> None:
        """Close the HTTP client if one was created."""
        client = self._client.reset()
        if client is not None:
            await client.aclose()


async def _ready(value: Any) -> Any:
    return value


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
