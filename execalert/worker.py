"""Worker process entry point.

Builds one instance of each service from the settings and runs two queue
consumers: finished test executions, and notification events routed from the
event exchange.
"""

import asyncio
import signal

from execalert.core.config import Settings, get_settings
from execalert.core.logging import get_logger, setup_logging
from execalert.detection.failure_detector import FailureDetector
from execalert.events.publisher import EventPublisher, RabbitMQEventBus
from execalert.messaging.consumer import RabbitMQConsumer
from execalert.messaging.handler import ExecutionHandler, NotificationEventHandler
from execalert.notification.processor import NotificationProcessor
from execalert.notification.service import NotificationService
from execalert.notification.webhook import WebhookIntegration
from execalert.security.sanitizer import DEFAULT_SENSITIVE_PATTERNS, Redactor
from execalert.storage.execution_store import ExecutionStore
from execalert.storage.history_store import NotificationHistoryStore
from execalert.storage.preferences_store import PreferencesStore
from execalert.storage.redis_client import close_redis_pool, get_redis, init_redis_pool
from execalert.storage.template_store import TemplateStore
from execalert.templates.service import TemplateService

logger = get_logger(__name__)


class WorkerManager:
    """Wires services together and coordinates the consumers."""

    def __init__(self, settings: Settings):
        self._settings = settings
        self._bus: RabbitMQEventBus | None = None
        self._notifications: NotificationService | None = None
        self._webhook: WebhookIntegration | None = None
        self._consumers: list[RabbitMQConsumer] = []

    def build(self) -> None:
        """Construct services. Requires the Redis pool to be initialized."""
        settings = self._settings
        redis = get_redis()

        execution_store = ExecutionStore(redis)
        template_service = TemplateService(TemplateStore(redis))

        self._bus = RabbitMQEventBus(settings)
        self._notifications = NotificationService(settings)
        self._webhook = WebhookIntegration(settings)
        if self._webhook.is_enabled() and not self._webhook.validate_configuration():
            logger.warning("Webhook integration enabled with an invalid URL")

        publisher = EventPublisher(self._bus, settings)
        detector = FailureDetector(
            execution_store,
            failure_rate_threshold=settings.alert_failure_rate_threshold,
            consecutive_failures=settings.alert_consecutive_failures,
        )
        processor = NotificationProcessor(
            preferences=PreferencesStore(redis),
            templates=template_service,
            history=NotificationHistoryStore(redis, ttl_days=settings.history_ttl_days),
            notifications=self._notifications,
            webhook=self._webhook,
            redactor=Redactor(settings.sensitive_patterns or DEFAULT_SENSITIVE_PATTERNS),
        )

        execution_handler = ExecutionHandler(execution_store, publisher, detector, self._notifications)
        event_handler = NotificationEventHandler(processor)

        self._consumers = [
            RabbitMQConsumer(
                settings.rabbitmq_url,
                settings.execution_queue,
                execution_handler.handle_message,
            ),
            RabbitMQConsumer(
                settings.rabbitmq_url,
                settings.notification_queue,
                event_handler.handle_message,
                exchange=settings.event_exchange,
            ),
        ]

    async def start(self) -> None:
        """Start all consumers."""
        logger.info("Starting worker manager")
        await init_redis_pool(self._settings.redis_url)
        self.build()

        try:
            await asyncio.gather(*(self._run_consumer(consumer) for consumer in self._consumers))
        finally:
            await self._cleanup()

    async def _run_consumer(self, consumer: RabbitMQConsumer) -> None:
        try:
            await consumer.start_consuming()
        except asyncio.CancelledError:
            logger.info("Consumer cancelled")
        except Exception as e:
            logger.error("Consumer error", error=str(e), exc_info=True)

    async def stop(self) -> None:
        """Signal consumers to stop."""
        logger.info("Stopping workers")
        for consumer in self._consumers:
            consumer.stop()

    async def _cleanup(self) -> None:
        logger.info("Cleaning up resources")
        for consumer in self._consumers:
            await consumer.disconnect()
        if self._bus:
            await self._bus.close()
        if self._notifications:
            await self._notifications.close()
        if self._webhook:
            await self._webhook.close()
        await close_redis_pool()
        logger.info("Cleanup complete")


async def main() -> None:
    """Main entry point for worker process."""
    settings = get_settings()
    setup_logging(settings)
    manager = WorkerManager(settings)

    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        asyncio.create_task(manager.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    await manager.start()


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
