"""Message handlers for the execution and notification queues."""

import time
import uuid
from typing import Any

from execalert.core.logging import get_logger
from execalert.detection.failure_detector import FailureDetector
from execalert.events.publisher import EventPublisher
from execalert.models.event import CriticalAlert, NotificationEvent
from execalert.models.execution import TestExecution
from execalert.notification.processor import NotificationProcessor
from execalert.notification.service import NotificationService
from execalert.observability.metrics import EXECUTIONS_RECEIVED
from execalert.storage.execution_store import ExecutionStore

logger = get_logger(__name__)


class ExecutionHandler:
    """Handles finished test executions.

    Pipeline steps:
    1. Save the execution
    2. Publish its completion event
    3. Run the consecutive-failure and suite failure-rate detectors
    4. Publish a critical alert event for each alert raised
    """

    def __init__(
        self,
        store: ExecutionStore,
        publisher: EventPublisher,
        detector: FailureDetector,
        notifications: NotificationService | None = None,
    ):
        """Initialize handler.

        Args:
            store: Execution store
            publisher: Event publisher
            detector: Failure detector
            notifications: Used to report detector errors to the admin
        """
        self._store = store
        self._publisher = publisher
        self._detector = detector
        self._notifications = notifications

    async def handle_message(self, body: dict[str, Any]) -> None:
        await self.handle_execution(TestExecution.model_validate(body))

    async def handle_execution(self, execution: TestExecution) -> list[NotificationEvent]:
        """Process one finished execution.

        Returns:
            Critical alert events that were generated
        """
        start_time = time.time()
        EXECUTIONS_RECEIVED.labels(result=execution.result.value if execution.result else "none").inc()

        logger.info(
            "Processing execution",
            execution_id=execution.execution_id,
            status=execution.status.value,
            result=execution.result.value if execution.result else None,
        )

        await self._store.save(execution)

        if not execution.finished:
            logger.debug("Execution not finished, skipping", execution_id=execution.execution_id)
            return []

        await self._publisher.publish_test_completion_event(execution)

        alerts: list[CriticalAlert] = []
        if execution.test_case_id:
            alert = await self._detect(
                "consecutive_failures",
                execution,
                self._detector.detect_consecutive_failures(execution.test_case_id),
            )
            if alert:
                alerts.append(alert)

        if execution.suite_execution_id:
            alert = await self._detect(
                "suite_failure_rate",
                execution,
                self._detector.detect_suite_failure_rate(execution.suite_execution_id),
            )
            if alert:
                alerts.append(alert)

        events = []
        for alert in alerts:
            event = self._detector.generate_critical_alert(
                alert,
                project_id=execution.project_id,
                triggered_by=execution.metadata.triggered_by,
            )
            await self._publisher.publish_event(event)
            events.append(event)

        elapsed_ms = int((time.time() - start_time) * 1000)
        logger.info(
            "Execution processing complete",
            execution_id=execution.execution_id,
            alerts=len(events),
            elapsed_ms=elapsed_ms,
        )
        return events

    async def _detect(self, name: str, execution: TestExecution, detection: Any) -> CriticalAlert | None:
        try:
            return await detection
        except Exception as e:
            logger.error(
                "Failure detection error",
                detector=name,
                execution_id=execution.execution_id,
                error=str(e),
                exc_info=True,
            )
            if self._notifications:
                await self._notifications.notify_system_error(
                    error_id=f"detect-{uuid.uuid4().hex[:12]}",
                    error_message=str(e),
                    context={"detector": name, "execution_id": execution.execution_id},
                )
            return None


class NotificationEventHandler:
    """Feeds notification events from the queue into the processor."""

    def __init__(self, processor: NotificationProcessor):
        self._processor = processor

    async def handle_message(self, body: dict[str, Any]) -> None:
        event = NotificationEvent.model_validate(body)
        results = await self._processor.process_event(event)
        logger.debug(
            "Notification event handled",
            event_id=event.event_id,
            results=[result.status.value for result in results],
        )
