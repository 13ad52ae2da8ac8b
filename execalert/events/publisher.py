"""Durable event publishing to the event bus.

Publishing is best-effort: a failure to publish is logged and never fails the
operation that produced the event.
"""

import json
import uuid
from collections.abc import Mapping
from typing import Any, Protocol

import aio_pika
from aio_pika.abc import AbstractChannel, AbstractExchange, AbstractRobustConnection
from pydantic import BaseModel, Field

from execalert.core.cache import LazyCell
from execalert.core.config import Settings
from execalert.core.logging import get_logger
from execalert.models.event import EventPayload, EventType, NotificationEvent, utcnow
from execalert.models.execution import ExecutionResult, ExecutionStatus, TestExecution
from execalert.observability.metrics import EVENTS_PUBLISHED

logger = get_logger(__name__)


class EventEntry(BaseModel):
    """One event submitted to the bus."""

    source: str
    detail_type: str
    detail: str


class PutEventsResultEntry(BaseModel):
    event_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None


class PutEventsResponse(BaseModel):
    failed_entry_count: int = 0
    entries: list[PutEventsResultEntry] = Field(default_factory=list)


class EventBus(Protocol):
    """Batch put interface of the event bus."""

    async def put_events(self, entries: list[EventEntry]) -> PutEventsResponse: ...


class RabbitMQEventBus:
    """Event bus backed by a durable RabbitMQ topic exchange.

    The routing key is the entry's detail type.
    """

    def __init__(self, settings: Settings):
        self._settings = settings
        self._connection: LazyCell[AbstractRobustConnection] = LazyCell(self._connect, dispose=_close)
        self._channel: LazyCell[AbstractChannel] = LazyCell(self._open_channel, dispose=_close)
        self._exchange: LazyCell[AbstractExchange] = LazyCell(self._declare_exchange)

    async def _connect(self) -> AbstractRobustConnection:
        connection = await aio_pika.connect_robust(self._settings.rabbitmq_url, reconnect_interval=5)
        logger.info("Event bus connected")
        return connection

    async def _open_channel(self) -> AbstractChannel:
        connection = await self._connection.get()
        return await connection.channel()

    async def _declare_exchange(self) -> AbstractExchange:
        # Declaring twice on the same channel is idempotent
        channel = await self._channel.get()
        return await channel.declare_exchange(
            self._settings.event_exchange,
            aio_pika.ExchangeType.TOPIC,
            durable=True,
        )

    async def put_events(self, entries: list[EventEntry]) -> PutEventsResponse:
        exchange = await self._exchange.get()
        results = []
        failed = 0

        for entry in entries:
            event_id = str(uuid.uuid4())
            message = aio_pika.Message(
                body=entry.detail.encode(),
                content_type="application/json",
                message_id=event_id,
                delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
                headers={"source": entry.source, "detail_type": entry.detail_type},
            )
            try:
                await exchange.publish(message, routing_key=entry.detail_type)
            except Exception as e:
                failed += 1
                results.append(PutEventsResultEntry(error_code=type(e).__name__, error_message=str(e)))
                continue
            results.append(PutEventsResultEntry(event_id=event_id))

        return PutEventsResponse(failed_entry_count=failed, entries=results)

    async def close(self) -> None:
        self._exchange.reset()
        self._channel.reset()
        connection = self._connection.reset()
        if connection is not None:
            await connection.close()
            logger.info("Event bus disconnected")


async def _close(resource: Any) -> None:
    await resource.close()


def determine_event_type(execution: TestExecution) -> EventType:
    """Errors are critical, failures are failures, anything else is a completion."""
    if execution.status == ExecutionStatus.ERROR or execution.result == ExecutionResult.ERROR:
        return EventType.CRITICAL_ALERT
    if execution.result == ExecutionResult.FAIL:
        return EventType.TEST_FAILURE
    return EventType.TEST_COMPLETION


def build_completion_event(execution: TestExecution) -> NotificationEvent:
    return NotificationEvent(
        event_type=determine_event_type(execution),
        event_id=execution.execution_id,
        timestamp=utcnow(),
        payload=EventPayload(
            project_id=execution.project_id,
            triggered_by=execution.metadata.triggered_by,
            execution_id=execution.execution_id,
            test_case_id=execution.test_case_id,
            test_suite_id=execution.test_suite_id,
            suite_execution_id=execution.suite_execution_id,
            status=execution.status.value,
            result=execution.result.value if execution.result else None,
            duration=execution.duration,
            error_message=execution.error_message,
            screenshots=execution.screenshots,
        ),
    )


class EventPublisher:
    """Publishes notification events; never raises."""

    def __init__(self, bus: EventBus, settings: Settings):
        self._bus = bus
        self._source = settings.event_source
        self._detail_type = settings.event_detail_type

    async def publish_test_completion_event(self, execution: TestExecution) -> str | None:
        """Publish the completion event for a finished execution.

        Returns:
            Bus event ID, or None if publishing failed
        """
        try:
            event = build_completion_event(execution)
        except Exception as e:
            logger.error("Error building completion event", execution_id=execution.execution_id, error=str(e))
            return None
        return await self.publish_event(event)

    async def publish_event(self, detail: NotificationEvent | Mapping[str, Any]) -> str | None:
        """Put a single event on the bus.

        Returns:
            Bus event ID, or None if the bus rejected the entry or errored
        """
        if isinstance(detail, BaseModel):
            data = detail.model_dump(mode="json")
        else:
            data = dict(detail)
        event_type = str(data.get("event_type", "unknown"))

        try:
            response = await self._bus.put_events(
                [
                    EventEntry(
                        source=self._source,
                        detail_type=self._detail_type,
                        detail=json.dumps(data, default=str),
                    )
                ]
            )
        except Exception as e:
            EVENTS_PUBLISHED.labels(event_type=event_type, status="error").inc()
            logger.error("Error publishing event", event_type=event_type, error=str(e))
            return None

        if response.failed_entry_count > 0:
            EVENTS_PUBLISHED.labels(event_type=event_type, status="failed").inc()
            logger.error(
                "Failed to publish event",
                event_type=event_type,
                failed_entries=[entry.model_dump(exclude_none=True) for entry in response.entries],
            )
            return None

        event_id = response.entries[0].event_id if response.entries else None
        EVENTS_PUBLISHED.labels(event_type=event_type, status="published").inc()
        logger.info("Event published", event_id=event_id, event_type=event_type)
        return event_id
