"""RabbitMQ message consumer."""

import json
from typing import Any, Callable, Coroutine

import aio_pika
from aio_pika import IncomingMessage
from aio_pika.abc import AbstractRobustConnection
from pydantic import ValidationError

from execalert.core.logging import get_logger
from execalert.observability.tracing import TraceContext, trace_id_from_headers

logger = get_logger(__name__)

# Receives the decoded JSON body of each message
MessageHandler = Callable[[dict[str, Any]], Coroutine[Any, Any, None]]


class RabbitMQConsumer:
    """Consumes JSON messages from one durable queue.

    When ``exchange`` is given the queue is bound to that topic exchange with
    ``routing_key`` before consuming.
    """

    def __init__(
        self,
        rabbitmq_url: str,
        queue_name: str,
        handler: MessageHandler,
        exchange: str | None = None,
        routing_key: str = "#",
        prefetch_count: int = 10,
    ):
        """Initialize consumer.

        Args:
            rabbitmq_url: Broker connection URL
            queue_name: Queue to consume
            handler: Async function handling each decoded message body
            exchange: Topic exchange to bind the queue to
            routing_key: Binding key used with ``exchange``
            prefetch_count: Unacknowledged message limit
        """
        self._url = rabbitmq_url
        self._queue_name = queue_name
        self._handler = handler
        self._exchange = exchange
        self._routing_key = routing_key
        self._prefetch_count = prefetch_count
        self._connection: AbstractRobustConnection | None = None
        self._should_stop = False

    async def connect(self) -> None:
        """Connect to RabbitMQ."""
        self._connection = await aio_pika.connect_robust(self._url, reconnect_interval=5)
        logger.info("Connected to RabbitMQ", queue=self._queue_name)

    async def disconnect(self) -> None:
        """Disconnect from RabbitMQ."""
        if self._connection:
            await self._connection.close()
            self._connection = None
            logger.info("Disconnected from RabbitMQ", queue=self._queue_name)

    async def start_consuming(self) -> None:
        """Start consuming messages from queue."""
        if not self._connection:
            await self.connect()

        channel = await self._connection.channel()
        await channel.set_qos(prefetch_count=self._prefetch_count)

        queue = await channel.declare_queue(self._queue_name, durable=True)
        if self._exchange:
            exchange = await channel.declare_exchange(
                self._exchange,
                aio_pika.ExchangeType.TOPIC,
                durable=True,
            )
            await queue.bind(exchange, routing_key=self._routing_key)

        logger.info("Starting message consumption", queue=self._queue_name)

        async with queue.iterator() as queue_iter:
            async for message in queue_iter:
                if self._should_stop:
                    break
                await self.process_message(message)

    async def process_message(self, message: IncomingMessage) -> None:
        """Decode and handle a single message.

        The message is acknowledged whether or not handling succeeds.
        """
        async with message.process():
            with TraceContext(trace_id_from_headers(message.headers, message.correlation_id)):
                try:
                    body = json.loads(message.body.decode())
                    if not isinstance(body, dict):
                        logger.warning("Message body is not an object", message_id=message.message_id)
                        return
                    await self._handler(body)

                except json.JSONDecodeError as e:
                    logger.error("Invalid JSON message", message_id=message.message_id, error=str(e))
                except ValidationError as e:
                    logger.error("Invalid message payload", message_id=message.message_id, error=str(e))
                except Exception as e:
                    logger.error("Error processing message", error=str(e), exc_info=True)

    def stop(self) -> None:
        """Signal consumer to stop."""
        self._should_stop = True
        logger.info("Consumer stop requested", queue=self._queue_name)
