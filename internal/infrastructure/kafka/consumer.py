"""
Kafka Consumer for catalog lifecycle events.

Consumes JSON events emitted by the catalog, turns them into typed
events and hands them to the event dispatcher.
"""
import json
from typing import Any, Optional

from aiokafka import AIOKafkaConsumer
from aiokafka.errors import KafkaError

from internal.domain.errors import DomainValidationError
from internal.domain.events import parse_event
from internal.infrastructure.metrics import EVENTS_CONSUMED_TOTAL
from internal.usecase.event_dispatcher import EventDispatcher
from pkg.logger.logger import get_logger


logger = get_logger(__name__)


def _deserialize(value: bytes) -> Optional[dict]:
    try:
        decoded = json.loads(value.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        logger.error("Failed to decode event payload", error=str(e))
        return None
    return decoded if isinstance(decoded, dict) else None


class CatalogEventConsumer:
    """
    Kafka consumer for catalog lifecycle events.

    Offsets are committed after every message. Handler failures are logged
    by the dispatcher, so a message is never redelivered because the
    index could not be updated; reconciliation catches up instead.
    """

    def __init__(
        self,
        bootstrap_servers: str,
        group_id: str,
        topics: list[str],
        dispatcher: EventDispatcher,
        client_id: str = "catalog-search-sync",
    ) -> None:
        """
        Initialize the Kafka consumer.

        Args:
            bootstrap_servers: Comma-separated list of Kafka brokers.
            group_id: Consumer group identifier.
            topics: List of topics to subscribe to.
            dispatcher: Dispatcher receiving typed events.
            client_id: Client identifier for the consumer.
        """
        self._bootstrap_servers = bootstrap_servers
        self._group_id = group_id
        self._topics = topics
        self._dispatcher = dispatcher
        self._client_id = client_id
        self._consumer: Optional[AIOKafkaConsumer] = None
        self._running = False

    async def start(self) -> None:
        """Start the Kafka consumer."""
        self._consumer = AIOKafkaConsumer(
            *self._topics,
            bootstrap_servers=self._bootstrap_servers,
            group_id=self._group_id,
            client_id=self._client_id,
            value_deserializer=_deserialize,
            auto_offset_reset="earliest",
            enable_auto_commit=False,
        )
        await self._consumer.start()
        self._running = True
        logger.info(
            "Kafka consumer started",
            topics=self._topics,
            group_id=self._group_id,
        )

    async def stop(self) -> None:
        """Stop the Kafka consumer."""
        self._running = False
        if self._consumer:
            await self._consumer.stop()
            logger.info("Kafka consumer stopped")

    async def consume(self) -> None:
        """
        Start consuming messages.

        This is a blocking method that runs until stop() is called.
        """
        if not self._consumer:
            raise RuntimeError("Consumer not started")

        try:
            async for msg in self._consumer:
                if not self._running:
                    break

                try:
                    await self.process_message(msg)
                except Exception as e:
                    EVENTS_CONSUMED_TOTAL.labels(event="unknown", status="error").inc()
                    logger.error(
                        "Error processing message, skipping",
                        topic=msg.topic,
                        partition=msg.partition,
                        offset=msg.offset,
                        error=str(e),
                    )
                await self._consumer.commit()
        except KafkaError as e:
            logger.error("Kafka consumer error", error=str(e))
            raise

    async def process_message(self, msg: Any) -> None:
        """
        Process a single Kafka message.

        Args:
            msg: Kafka message to process.
        """
        value = msg.value
        if not value:
            EVENTS_CONSUMED_TOTAL.labels(event="unknown", status="invalid").inc()
            logger.warning(
                "Skipping empty or undecodable message",
                topic=msg.topic,
                partition=msg.partition,
                offset=msg.offset,
            )
            return

        name = str(value.get("event_type") or value.get("name") or "unknown")
        data = value.get("data")
        if data is None:
            data = value.get("payload", {})

        logger.debug(
            "Received message",
            topic=msg.topic,
            partition=msg.partition,
            offset=msg.offset,
            event_type=name,
        )

        try:
            event = parse_event(name, data)
        except DomainValidationError as e:
            EVENTS_CONSUMED_TOTAL.labels(event=name, status="invalid").inc()
            logger.error("Invalid event payload", event_type=name, error=e.message)
            return

        if event is None:
            EVENTS_CONSUMED_TOTAL.labels(event=name, status="ignored").inc()
            logger.debug("Ignoring unhandled event type", event_type=name)
            return

        expected = len(self._dispatcher.handlers_for(type(event)))
        completed = await self._dispatcher.dispatch(event)
        if not expected:
            status = "ignored"
        elif completed == expected:
            status = "success"
        else:
            status = "error"
        EVENTS_CONSUMED_TOTAL.labels(event=event.name, status=status).inc()
