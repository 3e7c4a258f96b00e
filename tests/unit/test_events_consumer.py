"""
Unit tests for catalog event parsing and the Kafka consumer.
"""
import json

import pytest
from unittest.mock import AsyncMock, MagicMock

from prometheus_client import REGISTRY

from internal.domain.errors import DomainValidationError
from internal.domain.events import (
    CategoryChanged,
    FullSyncRequested,
    ProductChanged,
    ReservationStatusChanged,
    VariantChanged,
    parse_event,
)
from internal.infrastructure.kafka.consumer import CatalogEventConsumer, _deserialize
from internal.usecase.event_dispatcher import EventDispatcher


def consumed(event: str, status: str) -> float:
    value = REGISTRY.get_sample_value(
        "search_sync_events_consumed_total", {"event": event, "status": status}
    )
    return value or 0.0


class FakeKafkaConsumer:
    """Async-iterable stand-in for AIOKafkaConsumer."""

    def __init__(self, messages):
        self._messages = messages
        self.commit = AsyncMock()

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for msg in self._messages:
            yield msg


class TestParseEvent:
    """Tests for parse_event."""

    def test_product_events(self):
        assert parse_event("product.created", {"id": "prod_1"}) == ProductChanged(
            product_id="prod_1", name="product.created"
        )

    def test_variant_event_keeps_product_id(self):
        event = parse_event("product_variant.deleted", {"id": "var_1", "product_id": "prod_1"})

        assert isinstance(event, VariantChanged)
        assert event.product_id == "prod_1"

    def test_category_deleted_flag(self):
        event = parse_event("product_category.deleted", {"id": "pcat_1"})

        assert isinstance(event, CategoryChanged)
        assert event.deleted is True
        assert event.parent_category_id is None

    def test_category_keeps_parent_id(self):
        event = parse_event("product_category.deleted", {"id": "pcat_1", "parent_category_id": "pcat_root"})

        assert event.parent_category_id == "pcat_root"

    def test_offer_status(self):
        event = parse_event("offer.status_changed", {"offer_id": "off_1", "new_status": "draft"})

        assert isinstance(event, ReservationStatusChanged)
        assert event.affects_inventory is False

    def test_sync_alias(self):
        assert isinstance(parse_event("meilisearch.sync", None), FullSyncRequested)
        assert isinstance(parse_event("search_index.sync", {}), FullSyncRequested)

    def test_unknown_event_is_none(self):
        assert parse_event("customer.created", {"id": "cus_1"}) is None

    def test_missing_id_raises(self):
        with pytest.raises(DomainValidationError):
            parse_event("product.updated", {})

    def test_non_object_payload_raises(self):
        with pytest.raises(DomainValidationError):
            parse_event("product.updated", ["prod_1"])


def test_deserialize():
    assert _deserialize(json.dumps({"name": "x"}).encode()) == {"name": "x"}
    assert _deserialize(b"not json") is None
    assert _deserialize(b"[1, 2]") is None


class TestCatalogEventConsumer:
    """Tests for CatalogEventConsumer.process_message."""

    @pytest.fixture
    def handler(self):
        return AsyncMock()

    @pytest.fixture
    def consumer(self, handler):
        dispatcher = EventDispatcher()
        dispatcher.register(ProductChanged, handler)
        return CatalogEventConsumer(
            bootstrap_servers="localhost:9092",
            group_id="test",
            topics=["catalog.events"],
            dispatcher=dispatcher,
        )

    @staticmethod
    def message(value):
        msg = MagicMock()
        msg.value = value
        msg.topic = "catalog.events"
        msg.partition = 0
        msg.offset = 42
        return msg

    @pytest.mark.asyncio
    async def test_dispatches_typed_event(self, consumer, handler):
        before = consumed("product.updated", "success")

        await consumer.process_message(
            self.message({"event_type": "product.updated", "data": {"id": "prod_1"}})
        )

        handler.assert_awaited_once_with(ProductChanged(product_id="prod_1", name="product.updated"))
        assert consumed("product.updated", "success") == before + 1

    @pytest.mark.asyncio
    async def test_accepts_name_and_payload_keys(self, consumer, handler):
        await consumer.process_message(
            self.message({"name": "product.created", "payload": {"id": "prod_2"}})
        )

        handler.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_handler_failure_counts_as_error(self, consumer, handler):
        handler.side_effect = RuntimeError("index down")
        before = consumed("product.updated", "error")

        await consumer.process_message(
            self.message({"event_type": "product.updated", "data": {"id": "prod_1"}})
        )

        assert consumed("product.updated", "error") == before + 1

    @pytest.mark.asyncio
    async def test_invalid_payload_is_skipped(self, consumer, handler):
        before = consumed("product.updated", "invalid")

        await consumer.process_message(self.message({"event_type": "product.updated", "data": {}}))

        handler.assert_not_called()
        assert consumed("product.updated", "invalid") == before + 1

    @pytest.mark.asyncio
    async def test_non_object_payload_is_skipped(self, consumer, handler):
        before = consumed("product.updated", "invalid")

        await consumer.process_message(
            self.message({"event_type": "product.updated", "data": ["prod_1"]})
        )

        handler.assert_not_called()
        assert consumed("product.updated", "invalid") == before + 1

    @pytest.mark.asyncio
    async def test_consume_skips_failing_message_and_commits(self, consumer):
        first = self.message({"event_type": "product.updated", "data": {"id": "prod_1"}})
        second = self.message({"event_type": "product.updated", "data": {"id": "prod_2"}})
        kafka = FakeKafkaConsumer([first, second])
        consumer._consumer = kafka
        consumer._running = True
        consumer.process_message = AsyncMock(side_effect=[RuntimeError("boom"), None])
        before = consumed("unknown", "error")

        await consumer.consume()

        assert consumer.process_message.await_count == 2
        assert kafka.commit.await_count == 2
        assert consumed("unknown", "error") == before + 1

    @pytest.mark.asyncio
    async def test_empty_message_is_skipped(self, consumer, handler):
        await consumer.process_message(self.message(None))

        handler.assert_not_called()

    @pytest.mark.asyncio
    async def test_event_without_handler_is_ignored(self, consumer):
        before = consumed("product_category.updated", "ignored")

        await consumer.process_message(
            self.message({"event_type": "product_category.updated", "data": {"id": "pcat_1"}})
        )

        assert consumed("product_category.updated", "ignored") == before + 1

    @pytest.mark.asyncio
    async def test_consume_requires_start(self, consumer):
        with pytest.raises(RuntimeError):
            await consumer.consume()
