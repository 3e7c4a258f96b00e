"""
Unit tests for incremental sync triggers and event dispatching.
"""
import pytest
from unittest.mock import AsyncMock

from internal.domain.catalog import LineItemRef
from internal.domain.documents import EntityType
from internal.domain.errors import SyncError
from internal.domain.events import (
    CategoryChanged,
    CollectionChanged,
    FullSyncRequested,
    OrderChanged,
    ProductChanged,
    ProductDeleted,
    ReservationStatusChanged,
    VariantChanged,
)
from internal.domain.catalog import Collection
from internal.usecase.event_dispatcher import EventDispatcher
from internal.usecase.sync_triggers import IncrementalSyncTriggers
from tests.fakes import make_product


def synced_products(gateway):
    return [i for entity_type, ids in gateway.upserts if entity_type == EntityType.PRODUCT for i in ids]


class TestProductEvents:
    """Tests for product and variant events."""

    @pytest.mark.asyncio
    async def test_product_changed_syncs_product(self, services, gateway):
        completed = await services.dispatcher.dispatch(ProductChanged(product_id="prod_1"))

        assert completed == 1
        assert "prod_1" in gateway.documents[EntityType.PRODUCT]

    @pytest.mark.asyncio
    async def test_product_deleted_removes_document(self, services, gateway):
        gateway.documents[EntityType.PRODUCT]["prod_9"] = {"id": "prod_9"}

        await services.dispatcher.dispatch(ProductDeleted(product_id="prod_9"))

        assert "prod_9" not in gateway.documents[EntityType.PRODUCT]

    @pytest.mark.asyncio
    async def test_variant_without_product_id_is_resolved(self, services, catalog, gateway):
        await services.dispatcher.dispatch(VariantChanged(variant_id="prod_1_v1"))

        assert catalog.calls["get_product_ids_for_variants"] == 1
        assert synced_products(gateway) == ["prod_1"]

    @pytest.mark.asyncio
    async def test_unknown_variant_is_ignored(self, services, gateway):
        completed = await services.dispatcher.dispatch(VariantChanged(variant_id="nope"))

        assert completed == 1
        assert gateway.upserts == []


class TestCategoryEvents:
    """Tests for category events."""

    @pytest.mark.asyncio
    async def test_category_change_syncs_ancestors_and_subtree_products(self, services, gateway):
        await services.dispatcher.dispatch(CategoryChanged(category_id="pcat_motor"))

        assert set(gateway.documents[EntityType.CATEGORY]) == {"pcat_mb", "pcat_motor"}
        assert synced_products(gateway) == ["prod_1"]

    @pytest.mark.asyncio
    async def test_deleted_category_is_removed(self, services, gateway):
        gateway.documents[EntityType.CATEGORY]["pcat_dicht"] = {"id": "pcat_dicht"}

        await services.dispatcher.dispatch(CategoryChanged(category_id="pcat_dicht", deleted=True))

        assert gateway.documents[EntityType.CATEGORY] == {}
        assert synced_products(gateway) == ["prod_1"]

    @pytest.mark.asyncio
    async def test_deleted_category_resyncs_former_parent_chain(self, services, gateway):
        gateway.documents[EntityType.CATEGORY]["pcat_dicht"] = {"id": "pcat_dicht"}

        await services.dispatcher.dispatch(
            CategoryChanged(category_id="pcat_dicht", deleted=True, parent_category_id="pcat_motor")
        )

        assert set(gateway.documents[EntityType.CATEGORY]) == {"pcat_mb", "pcat_motor"}
        assert synced_products(gateway) == ["prod_1"]

    @pytest.mark.asyncio
    async def test_vanished_category_is_removed(self, services, gateway):
        gateway.documents[EntityType.CATEGORY]["pcat_old"] = {"id": "pcat_old"}

        await services.dispatcher.dispatch(CategoryChanged(category_id="pcat_old"))

        assert "pcat_old" not in gateway.documents[EntityType.CATEGORY]


class TestAggregateEvents:
    """Tests for collection, order and reservation events."""

    @pytest.mark.asyncio
    async def test_collection_change_syncs_members(self, services, catalog, gateway):
        sommer = Collection(id="pcol_sommer", title="Sommer")
        catalog.products["prod_2"] = make_product("prod_2", collection=sommer)
        catalog.products["prod_3"] = make_product("prod_3", collection=sommer)

        await services.dispatcher.dispatch(CollectionChanged(collection_id="pcol_sommer"))

        assert sorted(synced_products(gateway)) == ["prod_2", "prod_3"]

    @pytest.mark.asyncio
    async def test_order_line_items_resolve_variants(self, services, catalog, gateway):
        catalog.order_items["order_1"] = [
            LineItemRef(product_id="prod_1"),
            LineItemRef(variant_id="prod_1_v1"),
            LineItemRef(),
        ]

        await services.dispatcher.dispatch(OrderChanged(order_id="order_1"))

        assert synced_products(gateway) == ["prod_1"]

    @pytest.mark.asyncio
    async def test_reservation_status_without_inventory_effect_is_skipped(self, services, catalog):
        await services.dispatcher.dispatch(
            ReservationStatusChanged(offer_id="offer_1", new_status="draft")
        )

        assert catalog.calls["get_offer_line_items"] == 0

    @pytest.mark.asyncio
    async def test_reservation_status_with_inventory_effect_syncs(self, services, catalog, gateway):
        catalog.offer_items["offer_1"] = [LineItemRef(variant_id="prod_1_v1")]

        await services.dispatcher.dispatch(
            ReservationStatusChanged(offer_id="offer_1", new_status="active")
        )

        assert synced_products(gateway) == ["prod_1"]


class TestChunking:
    """Tests for chunked incremental syncs."""

    @pytest.mark.asyncio
    async def test_products_are_synced_in_chunks(self, services, catalog, gateway):
        for i in range(25):
            catalog.products[f"p{i:02d}"] = make_product(f"p{i:02d}")

        result = await services.triggers.sync_products([f"p{i:02d}" for i in range(25)])

        assert result.indexed == 25
        assert [len(ids) for _, ids in gateway.upserts] == [10, 10, 5]

    @pytest.mark.asyncio
    async def test_failing_chunk_does_not_stop_the_rest(self, services, catalog, gateway):
        for i in range(25):
            catalog.products[f"p{i:02d}"] = make_product(f"p{i:02d}")
        gateway.fail_next("upsert_documents")

        with pytest.raises(SyncError):
            await services.triggers.sync_products([f"p{i:02d}" for i in range(25)])

        indexed = set(gateway.documents[EntityType.PRODUCT])
        assert len(indexed) == 15
        assert "p00" not in indexed

    @pytest.mark.asyncio
    async def test_dispatcher_contains_handler_failures(self, services, gateway):
        gateway.fail_next("upsert_documents")

        completed = await services.dispatcher.dispatch(ProductChanged(product_id="prod_1"))

        assert completed == 0


class TestFullSyncRequest:
    """Tests for the full sync request event."""

    @pytest.mark.asyncio
    async def test_full_sync_starter_is_invoked(self, services, catalog):
        starter = AsyncMock()
        triggers = IncrementalSyncTriggers(
            services.orchestrator, catalog, services.hierarchy, full_sync=starter
        )
        dispatcher = EventDispatcher()
        triggers.register(dispatcher)

        await dispatcher.dispatch(FullSyncRequested())

        starter.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_starter_is_a_no_op(self, services, catalog):
        triggers = IncrementalSyncTriggers(services.orchestrator, catalog, services.hierarchy)

        await triggers.on_full_sync_requested(FullSyncRequested())


def test_every_event_type_has_a_handler(services):
    for event_type in (
        ProductChanged,
        ProductDeleted,
        VariantChanged,
        CategoryChanged,
        CollectionChanged,
        OrderChanged,
        ReservationStatusChanged,
        FullSyncRequested,
    ):
        assert len(services.dispatcher.handlers_for(event_type)) == 1
