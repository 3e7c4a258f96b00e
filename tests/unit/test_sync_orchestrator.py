"""
Unit tests for the sync orchestrator.
"""
import pytest

from internal.domain.documents import EntityType
from internal.domain.errors import (
    BatchWriteError,
    CatalogQueryError,
    CompensationError,
    DomainValidationError,
)
from internal.usecase.sync_orchestrator import SyncOrchestrator, chunked
from tests.fakes import FakeCatalog, FakeIndexGateway, make_product


def test_chunked_deduplicates_in_order():
    assert chunked(["a", "b", "a", "", "c"], 2) == [["a", "b"], ["c"]]
    assert chunked([], 5) == []


def test_page_size_must_be_positive(gateway):
    with pytest.raises(DomainValidationError):
        SyncOrchestrator(gateway, targets=[], page_size=0)


class TestSyncAll:
    """Tests for full sync."""

    @pytest.mark.asyncio
    async def test_pages_until_short_page(self, services, catalog, gateway):
        catalog.products = {f"p{i:03d}": make_product(f"p{i:03d}") for i in range(125)}

        result = await services.orchestrator.sync_all(EntityType.PRODUCT)

        assert [(offset, limit) for _, offset, limit in catalog.product_fetches] == [
            (0, 50),
            (50, 50),
            (100, 50),
        ]
        upserted = [i for _, ids in gateway.upserts for i in ids]
        assert len(upserted) == 125
        assert len(set(upserted)) == 125
        assert result.indexed == 125
        assert result.created == 125
        assert result.batches == 3

    @pytest.mark.asyncio
    async def test_exact_multiple_needs_one_empty_page(self, services, catalog):
        catalog.products = {f"p{i}": make_product(f"p{i}") for i in range(100)}

        await services.orchestrator.sync_all(EntityType.PRODUCT)

        assert len(catalog.product_fetches) == 3

    @pytest.mark.asyncio
    async def test_repeated_sync_is_idempotent(self, services, gateway):
        await services.orchestrator.sync_all(EntityType.PRODUCT)
        await services.orchestrator.sync_all(EntityType.CATEGORY)
        first = {t: dict(docs) for t, docs in gateway.documents.items()}

        second_result = await services.orchestrator.sync_all(EntityType.PRODUCT)
        await services.orchestrator.sync_all(EntityType.CATEGORY)

        assert gateway.documents == first
        assert second_result.updated == 1
        assert second_result.created == 0

    @pytest.mark.asyncio
    async def test_category_documents(self, services, gateway):
        await services.orchestrator.sync_all(EntityType.CATEGORY)

        docs = gateway.documents[EntityType.CATEGORY]
        assert set(docs) == {"pcat_mb", "pcat_motor", "pcat_dicht", "pcat_zubehoer"}
        assert docs["pcat_dicht"]["hierarchy_path"] == "Mercedes Benz > Motor > Dichtungen"
        assert docs["pcat_motor"]["category_children"] == ["Dichtungen"]
        assert docs["pcat_mb"]["has_public_products"] is True
        assert docs["pcat_zubehoer"]["has_public_products"] is False

    @pytest.mark.asyncio
    async def test_product_document_carries_resolved_fields(self, services, gateway):
        await services.orchestrator.sync_all(EntityType.PRODUCT)

        doc = gateway.documents[EntityType.PRODUCT]["prod_1"]
        assert set(doc["category_ids"]) == {"pcat_mb", "pcat_motor", "pcat_dicht"}
        assert doc["is_available"] is True
        assert doc["total_inventory"] == 3

    @pytest.mark.asyncio
    async def test_fetch_failure_propagates(self, services, catalog):
        catalog.failing.add("list_products")

        with pytest.raises(CatalogQueryError):
            await services.orchestrator.sync_all(EntityType.PRODUCT)


class TestBatchTolerance:
    """Tests for per-entity failures inside a batch."""

    @pytest.mark.asyncio
    async def test_bad_entity_is_skipped(self, services, catalog, gateway):
        catalog.products["broken"] = make_product("")

        result = await services.orchestrator.sync_all(EntityType.PRODUCT)

        assert result.skipped == 1
        assert set(gateway.documents[EntityType.PRODUCT]) == {"prod_1"}

    @pytest.mark.asyncio
    async def test_availability_failure_reports_unavailable(self, services, catalog, gateway):
        catalog.failing.add("get_variant_availability")

        await services.orchestrator.sync_all(EntityType.PRODUCT)

        doc = gateway.documents[EntityType.PRODUCT]["prod_1"]
        assert doc["is_available"] is False
        assert doc["total_inventory"] == 0

    @pytest.mark.asyncio
    async def test_channel_lookup_failure_keeps_categories_visible(self, services, catalog, gateway):
        catalog.failing.add("list_sales_channels")

        await services.orchestrator.sync_all(EntityType.CATEGORY)

        docs = gateway.documents[EntityType.CATEGORY]
        assert set(docs) == {"pcat_mb", "pcat_motor", "pcat_dicht", "pcat_zubehoer"}
        assert all(doc["has_public_products"] is True for doc in docs.values())

    @pytest.mark.asyncio
    async def test_ancestor_failure_uses_direct_category(self, services, catalog, gateway):
        catalog.failing.add("get_categories")

        await services.orchestrator.sync_all(EntityType.PRODUCT)

        doc = gateway.documents[EntityType.PRODUCT]["prod_1"]
        assert doc["category_ids"] == ["pcat_dicht"]


class TestCompensation:
    """Tests for rollback of failed writes."""

    @pytest.fixture
    def seeded(self, category_tree):
        catalog = FakeCatalog(
            categories=category_tree,
            products=[make_product(i, f"New {i}") for i in ("prod_a", "prod_b", "prod_c")],
        )
        gateway = FakeIndexGateway()
        gateway.documents[EntityType.PRODUCT] = {
            "prod_a": {"id": "prod_a", "title": "Old a"},
            "prod_b": {"id": "prod_b", "title": "Old b"},
        }
        return catalog, gateway

    @pytest.mark.asyncio
    async def test_failed_upsert_restores_previous_state(self, settings, seeded):
        from internal.container import build_services

        catalog, gateway = seeded
        before = {k: dict(v) for k, v in gateway.documents[EntityType.PRODUCT].items()}
        services = build_services(settings, catalog, gateway)
        gateway.fail_next("upsert_documents")

        with pytest.raises(BatchWriteError) as exc_info:
            await services.orchestrator.sync_ids(EntityType.PRODUCT, ["prod_a", "prod_b", "prod_c"])

        assert exc_info.value.rolled_back is True
        assert gateway.documents[EntityType.PRODUCT] == before
        assert gateway.deletes == [(EntityType.PRODUCT, ["prod_c"])]

    @pytest.mark.asyncio
    async def test_failed_rollback_raises_compensation_error(self, settings, seeded):
        from internal.container import build_services

        catalog, gateway = seeded
        services = build_services(settings, catalog, gateway)
        gateway.fail_next("upsert_documents", times=2)

        with pytest.raises(CompensationError) as exc_info:
            await services.orchestrator.sync_ids(EntityType.PRODUCT, ["prod_a", "prod_c"])

        assert set(exc_info.value.ids) == {"prod_a", "prod_c"}
        assert exc_info.value.original is not None

    @pytest.mark.asyncio
    async def test_snapshot_failure_writes_nothing(self, settings, seeded):
        from internal.container import build_services

        catalog, gateway = seeded
        services = build_services(settings, catalog, gateway)
        gateway.fail_next("get_documents")

        with pytest.raises(BatchWriteError) as exc_info:
            await services.orchestrator.sync_ids(EntityType.PRODUCT, ["prod_a"])

        assert exc_info.value.rolled_back is False
        assert gateway.upserts == []


class TestSyncIdsAndDelete:
    """Tests for targeted sync and deletion."""

    @pytest.mark.asyncio
    async def test_missing_ids_leave_index_untouched(self, services, gateway):
        gateway.documents[EntityType.PRODUCT]["gone"] = {"id": "gone"}

        result = await services.orchestrator.sync_ids(EntityType.PRODUCT, ["prod_1", "gone"])

        assert result.indexed == 1
        assert "gone" in gateway.documents[EntityType.PRODUCT]

    @pytest.mark.asyncio
    async def test_empty_ids_do_nothing(self, services, catalog):
        result = await services.orchestrator.sync_ids(EntityType.PRODUCT, [])

        assert result.batches == 0
        assert catalog.calls["list_sales_channels"] == 0

    @pytest.mark.asyncio
    async def test_delete_counts_only_present_documents(self, services, gateway):
        gateway.documents[EntityType.PRODUCT]["p1"] = {"id": "p1"}

        result = await services.orchestrator.delete_ids(EntityType.PRODUCT, ["p1", "p2"])

        assert result.deleted == 1
        assert gateway.documents[EntityType.PRODUCT] == {}

    @pytest.mark.asyncio
    async def test_failed_delete_restores_documents(self, services, gateway):
        gateway.documents[EntityType.CATEGORY]["c1"] = {"id": "c1", "name": "C"}
        gateway.fail_next("delete_documents")

        with pytest.raises(BatchWriteError):
            await services.orchestrator.delete_ids(EntityType.CATEGORY, ["c1"])

        assert gateway.documents[EntityType.CATEGORY] == {"c1": {"id": "c1", "name": "C"}}
