"""
Unit tests for the Meilisearch index gateway.
"""
import asyncio
import dataclasses

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock

from meilisearch_python_sdk.errors import MeilisearchApiError, MeilisearchCommunicationError

from internal.domain.documents import CategoryDoc, EntityType, ProductDoc
from internal.domain.errors import IndexGatewayError
from internal.infrastructure.meilisearch import MeilisearchIndexGateway
from internal.infrastructure.meilisearch.index_settings import INDEX_SETTINGS
from pkg.resilience import CircuitBreaker, CircuitState


def api_error(status_code: int, code: str) -> MeilisearchApiError:
    response = httpx.Response(
        status_code,
        json={"message": code, "code": code, "type": "invalid_request", "link": ""},
        request=httpx.Request("GET", "http://meili.test"),
    )
    return MeilisearchApiError(code, response)


def task(status="succeeded", error=None):
    return MagicMock(status=status, error=error)


@pytest.fixture
def index():
    index = MagicMock()
    for name in (
        "add_documents",
        "delete_documents",
        "delete_all_documents",
        "update_filterable_attributes",
        "update_searchable_attributes",
        "update_sortable_attributes",
        "update_displayed_attributes",
        "update_ranking_rules",
        "update_faceting",
    ):
        setattr(index, name, AsyncMock(return_value=MagicMock(task_uid=7)))
    index.get_document = AsyncMock(return_value={"id": "prod_1"})
    index.search = AsyncMock(
        return_value=MagicMock(
            hits=[{"id": "prod_1"}],
            facet_distribution={"tags": {"Motor": 1}},
            estimated_total_hits=1,
            processing_time_ms=3,
        )
    )
    index.get_stats = AsyncMock(return_value=MagicMock(number_of_documents=42))
    return index


@pytest.fixture
def client(index):
    client = MagicMock()
    client.index = MagicMock(return_value=index)
    client.wait_for_task = AsyncMock(return_value=task())
    client.get_index = AsyncMock(return_value=index)
    client.create_index = AsyncMock(return_value=index)
    client.health = AsyncMock(return_value=MagicMock(status="available"))
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def breaker():
    return CircuitBreaker(name="test", failure_threshold=2, recovery_timeout=60)


@pytest.fixture
def meili(client, breaker):
    return MeilisearchIndexGateway(
        host="http://meili.test",
        product_index="products",
        category_index="categories",
        request_timeout=1.0,
        task_timeout=1.0,
        circuit_breaker=breaker,
        client=client,
    )


class TestDocuments:
    """Tests for document reads and writes."""

    @pytest.mark.asyncio
    async def test_upsert_waits_for_task(self, meili, client, index):
        await meili.upsert_documents(EntityType.PRODUCT, [{"id": "prod_1"}])

        client.index.assert_called_with("products")
        index.add_documents.assert_awaited_once_with([{"id": "prod_1"}], primary_key="id")
        client.wait_for_task.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_task_is_a_failed_write(self, meili, client):
        client.wait_for_task.return_value = task("failed", {"message": "invalid document"})

        with pytest.raises(IndexGatewayError) as exc_info:
            await meili.upsert_documents(EntityType.CATEGORY, [{"id": "pcat_1"}])

        assert "invalid document" in exc_info.value.reason
        assert exc_info.value.index == "categories"

    @pytest.mark.asyncio
    async def test_empty_writes_skip_the_engine(self, meili, index):
        await meili.upsert_documents(EntityType.PRODUCT, [])
        await meili.delete_documents(EntityType.PRODUCT, [])

        index.add_documents.assert_not_called()
        index.delete_documents.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_document_is_none(self, meili, index):
        index.get_document.side_effect = api_error(404, "document_not_found")

        assert await meili.get_document(EntityType.PRODUCT, "nope") is None

    @pytest.mark.asyncio
    async def test_get_documents_keeps_existing(self, meili, index):
        async def get_document(document_id):
            if document_id == "gone":
                raise api_error(404, "document_not_found")
            return {"id": document_id}

        index.get_document.side_effect = get_document

        documents = await meili.get_documents(EntityType.PRODUCT, ["a", "gone"])

        assert documents == {"a": {"id": "a"}}

    @pytest.mark.asyncio
    async def test_engine_errors_are_wrapped(self, meili, index):
        index.delete_documents.side_effect = MeilisearchCommunicationError("connection refused")

        with pytest.raises(IndexGatewayError) as exc_info:
            await meili.delete_documents(EntityType.PRODUCT, ["prod_1"])

        assert exc_info.value.operation == "delete_documents"

    @pytest.mark.asyncio
    async def test_slow_call_times_out(self, meili, index):
        async def slow(*args, **kwargs):
            await asyncio.sleep(5)

        index.get_stats.side_effect = slow

        with pytest.raises(IndexGatewayError) as exc_info:
            await meili.count_documents(EntityType.PRODUCT)

        assert "timed out" in exc_info.value.reason


class TestCircuitBreaking:
    """Tests for the breaker around engine calls."""

    @pytest.mark.asyncio
    async def test_circuit_opens_and_rejects(self, meili, index, breaker):
        index.search.side_effect = MeilisearchCommunicationError("down")

        for _ in range(2):
            with pytest.raises(IndexGatewayError):
                await meili.search(EntityType.PRODUCT, "x")

        assert breaker.state == CircuitState.OPEN
        index.search.reset_mock()

        with pytest.raises(IndexGatewayError) as exc_info:
            await meili.search(EntityType.PRODUCT, "x")

        assert "open" in exc_info.value.reason
        index.search.assert_not_called()

    @pytest.mark.asyncio
    async def test_not_found_does_not_trip_breaker(self, meili, index, breaker):
        index.get_document.side_effect = api_error(404, "document_not_found")

        for _ in range(3):
            await meili.get_document(EntityType.PRODUCT, "nope")

        assert breaker.state == CircuitState.CLOSED


class TestSchemaAndQueries:
    """Tests for index configuration and queries."""

    @pytest.mark.asyncio
    async def test_configure_applies_every_setting(self, meili, index, client):
        await meili.configure(EntityType.PRODUCT)

        settings = INDEX_SETTINGS[EntityType.PRODUCT]
        index.update_filterable_attributes.assert_awaited_once_with(settings.filterable_attributes)
        index.update_ranking_rules.assert_awaited_once_with(settings.ranking_rules)
        index.update_faceting.assert_awaited_once()
        assert client.wait_for_task.await_count == 6

    @pytest.mark.asyncio
    async def test_ensure_index_creates_missing(self, meili, client):
        client.get_index.side_effect = api_error(404, "index_not_found")

        await meili.ensure_index(EntityType.CATEGORY)

        client.create_index.assert_awaited_once_with("categories", primary_key="id")

    @pytest.mark.asyncio
    async def test_search_maps_result(self, meili, index):
        result = await meili.search(
            EntityType.PRODUCT, "dichtung", filters=["is_available = true"], limit=5
        )

        assert result.hits == [{"id": "prod_1"}]
        assert result.estimated_total_hits == 1
        assert index.search.await_args.kwargs["filter"] == ["is_available = true"]
        assert index.search.await_args.kwargs["limit"] == 5

    @pytest.mark.asyncio
    async def test_count_documents(self, meili):
        assert await meili.count_documents(EntityType.PRODUCT) == 42

    @pytest.mark.asyncio
    async def test_health(self, meili, client):
        assert await meili.health() is True

        client.health.side_effect = MeilisearchCommunicationError("down")

        assert await meili.health() is False


@pytest.mark.parametrize(
    "entity_type, document_class",
    [(EntityType.PRODUCT, ProductDoc), (EntityType.CATEGORY, CategoryDoc)],
)
def test_every_document_field_is_displayed(entity_type, document_class):
    # rollback snapshots are read back through the document routes
    displayed = set(INDEX_SETTINGS[entity_type].displayed_attributes)

    assert {f.name for f in dataclasses.fields(document_class)} <= displayed
