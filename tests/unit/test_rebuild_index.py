"""
Unit tests for the rebuild index use case.
"""
import asyncio

import pytest

from internal.domain.documents import EntityType
from internal.domain.errors import DomainValidationError
from internal.usecase.rebuild_index import RebuildIndexUseCase, RebuildMode


class TestRebuildMode:
    """Tests for RebuildMode.parse."""

    def test_accepts_dashes(self):
        assert RebuildMode.parse("clear-and-rebuild") == RebuildMode.CLEAR_AND_REBUILD
        assert RebuildMode.parse("force_sync") == RebuildMode.FORCE_SYNC

    def test_unknown_mode(self):
        with pytest.raises(DomainValidationError):
            RebuildMode.parse("drop-everything")


class TestRebuildRun:
    """Tests for RebuildIndexUseCase.run."""

    @pytest.mark.asyncio
    async def test_sync_configures_then_syncs_categories_before_products(self, services, gateway):
        status = await services.rebuild.run(RebuildMode.SYNC)

        assert status["status"] == "succeeded"
        assert gateway.configured == [EntityType.CATEGORY, EntityType.PRODUCT]
        assert [t for t, _ in gateway.upserts] == [EntityType.CATEGORY, EntityType.PRODUCT]
        assert status["categories"]["indexed"] == 4
        assert status["products"]["indexed"] == 1
        assert status["finished_at"] is not None

    @pytest.mark.asyncio
    async def test_clear_and_rebuild_clears_first(self, services, gateway):
        gateway.documents[EntityType.PRODUCT]["stale"] = {"id": "stale"}

        status = await services.rebuild.run(RebuildMode.CLEAR_AND_REBUILD)

        assert status["status"] == "succeeded"
        assert gateway.cleared == [EntityType.CATEGORY, EntityType.PRODUCT]
        assert set(gateway.documents[EntityType.PRODUCT]) == {"prod_1"}

    @pytest.mark.asyncio
    async def test_reconfigure_leaves_documents_alone(self, services, gateway):
        status = await services.rebuild.reconfigure()

        assert status["status"] == "succeeded"
        assert gateway.configured == [EntityType.CATEGORY, EntityType.PRODUCT]
        assert gateway.upserts == []
        assert gateway.cleared == []

    @pytest.mark.asyncio
    async def test_category_failure_is_partial(self, services, catalog, gateway):
        catalog.failing.add("list_categories")

        status = await services.rebuild.run(RebuildMode.FORCE_SYNC)

        assert status["status"] == "partial"
        assert "category sync failed" in status["error"]
        assert "prod_1" in gateway.documents[EntityType.PRODUCT]

    @pytest.mark.asyncio
    async def test_product_failure_is_failed(self, services, catalog):
        catalog.failing.add("list_products")

        status = await services.rebuild.run(RebuildMode.SYNC)

        assert status["status"] == "failed"
        assert "list_products" in status["error"]

    @pytest.mark.asyncio
    async def test_status_is_persisted(self, services, state):
        status = await services.rebuild.run(RebuildMode.SYNC)

        assert state.statuses["sync"]["run_id"] == status["run_id"]
        stored = await services.rebuild.status()
        assert stored["sync"]["status"] == "succeeded"
        assert stored["reconfigure"] is None


class TestRebuildStart:
    """Tests for background rebuilds."""

    @pytest.mark.asyncio
    async def test_start_runs_in_background_and_releases_lock(self, services, state, gateway):
        ack = await services.rebuild.start(RebuildMode.SYNC)

        assert ack.accepted is True
        assert state.locks == {"sync": ack.run_id}

        await asyncio.gather(*services.rebuild._tasks.values())

        assert state.locks == {}
        assert state.statuses["sync"]["status"] == "succeeded"
        assert "prod_1" in gateway.documents[EntityType.PRODUCT]

    @pytest.mark.asyncio
    async def test_duplicate_request_is_rejected(self, services):
        first = await services.rebuild.start(RebuildMode.SYNC)
        second = await services.rebuild.start(RebuildMode.SYNC)

        assert first.accepted is True
        assert second.accepted is False
        assert "already in progress" in second.message
        await services.rebuild.shutdown()

    @pytest.mark.asyncio
    async def test_lock_held_elsewhere_rejects(self, services, state):
        state.locks["force_sync"] = "other-process"

        ack = await services.rebuild.start(RebuildMode.FORCE_SYNC)

        assert ack.accepted is False
        assert services.rebuild.is_running(RebuildMode.FORCE_SYNC) is False

    @pytest.mark.asyncio
    async def test_different_modes_do_not_block_each_other(self, services):
        sync = await services.rebuild.start(RebuildMode.SYNC)
        force = await services.rebuild.start(RebuildMode.FORCE_SYNC)

        assert sync.accepted and force.accepted
        await services.rebuild.shutdown()

    @pytest.mark.asyncio
    async def test_runs_without_state_store(self, services, gateway):
        rebuild = RebuildIndexUseCase(services.orchestrator, gateway)

        ack = await rebuild.start(RebuildMode.SYNC)
        await asyncio.gather(*rebuild._tasks.values())

        assert ack.accepted is True
        assert (await rebuild.status())["sync"]["status"] == "succeeded"
