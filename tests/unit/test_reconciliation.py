"""
Unit tests for the reconciliation job.
"""
import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from internal.domain.documents import EntityType
from internal.usecase.reconciliation import WATERMARK_JOB, ReconciliationJob
from tests.fakes import make_product


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def job(services, catalog, state):
    return ReconciliationJob(
        services.orchestrator,
        catalog,
        state=state,
        interval_seconds=1,
        window_seconds=600,
        chunk_size=20,
        clock=lambda: NOW,
    )


class TestReconciliationJob:
    """Tests for ReconciliationJob.run_once."""

    @pytest.mark.asyncio
    async def test_idle_run_advances_watermark(self, job, catalog, state):
        report = await job.run_once()

        assert report.status == "idle"
        assert catalog.updated_since_calls == [NOW - timedelta(seconds=600)]
        assert state.watermarks[WATERMARK_JOB] == NOW

    @pytest.mark.asyncio
    async def test_changed_products_synced_in_chunks(self, job, catalog, gateway):
        for i in range(45):
            catalog.products[f"p{i:02d}"] = make_product(f"p{i:02d}")
        catalog.updated_ids = [f"p{i:02d}" for i in range(45)]

        report = await job.run_once()

        product_upserts = [ids for t, ids in gateway.upserts if t == EntityType.PRODUCT]
        assert [len(ids) for ids in product_upserts] == [20, 20, 5]
        assert report.products_found == 45
        assert report.products_synced == 45
        assert report.status == "succeeded"

    @pytest.mark.asyncio
    async def test_categories_resynced_after_products(self, job, catalog, gateway):
        catalog.updated_ids = ["prod_1"]

        report = await job.run_once()

        assert gateway.upserts[0][0] == EntityType.PRODUCT
        assert gateway.upserts[-1][0] == EntityType.CATEGORY
        assert report.categories_synced == 4

    @pytest.mark.asyncio
    async def test_older_watermark_widens_window(self, job, catalog, state):
        last_good = NOW - timedelta(hours=6)
        state.watermarks[WATERMARK_JOB] = last_good

        report = await job.run_once()

        assert report.window_start == last_good
        assert catalog.updated_since_calls == [last_good]

    @pytest.mark.asyncio
    async def test_failed_chunk_keeps_watermark(self, job, catalog, gateway, state):
        previous = NOW - timedelta(minutes=5)
        state.watermarks[WATERMARK_JOB] = previous
        catalog.updated_ids = ["prod_1"]
        gateway.fail_next("upsert_documents")

        report = await job.run_once()

        assert report.status == "partial"
        assert report.failed_chunks == 1
        assert state.watermarks[WATERMARK_JOB] == previous

    @pytest.mark.asyncio
    async def test_query_failure_never_raises(self, job, catalog, state):
        catalog.failing.add("list_product_ids_updated_since")

        report = await job.run_once()

        assert report.status == "failed"
        assert "list_product_ids_updated_since" in report.error
        assert WATERMARK_JOB not in state.watermarks

    @pytest.mark.asyncio
    async def test_runs_without_state_store(self, services, catalog):
        job = ReconciliationJob(services.orchestrator, catalog, clock=lambda: NOW)

        report = await job.run_once()

        assert report.status == "idle"

    @pytest.mark.asyncio
    async def test_run_forever_stops_on_event(self, job, catalog):
        stop_event = asyncio.Event()

        task = asyncio.create_task(job.run_forever(stop_event))
        await asyncio.sleep(0.05)
        stop_event.set()
        await asyncio.wait_for(task, timeout=2)

        assert len(catalog.updated_since_calls) >= 1
