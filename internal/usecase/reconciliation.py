"""
Reconciliation Job.

Periodically re-syncs products mutated within a trailing window, catching
changes that never produced an event, and then re-syncs every category
because category visibility depends on descendant product state.
"""
import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from internal.domain.documents import EntityType
from internal.infrastructure.metrics import RECONCILIATION_PRODUCTS, RECONCILIATION_RUNS_TOTAL
from internal.usecase.protocols import CatalogRepositoryProtocol, SyncStateProtocol
from internal.usecase.sync_orchestrator import SyncOrchestrator, chunked
from pkg.logger.logger import get_logger, set_sync_run_id


logger = get_logger(__name__)


WATERMARK_JOB = "reconciliation"

DEFAULT_INTERVAL_SECONDS = 300
DEFAULT_WINDOW_SECONDS = 600
DEFAULT_CHUNK_SIZE = 20


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ReconciliationReport:
    """Outcome of one reconciliation run."""

    run_id: str
    window_start: datetime
    started_at: datetime
    products_found: int = 0
    products_synced: int = 0
    failed_chunks: int = 0
    categories_synced: int = 0
    category_sync_failed: bool = False
    error: Optional[str] = None
    errors: list[str] = field(default_factory=list)

    @property
    def status(self) -> str:
        """succeeded, partial, failed or idle."""
        if self.error:
            return "failed"
        if self.failed_chunks or self.category_sync_failed:
            return "partial"
        if not self.products_found:
            return "idle"
        return "succeeded"

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "run_id": self.run_id,
            "status": self.status,
            "window_start": self.window_start.isoformat(),
            "started_at": self.started_at.isoformat(),
            "products_found": self.products_found,
            "products_synced": self.products_synced,
            "failed_chunks": self.failed_chunks,
            "categories_synced": self.categories_synced,
            "error": self.error,
        }


class ReconciliationJob:
    """
    Trailing-window poll over recently mutated products.

    The window starts at the older of ``now - window`` and the start of
    the last fully successful run, so a restart after a long outage
    still covers everything since the last good run. ``run_once`` never
    raises.
    """

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        catalog: CatalogRepositoryProtocol,
        state: Optional[SyncStateProtocol] = None,
        interval_seconds: int = DEFAULT_INTERVAL_SECONDS,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """
        Initialize the job.

        Args:
            orchestrator: Sync orchestrator.
            catalog: Catalog repository for the mutation query.
            state: Watermark store; without one only the trailing window
                is used.
            interval_seconds: Pause between runs.
            window_seconds: Trailing window length.
            chunk_size: Products per orchestrator call.
            clock: Returns the current UTC time.
        """
        self._orchestrator = orchestrator
        self._catalog = catalog
        self._state = state
        self._interval = interval_seconds
        self._window = timedelta(seconds=window_seconds)
        self._chunk_size = chunk_size
        self._clock = clock

    async def _window_start(self, now: datetime) -> datetime:
        start = now - self._window
        if self._state is None:
            return start
        try:
            watermark = await self._state.get_watermark(WATERMARK_JOB)
        except Exception as e:
            logger.warning("Failed to read reconciliation watermark", error=str(e))
            return start
        if watermark is not None and watermark < start:
            return watermark
        return start

    async def run_once(self) -> ReconciliationReport:
        """
        Run one reconciliation pass.

        Returns:
            ReconciliationReport of the pass.
        """
        now = self._clock()
        run_id = uuid.uuid4().hex
        set_sync_run_id(run_id)
        report = ReconciliationReport(
            run_id=run_id,
            window_start=await self._window_start(now),
            started_at=now,
        )

        try:
            await self._reconcile(report)
        except Exception as e:
            report.error = str(e)
            logger.error("Reconciliation run failed", run_id=run_id, error=str(e))
        finally:
            set_sync_run_id(None)

        RECONCILIATION_RUNS_TOTAL.labels(status=report.status).inc()
        if report.status in ("succeeded", "idle") and self._state is not None:
            try:
                await self._state.set_watermark(WATERMARK_JOB, now)
            except Exception as e:
                logger.warning("Failed to store reconciliation watermark", error=str(e))

        logger.info("Reconciliation run finished", **report.to_dict())
        return report

    async def _reconcile(self, report: ReconciliationReport) -> None:
        product_ids = list(
            dict.fromkeys(await self._catalog.list_product_ids_updated_since(report.window_start))
        )
        report.products_found = len(product_ids)
        RECONCILIATION_PRODUCTS.observe(len(product_ids))

        if not product_ids:
            logger.debug("No products changed since window start", window_start=report.window_start.isoformat())
            return

        logger.info(
            "Reconciling changed products",
            products=len(product_ids),
            window_start=report.window_start.isoformat(),
        )

        for chunk in chunked(product_ids, self._chunk_size):
            try:
                result = await self._orchestrator.sync_ids(EntityType.PRODUCT, chunk)
                report.products_synced += result.indexed
            except Exception as e:
                report.failed_chunks += 1
                report.errors.append(str(e))
                logger.error("Reconciliation chunk failed", ids=chunk, error=str(e))

        try:
            categories = await self._orchestrator.sync_all(EntityType.CATEGORY)
            report.categories_synced = categories.indexed
        except Exception as e:
            report.category_sync_failed = True
            report.errors.append(str(e))
            logger.error("Category re-sync after reconciliation failed", error=str(e))

    async def run_forever(self, stop_event: asyncio.Event) -> None:
        """
        Run passes on a fixed interval until ``stop_event`` is set.

        Args:
            stop_event: Event that ends the loop.
        """
        logger.info("Reconciliation loop started", interval_seconds=self._interval)
        while not stop_event.is_set():
            await self.run_once()
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Reconciliation loop stopped")
