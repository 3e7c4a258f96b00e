"""
Rebuild Index Use Case.

Operator-driven rebuilds of the search index. Every mode except
``reconfigure`` runs in the background: the caller gets an
acknowledgement right away and the final status is stored for later
inspection.
"""
import asyncio
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from internal.domain.documents import EntityType
from internal.domain.errors import DomainValidationError
from internal.infrastructure.metrics import REBUILD_IN_PROGRESS, REBUILD_RUNS_TOTAL
from internal.usecase.protocols import IndexGatewayProtocol, SyncStateProtocol
from internal.usecase.sync_orchestrator import SyncOrchestrator
from pkg.logger.logger import get_logger, set_sync_run_id


logger = get_logger(__name__)


DEFAULT_LOCK_TTL_SECONDS = 3600


class RebuildMode(str, Enum):
    """Rebuild modes."""

    SYNC = "sync"
    FORCE_SYNC = "force_sync"
    CLEAR_AND_REBUILD = "clear_and_rebuild"
    RECONFIGURE = "reconfigure"

    @classmethod
    def parse(cls, value: str) -> "RebuildMode":
        """
        Parse a mode name, accepting dashes in place of underscores.

        Raises:
            DomainValidationError: If the mode is unknown.
        """
        try:
            return cls(value.replace("-", "_"))
        except ValueError:
            raise DomainValidationError(f"Unknown rebuild mode: {value}")


@dataclass
class RebuildAcknowledgement:
    """Immediate answer to a rebuild request."""

    run_id: str
    mode: RebuildMode
    accepted: bool
    requested_at: datetime
    message: str = ""

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "run_id": self.run_id,
            "mode": self.mode.value,
            "accepted": self.accepted,
            "requested_at": self.requested_at.isoformat(),
            "message": self.message,
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RebuildIndexUseCase:
    """
    Use case for rebuilding and reconfiguring the search indexes.

    Categories are always synced before products, and a category failure
    is recorded without stopping the product sync. A per-mode lock keeps
    identical runs from stacking; a request while a run of the same mode
    is in progress is acknowledged with ``accepted=False``.
    """

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        gateway: IndexGatewayProtocol,
        state: Optional[SyncStateProtocol] = None,
        lock_ttl_seconds: int = DEFAULT_LOCK_TTL_SECONDS,
    ) -> None:
        """
        Initialize the use case.

        Args:
            orchestrator: Sync orchestrator.
            gateway: Search index gateway.
            state: Lock and status store.
            lock_ttl_seconds: Expiry of a run lock.
        """
        self._orchestrator = orchestrator
        self._gateway = gateway
        self._state = state
        self._lock_ttl = lock_ttl_seconds
        self._tasks: dict[RebuildMode, asyncio.Task] = {}
        self._statuses: dict[RebuildMode, dict] = {}

    async def reconfigure(self) -> dict:
        """
        Reapply index settings to both indexes without touching documents.

        Returns:
            Final status of the run.
        """
        return await self.run(RebuildMode.RECONFIGURE)

    async def start(self, mode: RebuildMode) -> RebuildAcknowledgement:
        """
        Start a rebuild in the background.

        Args:
            mode: Rebuild mode.

        Returns:
            RebuildAcknowledgement; ``accepted`` is False when a run of
            the same mode is already in progress.
        """
        mode = RebuildMode(mode)
        run_id = uuid.uuid4().hex
        requested_at = _utcnow()

        running = self._tasks.get(mode)
        if running is not None and not running.done():
            return self._reject(run_id, mode, requested_at)

        if self._state is not None and not await self._state.acquire_lock(
            mode.value, run_id, self._lock_ttl
        ):
            return self._reject(run_id, mode, requested_at)

        task = asyncio.create_task(self._run_locked(mode, run_id))
        self._tasks[mode] = task

        logger.info("Rebuild accepted", run_id=run_id, mode=mode.value)
        return RebuildAcknowledgement(
            run_id=run_id,
            mode=mode,
            accepted=True,
            requested_at=requested_at,
            message=f"{mode.value} started in the background",
        )

    def _reject(self, run_id: str, mode: RebuildMode, requested_at: datetime) -> RebuildAcknowledgement:
        REBUILD_RUNS_TOTAL.labels(mode=mode.value, status="rejected").inc()
        logger.info("Rebuild already in progress", mode=mode.value)
        return RebuildAcknowledgement(
            run_id=run_id,
            mode=mode,
            accepted=False,
            requested_at=requested_at,
            message=f"{mode.value} is already in progress",
        )

    async def _run_locked(self, mode: RebuildMode, run_id: str) -> None:
        try:
            await self.run(mode, run_id=run_id)
        except Exception as e:
            logger.error("Background rebuild crashed", run_id=run_id, mode=mode.value, error=str(e))
        finally:
            if self._state is not None:
                await self._state.release_lock(mode.value, run_id)

    async def run(self, mode: RebuildMode, run_id: Optional[str] = None) -> dict:
        """
        Run a rebuild in the current task.

        Args:
            mode: Rebuild mode.
            run_id: Run identifier; generated when omitted.

        Returns:
            Final status: run id, mode, status (succeeded, partial or
            failed), timestamps, per-entity counts and error.
        """
        mode = RebuildMode(mode)
        run_id = run_id or uuid.uuid4().hex
        set_sync_run_id(run_id)

        status: dict = {
            "run_id": run_id,
            "mode": mode.value,
            "status": "running",
            "started_at": _utcnow().isoformat(),
            "finished_at": None,
            "categories": None,
            "products": None,
            "error": None,
        }
        await self._store_status(mode, status)

        REBUILD_IN_PROGRESS.labels(mode=mode.value).inc()
        logger.info("Rebuild started", run_id=run_id, mode=mode.value)

        try:
            await self._execute(mode, status)
            if status["status"] == "running":
                status["status"] = "succeeded"
        except Exception as e:
            status["status"] = "failed"
            status["error"] = str(e)
            logger.error("Rebuild failed", run_id=run_id, mode=mode.value, error=str(e))
        finally:
            REBUILD_IN_PROGRESS.labels(mode=mode.value).dec()
            if status["status"] == "running":
                status["status"] = "cancelled"
            status["finished_at"] = _utcnow().isoformat()
            REBUILD_RUNS_TOTAL.labels(mode=mode.value, status=status["status"]).inc()
            await self._store_status(mode, status)
            set_sync_run_id(None)

        logger.info("Rebuild finished", **status)
        return status

    async def _execute(self, mode: RebuildMode, status: dict) -> None:
        if mode == RebuildMode.CLEAR_AND_REBUILD:
            # categories first, mirroring the build order
            await self._gateway.delete_all_documents(EntityType.CATEGORY)
            await self._gateway.delete_all_documents(EntityType.PRODUCT)
            logger.info("Cleared both indexes", run_id=status["run_id"])

        await self._gateway.configure(EntityType.CATEGORY)
        await self._gateway.configure(EntityType.PRODUCT)
        if mode == RebuildMode.RECONFIGURE:
            return

        try:
            categories = await self._orchestrator.sync_all(EntityType.CATEGORY)
            status["categories"] = categories.to_dict()
        except Exception as e:
            status["status"] = "partial"
            status["error"] = f"category sync failed: {e}"
            logger.error("Category sync failed, continuing with products", error=str(e))

        products = await self._orchestrator.sync_all(EntityType.PRODUCT)
        status["products"] = products.to_dict()

    async def _store_status(self, mode: RebuildMode, status: dict) -> None:
        self._statuses[mode] = dict(status)
        if self._state is not None:
            await self._state.set_run_status(mode.value, status)

    async def status(self) -> dict[str, Optional[dict]]:
        """
        Get the latest status of every mode.

        Returns:
            Mapping of mode name to its last stored status, or None if
            the mode never ran.
        """
        result: dict[str, Optional[dict]] = {}
        for mode in RebuildMode:
            stored = None
            if self._state is not None:
                stored = await self._state.get_run_status(mode.value)
            result[mode.value] = stored or self._statuses.get(mode)
        return result

    def is_running(self, mode: RebuildMode) -> bool:
        """Check whether this process is running a rebuild of a mode."""
        task = self._tasks.get(RebuildMode(mode))
        return task is not None and not task.done()

    async def shutdown(self) -> None:
        """Cancel background runs started by this process."""
        tasks = [task for task in self._tasks.values() if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
