"""
Sync Orchestrator.

Runs the batch pipeline shared by every entity type:
fetch -> transform -> snapshot -> upsert, with compensation when the
write fails. The index after a failed batch matches the index before it.
"""
import time
from typing import Iterable, Optional

from internal.domain.documents import EntityType, SyncBatchState, SyncResult
from internal.domain.errors import BatchWriteError, CompensationError, DomainValidationError
from internal.infrastructure.metrics import (
    SYNC_BATCH_DURATION,
    SYNC_BATCHES_TOTAL,
    SYNC_COMPENSATIONS_TOTAL,
    SYNC_DOCUMENTS_TOTAL,
)
from internal.usecase.protocols import IndexGatewayProtocol
from internal.usecase.sync_targets import SyncContext, SyncTarget
from pkg.logger.logger import get_logger


logger = get_logger(__name__)


DEFAULT_PAGE_SIZE = 50


def chunked(ids: Iterable[str], size: int) -> list[list[str]]:
    """
    Deduplicate IDs, keeping first occurrence order, and split them into chunks.

    Args:
        ids: IDs to split.
        size: Maximum chunk length.

    Returns:
        List of chunks.
    """
    unique = list(dict.fromkeys(i for i in ids if i))
    return [unique[i:i + size] for i in range(0, len(unique), size)]


class SyncOrchestrator:
    """
    Sync pipeline parameterized by entity type.

    Each batch is all-or-nothing with respect to the index: documents
    that were new are deleted and documents that existed are restored
    from their snapshots when the write fails.
    """

    def __init__(
        self,
        gateway: IndexGatewayProtocol,
        targets: Iterable[SyncTarget],
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            gateway: Search index gateway.
            targets: One sync target per entity type.
            page_size: Entities per batch.
        """
        if page_size <= 0:
            raise DomainValidationError("page_size must be positive")
        self._gateway = gateway
        self._targets = {target.entity_type: target for target in targets}
        self._page_size = page_size

    @property
    def page_size(self) -> int:
        """Entities per batch."""
        return self._page_size

    def _target(self, entity_type: EntityType) -> SyncTarget:
        target = self._targets.get(EntityType(entity_type))
        if target is None:
            raise DomainValidationError(f"No sync target for entity type '{entity_type}'")
        return target

    async def sync_all(self, entity_type: EntityType) -> SyncResult:
        """
        Sync every entity of a type, page by page.

        Paging stops at the first page shorter than the page size. A
        failed batch stops the run; earlier batches stay committed.

        Args:
            entity_type: Entity type to sync.

        Returns:
            SyncResult with summed counts.

        Raises:
            CatalogQueryError: If a page cannot be fetched.
            BatchWriteError: If a batch write failed and was rolled back.
            CompensationError: If the rollback failed as well.
        """
        target = self._target(entity_type)
        context = await target.open_context()
        result = SyncResult(entity_type=target.entity_type)
        offset = 0

        logger.info("Full sync started", entity_type=target.entity_type.value)

        while True:
            page = await self._fetch(target, None, offset, self._page_size)
            if not page.records:
                break
            result.merge(await self._process_batch(target, context, page.records, offset))
            if len(page.records) < self._page_size:
                break
            offset += self._page_size

        logger.info("Full sync finished", **result.to_dict())
        return result

    async def sync_ids(self, entity_type: EntityType, ids: Iterable[str]) -> SyncResult:
        """
        Sync specific entities.

        IDs are deduplicated and processed in page-sized batches. IDs
        missing from the catalog are left untouched in the index.

        Args:
            entity_type: Entity type to sync.
            ids: Entity IDs.

        Returns:
            SyncResult with summed counts.

        Raises:
            CatalogQueryError: If a batch cannot be fetched.
            BatchWriteError: If a batch write failed and was rolled back.
            CompensationError: If the rollback failed as well.
        """
        target = self._target(entity_type)
        result = SyncResult(entity_type=target.entity_type)
        chunks = chunked(ids, self._page_size)
        if not chunks:
            return result

        context = await target.open_context()
        for chunk in chunks:
            page = await self._fetch(target, chunk, 0, len(chunk))
            if len(page.records) < len(chunk):
                found = {record.id for record in page.records}
                logger.debug(
                    "Requested entities not found in catalog",
                    entity_type=target.entity_type.value,
                    missing=[i for i in chunk if i not in found],
                )
            if page.records:
                result.merge(await self._process_batch(target, context, page.records, None))

        return result

    async def delete_ids(self, entity_type: EntityType, ids: Iterable[str]) -> SyncResult:
        """
        Remove documents from the index.

        Documents are snapshotted before deletion and restored if the
        delete fails.

        Args:
            entity_type: Entity type of the documents.
            ids: Document IDs.

        Returns:
            SyncResult with the deleted count.

        Raises:
            BatchWriteError: If a delete failed and was rolled back.
            CompensationError: If the rollback failed as well.
        """
        entity_type = EntityType(entity_type)
        result = SyncResult(entity_type=entity_type)

        for chunk in chunked(ids, self._page_size):
            snapshots = await self._snapshot(entity_type, chunk)
            if not snapshots:
                continue

            state = SyncBatchState(new_ids=[], snapshots=snapshots)
            try:
                await self._gateway.delete_documents(entity_type, state.existing_ids)
            except Exception as e:
                await self._compensate(entity_type, state, e)
                SYNC_BATCHES_TOTAL.labels(entity_type=entity_type.value, status="compensated").inc()
                raise BatchWriteError(entity_type.value, state.existing_ids, str(e)) from e

            SYNC_DOCUMENTS_TOTAL.labels(
                entity_type=entity_type.value, operation="deleted"
            ).inc(len(snapshots))
            result.batches += 1
            result.deleted += len(snapshots)
            logger.info(
                "Deleted documents",
                entity_type=entity_type.value,
                ids=state.existing_ids,
            )

        return result

    async def _fetch(
        self,
        target: SyncTarget,
        ids: Optional[list[str]],
        offset: int,
        limit: int,
    ):
        try:
            return await target.fetch(ids, offset, limit)
        except Exception:
            SYNC_BATCHES_TOTAL.labels(
                entity_type=target.entity_type.value, status="fetch_failed"
            ).inc()
            logger.error(
                "Failed to fetch sync batch",
                entity_type=target.entity_type.value,
                offset=offset,
                limit=limit,
            )
            raise

    async def _snapshot(self, entity_type: EntityType, ids: list[str]) -> dict[str, dict]:
        try:
            return await self._gateway.get_documents(entity_type, ids)
        except Exception as e:
            SYNC_BATCHES_TOTAL.labels(entity_type=entity_type.value, status="snapshot_failed").inc()
            raise BatchWriteError(entity_type.value, ids, str(e), rolled_back=False) from e

    async def _process_batch(
        self,
        target: SyncTarget,
        context: SyncContext,
        records,
        offset: Optional[int],
    ) -> SyncResult:
        entity_type = target.entity_type
        result = SyncResult(entity_type=entity_type, fetched=len(records))
        started = time.perf_counter()

        outcome = await target.transform(records, context)
        result.skipped = len(outcome.skipped)
        if not outcome.documents:
            logger.warning(
                "Batch produced no documents",
                entity_type=entity_type.value,
                offset=offset,
                skipped=result.skipped,
            )
            return result

        ids = [document["id"] for document in outcome.documents]
        snapshots = await self._snapshot(entity_type, ids)
        state = SyncBatchState(
            new_ids=[i for i in ids if i not in snapshots],
            snapshots=snapshots,
        )

        try:
            await self._gateway.upsert_documents(entity_type, outcome.documents)
        except Exception as e:
            await self._compensate(entity_type, state, e)
            SYNC_BATCHES_TOTAL.labels(entity_type=entity_type.value, status="compensated").inc()
            raise BatchWriteError(entity_type.value, ids, str(e)) from e

        result.batches = 1
        result.indexed = len(ids)
        result.created = len(state.new_ids)
        result.updated = len(state.existing_ids)

        SYNC_BATCHES_TOTAL.labels(entity_type=entity_type.value, status="succeeded").inc()
        SYNC_DOCUMENTS_TOTAL.labels(entity_type=entity_type.value, operation="created").inc(result.created)
        SYNC_DOCUMENTS_TOTAL.labels(entity_type=entity_type.value, operation="updated").inc(result.updated)
        SYNC_BATCH_DURATION.labels(entity_type=entity_type.value).observe(time.perf_counter() - started)

        logger.info(
            "Batch synced",
            entity_type=entity_type.value,
            offset=offset,
            indexed=result.indexed,
            created=result.created,
            updated=result.updated,
            skipped=result.skipped,
        )
        return result

    async def _compensate(
        self,
        entity_type: EntityType,
        state: SyncBatchState,
        error: Exception,
    ) -> None:
        """
        Restore the index to its pre-batch state.

        Raises:
            CompensationError: If the rollback itself fails.
        """
        affected = state.new_ids + state.existing_ids
        logger.warning(
            "Batch write failed, rolling back",
            entity_type=entity_type.value,
            new_ids=len(state.new_ids),
            restored=len(state.existing_ids),
            error=str(error),
        )
        try:
            if state.new_ids:
                await self._gateway.delete_documents(entity_type, state.new_ids)
            if state.snapshots:
                await self._gateway.upsert_documents(entity_type, list(state.snapshots.values()))
        except Exception as e:
            SYNC_COMPENSATIONS_TOTAL.labels(entity_type=entity_type.value, status="failed").inc()
            SYNC_BATCHES_TOTAL.labels(
                entity_type=entity_type.value, status="compensation_failed"
            ).inc()
            logger.critical(
                "Rollback failed, index may be inconsistent",
                entity_type=entity_type.value,
                ids=affected,
                error=str(e),
            )
            raise CompensationError(entity_type.value, affected, str(e), original=error) from e

        SYNC_COMPENSATIONS_TOTAL.labels(entity_type=entity_type.value, status="succeeded").inc()
        logger.info("Batch rolled back", entity_type=entity_type.value, ids=len(affected))
