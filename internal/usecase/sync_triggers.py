"""
Incremental Sync Triggers.

Maps each catalog lifecycle event to the smallest set of affected entity
IDs and hands that set to the sync orchestrator in small chunks.
"""
from typing import Awaitable, Callable, Iterable, Optional

from internal.domain.catalog import LineItemRef
from internal.domain.documents import EntityType, SyncResult
from internal.domain.errors import CompensationError, SyncError
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
from internal.usecase.event_dispatcher import EventDispatcher
from internal.usecase.hierarchy_resolver import CategoryHierarchyResolver
from internal.usecase.protocols import CatalogRepositoryProtocol
from internal.usecase.sync_orchestrator import SyncOrchestrator, chunked
from pkg.logger.logger import get_logger


logger = get_logger(__name__)


DEFAULT_CHUNK_SIZE = 10

FullSyncStarter = Callable[[], Awaitable[object]]


class IncrementalSyncTriggers:
    """
    Event handlers that keep the index current between full syncs.

    Chunks are synced independently: a failing chunk is logged and the
    remaining chunks still run. The handler then raises a ``SyncError``
    so the dispatcher records the event as failed; nothing propagates
    past the dispatcher.
    """

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        catalog: CatalogRepositoryProtocol,
        hierarchy: CategoryHierarchyResolver,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        full_sync: Optional[FullSyncStarter] = None,
    ) -> None:
        """
        Initialize the triggers.

        Args:
            orchestrator: Sync orchestrator shared by all writers.
            catalog: Catalog repository for affected-ID lookups.
            hierarchy: Hierarchy resolver for category subtrees.
            chunk_size: Entities per orchestrator call.
            full_sync: Starts a background full sync; used by the
                ``search_index.sync`` event.
        """
        self._orchestrator = orchestrator
        self._catalog = catalog
        self._hierarchy = hierarchy
        self._chunk_size = chunk_size
        self._full_sync = full_sync

    def register(self, dispatcher: EventDispatcher) -> None:
        """
        Subscribe every handler to its event type.

        Args:
            dispatcher: Event dispatcher.
        """
        dispatcher.register(ProductChanged, self.on_product_changed)
        dispatcher.register(ProductDeleted, self.on_product_deleted)
        dispatcher.register(VariantChanged, self.on_variant_changed)
        dispatcher.register(CategoryChanged, self.on_category_changed)
        dispatcher.register(CollectionChanged, self.on_collection_changed)
        dispatcher.register(OrderChanged, self.on_order_changed)
        dispatcher.register(ReservationStatusChanged, self.on_reservation_status_changed)
        dispatcher.register(FullSyncRequested, self.on_full_sync_requested)

    async def on_product_changed(self, event: ProductChanged) -> None:
        await self.sync_products([event.product_id], reason=event.name)

    async def on_product_deleted(self, event: ProductDeleted) -> None:
        result = await self._orchestrator.delete_ids(EntityType.PRODUCT, [event.product_id])
        logger.info("Product removed from index", product_id=event.product_id, deleted=result.deleted)

    async def on_variant_changed(self, event: VariantChanged) -> None:
        product_id = event.product_id
        if not product_id:
            owners = await self._catalog.get_product_ids_for_variants([event.variant_id])
            product_id = owners.get(event.variant_id)
        if not product_id:
            logger.warning("No product found for variant", variant_id=event.variant_id, event=event.name)
            return
        await self.sync_products([product_id], reason=event.name)

    async def on_category_changed(self, event: CategoryChanged) -> None:
        """
        Re-sync a category, its ancestors and every product in its subtree.

        Ancestor documents carry ``has_public_products`` and subtree names,
        so they change with the category. A deleted or vanished category is
        removed from the index; its former parent chain and the products
        still assigned below it are re-synced.
        """
        session = self._hierarchy.session()
        node = None if event.deleted else await session.get_node(event.category_id)

        if node is None:
            await self._orchestrator.delete_ids(EntityType.CATEGORY, [event.category_id])
            logger.info("Category removed from index", category_id=event.category_id, event=event.name)
            chain_start = event.parent_category_id
        else:
            chain_start = event.category_id

        if chain_start:
            ancestors = await session.ancestor_nodes(chain_start)
            await self._sync_chunks(
                EntityType.CATEGORY,
                [ancestor.id for ancestor in ancestors],
                reason=event.name,
            )

        subtree = await session.descendant_ids(event.category_id)
        product_ids = await self._catalog.list_product_ids_in_categories(sorted(subtree))
        await self.sync_products(product_ids, reason=event.name)

    async def on_collection_changed(self, event: CollectionChanged) -> None:
        product_ids = await self._catalog.list_product_ids_by_collection(event.collection_id)
        await self.sync_products(product_ids, reason=event.name)

    async def on_order_changed(self, event: OrderChanged) -> None:
        items = await self._catalog.get_order_line_items(event.order_id)
        await self.sync_products(await self._line_item_products(items), reason=event.name)

    async def on_reservation_status_changed(self, event: ReservationStatusChanged) -> None:
        if not event.affects_inventory:
            logger.debug(
                "Reservation status does not affect inventory",
                offer_id=event.offer_id,
                new_status=event.new_status,
            )
            return
        items = await self._catalog.get_offer_line_items(event.offer_id)
        await self.sync_products(await self._line_item_products(items), reason=event.name)

    async def on_full_sync_requested(self, event: FullSyncRequested) -> None:
        if self._full_sync is None:
            logger.warning("Full sync requested but no rebuild procedure is configured")
            return
        await self._full_sync()

    async def sync_products(self, product_ids: Iterable[str], reason: str = "") -> SyncResult:
        """
        Sync products in trigger-sized chunks.

        Args:
            product_ids: Product IDs; duplicates are ignored.
            reason: Event name for logs.

        Returns:
            Summed SyncResult.
        """
        return await self._sync_chunks(EntityType.PRODUCT, product_ids, reason=reason)

    async def _line_item_products(self, items: list[LineItemRef]) -> list[str]:
        product_ids = [item.product_id for item in items if item.product_id]
        unresolved = [item.variant_id for item in items if not item.product_id and item.variant_id]
        if unresolved:
            owners = await self._catalog.get_product_ids_for_variants(unresolved)
            product_ids.extend(owners[v] for v in unresolved if v in owners)
        return list(dict.fromkeys(product_ids))

    async def _sync_chunks(
        self,
        entity_type: EntityType,
        ids: Iterable[str],
        reason: str = "",
    ) -> SyncResult:
        result = SyncResult(entity_type=entity_type)
        failures: list[Exception] = []

        for chunk in chunked(ids, self._chunk_size):
            try:
                result.merge(await self._orchestrator.sync_ids(entity_type, chunk))
            except Exception as e:
                failures.append(e)
                logger.error(
                    "Incremental sync chunk failed",
                    entity_type=entity_type.value,
                    ids=chunk,
                    reason=reason,
                    error=str(e),
                )

        if failures:
            fatal = next((f for f in failures if isinstance(f, CompensationError)), failures[0])
            raise SyncError(
                f"{len(failures)} {entity_type.value} chunk(s) failed for {reason or 'sync'}: {fatal}"
            ) from fatal

        if result.fetched:
            logger.info("Incremental sync finished", reason=reason, **result.to_dict())
        return result
