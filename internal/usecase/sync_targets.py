"""
Sync targets.

One target per entity type. A target knows how to page its entities out
of the catalog and turn a page into index documents; the orchestrator
does everything else.
"""
import asyncio
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Sequence

from internal.domain.catalog import CatalogPage, CategoryNode, ProductEntity
from internal.domain.documents import EntityType
from internal.domain.errors import TransformError
from internal.infrastructure.metrics import RESOLUTION_FALLBACKS_TOTAL, SYNC_TRANSFORM_ERRORS
from internal.usecase.availability import AvailabilityAggregator
from internal.usecase.document_builder import (
    build_category_document,
    build_product_document,
)
from internal.usecase.hierarchy_resolver import CategoryHierarchyResolver, HierarchySession
from internal.usecase.protocols import CatalogRepositoryProtocol
from internal.usecase.sales_channels import ChannelContext, SalesChannelResolver
from pkg.logger.logger import get_logger


logger = get_logger(__name__)


@dataclass
class SyncContext:
    """Lookups shared by every batch of one sync invocation."""

    channels: ChannelContext
    hierarchy: HierarchySession


@dataclass
class TransformOutcome:
    """Documents built from one page plus the IDs that were skipped."""

    documents: list[dict]
    skipped: list[str]


class SyncTarget(Protocol):
    """Protocol for an entity type the orchestrator can sync."""

    entity_type: EntityType

    async def open_context(self) -> SyncContext:
        """Resolve per-invocation lookups."""
        ...

    async def fetch(
        self, ids: Optional[list[str]], offset: int, limit: int
    ) -> CatalogPage[Any]:
        """Fetch a page of entities."""
        ...

    async def transform(self, records: Sequence[Any], context: SyncContext) -> TransformOutcome:
        """Build documents for a page of entities."""
        ...


def _skip(entity_type: EntityType, entity_id: str, error: Exception) -> None:
    SYNC_TRANSFORM_ERRORS.labels(entity_type=entity_type.value).inc()
    reason = error.reason if isinstance(error, TransformError) else str(error)
    logger.warning(
        "Skipping entity whose document could not be built",
        entity_type=entity_type.value,
        entity_id=entity_id,
        error=reason,
    )


class _BaseTarget:
    entity_type: EntityType

    def __init__(
        self,
        catalog: CatalogRepositoryProtocol,
        hierarchy: CategoryHierarchyResolver,
        channels: SalesChannelResolver,
    ) -> None:
        self._catalog = catalog
        self._hierarchy = hierarchy
        self._channels = channels

    async def open_context(self) -> SyncContext:
        channels = await self._channels.resolve()
        return SyncContext(
            channels=channels,
            hierarchy=self._hierarchy.session(
                channels.public_channel_id,
                channel_resolved=channels.resolved,
            ),
        )


class CategorySyncTarget(_BaseTarget):
    """Syncs categories into the category index."""

    entity_type = EntityType.CATEGORY

    async def fetch(
        self, ids: Optional[list[str]], offset: int, limit: int
    ) -> CatalogPage[CategoryNode]:
        return await self._catalog.list_categories(ids=ids, offset=offset, limit=limit)

    async def transform(
        self, records: Sequence[CategoryNode], context: SyncContext
    ) -> TransformOutcome:
        session = context.hierarchy
        session.remember(records)

        async def build(category: CategoryNode) -> dict:
            path = await session.resolve_ancestor_path(category.id)
            has_public = await session.has_public_descendant_products(category.id)
            return build_category_document(
                category,
                parent_name=category.parent_name,
                child_names=category.child_names,
                ancestor_path=path,
                has_public_products=has_public,
            ).to_dict()

        results = await asyncio.gather(
            *(build(category) for category in records), return_exceptions=True
        )

        outcome = TransformOutcome(documents=[], skipped=[])
        for category, result in zip(records, results):
            if isinstance(result, Exception):
                _skip(self.entity_type, category.id, result)
                outcome.skipped.append(category.id)
            elif isinstance(result, BaseException):
                raise result
            else:
                outcome.documents.append(result)
        return outcome


class ProductSyncTarget(_BaseTarget):
    """Syncs products into the product index."""

    entity_type = EntityType.PRODUCT

    def __init__(
        self,
        catalog: CatalogRepositoryProtocol,
        hierarchy: CategoryHierarchyResolver,
        channels: SalesChannelResolver,
        availability: AvailabilityAggregator,
    ) -> None:
        super().__init__(catalog, hierarchy, channels)
        self._availability = availability

    async def fetch(
        self, ids: Optional[list[str]], offset: int, limit: int
    ) -> CatalogPage[ProductEntity]:
        return await self._catalog.list_products(ids=ids, offset=offset, limit=limit)

    async def _resolve_chains(
        self, products: Sequence[ProductEntity], session: HierarchySession
    ) -> dict[str, list]:
        memberships = {}
        for product in products:
            for category in product.categories:
                memberships.setdefault(category.id, category)

        ids = list(memberships)
        results = await asyncio.gather(
            *(session.ancestor_nodes(category_id) for category_id in ids),
            return_exceptions=True,
        )

        chains: dict[str, list] = {}
        for category_id, result in zip(ids, results):
            if isinstance(result, Exception):
                RESOLUTION_FALLBACKS_TOTAL.labels(resolver="ancestor_path").inc()
                logger.warning(
                    "Ancestor path lookup failed, using direct category",
                    category_id=category_id,
                    error=str(result),
                )
                chains[category_id] = [memberships[category_id]]
            elif isinstance(result, BaseException):
                raise result
            else:
                chains[category_id] = result or [memberships[category_id]]
        return chains

    async def transform(
        self, records: Sequence[ProductEntity], context: SyncContext
    ) -> TransformOutcome:
        chains = await self._resolve_chains(records, context.hierarchy)
        availability = await self._availability.resolve_availability(
            [variant_id for product in records for variant_id in product.variant_ids],
            context.channels.public_channel_id,
        )

        outcome = TransformOutcome(documents=[], skipped=[])
        for product in records:
            try:
                document = build_product_document(
                    product,
                    ancestor_chains=chains,
                    availability=availability,
                    public_channel_id=context.channels.public_channel_id,
                    internal_channel_id=context.channels.internal_channel_id,
                )
            except Exception as e:
                _skip(self.entity_type, product.id, e)
                outcome.skipped.append(product.id)
                continue
            outcome.documents.append(document.to_dict())
        return outcome
