"""
Service wiring.

Builds every component once per process from explicit collaborators.
Entry points create a container at startup and close it at shutdown;
tests call ``build_services`` with in-memory fakes.
"""
from dataclasses import dataclass
from typing import Optional

from asyncpg import Pool

from config.settings import Settings
from internal.infrastructure.meilisearch import MeilisearchIndexGateway
from internal.infrastructure.postgres import PostgresCatalogRepository, create_pool
from internal.infrastructure.redis import SyncStateStore
from internal.usecase.availability import AvailabilityAggregator
from internal.usecase.event_dispatcher import EventDispatcher
from internal.usecase.hierarchy_resolver import CategoryHierarchyResolver
from internal.usecase.protocols import (
    CatalogRepositoryProtocol,
    IndexGatewayProtocol,
    SyncStateProtocol,
)
from internal.usecase.rebuild_index import RebuildIndexUseCase, RebuildMode
from internal.usecase.reconciliation import ReconciliationJob
from internal.usecase.sales_channels import SalesChannelResolver
from internal.usecase.search_index import SearchIndexUseCase
from internal.usecase.sync_orchestrator import SyncOrchestrator
from internal.usecase.sync_targets import CategorySyncTarget, ProductSyncTarget
from internal.usecase.sync_triggers import IncrementalSyncTriggers
from pkg.logger.logger import get_logger
from pkg.resilience import CircuitBreaker


logger = get_logger(__name__)


@dataclass
class Services:
    """Use cases and collaborators shared by one process."""

    catalog: CatalogRepositoryProtocol
    gateway: IndexGatewayProtocol
    state: Optional[SyncStateProtocol]
    hierarchy: CategoryHierarchyResolver
    orchestrator: SyncOrchestrator
    dispatcher: EventDispatcher
    triggers: IncrementalSyncTriggers
    rebuild: RebuildIndexUseCase
    reconciliation: ReconciliationJob
    search: SearchIndexUseCase


def build_services(
    settings: Settings,
    catalog: CatalogRepositoryProtocol,
    gateway: IndexGatewayProtocol,
    state: Optional[SyncStateProtocol] = None,
) -> Services:
    """
    Wire use cases from their collaborators.

    Args:
        settings: Application settings.
        catalog: Catalog repository.
        gateway: Search index gateway.
        state: Sync state store.

    Returns:
        Services with every use case wired.
    """
    hierarchy = CategoryHierarchyResolver(
        catalog,
        max_depth=settings.max_hierarchy_depth,
        visibility_page_size=settings.visibility_page_size,
    )
    channels = SalesChannelResolver(
        catalog,
        configured_public_channel_id=settings.public_sales_channel_id,
    )
    availability = AvailabilityAggregator(catalog)

    orchestrator = SyncOrchestrator(
        gateway,
        targets=[
            CategorySyncTarget(catalog, hierarchy, channels),
            ProductSyncTarget(catalog, hierarchy, channels, availability),
        ],
        page_size=settings.sync_page_size,
    )

    rebuild = RebuildIndexUseCase(
        orchestrator,
        gateway,
        state=state,
        lock_ttl_seconds=settings.rebuild_lock_ttl_seconds,
    )

    dispatcher = EventDispatcher()
    triggers = IncrementalSyncTriggers(
        orchestrator,
        catalog,
        hierarchy,
        chunk_size=settings.trigger_chunk_size,
        full_sync=lambda: rebuild.start(RebuildMode.SYNC),
    )
    triggers.register(dispatcher)

    reconciliation = ReconciliationJob(
        orchestrator,
        catalog,
        state=state,
        interval_seconds=settings.reconciliation_interval_seconds,
        window_seconds=settings.reconciliation_window_seconds,
        chunk_size=settings.reconciliation_chunk_size,
    )

    return Services(
        catalog=catalog,
        gateway=gateway,
        state=state,
        hierarchy=hierarchy,
        orchestrator=orchestrator,
        dispatcher=dispatcher,
        triggers=triggers,
        rebuild=rebuild,
        reconciliation=reconciliation,
        search=SearchIndexUseCase(gateway),
    )


class Container:
    """
    Process-wide resources: database pool, index gateway and state store.

    Created at startup with ``Container.create`` and torn down with
    ``close``.
    """

    def __init__(
        self,
        settings: Settings,
        pool: Pool,
        gateway: MeilisearchIndexGateway,
        state: Optional[SyncStateStore],
    ) -> None:
        self.settings = settings
        self.pool = pool
        self.gateway = gateway
        self.state = state
        self.services = build_services(
            settings,
            PostgresCatalogRepository(pool, timeout=settings.request_timeout_seconds),
            gateway,
            state,
        )

    @classmethod
    async def create(cls, settings: Settings) -> "Container":
        """
        Connect to the catalog, the index engine and Redis.

        A Redis outage disables watermarks and run locks but does not
        prevent startup.

        Args:
            settings: Application settings.

        Returns:
            Connected container.
        """
        pool = await create_pool(
            settings.database_url,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
        )
        logger.info("Database pool created")

        gateway = MeilisearchIndexGateway(
            host=settings.meilisearch_host,
            api_key=settings.meilisearch_api_key,
            product_index=settings.product_index_name,
            category_index=settings.category_index_name,
            request_timeout=settings.request_timeout_seconds,
            task_timeout=settings.task_timeout_seconds,
            circuit_breaker=CircuitBreaker(
                name="meilisearch",
                failure_threshold=settings.circuit_failure_threshold,
                recovery_timeout=settings.circuit_recovery_timeout,
            ),
        )

        state: Optional[SyncStateStore] = SyncStateStore(
            settings.redis_url,
            prefix=settings.sync_state_prefix,
        )
        try:
            await state.connect()
            logger.info("Redis sync state connected")
        except Exception as e:
            logger.warning("Failed to connect to Redis, sync state disabled", error=str(e))
            state = None

        return cls(settings, pool, gateway, state)

    async def close(self) -> None:
        """Stop background rebuilds and release every connection."""
        await self.services.rebuild.shutdown()
        await self.gateway.close()
        if self.state is not None:
            await self.state.disconnect()
        await self.pool.close()
        logger.info("Resources released")
