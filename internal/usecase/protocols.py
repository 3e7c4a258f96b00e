"""
Ports used by the sync use cases.

The Postgres catalog repository, the Meilisearch gateway and the Redis
state store implement these; tests substitute in-memory versions.
"""
from datetime import datetime
from typing import Optional, Protocol

from internal.domain.catalog import (
    CatalogPage,
    CategoryNode,
    LineItemRef,
    ProductEntity,
    ProductVisibility,
    SalesChannel,
)
from internal.domain.documents import EntityType, SearchResult


class CatalogRepositoryProtocol(Protocol):
    """Protocol for catalog queries."""

    async def list_categories(
        self, ids: Optional[list[str]] = None, offset: int = 0, limit: int = 50
    ) -> CatalogPage[CategoryNode]:
        ...

    async def get_categories(self, ids: list[str]) -> list[CategoryNode]:
        ...

    async def get_child_category_ids(self, parent_ids: list[str]) -> dict[str, list[str]]:
        ...

    async def list_products(
        self, ids: Optional[list[str]] = None, offset: int = 0, limit: int = 50
    ) -> CatalogPage[ProductEntity]:
        ...

    async def list_product_visibility(
        self, category_ids: list[str], offset: int = 0, limit: int = 500
    ) -> list[ProductVisibility]:
        ...

    async def list_product_ids_in_categories(self, category_ids: list[str]) -> list[str]:
        ...

    async def list_product_ids_by_collection(self, collection_id: str) -> list[str]:
        ...

    async def list_product_ids_updated_since(self, since: datetime) -> list[str]:
        ...

    async def get_product_ids_for_variants(self, variant_ids: list[str]) -> dict[str, str]:
        ...

    async def get_order_line_items(self, order_id: str) -> list[LineItemRef]:
        ...

    async def get_offer_line_items(self, offer_id: str) -> list[LineItemRef]:
        ...

    async def list_sales_channels(self) -> list[SalesChannel]:
        ...

    async def get_variant_availability(
        self, variant_ids: list[str], sales_channel_id: str
    ) -> dict[str, int]:
        ...


class IndexGatewayProtocol(Protocol):
    """Protocol for search index operations."""

    def index_name(self, entity_type: EntityType) -> str:
        ...

    async def configure(self, entity_type: EntityType) -> None:
        ...

    async def upsert_documents(self, entity_type: EntityType, documents: list[dict]) -> None:
        ...

    async def delete_documents(self, entity_type: EntityType, ids: list[str]) -> None:
        ...

    async def delete_all_documents(self, entity_type: EntityType) -> None:
        ...

    async def get_document(self, entity_type: EntityType, document_id: str) -> Optional[dict]:
        ...

    async def get_documents(self, entity_type: EntityType, ids: list[str]) -> dict[str, dict]:
        ...

    async def search(
        self,
        entity_type: EntityType,
        query: str = "",
        filters: Optional[list[str]] = None,
        facets: Optional[list[str]] = None,
        sort: Optional[list[str]] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> SearchResult:
        ...

    async def facet_distribution(
        self,
        entity_type: EntityType,
        facets: list[str],
        filters: Optional[list[str]] = None,
    ) -> dict[str, dict[str, int]]:
        ...

    async def count_documents(self, entity_type: EntityType) -> int:
        ...

    async def health(self) -> bool:
        ...


class SyncStateProtocol(Protocol):
    """Protocol for persisted sync state."""

    async def get_watermark(self, job: str) -> Optional[datetime]:
        ...

    async def set_watermark(self, job: str, at: datetime) -> bool:
        ...

    async def set_run_status(self, mode: str, status: dict) -> bool:
        ...

    async def get_run_status(self, mode: str) -> Optional[dict]:
        ...

    async def acquire_lock(self, name: str, token: str, ttl_seconds: int) -> bool:
        ...

    async def release_lock(self, name: str, token: str) -> bool:
        ...

    async def is_locked(self, name: str) -> bool:
        ...
