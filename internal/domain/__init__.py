"""
Domain package for Catalog Search Sync.

Contains catalog entities, index documents, lifecycle events and domain errors.
"""
from .catalog import (
    CategoryNode,
    CategoryRef,
    Variant,
    VariantPrice,
    Collection,
    SalesChannel,
    ShippingProfile,
    ProductEntity,
    ProductVisibility,
    LineItemRef,
    CatalogPage,
)
from .documents import (
    EntityType,
    CategoryDoc,
    ProductDoc,
    SearchResult,
    SyncBatchState,
    SyncResult,
)
from .events import (
    CatalogEvent,
    CatalogEventName,
    ProductChanged,
    ProductDeleted,
    VariantChanged,
    CategoryChanged,
    CollectionChanged,
    OrderChanged,
    ReservationStatusChanged,
    FullSyncRequested,
    parse_event,
)
from .errors import (
    DomainError,
    DomainValidationError,
    CatalogQueryError,
    IndexGatewayError,
    ResolutionError,
    CycleDetectedError,
    TransformError,
    SyncError,
    BatchWriteError,
    CompensationError,
)

__all__ = [
    # Catalog
    "CategoryNode",
    "CategoryRef",
    "Variant",
    "VariantPrice",
    "Collection",
    "SalesChannel",
    "ShippingProfile",
    "ProductEntity",
    "ProductVisibility",
    "LineItemRef",
    "CatalogPage",
    # Documents
    "EntityType",
    "CategoryDoc",
    "ProductDoc",
    "SearchResult",
    "SyncBatchState",
    "SyncResult",
    # Events
    "CatalogEvent",
    "CatalogEventName",
    "ProductChanged",
    "ProductDeleted",
    "VariantChanged",
    "CategoryChanged",
    "CollectionChanged",
    "OrderChanged",
    "ReservationStatusChanged",
    "FullSyncRequested",
    "parse_event",
    # Errors
    "DomainError",
    "DomainValidationError",
    "CatalogQueryError",
    "IndexGatewayError",
    "ResolutionError",
    "CycleDetectedError",
    "TransformError",
    "SyncError",
    "BatchWriteError",
    "CompensationError",
]
