"""
Domain model for indexed documents.

Typed projections written to the search index. Documents are serialized
with ``to_dict()`` only at the index boundary.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class EntityType(str, Enum):
    """Entity types that have their own index."""

    PRODUCT = "product"
    CATEGORY = "category"


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class CategoryDoc:
    """
    Indexed projection of a category.

    Attributes:
        id: Category ID.
        name: Category name.
        hierarchy_path: Ancestor names root first, joined by " > ".
        parent_category_name: Name of the parent category.
        category_children: Names of direct children.
        has_public_products: Whether any descendant product is publicly visible.
        searchable_text: Concatenated text used for full-text search.
    """

    id: str
    name: str
    description: str
    handle: str
    is_active: bool
    is_internal: bool
    parent_category_id: Optional[str]
    parent_category_name: Optional[str]
    category_children: list[str]
    hierarchy_path: str
    mpath: str
    rank: int
    has_public_products: bool
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    searchable_text: str

    def to_dict(self) -> dict:
        """
        Convert to dictionary representation.

        Returns:
            Dictionary in index wire format.
        """
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "handle": self.handle,
            "is_active": self.is_active,
            "is_internal": self.is_internal,
            "parent_category_id": self.parent_category_id,
            "parent_category_name": self.parent_category_name,
            "category_children": list(self.category_children),
            "hierarchy_path": self.hierarchy_path,
            "mpath": self.mpath,
            "rank": self.rank,
            "has_public_products": self.has_public_products,
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
            "searchable_text": self.searchable_text,
        }


@dataclass
class ProductDoc:
    """
    Indexed projection of a product.

    ``category_ids`` holds every directly assigned category plus all of
    their ancestors so that filtering on any ancestor matches the product.
    ``hierarchical_categories`` maps ``lvl0``, ``lvl1``, ... to the path
    prefix at that depth.
    """

    id: str
    title: str
    subtitle: Optional[str]
    description: Optional[str]
    handle: str
    thumbnail: Optional[str]
    images: list[str]
    status: str
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    # Categories
    category_ids: list[str]
    category_names: list[str]
    category_handles: list[str]
    category_paths: list[str]
    hierarchical_categories: dict[str, str]

    # Availability
    is_available: bool
    total_inventory: int
    variant_count: int

    # Pricing
    min_price: float
    max_price: float
    price_range: str
    currencies: list[str]

    skus: list[str]
    tags: list[str]

    # Collection
    collection_id: Optional[str]
    collection_title: Optional[str]
    collection_handle: Optional[str]
    is_favoriten: bool
    favorite_rank: Any

    # Sales channels
    sales_channels: list[dict[str, str]]
    primary_sales_channel: dict[str, str]
    is_internal_only: bool

    # Shipping
    shipping_profile_id: Optional[str]
    shipping_profile_name: Optional[str]
    shipping_profile_type: Optional[str]
    has_extended_delivery: bool
    estimated_delivery_days: str

    searchable_text: str = ""

    def to_dict(self) -> dict:
        """
        Convert to dictionary representation.

        Returns:
            Dictionary in index wire format.
        """
        return {
            "id": self.id,
            "title": self.title,
            "subtitle": self.subtitle,
            "description": self.description,
            "handle": self.handle,
            "thumbnail": self.thumbnail,
            "images": list(self.images),
            "status": self.status,
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
            "category_ids": list(self.category_ids),
            "category_names": list(self.category_names),
            "category_handles": list(self.category_handles),
            "category_paths": list(self.category_paths),
            "hierarchical_categories": dict(self.hierarchical_categories),
            "is_available": self.is_available,
            "total_inventory": self.total_inventory,
            "variant_count": self.variant_count,
            "min_price": self.min_price,
            "max_price": self.max_price,
            "price_range": self.price_range,
            "currencies": list(self.currencies),
            "skus": list(self.skus),
            "tags": list(self.tags),
            "collection_id": self.collection_id,
            "collection_title": self.collection_title,
            "collection_handle": self.collection_handle,
            "is_favoriten": self.is_favoriten,
            "favorite_rank": self.favorite_rank,
            "sales_channels": [dict(sc) for sc in self.sales_channels],
            "primary_sales_channel": dict(self.primary_sales_channel),
            "is_internal_only": self.is_internal_only,
            "shipping_profile_id": self.shipping_profile_id,
            "shipping_profile_name": self.shipping_profile_name,
            "shipping_profile_type": self.shipping_profile_type,
            "has_extended_delivery": self.has_extended_delivery,
            "estimated_delivery_days": self.estimated_delivery_days,
            "searchable_text": self.searchable_text,
        }


@dataclass
class SearchResult:
    """Result of a query against one index."""

    hits: list[dict]
    facet_distribution: dict[str, dict[str, int]]
    estimated_total_hits: int
    processing_time_ms: int

    def to_dict(self) -> dict:
        """
        Convert to dictionary representation.

        Returns:
            Dictionary with hits, facets and totals.
        """
        return {
            "hits": self.hits,
            "facet_distribution": self.facet_distribution,
            "estimated_total_hits": self.estimated_total_hits,
            "processing_time_ms": self.processing_time_ms,
        }


@dataclass
class SyncBatchState:
    """
    Transient state of one batch, consumed by compensation on failure.

    Attributes:
        new_ids: IDs not present in the index before the write.
        snapshots: Pre-write documents of IDs already in the index.
    """

    new_ids: list[str] = field(default_factory=list)
    snapshots: dict[str, dict] = field(default_factory=dict)

    @property
    def existing_ids(self) -> list[str]:
        """IDs already present in the index before the write."""
        return list(self.snapshots.keys())


@dataclass
class SyncResult:
    """Summary counts of one orchestrator invocation."""

    entity_type: EntityType
    batches: int = 0
    fetched: int = 0
    indexed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    deleted: int = 0

    def merge(self, other: "SyncResult") -> "SyncResult":
        """
        Add another result's counts to this one.

        Args:
            other: Result to add.

        Returns:
            This result, for chaining.
        """
        self.batches += other.batches
        self.fetched += other.fetched
        self.indexed += other.indexed
        self.created += other.created
        self.updated += other.updated
        self.skipped += other.skipped
        self.deleted += other.deleted
        return self

    def to_dict(self) -> dict:
        """
        Convert to dictionary representation.

        Returns:
            Dictionary with all counts.
        """
        return {
            "entity_type": self.entity_type.value,
            "batches": self.batches,
            "fetched": self.fetched,
            "indexed": self.indexed,
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "deleted": self.deleted,
        }
