"""
Domain model for the source catalog.

Read-only projections of the catalog entities the sync pipeline consumes.
The catalog is the system of record; nothing here is ever written back.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Generic, Optional, TypeVar


T = TypeVar("T")


@dataclass
class CategoryNode:
    """
    One catalog category.

    Attributes:
        id: Category ID (also the indexed document ID).
        name: Display name.
        handle: URL handle.
        description: Free-text description.
        parent_category_id: Parent category ID (None for roots).
        parent_name: Parent category name, when the parent exists.
        child_ids: IDs of direct children.
        child_names: Names of direct children, in rank order.
        is_active: Whether the category is active.
        is_internal: Whether the category is internal-only.
        rank: Sort rank among siblings.
        mpath: Materialized ancestor path maintained by the catalog.
        created_at: Creation timestamp.
        updated_at: Last update timestamp.
    """

    id: str
    name: str
    handle: str = ""
    description: str = ""
    parent_category_id: Optional[str] = None
    parent_name: Optional[str] = None
    child_ids: list[str] = field(default_factory=list)
    child_names: list[str] = field(default_factory=list)
    is_active: bool = True
    is_internal: bool = False
    rank: int = 0
    mpath: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_root(self) -> bool:
        """Whether the category has no parent."""
        return self.parent_category_id is None


@dataclass(frozen=True)
class CategoryRef:
    """Direct category membership of a product."""

    id: str
    name: str
    handle: str = ""


@dataclass(frozen=True)
class VariantPrice:
    """One price entry of a variant."""

    amount: float
    currency_code: str


@dataclass
class Variant:
    """
    A purchasable product variant.

    Availability is not stored here; it is resolved per sync.
    """

    id: str
    sku: Optional[str] = None
    title: str = ""
    prices: list[VariantPrice] = field(default_factory=list)
    manage_inventory: bool = True
    allow_backorder: bool = False


@dataclass(frozen=True)
class Collection:
    """Product collection reference."""

    id: str
    title: str
    handle: str = ""


@dataclass(frozen=True)
class SalesChannel:
    """Sales channel reference."""

    id: str
    name: str


@dataclass(frozen=True)
class ShippingProfile:
    """Shipping profile reference."""

    id: str
    name: str
    type: str = "default"


@dataclass
class ProductEntity:
    """
    One catalog product with the relations the index needs.

    Attributes:
        id: Product ID (also the indexed document ID).
        title: Product title.
        status: Catalog status (draft, published, ...).
        categories: Direct category memberships.
        variants: Variants with prices and inventory flags.
        tags: Tag values, in catalog order.
        collection: Collection the product belongs to, if any.
        sales_channels: Sales channel memberships.
        images: Image URLs, in catalog order.
        shipping_profile: Assigned shipping profile, if any.
        metadata: Free-form catalog metadata.
    """

    id: str
    title: str
    subtitle: Optional[str] = None
    description: Optional[str] = None
    handle: str = ""
    thumbnail: Optional[str] = None
    status: str = "draft"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    categories: list[CategoryRef] = field(default_factory=list)
    variants: list[Variant] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    collection: Optional[Collection] = None
    sales_channels: list[SalesChannel] = field(default_factory=list)
    images: list[str] = field(default_factory=list)
    shipping_profile: Optional[ShippingProfile] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def variant_ids(self) -> list[str]:
        """IDs of all variants."""
        return [v.id for v in self.variants]

    @property
    def sales_channel_ids(self) -> list[str]:
        """IDs of all sales channel memberships."""
        return [sc.id for sc in self.sales_channels]


@dataclass(frozen=True)
class ProductVisibility:
    """Sales channel memberships of one product, used for category visibility."""

    product_id: str
    sales_channel_ids: tuple[str, ...] = ()

    def is_public(self, public_channel_id: Optional[str]) -> bool:
        """
        Check whether the product is visible in the public storefront.

        Products without any channel assignment count as public.

        Args:
            public_channel_id: ID of the designated public sales channel.

        Returns:
            True if the product is publicly visible.
        """
        if not self.sales_channel_ids:
            return True
        return public_channel_id is not None and public_channel_id in self.sales_channel_ids


@dataclass(frozen=True)
class LineItemRef:
    """Product/variant reference taken from an order or reservation line item."""

    product_id: Optional[str] = None
    variant_id: Optional[str] = None


@dataclass
class CatalogPage(Generic[T]):
    """One page of catalog records plus the total matching count."""

    records: list[T]
    total_count: int

    def __len__(self) -> int:
        return len(self.records)
