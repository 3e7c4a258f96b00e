"""
Meilisearch index settings for product and category indexes.

Configure BEFORE adding documents.
"""
from dataclasses import dataclass, field

from internal.domain.documents import EntityType


@dataclass(frozen=True)
class IndexSettings:
    """Attribute lists, ranking rules and faceting limits of one index."""

    filterable_attributes: list[str]
    searchable_attributes: list[str]
    sortable_attributes: list[str]
    displayed_attributes: list[str]
    ranking_rules: list[str]
    max_values_per_facet: int
    sort_facet_values_by: dict[str, str] = field(default_factory=dict)


PRODUCT_INDEX_SETTINGS = IndexSettings(
    filterable_attributes=[
        "category_names",
        "category_handles",
        "category_paths",
        "category_ids",
        "hierarchical_categories.lvl0",
        "hierarchical_categories.lvl1",
        "hierarchical_categories.lvl2",
        "hierarchical_categories.lvl3",
        "is_available",
        "status",
        "min_price",
        "max_price",
        "price_range",
        "currencies",
        "tags",
        "collection_id",
        "collection_handle",
        "collection_title",
        "variant_count",
        "is_favoriten",
        "sales_channels.id",
        "is_internal_only",
        "shipping_profile_type",
        "has_extended_delivery",
    ],
    searchable_attributes=[
        "title",  # Highest priority
        "searchable_text",
        "description",
        "category_names",
        "tags",
        "skus",
        "collection_title",
    ],
    sortable_attributes=[
        "title",
        "created_at",
        "updated_at",
        "min_price",
        "max_price",
        "variant_count",
        "favorite_rank",
    ],
    displayed_attributes=[
        "id",
        "title",
        "subtitle",
        "description",
        "handle",
        "thumbnail",
        "images",
        "status",
        "created_at",
        "updated_at",
        "category_ids",
        "category_names",
        "category_handles",
        "category_paths",
        "hierarchical_categories",
        "is_available",
        "total_inventory",
        "variant_count",
        "min_price",
        "max_price",
        "price_range",
        "currencies",
        "skus",
        "tags",
        "collection_id",
        "collection_title",
        "collection_handle",
        "is_favoriten",
        "favorite_rank",
        "sales_channels",
        "primary_sales_channel",
        "is_internal_only",
        "shipping_profile_id",
        "shipping_profile_name",
        "shipping_profile_type",
        "has_extended_delivery",
        "estimated_delivery_days",
        "searchable_text",
    ],
    ranking_rules=[
        "words",
        "typo",
        "proximity",
        "attribute",
        "sort",
        "exactness",
        "min_price:asc",  # Prefer lower prices
    ],
    max_values_per_facet=100,
    sort_facet_values_by={
        "category_names": "count",
        "category_paths": "count",
        "tags": "count",
        "currencies": "alpha",
        "is_available": "count",
        "collection_title": "count",
    },
)


CATEGORY_INDEX_SETTINGS = IndexSettings(
    filterable_attributes=[
        "parent_category_id",
        "is_active",
        "is_internal",
        "has_public_products",
        "rank",
        "created_at",
        "updated_at",
    ],
    searchable_attributes=[
        "name",
        "searchable_text",
        "description",
        "handle",
        "mpath",
    ],
    sortable_attributes=[
        "name",
        "rank",
        "created_at",
        "updated_at",
    ],
    displayed_attributes=[
        "id",
        "name",
        "description",
        "handle",
        "is_active",
        "is_internal",
        "parent_category_id",
        "parent_category_name",
        "category_children",
        "hierarchy_path",
        "has_public_products",
        "mpath",
        "rank",
        "created_at",
        "updated_at",
        "searchable_text",
    ],
    ranking_rules=[
        "words",
        "typo",
        "proximity",
        "attribute",
        "sort",
        "exactness",
        "rank:asc",  # Lower rank first
    ],
    max_values_per_facet=50,
    sort_facet_values_by={
        "is_active": "count",
        "parent_category_id": "alpha",
    },
)


INDEX_SETTINGS = {
    EntityType.PRODUCT: PRODUCT_INDEX_SETTINGS,
    EntityType.CATEGORY: CATEGORY_INDEX_SETTINGS,
}


# Facets requested when a caller does not name any
DEFAULT_PRODUCT_FACETS = [
    "category_names",
    "category_paths",
    "is_available",
    "currencies",
    "tags",
    "collection_title",
]

DEFAULT_CATEGORY_FACETS = [
    "is_active",
    "parent_category_id",
]

DEFAULT_FACETS = {
    EntityType.PRODUCT: DEFAULT_PRODUCT_FACETS,
    EntityType.CATEGORY: DEFAULT_CATEGORY_FACETS,
}
