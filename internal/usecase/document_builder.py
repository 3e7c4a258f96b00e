"""
Document Builders.

Pure transforms from catalog entities (plus resolved hierarchy and
availability) to index documents. No I/O happens here; identical inputs
always produce identical documents.
"""
import math
import re
from typing import Mapping, Optional, Protocol, Sequence

from internal.domain.catalog import CategoryNode, ProductEntity, ShippingProfile
from internal.domain.documents import CategoryDoc, ProductDoc
from internal.domain.errors import TransformError
from internal.usecase.availability import is_product_available
from internal.usecase.hierarchy_resolver import PATH_SEPARATOR


DEFAULT_FAVORITE_RANK = 999
FAVORITES_COLLECTION_HANDLE = "favoriten"
DEFAULT_PRIMARY_SALES_CHANNEL = {"id": "default", "name": "Default Sales Channel"}

DELIVERY_ON_REQUEST = "Auf Anfrage"
DELIVERY_EXTENDED = "7-10"
DELIVERY_STANDARD = "2-3"

_OVERSIZED_MARKERS = ("sperrgut", "speergut")
_EXTENDED_MARKERS = ("längere lieferzeit", "langere lieferzeit")

# Stems of German technical compound words, used to split e.g.
# "Schmiernippel" into "Schmier" + "nippel" for substring search
COMPOUND_PREFIXES = (
    # Materials
    "schmier", "dicht", "kupfer", "stahl", "gummi", "metall",
    # Parts and components
    "kugel", "zylinder", "ventil", "adapter", "nippel", "ring", "schraube",
    "mutter", "scheibe", "buchse", "stecker", "geber", "schalter", "lager",
    "pumpe",
    # Fluids and systems
    "wasser", "öl", "bremse", "kupplung", "feder", "blatt", "stabilisator",
    "kolben", "rad", "achse",
    # Positions
    "vorder", "hinter", "seiten", "reparatur", "end", "heck", "haupt",
    # Lighting and body
    "nebel", "rück", "blink", "kennzeichen", "anlasser", "licht",
    "scheinwerfer", "streu", "reflektor", "windschutz", "front", "kotflügel",
    # Steering and chassis
    "spurstange", "achsschenkel", "radlauf", "innenradlauf", "ausgleich",
    "druckplatte", "stütz", "schale", "simmering", "konus", "nieten",
    "gewinde", "bohrung", "anhänger", "blech", "leuchte", "schlauch",
    "hydraulik", "druck",
)

_SEPARATORS = re.compile(r"[\s\-_]+")


class PathElement(Protocol):
    """Anything on an ancestor chain: a full category node or a bare reference."""

    id: str
    name: str


def generate_word_parts(text: Optional[str]) -> list[str]:
    """
    Split text into searchable parts.

    Returns the text itself, its separator-delimited words and the pieces
    around every known compound prefix. Duplicates and parts of two
    characters or less are dropped.

    Args:
        text: Source text.

    Returns:
        Parts in discovery order.
    """
    if not text:
        return []

    lower = text.lower()
    parts = [text]
    parts.extend(_SEPARATORS.split(text))

    for prefix in COMPOUND_PREFIXES:
        if lower.startswith(prefix) and len(text) > len(prefix):
            parts.extend((prefix, text[len(prefix):]))
        index = lower.find(prefix)
        if 0 < index < len(lower) - len(prefix):
            parts.extend((prefix, text[index + len(prefix):]))

    return [p for p in dict.fromkeys(parts) if p and len(p) > 2]


def estimate_delivery_days(profile: Optional[ShippingProfile]) -> str:
    """
    Estimate delivery time from a shipping profile.

    Args:
        profile: Shipping profile, if any.

    Returns:
        "Auf Anfrage" for oversized goods, "7-10" for extended delivery,
        "2-3" otherwise.
    """
    name = profile.name.lower() if profile and profile.name else ""
    if any(m in name for m in _OVERSIZED_MARKERS) or (profile and profile.type == "oversized"):
        return DELIVERY_ON_REQUEST
    if any(m in name for m in _EXTENDED_MARKERS):
        return DELIVERY_EXTENDED
    return DELIVERY_STANDARD


def has_extended_delivery(profile: Optional[ShippingProfile]) -> bool:
    """Check whether a shipping profile is marked for longer delivery times."""
    name = profile.name.lower() if profile and profile.name else ""
    return "längere lieferzeit" in name


def format_amount(amount: float) -> str:
    """
    Format a price amount without a trailing ``.0`` for whole numbers.

    Args:
        amount: Price amount.

    Returns:
        Formatted amount.
    """
    if float(amount).is_integer():
        return str(int(amount))
    return str(amount)


def _join_text(values: Sequence[Optional[str]]) -> str:
    return " ".join(v for v in values if v)


def build_category_document(
    category: CategoryNode,
    parent_name: Optional[str],
    child_names: Sequence[str],
    ancestor_path: Sequence[str],
    has_public_products: bool,
) -> CategoryDoc:
    """
    Build the index document of a category.

    Args:
        category: Category node.
        parent_name: Name of the parent category.
        child_names: Names of direct children.
        ancestor_path: Ancestor names root first, ending with the category.
        has_public_products: Whether the subtree holds a visible product.

    Returns:
        CategoryDoc.

    Raises:
        TransformError: If the category has no ID or name.
    """
    if not category.id:
        raise TransformError("<missing id>", "category has no id")
    if not category.name:
        raise TransformError(category.id, "category has no name")

    path = list(ancestor_path) or [category.name]
    children = list(child_names)

    return CategoryDoc(
        id=category.id,
        name=category.name,
        description=category.description or "",
        handle=category.handle or "",
        is_active=category.is_active,
        is_internal=category.is_internal,
        parent_category_id=category.parent_category_id,
        parent_category_name=parent_name,
        category_children=children,
        hierarchy_path=PATH_SEPARATOR.join(path),
        mpath=category.mpath or "",
        rank=category.rank,
        has_public_products=has_public_products,
        created_at=category.created_at,
        updated_at=category.updated_at,
        searchable_text=_join_text(
            [category.name, category.description, category.handle, parent_name, *children]
        ),
    )


def build_product_document(
    product: ProductEntity,
    ancestor_chains: Mapping[str, Sequence[PathElement]],
    availability: Mapping[str, int],
    public_channel_id: Optional[str] = None,
    internal_channel_id: Optional[str] = None,
) -> ProductDoc:
    """
    Build the index document of a product.

    ``category_ids`` receives every directly assigned category and all of
    its ancestors. ``hierarchical_categories`` maps ``lvlN`` to the path
    prefix of depth N; with several memberships the later membership wins
    at each level. Prices of zero or less are ignored.

    Args:
        product: Product with relations.
        ancestor_chains: Root-first ancestor chain per directly assigned
            category ID. Missing chains fall back to the category alone.
        availability: Available quantity per variant ID.
        public_channel_id: Public sales channel ID.
        internal_channel_id: Internal-operations sales channel ID.

    Returns:
        ProductDoc.

    Raises:
        TransformError: If the product has no ID.
    """
    if not product.id:
        raise TransformError("<missing id>", "product has no id")

    # Categories
    category_ids: dict[str, None] = {}
    category_names: dict[str, None] = {}
    category_handles: list[str] = []
    category_paths: list[str] = []
    hierarchical: dict[str, str] = {}

    for membership in product.categories:
        category_ids[membership.id] = None
        category_names[membership.name] = None
        category_handles.append(membership.handle)

        chain = list(ancestor_chains.get(membership.id) or [membership])
        names = [element.name for element in chain]
        for level in range(len(names)):
            hierarchical[f"lvl{level}"] = PATH_SEPARATOR.join(names[: level + 1])
        for element in chain:
            category_ids[element.id] = None
            category_names[element.name] = None
        category_paths.append(PATH_SEPARATOR.join(names))

    # Availability and pricing
    total_inventory = 0
    min_price = math.inf
    max_price = 0.0
    currencies: dict[str, None] = {}
    skus: list[str] = []

    for variant in product.variants:
        if variant.sku:
            skus.append(variant.sku)
        total_inventory += availability.get(variant.id, 0)
        for price in variant.prices:
            if price.amount > 0:
                min_price = min(min_price, price.amount)
                max_price = max(max_price, price.amount)
                currencies[price.currency_code] = None

    if min_price == math.inf:
        min_price = 0.0

    price_range = (
        f"{format_amount(min_price)}-{format_amount(max_price)}"
        if min_price != max_price
        else format_amount(min_price)
    )

    tags = list(dict.fromkeys(product.tags))

    # Sales channels
    sales_channels = [{"id": sc.id, "name": sc.name or sc.id} for sc in product.sales_channels]
    primary_sales_channel = dict(sales_channels[0]) if sales_channels else dict(DEFAULT_PRIMARY_SALES_CHANNEL)
    channel_ids = {sc.id for sc in product.sales_channels}
    is_internal_only = bool(
        internal_channel_id
        and internal_channel_id in channel_ids
        and public_channel_id not in channel_ids
    )

    # Collection and favourites
    collection = product.collection
    favorite_rank = product.metadata.get("favorite_rank")
    is_favoriten = product.metadata.get("is_favorite") is True or (
        collection is not None and collection.handle == FAVORITES_COLLECTION_HANDLE
    )

    images = list(product.images)
    profile = product.shipping_profile

    searchable_text = _join_text(
        [
            product.title,
            *generate_word_parts(product.title),
            product.subtitle,
            product.description,
            *generate_word_parts(product.description),
            *hierarchical.values(),
            *tags,
            *skus,
            *[part for sku in skus for part in generate_word_parts(sku)],
            collection.title if collection else None,
        ]
    )

    return ProductDoc(
        id=product.id,
        title=product.title,
        subtitle=product.subtitle or None,
        description=product.description,
        handle=product.handle,
        thumbnail=product.thumbnail or (images[0] if images else None),
        images=images,
        status=product.status,
        created_at=product.created_at,
        updated_at=product.updated_at,
        category_ids=list(category_ids),
        category_names=list(category_names),
        category_handles=category_handles,
        category_paths=category_paths,
        hierarchical_categories=hierarchical,
        is_available=is_product_available(product, availability),
        total_inventory=total_inventory,
        variant_count=len(product.variants),
        min_price=min_price,
        max_price=max_price,
        price_range=price_range,
        currencies=list(currencies),
        skus=skus,
        tags=tags,
        collection_id=collection.id if collection else None,
        collection_title=collection.title if collection else None,
        collection_handle=collection.handle if collection else None,
        is_favoriten=is_favoriten,
        favorite_rank=DEFAULT_FAVORITE_RANK if favorite_rank is None else favorite_rank,
        sales_channels=sales_channels,
        primary_sales_channel=primary_sales_channel,
        is_internal_only=is_internal_only,
        shipping_profile_id=profile.id if profile else None,
        shipping_profile_name=profile.name if profile else None,
        shipping_profile_type=profile.type if profile else None,
        has_extended_delivery=has_extended_delivery(profile),
        estimated_delivery_days=estimate_delivery_days(profile),
        searchable_text=searchable_text,
    )
