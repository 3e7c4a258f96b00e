"""
Catalog lifecycle events.

A closed set of typed events consumed by the incremental sync triggers.
Raw broker payloads are turned into these with ``parse_event``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union

from .errors import DomainValidationError


class CatalogEventName(str, Enum):
    """Lifecycle event names emitted by the catalog."""

    PRODUCT_CREATED = "product.created"
    PRODUCT_UPDATED = "product.updated"
    PRODUCT_DELETED = "product.deleted"
    VARIANT_CREATED = "product_variant.created"
    VARIANT_UPDATED = "product_variant.updated"
    VARIANT_DELETED = "product_variant.deleted"
    CATEGORY_CREATED = "product_category.created"
    CATEGORY_UPDATED = "product_category.updated"
    CATEGORY_DELETED = "product_category.deleted"
    COLLECTION_CREATED = "product_collection.created"
    COLLECTION_UPDATED = "product_collection.updated"
    COLLECTION_DELETED = "product_collection.deleted"
    ORDER_PLACED = "order.placed"
    ORDER_UPDATED = "order.updated"
    ORDER_CANCELED = "order.canceled"
    OFFER_STATUS_CHANGED = "offer.status_changed"
    SEARCH_INDEX_SYNC = "search_index.sync"


# Reservation statuses that create or release inventory reservations
INVENTORY_AFFECTING_STATUSES = frozenset({"active", "cancelled", "completed"})


@dataclass(frozen=True)
class ProductChanged:
    """A product was created or updated."""

    product_id: str
    name: str = CatalogEventName.PRODUCT_UPDATED.value


@dataclass(frozen=True)
class ProductDeleted:
    """A product was deleted."""

    product_id: str
    name: str = CatalogEventName.PRODUCT_DELETED.value


@dataclass(frozen=True)
class VariantChanged:
    """A variant was created, updated or deleted."""

    variant_id: str
    product_id: Optional[str] = None
    name: str = CatalogEventName.VARIANT_UPDATED.value


@dataclass(frozen=True)
class CategoryChanged:
    """A category was created, updated or deleted."""

    category_id: str
    deleted: bool = False
    parent_category_id: Optional[str] = None
    name: str = CatalogEventName.CATEGORY_UPDATED.value


@dataclass(frozen=True)
class CollectionChanged:
    """A collection was created, updated or deleted."""

    collection_id: str
    name: str = CatalogEventName.COLLECTION_UPDATED.value


@dataclass(frozen=True)
class OrderChanged:
    """An order was placed, updated or canceled."""

    order_id: str
    name: str = CatalogEventName.ORDER_PLACED.value


@dataclass(frozen=True)
class ReservationStatusChanged:
    """An offer changed status, possibly creating or releasing reservations."""

    offer_id: str
    new_status: Optional[str] = None
    name: str = CatalogEventName.OFFER_STATUS_CHANGED.value

    @property
    def affects_inventory(self) -> bool:
        """Whether the new status creates or releases reservations."""
        return self.new_status is None or self.new_status in INVENTORY_AFFECTING_STATUSES


@dataclass(frozen=True)
class FullSyncRequested:
    """An operator requested a full index sync."""

    name: str = CatalogEventName.SEARCH_INDEX_SYNC.value


CatalogEvent = Union[
    ProductChanged,
    ProductDeleted,
    VariantChanged,
    CategoryChanged,
    CollectionChanged,
    OrderChanged,
    ReservationStatusChanged,
    FullSyncRequested,
]


_NAME_ALIASES = {
    # Older emitters publish the full sync request under the engine's name
    "meilisearch.sync": CatalogEventName.SEARCH_INDEX_SYNC,
}


def _require(data: dict[str, Any], key: str, event_name: str) -> str:
    value = data.get(key)
    if value is None or value == "":
        raise DomainValidationError(f"Event '{event_name}' is missing '{key}'")
    return str(value)


def parse_event(name: str, data: Optional[dict[str, Any]]) -> Optional[CatalogEvent]:
    """
    Turn a raw lifecycle event into its typed form.

    Args:
        name: Event name as emitted by the catalog.
        data: Event payload.

    Returns:
        Typed event, or None if the event name is not one we handle.

    Raises:
        DomainValidationError: If the payload is not an object or lacks a
            required ID.
    """
    if name in _NAME_ALIASES:
        event_name = _NAME_ALIASES[name]
    else:
        try:
            event_name = CatalogEventName(name)
        except ValueError:
            return None

    value = event_name.value
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise DomainValidationError(f"Event '{value}' payload must be an object")

    if event_name in (CatalogEventName.PRODUCT_CREATED, CatalogEventName.PRODUCT_UPDATED):
        return ProductChanged(product_id=_require(data, "id", value), name=value)

    if event_name == CatalogEventName.PRODUCT_DELETED:
        return ProductDeleted(product_id=_require(data, "id", value), name=value)

    if event_name in (
        CatalogEventName.VARIANT_CREATED,
        CatalogEventName.VARIANT_UPDATED,
        CatalogEventName.VARIANT_DELETED,
    ):
        product_id = data.get("product_id")
        return VariantChanged(
            variant_id=_require(data, "id", value),
            product_id=str(product_id) if product_id else None,
            name=value,
        )

    if event_name in (
        CatalogEventName.CATEGORY_CREATED,
        CatalogEventName.CATEGORY_UPDATED,
        CatalogEventName.CATEGORY_DELETED,
    ):
        parent_id = data.get("parent_category_id")
        return CategoryChanged(
            category_id=_require(data, "id", value),
            deleted=event_name == CatalogEventName.CATEGORY_DELETED,
            parent_category_id=str(parent_id) if parent_id else None,
            name=value,
        )

    if event_name in (
        CatalogEventName.COLLECTION_CREATED,
        CatalogEventName.COLLECTION_UPDATED,
        CatalogEventName.COLLECTION_DELETED,
    ):
        return CollectionChanged(collection_id=_require(data, "id", value), name=value)

    if event_name in (
        CatalogEventName.ORDER_PLACED,
        CatalogEventName.ORDER_UPDATED,
        CatalogEventName.ORDER_CANCELED,
    ):
        return OrderChanged(order_id=_require(data, "id", value), name=value)

    if event_name == CatalogEventName.OFFER_STATUS_CHANGED:
        new_status = data.get("new_status")
        return ReservationStatusChanged(
            offer_id=_require(data, "offer_id", value),
            new_status=str(new_status) if new_status else None,
            name=value,
        )

    return FullSyncRequested(name=value)
