"""
Availability Aggregator.

Batch-resolves sellable quantity per variant and applies the
availability rules used by product documents.
"""
from typing import Iterable, Mapping, Optional

from internal.domain.catalog import ProductEntity, Variant
from internal.infrastructure.metrics import RESOLUTION_FALLBACKS_TOTAL
from internal.usecase.protocols import CatalogRepositoryProtocol
from pkg.logger.logger import get_logger


logger = get_logger(__name__)


def is_variant_available(variant: Variant, quantity: int) -> bool:
    """
    Check whether a variant can be sold.

    Args:
        variant: Variant with inventory flags.
        quantity: Resolved available quantity.

    Returns:
        True if backorders are allowed, inventory is unmanaged, or stock
        is positive.
    """
    return variant.allow_backorder or not variant.manage_inventory or quantity > 0


def is_product_available(product: ProductEntity, quantities: Mapping[str, int]) -> bool:
    """
    Check whether at least one variant of a product can be sold.

    Args:
        product: Product with variants.
        quantities: Available quantity per variant ID.

    Returns:
        True if any variant is available.
    """
    return any(is_variant_available(v, quantities.get(v.id, 0)) for v in product.variants)


class AvailabilityAggregator:
    """
    Resolves available quantity for many variants in one catalog call.

    Failures never raise: every requested variant is reported with
    quantity 0.
    """

    def __init__(self, catalog: CatalogRepositoryProtocol) -> None:
        """
        Initialize the aggregator.

        Args:
            catalog: Catalog repository.
        """
        self._catalog = catalog

    async def resolve_availability(
        self,
        variant_ids: Iterable[str],
        sales_channel_id: Optional[str],
    ) -> dict[str, int]:
        """
        Resolve available quantity per variant for a sales channel.

        Args:
            variant_ids: Variant IDs.
            sales_channel_id: Channel whose stock locations count.

        Returns:
            Mapping containing every requested variant ID.
        """
        ids = list(dict.fromkeys(variant_ids))
        result = {variant_id: 0 for variant_id in ids}
        if not ids:
            return result

        if not sales_channel_id:
            RESOLUTION_FALLBACKS_TOTAL.labels(resolver="availability").inc()
            logger.warning("No sales channel for availability, reporting zero stock", variants=len(ids))
            return result

        try:
            quantities = await self._catalog.get_variant_availability(ids, sales_channel_id)
        except Exception as e:
            RESOLUTION_FALLBACKS_TOTAL.labels(resolver="availability").inc()
            logger.error(
                "Availability lookup failed, reporting zero stock",
                variants=len(ids),
                sales_channel_id=sales_channel_id,
                error=str(e),
            )
            return result

        for variant_id in ids:
            result[variant_id] = max(int(quantities.get(variant_id, 0)), 0)

        logger.debug("Resolved availability", variants=len(ids), sales_channel_id=sales_channel_id)
        return result
