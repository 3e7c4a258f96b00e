"""
PostgreSQL Catalog Repository.

Read-only access to the commerce catalog (Medusa schema) with asyncpg.
Every query is bounded by a timeout and failures surface as
CatalogQueryError.
"""

import json
from collections import defaultdict
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, TypeVar

import asyncpg
from asyncpg import Pool

from internal.domain.catalog import (
    CatalogPage,
    CategoryNode,
    CategoryRef,
    Collection,
    LineItemRef,
    ProductEntity,
    ProductVisibility,
    SalesChannel,
    ShippingProfile,
    Variant,
    VariantPrice,
)
from internal.domain.errors import CatalogQueryError
from pkg.logger.logger import get_logger
from pkg.resilience import CallTimeoutError, call_with_timeout


logger = get_logger(__name__)

T = TypeVar("T")


_CATEGORY_COLUMNS = """
    c.id, c.name, c.handle, c.description, c.parent_category_id,
    c.is_active, c.is_internal, c.rank, c.mpath, c.created_at, c.updated_at,
    parent.name AS parent_name,
    ARRAY(
        SELECT ch.id FROM product_category ch
        WHERE ch.parent_category_id = c.id AND ch.deleted_at IS NULL
        ORDER BY ch.rank, ch.id
    ) AS child_ids,
    ARRAY(
        SELECT ch.name FROM product_category ch
        WHERE ch.parent_category_id = c.id AND ch.deleted_at IS NULL
        ORDER BY ch.rank, ch.id
    ) AS child_names
"""

_CATEGORY_FROM = """
    FROM product_category c
    LEFT JOIN product_category parent
        ON parent.id = c.parent_category_id AND parent.deleted_at IS NULL
"""


class PostgresCatalogRepository:
    """
    PostgreSQL implementation of the catalog query interface.

    Uses asyncpg for async database operations. Nothing is written.
    """

    def __init__(self, pool: Pool, timeout: Optional[float] = 10.0) -> None:
        """
        Initialize the repository.

        Args:
            pool: asyncpg connection pool.
            timeout: Per-query timeout in seconds.
        """
        self._pool = pool
        self._timeout = timeout

    async def _run(self, name: str, func: Callable[[], Awaitable[T]]) -> T:
        try:
            return await call_with_timeout(func(), self._timeout, operation=name)
        except CallTimeoutError as e:
            logger.error("Catalog query timed out", query=name, timeout=self._timeout)
            raise CatalogQueryError(name, e.message) from e
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            logger.error("Catalog query failed", query=name, error=str(e))
            raise CatalogQueryError(name, str(e)) from e

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    async def list_categories(
        self,
        ids: Optional[list[str]] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> CatalogPage[CategoryNode]:
        """
        List categories ordered by ID.

        Args:
            ids: Restrict to these IDs, or None for all categories.
            offset: Number of records to skip.
            limit: Maximum number of records.

        Returns:
            Page of categories with the total matching count.
        """
        async def query() -> CatalogPage[CategoryNode]:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    f"""
                    SELECT {_CATEGORY_COLUMNS}
                    {_CATEGORY_FROM}
                    WHERE c.deleted_at IS NULL
                      AND ($1::text[] IS NULL OR c.id = ANY($1::text[]))
                    ORDER BY c.id
                    LIMIT $2 OFFSET $3
                    """,
                    ids,
                    limit,
                    offset,
                )
                total = await conn.fetchval(
                    """
                    SELECT COUNT(*) FROM product_category c
                    WHERE c.deleted_at IS NULL
                      AND ($1::text[] IS NULL OR c.id = ANY($1::text[]))
                    """,
                    ids,
                )
                return CatalogPage(
                    records=[self._row_to_category(row) for row in rows],
                    total_count=total or 0,
                )

        return await self._run("list_categories", query)

    async def get_categories(self, ids: list[str]) -> list[CategoryNode]:
        """
        Get categories by ID.

        Args:
            ids: Category IDs.

        Returns:
            Categories found; missing IDs are omitted.
        """
        if not ids:
            return []

        async def query() -> list[CategoryNode]:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    f"""
                    SELECT {_CATEGORY_COLUMNS}
                    {_CATEGORY_FROM}
                    WHERE c.deleted_at IS NULL AND c.id = ANY($1::text[])
                    """,
                    ids,
                )
                return [self._row_to_category(row) for row in rows]

        return await self._run("get_categories", query)

    async def get_child_category_ids(self, parent_ids: list[str]) -> dict[str, list[str]]:
        """
        Get direct children of several categories in one query.

        Args:
            parent_ids: Parent category IDs.

        Returns:
            Mapping of parent ID to child IDs.
        """
        if not parent_ids:
            return {}

        async def query() -> dict[str, list[str]]:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT parent_category_id, id
                    FROM product_category
                    WHERE deleted_at IS NULL AND parent_category_id = ANY($1::text[])
                    ORDER BY parent_category_id, rank, id
                    """,
                    parent_ids,
                )
                children: dict[str, list[str]] = defaultdict(list)
                for row in rows:
                    children[row["parent_category_id"]].append(row["id"])
                return dict(children)

        return await self._run("get_child_category_ids", query)

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    async def list_products(
        self,
        ids: Optional[list[str]] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> CatalogPage[ProductEntity]:
        """
        List products with their relations, ordered by ID.

        Args:
            ids: Restrict to these IDs, or None for all products.
            offset: Number of records to skip.
            limit: Maximum number of records.

        Returns:
            Page of products with the total matching count.
        """
        async def query() -> CatalogPage[ProductEntity]:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT p.id, p.title, p.subtitle, p.description, p.handle,
                           p.thumbnail, p.status, p.metadata, p.created_at, p.updated_at,
                           col.id AS collection_id, col.title AS collection_title,
                           col.handle AS collection_handle
                    FROM product p
                    LEFT JOIN product_collection col
                        ON col.id = p.collection_id AND col.deleted_at IS NULL
                    WHERE p.deleted_at IS NULL
                      AND ($1::text[] IS NULL OR p.id = ANY($1::text[]))
                    ORDER BY p.id
                    LIMIT $2 OFFSET $3
                    """,
                    ids,
                    limit,
                    offset,
                )
                total = await conn.fetchval(
                    """
                    SELECT COUNT(*) FROM product p
                    WHERE p.deleted_at IS NULL
                      AND ($1::text[] IS NULL OR p.id = ANY($1::text[]))
                    """,
                    ids,
                )
                products = [self._row_to_product(row) for row in rows]
                if products:
                    await self._load_relations(conn, products)
                return CatalogPage(records=products, total_count=total or 0)

        return await self._run("list_products", query)

    async def _load_relations(self, conn: asyncpg.Connection, products: list[ProductEntity]) -> None:
        by_id = {p.id: p for p in products}
        product_ids = list(by_id.keys())

        category_rows = await conn.fetch(
            """
            SELECT pcp.product_id, c.id, c.name, c.handle
            FROM product_category_product pcp
            JOIN product_category c ON c.id = pcp.product_category_id AND c.deleted_at IS NULL
            WHERE pcp.product_id = ANY($1::text[])
            ORDER BY pcp.product_id, c.rank, c.id
            """,
            product_ids,
        )
        for row in category_rows:
            by_id[row["product_id"]].categories.append(
                CategoryRef(id=row["id"], name=row["name"], handle=row["handle"] or "")
            )

        tag_rows = await conn.fetch(
            """
            SELECT pt.product_id, t.value
            FROM product_tags pt
            JOIN product_tag t ON t.id = pt.product_tag_id AND t.deleted_at IS NULL
            WHERE pt.product_id = ANY($1::text[])
            ORDER BY pt.product_id, t.value
            """,
            product_ids,
        )
        for row in tag_rows:
            by_id[row["product_id"]].tags.append(row["value"])

        image_rows = await conn.fetch(
            """
            SELECT product_id, url
            FROM image
            WHERE deleted_at IS NULL AND product_id = ANY($1::text[])
            ORDER BY product_id, rank, id
            """,
            product_ids,
        )
        for row in image_rows:
            by_id[row["product_id"]].images.append(row["url"])

        channel_rows = await conn.fetch(
            """
            SELECT psc.product_id, sc.id, sc.name
            FROM product_sales_channel psc
            JOIN sales_channel sc ON sc.id = psc.sales_channel_id AND sc.deleted_at IS NULL
            WHERE psc.deleted_at IS NULL AND psc.product_id = ANY($1::text[])
            ORDER BY psc.product_id, sc.created_at, sc.id
            """,
            product_ids,
        )
        for row in channel_rows:
            by_id[row["product_id"]].sales_channels.append(
                SalesChannel(id=row["id"], name=row["name"] or row["id"])
            )

        profile_rows = await conn.fetch(
            """
            SELECT psp.product_id, sp.id, sp.name, sp.type
            FROM product_shipping_profile psp
            JOIN shipping_profile sp ON sp.id = psp.shipping_profile_id AND sp.deleted_at IS NULL
            WHERE psp.deleted_at IS NULL AND psp.product_id = ANY($1::text[])
            """,
            product_ids,
        )
        for row in profile_rows:
            by_id[row["product_id"]].shipping_profile = ShippingProfile(
                id=row["id"], name=row["name"] or "", type=row["type"] or "default"
            )

        variant_rows = await conn.fetch(
            """
            SELECT id, product_id, sku, title, manage_inventory, allow_backorder
            FROM product_variant
            WHERE deleted_at IS NULL AND product_id = ANY($1::text[])
            ORDER BY product_id, variant_rank, id
            """,
            product_ids,
        )
        variants_by_id: dict[str, Variant] = {}
        for row in variant_rows:
            variant = Variant(
                id=row["id"],
                sku=row["sku"],
                title=row["title"] or "",
                manage_inventory=bool(row["manage_inventory"]),
                allow_backorder=bool(row["allow_backorder"]),
            )
            variants_by_id[variant.id] = variant
            by_id[row["product_id"]].variants.append(variant)

        if not variants_by_id:
            return

        price_rows = await conn.fetch(
            """
            SELECT pvps.variant_id, pr.amount, pr.currency_code
            FROM product_variant_price_set pvps
            JOIN price pr
                ON pr.price_set_id = pvps.price_set_id
               AND pr.deleted_at IS NULL
               AND pr.price_list_id IS NULL
            WHERE pvps.deleted_at IS NULL AND pvps.variant_id = ANY($1::text[])
            ORDER BY pvps.variant_id, pr.currency_code, pr.amount
            """,
            list(variants_by_id.keys()),
        )
        for row in price_rows:
            variants_by_id[row["variant_id"]].prices.append(
                VariantPrice(amount=float(row["amount"]), currency_code=row["currency_code"])
            )

    async def list_product_visibility(
        self,
        category_ids: list[str],
        offset: int = 0,
        limit: int = 500,
    ) -> list[ProductVisibility]:
        """
        List sales channel memberships of products in any of the categories.

        Args:
            category_ids: Category IDs to match memberships against.
            offset: Number of products to skip.
            limit: Maximum number of products.

        Returns:
            One entry per product, ordered by product ID.
        """
        if not category_ids:
            return []

        async def query() -> list[ProductVisibility]:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT p.id,
                           ARRAY(
                               SELECT psc.sales_channel_id FROM product_sales_channel psc
                               WHERE psc.product_id = p.id AND psc.deleted_at IS NULL
                               ORDER BY psc.sales_channel_id
                           ) AS sales_channel_ids
                    FROM product p
                    WHERE p.deleted_at IS NULL
                      AND EXISTS (
                          SELECT 1 FROM product_category_product pcp
                          WHERE pcp.product_id = p.id
                            AND pcp.product_category_id = ANY($1::text[])
                      )
                    ORDER BY p.id
                    LIMIT $2 OFFSET $3
                    """,
                    category_ids,
                    limit,
                    offset,
                )
                return [
                    ProductVisibility(
                        product_id=row["id"],
                        sales_channel_ids=tuple(row["sales_channel_ids"] or ()),
                    )
                    for row in rows
                ]

        return await self._run("list_product_visibility", query)

    async def list_product_ids_in_categories(self, category_ids: list[str]) -> list[str]:
        """
        Get IDs of products assigned to any of the categories.

        Args:
            category_ids: Category IDs.

        Returns:
            Distinct product IDs, sorted.
        """
        if not category_ids:
            return []

        async def query() -> list[str]:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT DISTINCT pcp.product_id
                    FROM product_category_product pcp
                    JOIN product p ON p.id = pcp.product_id AND p.deleted_at IS NULL
                    WHERE pcp.product_category_id = ANY($1::text[])
                    ORDER BY pcp.product_id
                    """,
                    category_ids,
                )
                return [row["product_id"] for row in rows]

        return await self._run("list_product_ids_in_categories", query)

    async def list_product_ids_by_collection(self, collection_id: str) -> list[str]:
        """
        Get IDs of products in a collection.

        Args:
            collection_id: Collection ID.

        Returns:
            Product IDs, sorted.
        """
        async def query() -> list[str]:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT id FROM product
                    WHERE deleted_at IS NULL AND collection_id = $1
                    ORDER BY id
                    """,
                    collection_id,
                )
                return [row["id"] for row in rows]

        return await self._run("list_product_ids_by_collection", query)

    async def list_product_ids_updated_since(self, since: datetime) -> list[str]:
        """
        Get IDs of products mutated since a point in time.

        A product counts as mutated when the product row, one of its
        variants, or an inventory level backing one of its variants
        changed.

        Args:
            since: Lower bound (inclusive) on ``updated_at``.

        Returns:
            Distinct product IDs, sorted.
        """
        async def query() -> list[str]:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT p.id AS product_id
                    FROM product p
                    WHERE p.deleted_at IS NULL AND p.updated_at >= $1
                    UNION
                    SELECT pv.product_id
                    FROM product_variant pv
                    WHERE pv.product_id IS NOT NULL AND pv.updated_at >= $1
                    UNION
                    SELECT pv.product_id
                    FROM inventory_level il
                    JOIN product_variant_inventory_item pvii
                        ON pvii.inventory_item_id = il.inventory_item_id
                       AND pvii.deleted_at IS NULL
                    JOIN product_variant pv
                        ON pv.id = pvii.variant_id AND pv.deleted_at IS NULL
                    WHERE il.updated_at >= $1
                    ORDER BY product_id
                    """,
                    since,
                )
                return [row["product_id"] for row in rows]

        return await self._run("list_product_ids_updated_since", query)

    async def get_product_ids_for_variants(self, variant_ids: list[str]) -> dict[str, str]:
        """
        Resolve owning product IDs of variants, including deleted variants.

        Args:
            variant_ids: Variant IDs.

        Returns:
            Mapping of variant ID to product ID.
        """
        if not variant_ids:
            return {}

        async def query() -> dict[str, str]:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT id, product_id FROM product_variant
                    WHERE id = ANY($1::text[]) AND product_id IS NOT NULL
                    """,
                    variant_ids,
                )
                return {row["id"]: row["product_id"] for row in rows}

        return await self._run("get_product_ids_for_variants", query)

    # ------------------------------------------------------------------
    # Orders and reservations
    # ------------------------------------------------------------------

    async def get_order_line_items(self, order_id: str) -> list[LineItemRef]:
        """
        Get product/variant references of an order's line items.

        Args:
            order_id: Order ID.

        Returns:
            Line item references (empty if the order does not exist).
        """
        async def query() -> list[LineItemRef]:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT li.product_id, li.variant_id
                    FROM order_item oi
                    JOIN order_line_item li ON li.id = oi.item_id AND li.deleted_at IS NULL
                    WHERE oi.order_id = $1 AND oi.deleted_at IS NULL
                    """,
                    order_id,
                )
                return [
                    LineItemRef(product_id=row["product_id"], variant_id=row["variant_id"])
                    for row in rows
                ]

        return await self._run("get_order_line_items", query)

    async def get_offer_line_items(self, offer_id: str) -> list[LineItemRef]:
        """
        Get product/variant references of an offer's items.

        Args:
            offer_id: Offer ID.

        Returns:
            Line item references (empty if the offer does not exist).
        """
        async def query() -> list[LineItemRef]:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT product_id, variant_id
                    FROM offer_item
                    WHERE offer_id = $1 AND deleted_at IS NULL
                    """,
                    offer_id,
                )
                return [
                    LineItemRef(product_id=row["product_id"], variant_id=row["variant_id"])
                    for row in rows
                ]

        return await self._run("get_offer_line_items", query)

    # ------------------------------------------------------------------
    # Sales channels and inventory
    # ------------------------------------------------------------------

    async def list_sales_channels(self) -> list[SalesChannel]:
        """
        List all sales channels in creation order.

        Returns:
            Sales channels.
        """
        async def query() -> list[SalesChannel]:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT id, name FROM sales_channel
                    WHERE deleted_at IS NULL
                    ORDER BY created_at, id
                    """
                )
                return [SalesChannel(id=row["id"], name=row["name"] or row["id"]) for row in rows]

        return await self._run("list_sales_channels", query)

    async def get_variant_availability(
        self,
        variant_ids: list[str],
        sales_channel_id: str,
    ) -> dict[str, int]:
        """
        Compute sellable quantity per variant for a sales channel.

        For each inventory item a variant requires, the stocked minus
        reserved quantity across the channel's stock locations is divided
        by the required quantity; the variant quantity is the minimum over
        its items. Variants without inventory items are omitted.

        Args:
            variant_ids: Variant IDs.
            sales_channel_id: Sales channel whose stock locations count.

        Returns:
            Mapping of variant ID to available quantity.
        """
        if not variant_ids:
            return {}

        async def query() -> dict[str, int]:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT pvii.variant_id,
                           pvii.inventory_item_id,
                           pvii.required_quantity,
                           COALESCE(SUM(il.stocked_quantity - il.reserved_quantity), 0) AS available
                    FROM product_variant_inventory_item pvii
                    LEFT JOIN inventory_level il
                        ON il.inventory_item_id = pvii.inventory_item_id
                       AND il.deleted_at IS NULL
                       AND il.location_id IN (
                           SELECT scl.stock_location_id
                           FROM sales_channel_stock_location scl
                           WHERE scl.sales_channel_id = $2 AND scl.deleted_at IS NULL
                       )
                    WHERE pvii.deleted_at IS NULL AND pvii.variant_id = ANY($1::text[])
                    GROUP BY pvii.variant_id, pvii.inventory_item_id, pvii.required_quantity
                    """,
                    variant_ids,
                    sales_channel_id,
                )
                quantities: dict[str, int] = {}
                for row in rows:
                    required = max(int(row["required_quantity"] or 1), 1)
                    item_quantity = max(int(row["available"]) // required, 0)
                    current = quantities.get(row["variant_id"])
                    quantities[row["variant_id"]] = (
                        item_quantity if current is None else min(current, item_quantity)
                    )
                return quantities

        return await self._run("get_variant_availability", query)

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    def _row_to_category(self, row: asyncpg.Record) -> CategoryNode:
        """
        Convert database row to CategoryNode.

        Args:
            row: Database row.

        Returns:
            CategoryNode instance.
        """
        return CategoryNode(
            id=row["id"],
            name=row["name"],
            handle=row["handle"] or "",
            description=row["description"] or "",
            parent_category_id=row["parent_category_id"],
            parent_name=row["parent_name"],
            child_ids=list(row["child_ids"] or []),
            child_names=list(row["child_names"] or []),
            is_active=bool(row["is_active"]),
            is_internal=bool(row["is_internal"]),
            rank=row["rank"] or 0,
            mpath=row["mpath"] or "",
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _row_to_product(self, row: asyncpg.Record) -> ProductEntity:
        collection = None
        if row["collection_id"]:
            collection = Collection(
                id=row["collection_id"],
                title=row["collection_title"] or "",
                handle=row["collection_handle"] or "",
            )
        return ProductEntity(
            id=row["id"],
            title=row["title"] or "",
            subtitle=row["subtitle"],
            description=row["description"],
            handle=row["handle"] or "",
            thumbnail=row["thumbnail"],
            status=row["status"] or "draft",
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            collection=collection,
            metadata=self._parse_metadata(row["metadata"]),
        )

    def _parse_metadata(self, value: Any) -> dict[str, Any]:
        """
        Parse a jsonb column that asyncpg may hand back as text.

        Args:
            value: Raw column value.

        Returns:
            Metadata dictionary (empty when missing or malformed).
        """
        if not value:
            return {}
        if isinstance(value, dict):
            return value
        try:
            parsed = json.loads(value)
        except (TypeError, ValueError):
            logger.warning("Ignoring malformed product metadata")
            return {}
        return parsed if isinstance(parsed, dict) else {}


async def create_pool(dsn: str, min_size: int = 2, max_size: int = 10) -> Pool:
    """
    Create an asyncpg connection pool.

    Args:
        dsn: Database connection string.
        min_size: Minimum pool size.
        max_size: Maximum pool size.

    Returns:
        asyncpg connection pool.
    """
    return await asyncpg.create_pool(
        dsn=dsn,
        min_size=min_size,
        max_size=max_size,
    )
