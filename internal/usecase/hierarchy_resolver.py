"""
Category Hierarchy Resolver.

Walks parent links to build root-first ancestor paths, expands descendant
sets breadth-first and decides whether a category subtree holds publicly
visible products. Results are memoized per session so that one batch
touching overlapping subtrees never repeats a query.
"""
import asyncio
from typing import Iterable, Optional

from internal.domain.catalog import CategoryNode
from internal.domain.errors import CycleDetectedError
from internal.infrastructure.metrics import RESOLUTION_FALLBACKS_TOTAL
from internal.usecase.protocols import CatalogRepositoryProtocol
from pkg.logger.logger import get_logger


logger = get_logger(__name__)


DEFAULT_MAX_DEPTH = 32
DEFAULT_VISIBILITY_PAGE_SIZE = 500

PATH_SEPARATOR = " > "


class HierarchySession:
    """
    Per-invocation memoization cache over the category tree.

    Holds an arena of resolved nodes keyed by ID together with memoized
    root-first paths, child lists, descendant sets and visibility flags.
    A session must not outlive the sync invocation that created it, so
    catalog changes are picked up by the next invocation.
    """

    def __init__(
        self,
        catalog: CatalogRepositoryProtocol,
        public_channel_id: Optional[str] = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
        visibility_page_size: int = DEFAULT_VISIBILITY_PAGE_SIZE,
        channel_resolved: bool = True,
    ) -> None:
        self._catalog = catalog
        self._public_channel_id = public_channel_id
        self._channel_resolved = channel_resolved
        self._max_depth = max_depth
        self._visibility_page_size = visibility_page_size

        self._nodes: dict[str, Optional[CategoryNode]] = {}
        self._inflight: dict[str, asyncio.Future] = {}
        self._paths: dict[str, list[CategoryNode]] = {}
        self._children: dict[str, list[str]] = {}
        self._descendants: dict[str, frozenset[str]] = {}
        self._visibility: dict[str, bool] = {}

    @property
    def public_channel_id(self) -> Optional[str]:
        """Public sales channel used for visibility decisions."""
        return self._public_channel_id

    def remember(self, nodes: Iterable[CategoryNode]) -> None:
        """
        Seed the arena with nodes that were already fetched.

        Args:
            nodes: Categories loaded by the caller.
        """
        for node in nodes:
            self._nodes[node.id] = node
            self._children.setdefault(node.id, list(node.child_ids))

    async def get_node(self, category_id: str) -> Optional[CategoryNode]:
        """
        Get a category, querying the catalog at most once per ID.

        Args:
            category_id: Category ID.

        Returns:
            The category, or None if it does not exist.
        """
        if category_id in self._nodes:
            return self._nodes[category_id]

        pending = self._inflight.get(category_id)
        if pending is None:
            pending = asyncio.ensure_future(self._load_node(category_id))
            self._inflight[category_id] = pending
        return await pending

    async def _load_node(self, category_id: str) -> Optional[CategoryNode]:
        try:
            found = await self._catalog.get_categories([category_id])
        finally:
            self._inflight.pop(category_id, None)
        node = found[0] if found else None
        self._nodes[category_id] = node
        if node is not None:
            self._children.setdefault(node.id, list(node.child_ids))
        return node

    async def ancestor_nodes(self, category_id: str) -> list[CategoryNode]:
        """
        Resolve the ancestor chain of a category, root first, itself last.

        A missing category ends the walk; the chain resolved so far is
        returned.

        Args:
            category_id: Category ID.

        Returns:
            Ancestor nodes, root first.

        Raises:
            CycleDetectedError: If a category repeats or the walk exceeds
                the maximum depth.
        """
        if category_id in self._paths:
            return list(self._paths[category_id])

        walked: list[CategoryNode] = []
        seen: list[str] = []
        prefix: list[CategoryNode] = []
        current: Optional[str] = category_id

        while current is not None:
            if current in self._paths:
                prefix = self._paths[current]
                break
            if current in seen or len(seen) >= self._max_depth:
                seen.append(current)
                raise CycleDetectedError(category_id, seen)
            seen.append(current)

            node = await self.get_node(current)
            if node is None:
                if current != category_id:
                    logger.warning(
                        "Ancestor category not found, truncating path",
                        category_id=category_id,
                        missing_id=current,
                    )
                break
            walked.append(node)
            current = node.parent_category_id

        # walked is child first; memoize the path of every node on the walk
        path = list(prefix)
        for node in reversed(walked):
            path.append(node)
            self._paths[node.id] = list(path)

        return list(path)

    async def resolve_ancestor_path(self, category_id: str) -> list[str]:
        """
        Resolve ancestor names, root first, ending with the category itself.

        Args:
            category_id: Category ID.

        Returns:
            Category names, root first.
        """
        return [node.name for node in await self.ancestor_nodes(category_id)]

    async def descendant_ids(self, category_id: str) -> frozenset[str]:
        """
        Enumerate a category and all of its descendants.

        Expansion is breadth-first with one child query per frontier
        level; subtrees expanded earlier in the session are reused.

        Args:
            category_id: Category ID.

        Returns:
            IDs of the category and every descendant.
        """
        if category_id in self._descendants:
            return self._descendants[category_id]

        collected: set[str] = {category_id}
        frontier: list[str] = [category_id]
        depth = 0

        while frontier:
            if depth > self._max_depth:
                raise CycleDetectedError(category_id, sorted(frontier))
            depth += 1

            to_query = [
                cid for cid in frontier
                if cid not in self._children and cid not in self._descendants
            ]
            if to_query:
                fetched = await self._catalog.get_child_category_ids(to_query)
                for cid in to_query:
                    self._children[cid] = list(fetched.get(cid, []))

            next_frontier: list[str] = []
            for cid in frontier:
                memoized = self._descendants.get(cid)
                if memoized is not None and cid != category_id:
                    collected.update(memoized)
                    continue
                for child in self._children.get(cid, []):
                    if child not in collected:
                        collected.add(child)
                        next_frontier.append(child)
            frontier = next_frontier

        result = frozenset(collected)
        self._descendants[category_id] = result
        return result

    async def has_public_descendant_products(self, category_id: str) -> bool:
        """
        Decide whether any product in the subtree is publicly visible.

        A product is publicly visible when it belongs to the public sales
        channel or has no sales channel at all. Products are paged until
        one visible product is found or the subtree is exhausted. Any
        lookup failure yields True, including a failed public channel
        lookup.

        Args:
            category_id: Category ID.

        Returns:
            True if the subtree holds a visible product (or lookup failed).
        """
        if category_id in self._visibility:
            return self._visibility[category_id]

        if not self._channel_resolved:
            RESOLUTION_FALLBACKS_TOTAL.labels(resolver="visibility").inc()
            logger.warning(
                "Public sales channel unknown, treating category as visible",
                category_id=category_id,
            )
            self._visibility[category_id] = True
            return True

        try:
            visible = await self._scan_visibility(category_id)
        except Exception as e:
            RESOLUTION_FALLBACKS_TOTAL.labels(resolver="visibility").inc()
            logger.error(
                "Visibility lookup failed, treating category as visible",
                category_id=category_id,
                error=str(e),
            )
            return True

        self._visibility[category_id] = visible
        return visible

    async def _scan_visibility(self, category_id: str) -> bool:
        category_ids = sorted(await self.descendant_ids(category_id))
        offset = 0
        while True:
            page = await self._catalog.list_product_visibility(
                category_ids,
                offset=offset,
                limit=self._visibility_page_size,
            )
            if any(p.is_public(self._public_channel_id) for p in page):
                return True
            if len(page) < self._visibility_page_size:
                return False
            offset += self._visibility_page_size


class CategoryHierarchyResolver:
    """
    Entry point for hierarchy lookups.

    Batch callers open a session per invocation; the convenience methods
    below run a one-off session each.
    """

    def __init__(
        self,
        catalog: CatalogRepositoryProtocol,
        max_depth: int = DEFAULT_MAX_DEPTH,
        visibility_page_size: int = DEFAULT_VISIBILITY_PAGE_SIZE,
    ) -> None:
        """
        Initialize the resolver.

        Args:
            catalog: Catalog repository.
            max_depth: Maximum number of parent hops before a walk fails.
            visibility_page_size: Page size of the visibility product scan.
        """
        self._catalog = catalog
        self._max_depth = max_depth
        self._visibility_page_size = visibility_page_size

    def session(
        self,
        public_channel_id: Optional[str] = None,
        channel_resolved: bool = True,
    ) -> HierarchySession:
        """
        Open a memoizing session.

        Args:
            public_channel_id: Public sales channel for visibility checks.
            channel_resolved: False when the public channel could not be
                determined; every visibility check then yields True.

        Returns:
            New HierarchySession.
        """
        return HierarchySession(
            self._catalog,
            public_channel_id=public_channel_id,
            max_depth=self._max_depth,
            visibility_page_size=self._visibility_page_size,
            channel_resolved=channel_resolved,
        )

    async def resolve_ancestor_path(self, category_id: str) -> list[str]:
        """Resolve ancestor names of one category, root first."""
        return await self.session().resolve_ancestor_path(category_id)

    async def descendant_ids(self, category_id: str) -> frozenset[str]:
        """Enumerate one category and all of its descendants."""
        return await self.session().descendant_ids(category_id)

    async def has_public_descendant_products(
        self,
        category_id: str,
        public_channel_id: Optional[str] = None,
    ) -> bool:
        """Decide visibility of one category subtree."""
        return await self.session(public_channel_id).has_public_descendant_products(category_id)
