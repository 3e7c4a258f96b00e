"""
Meilisearch Index Gateway.

Thin client over the search engine shared by every component that reads
or writes the index. One instance is created at process start and passed
explicitly to its users.
"""
import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar

from meilisearch_python_sdk import AsyncClient
from meilisearch_python_sdk.errors import (
    MeilisearchApiError,
    MeilisearchCommunicationError,
    MeilisearchError,
    MeilisearchTimeoutError,
)
from meilisearch_python_sdk.index import AsyncIndex
from meilisearch_python_sdk.models.settings import Faceting

from internal.domain.documents import EntityType, SearchResult
from internal.domain.errors import IndexGatewayError
from internal.infrastructure.meilisearch.index_settings import (
    DEFAULT_FACETS,
    INDEX_SETTINGS,
    IndexSettings,
)
from pkg.logger.logger import get_logger
from pkg.resilience import (
    CallTimeoutError,
    CircuitBreaker,
    CircuitBreakerError,
    call_with_timeout,
)


logger = get_logger(__name__)

T = TypeVar("T")

_NOT_FOUND_CODES = frozenset({"document_not_found", "index_not_found"})


def _is_not_found(error: MeilisearchApiError) -> bool:
    return getattr(error, "status_code", None) == 404 or getattr(error, "code", None) in _NOT_FOUND_CODES


class MeilisearchIndexGateway:
    """
    Index gateway backed by Meilisearch.

    Every call goes through a circuit breaker and a bounded timeout.
    Write calls wait for the engine task to finish so that a failed
    task is reported as a failed write.
    """

    def __init__(
        self,
        host: str,
        api_key: Optional[str] = None,
        product_index: str = "products",
        category_index: str = "categories",
        request_timeout: float = 10.0,
        task_timeout: float = 60.0,
        circuit_breaker: Optional[CircuitBreaker] = None,
        client: Optional[AsyncClient] = None,
    ) -> None:
        """
        Initialize the gateway.

        Args:
            host: Meilisearch URL.
            api_key: Meilisearch API key.
            product_index: Product index UID.
            category_index: Category index UID.
            request_timeout: Timeout for single HTTP calls in seconds.
            task_timeout: Timeout for waiting on engine tasks in seconds.
            circuit_breaker: Breaker guarding engine calls.
            client: Preconfigured client (tests).
        """
        self._host = host
        self._index_names = {
            EntityType.PRODUCT: product_index,
            EntityType.CATEGORY: category_index,
        }
        self._request_timeout = request_timeout
        self._task_timeout = task_timeout
        self._breaker = circuit_breaker or CircuitBreaker(name="meilisearch")
        self._client = client or AsyncClient(
            url=host,
            api_key=api_key,
            timeout=int(request_timeout),
        )

    def index_name(self, entity_type: EntityType) -> str:
        """
        Get the index UID for an entity type.

        Args:
            entity_type: Entity type.

        Returns:
            Index UID.
        """
        return self._index_names[entity_type]

    def _index(self, entity_type: EntityType) -> AsyncIndex:
        return self._client.index(self.index_name(entity_type))

    async def _call(
        self,
        entity_type: EntityType,
        operation: str,
        func: Callable[[], Awaitable[T]],
        timeout: Optional[float] = None,
    ) -> T:
        index = self.index_name(entity_type)

        async def guarded() -> T:
            return await call_with_timeout(
                func(),
                timeout or self._request_timeout,
                operation=f"{index}.{operation}",
            )

        try:
            return await self._breaker.call(guarded)
        except CircuitBreakerError as e:
            raise IndexGatewayError(index, operation, e.message) from e
        except CallTimeoutError as e:
            logger.error("Index call timed out", index=index, operation=operation)
            raise IndexGatewayError(index, operation, e.message) from e
        except (MeilisearchTimeoutError, MeilisearchCommunicationError) as e:
            logger.error("Index engine unreachable", index=index, operation=operation, error=str(e))
            raise IndexGatewayError(index, operation, str(e)) from e
        except MeilisearchError as e:
            logger.error("Index call failed", index=index, operation=operation, error=str(e))
            raise IndexGatewayError(index, operation, str(e)) from e

    async def _wait(self, entity_type: EntityType, operation: str, task_uid: int) -> None:
        """
        Wait for an engine task and raise if it did not succeed.

        Args:
            entity_type: Entity type of the index.
            operation: Operation name for errors.
            task_uid: Engine task UID.

        Raises:
            IndexGatewayError: If the task failed or timed out.
        """
        timeout_ms = int(self._task_timeout * 1000)
        task = await self._call(
            entity_type,
            f"{operation}.wait",
            lambda: self._client.wait_for_task(task_uid, timeout_in_ms=timeout_ms),
            timeout=self._task_timeout + self._request_timeout,
        )
        status = getattr(task, "status", None)
        if status != "succeeded":
            error = getattr(task, "error", None) or {}
            reason = error.get("message") if isinstance(error, dict) else str(error)
            raise IndexGatewayError(
                self.index_name(entity_type),
                operation,
                f"task {task_uid} {status}: {reason or 'unknown error'}",
            )

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    async def ensure_index(self, entity_type: EntityType) -> None:
        """
        Create the index with primary key ``id`` if it does not exist.

        Args:
            entity_type: Entity type of the index.
        """
        uid = self.index_name(entity_type)

        async def lookup() -> Optional[AsyncIndex]:
            try:
                return await self._client.get_index(uid)
            except MeilisearchApiError as e:
                if _is_not_found(e):
                    return None
                raise

        if await self._call(entity_type, "get_index", lookup) is not None:
            return

        logger.info("Creating index", index=uid)
        await self._call(
            entity_type,
            "create_index",
            lambda: self._client.create_index(uid, primary_key="id"),
            timeout=self._task_timeout,
        )

    async def configure(
        self,
        entity_type: EntityType,
        settings: Optional[IndexSettings] = None,
    ) -> None:
        """
        Ensure the index exists and apply its settings.

        Args:
            entity_type: Entity type of the index.
            settings: Settings to apply; defaults to the built-in settings.
        """
        settings = settings or INDEX_SETTINGS[entity_type]
        await self.ensure_index(entity_type)
        index = self._index(entity_type)

        updates: list[tuple[str, Callable[[], Awaitable[Any]]]] = [
            ("update_filterable_attributes",
             lambda: index.update_filterable_attributes(settings.filterable_attributes)),
            ("update_searchable_attributes",
             lambda: index.update_searchable_attributes(settings.searchable_attributes)),
            ("update_sortable_attributes",
             lambda: index.update_sortable_attributes(settings.sortable_attributes)),
            ("update_displayed_attributes",
             lambda: index.update_displayed_attributes(settings.displayed_attributes)),
            ("update_ranking_rules",
             lambda: index.update_ranking_rules(settings.ranking_rules)),
            ("update_faceting",
             lambda: index.update_faceting(
                 Faceting(
                     max_values_per_facet=settings.max_values_per_facet,
                     sort_facet_values_by=settings.sort_facet_values_by,
                 )
             )),
        ]

        for operation, update in updates:
            task_info = await self._call(entity_type, operation, update)
            await self._wait(entity_type, operation, task_info.task_uid)

        logger.info("Index configured", index=self.index_name(entity_type))

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def upsert_documents(self, entity_type: EntityType, documents: list[dict]) -> None:
        """
        Add or replace documents by ID.

        Args:
            entity_type: Entity type of the index.
            documents: Documents in wire format.

        Raises:
            IndexGatewayError: If the write failed.
        """
        if not documents:
            return
        index = self._index(entity_type)
        task_info = await self._call(
            entity_type,
            "add_documents",
            lambda: index.add_documents(documents, primary_key="id"),
        )
        await self._wait(entity_type, "add_documents", task_info.task_uid)
        logger.debug(
            "Documents upserted",
            index=self.index_name(entity_type),
            count=len(documents),
        )

    async def delete_documents(self, entity_type: EntityType, ids: list[str]) -> None:
        """
        Delete documents by ID. Missing IDs are ignored by the engine.

        Args:
            entity_type: Entity type of the index.
            ids: Document IDs.

        Raises:
            IndexGatewayError: If the delete failed.
        """
        if not ids:
            return
        index = self._index(entity_type)
        task_info = await self._call(
            entity_type,
            "delete_documents",
            lambda: index.delete_documents(list(ids)),
        )
        await self._wait(entity_type, "delete_documents", task_info.task_uid)
        logger.debug(
            "Documents deleted",
            index=self.index_name(entity_type),
            count=len(ids),
        )

    async def delete_all_documents(self, entity_type: EntityType) -> None:
        """
        Delete every document of an index, keeping its settings.

        Args:
            entity_type: Entity type of the index.
        """
        await self.ensure_index(entity_type)
        index = self._index(entity_type)
        task_info = await self._call(entity_type, "delete_all_documents", index.delete_all_documents)
        await self._wait(entity_type, "delete_all_documents", task_info.task_uid)
        logger.info("All documents deleted", index=self.index_name(entity_type))

    async def get_document(self, entity_type: EntityType, document_id: str) -> Optional[dict]:
        """
        Get one document by ID.

        Args:
            entity_type: Entity type of the index.
            document_id: Document ID.

        Returns:
            The stored document, or None if it does not exist.
        """
        index = self._index(entity_type)

        async def fetch() -> Optional[dict]:
            try:
                return await index.get_document(document_id)
            except MeilisearchApiError as e:
                if _is_not_found(e):
                    return None
                raise

        document = await self._call(entity_type, "get_document", fetch)
        return dict(document) if document is not None else None

    async def get_documents(self, entity_type: EntityType, ids: list[str]) -> dict[str, dict]:
        """
        Get several documents by ID.

        Args:
            entity_type: Entity type of the index.
            ids: Document IDs.

        Returns:
            Mapping of ID to stored document for the IDs that exist.
        """
        if not ids:
            return {}
        documents = await asyncio.gather(*(self.get_document(entity_type, i) for i in ids))
        return {doc_id: doc for doc_id, doc in zip(ids, documents) if doc is not None}

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

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
        """
        Run a faceted query.

        Args:
            entity_type: Entity type of the index.
            query: Full-text query.
            filters: Filter expressions, combined with AND.
            facets: Facets to aggregate; defaults to the index's standard facets.
            sort: Sort expressions such as ``min_price:asc``.
            limit: Maximum number of hits.
            offset: Number of hits to skip.

        Returns:
            Hits, facet distribution and totals.
        """
        index = self._index(entity_type)
        results = await self._call(
            entity_type,
            "search",
            lambda: index.search(
                query,
                offset=offset,
                limit=limit,
                filter=filters or None,
                facets=facets if facets is not None else DEFAULT_FACETS[entity_type],
                sort=sort or None,
            ),
        )
        return SearchResult(
            hits=list(results.hits),
            facet_distribution=dict(results.facet_distribution or {}),
            estimated_total_hits=results.estimated_total_hits or 0,
            processing_time_ms=results.processing_time_ms or 0,
        )

    async def facet_distribution(
        self,
        entity_type: EntityType,
        facets: list[str],
        filters: Optional[list[str]] = None,
    ) -> dict[str, dict[str, int]]:
        """
        Aggregate facet counts without returning hits.

        Args:
            entity_type: Entity type of the index.
            facets: Facets to aggregate.
            filters: Optional filter expressions.

        Returns:
            Facet name to value counts.
        """
        result = await self.search(entity_type, "", filters=filters, facets=facets, limit=0)
        return result.facet_distribution

    async def count_documents(self, entity_type: EntityType) -> int:
        """
        Get the number of documents in an index.

        Args:
            entity_type: Entity type of the index.

        Returns:
            Document count.
        """
        index = self._index(entity_type)
        stats = await self._call(entity_type, "get_stats", index.get_stats)
        return stats.number_of_documents

    async def health(self) -> bool:
        """
        Check whether the engine is reachable.

        Returns:
            True if healthy.
        """
        try:
            await call_with_timeout(self._client.health(), self._request_timeout, "health")
            return True
        except (CallTimeoutError, MeilisearchError) as e:
            logger.warning("Index engine health check failed", error=str(e))
            return False

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
        logger.info("Index gateway closed", host=self._host)
