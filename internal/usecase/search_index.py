"""
Search Index Use Case.

Faceted search over the product and category indexes, used by the
administrative search endpoint and the storefront search endpoint.
"""
from dataclasses import dataclass, field
from typing import Optional

from internal.domain.documents import EntityType
from internal.domain.errors import DomainValidationError
from internal.usecase.protocols import IndexGatewayProtocol
from pkg.logger.logger import get_logger


logger = get_logger(__name__)


MAX_LIMIT = 100
DEFAULT_LIMIT = 20


def _quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _any_of(field_name: str, values: list[str]) -> Optional[str]:
    clauses = [f"{field_name} = {_quote(v)}" for v in values if v]
    if not clauses:
        return None
    if len(clauses) == 1:
        return clauses[0]
    return "(" + " OR ".join(clauses) + ")"


@dataclass
class SearchIndexInput:
    """Input for SearchIndexUseCase."""

    query: str = ""
    entity_type: EntityType = EntityType.PRODUCT
    filters: list[str] = field(default_factory=list)
    facets: Optional[list[str]] = None
    sort: list[str] = field(default_factory=list)
    limit: int = DEFAULT_LIMIT
    offset: int = 0

    # Shorthand product filters
    categories: list[str] = field(default_factory=list)
    available: Optional[bool] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    currency: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    collection: Optional[str] = None


@dataclass
class SearchIndexOutput:
    """Output for SearchIndexUseCase."""

    hits: list[dict]
    facet_distribution: dict[str, dict[str, int]]
    total_hits: int
    query: str
    filters: list[str]
    processing_time_ms: int
    limit: int
    offset: int

    @property
    def page(self) -> int:
        return self.offset // self.limit + 1

    @property
    def total_pages(self) -> int:
        return -(-self.total_hits // self.limit)

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "hits": self.hits,
            "facetDistribution": self.facet_distribution,
            "totalHits": self.total_hits,
            "query": self.query,
            "filters": self.filters,
            "processingTimeMs": self.processing_time_ms,
            "pagination": {
                "page": self.page,
                "limit": self.limit,
                "total": self.total_hits,
                "totalPages": self.total_pages,
            },
        }


def build_filters(input_data: SearchIndexInput) -> list[str]:
    """
    Combine raw filter expressions with the shorthand product filters.

    Args:
        input_data: Search input.

    Returns:
        Filter expressions, combined with AND by the index.
    """
    filters = [f.strip() for f in input_data.filters if f and f.strip()]

    categories = _any_of("category_names", input_data.categories)
    if categories:
        filters.append(categories)
    if input_data.available is not None:
        filters.append(f"is_available = {'true' if input_data.available else 'false'}")
    if input_data.min_price is not None:
        filters.append(f"min_price >= {input_data.min_price}")
    if input_data.max_price is not None:
        filters.append(f"max_price <= {input_data.max_price}")
    if input_data.currency:
        filters.append(f"currencies = {_quote(input_data.currency)}")
    tags = _any_of("tags", input_data.tags)
    if tags:
        filters.append(tags)
    if input_data.collection:
        filters.append(f"collection_handle = {_quote(input_data.collection)}")

    return filters


class SearchIndexUseCase:
    """
    Use case for faceted search over the index.

    Limits are clamped to 1..100 and offsets to zero or more.
    """

    def __init__(self, gateway: IndexGatewayProtocol) -> None:
        """
        Initialize the use case.

        Args:
            gateway: Search index gateway.
        """
        self._gateway = gateway

    async def execute(self, input_data: SearchIndexInput) -> SearchIndexOutput:
        """
        Execute the search use case.

        Args:
            input_data: Search input with query and filters.

        Returns:
            Hits, facets and pagination.

        Raises:
            DomainValidationError: If the query is not a string.
            IndexGatewayError: If the index cannot be queried.
        """
        if not isinstance(input_data.query, str):
            raise DomainValidationError("Query must be a string")

        limit = max(1, min(MAX_LIMIT, input_data.limit or DEFAULT_LIMIT))
        offset = max(0, input_data.offset or 0)
        filters = build_filters(input_data)

        logger.info(
            "Searching index",
            query=input_data.query[:50],
            entity_type=input_data.entity_type.value,
            filters=len(filters),
            limit=limit,
            offset=offset,
        )

        result = await self._gateway.search(
            input_data.entity_type,
            query=input_data.query,
            filters=filters,
            facets=input_data.facets,
            sort=[s.strip() for s in input_data.sort if s and s.strip()],
            limit=limit,
            offset=offset,
        )

        logger.info(
            "Search completed",
            hits=len(result.hits),
            total=result.estimated_total_hits,
            processing_time_ms=result.processing_time_ms,
        )

        return SearchIndexOutput(
            hits=result.hits,
            facet_distribution=result.facet_distribution,
            total_hits=result.estimated_total_hits,
            query=input_data.query,
            filters=filters,
            processing_time_ms=result.processing_time_ms,
            limit=limit,
            offset=offset,
        )
