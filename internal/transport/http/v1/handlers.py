"""
FastAPI HTTP Handlers for the search index administration API v1.

Implements rebuild triggers, status, facet and search endpoints.
"""

from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from internal.domain.documents import EntityType
from internal.domain.errors import DomainValidationError, IndexGatewayError
from internal.domain.events import CategoryChanged
from internal.infrastructure.meilisearch.index_settings import DEFAULT_FACETS
from internal.transport.http.dto import (
    ErrorResponse,
    FacetsResponse,
    HealthResponse,
    IndexStatus,
    RebuildAcknowledgementResponse,
    RunStatusResponse,
    SearchResponse,
    StatusResponse,
    SyncCategoryRequest,
    SyncCategoryResponse,
    split_list,
)
from internal.usecase.event_dispatcher import EventDispatcher
from internal.usecase.protocols import IndexGatewayProtocol
from internal.usecase.rebuild_index import RebuildIndexUseCase, RebuildMode
from internal.usecase.search_index import SearchIndexInput, SearchIndexUseCase
from pkg.logger.logger import get_logger

logger = get_logger(__name__)


router = APIRouter(prefix="/api/v1/search-index", tags=["search-index"])


_ENTITY_TYPE_ALIASES = {
    "product": EntityType.PRODUCT,
    "products": EntityType.PRODUCT,
    "category": EntityType.CATEGORY,
    "categories": EntityType.CATEGORY,
}


def parse_entity_type(value: str) -> EntityType:
    """
    Parse an entity type name, singular or plural.

    Raises:
        DomainValidationError: If the name is unknown.
    """
    entity_type = _ENTITY_TYPE_ALIASES.get((value or "").lower())
    if entity_type is None:
        raise DomainValidationError('Type must be "products" or "categories"')
    return entity_type


class Dependencies:
    """Container for handler dependencies."""

    rebuild_use_case: Optional[RebuildIndexUseCase] = None
    search_use_case: Optional[SearchIndexUseCase] = None
    gateway: Optional[IndexGatewayProtocol] = None
    dispatcher: Optional[EventDispatcher] = None


_deps = Dependencies()


def _unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Service not initialized",
    )


def get_rebuild_use_case() -> RebuildIndexUseCase:
    """Get RebuildIndexUseCase instance."""
    if _deps.rebuild_use_case is None:
        raise _unavailable()
    return _deps.rebuild_use_case


def get_search_use_case() -> SearchIndexUseCase:
    """Get SearchIndexUseCase instance."""
    if _deps.search_use_case is None:
        raise _unavailable()
    return _deps.search_use_case


def get_gateway() -> IndexGatewayProtocol:
    """Get the index gateway."""
    if _deps.gateway is None:
        raise _unavailable()
    return _deps.gateway


def get_dispatcher() -> EventDispatcher:
    """Get the event dispatcher."""
    if _deps.dispatcher is None:
        raise _unavailable()
    return _deps.dispatcher


def set_dependencies(
    rebuild_use_case: Optional[RebuildIndexUseCase],
    search_use_case: Optional[SearchIndexUseCase],
    gateway: Optional[IndexGatewayProtocol],
    dispatcher: Optional[EventDispatcher],
) -> None:
    """
    Set handler dependencies.

    Called during application startup.
    """
    _deps.rebuild_use_case = rebuild_use_case
    _deps.search_use_case = search_use_case
    _deps.gateway = gateway
    _deps.dispatcher = dispatcher


def _bad_gateway(e: IndexGatewayError) -> HTTPException:
    logger.error("Index engine call failed", index=e.index, operation=e.operation, error=e.reason)
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)


def _bad_request(e: DomainValidationError) -> HTTPException:
    logger.warning("Validation error", error=e.message)
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)


async def _start(use_case: RebuildIndexUseCase, mode: RebuildMode) -> RebuildAcknowledgementResponse:
    ack = await use_case.start(mode)
    return RebuildAcknowledgementResponse(**ack.to_dict())


_ACCEPTED_RESPONSES = {
    202: {"description": "Run started, or already in progress (accepted=false)"},
    503: {"model": ErrorResponse, "description": "Service unavailable"},
}


# Rebuild triggers
@router.post(
    "/sync",
    response_model=RebuildAcknowledgementResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses=_ACCEPTED_RESPONSES,
)
async def trigger_sync(
    use_case: RebuildIndexUseCase = Depends(get_rebuild_use_case),
) -> RebuildAcknowledgementResponse:
    """
    Sync categories then products into the index in the background.

    Returns:
        Acknowledgement with the run ID.
    """
    return await _start(use_case, RebuildMode.SYNC)


@router.post(
    "/force-sync",
    response_model=RebuildAcknowledgementResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses=_ACCEPTED_RESPONSES,
)
async def trigger_force_sync(
    use_case: RebuildIndexUseCase = Depends(get_rebuild_use_case),
) -> RebuildAcknowledgementResponse:
    """Re-sync every category and product without clearing the index."""
    return await _start(use_case, RebuildMode.FORCE_SYNC)


@router.post(
    "/clear-and-rebuild",
    response_model=RebuildAcknowledgementResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses=_ACCEPTED_RESPONSES,
)
async def trigger_clear_and_rebuild(
    use_case: RebuildIndexUseCase = Depends(get_rebuild_use_case),
) -> RebuildAcknowledgementResponse:
    """
    Delete every document, reapply settings and rebuild both indexes.

    Runs in the background; progress is logged per batch and the final
    status is available from ``GET /status``.
    """
    return await _start(use_case, RebuildMode.CLEAR_AND_REBUILD)


@router.post(
    "/configure",
    response_model=RunStatusResponse,
    responses={502: {"model": ErrorResponse, "description": "Index engine error"}},
)
async def configure_indexes(
    use_case: RebuildIndexUseCase = Depends(get_rebuild_use_case),
) -> RunStatusResponse:
    """Reapply index settings without touching documents."""
    result = await use_case.reconfigure()
    if result["status"] != "succeeded":
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=result.get("error") or "Reconfiguration failed",
        )
    return RunStatusResponse(**result)


@router.post(
    "/sync-category",
    response_model=SyncCategoryResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def sync_category(
    request: SyncCategoryRequest,
    background_tasks: BackgroundTasks,
    dispatcher: EventDispatcher = Depends(get_dispatcher),
) -> SyncCategoryResponse:
    """
    Re-sync one category, its ancestors and every product in its subtree.

    The sync runs after the response is sent.
    """
    logger.info("Category sync requested", category_id=request.category_id)
    background_tasks.add_task(dispatcher.dispatch, CategoryChanged(category_id=request.category_id))
    return SyncCategoryResponse(category_id=request.category_id, accepted=True)


# Status
@router.get("/status", response_model=StatusResponse)
async def index_status(
    gateway: IndexGatewayProtocol = Depends(get_gateway),
    use_case: RebuildIndexUseCase = Depends(get_rebuild_use_case),
) -> StatusResponse:
    """
    Report engine health, document counts and the last run of each mode.

    Count failures are reported as null rather than failing the request.
    """
    healthy = await gateway.health()

    indexes = {}
    for entity_type in EntityType:
        documents = None
        if healthy:
            try:
                documents = await gateway.count_documents(entity_type)
            except IndexGatewayError as e:
                logger.warning("Failed to count documents", index=e.index, error=e.reason)
        indexes[entity_type.value] = IndexStatus(
            name=gateway.index_name(entity_type),
            documents=documents,
        )

    runs = {
        mode: RunStatusResponse(**run) if run else None
        for mode, run in (await use_case.status()).items()
    }
    return StatusResponse(healthy=healthy, indexes=indexes, runs=runs)


@router.get(
    "/facets",
    response_model=FacetsResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid type"},
        502: {"model": ErrorResponse, "description": "Index engine error"},
    },
)
async def get_facets(
    type: str = Query("products", description="products or categories"),
    facets: Optional[str] = Query(None, description="Comma-separated facet names"),
    filter: Optional[List[str]] = Query(None, description="Filter expressions"),
    gateway: IndexGatewayProtocol = Depends(get_gateway),
) -> FacetsResponse:
    """Get facet value counts, optionally narrowed by filters."""
    try:
        entity_type = parse_entity_type(type)
        names = split_list(facets) or list(DEFAULT_FACETS[entity_type])
        distribution = await gateway.facet_distribution(
            entity_type,
            names,
            filters=split_list(filter, comma_separated=False) or None,
        )
    except DomainValidationError as e:
        raise _bad_request(e)
    except IndexGatewayError as e:
        raise _bad_gateway(e)

    return FacetsResponse(entity_type=entity_type.value, facets=distribution)


@router.get(
    "/search",
    response_model=SearchResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid parameters"},
        502: {"model": ErrorResponse, "description": "Index engine error"},
    },
)
async def search_index(
    q: str = Query("", description="Full-text query"),
    type: str = Query("products", description="products or categories"),
    categories: Optional[List[str]] = Query(None, description="Category names, any of"),
    available: Optional[bool] = Query(None, description="Only available products"),
    min_price: Optional[float] = Query(None, ge=0, description="Minimum price"),
    max_price: Optional[float] = Query(None, ge=0, description="Maximum price"),
    currency: Optional[str] = Query(None, description="Currency code"),
    tags: Optional[List[str]] = Query(None, description="Tags, any of"),
    collection: Optional[str] = Query(None, description="Collection handle"),
    sort: Optional[List[str]] = Query(None, description="Sort expressions"),
    limit: int = Query(20, ge=1, le=100, description="Hits per page"),
    offset: int = Query(0, ge=0, description="Hits to skip"),
    use_case: SearchIndexUseCase = Depends(get_search_use_case),
) -> SearchResponse:
    """Faceted search with shorthand product filters."""
    try:
        result = await use_case.execute(
            SearchIndexInput(
                query=q,
                entity_type=parse_entity_type(type),
                categories=categories or [],
                available=available,
                min_price=min_price,
                max_price=max_price,
                currency=currency,
                tags=tags or [],
                collection=collection,
                sort=sort or [],
                limit=limit,
                offset=offset,
            )
        )
    except DomainValidationError as e:
        raise _bad_request(e)
    except IndexGatewayError as e:
        raise _bad_gateway(e)

    return SearchResponse(success=True, data=result.to_dict())


@router.get("/health", response_model=HealthResponse)
async def health_check(gateway: IndexGatewayProtocol = Depends(get_gateway)):
    """
    Health check endpoint.

    Returns:
        200 when the index engine is reachable, 503 otherwise.
    """
    if await gateway.health():
        return HealthResponse(status="healthy")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=HealthResponse(status="unhealthy").model_dump(),
    )


@router.get("/metrics")
async def metrics():
    """
    Prometheus metrics endpoint.

    Returns:
        Prometheus metrics in text format.
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )
