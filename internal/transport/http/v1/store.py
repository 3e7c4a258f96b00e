"""
Storefront search handler.

Text search over the product or category index for the public store.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from internal.domain.errors import DomainValidationError, IndexGatewayError
from internal.transport.http.dto import ErrorResponse, SearchResponse, StoreSearchRequest, split_list
from internal.transport.http.v1.handlers import get_search_use_case, parse_entity_type
from internal.usecase.search_index import DEFAULT_LIMIT, SearchIndexInput, SearchIndexUseCase
from pkg.logger.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1/store", tags=["store"])


def _to_int(value, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@router.post(
    "/search",
    response_model=SearchResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid query or type"},
        502: {"model": ErrorResponse, "description": "Search engine error"},
        503: {"model": ErrorResponse, "description": "Search service unavailable"},
    },
)
async def store_search(
    request: StoreSearchRequest,
    use_case: SearchIndexUseCase = Depends(get_search_use_case),
) -> SearchResponse:
    """
    Search products or categories.

    ``filters`` may be a single expression or a list; ``facets`` and
    ``sort`` may be lists or comma-separated strings. Non-numeric limits
    and offsets fall back to their defaults.
    """
    try:
        if not isinstance(request.query, str):
            raise DomainValidationError("Query must be a string")
        input_data = SearchIndexInput(
            query=request.query,
            entity_type=parse_entity_type(request.type),
            filters=split_list(request.filters, comma_separated=False),
            facets=split_list(request.facets) or None,
            sort=split_list(request.sort),
            limit=_to_int(request.limit, DEFAULT_LIMIT),
            offset=_to_int(request.offset, 0),
        )
        result = await use_case.execute(input_data)
    except DomainValidationError as e:
        logger.warning("Invalid store search request", error=e.message)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except IndexGatewayError as e:
        logger.error("Store search failed", error=e.reason)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)

    return SearchResponse(success=True, data=result.to_dict())
