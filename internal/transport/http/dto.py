"""
Data Transfer Objects for the search index API.

Contains Pydantic models for request/response validation.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


def split_list(value: Union[str, List[str], None], comma_separated: bool = True) -> List[str]:
    """
    Normalize a string-or-list parameter into a list of non-empty strings.

    Args:
        value: Raw parameter.
        comma_separated: Split a single string on commas.

    Returns:
        Stripped, non-empty values.
    """
    if value is None:
        return []
    if isinstance(value, str):
        parts = value.split(",") if comma_separated else [value]
    else:
        parts = [v for v in value if isinstance(v, str)]
    return [p.strip() for p in parts if p and p.strip()]


class ErrorResponse(BaseModel):
    """Error response body."""

    detail: str = Field(..., description="Error message")


# Rebuild DTOs
class RebuildAcknowledgementResponse(BaseModel):
    """Immediate answer to a background rebuild request."""

    run_id: str = Field(..., description="Run identifier")
    mode: str = Field(..., description="Rebuild mode")
    accepted: bool = Field(..., description="False if a run of this mode is already in progress")
    requested_at: str = Field(..., description="Request timestamp")
    message: str = Field("", description="Human-readable outcome")

    class Config:
        json_schema_extra = {
            "example": {
                "run_id": "8f14e45fceea167a5a36dedd4bea2543",
                "mode": "clear_and_rebuild",
                "accepted": True,
                "requested_at": "2026-10-18T09:30:00+00:00",
                "message": "clear_and_rebuild started in the background",
            }
        }


class RunStatusResponse(BaseModel):
    """Final or current status of a rebuild run."""

    run_id: str = Field(..., description="Run identifier")
    mode: str = Field(..., description="Rebuild mode")
    status: str = Field(..., description="running, succeeded, partial, failed or cancelled")
    started_at: Optional[str] = Field(None, description="Start timestamp")
    finished_at: Optional[str] = Field(None, description="End timestamp")
    categories: Optional[Dict[str, Any]] = Field(None, description="Category sync counts")
    products: Optional[Dict[str, Any]] = Field(None, description="Product sync counts")
    error: Optional[str] = Field(None, description="Error message")


class SyncCategoryRequest(BaseModel):
    """Request body for re-syncing one category and its products."""

    category_id: str = Field(..., min_length=1, description="Category ID")

    class Config:
        json_schema_extra = {"example": {"category_id": "pcat_01HZX3"}}


class SyncCategoryResponse(BaseModel):
    """Acknowledgement of a category sync request."""

    category_id: str = Field(..., description="Category ID")
    accepted: bool = Field(True, description="Whether the sync was scheduled")


# Status DTOs
class IndexStatus(BaseModel):
    """Document count of one index."""

    name: str = Field(..., description="Index UID")
    documents: Optional[int] = Field(None, description="Number of documents, null if unknown")


class StatusResponse(BaseModel):
    """Index and rebuild status."""

    healthy: bool = Field(..., description="Whether the index engine is reachable")
    indexes: Dict[str, IndexStatus] = Field(..., description="Per entity type")
    runs: Dict[str, Optional[RunStatusResponse]] = Field(
        default_factory=dict, description="Last run per rebuild mode"
    )


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="healthy or unhealthy")
    service: str = Field("catalog-search-sync", description="Service name")


class FacetsResponse(BaseModel):
    """Facet value counts."""

    entity_type: str = Field(..., description="product or category")
    facets: Dict[str, Dict[str, int]] = Field(..., description="Facet name to value counts")


# Search DTOs
class PaginationInfo(BaseModel):
    """Pagination metadata."""

    page: int = Field(..., ge=1, description="Current page number")
    limit: int = Field(..., ge=1, description="Items per page")
    total: int = Field(..., ge=0, description="Estimated total hits")
    totalPages: int = Field(..., ge=0, description="Total number of pages")


class SearchData(BaseModel):
    """Search hits and facets."""

    hits: List[Dict[str, Any]] = Field(..., description="Matching documents")
    facetDistribution: Dict[str, Dict[str, int]] = Field(default_factory=dict)
    totalHits: int = Field(..., description="Estimated total hits")
    query: str = Field("", description="Query text")
    filters: List[str] = Field(default_factory=list, description="Applied filter expressions")
    processingTimeMs: int = Field(0, description="Engine processing time")
    pagination: PaginationInfo


class SearchResponse(BaseModel):
    """Search response envelope."""

    success: bool = Field(True)
    data: SearchData


class StoreSearchRequest(BaseModel):
    """Storefront search request."""

    query: Any = Field("", description="Full-text query")
    type: str = Field("products", description="products or categories")
    limit: Any = Field(20, description="Hits per page (1-100)")
    offset: Any = Field(0, description="Hits to skip")
    filters: Optional[Union[str, List[str]]] = Field(None, description="Filter expressions")
    facets: Optional[Union[str, List[str]]] = Field(None, description="Facets, list or comma-separated")
    sort: Optional[Union[str, List[str]]] = Field(None, description="Sort, list or comma-separated")
    region_id: Optional[str] = Field(None, description="Storefront region")

    class Config:
        json_schema_extra = {
            "example": {
                "query": "Dichtung",
                "type": "products",
                "limit": 20,
                "offset": 0,
                "filters": ["is_available = true"],
                "facets": "category_names,tags",
                "sort": "min_price:asc",
            }
        }
