"""
Metrics infrastructure package.
"""
from .prometheus import (
    HTTP_REQUESTS_TOTAL,
    HTTP_REQUEST_DURATION,
    SYNC_BATCHES_TOTAL,
    SYNC_DOCUMENTS_TOTAL,
    SYNC_BATCH_DURATION,
    SYNC_TRANSFORM_ERRORS,
    SYNC_COMPENSATIONS_TOTAL,
    RESOLUTION_FALLBACKS_TOTAL,
    EVENTS_CONSUMED_TOTAL,
    RECONCILIATION_RUNS_TOTAL,
    RECONCILIATION_PRODUCTS,
    REBUILD_RUNS_TOTAL,
    REBUILD_IN_PROGRESS,
)

__all__ = [
    "HTTP_REQUESTS_TOTAL",
    "HTTP_REQUEST_DURATION",
    "SYNC_BATCHES_TOTAL",
    "SYNC_DOCUMENTS_TOTAL",
    "SYNC_BATCH_DURATION",
    "SYNC_TRANSFORM_ERRORS",
    "SYNC_COMPENSATIONS_TOTAL",
    "RESOLUTION_FALLBACKS_TOTAL",
    "EVENTS_CONSUMED_TOTAL",
    "RECONCILIATION_RUNS_TOTAL",
    "RECONCILIATION_PRODUCTS",
    "REBUILD_RUNS_TOTAL",
    "REBUILD_IN_PROGRESS",
]
