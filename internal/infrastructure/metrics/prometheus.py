"""
Prometheus Metrics for Catalog Search Sync.

Defines all metrics for monitoring sync throughput and health.
"""

from prometheus_client import Counter, Histogram, Gauge

# API metrics
HTTP_REQUESTS_TOTAL = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status_code']
)

HTTP_REQUEST_DURATION = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Sync orchestrator metrics
SYNC_BATCHES_TOTAL = Counter(
    'search_sync_batches_total',
    'Sync batches processed',
    ['entity_type', 'status']  # status: succeeded, compensated, compensation_failed, fetch_failed, snapshot_failed
)

SYNC_DOCUMENTS_TOTAL = Counter(
    'search_sync_documents_total',
    'Documents written to or removed from the index',
    ['entity_type', 'operation']  # operation: created, updated, deleted
)

SYNC_BATCH_DURATION = Histogram(
    'search_sync_batch_duration_seconds',
    'Duration of one sync batch',
    ['entity_type'],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
)

SYNC_TRANSFORM_ERRORS = Counter(
    'search_sync_transform_errors_total',
    'Entities skipped because their document could not be built',
    ['entity_type']
)

SYNC_COMPENSATIONS_TOTAL = Counter(
    'search_sync_compensations_total',
    'Batch rollbacks',
    ['entity_type', 'status']  # status: succeeded, failed
)

# Lookup fallbacks
RESOLUTION_FALLBACKS_TOTAL = Counter(
    'search_sync_resolution_fallbacks_total',
    'Lookups that failed and fell back to a safe default',
    ['resolver']  # resolver: visibility, availability, ancestor_path, sales_channel
)

# Triggers and jobs
EVENTS_CONSUMED_TOTAL = Counter(
    'search_sync_events_consumed_total',
    'Catalog lifecycle events consumed',
    ['event', 'status']  # status: success, error, ignored, invalid
)

RECONCILIATION_RUNS_TOTAL = Counter(
    'search_sync_reconciliation_runs_total',
    'Reconciliation job runs',
    ['status']  # status: succeeded, partial, failed, idle
)

RECONCILIATION_PRODUCTS = Histogram(
    'search_sync_reconciliation_products',
    'Products re-synced per reconciliation run',
    buckets=[0, 1, 5, 10, 25, 50, 100, 250, 1000]
)

REBUILD_RUNS_TOTAL = Counter(
    'search_sync_rebuild_runs_total',
    'Rebuild procedure runs',
    ['mode', 'status']  # status: succeeded, failed, rejected
)

REBUILD_IN_PROGRESS = Gauge(
    'search_sync_rebuild_in_progress',
    'Rebuild runs currently executing',
    ['mode']
)
