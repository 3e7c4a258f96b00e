"""
Use case package for catalog search sync.

Contains the sync pipeline and the jobs and triggers that drive it.
"""
from .rebuild_index import (
    RebuildAcknowledgement,
    RebuildIndexUseCase,
    RebuildMode,
)
from .reconciliation import ReconciliationJob, ReconciliationReport
from .search_index import (
    SearchIndexInput,
    SearchIndexOutput,
    SearchIndexUseCase,
)
from .sync_orchestrator import SyncOrchestrator
from .sync_triggers import IncrementalSyncTriggers

__all__ = [
    "IncrementalSyncTriggers",
    "RebuildAcknowledgement",
    "RebuildIndexUseCase",
    "RebuildMode",
    "ReconciliationJob",
    "ReconciliationReport",
    "SearchIndexInput",
    "SearchIndexOutput",
    "SearchIndexUseCase",
    "SyncOrchestrator",
]
