"""
Logger package.
"""
from .logger import (
    setup_logging,
    get_logger,
    set_request_id,
    get_request_id,
    set_sync_run_id,
    get_sync_run_id,
    StructuredLogger,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "set_request_id",
    "get_request_id",
    "set_sync_run_id",
    "get_sync_run_id",
    "StructuredLogger",
]
