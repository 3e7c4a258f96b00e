"""
Redis infrastructure package.
"""
from .sync_state import SyncStateStore

__all__ = ["SyncStateStore"]
