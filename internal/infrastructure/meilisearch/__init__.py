"""
Meilisearch infrastructure package.
"""
from .gateway import MeilisearchIndexGateway
from .index_settings import (
    CATEGORY_INDEX_SETTINGS,
    INDEX_SETTINGS,
    PRODUCT_INDEX_SETTINGS,
    IndexSettings,
)

__all__ = [
    "MeilisearchIndexGateway",
    "IndexSettings",
    "INDEX_SETTINGS",
    "PRODUCT_INDEX_SETTINGS",
    "CATEGORY_INDEX_SETTINGS",
]
