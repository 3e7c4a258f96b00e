"""
PostgreSQL infrastructure package.
"""
from .catalog_repository import PostgresCatalogRepository, create_pool

__all__ = ["PostgresCatalogRepository", "create_pool"]
