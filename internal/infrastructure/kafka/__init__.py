"""
Kafka infrastructure package.
"""

from .consumer import CatalogEventConsumer

__all__ = [
    "CatalogEventConsumer",
]
