"""
Domain-specific exceptions.

Custom exceptions raised by the catalog sync pipeline.
"""
from typing import Optional, Sequence


class DomainError(Exception):
    """Base exception for domain errors."""

    def __init__(self, message: str) -> None:
        """
        Initialize domain error.

        Args:
            message: Error message describing the issue.
        """
        self.message = message
        super().__init__(self.message)


class DomainValidationError(DomainError):
    """Exception raised when domain validation fails."""
    pass


class CatalogQueryError(DomainError):
    """Exception raised when a catalog query fails or times out."""

    def __init__(self, query: str, reason: str) -> None:
        """
        Initialize catalog query error.

        Args:
            query: Name of the failed query.
            reason: The reason for the failure.
        """
        super().__init__(f"Catalog query '{query}' failed: {reason}")
        self.query = query
        self.reason = reason


class IndexGatewayError(DomainError):
    """Exception raised when a search index operation fails."""

    def __init__(self, index: str, operation: str, reason: str) -> None:
        """
        Initialize index gateway error.

        Args:
            index: Name of the index.
            operation: Gateway operation that failed.
            reason: The reason for the failure.
        """
        super().__init__(f"Index '{index}' {operation} failed: {reason}")
        self.index = index
        self.operation = operation
        self.reason = reason


class ResolutionError(DomainError):
    """Exception raised when a hierarchy or availability lookup fails."""
    pass


class CycleDetectedError(ResolutionError):
    """Exception raised when walking parent links revisits a category."""

    def __init__(self, category_id: str, path: Sequence[str]) -> None:
        """
        Initialize cycle detected error.

        Args:
            category_id: The category where the walk started.
            path: Category IDs visited before the walk was stopped.
        """
        super().__init__(
            f"Category hierarchy cycle or excessive depth starting at {category_id}: "
            f"{' -> '.join(path)}"
        )
        self.category_id = category_id
        self.path = list(path)


class TransformError(DomainError):
    """Exception raised when an entity cannot be turned into a document."""

    def __init__(self, entity_id: str, reason: str) -> None:
        """
        Initialize transform error.

        Args:
            entity_id: ID of the entity that failed to transform.
            reason: The reason for the failure.
        """
        super().__init__(f"Failed to build document for {entity_id}: {reason}")
        self.entity_id = entity_id
        self.reason = reason


class SyncError(DomainError):
    """Base exception for sync orchestration failures."""
    pass


class BatchWriteError(SyncError):
    """Exception raised when a batch write failed and was rolled back."""

    def __init__(
        self,
        entity_type: str,
        ids: Sequence[str],
        reason: str,
        rolled_back: bool = True,
    ) -> None:
        """
        Initialize batch write error.

        Args:
            entity_type: Entity type of the batch.
            ids: Document IDs in the failed batch.
            reason: The reason for the failure.
            rolled_back: Whether the index was restored to its pre-batch state.
        """
        outcome = "rolled back" if rolled_back else "nothing was written"
        super().__init__(
            f"Writing {len(ids)} {entity_type} documents failed ({outcome}): {reason}"
        )
        self.entity_type = entity_type
        self.ids = list(ids)
        self.reason = reason
        self.rolled_back = rolled_back


class CompensationError(SyncError):
    """Exception raised when rolling back a failed batch also fails."""

    def __init__(
        self,
        entity_type: str,
        ids: Sequence[str],
        reason: str,
        original: Optional[BaseException] = None,
    ) -> None:
        """
        Initialize compensation error.

        Args:
            entity_type: Entity type of the batch.
            ids: Document IDs in the failed batch.
            reason: The reason the rollback failed.
            original: The write failure that triggered the rollback.
        """
        super().__init__(
            f"Rollback of {len(ids)} {entity_type} documents failed, "
            f"index may be inconsistent: {reason}"
        )
        self.entity_type = entity_type
        self.ids = list(ids)
        self.reason = reason
        self.original = original
