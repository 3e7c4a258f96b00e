"""
Bounded waits for external calls.
"""
import asyncio
from typing import Awaitable, Optional, TypeVar


T = TypeVar("T")


class CallTimeoutError(Exception):
    """Raised when an awaited external call exceeds its time budget."""

    def __init__(self, operation: str, timeout: float) -> None:
        """
        Initialize timeout error.

        Args:
            operation: Name of the operation that timed out.
            timeout: Budget in seconds.
        """
        self.operation = operation
        self.timeout = timeout
        self.message = f"{operation} timed out after {timeout:g}s"
        super().__init__(self.message)


async def call_with_timeout(
    awaitable: Awaitable[T],
    timeout: Optional[float],
    operation: str = "call",
) -> T:
    """
    Await ``awaitable`` for at most ``timeout`` seconds.

    Args:
        awaitable: Coroutine or future to await.
        timeout: Budget in seconds; None waits indefinitely.
        operation: Name used in the raised error.

    Returns:
        Result of the awaitable.

    Raises:
        CallTimeoutError: If the budget is exceeded.
    """
    if timeout is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise CallTimeoutError(operation, timeout) from e
