"""
Operation Gate

Skips a timer tick while the previous run of the same operation is still in
flight. Each periodic handler (poll cycle, EPG step) owns one gate.
"""
import asyncio
import logging
from typing import Awaitable, Callable, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")


class OperationGate:
    """
    Runs an async operation unless one is already running.

    Uses an internal asyncio.Lock that is never waited on: an overlapping call
    returns immediately instead of queueing behind the running one.
    """

    def __init__(self, name: str):
        """Initialize the gate with a lock."""
        self.name = name
        self._lock = asyncio.Lock()

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T | None:
        """
        Execute an operation with overlap protection.

        Args:
            operation: Async callable to execute

        Returns:
            Result of the operation, or None if it was skipped

        Raises:
            Any exception raised by operation
        """
        if self._lock.locked():
            logger.debug(f"{self.name} already in progress, skipping this tick")
            return None

        async with self._lock:
            return await operation()

    def is_running(self) -> bool:
        """
        Check if the operation is currently in progress.

        Returns:
            True if running, False otherwise
        """
        return self._lock.locked()
