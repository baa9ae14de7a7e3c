"""
Backpressure control using semaphores.

Limits how many batch calls are outstanding at once.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING

from mgmt_batch.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


@dataclass
class BackpressureConfig:
    """Configuration for backpressure control.

    Attributes:
        max_concurrent: Maximum concurrent batch calls
    """

    max_concurrent: int = 4

    def __post_init__(self) -> None:
        if isinstance(self.max_concurrent, bool) or not isinstance(self.max_concurrent, int):
            raise ConfigurationError(
                "concurrency_limit must be an integer",
                option="concurrency_limit",
                value=self.max_concurrent,
            )
        if self.max_concurrent < 1:
            raise ConfigurationError(
                "concurrency_limit must be >= 1",
                option="concurrency_limit",
                value=self.max_concurrent,
            )


class Backpressure:
    """Backpressure control using a semaphore.

    Example:
        >>> bp = Backpressure(BackpressureConfig(max_concurrent=5))
        >>> async with bp.acquire():
        ...     await transport.send(envelope)
    """

    def __init__(self, config: BackpressureConfig | None = None) -> None:
        self._config = config or BackpressureConfig()
        self._semaphore = asyncio.Semaphore(self._config.max_concurrent)

        # Statistics
        self._current_inflight = 0
        self._peak_inflight = 0
        self._total_acquired = 0

    @property
    def max_concurrent(self) -> int:
        return self._config.max_concurrent

    @property
    def current_inflight(self) -> int:
        """Get current number of in-flight operations."""
        return self._current_inflight

    @property
    def peak_inflight(self) -> int:
        """Highest number of simultaneous in-flight operations observed."""
        return self._peak_inflight

    @property
    def available_permits(self) -> int:
        """Get number of available permits."""
        return self._config.max_concurrent - self._current_inflight

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[None]:
        """Acquire a permit for an operation.

        Yields:
            None when permit acquired
        """
        await self._semaphore.acquire()
        self._current_inflight += 1
        self._peak_inflight = max(self._peak_inflight, self._current_inflight)
        self._total_acquired += 1
        try:
            yield
        finally:
            self._current_inflight -= 1
            self._semaphore.release()

    def get_stats(self) -> dict[str, int]:
        """Get backpressure statistics."""
        return {
            "current_inflight": self._current_inflight,
            "peak_inflight": self._peak_inflight,
            "total_acquired": self._total_acquired,
            "max_concurrent": self._config.max_concurrent,
        }
