"""
Run cancellation control.

Provides cancellation tokens and handles for stopping an orchestration run,
either explicitly or when a deadline elapses.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from mgmt_batch.telemetry import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

logger = get_logger("mgmt_batch.client.cancel")


class CancelReason(str, Enum):
    """Reasons for cancellation."""

    USER_REQUEST = "user_request"
    DEADLINE = "deadline"
    SHUTDOWN = "shutdown"


@dataclass
class CancelState:
    """State of a cancellation token.

    Attributes:
        cancelled: Whether cancellation was requested
        reason: Reason for cancellation
        timestamp: Time of cancellation
    """

    cancelled: bool = False
    reason: CancelReason | None = None
    timestamp: float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class CancelToken:
    """Cooperative cancellation signal for an orchestration run.

    Cancelling stops new envelopes and retries; calls already in flight
    are allowed to finish.

    Example:
        >>> token = CancelToken()
        >>> task = asyncio.create_task(orchestrator.submit(units, cancel_token=token))
        >>> token.cancel()
        >>> result = await task  # pending units come back CANCELLED
    """

    def __init__(self) -> None:
        self._state = CancelState()
        self._event = asyncio.Event()
        self._callbacks: list[Callable[[CancelReason], Any]] = []
        self._timer: asyncio.TimerHandle | None = None

    def cancel(
        self,
        reason: CancelReason = CancelReason.USER_REQUEST,
        **metadata: Any,
    ) -> bool:
        """Request cancellation.

        Args:
            reason: Reason for cancellation
            **metadata: Additional metadata

        Returns:
            True if cancellation was newly requested, False if already cancelled
        """
        if self._state.cancelled:
            return False

        self._state.cancelled = True
        self._state.reason = reason
        self._state.timestamp = time.time()
        self._state.metadata.update(metadata)
        self._event.set()

        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        for callback in list(self._callbacks):
            self._invoke(callback, reason)

        return True

    def cancel_after(self, delay: float) -> None:
        """Cancel with reason DEADLINE once ``delay`` seconds have passed.

        Must be called from a running event loop.
        """
        if self._state.cancelled:
            return
        if self._timer is not None:
            self._timer.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(delay, self.cancel, CancelReason.DEADLINE)

    def clear_deadline(self) -> None:
        """Drop a pending ``cancel_after()`` timer."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    @property
    def is_cancelled(self) -> bool:
        """Check if cancellation was requested."""
        return self._state.cancelled

    @property
    def reason(self) -> CancelReason | None:
        """Get cancellation reason."""
        return self._state.reason

    @property
    def state(self) -> CancelState:
        """Get full cancellation state."""
        return self._state

    async def wait(self) -> CancelReason:
        """Wait until cancellation is requested."""
        await self._event.wait()
        return self._state.reason or CancelReason.USER_REQUEST

    def on_cancel(self, callback: Callable[[CancelReason], Any]) -> CancelToken:
        """Register a callback to be called on cancellation.

        The callback runs immediately if the token is already cancelled.

        Returns:
            Self for chaining
        """
        self._callbacks.append(callback)
        if self._state.cancelled and self._state.reason:
            self._invoke(callback, self._state.reason)
        return self

    def remove_callback(self, callback: Callable[[CancelReason], Any]) -> None:
        """Unregister a callback added with ``on_cancel()``."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    @staticmethod
    def _invoke(callback: Callable[[CancelReason], Any], reason: CancelReason) -> None:
        try:
            result = callback(reason)
            if asyncio.iscoroutine(result):
                _ = asyncio.ensure_future(result)  # noqa: RUF006
        except Exception:
            logger.exception("Cancel callback failed", reason=reason.value)


class CancelHandle:
    """Public handle for cancelling a run while the token stays internal."""

    def __init__(self, token: CancelToken) -> None:
        self._token = token

    def cancel(
        self,
        reason: CancelReason = CancelReason.USER_REQUEST,
        **metadata: Any,
    ) -> bool:
        """Request cancellation."""
        return self._token.cancel(reason, **metadata)

    @property
    def is_cancelled(self) -> bool:
        return self._token.is_cancelled

    @property
    def reason(self) -> CancelReason | None:
        return self._token.reason


def create_cancel_pair() -> tuple[CancelHandle, CancelToken]:
    """Create a cancel handle and token pair.

    Returns:
        Tuple of (CancelHandle, CancelToken)
    """
    token = CancelToken()
    return CancelHandle(token), token
