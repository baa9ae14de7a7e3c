"""
Dispatcher for concurrent batch calls.

Sends envelopes through a transport with at most ``concurrency_limit``
calls outstanding. As soon as one call finishes the next queued envelope
starts, so the pool never waits for a whole wave to complete.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING

from mgmt_batch.errors import TransportError
from mgmt_batch.resilience.backpressure import Backpressure, BackpressureConfig
from mgmt_batch.telemetry import get_logger
from mgmt_batch.types.response import BatchResponse

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterable

    from mgmt_batch.transport.base import BatchTransport
    from mgmt_batch.types.request import BatchEnvelope

logger = get_logger("mgmt_batch.batch.dispatcher")


@dataclass(frozen=True)
class DispatchResult:
    """Result of one batch call.

    Exactly one of ``response`` and ``error`` is set.

    Attributes:
        envelope: Envelope that was sent
        response: Per-item answers when the call succeeded
        error: Whole-call failure
        elapsed_ms: Wall time of the call in milliseconds
    """

    envelope: BatchEnvelope
    response: BatchResponse | None = None
    error: TransportError | None = None
    elapsed_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


class Dispatcher:
    """Runs batch calls with bounded concurrency.

    Example:
        >>> dispatcher = Dispatcher(transport, concurrency_limit=4)
        >>> async for result in dispatcher.run(partition(units, 20)):
        ...     print(result.envelope.envelope_id, result.ok)
    """

    def __init__(self, transport: BatchTransport, concurrency_limit: int = 4) -> None:
        """Initialize dispatcher.

        Args:
            transport: Transport used for every call
            concurrency_limit: Maximum outstanding calls

        Raises:
            ConfigurationError: If concurrency_limit < 1
        """
        self._transport = transport
        self._backpressure = Backpressure(BackpressureConfig(max_concurrent=concurrency_limit))
        self._limit = concurrency_limit
        self._queue: deque[BatchEnvelope] = deque()
        self._tasks: dict[asyncio.Task[DispatchResult], BatchEnvelope] = {}
        self._completed: deque[DispatchResult] = deque()
        self._activity = asyncio.Event()
        self._envelopes_sent = 0
        self._failures = 0

    @property
    def concurrency_limit(self) -> int:
        return self._limit

    @property
    def in_flight(self) -> int:
        """Number of calls currently outstanding."""
        return len(self._tasks)

    @property
    def queued(self) -> int:
        """Number of envelopes waiting for a free slot."""
        return len(self._queue)

    @property
    def is_idle(self) -> bool:
        """No call outstanding, nothing queued, nothing left to collect."""
        return not self._tasks and not self._queue and not self._completed

    def submit(self, envelope: BatchEnvelope) -> None:
        """Queue an envelope; it starts as soon as a slot is free."""
        self._queue.append(envelope)
        self._pump()

    def _pump(self) -> None:
        while self._queue and len(self._tasks) < self._limit:
            envelope = self._queue.popleft()
            task = asyncio.create_task(self._send(envelope))
            self._tasks[task] = envelope
            task.add_done_callback(self._on_done)

    async def _send(self, envelope: BatchEnvelope) -> DispatchResult:
        start = time.monotonic()
        response: BatchResponse | None = None
        error: TransportError | None = None

        async with self._backpressure.acquire():
            self._envelopes_sent += 1
            logger.debug(
                "Dispatching envelope",
                envelope_id=envelope.envelope_id,
                units=len(envelope),
                in_flight=self._backpressure.current_inflight,
            )
            try:
                response = await self._transport.send(envelope)
            except TransportError as e:
                error = e
            except Exception as e:
                logger.exception(
                    "Transport raised unexpected error",
                    envelope_id=envelope.envelope_id,
                )
                error = TransportError(f"Transport raised {type(e).__name__}: {e}", cause=e)
            else:
                if not isinstance(response, BatchResponse):
                    error = TransportError(
                        f"Transport returned {type(response).__name__}, expected BatchResponse"
                    )
                    response = None

        if error is not None:
            self._failures += 1
            logger.warning(
                "Batch call failed",
                envelope_id=envelope.envelope_id,
                status_code=error.status_code,
                error=error.message,
            )

        return DispatchResult(
            envelope=envelope,
            response=response,
            error=error,
            elapsed_ms=(time.monotonic() - start) * 1000,
        )

    def _on_done(self, task: asyncio.Task[DispatchResult]) -> None:
        envelope = self._tasks.pop(task)
        if task.cancelled():
            # The units of a cancelled call still need an answer
            self._failures += 1
            logger.warning("Batch call cancelled", envelope_id=envelope.envelope_id)
            self._completed.append(
                DispatchResult(envelope=envelope, error=TransportError("batch call cancelled"))
            )
        else:
            self._completed.append(task.result())
        self._activity.set()
        self._pump()

    def drain_completed(self) -> list[DispatchResult]:
        """Take every result collected so far."""
        results = list(self._completed)
        self._completed.clear()
        return results

    async def wait_for_activity(self, timeout: float | None = None) -> bool:
        """Wait until a call completes or ``notify()`` is called.

        Args:
            timeout: Maximum wait in seconds (None = wait forever)

        Returns:
            True if woken by activity, False on timeout
        """
        if self._completed:
            return True
        self._activity.clear()
        try:
            await asyncio.wait_for(self._activity.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    def notify(self) -> None:
        """Wake up a pending ``wait_for_activity()`` (e.g. on cancellation)."""
        self._activity.set()

    def stop(self) -> list[BatchEnvelope]:
        """Drop queued envelopes and return them. Outstanding calls keep running."""
        dropped = list(self._queue)
        self._queue.clear()
        return dropped

    async def join(self) -> None:
        """Wait for every outstanding call to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def run(self, envelopes: Iterable[BatchEnvelope]) -> AsyncIterator[DispatchResult]:
        """Send all envelopes and yield results in completion order.

        Args:
            envelopes: Envelopes to send

        Yields:
            One DispatchResult per envelope
        """
        for envelope in envelopes:
            self.submit(envelope)

        while not self.is_idle:
            await self.wait_for_activity()
            for result in self.drain_completed():
                yield result

    def stats(self) -> dict[str, int]:
        """Get dispatcher statistics."""
        return {
            "envelopes_sent": self._envelopes_sent,
            "failures": self._failures,
            "peak_in_flight": self._backpressure.get_stats()["peak_inflight"],
            "concurrency_limit": self._limit,
        }
