#!/usr/bin/env python3
"""
Resilience behaviour example.

Runs the orchestrator against an in-memory transport that throttles and
fails some requests, to show:
- Per-request retries with exponential backoff
- Cancellation from the caller
- A run deadline

No credentials needed:
    python examples/resilience.py
"""

import asyncio
import random

from mgmt_batch import (
    BatchEnvelope,
    BatchItemResponse,
    BatchOrchestrator,
    BatchResponse,
    RequestUnit,
)
from mgmt_batch.client import create_cancel_pair


class FlakyTransport:
    """Answers 429 or 503 for a share of items, 200 for the rest."""

    def __init__(self, failure_rate: float = 0.3, latency: float = 0.05, seed: int = 7) -> None:
        self.failure_rate = failure_rate
        self.latency = latency
        self.rng = random.Random(seed)
        self.calls = 0

    async def send(self, envelope: BatchEnvelope) -> BatchResponse:
        self.calls += 1
        await asyncio.sleep(self.latency)
        items = []
        for unit in envelope:
            if self.rng.random() < self.failure_rate:
                status = self.rng.choice([429, 503])
                headers = {"Retry-After": "0.2"} if status == 429 else {}
            else:
                status, headers = 200, {}
            items.append(BatchItemResponse(unit.correlation_key, status, {"id": unit.path}, headers))
        return BatchResponse(items)


def make_units(count: int) -> list[RequestUnit]:
    return [
        RequestUnit.get(f"vm-{i:03d}", f"/subscriptions/0000/virtualMachines/vm-{i:03d}")
        for i in range(count)
    ]


async def retries_example() -> None:
    """Throttled and failed items are retried until they succeed or give up."""
    print("Retrying throttled and failed requests...")
    transport = FlakyTransport()
    orchestrator = BatchOrchestrator(
        transport,
        {"maxBatchSize": 10, "concurrencyLimit": 3, "maxAttempts": 5, "baseDelay": 0.1},
    )

    result = await orchestrator.submit(
        make_units(50),
        on_progress=lambda s: print(f"  progress: {s.completed}/{s.total}"),
    )

    stats = result.statistics
    print(f"  succeeded={stats.succeeded} failed={stats.failed} retries={stats.retries}")
    print(f"  batch calls={transport.calls} elapsed={stats.elapsed_ms:.0f} ms")


async def cancellation_example() -> None:
    """Cancelling a run lets running batch calls finish and cancels the rest."""
    print("\n" + "=" * 50)
    print("Cancelling a run after 150 ms...")
    # The handle stays with the caller, the token goes to the run
    handle, token = create_cancel_pair()
    asyncio.get_running_loop().call_later(0.15, handle.cancel)

    orchestrator = BatchOrchestrator(
        FlakyTransport(latency=0.1), {"maxBatchSize": 5, "concurrencyLimit": 1}
    )
    result = await orchestrator.submit(make_units(30), cancel_token=token)

    print(f"  succeeded={len(result.succeeded())} cancelled={len(result.cancelled())}")
    print(f"  cancel reason: {handle.reason.value if handle.reason else None}")


async def deadline_example() -> None:
    """A deadline bounds the whole run."""
    print("\n" + "=" * 50)
    print("Running with a 300 ms deadline...")

    orchestrator = BatchOrchestrator(
        FlakyTransport(latency=0.1),
        {"maxBatchSize": 5, "concurrencyLimit": 2, "deadline": 0.3},
    )
    result = await orchestrator.submit(make_units(40))

    causes = {o.cause for o in result.cancelled().values()}
    print(f"  succeeded={len(result.succeeded())} cancelled={len(result.cancelled())} {causes}")


async def main() -> None:
    await retries_example()
    await cancellation_example()
    await deadline_example()


if __name__ == "__main__":
    asyncio.run(main())
