"""Root pytest fixtures for mgmt-batch-python tests."""

from __future__ import annotations

import asyncio
import time
from collections import Counter, defaultdict

import pytest

from mgmt_batch.types import BatchEnvelope, BatchItemResponse, BatchResponse, RequestUnit

SUBSCRIPTION = "/subscriptions/00000000-0000-0000-0000-000000000000"


def make_units(count: int, prefix: str = "vm") -> list[RequestUnit]:
    """Create GET units with keys ``vm-00``, ``vm-01``, ..."""
    return [
        RequestUnit.get(
            f"{prefix}-{i:02d}",
            f"{SUBSCRIPTION}/resourceGroups/rg/providers/Microsoft.Compute/"
            f"virtualMachines/{prefix}-{i:02d}?api-version=2023-03-01",
        )
        for i in range(count)
    ]


class ScriptedTransport:
    """In-memory transport answering every unit from a per-key status script.

    A key's script is consumed one status per attempt; once exhausted (or
    for keys without a script) ``default`` is returned. Tracks concurrency
    and per-key attempt times.
    """

    def __init__(
        self,
        script: dict[str, list[int]] | None = None,
        default: int = 200,
        *,
        delay: float = 0.0,
        retry_after: float | None = None,
        envelope_errors: list[BaseException] | None = None,
        drop_keys: set[str] | None = None,
    ) -> None:
        self.script = {key: list(statuses) for key, statuses in (script or {}).items()}
        self.default = default
        self.delay = delay
        self.retry_after = retry_after
        self.envelope_errors = list(envelope_errors or [])
        self.drop_keys = set(drop_keys or ())
        self.envelopes: list[BatchEnvelope] = []
        self.attempts: Counter[str] = Counter()
        self.sent_at: dict[str, list[float]] = defaultdict(list)
        self.in_flight = 0
        self.max_in_flight = 0

    async def send(self, envelope: BatchEnvelope) -> BatchResponse:
        self.envelopes.append(envelope)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            now = time.monotonic()
            for key in envelope.keys:
                self.attempts[key] += 1
                self.sent_at[key].append(now)

            if self.envelope_errors:
                raise self.envelope_errors.pop(0)

            items = []
            for unit in envelope:
                key = unit.correlation_key
                if key in self.drop_keys:
                    continue
                statuses = self.script.get(key)
                status = statuses.pop(0) if statuses else self.default
                headers: dict[str, str] = {}
                if status == 429 and self.retry_after is not None:
                    headers["Retry-After"] = str(self.retry_after)
                items.append(BatchItemResponse(key, status, {"id": unit.path}, headers))
            return BatchResponse(items)
        finally:
            self.in_flight -= 1

    @property
    def envelope_sizes(self) -> list[int]:
        return [len(e) for e in self.envelopes]


@pytest.fixture
def units() -> list[RequestUnit]:
    """Ten GET units."""
    return make_units(10)


@pytest.fixture
def transport() -> ScriptedTransport:
    """Transport where every unit succeeds on the first attempt."""
    return ScriptedTransport()


@pytest.fixture
def arm_base_url() -> str:
    return "https://management.azure.com"


@pytest.fixture
def unit_factory():
    """Factory building ``count`` GET units."""
    return make_units


@pytest.fixture
def scripted_transport():
    """The ScriptedTransport class, for tests that need a custom script."""
    return ScriptedTransport
