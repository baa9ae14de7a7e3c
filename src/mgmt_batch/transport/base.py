"""
Transport capability consumed by the orchestrator.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from mgmt_batch.types.request import BatchEnvelope
    from mgmt_batch.types.response import BatchResponse


@runtime_checkable
class BatchTransport(Protocol):
    """Sends one physical batch call.

    Implementations return a BatchResponse when the batch call itself
    succeeded (items may still have failed individually) and raise
    ``TransportError`` when the whole call failed.
    """

    async def send(self, envelope: BatchEnvelope) -> BatchResponse:
        ...
