"""
Batch partitioning for request units.

Splits an ordered sequence of units into envelopes no larger than the
batch endpoint accepts.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from mgmt_batch.errors import ConfigurationError
from mgmt_batch.types.request import BatchEnvelope

if TYPE_CHECKING:
    from collections.abc import Sequence

    from mgmt_batch.types.request import RequestUnit


def validate_batch_size(max_batch_size: int) -> int:
    """Check that a batch size is a positive integer.

    Raises:
        ConfigurationError: If the size is not an integer >= 1
    """
    if isinstance(max_batch_size, bool) or not isinstance(max_batch_size, int):
        raise ConfigurationError(
            "max_batch_size must be an integer",
            option="max_batch_size",
            value=max_batch_size,
        )
    if max_batch_size < 1:
        raise ConfigurationError(
            "max_batch_size must be >= 1",
            option="max_batch_size",
            value=max_batch_size,
        )
    return max_batch_size


def partition(
    units: Sequence[RequestUnit],
    max_batch_size: int,
    *,
    first_envelope_id: int = 0,
    generation: int = 0,
) -> list[BatchEnvelope]:
    """Partition units into envelopes of at most ``max_batch_size`` units.

    Order is preserved within and across envelopes, and every envelope is
    non-empty. An empty input yields no envelopes.

    Args:
        units: Units in submission order
        max_batch_size: Maximum units per envelope
        first_envelope_id: Identifier given to the first envelope
        generation: Re-batch round the envelopes belong to

    Returns:
        Envelopes in order

    Raises:
        ConfigurationError: If max_batch_size < 1

    Example:
        >>> envelopes = partition(units, 15)
        >>> [len(e) for e in envelopes]  # 37 units
        [15, 15, 7]
    """
    size = validate_batch_size(max_batch_size)
    return [
        BatchEnvelope(
            units=tuple(units[start:start + size]),
            envelope_id=first_envelope_id + offset,
            generation=generation,
        )
        for offset, start in enumerate(range(0, len(units), size))
    ]


@dataclass
class BatchSizePolicy:
    """Current envelope size for re-batching, shrinkable down to 1.

    Attributes:
        current: Size used for the next partition call
        reductions: How many times the size was halved
    """

    current: int = 20
    reductions: int = 0

    def __post_init__(self) -> None:
        validate_batch_size(self.current)

    @property
    def at_floor(self) -> bool:
        return self.current == 1

    def halve(self) -> bool:
        """Halve the size (floor 1). Returns False if already at the floor."""
        if self.at_floor:
            return False
        self.current = max(1, self.current // 2)
        self.reductions += 1
        return True
