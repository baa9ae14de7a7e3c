"""
Result types for orchestration runs.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any

from mgmt_batch.types.outcome import OutcomeKind

if TYPE_CHECKING:
    from collections.abc import Iterator

    from mgmt_batch.types.outcome import Outcome


@dataclass
class RunStatistics:
    """Aggregate health of one run.

    Attributes:
        run_id: Identifier used in log records of the run
        submitted: Units submitted
        succeeded: Units that ended in SUCCESS
        throttled: Throttling incidents (unit attempts answered with 429)
        permanently_failed: Units that ended in PERMANENT_FAILURE
        cancelled: Units that ended in CANCELLED
        elapsed: Wall time of the run in seconds
        attempts: Unit attempts made in total
        retries: Retries scheduled
        envelopes_sent: Batch calls made
        transport_failures: Transient failures observed on unit attempts
        batch_size_reductions: Times the envelope size was halved
        final_batch_size: Envelope size at the end of the run
        peak_in_flight: Highest number of concurrent batch calls
    """

    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    submitted: int = 0
    succeeded: int = 0
    throttled: int = 0
    permanently_failed: int = 0
    cancelled: int = 0
    elapsed: float = 0.0
    attempts: int = 0
    retries: int = 0
    envelopes_sent: int = 0
    transport_failures: int = 0
    batch_size_reductions: int = 0
    final_batch_size: int = 0
    peak_in_flight: int = 0

    @property
    def elapsed_ms(self) -> float:
        return self.elapsed * 1000

    @property
    def failed(self) -> int:
        return self.permanently_failed

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class RunResult:
    """Final mapping from correlation key to outcome, plus statistics.

    ``outcomes`` keeps the order in which units were submitted; every
    submitted key is present exactly once.

    Example:
        >>> result = await orchestrator.submit(units)
        >>> result["vm-01"].is_success
        True
        >>> result.statistics.throttled
        3
    """

    outcomes: dict[str, Outcome]
    statistics: RunStatistics

    def _of_kind(self, kind: OutcomeKind) -> dict[str, Outcome]:
        return {key: o for key, o in self.outcomes.items() if o.kind is kind}

    def succeeded(self) -> dict[str, Outcome]:
        """Outcomes of units that succeeded."""
        return self._of_kind(OutcomeKind.SUCCESS)

    def failed(self) -> dict[str, Outcome]:
        """Outcomes of units that failed permanently."""
        return self._of_kind(OutcomeKind.PERMANENT_FAILURE)

    def cancelled(self) -> dict[str, Outcome]:
        """Outcomes of units cancelled by deadline or signal."""
        return self._of_kind(OutcomeKind.CANCELLED)

    @property
    def all_succeeded(self) -> bool:
        return all(o.is_success for o in self.outcomes.values())

    def __getitem__(self, key: str) -> Outcome:
        return self.outcomes[key]

    def __contains__(self, key: object) -> bool:
        return key in self.outcomes

    def __iter__(self) -> Iterator[str]:
        return iter(self.outcomes)

    def __len__(self) -> int:
        return len(self.outcomes)
