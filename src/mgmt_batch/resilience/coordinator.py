"""
Per-unit retry coordination.

Tracks every unit of a run through

    PENDING -> IN_FLIGHT -> SUCCEEDED
                         -> PERMANENT_FAILURE
                         -> PENDING (after backoff, on THROTTLED / TRANSPORT_FAILURE)

and CANCELLED when a run is stopped. Records live in a mapping keyed by
correlation key and are dropped once the unit is terminal; the terminal
Outcome carries the attempt count.

All methods are synchronous and are meant to be called from one task
only (the orchestration loop), which keeps a unit's attempts strictly
sequential.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING

from mgmt_batch.batch.partition import BatchSizePolicy
from mgmt_batch.errors import ConfigurationError
from mgmt_batch.resilience.retry import RetryPolicy
from mgmt_batch.telemetry import get_logger
from mgmt_batch.types.outcome import Outcome, OutcomeKind
from mgmt_batch.types.request import RequestUnit

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from mgmt_batch.errors import TransportError
    from mgmt_batch.types.request import BatchEnvelope

logger = get_logger("mgmt_batch.resilience.coordinator")


class UnitState(str, Enum):
    """Lifecycle state of one unit."""

    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    PERMANENT_FAILURE = "permanent_failure"
    CANCELLED = "cancelled"


_STATE_FOR_KIND = {
    OutcomeKind.SUCCESS: UnitState.SUCCEEDED,
    OutcomeKind.PERMANENT_FAILURE: UnitState.PERMANENT_FAILURE,
    OutcomeKind.CANCELLED: UnitState.CANCELLED,
}


@dataclass
class AttemptRecord:
    """Bookkeeping for one unit that has not reached a terminal outcome.

    Attributes:
        unit: The unit
        state: PENDING or IN_FLIGHT
        attempts: Attempts started so far
        next_eligible_at: Monotonic time before which the unit must not be resent
        last_outcome: Outcome of the latest finished attempt
        delays: Retry delays scheduled so far, in seconds
    """

    unit: RequestUnit
    state: UnitState = UnitState.PENDING
    attempts: int = 0
    next_eligible_at: float = 0.0
    last_outcome: Outcome | None = None
    delays: list[float] = field(default_factory=list)

    @property
    def key(self) -> str:
        return self.unit.correlation_key


@dataclass(frozen=True)
class Transition:
    """Result of feeding one attempt outcome to the coordinator.

    Attributes:
        key: Correlation key
        state: State the unit moved to
        outcome: Terminal outcome (stamped with attempts) or the attempt outcome
        delay: Scheduled retry delay, when the unit went back to PENDING
    """

    key: str
    state: UnitState
    outcome: Outcome
    delay: float | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state not in (UnitState.PENDING, UnitState.IN_FLIGHT)


@dataclass
class CoordinatorStats:
    """Counters maintained by the coordinator."""

    attempts: int = 0
    retries: int = 0
    throttled: int = 0
    transport_failures: int = 0
    payload_rejections: int = 0


class RetryCoordinator:
    """Decides, per unit, whether to accept, retry or fail an outcome.

    Example:
        >>> coordinator = RetryCoordinator(RetryPolicy(RetryConfig(max_attempts=3)))
        >>> coordinator.register(units)
        >>> ready = coordinator.take_ready(now=time.monotonic())
        >>> for item in response.items:
        ...     transition = coordinator.record_outcome(item.correlation_key, item.to_outcome(), now)
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        batch_size: BatchSizePolicy | None = None,
        *,
        rejection_threshold: int = 2,
    ) -> None:
        """Initialize coordinator.

        Args:
            policy: Backoff and attempt budget
            batch_size: Envelope size used for re-batching
            rejection_threshold: Consecutive payload rejections that halve the batch size
        """
        self._policy = policy or RetryPolicy()
        self._batch_size = batch_size or BatchSizePolicy()
        self._rejection_threshold = rejection_threshold
        self._consecutive_rejections = 0
        self._records: dict[str, AttemptRecord] = {}
        self._known_keys: set[str] = set()
        self._stopped = False
        self.stats = CoordinatorStats()

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    @property
    def batch_size(self) -> int:
        """Envelope size to use for the next partition."""
        return self._batch_size.current

    @property
    def batch_size_reductions(self) -> int:
        return self._batch_size.reductions

    @property
    def records(self) -> Mapping[str, AttemptRecord]:
        """Read-only view of the live (non-terminal) records."""
        return MappingProxyType(self._records)

    @property
    def is_stopped(self) -> bool:
        return self._stopped

    def register(self, units: Iterable[RequestUnit]) -> None:
        """Register units as PENDING and eligible immediately.

        Raises:
            ConfigurationError: If a correlation key repeats, within this call
                or across calls
            TypeError: If an element is not a RequestUnit
        """
        incoming: list[RequestUnit] = []
        seen: set[str] = set()
        for unit in units:
            if not isinstance(unit, RequestUnit):
                raise TypeError(f"Expected RequestUnit, got {type(unit).__name__}")
            key = unit.correlation_key
            if key in seen or key in self._known_keys:
                raise ConfigurationError(
                    f"Duplicate correlation key: {key!r}",
                    option="units",
                    value=key,
                ).with_hint("correlation keys must be unique within one run")
            seen.add(key)
            incoming.append(unit)

        for unit in incoming:
            self._records[unit.correlation_key] = AttemptRecord(unit=unit)
            self._known_keys.add(unit.correlation_key)

    def take_ready(self, now: float, limit: int | None = None) -> list[RequestUnit]:
        """Move eligible PENDING units to IN_FLIGHT, starting their next attempt.

        Units come back in registration order.

        Args:
            now: Current monotonic time
            limit: Maximum number of units to take

        Returns:
            Units to dispatch
        """
        if self._stopped:
            return []

        ready: list[RequestUnit] = []
        for record in self._records.values():
            if limit is not None and len(ready) >= limit:
                break
            if record.state is UnitState.PENDING and record.next_eligible_at <= now:
                record.state = UnitState.IN_FLIGHT
                record.attempts += 1
                self.stats.attempts += 1
                ready.append(record.unit)
        return ready

    def release(self, units: Iterable[RequestUnit]) -> None:
        """Return taken-but-never-sent units to PENDING without using an attempt."""
        for unit in units:
            record = self._records.get(unit.correlation_key)
            if record is not None and record.state is UnitState.IN_FLIGHT:
                record.state = UnitState.PENDING
                record.attempts -= 1
                self.stats.attempts -= 1

    def next_wakeup(self) -> float | None:
        """Earliest time a PENDING unit becomes eligible, or None."""
        times = [
            r.next_eligible_at for r in self._records.values() if r.state is UnitState.PENDING
        ]
        return min(times) if times else None

    def record_outcome(self, key: str, outcome: Outcome, now: float) -> Transition:
        """Apply the outcome of an IN_FLIGHT unit's attempt.

        Args:
            key: Correlation key
            outcome: Outcome of the attempt
            now: Current monotonic time

        Returns:
            The resulting transition

        Raises:
            RuntimeError: If the unit is unknown, terminal, or not in flight
        """
        record = self._records.get(key)
        if record is None or record.state is not UnitState.IN_FLIGHT:
            raise RuntimeError(f"Unit {key!r} has no attempt in flight")

        record.last_outcome = outcome

        if outcome.kind in _STATE_FOR_KIND:
            return self._finish(record, outcome)

        if outcome.kind is OutcomeKind.THROTTLED:
            self.stats.throttled += 1
        else:
            self.stats.transport_failures += 1

        if self._stopped:
            return self._finish(
                record, Outcome.cancelled(f"run stopped after {outcome.kind.value}")
            )

        if not self._policy.should_retry(record.attempts):
            return self._finish(
                record,
                Outcome.permanent_failure(
                    outcome.status_code,
                    outcome.content,
                    cause=f"gave up after {record.attempts} attempts: {outcome.cause}",
                    headers=outcome.headers,
                ),
            )

        delay = self._policy.calculate_delay(record.attempts, outcome.retry_after)
        record.state = UnitState.PENDING
        record.next_eligible_at = now + delay
        record.delays.append(delay)
        self.stats.retries += 1
        logger.debug(
            "Retry scheduled",
            correlation_key=key,
            attempt=record.attempts,
            kind=outcome.kind.value,
            delay_s=round(delay, 3),
        )
        return Transition(key, UnitState.PENDING, outcome, delay)

    def record_envelope_failure(
        self, envelope: BatchEnvelope, error: TransportError, now: float
    ) -> list[Transition]:
        """Apply a whole-envelope failure to every unit of the envelope.

        A throttled batch call makes every unit THROTTLED, anything else
        makes every unit a TRANSPORT_FAILURE.
        """
        self.observe_envelope(payload_rejected=error.payload_rejected)

        if error.is_throttled:
            outcome = Outcome.throttled(error.retry_after)
        else:
            outcome = Outcome.transport_failure(
                error.message,
                status_code=error.status_code,
                retry_after=error.retry_after,
            )
        return [self.record_outcome(key, outcome, now) for key in envelope.keys]

    def observe_envelope(self, *, payload_rejected: bool) -> bool:
        """Track consecutive payload rejections; halve the batch size when they pile up.

        Returns:
            True if the batch size was reduced
        """
        if not payload_rejected:
            self._consecutive_rejections = 0
            return False

        self.stats.payload_rejections += 1
        self._consecutive_rejections += 1
        if self._consecutive_rejections < self._rejection_threshold:
            return False

        self._consecutive_rejections = 0
        if not self._batch_size.halve():
            return False
        logger.warning(
            "Batch endpoint rejected payload size, shrinking envelopes",
            batch_size=self._batch_size.current,
        )
        return True

    def stop(self) -> None:
        """Stop scheduling: nothing is taken or retried from now on."""
        self._stopped = True

    def cancel_pending(self, cause: str = "cancelled") -> list[Transition]:
        """Cancel every PENDING unit. IN_FLIGHT units are left to finish."""
        pending = [r for r in self._records.values() if r.state is UnitState.PENDING]
        return [self._finish(record, Outcome.cancelled(cause)) for record in pending]

    def cancel_remaining(self, cause: str = "cancelled") -> list[Transition]:
        """Cancel every unit that is not terminal yet, in flight or not."""
        remaining = list(self._records.values())
        return [self._finish(record, Outcome.cancelled(cause)) for record in remaining]

    def _finish(self, record: AttemptRecord, outcome: Outcome) -> Transition:
        stamped = outcome.with_attempts(record.attempts)
        del self._records[record.key]
        return Transition(record.key, _STATE_FOR_KIND[stamped.kind], stamped)

    @property
    def pending_count(self) -> int:
        return sum(1 for r in self._records.values() if r.state is UnitState.PENDING)

    @property
    def in_flight_count(self) -> int:
        return sum(1 for r in self._records.values() if r.state is UnitState.IN_FLIGHT)

    @property
    def is_settled(self) -> bool:
        """True when every registered unit is terminal."""
        return not self._records
