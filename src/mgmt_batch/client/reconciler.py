"""
Result reconciliation by correlation key.

Collects terminal outcomes from any attempt of any envelope and keeps them
in the order the units were submitted.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from mgmt_batch.types.outcome import OutcomeKind

if TYPE_CHECKING:
    from collections.abc import Iterable

    from mgmt_batch.types.outcome import Outcome


@dataclass(frozen=True)
class ReconcilerSnapshot:
    """Point-in-time view of a run.

    Attributes:
        outcomes: Terminal outcomes recorded so far, in submission order
        counts: Number of outcomes per kind
        pending: Keys without a terminal outcome yet
        total: Number of submitted units
    """

    outcomes: dict[str, Outcome]
    counts: dict[OutcomeKind, int] = field(default_factory=dict)
    pending: tuple[str, ...] = ()
    total: int = 0

    @property
    def completed(self) -> int:
        return self.total - len(self.pending)

    @property
    def progress(self) -> float:
        """Fraction of units with a terminal outcome (1.0 for an empty run)."""
        return self.completed / self.total if self.total else 1.0


class ResultReconciler:
    """Maps every submitted correlation key to its final outcome.

    Example:
        >>> reconciler = ResultReconciler(["a", "b"])
        >>> reconciler.record("a", Outcome.success(200))
        >>> reconciler.is_complete()
        False
        >>> reconciler.snapshot().pending
        ('b',)
    """

    def __init__(self, keys: Iterable[str]) -> None:
        self._order: dict[str, int] = {}
        for key in keys:
            if key in self._order:
                raise ValueError(f"Duplicate correlation key: {key!r}")
            self._order[key] = len(self._order)
        self._outcomes: dict[str, Outcome] = {}
        self._deadline_elapsed = False

    def record(self, key: str, outcome: Outcome) -> None:
        """Record a terminal outcome; a later outcome for the same key replaces it.

        Raises:
            KeyError: If the key was not submitted
            ValueError: If the outcome is not terminal
        """
        if key not in self._order:
            raise KeyError(key)
        if not outcome.is_terminal:
            raise ValueError(f"Outcome for {key!r} is not terminal: {outcome.kind.value}")
        self._outcomes[key] = outcome

    def mark_deadline_elapsed(self) -> None:
        """Flag the global deadline as passed; the run counts as complete."""
        self._deadline_elapsed = True

    def is_complete(self) -> bool:
        """True when every key has a terminal outcome or the deadline elapsed."""
        return self._deadline_elapsed or len(self._outcomes) == len(self._order)

    def get(self, key: str) -> Outcome | None:
        return self._outcomes.get(key)

    @property
    def keys(self) -> list[str]:
        return list(self._order)

    def pending_keys(self) -> list[str]:
        return [key for key in self._order if key not in self._outcomes]

    def ordered_outcomes(self) -> dict[str, Outcome]:
        """Recorded outcomes in submission order."""
        return {key: self._outcomes[key] for key in self._order if key in self._outcomes}

    def counts(self) -> dict[OutcomeKind, int]:
        return dict(Counter(outcome.kind for outcome in self._outcomes.values()))

    def snapshot(self) -> ReconcilerSnapshot:
        """Copy of the current state, safe to hold while the run continues."""
        return ReconcilerSnapshot(
            outcomes=self.ordered_outcomes(),
            counts=self.counts(),
            pending=tuple(self.pending_keys()),
            total=len(self._order),
        )

    def __len__(self) -> int:
        return len(self._order)
