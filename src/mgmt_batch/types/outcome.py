"""
Per-unit outcomes.

An Outcome is a tagged variant: the kind says what happened, the optional
fields carry whatever that kind needs.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any


class OutcomeKind(str, Enum):
    """What happened to a unit on one attempt (or in the end)."""

    SUCCESS = "success"
    THROTTLED = "throttled"
    TRANSPORT_FAILURE = "transport_failure"
    PERMANENT_FAILURE = "permanent_failure"
    CANCELLED = "cancelled"


_TERMINAL_KINDS = frozenset(
    {OutcomeKind.SUCCESS, OutcomeKind.PERMANENT_FAILURE, OutcomeKind.CANCELLED}
)


@dataclass(frozen=True)
class Outcome:
    """Result of one attempt of a unit, or its final result.

    Attributes:
        kind: Variant tag
        status_code: HTTP status of the item (or of the batch call)
        content: Item payload as returned by the remote
        headers: Item response headers
        retry_after: Server retry hint in seconds
        cause: Human-readable failure cause
        attempts: Number of attempts made (set on terminal outcomes)
    """

    kind: OutcomeKind
    status_code: int | None = None
    content: Any = None
    headers: dict[str, str] = field(default_factory=dict)
    retry_after: float | None = None
    cause: str | None = None
    attempts: int = 0

    @classmethod
    def success(
        cls, status_code: int, content: Any = None, headers: dict[str, str] | None = None
    ) -> Outcome:
        return cls(OutcomeKind.SUCCESS, status_code, content, headers or {})

    @classmethod
    def throttled(
        cls,
        retry_after: float | None = None,
        *,
        status_code: int = 429,
        content: Any = None,
        headers: dict[str, str] | None = None,
    ) -> Outcome:
        return cls(
            OutcomeKind.THROTTLED,
            status_code,
            content,
            headers or {},
            retry_after=retry_after,
            cause="throttled",
        )

    @classmethod
    def transport_failure(
        cls,
        cause: str,
        *,
        status_code: int | None = None,
        content: Any = None,
        retry_after: float | None = None,
    ) -> Outcome:
        return cls(
            OutcomeKind.TRANSPORT_FAILURE,
            status_code,
            content,
            retry_after=retry_after,
            cause=cause,
        )

    @classmethod
    def permanent_failure(
        cls,
        status_code: int | None,
        content: Any = None,
        *,
        cause: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> Outcome:
        return cls(
            OutcomeKind.PERMANENT_FAILURE,
            status_code,
            content,
            headers or {},
            cause=cause,
        )

    @classmethod
    def cancelled(cls, cause: str = "cancelled") -> Outcome:
        return cls(OutcomeKind.CANCELLED, cause=cause)

    @property
    def is_terminal(self) -> bool:
        """Whether no further attempt follows this outcome."""
        return self.kind in _TERMINAL_KINDS

    @property
    def is_success(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    def with_attempts(self, attempts: int) -> Outcome:
        """Copy of this outcome stamped with the attempt count."""
        return replace(self, attempts=attempts)
