"""错误基类：提供分层错误体系和结构化错误上下文。

Base error classes for mgmt-batch-python.

Provides a layered error hierarchy:
- MgmtBatchError: Base class for all library errors
- ConfigurationError: Invalid orchestrator/transport options (fatal, raised before any work)
- TransportError: Whole-envelope HTTP/network failures
- AuthenticationError: Bearer token could not be acquired
- ValidationError: Malformed wire payloads
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ErrorContext:
    """Structured error context for diagnostics.

    Provides actionable information for debugging and error handling.
    """

    field_path: str | None = None
    """Path to the problematic field (e.g., 'responses[3].name')"""

    details: dict[str, Any] = field(default_factory=dict)
    """Additional details about the error"""

    source: str | None = None
    """Error source (e.g., 'config', 'transport', 'wire')"""

    hint: str | None = None
    """Actionable hint for resolving the error"""

    def __str__(self) -> str:
        parts = []
        if self.source:
            parts.append(f"[{self.source}]")
        if self.field_path:
            parts.append(f"at '{self.field_path}'")
        if self.hint:
            parts.append(f"(hint: {self.hint})")
        return " ".join(parts)


class MgmtBatchError(Exception):
    """Base class for all mgmt-batch-python errors.

    All errors from this library inherit from this class, making it easy
    to catch all library errors with a single except clause.

    Attributes:
        message: Human-readable error message
        context: Optional structured error context
    """

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
    ) -> None:
        self.message = message
        self.context = context or ErrorContext()
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the full error message."""
        ctx_str = str(self.context)
        if ctx_str:
            return f"{self.message} {ctx_str}"
        return self.message

    def with_hint(self, hint: str) -> MgmtBatchError:
        """Add a hint to this error."""
        self.context.hint = hint
        return self


class ConfigurationError(MgmtBatchError):
    """Invalid orchestration configuration.

    Raised when:
    - An option is out of range (batch size, concurrency, attempts, delays)
    - An unknown option name is supplied
    - The same correlation key is submitted twice in one run
    """

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        *,
        option: str | None = None,
        value: Any = None,
    ) -> None:
        ctx = context or ErrorContext(source="config")
        if option:
            ctx.field_path = option
        if value is not None:
            ctx.details["value"] = value
        super().__init__(message, ctx)
        self.option = option
        self.value = value


class TransportError(MgmtBatchError):
    """Failure of a whole batch call.

    Raised when:
    - Network connection failure or timeout
    - The batch endpoint answers with a non-success status
    - A deferred (202) result is not ready before the poll timeout

    Attributes:
        status_code: HTTP status of the batch call, if one was received
        retry_after: Retry-After hint in seconds, if the server sent one
        payload_rejected: True when the endpoint rejected the batch for its size/shape
    """

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        *,
        url: str | None = None,
        status_code: int | None = None,
        retry_after: float | None = None,
        payload_rejected: bool = False,
        cause: Exception | None = None,
    ) -> None:
        ctx = context or ErrorContext(source="transport")
        if url:
            ctx.details["url"] = url
        if status_code:
            ctx.details["status_code"] = status_code
        super().__init__(message, ctx)
        self.url = url
        self.status_code = status_code
        self.retry_after = retry_after
        self.payload_rejected = payload_rejected
        self.__cause__ = cause

    @property
    def is_throttled(self) -> bool:
        """Whether the batch call itself was throttled (HTTP 429)."""
        return self.status_code == 429


class AuthenticationError(TransportError):
    """Bearer token could not be acquired for a batch call."""

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        ctx = ErrorContext(source="auth")
        if provider:
            ctx.details["provider"] = provider
        super().__init__(message, ctx, cause=cause)
        self.provider = provider


class ValidationError(MgmtBatchError):
    """Malformed request or response payload.

    Raised when:
    - A batch response body does not match the expected wire shape
    - A request unit cannot be encoded
    """

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        *,
        field: str | None = None,
        expected: Any = None,
        actual: Any = None,
    ) -> None:
        ctx = context or ErrorContext(source="wire")
        if field:
            ctx.field_path = field
        if expected is not None:
            ctx.details["expected"] = expected
        if actual is not None:
            ctx.details["actual"] = actual
        super().__init__(message, ctx)
        self.field = field
        self.expected = expected
        self.actual = actual
