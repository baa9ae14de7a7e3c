"""错误分类模块：将 HTTP 状态码和响应体映射到标准错误类别。

Error classification for management-plane responses.

Maps HTTP status codes (of a whole batch call or of a single batch item)
to a small set of error classes that drive retry decisions.
"""

from __future__ import annotations

import contextlib
import time
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Any


class ErrorClass(str, Enum):
    """Standard error classification."""

    INVALID_REQUEST = "invalid_request"
    """Malformed request body, invalid parameters, or unsupported operation."""

    AUTHENTICATION = "authentication"
    """Missing/invalid bearer token."""

    PERMISSION_DENIED = "permission_denied"
    """Caller is authenticated but lacks an RBAC assignment for the resource."""

    NOT_FOUND = "not_found"
    """Requested resource not found."""

    CONFLICT = "conflict"
    """Resource state conflict (e.g., an operation already in progress)."""

    RATE_LIMITED = "rate_limited"
    """Throttled by the management plane; retryable with backoff."""

    REQUEST_TOO_LARGE = "request_too_large"
    """Payload too large or too many requests in one batch."""

    TIMEOUT = "timeout"
    """Request timed out or gateway timeout."""

    SERVER_ERROR = "server_error"
    """Transient server-side failure (5xx)."""

    OVERLOADED = "overloaded"
    """Service temporarily unavailable."""

    OTHER = "other"
    """Unknown classification."""


# Error classes worth another attempt
_RETRYABLE_CLASSES: set[ErrorClass] = {
    ErrorClass.RATE_LIMITED,
    ErrorClass.TIMEOUT,
    ErrorClass.SERVER_ERROR,
    ErrorClass.OVERLOADED,
}

# Statuses that are final unless the server explicitly asks for a retry
PERMANENT_STATUSES: frozenset[int] = frozenset({400, 401, 403, 404, 409})

_DEFAULT_STATUS_MAPPING: dict[int, ErrorClass] = {
    400: ErrorClass.INVALID_REQUEST,
    401: ErrorClass.AUTHENTICATION,
    403: ErrorClass.PERMISSION_DENIED,
    404: ErrorClass.NOT_FOUND,
    408: ErrorClass.TIMEOUT,
    409: ErrorClass.CONFLICT,
    413: ErrorClass.REQUEST_TOO_LARGE,
    422: ErrorClass.INVALID_REQUEST,
    429: ErrorClass.RATE_LIMITED,
    500: ErrorClass.SERVER_ERROR,
    502: ErrorClass.SERVER_ERROR,
    503: ErrorClass.OVERLOADED,
    504: ErrorClass.TIMEOUT,
}

# Error codes the batch endpoint uses when the envelope itself is too big
_PAYLOAD_REJECTION_MARKERS = (
    "toolarge",
    "too_large",
    "toomany",
    "too_many",
    "entitytoolarge",
    "batchsize",
    "maxrequests",
)


def classify_http_error(
    status_code: int,
    body: dict[str, Any] | None = None,
) -> ErrorClass:
    """Classify an HTTP error into a standard error class.

    Args:
        status_code: HTTP status code
        body: Response body (parsed JSON)

    Returns:
        ErrorClass representing the error type
    """
    if status_code == 400 and is_payload_rejection(status_code, body):
        return ErrorClass.REQUEST_TOO_LARGE

    if status_code in _DEFAULT_STATUS_MAPPING:
        return _DEFAULT_STATUS_MAPPING[status_code]

    if 400 <= status_code < 500:
        return ErrorClass.INVALID_REQUEST
    if 500 <= status_code < 600:
        return ErrorClass.SERVER_ERROR

    return ErrorClass.OTHER


def is_retryable(error_class: ErrorClass) -> bool:
    """Check if an error class is retryable by default.

    Args:
        error_class: The error class to check

    Returns:
        True if the error is typically transient
    """
    return error_class in _RETRYABLE_CLASSES


def is_payload_rejection(status_code: int, body: dict[str, Any] | None = None) -> bool:
    """Check whether a batch call was rejected because of its size or shape.

    A 413 always counts. A 400 counts when the error code or message names
    an oversized batch (e.g. ``BatchRequestTooLarge``).
    """
    if status_code == 413:
        return True
    if status_code != 400:
        return False

    code = (extract_error_code(body) or "").lower()
    message = (extract_error_message(body) or "").lower().replace(" ", "")
    return any(marker in code or marker in message for marker in _PAYLOAD_REJECTION_MARKERS)


def parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header value into seconds.

    Accepts delta-seconds (``"5"``) and HTTP-dates. Returns None for
    missing or unparseable values.
    """
    if not value:
        return None

    with contextlib.suppress(ValueError):
        return max(float(value), 0.0)

    with contextlib.suppress(TypeError, ValueError, IndexError):
        when = parsedate_to_datetime(value)
        return max(when.timestamp() - time.time(), 0.0)

    return None


def retry_after_from_headers(headers: dict[str, Any] | None) -> float | None:
    """Extract the Retry-After hint from a header mapping (case-insensitive)."""
    if not headers:
        return None
    for key, value in headers.items():
        if key.lower() == "retry-after":
            return parse_retry_after(str(value))
    return None


def extract_error_code(body: dict[str, Any] | None) -> str | None:
    """Extract the ARM error code (``{"error": {"code": ...}}``)."""
    if not isinstance(body, dict):
        return None

    error = body.get("error")
    if isinstance(error, dict):
        code = error.get("code")
        if isinstance(code, str):
            return code
    code = body.get("code")
    return code if isinstance(code, str) else None


def extract_error_message(body: dict[str, Any] | None) -> str | None:
    """Extract error message from response body.

    Supports multiple error envelope formats:
    - ARM style: {"error": {"code": "...", "message": "..."}}
    - Simple: {"message": "..."}
    - Detail field: {"detail": "..."}

    Args:
        body: Response body (parsed JSON)

    Returns:
        Error message if found, None otherwise
    """
    if not isinstance(body, dict):
        return None

    if "error" in body:
        error = body["error"]
        if isinstance(error, dict):
            msg = error.get("message")
            if isinstance(msg, str):
                return msg
        elif isinstance(error, str):
            return error

    if "message" in body:
        msg = body["message"]
        if isinstance(msg, str):
            return msg

    if "detail" in body:
        detail = body["detail"]
        if isinstance(detail, str):
            return detail
        if isinstance(detail, list) and detail:
            return str(detail[0])

    return None
