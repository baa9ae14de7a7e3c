"""错误体系：提供批量编排器的结构化错误类型。

Error hierarchy for mgmt-batch-python.

Provides structured error types and HTTP status classification.
"""

from mgmt_batch.errors.base import (
    AuthenticationError,
    ConfigurationError,
    ErrorContext,
    MgmtBatchError,
    TransportError,
    ValidationError,
)
from mgmt_batch.errors.classification import (
    PERMANENT_STATUSES,
    ErrorClass,
    classify_http_error,
    extract_error_code,
    extract_error_message,
    is_payload_rejection,
    is_retryable,
    parse_retry_after,
    retry_after_from_headers,
)

__all__ = [
    "PERMANENT_STATUSES",
    # Base errors
    "AuthenticationError",
    "ConfigurationError",
    # Classification
    "ErrorClass",
    "ErrorContext",
    "MgmtBatchError",
    "TransportError",
    "ValidationError",
    "classify_http_error",
    "extract_error_code",
    "extract_error_message",
    "is_payload_rejection",
    "is_retryable",
    "parse_retry_after",
    "retry_after_from_headers",
]
