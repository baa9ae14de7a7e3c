"""
Telemetry module for mgmt-batch-python.

Provides structured, run-scoped logging with credential masking.
"""

from mgmt_batch.telemetry.logger import (
    JsonFormatter,
    LogContext,
    LogLevel,
    MgmtBatchLogger,
    SensitiveDataMasker,
    TextFormatter,
    clear_log_context,
    get_log_context,
    get_logger,
    set_log_context,
)

__all__ = [
    "JsonFormatter",
    "LogContext",
    "LogLevel",
    "MgmtBatchLogger",
    "SensitiveDataMasker",
    "TextFormatter",
    "clear_log_context",
    "get_log_context",
    "get_logger",
    "set_log_context",
]
