"""
Resilience layer - Retry, per-unit coordination, and backpressure.

This module provides:
- RetryPolicy: Exponential backoff with jitter and Retry-After handling
- RetryCoordinator: Per-unit state machine deciding accept/retry/fail
- Backpressure: Semaphore-based limit on outstanding batch calls
"""

from mgmt_batch.resilience.backpressure import Backpressure, BackpressureConfig
from mgmt_batch.resilience.coordinator import (
    AttemptRecord,
    CoordinatorStats,
    RetryCoordinator,
    Transition,
    UnitState,
)
from mgmt_batch.resilience.retry import (
    JitterStrategy,
    RetryConfig,
    RetryPolicy,
    to_seconds,
)

__all__ = [
    # Coordination
    "AttemptRecord",
    # Backpressure
    "Backpressure",
    "BackpressureConfig",
    "CoordinatorStats",
    # Retry
    "JitterStrategy",
    "RetryConfig",
    "RetryCoordinator",
    "RetryPolicy",
    "Transition",
    "UnitState",
    "to_seconds",
]
