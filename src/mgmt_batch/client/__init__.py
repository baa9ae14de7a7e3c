"""
Client module - Orchestrator entry point.

Provides the BatchOrchestrator, its options and builder, run results,
result reconciliation and cancellation.
"""

from mgmt_batch.client.builder import BatchOrchestratorBuilder
from mgmt_batch.client.cancel import (
    CancelHandle,
    CancelReason,
    CancelToken,
    create_cancel_pair,
)
from mgmt_batch.client.core import BatchOrchestrator, run_batch
from mgmt_batch.client.options import OrchestratorOptions
from mgmt_batch.client.reconciler import ReconcilerSnapshot, ResultReconciler
from mgmt_batch.client.response import RunResult, RunStatistics

__all__ = [
    "BatchOrchestrator",
    "BatchOrchestratorBuilder",
    "CancelHandle",
    "CancelReason",
    "CancelToken",
    "OrchestratorOptions",
    "ReconcilerSnapshot",
    "ResultReconciler",
    "RunResult",
    "RunStatistics",
    "create_cancel_pair",
    "run_batch",
]
