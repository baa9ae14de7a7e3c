"""管理平面批量请求编排器：分批、限流重试与结果对账。

mgmt-batch-python: Resilient batched requests for the Azure management plane.

Takes many independent management-plane requests, packs them into ``/batch``
calls, dispatches them with bounded concurrency, retries throttled and
transient failures per request, and hands back one outcome per request.
"""
from __future__ import annotations

from mgmt_batch._features import HAS_HTTP2, HAS_KEYRING, require_extra
from mgmt_batch.client import (
    BatchOrchestrator,
    BatchOrchestratorBuilder,
    CancelReason,
    CancelToken,
    OrchestratorOptions,
    ResultReconciler,
    RunResult,
    RunStatistics,
    run_batch,
)
from mgmt_batch.errors import (
    AuthenticationError,
    ConfigurationError,
    MgmtBatchError,
    TransportError,
)
from mgmt_batch.transport import (
    ArmBatchTransport,
    BatchTransport,
    CallbackTokenProvider,
    EnvironmentTokenProvider,
    StaticTokenProvider,
)
from mgmt_batch.types import (
    BatchEnvelope,
    BatchItemResponse,
    BatchResponse,
    HttpMethod,
    Outcome,
    OutcomeKind,
    RequestUnit,
)

__version__ = "0.1.0"

__all__ = [
    # Feature flags
    "HAS_HTTP2",
    "HAS_KEYRING",
    # Transport
    "ArmBatchTransport",
    # Errors
    "AuthenticationError",
    # Types
    "BatchEnvelope",
    "BatchItemResponse",
    # Client
    "BatchOrchestrator",
    "BatchOrchestratorBuilder",
    "BatchResponse",
    "BatchTransport",
    "CallbackTokenProvider",
    "CancelReason",
    "CancelToken",
    "ConfigurationError",
    "EnvironmentTokenProvider",
    "HttpMethod",
    "MgmtBatchError",
    "OrchestratorOptions",
    "Outcome",
    "OutcomeKind",
    "RequestUnit",
    "ResultReconciler",
    "RunResult",
    "RunStatistics",
    "StaticTokenProvider",
    "TransportError",
    # Version
    "__version__",
    "require_extra",
    "run_batch",
]
