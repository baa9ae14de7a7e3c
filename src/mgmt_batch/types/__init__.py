"""
Types layer - Value types shared by every orchestration component.

This module provides:
- RequestUnit and BatchEnvelope for describing work
- Outcome for per-unit results
- BatchResponse for transport answers
- ARM batch wire models
"""

from mgmt_batch.types.outcome import Outcome, OutcomeKind
from mgmt_batch.types.request import BatchEnvelope, HttpMethod, RequestUnit
from mgmt_batch.types.response import BatchItemResponse, BatchResponse
from mgmt_batch.types.wire import (
    ArmBatchRequest,
    ArmBatchRequestItem,
    ArmBatchResponse,
    ArmBatchResponseItem,
    decode_batch_response,
    encode_envelope,
)

__all__ = [
    # Wire models
    "ArmBatchRequest",
    "ArmBatchRequestItem",
    "ArmBatchResponse",
    "ArmBatchResponseItem",
    # Request types
    "BatchEnvelope",
    # Response types
    "BatchItemResponse",
    "BatchResponse",
    "HttpMethod",
    # Outcome types
    "Outcome",
    "OutcomeKind",
    "RequestUnit",
    "decode_batch_response",
    "encode_envelope",
]
