"""
Batch processing module for mgmt-batch-python.

Provides envelope partitioning and concurrent batch dispatch.
"""

from mgmt_batch.batch.partition import BatchSizePolicy, partition, validate_batch_size
from mgmt_batch.batch.dispatcher import DispatchResult, Dispatcher  # isort: skip

__all__ = [
    "BatchSizePolicy",
    "DispatchResult",
    "Dispatcher",
    "partition",
    "validate_batch_size",
]
