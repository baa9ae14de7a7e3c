"""
Transport layer - Batch calls to the management plane.

Provides httpx-based transport with:
- ARM ``/batch`` request/response mapping
- Deferred (202) result polling
- Timeout and proxy management
- Bearer token providers
"""

from mgmt_batch.transport.auth import (
    CallbackTokenProvider,
    EnvironmentTokenProvider,
    StaticTokenProvider,
    TokenProvider,
    bearer_header,
    resolve_access_token,
)
from mgmt_batch.transport.base import BatchTransport
from mgmt_batch.transport.http import (
    DEFAULT_API_VERSION,
    DEFAULT_BASE_URL,
    ArmBatchTransport,
)

__all__ = [
    "DEFAULT_API_VERSION",
    "DEFAULT_BASE_URL",
    "ArmBatchTransport",
    "BatchTransport",
    "CallbackTokenProvider",
    "EnvironmentTokenProvider",
    "StaticTokenProvider",
    "TokenProvider",
    "bearer_header",
    "resolve_access_token",
]
