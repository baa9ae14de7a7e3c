"""
Request units and batch envelopes.

A RequestUnit is one logical management-plane call. A BatchEnvelope is
one physical batch call made of several units.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

if TYPE_CHECKING:
    from collections.abc import Iterator


class HttpMethod(str, Enum):
    """HTTP verbs accepted by the batch endpoint."""

    GET = "GET"
    PUT = "PUT"
    POST = "POST"
    PATCH = "PATCH"
    DELETE = "DELETE"
    HEAD = "HEAD"


class RequestUnit(BaseModel):
    """One logical unit of work.

    The correlation key is supplied by the caller and must be unique within
    one orchestration run; every outcome is reported against it.

    Example:
        >>> unit = RequestUnit.get(
        ...     "sub-1",
        ...     "/subscriptions/0000/providers/Microsoft.CostManagement/query?api-version=2023-03-01",
        ... )
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    correlation_key: str = Field(alias="correlationKey", description="Caller-unique key")
    method: HttpMethod = Field(default=HttpMethod.GET, description="HTTP verb")
    path: str = Field(description="Resource-relative path, query string included")
    body: Any = Field(default=None, description="Optional JSON payload")

    @field_validator("correlation_key", "path")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be empty")
        return value

    @classmethod
    def get(cls, key: str, path: str) -> RequestUnit:
        """Create a GET unit."""
        return cls(correlation_key=key, method=HttpMethod.GET, path=path)

    @classmethod
    def put(cls, key: str, path: str, body: Any = None) -> RequestUnit:
        """Create a PUT unit."""
        return cls(correlation_key=key, method=HttpMethod.PUT, path=path, body=body)

    @classmethod
    def post(cls, key: str, path: str, body: Any = None) -> RequestUnit:
        """Create a POST unit."""
        return cls(correlation_key=key, method=HttpMethod.POST, path=path, body=body)

    @classmethod
    def patch(cls, key: str, path: str, body: Any = None) -> RequestUnit:
        """Create a PATCH unit."""
        return cls(correlation_key=key, method=HttpMethod.PATCH, path=path, body=body)

    @classmethod
    def delete(cls, key: str, path: str) -> RequestUnit:
        """Create a DELETE unit."""
        return cls(correlation_key=key, method=HttpMethod.DELETE, path=path)


@dataclass(frozen=True)
class BatchEnvelope:
    """An ordered group of units sent in one batch call.

    Envelopes are consumed once; a retried unit always travels in a newly
    built envelope.

    Attributes:
        units: Units in submission order
        envelope_id: Run-unique identifier (for logging)
        generation: 0 for the first submission round, n for the n-th re-batch
    """

    units: tuple[RequestUnit, ...]
    envelope_id: int = 0
    generation: int = 0

    def __len__(self) -> int:
        return len(self.units)

    def __iter__(self) -> Iterator[RequestUnit]:
        return iter(self.units)

    @property
    def keys(self) -> list[str]:
        """Correlation keys in envelope order."""
        return [unit.correlation_key for unit in self.units]
