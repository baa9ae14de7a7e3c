"""
Batch responses returned by a transport.

A BatchResponse holds one item per unit the remote answered for. Items are
keyed by correlation key so the orchestrator never depends on order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from mgmt_batch.errors.classification import (
    PERMANENT_STATUSES,
    classify_http_error,
    extract_error_message,
    is_retryable,
    retry_after_from_headers,
)
from mgmt_batch.types.outcome import Outcome


@dataclass(frozen=True)
class BatchItemResponse:
    """Remote answer for one unit inside a batch call.

    Attributes:
        correlation_key: Key of the unit this item answers
        status_code: Item HTTP status
        content: Item payload (parsed JSON when possible)
        headers: Item headers
    """

    correlation_key: str
    status_code: int
    content: Any = None
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def retry_after(self) -> float | None:
        """Retry-After hint carried by the item, in seconds."""
        return retry_after_from_headers(self.headers)

    def to_outcome(self) -> Outcome:
        """Classify this item into a per-attempt Outcome.

        - 2xx: success
        - 429: throttled
        - 400/401/403/404/409: permanent, unless the item carries Retry-After
        - 408/5xx: transport failure (transient)
        - other 4xx: permanent
        """
        status = self.status_code
        hint = self.retry_after

        if 200 <= status < 300:
            return Outcome.success(status, self.content, self.headers)

        if status == 429 or (status in PERMANENT_STATUSES and hint is not None):
            return Outcome.throttled(
                hint, status_code=status, content=self.content, headers=self.headers
            )

        body = self.content if isinstance(self.content, dict) else None
        message = extract_error_message(body) or f"HTTP {status}"

        if status in PERMANENT_STATUSES:
            return Outcome.permanent_failure(
                status, self.content, cause=message, headers=self.headers
            )

        if is_retryable(classify_http_error(status, body)):
            return Outcome.transport_failure(
                message, status_code=status, content=self.content, retry_after=hint
            )

        return Outcome.permanent_failure(
            status, self.content, cause=message, headers=self.headers
        )


@dataclass
class BatchResponse:
    """Answer of one successful batch call.

    Attributes:
        items: Per-unit responses
        status_code: Status of the batch call itself
    """

    items: list[BatchItemResponse] = field(default_factory=list)
    status_code: int = 200

    def by_key(self) -> dict[str, BatchItemResponse]:
        """Index items by correlation key (last one wins on duplicates)."""
        return {item.correlation_key: item for item in self.items}

    def __len__(self) -> int:
        return len(self.items)
