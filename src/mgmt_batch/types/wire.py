"""
ARM batch endpoint wire models.

These Pydantic models represent the JSON bodies exchanged with the
management-plane ``/batch`` endpoint:

    POST /batch?api-version=2020-06-01
    {"requests": [{"httpMethod": "GET", "name": "...", "url": "...", "content": {...}}]}

    200 OK
    {"responses": [{"name": "...", "httpStatusCode": 200, "headers": {...},
                    "content": {...}, "contentLength": 123}]}
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from mgmt_batch.errors import ValidationError
from mgmt_batch.telemetry import get_logger
from mgmt_batch.types.response import BatchItemResponse, BatchResponse

if TYPE_CHECKING:
    from mgmt_batch.types.request import BatchEnvelope

logger = get_logger("mgmt_batch.wire")


class ArmBatchRequestItem(BaseModel):
    """One sub-request of a batch call."""

    model_config = ConfigDict(populate_by_name=True)

    http_method: str = Field(alias="httpMethod", description="HTTP verb")
    name: str = Field(description="Item name, echoed back in the response")
    url: str = Field(description="Resource-relative URL including api-version")
    content: Any = Field(default=None, description="Optional JSON body")


class ArmBatchRequest(BaseModel):
    """Body of a batch call."""

    requests: list[ArmBatchRequestItem] = Field(default_factory=list)


class ArmBatchResponseItem(BaseModel):
    """One sub-response of a batch call."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    name: str | None = Field(default=None, description="Name of the matching request")
    http_status_code: int = Field(alias="httpStatusCode", description="Item status")
    headers: dict[str, Any] = Field(default_factory=dict)
    content: Any = Field(default=None)
    content_length: int | None = Field(default=None, alias="contentLength")


class ArmBatchResponse(BaseModel):
    """Body of a completed batch call."""

    model_config = ConfigDict(extra="allow")

    responses: list[ArmBatchResponseItem] = Field(default_factory=list)


def encode_envelope(envelope: BatchEnvelope) -> dict[str, Any]:
    """Build the JSON body for a batch call.

    The correlation key is sent as the item ``name`` so responses can be
    matched back by name.
    """
    request = ArmBatchRequest(
        requests=[
            ArmBatchRequestItem(
                http_method=unit.method.value,
                name=unit.correlation_key,
                url=unit.path,
                content=unit.body,
            )
            for unit in envelope.units
        ]
    )
    return request.model_dump(by_alias=True, exclude_none=True)


def _parse_content(content: Any) -> Any:
    # Some services return the item body as a JSON-encoded string
    if isinstance(content, str):
        try:
            return json.loads(content)
        except ValueError:
            return content
    return content


def decode_batch_response(
    envelope: BatchEnvelope,
    payload: Any,
    status_code: int = 200,
) -> BatchResponse:
    """Map a batch response body back onto the envelope's units.

    Items are matched by name; an item without a usable name falls back to
    its position in the envelope. Items naming no unit of the envelope are
    logged and dropped.

    Raises:
        ValidationError: If the payload is not a batch response
    """
    try:
        parsed = ArmBatchResponse.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(
            "Malformed batch response",
            field="responses",
            expected="{'responses': [...]}",
            actual=type(payload).__name__,
        ) from e

    keys = envelope.keys
    known = set(keys)
    items: list[BatchItemResponse] = []

    for index, item in enumerate(parsed.responses):
        key = item.name
        if key is None or key not in known:
            if key is None and index < len(keys):
                key = keys[index]
            else:
                logger.warning(
                    "Dropping batch item with unknown name",
                    envelope_id=envelope.envelope_id,
                    item_name=item.name,
                )
                continue

        items.append(
            BatchItemResponse(
                correlation_key=key,
                status_code=item.http_status_code,
                content=_parse_content(item.content),
                headers={k: str(v) for k, v in item.headers.items()},
            )
        )

    return BatchResponse(items=items, status_code=status_code)
