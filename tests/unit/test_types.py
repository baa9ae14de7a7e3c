"""Tests for type definitions and the ARM batch wire format."""

import pydantic
import pytest

from mgmt_batch.errors import ValidationError
from mgmt_batch.types import (
    ArmBatchRequest,
    BatchEnvelope,
    BatchItemResponse,
    BatchResponse,
    HttpMethod,
    Outcome,
    OutcomeKind,
    RequestUnit,
    decode_batch_response,
    encode_envelope,
)

VM_PATH = (
    "/subscriptions/0000/resourceGroups/rg/providers/Microsoft.Compute/"
    "virtualMachines/vm1?api-version=2023-03-01"
)


class TestRequestUnit:
    """Tests for RequestUnit."""

    def test_get(self) -> None:
        """Test GET factory."""
        unit = RequestUnit.get("vm1", VM_PATH)
        assert unit.correlation_key == "vm1"
        assert unit.method == HttpMethod.GET
        assert unit.path == VM_PATH
        assert unit.body is None

    def test_put_with_body(self) -> None:
        """Test PUT factory keeps the body."""
        unit = RequestUnit.put("tag", VM_PATH, body={"tags": {"env": "prod"}})
        assert unit.method == HttpMethod.PUT
        assert unit.body == {"tags": {"env": "prod"}}

    def test_camel_case_alias(self) -> None:
        """Test the camelCase key is accepted."""
        unit = RequestUnit.model_validate(
            {"correlationKey": "a", "method": "DELETE", "path": VM_PATH}
        )
        assert unit.correlation_key == "a"
        assert unit.method == HttpMethod.DELETE

    def test_frozen(self) -> None:
        """Test units are immutable."""
        unit = RequestUnit.get("vm1", VM_PATH)
        with pytest.raises(pydantic.ValidationError):
            unit.path = "/other"

    @pytest.mark.parametrize("key,path", [("", VM_PATH), ("  ", VM_PATH), ("vm1", "")])
    def test_blank_fields_rejected(self, key: str, path: str) -> None:
        """Test blank keys and paths are rejected."""
        with pytest.raises(pydantic.ValidationError):
            RequestUnit.get(key, path)


class TestBatchEnvelope:
    """Tests for BatchEnvelope."""

    def test_len_iter_keys(self) -> None:
        """Test container behaviour."""
        units = (RequestUnit.get("a", "/a"), RequestUnit.get("b", "/b"))
        envelope = BatchEnvelope(units, envelope_id=3, generation=1)
        assert len(envelope) == 2
        assert list(envelope) == list(units)
        assert envelope.keys == ["a", "b"]
        assert envelope.envelope_id == 3
        assert envelope.generation == 1


class TestOutcome:
    """Tests for Outcome."""

    def test_terminal_kinds(self) -> None:
        """Test which outcomes end a unit."""
        assert Outcome.success(200).is_terminal
        assert Outcome.permanent_failure(404).is_terminal
        assert Outcome.cancelled().is_terminal
        assert not Outcome.throttled(2.0).is_terminal
        assert not Outcome.transport_failure("reset").is_terminal

    def test_throttled(self) -> None:
        """Test throttled outcome fields."""
        outcome = Outcome.throttled(2.5)
        assert outcome.kind == OutcomeKind.THROTTLED
        assert outcome.status_code == 429
        assert outcome.retry_after == 2.5

    def test_with_attempts(self) -> None:
        """Test stamping attempts returns a copy."""
        outcome = Outcome.success(200, {"id": "x"})
        stamped = outcome.with_attempts(3)
        assert stamped.attempts == 3
        assert outcome.attempts == 0
        assert stamped.content == {"id": "x"}


class TestBatchItemResponse:
    """Tests for per-item status classification."""

    @pytest.mark.parametrize("status", [200, 201, 202, 204])
    def test_success(self, status: int) -> None:
        """Test 2xx items succeed."""
        outcome = BatchItemResponse("a", status, {"id": "a"}).to_outcome()
        assert outcome.kind == OutcomeKind.SUCCESS
        assert outcome.status_code == status
        assert outcome.content == {"id": "a"}

    def test_throttled_with_hint(self) -> None:
        """Test 429 items carry the Retry-After hint."""
        item = BatchItemResponse("a", 429, None, {"Retry-After": "4"})
        outcome = item.to_outcome()
        assert outcome.kind == OutcomeKind.THROTTLED
        assert outcome.retry_after == 4.0

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 409])
    def test_permanent(self, status: int) -> None:
        """Test permanent statuses without a hint."""
        body = {"error": {"code": "Nope", "message": "denied"}}
        outcome = BatchItemResponse("a", status, body).to_outcome()
        assert outcome.kind == OutcomeKind.PERMANENT_FAILURE
        assert outcome.status_code == status
        assert outcome.cause == "denied"

    def test_permanent_status_with_hint_is_throttled(self) -> None:
        """Test an explicit Retry-After turns a 409 into a retry."""
        item = BatchItemResponse("a", 409, None, {"retry-after": "10"})
        outcome = item.to_outcome()
        assert outcome.kind == OutcomeKind.THROTTLED
        assert outcome.retry_after == 10.0

    @pytest.mark.parametrize("status", [408, 500, 502, 503, 504])
    def test_transient(self, status: int) -> None:
        """Test transient statuses."""
        outcome = BatchItemResponse("a", status).to_outcome()
        assert outcome.kind == OutcomeKind.TRANSPORT_FAILURE

    def test_other_client_error_is_permanent(self) -> None:
        """Test other 4xx statuses are permanent."""
        outcome = BatchItemResponse("a", 422).to_outcome()
        assert outcome.kind == OutcomeKind.PERMANENT_FAILURE

    def test_batch_response_by_key(self) -> None:
        """Test indexing items by key."""
        response = BatchResponse([BatchItemResponse("a", 200), BatchItemResponse("b", 404)])
        assert len(response) == 2
        assert response.by_key()["b"].status_code == 404


class TestWire:
    """Tests for the ARM batch wire format."""

    def _envelope(self) -> BatchEnvelope:
        return BatchEnvelope(
            (
                RequestUnit.get("vm1", VM_PATH),
                RequestUnit.patch("vm2", "/vm2?api-version=1", body={"tags": {}}),
            ),
            envelope_id=7,
        )

    def test_encode(self) -> None:
        """Test request body shape."""
        body = encode_envelope(self._envelope())
        assert body == {
            "requests": [
                {"httpMethod": "GET", "name": "vm1", "url": VM_PATH},
                {
                    "httpMethod": "PATCH",
                    "name": "vm2",
                    "url": "/vm2?api-version=1",
                    "content": {"tags": {}},
                },
            ]
        }
        # The encoded body is a valid request model
        assert len(ArmBatchRequest.model_validate(body).requests) == 2

    def test_decode_by_name(self) -> None:
        """Test items are matched by name regardless of order."""
        payload = {
            "responses": [
                {"name": "vm2", "httpStatusCode": 404, "content": {"error": {"code": "x"}}},
                {
                    "name": "vm1",
                    "httpStatusCode": 200,
                    "headers": {"x-ms-ratelimit-remaining": 11},
                    "content": {"name": "vm1"},
                    "contentLength": 14,
                },
            ]
        }
        response = decode_batch_response(self._envelope(), payload)
        items = response.by_key()
        assert items["vm1"].status_code == 200
        assert items["vm1"].content == {"name": "vm1"}
        assert items["vm1"].headers == {"x-ms-ratelimit-remaining": "11"}
        assert items["vm2"].status_code == 404

    def test_decode_positional_fallback(self) -> None:
        """Test unnamed items map by position."""
        payload = {"responses": [{"httpStatusCode": 200}, {"httpStatusCode": 500}]}
        items = decode_batch_response(self._envelope(), payload).by_key()
        assert items["vm1"].status_code == 200
        assert items["vm2"].status_code == 500

    def test_decode_drops_unknown_names(self) -> None:
        """Test items naming no unit are ignored."""
        payload = {"responses": [{"name": "ghost", "httpStatusCode": 200}]}
        response = decode_batch_response(self._envelope(), payload)
        assert len(response) == 0

    def test_decode_string_content(self) -> None:
        """Test JSON-encoded string content is parsed."""
        payload = {"responses": [{"name": "vm1", "httpStatusCode": 200, "content": '{"a": 1}'}]}
        items = decode_batch_response(self._envelope(), payload).by_key()
        assert items["vm1"].content == {"a": 1}

    def test_decode_malformed(self) -> None:
        """Test malformed payloads raise ValidationError."""
        with pytest.raises(ValidationError):
            decode_batch_response(self._envelope(), {"responses": "nope"})
        with pytest.raises(ValidationError):
            decode_batch_response(self._envelope(), [1, 2, 3])
