"""Tests for transport module."""

import asyncio
import json
import os
from unittest.mock import patch

import httpx
import pytest

from mgmt_batch.errors import AuthenticationError, ConfigurationError, TransportError
from mgmt_batch.transport import (
    ArmBatchTransport,
    BatchTransport,
    CallbackTokenProvider,
    EnvironmentTokenProvider,
    StaticTokenProvider,
    TokenProvider,
    bearer_header,
    resolve_access_token,
)
from mgmt_batch.types import BatchEnvelope, RequestUnit

BATCH_URL = "https://management.azure.com/batch?api-version=2020-06-01"
LOCATION = "https://management.azure.com/batch/operations/7f3c?api-version=2020-06-01"


def _envelope() -> BatchEnvelope:
    return BatchEnvelope(
        (
            RequestUnit.get("vm1", "/subscriptions/0000/resourceGroups/rg/vm1?api-version=1"),
            RequestUnit.get("vm2", "/subscriptions/0000/resourceGroups/rg/vm2?api-version=1"),
        ),
        envelope_id=1,
    )


def _ok_body() -> dict:
    return {
        "responses": [
            {"name": "vm1", "httpStatusCode": 200, "content": {"name": "vm1"}},
            {"name": "vm2", "httpStatusCode": 404, "content": {"error": {"code": "NotFound"}}},
        ]
    }


class TestResolveAccessToken:
    """Tests for token resolution."""

    def test_explicit_token(self) -> None:
        """Test explicit token takes precedence."""
        with patch.dict(os.environ, {"AZURE_ACCESS_TOKEN": "env"}):
            assert resolve_access_token("explicit") == "explicit"

    def test_named_env_var_first(self) -> None:
        """Test the named variable wins over the defaults."""
        env = {"MY_TOKEN": "mine", "AZURE_ACCESS_TOKEN": "azure"}
        with patch.dict(os.environ, env, clear=True):
            assert resolve_access_token(env_var="MY_TOKEN") == "mine"

    def test_default_env_vars(self) -> None:
        """Test AZURE_ACCESS_TOKEN then ARM_ACCESS_TOKEN."""
        with patch.dict(os.environ, {"ARM_ACCESS_TOKEN": "arm"}, clear=True):
            assert resolve_access_token(use_keyring=False) == "arm"

    def test_no_token_found(self) -> None:
        """Test when nothing resolves."""
        with patch.dict(os.environ, {}, clear=True):
            assert resolve_access_token(use_keyring=False) is None

    def test_bearer_header(self) -> None:
        """Test header shape."""
        assert bearer_header("t") == {"Authorization": "Bearer t"}


class TestTokenProviders:
    """Tests for token providers."""

    @pytest.mark.asyncio
    async def test_static(self) -> None:
        """Test the static provider."""
        provider = StaticTokenProvider("t0k")
        assert await provider.get_token() == "t0k"
        assert "t0k" not in repr(provider)
        assert isinstance(provider, TokenProvider)

    def test_static_empty(self) -> None:
        """Test an empty static token is rejected."""
        with pytest.raises(ValueError):
            StaticTokenProvider("")

    @pytest.mark.asyncio
    async def test_environment(self) -> None:
        """Test the environment provider."""
        with patch.dict(os.environ, {"AZURE_ACCESS_TOKEN": "env-token"}, clear=True):
            assert await EnvironmentTokenProvider().get_token() == "env-token"

    @pytest.mark.asyncio
    async def test_environment_missing(self) -> None:
        """Test the environment provider raises when nothing resolves."""
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(AuthenticationError) as exc_info:
                await EnvironmentTokenProvider("MY_TOKEN", use_keyring=False).get_token()
        assert "MY_TOKEN" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_callback_caches(self) -> None:
        """Test the callback result is cached for ttl seconds."""
        now = [0.0]
        calls = []

        def fetch() -> str:
            calls.append(now[0])
            return f"token-{len(calls)}"

        provider = CallbackTokenProvider(fetch, ttl=60.0, clock=lambda: now[0])

        assert await provider.get_token() == "token-1"
        now[0] = 59.0
        assert await provider.get_token() == "token-1"
        now[0] = 61.0
        assert await provider.get_token() == "token-2"
        assert provider.refresh_count == 2

        provider.invalidate()
        assert await provider.get_token() == "token-3"

    @pytest.mark.asyncio
    async def test_callback_async_shared_refresh(self) -> None:
        """Test concurrent callers share one refresh."""
        calls = 0

        async def fetch() -> str:
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return "shared"

        provider = CallbackTokenProvider(fetch)
        tokens = await asyncio.gather(*(provider.get_token() for _ in range(5)))

        assert tokens == ["shared"] * 5
        assert calls == 1

    @pytest.mark.asyncio
    async def test_callback_failure(self) -> None:
        """Test callback errors become AuthenticationError."""

        def fetch() -> str:
            raise RuntimeError("az login required")

        with pytest.raises(AuthenticationError) as exc_info:
            await CallbackTokenProvider(fetch).get_token()
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_callback_empty(self) -> None:
        """Test an empty callback result is rejected."""
        with pytest.raises(AuthenticationError):
            await CallbackTokenProvider(lambda: "").get_token()


class TestArmBatchTransport:
    """Tests for ArmBatchTransport."""

    def test_protocol(self) -> None:
        """Test the transport satisfies BatchTransport."""
        transport = ArmBatchTransport(StaticTokenProvider("t"))
        assert isinstance(transport, BatchTransport)
        assert transport.base_url == "https://management.azure.com"
        assert transport.api_version == "2020-06-01"

    def test_base_url_from_env(self) -> None:
        """Test MGMT_BATCH_BASE_URL."""
        with patch.dict(os.environ, {"MGMT_BATCH_BASE_URL": "https://management.usgovcloudapi.net/"}):
            transport = ArmBatchTransport(StaticTokenProvider("t"))
        assert transport.base_url == "https://management.usgovcloudapi.net"

    @pytest.mark.parametrize("kwargs", [{"poll_interval": 0}, {"poll_timeout": -1}])
    def test_invalid_polling(self, kwargs) -> None:
        """Test polling options are validated."""
        with pytest.raises(ConfigurationError):
            ArmBatchTransport(StaticTokenProvider("t"), **kwargs)

    @pytest.mark.asyncio
    async def test_send(self, httpx_mock) -> None:
        """Test a 200 batch call."""
        httpx_mock.add_response(url=BATCH_URL, method="POST", json=_ok_body())

        async with ArmBatchTransport(StaticTokenProvider("secret-token")) as transport:
            response = await transport.send(_envelope())

        items = response.by_key()
        assert items["vm1"].status_code == 200
        assert items["vm1"].content == {"name": "vm1"}
        assert items["vm2"].status_code == 404

        request = httpx_mock.get_requests()[0]
        assert request.headers["Authorization"] == "Bearer secret-token"
        assert request.headers["User-Agent"].startswith("mgmt-batch-python/")
        body = json.loads(request.content)
        assert body == {
            "requests": [
                {
                    "httpMethod": "GET",
                    "name": "vm1",
                    "url": "/subscriptions/0000/resourceGroups/rg/vm1?api-version=1",
                },
                {
                    "httpMethod": "GET",
                    "name": "vm2",
                    "url": "/subscriptions/0000/resourceGroups/rg/vm2?api-version=1",
                },
            ]
        }

    @pytest.mark.asyncio
    async def test_deferred_result_is_polled(self, httpx_mock) -> None:
        """Test 202 + Location is followed until the result is ready."""
        httpx_mock.add_response(
            url=BATCH_URL, method="POST", status_code=202, headers={"Location": LOCATION}
        )
        httpx_mock.add_response(
            url=LOCATION, method="GET", status_code=202, headers={"Location": LOCATION}
        )
        httpx_mock.add_response(url=LOCATION, method="GET", json=_ok_body())

        async with ArmBatchTransport(
            StaticTokenProvider("t"), poll_interval=0.01, poll_timeout=5.0
        ) as transport:
            response = await transport.send(_envelope())

        assert len(response) == 2
        assert [r.method for r in httpx_mock.get_requests()] == ["POST", "GET", "GET"]

    @pytest.mark.asyncio
    async def test_deferred_without_location(self, httpx_mock) -> None:
        """Test a 202 without Location is a transport failure."""
        httpx_mock.add_response(url=BATCH_URL, method="POST", status_code=202)

        async with ArmBatchTransport(StaticTokenProvider("t"), poll_interval=0.01) as transport:
            with pytest.raises(TransportError) as exc_info:
                await transport.send(_envelope())
        assert exc_info.value.status_code == 202

    @pytest.mark.asyncio
    async def test_poll_timeout(self, httpx_mock) -> None:
        """Test giving up once the poll timeout would be exceeded."""
        httpx_mock.add_response(
            url=BATCH_URL, method="POST", status_code=202, headers={"Location": LOCATION}
        )

        async with ArmBatchTransport(
            StaticTokenProvider("t"), poll_interval=0.5, poll_timeout=0.1
        ) as transport:
            with pytest.raises(TransportError) as exc_info:
                await transport.send(_envelope())
        assert "not ready" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_batch_throttled(self, httpx_mock) -> None:
        """Test a batch-level 429 carries Retry-After."""
        httpx_mock.add_response(
            url=BATCH_URL,
            method="POST",
            status_code=429,
            headers={"Retry-After": "12"},
            json={"error": {"code": "TooManyRequests", "message": "throttled"}},
        )

        async with ArmBatchTransport(StaticTokenProvider("t")) as transport:
            with pytest.raises(TransportError) as exc_info:
                await transport.send(_envelope())

        error = exc_info.value
        assert error.is_throttled
        assert error.retry_after == 12.0
        assert error.payload_rejected is False

    @pytest.mark.asyncio
    async def test_payload_rejected(self, httpx_mock) -> None:
        """Test a 413 is flagged as a payload rejection."""
        httpx_mock.add_response(url=BATCH_URL, method="POST", status_code=413)

        async with ArmBatchTransport(StaticTokenProvider("t")) as transport:
            with pytest.raises(TransportError) as exc_info:
                await transport.send(_envelope())

        assert exc_info.value.status_code == 413
        assert exc_info.value.payload_rejected is True

    @pytest.mark.asyncio
    async def test_server_error(self, httpx_mock) -> None:
        """Test a 5xx batch call fails as a whole."""
        httpx_mock.add_response(url=BATCH_URL, method="POST", status_code=503)

        async with ArmBatchTransport(StaticTokenProvider("t")) as transport:
            with pytest.raises(TransportError) as exc_info:
                await transport.send(_envelope())
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_invalid_json(self, httpx_mock) -> None:
        """Test a 200 without JSON is a transport failure."""
        httpx_mock.add_response(url=BATCH_URL, method="POST", text="<html>oops</html>")

        async with ArmBatchTransport(StaticTokenProvider("t")) as transport:
            with pytest.raises(TransportError):
                await transport.send(_envelope())

    @pytest.mark.asyncio
    async def test_malformed_body(self, httpx_mock) -> None:
        """Test a 200 with the wrong shape is a transport failure."""
        httpx_mock.add_response(url=BATCH_URL, method="POST", json={"responses": "nope"})

        async with ArmBatchTransport(StaticTokenProvider("t")) as transport:
            with pytest.raises(TransportError):
                await transport.send(_envelope())

    @pytest.mark.asyncio
    async def test_connection_error(self, httpx_mock) -> None:
        """Test network failures are mapped to TransportError."""
        httpx_mock.add_exception(httpx.ConnectError("refused"))

        async with ArmBatchTransport(StaticTokenProvider("t")) as transport:
            with pytest.raises(TransportError) as exc_info:
                await transport.send(_envelope())
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_timeout(self, httpx_mock) -> None:
        """Test timeouts are mapped to TransportError."""
        httpx_mock.add_exception(httpx.ReadTimeout("slow"))

        async with ArmBatchTransport(StaticTokenProvider("t")) as transport:
            with pytest.raises(TransportError) as exc_info:
                await transport.send(_envelope())
        assert "timed out" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_token_failure(self) -> None:
        """Test a missing token fails the call before any request."""
        with patch.dict(os.environ, {}, clear=True):
            transport = ArmBatchTransport(EnvironmentTokenProvider(use_keyring=False))
            with pytest.raises(AuthenticationError):
                await transport.send(_envelope())
        await transport.close()

    @pytest.mark.asyncio
    async def test_external_client_not_closed(self, httpx_mock) -> None:
        """Test a caller-supplied client stays open."""
        httpx_mock.add_response(url=BATCH_URL, method="POST", json=_ok_body())
        client = httpx.AsyncClient(base_url="https://management.azure.com")

        transport = ArmBatchTransport(StaticTokenProvider("t"), client=client)
        await transport.send(_envelope())
        await transport.close()

        assert not client.is_closed
        await client.aclose()
