"""HTTP 传输层：基于 httpx 的管理平面批量调用，支持延迟结果轮询和代理。

HTTP transport for the management-plane batch endpoint using httpx.

Provides:
- One POST per envelope to ``/batch``
- Polling of deferred (202 + Location) results
- Configurable timeouts and proxy
- Bearer token injection per call
"""

from __future__ import annotations

import asyncio
import os
import time
from contextlib import suppress
from typing import TYPE_CHECKING, Any

import httpx

from mgmt_batch._features import HAS_HTTP2
from mgmt_batch.errors import (
    ConfigurationError,
    TransportError,
    ValidationError,
    extract_error_message,
    is_payload_rejection,
    retry_after_from_headers,
)
from mgmt_batch.telemetry import get_logger
from mgmt_batch.transport.auth import bearer_header
from mgmt_batch.types.wire import decode_batch_response, encode_envelope

if TYPE_CHECKING:
    from mgmt_batch.transport.auth import TokenProvider
    from mgmt_batch.types.request import BatchEnvelope
    from mgmt_batch.types.response import BatchResponse

logger = get_logger("mgmt_batch.transport.http")

DEFAULT_BASE_URL = "https://management.azure.com"
DEFAULT_API_VERSION = "2020-06-01"
BATCH_PATH = "/batch"

# Default timeouts
_DEFAULT_TIMEOUT = 30.0
_DEFAULT_CONNECT_TIMEOUT = 10.0
_DEFAULT_POLL_INTERVAL = 2.0
_DEFAULT_POLL_TIMEOUT = 120.0

_UA_VERSION: str | None = None


def _trust_env_enabled() -> bool:
    """Use env proxy settings only when explicitly enabled."""
    return os.getenv("MGMT_BATCH_HTTP_TRUST_ENV", "0") == "1"


def _get_ua_version() -> str:
    """Get package version for User-Agent (cached)."""
    global _UA_VERSION
    if _UA_VERSION is None:
        try:
            from importlib.metadata import version

            _UA_VERSION = version("mgmt-batch-python")
        except Exception:
            _UA_VERSION = "0.1.0"
    return _UA_VERSION


class ArmBatchTransport:
    """Batch transport for the Azure Resource Manager ``/batch`` endpoint.

    Example:
        >>> transport = ArmBatchTransport(StaticTokenProvider(token))
        >>> async with transport:
        ...     response = await transport.send(envelope)
    """

    def __init__(
        self,
        token_provider: TokenProvider,
        *,
        base_url: str | None = None,
        api_version: str = DEFAULT_API_VERSION,
        timeout: float | None = None,
        poll_interval: float = _DEFAULT_POLL_INTERVAL,
        poll_timeout: float = _DEFAULT_POLL_TIMEOUT,
        proxy: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            token_provider: Supplies the bearer token for each call
            base_url: Management endpoint (env MGMT_BATCH_BASE_URL, then public cloud)
            api_version: api-version of the batch endpoint
            timeout: Request timeout in seconds (env MGMT_BATCH_HTTP_TIMEOUT_SECS)
            poll_interval: Seconds between polls of a deferred result
            poll_timeout: Seconds after which a deferred result counts as failed
            proxy: Proxy URL
            client: Pre-built httpx client (not closed by this transport)
        """
        if poll_interval <= 0:
            raise ConfigurationError(
                "poll_interval must be > 0", option="poll_interval", value=poll_interval
            )
        if poll_timeout <= 0:
            raise ConfigurationError(
                "poll_timeout must be > 0", option="poll_timeout", value=poll_timeout
            )

        self._token_provider = token_provider
        self._base_url = (
            base_url or os.getenv("MGMT_BATCH_BASE_URL") or DEFAULT_BASE_URL
        ).rstrip("/")
        self._api_version = api_version
        self._poll_interval = poll_interval
        self._poll_timeout = poll_timeout

        self._timeout = timeout
        if self._timeout is None:
            env_timeout = os.getenv("MGMT_BATCH_HTTP_TIMEOUT_SECS")
            if env_timeout:
                with suppress(ValueError):
                    self._timeout = float(env_timeout)
        if self._timeout is None:
            self._timeout = _DEFAULT_TIMEOUT

        # Resolve proxy: default to direct connection unless trust_env is enabled.
        if proxy is not None:
            self._proxy = proxy
        elif _trust_env_enabled():
            self._proxy = os.getenv("MGMT_BATCH_PROXY_URL")
        else:
            self._proxy = None

        self._client = client
        self._owns_client = client is None

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def api_version(self) -> str:
        return self._api_version

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(self._timeout, connect=_DEFAULT_CONNECT_TIMEOUT),
                proxy=self._proxy,
                http2=HAS_HTTP2,
                trust_env=_trust_env_enabled(),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _build_headers(self) -> dict[str, str]:
        """Build request headers, fetching a fresh token.

        Raises:
            AuthenticationError: If no token can be obtained
        """
        token = await self._token_provider.get_token()
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": f"mgmt-batch-python/{_get_ua_version()}",
        }
        headers.update(bearer_header(token))
        return headers

    async def _request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Make an HTTP request, mapping httpx failures to TransportError."""
        client = self._get_client()
        try:
            return await client.request(
                method=method,
                url=url,
                json=json,
                headers=headers,
                params=params,
            )
        except httpx.ConnectError as e:
            raise TransportError(
                f"Connection failed: {e}", url=f"{self._base_url}{url}", cause=e
            ) from e
        except httpx.TimeoutException as e:
            raise TransportError(
                f"Request timed out: {e}", url=f"{self._base_url}{url}", cause=e
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(
                f"HTTP error: {e}", url=f"{self._base_url}{url}", cause=e
            ) from e

    async def send(self, envelope: BatchEnvelope) -> BatchResponse:
        """Send one envelope as a batch call.

        Args:
            envelope: Units to send

        Returns:
            Per-item responses

        Raises:
            TransportError: If the batch call as a whole failed
        """
        headers = await self._build_headers()
        response = await self._request(
            "POST",
            BATCH_PATH,
            headers=headers,
            json=encode_envelope(envelope),
            params={"api-version": self._api_version},
        )

        if response.status_code == 202:
            response = await self._poll(response, headers, envelope)

        return self._to_batch_response(envelope, response)

    async def _poll(
        self,
        accepted: httpx.Response,
        headers: dict[str, str],
        envelope: BatchEnvelope,
    ) -> httpx.Response:
        """Follow a deferred result until it is no longer 202.

        Raises:
            TransportError: On missing Location or when poll_timeout elapses
        """
        deadline = time.monotonic() + self._poll_timeout
        response = accepted
        polls = 0

        while response.status_code == 202:
            location = response.headers.get("Location")
            if not location:
                raise TransportError(
                    "Deferred batch result without Location header", status_code=202
                )
            if time.monotonic() + self._poll_interval > deadline:
                raise TransportError(
                    f"Deferred batch result not ready after {self._poll_timeout:g}s",
                    url=location,
                    status_code=202,
                )

            await asyncio.sleep(self._poll_interval)
            polls += 1
            logger.debug(
                "Polling deferred batch result",
                envelope_id=envelope.envelope_id,
                poll=polls,
            )
            response = await self._request("GET", location, headers=headers)

        return response

    def _to_batch_response(
        self, envelope: BatchEnvelope, response: httpx.Response
    ) -> BatchResponse:
        """Turn a final batch-call response into a BatchResponse or raise."""
        status = response.status_code
        body: Any = None
        with suppress(ValueError):
            body = response.json()

        if status != 200:
            error_body = body if isinstance(body, dict) else None
            message = extract_error_message(error_body) or response.reason_phrase
            raise TransportError(
                f"Batch call failed with HTTP {status}: {message}",
                url=str(response.request.url),
                status_code=status,
                retry_after=retry_after_from_headers(dict(response.headers)),
                payload_rejected=is_payload_rejection(status, error_body),
            )

        if body is None:
            raise TransportError(
                "Batch response is not valid JSON",
                url=str(response.request.url),
                status_code=status,
            )

        try:
            return decode_batch_response(envelope, body, status_code=status)
        except ValidationError as e:
            raise TransportError(e.message, status_code=status, cause=e) from e

    async def __aenter__(self) -> ArmBatchTransport:
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()
