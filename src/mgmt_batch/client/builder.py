"""
Builder for fluent orchestrator construction.
"""

from __future__ import annotations

import random
from dataclasses import replace
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from mgmt_batch.client.options import OrchestratorOptions
from mgmt_batch.errors import ConfigurationError
from mgmt_batch.resilience.retry import JitterStrategy

if TYPE_CHECKING:
    from mgmt_batch.client.core import BatchOrchestrator
    from mgmt_batch.transport.auth import TokenProvider
    from mgmt_batch.transport.base import BatchTransport


class BatchOrchestratorBuilder:
    """Builder for creating BatchOrchestrator instances.

    Either pass a ready transport, or a token provider from which an
    ``ArmBatchTransport`` is built.

    Example:
        >>> orchestrator = (
        ...     BatchOrchestratorBuilder()
        ...     .token_provider(EnvironmentTokenProvider())
        ...     .max_batch_size(20)
        ...     .concurrency_limit(4)
        ...     .deadline(120)
        ...     .build()
        ... )
    """

    def __init__(self) -> None:
        """Initialize the builder."""
        self._transport: BatchTransport | None = None
        self._token_provider: TokenProvider | None = None
        self._base_url: str | None = None
        self._api_version: str | None = None
        self._timeout: float | None = None
        self._poll_interval: float | None = None
        self._poll_timeout: float | None = None
        self._proxy: str | None = None
        self._options: dict[str, Any] = {}
        self._base_options: OrchestratorOptions | None = None
        self._rng: random.Random | None = None

    def transport(self, transport: BatchTransport) -> BatchOrchestratorBuilder:
        """Use an existing transport (not closed by the orchestrator).

        Returns:
            Self for chaining
        """
        self._transport = transport
        return self

    def token_provider(self, provider: TokenProvider) -> BatchOrchestratorBuilder:
        """Set the token provider for the built-in ARM transport.

        Returns:
            Self for chaining
        """
        self._token_provider = provider
        return self

    def base_url(self, url: str) -> BatchOrchestratorBuilder:
        """Override the management endpoint.

        Returns:
            Self for chaining
        """
        self._base_url = url
        return self

    def api_version(self, version: str) -> BatchOrchestratorBuilder:
        """Set the api-version of the batch endpoint.

        Returns:
            Self for chaining
        """
        self._api_version = version
        return self

    def timeout(self, seconds: float) -> BatchOrchestratorBuilder:
        """Set the HTTP request timeout.

        Returns:
            Self for chaining
        """
        self._timeout = seconds
        return self

    def polling(self, interval: float, timeout: float) -> BatchOrchestratorBuilder:
        """Set how deferred batch results are polled.

        Args:
            interval: Seconds between polls
            timeout: Seconds before a deferred result counts as failed

        Returns:
            Self for chaining
        """
        self._poll_interval = interval
        self._poll_timeout = timeout
        return self

    def proxy(self, url: str) -> BatchOrchestratorBuilder:
        """Route batch calls through a proxy.

        Returns:
            Self for chaining
        """
        self._proxy = url
        return self

    def options(self, options: OrchestratorOptions) -> BatchOrchestratorBuilder:
        """Start from existing options; individual setters still override.

        Returns:
            Self for chaining
        """
        self._base_options = options
        return self

    def max_batch_size(self, size: int) -> BatchOrchestratorBuilder:
        self._options["max_batch_size"] = size
        return self

    def concurrency_limit(self, limit: int) -> BatchOrchestratorBuilder:
        self._options["concurrency_limit"] = limit
        return self

    def max_attempts(self, attempts: int) -> BatchOrchestratorBuilder:
        self._options["max_attempts"] = attempts
        return self

    def backoff(
        self,
        base_delay: float | timedelta,
        max_delay: float | timedelta,
        jitter: JitterStrategy = JitterStrategy.ADDITIVE,
    ) -> BatchOrchestratorBuilder:
        """Set retry backoff.

        Returns:
            Self for chaining
        """
        self._options["base_delay"] = base_delay
        self._options["max_delay"] = max_delay
        self._options["jitter"] = jitter
        return self

    def deadline(self, deadline: float | timedelta | None) -> BatchOrchestratorBuilder:
        """Set the run deadline (None = no deadline).

        Returns:
            Self for chaining
        """
        self._options["deadline"] = deadline
        return self

    def seed(self, seed: int) -> BatchOrchestratorBuilder:
        """Seed the retry jitter for reproducible delays.

        Returns:
            Self for chaining
        """
        self._rng = random.Random(seed)
        return self

    def build_options(self) -> OrchestratorOptions:
        """Build only the options.

        Raises:
            ConfigurationError: If the options are invalid
        """
        base = self._base_options or OrchestratorOptions()
        return replace(base, **self._options)

    def build(self) -> BatchOrchestrator:
        """Build the orchestrator.

        Returns:
            Configured BatchOrchestrator

        Raises:
            ConfigurationError: If neither a transport nor a token provider was
                set, or the options are invalid
        """
        from mgmt_batch.client.core import BatchOrchestrator

        options = self.build_options()

        if self._transport is not None:
            return BatchOrchestrator(self._transport, options, rng=self._rng)

        if self._token_provider is None:
            raise ConfigurationError(
                "A transport or a token provider is required", option="transport"
            ).with_hint("call .transport(...) or .token_provider(...)")

        from mgmt_batch.transport.http import DEFAULT_API_VERSION, ArmBatchTransport

        transport_kwargs: dict[str, Any] = {
            "base_url": self._base_url,
            "api_version": self._api_version or DEFAULT_API_VERSION,
            "timeout": self._timeout,
            "proxy": self._proxy,
        }
        if self._poll_interval is not None:
            transport_kwargs["poll_interval"] = self._poll_interval
        if self._poll_timeout is not None:
            transport_kwargs["poll_timeout"] = self._poll_timeout

        transport = ArmBatchTransport(self._token_provider, **transport_kwargs)
        return BatchOrchestrator(transport, options, rng=self._rng, owns_transport=True)
