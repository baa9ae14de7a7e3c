"""
Bearer token providers for the management plane.

Resolves access tokens from multiple sources:
1. Explicit value
2. Environment variables
3. System keyring (optional)
4. A caller-supplied callback (e.g. a wrapper around ``az account get-access-token``)
"""

from __future__ import annotations

import asyncio
import inspect
import os
import time
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from mgmt_batch._features import HAS_KEYRING, require_extra
from mgmt_batch.errors import AuthenticationError
from mgmt_batch.telemetry import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = get_logger("mgmt_batch.transport.auth")

# Checked in order after an explicit env var
DEFAULT_TOKEN_ENV_VARS: tuple[str, ...] = ("AZURE_ACCESS_TOKEN", "ARM_ACCESS_TOKEN")
KEYRING_SERVICE = "mgmt-batch"
KEYRING_USERNAME = "arm"


@runtime_checkable
class TokenProvider(Protocol):
    """Supplies the bearer token for each batch call."""

    async def get_token(self) -> str:
        ...


def resolve_access_token(
    explicit_token: str | None = None,
    env_var: str | None = None,
    *,
    use_keyring: bool | None = None,
) -> str | None:
    """Resolve an access token.

    Resolution order:
    1. Explicit token if provided
    2. The named environment variable
    3. Standard environment variables (AZURE_ACCESS_TOKEN, ARM_ACCESS_TOKEN)
    4. System keyring (if available)

    Args:
        explicit_token: Explicitly provided token
        env_var: Environment variable to check first
        use_keyring: True to require keyring, False to skip it,
            None to use it when installed

    Returns:
        Resolved token or None if not found
    """
    if explicit_token:
        return explicit_token

    for name in (env_var, *DEFAULT_TOKEN_ENV_VARS):
        if not name:
            continue
        token = os.getenv(name)
        if token:
            return token

    if use_keyring is True:
        require_extra("keyring", "keyring")
    if use_keyring is False or (use_keyring is None and not HAS_KEYRING):
        return None

    return _try_keyring()


def _try_keyring() -> str | None:
    """Try to get the token from the system keyring."""
    try:
        import keyring

        return keyring.get_password(KEYRING_SERVICE, KEYRING_USERNAME)
    except Exception as e:
        # Keyring backends are commonly unavailable in containers and CI
        logger.debug("Keyring lookup failed", error=str(e))
        return None


def bearer_header(token: str) -> dict[str, str]:
    """Build the Authorization header for a token."""
    return {"Authorization": f"Bearer {token}"}


class StaticTokenProvider:
    """Always returns the same token."""

    def __init__(self, token: str) -> None:
        if not token:
            raise ValueError("token must not be empty")
        self._token = token

    async def get_token(self) -> str:
        return self._token

    def __repr__(self) -> str:
        return "StaticTokenProvider(token=***)"


class EnvironmentTokenProvider:
    """Reads the token from the environment (or keyring) on every call.

    Example:
        >>> provider = EnvironmentTokenProvider("MY_ARM_TOKEN")
        >>> token = await provider.get_token()
    """

    def __init__(self, env_var: str | None = None, *, use_keyring: bool | None = None) -> None:
        self._env_var = env_var
        self._use_keyring = use_keyring

    async def get_token(self) -> str:
        token = resolve_access_token(env_var=self._env_var, use_keyring=self._use_keyring)
        if not token:
            names = ", ".join(n for n in (self._env_var, *DEFAULT_TOKEN_ENV_VARS) if n)
            raise AuthenticationError(
                f"No access token found (checked {names} and keyring)",
                provider="environment",
            )
        return token


class CallbackTokenProvider:
    """Wraps a sync or async callable and caches its token for ``ttl`` seconds.

    Concurrent callers share one refresh.

    Example:
        >>> async def fetch() -> str:
        ...     return await credential.get_token("https://management.azure.com/.default")
        >>> provider = CallbackTokenProvider(fetch, ttl=600)
    """

    def __init__(
        self,
        callback: Callable[[], str | Awaitable[str]],
        ttl: float = 300.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._callback = callback
        self._ttl = ttl
        self._clock = clock
        self._token: str | None = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()
        self.refresh_count = 0

    async def get_token(self) -> str:
        async with self._lock:
            if self._token is not None and self._clock() < self._expires_at:
                return self._token

            try:
                result = self._callback()
                if inspect.isawaitable(result):
                    result = await result
            except Exception as e:
                raise AuthenticationError(
                    f"Token callback failed: {e}", provider="callback", cause=e
                ) from e

            if not isinstance(result, str) or not result:
                raise AuthenticationError(
                    "Token callback returned no token", provider="callback"
                )

            self._token = result
            self._expires_at = self._clock() + self._ttl
            self.refresh_count += 1
            return result

    def invalidate(self) -> None:
        """Force a refresh on the next call."""
        self._token = None
        self._expires_at = 0.0
