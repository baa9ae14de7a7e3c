"""编排选项：批大小、并发、重试与截止时间，支持映射、环境变量和 YAML/JSON 文件。

Run options for the batch orchestrator.

Options can be built directly, from a mapping (snake_case or camelCase keys),
from ``MGMT_BATCH_*`` environment variables, or from a YAML/JSON file.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from mgmt_batch.batch.partition import validate_batch_size
from mgmt_batch.errors import ConfigurationError
from mgmt_batch.resilience.retry import JitterStrategy, RetryConfig, to_seconds

if TYPE_CHECKING:
    from collections.abc import Mapping

# camelCase names accepted by from_mapping()
_ALIASES = {
    "maxBatchSize": "max_batch_size",
    "concurrencyLimit": "concurrency_limit",
    "maxAttempts": "max_attempts",
    "baseDelay": "base_delay",
    "maxDelay": "max_delay",
    "deadline": "deadline",
    "jitter": "jitter",
}

_ENV_VARS = {
    "max_batch_size": ("MGMT_BATCH_MAX_BATCH_SIZE", int),
    "concurrency_limit": ("MGMT_BATCH_CONCURRENCY", int),
    "max_attempts": ("MGMT_BATCH_MAX_ATTEMPTS", int),
    "base_delay": ("MGMT_BATCH_BASE_DELAY_SECS", float),
    "max_delay": ("MGMT_BATCH_MAX_DELAY_SECS", float),
    "deadline": ("MGMT_BATCH_DEADLINE_SECS", float),
}


@dataclass
class OrchestratorOptions:
    """Configuration for one orchestration run.

    Durations accept seconds or ``timedelta`` and are stored as seconds.

    Attributes:
        max_batch_size: Maximum units per batch call
        concurrency_limit: Maximum batch calls in flight
        max_attempts: Total attempts per unit, first one included
        base_delay: Delay before the first retry
        max_delay: Cap for the exponential backoff
        deadline: Run deadline measured from submit (None = no deadline)
        jitter: Jitter strategy for retry delays
    """

    max_batch_size: int = 20
    concurrency_limit: int = 4
    max_attempts: int = 5
    base_delay: float = 1.0
    max_delay: float = 30.0
    deadline: float | None = None
    jitter: JitterStrategy = JitterStrategy.ADDITIVE

    def __post_init__(self) -> None:
        validate_batch_size(self.max_batch_size)
        if isinstance(self.concurrency_limit, bool) or not isinstance(
            self.concurrency_limit, int
        ):
            raise ConfigurationError(
                "concurrency_limit must be an integer",
                option="concurrency_limit",
                value=self.concurrency_limit,
            )
        if self.concurrency_limit < 1:
            raise ConfigurationError(
                "concurrency_limit must be >= 1",
                option="concurrency_limit",
                value=self.concurrency_limit,
            )
        if self.deadline is not None:
            self.deadline = to_seconds(self.deadline, "deadline")
        try:
            self.jitter = JitterStrategy(self.jitter)
        except ValueError as e:
            raise ConfigurationError(
                f"Unknown jitter strategy: {self.jitter!r}", option="jitter", value=self.jitter
            ) from e

        # RetryConfig owns the attempt/delay rules; normalize through it
        retry = self.retry_config()
        self.base_delay = retry.base_delay
        self.max_delay = retry.max_delay

    def retry_config(self) -> RetryConfig:
        """Build the retry configuration for these options."""
        return RetryConfig(
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            jitter=self.jitter,
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> OrchestratorOptions:
        """Create options from a mapping.

        Keys may be snake_case or the camelCase names (``maxBatchSize``,
        ``concurrencyLimit``, ...).

        Raises:
            ConfigurationError: On unknown keys or invalid values
        """
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            name = _ALIASES.get(key, key)
            if name not in known:
                raise ConfigurationError(
                    f"Unknown option: {key!r}", option=str(key), value=value
                ).with_hint(f"valid options: {', '.join(sorted(known))}")
            if name in kwargs:
                raise ConfigurationError(f"Option given twice: {key!r}", option=name)
            kwargs[name] = value
        return cls(**kwargs)

    @classmethod
    def from_env(cls, **overrides: Any) -> OrchestratorOptions:
        """Create options from ``MGMT_BATCH_*`` environment variables.

        Args:
            **overrides: Values that take precedence over the environment

        Raises:
            ConfigurationError: If a variable does not parse
        """
        kwargs: dict[str, Any] = {}
        for name, (env_var, parse) in _ENV_VARS.items():
            raw = os.getenv(env_var)
            if raw is None or raw.strip() == "":
                continue
            try:
                kwargs[name] = parse(raw.strip())
            except ValueError as e:
                raise ConfigurationError(
                    f"Invalid value for {env_var}: {raw!r}", option=name, value=raw
                ) from e
        kwargs.update(overrides)
        return cls(**kwargs)

    @classmethod
    def from_file(cls, path: str | Path) -> OrchestratorOptions:
        """Load options from a YAML or JSON file.

        The mapping may sit at the top level or under an ``orchestrator`` key.

        Raises:
            ConfigurationError: If the file is missing, unparsable or invalid
        """
        path = Path(path)
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"Cannot read options file: {path}", value=str(path)) from e

        try:
            if path.suffix == ".json":
                data = json.loads(content)
            else:
                data = yaml.safe_load(content)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot parse options file {path}: {e}") from e

        if data is None:
            data = {}
        if isinstance(data, dict) and isinstance(data.get("orchestrator"), dict):
            data = data["orchestrator"]
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Options file {path} must contain a mapping", value=type(data).__name__
            )
        return cls.from_mapping(data)

    @classmethod
    def coerce(cls, value: OrchestratorOptions | Mapping[str, Any] | None) -> OrchestratorOptions:
        """Accept options, a mapping of options, or None (defaults)."""
        if value is None:
            return cls()
        if isinstance(value, cls):
            return value
        if isinstance(value, dict) or hasattr(value, "items"):
            return cls.from_mapping(value)
        raise TypeError(f"options must be OrchestratorOptions or a mapping, got {type(value).__name__}")

    def to_dict(self) -> dict[str, Any]:
        """Options as a plain dict (seconds for durations)."""
        return {
            "max_batch_size": self.max_batch_size,
            "concurrency_limit": self.concurrency_limit,
            "max_attempts": self.max_attempts,
            "base_delay": self.base_delay,
            "max_delay": self.max_delay,
            "deadline": self.deadline,
            "jitter": self.jitter.value,
        }

    @property
    def deadline_delta(self) -> timedelta | None:
        return timedelta(seconds=self.deadline) if self.deadline is not None else None
