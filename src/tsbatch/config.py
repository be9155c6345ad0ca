"""Client configuration.

Settings can come from code, environment variables or a YAML, JSON or
TOML file.

Environment:
    TSBATCH_URL=http://influx:8086
    TSBATCH_USERNAME=writer
    TSBATCH_BATCH_ENABLED=true
    TSBATCH_BATCH_ACTIONS=5000

File (YAML):
    url: http://influx:8086
    username: writer
    password: secret
    batch:
      enabled: true
      actions: 5000
      flush_interval: 2
      flush_unit: seconds
"""

from __future__ import annotations

import json
import os
import tomllib
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

from tsbatch.base import ConfigError, ConfigValidationError, TimeUnit
from tsbatch.batching.base import BatchConfig
from tsbatch.log import LogLevel

ENV_PREFIX = "TSBATCH"

_STRING_SETTINGS = frozenset(
    {"url", "username", "password", "default_retention_policy", "log_level", "batch_flush_unit"}
)


@dataclass(frozen=True)
class ClientConfig:
    """Settings for a TimeSeriesClient.

    Attributes:
        url: Base URL of the server.
        username: User to connect as.
        password: Password of that user.
        default_retention_policy: Used when a write names no retention policy.
        timeout_seconds: Socket timeout for each request.
        log_level: HTTP logging level of the transport.
        batch_enabled: Enable batching when the client is built.
        batch_actions: Queue size that triggers a flush.
        batch_flush_interval: Flush timer period, in ``batch_flush_unit``.
        batch_flush_unit: Unit of ``batch_flush_interval``.
    """

    url: str = "http://localhost:8086"
    username: str = "root"
    password: str = "root"
    default_retention_policy: str = "default"
    timeout_seconds: float = 30.0
    log_level: LogLevel = LogLevel.NONE
    batch_enabled: bool = False
    batch_actions: int = 1000
    batch_flush_interval: float = 1000
    batch_flush_unit: TimeUnit = TimeUnit.MILLISECONDS

    @property
    def batch(self) -> BatchConfig:
        """Batch settings as a BatchConfig."""
        return BatchConfig(
            actions=self.batch_actions,
            flush_interval=self.batch_flush_interval,
            flush_unit=self.batch_flush_unit,
        )

    def validate(self) -> None:
        """Validate all values.

        Raises:
            ConfigValidationError: Listing every problem found.
        """
        errors: list[str] = []
        if not self.url.startswith(("http://", "https://")):
            errors.append(f"url must start with http:// or https://: {self.url!r}")
        if not self.default_retention_policy:
            errors.append("default_retention_policy must not be empty")
        numeric = {
            "timeout_seconds": (self.timeout_seconds, (int, float)),
            "batch_actions": (self.batch_actions, (int,)),
            "batch_flush_interval": (self.batch_flush_interval, (int, float)),
        }
        for name, (value, types) in numeric.items():
            if isinstance(value, bool) or not isinstance(value, types):
                errors.append(f"{name} must be a number, got {value!r}")
            elif value <= 0:
                errors.append(f"{name} must be positive")
        if not isinstance(self.batch_enabled, bool):
            errors.append(f"batch_enabled must be true or false, got {self.batch_enabled!r}")
        if errors:
            raise ConfigValidationError(errors)

    def merge(self, **overrides: Any) -> "ClientConfig":
        """Return a copy with non-None ``overrides`` applied and coerced."""
        values = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **_coerce(values))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ClientConfig":
        """Build from a (possibly nested) dictionary.

        A nested ``batch`` section maps onto the ``batch_*`` fields.
        """
        flat = dict(data)
        batch = flat.pop("batch", None)
        if isinstance(batch, dict):
            for key, value in batch.items():
                flat[f"batch_{key}"] = value

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(flat) - known)
        if unknown:
            raise ConfigValidationError([f"unknown setting: {key}" for key in unknown])

        config = cls(**_coerce(flat))
        config.validate()
        return config

    @classmethod
    def from_env(cls, prefix: str = ENV_PREFIX) -> "ClientConfig":
        """Build from ``{prefix}_*`` environment variables."""
        start = f"{prefix}_"
        known = {f.name for f in fields(cls)}
        data: dict[str, Any] = {}
        for key, value in os.environ.items():
            if not key.startswith(start):
                continue
            name = key[len(start):].lower()
            if name in _STRING_SETTINGS:
                data[name] = value
            elif name in known:
                data[name] = _parse_value(value)
        return cls.from_dict(data)

    @classmethod
    def from_file(cls, path: str | Path) -> "ClientConfig":
        """Build from a YAML, JSON or TOML file.

        Raises:
            ConfigError: If the file is missing or cannot be parsed.
        """
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        content = path.read_text(encoding="utf-8")
        suffix = path.suffix.lower()
        try:
            if suffix in (".yaml", ".yml"):
                data = yaml.safe_load(content) or {}
            elif suffix == ".json":
                data = json.loads(content)
            elif suffix == ".toml":
                data = tomllib.loads(content)
            else:
                raise ConfigError(f"Unsupported file format: {suffix}")
        except (yaml.YAMLError, json.JSONDecodeError, tomllib.TOMLDecodeError) as e:
            raise ConfigError(f"Failed to load config {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Configuration root must be a mapping: {path}")
        return cls.from_dict(data)


def _parse_value(value: str) -> Any:
    """Parse an environment string to bool, None, int, float or str."""
    lowered = value.lower()
    if lowered in ("true", "yes", "on"):
        return True
    if lowered in ("false", "no", "off"):
        return False
    if lowered in ("null", "none", ""):
        return None

    try:
        if "." in value:
            return float(value)
        return int(value)
    except ValueError:
        pass

    return value


def _coerce(values: dict[str, Any]) -> dict[str, Any]:
    """Coerce enum-valued settings given as strings."""
    result = {k: v for k, v in values.items() if v is not None}
    try:
        if isinstance(result.get("log_level"), str):
            result["log_level"] = LogLevel.from_string(result["log_level"])
        if isinstance(result.get("batch_flush_unit"), str):
            result["batch_flush_unit"] = TimeUnit.from_string(result["batch_flush_unit"])
    except ValueError as e:
        raise ConfigValidationError([str(e)]) from e
    for name in ("url", "username", "password", "default_retention_policy"):
        if name in result:
            result[name] = str(result[name])
    return result
