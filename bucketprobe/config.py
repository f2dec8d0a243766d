"""
Configuration.

Settings are layered, last wins:

    defaults -> environment -> YAML file (--config) -> command-line flags

Environment variables follow the S3_* names used by the test harness
(S3_ENDPOINT, S3_ACCESS_KEY, ...) plus BUCKETPROBE_* for probe tuning.
"""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from bucketprobe.errors import ConfigurationError
from bucketprobe.retry import RetryPolicy


@dataclass(frozen=True)
class ProbeConfig:
    """Connection and probe tuning settings"""

    endpoint: Optional[str] = None
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    region: Optional[str] = None
    verify_ssl: bool = True
    retry_max_attempts: int = 4
    retry_base_delay: float = 0.5
    retry_max_delay: float = 30.0
    workers: int = 8
    connect_timeout: float = 10.0
    read_timeout: float = 60.0
    suite_timeout: Optional[float] = None

    def __post_init__(self):
        if self.workers < 1:
            raise ConfigurationError(f"workers must be at least 1, got {self.workers}")
        if self.connect_timeout <= 0 or self.read_timeout <= 0:
            raise ConfigurationError("timeouts must be positive")
        if self.suite_timeout is not None and self.suite_timeout <= 0:
            raise ConfigurationError("suite timeout must be positive")

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.retry_max_attempts,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
        )

    def updated(self, **overrides: Any) -> "ProbeConfig":
        """Copy with the given non-None overrides applied"""
        values = {k: v for k, v in overrides.items() if v is not None}
        return _build(dataclasses.asdict(self), values, source="overrides")

    def pretty(self) -> str:
        secret = "***" if self.secret_key else None
        lines = [
            f"endpoint:  {self.endpoint or '(default)'}",
            f"region:    {self.region or '(default)'}",
            f"access key: {self.access_key or '(default chain)'}",
            f"secret key: {secret or '(default chain)'}",
            f"verify ssl: {self.verify_ssl}",
            f"retries:   {self.retry_max_attempts} attempts, base delay {self.retry_base_delay}s",
            f"workers:   {self.workers}",
        ]
        return "\n".join(lines)


ENV_VARS = {
    "endpoint": "S3_ENDPOINT",
    "access_key": "S3_ACCESS_KEY",
    "secret_key": "S3_SECRET_KEY",
    "region": "S3_REGION",
    "verify_ssl": "S3_VERIFY_SSL",
    "retry_max_attempts": "BUCKETPROBE_RETRIES",
    "workers": "BUCKETPROBE_WORKERS",
    "suite_timeout": "BUCKETPROBE_TIMEOUT",
}

_FIELD_TYPES = {f.name: f.type for f in dataclasses.fields(ProbeConfig)}


def _coerce(name: str, value: Any, source: str) -> Any:
    kind = _FIELD_TYPES[name]
    if value is None:
        return None
    try:
        if "bool" in kind:
            if isinstance(value, bool):
                return value
            return str(value).strip().lower() in ("1", "true", "yes", "on")
        if "int" in kind:
            return int(value)
        if "float" in kind:
            return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{source}: invalid value {value!r} for {name}") from e
    return str(value)


def _build(base: Dict[str, Any], values: Mapping[str, Any], source: str) -> ProbeConfig:
    merged = dict(base)
    for name, value in values.items():
        if name not in _FIELD_TYPES:
            raise ConfigurationError(f"{source}: unknown setting {name!r}")
        merged[name] = _coerce(name, value, source)
    return ProbeConfig(**merged)


def from_env(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    environ = os.environ if environ is None else environ
    return {name: environ[var] for name, var in ENV_VARS.items() if environ.get(var, "").strip()}


def load_yaml(path: str) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        raise ConfigurationError(f"config file not found: {path}")
    try:
        with p.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"{path}: invalid YAML: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path}: top level must be a mapping")
    return data


def load_config(
    path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    **overrides: Any,
) -> ProbeConfig:
    config = _build(dataclasses.asdict(ProbeConfig()), from_env(environ), source="environment")
    if path:
        config = _build(dataclasses.asdict(config), load_yaml(path), source=path)
    return config.updated(**overrides)
