"""Configuration for the retention engine and metrics sweeps."""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .errors import InvalidArgumentError


@dataclass
class RetentionConfig:
    """Tunable knobs; every field can be overridden from the environment."""

    ttl_for_versions_days: int = 365
    ttl_for_snapshots_days: int = 30
    # Never-queried versions younger than this are not evicted; 0 disables.
    not_used_grace_period_days: int = 30
    max_workers: int = 8
    sweep_timeout_seconds: Optional[float] = None
    database_url: Optional[str] = None

    def validate(self) -> "RetentionConfig":
        if self.ttl_for_versions_days < 0:
            raise InvalidArgumentError("ttl_for_versions_days must be >= 0")
        if self.ttl_for_snapshots_days < 0:
            raise InvalidArgumentError("ttl_for_snapshots_days must be >= 0")
        if self.not_used_grace_period_days < 0:
            raise InvalidArgumentError("not_used_grace_period_days must be >= 0")
        if self.max_workers < 1:
            raise InvalidArgumentError("max_workers must be >= 1")
        if self.sweep_timeout_seconds is not None and self.sweep_timeout_seconds <= 0:
            raise InvalidArgumentError("sweep_timeout_seconds must be > 0")
        return self

    @classmethod
    def from_env(cls, prefix: str = "VERKEEP_", dotenv_path: Optional[str] = None) -> "RetentionConfig":
        load_dotenv(dotenv_path)
        defaults = cls()
        timeout = _env(prefix, "SWEEP_TIMEOUT_SECONDS")
        return cls(
            ttl_for_versions_days=_env_int(prefix, "TTL_FOR_VERSIONS_DAYS", defaults.ttl_for_versions_days),
            ttl_for_snapshots_days=_env_int(prefix, "TTL_FOR_SNAPSHOTS_DAYS", defaults.ttl_for_snapshots_days),
            not_used_grace_period_days=_env_int(
                prefix, "NOT_USED_GRACE_PERIOD_DAYS", defaults.not_used_grace_period_days
            ),
            max_workers=_env_int(prefix, "MAX_WORKERS", defaults.max_workers),
            sweep_timeout_seconds=_to_float(prefix + "SWEEP_TIMEOUT_SECONDS", timeout) if timeout else None,
            database_url=_env(prefix, "DATABASE_URL"),
        ).validate()


def _env(prefix: str, name: str) -> Optional[str]:
    value = os.environ.get(prefix + name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _env_int(prefix: str, name: str, default: int) -> int:
    value = _env(prefix, name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise InvalidArgumentError(f"{prefix}{name} must be an integer, got {value!r}") from None


def _to_float(key: str, value: str) -> float:
    try:
        return float(value)
    except ValueError:
        raise InvalidArgumentError(f"{key} must be a number, got {value!r}") from None
