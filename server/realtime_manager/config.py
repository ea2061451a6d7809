"""
Realtime Manager Configuration

All environment variables MUST be defined here. No os.getenv() calls allowed
elsewhere. The registry never reads the environment itself; main.py passes
these values into it.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field

DEFAULT_MAX_CHANNELS = 10
DEFAULT_INACTIVE_TIMEOUT_MS = 5 * 60 * 1000
DEFAULT_SWEEP_INTERVAL_MS = 60 * 1000


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


def _optional_env(name: str, default: str = "") -> str:
    """Get an optional environment variable with a default."""
    return os.environ.get(name, default)


def _optional_env_int(name: str, default: int) -> int:
    """Get an optional integer environment variable with a default."""
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"Invalid integer value for {name}: {value}")


def _optional_env_bool(name: str, default: bool) -> bool:
    """Get an optional boolean environment variable with a default."""
    value = os.environ.get(name)
    if not value:
        return default
    return value.lower() in ("true", "1", "yes")


def _require_positive(name: str, value: int) -> int:
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value


@dataclass(frozen=True)
class RegistryConfig:
    """Channel registry limits and timers."""
    max_channels: int = DEFAULT_MAX_CHANNELS
    inactive_timeout_ms: int = DEFAULT_INACTIVE_TIMEOUT_MS
    sweep_interval_ms: int = DEFAULT_SWEEP_INTERVAL_MS
    logging_enabled: bool = True

    @property
    def inactive_timeout(self) -> float:
        """Idle threshold in seconds."""
        return self.inactive_timeout_ms / 1000

    @property
    def sweep_interval(self) -> float:
        """Sweep period in seconds."""
        return self.sweep_interval_ms / 1000


@dataclass(frozen=True)
class RedisConfig:
    """Redis connection for the change feed."""
    url: str = "redis://localhost:6379/0"


@dataclass(frozen=True)
class MonitorConfig:
    """Connection monitor (dev tool)."""
    enabled: bool = False
    interval_ms: int = 2000
    warn_threshold: int = 6  # warn once more than this many channels are open


@dataclass(frozen=True)
class Settings:
    """Root configuration container."""
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)


def load_settings() -> Settings:
    """Load all settings from environment variables."""
    registry = RegistryConfig(
        max_channels=_require_positive(
            "REALTIME_MAX_CHANNELS",
            _optional_env_int("REALTIME_MAX_CHANNELS", DEFAULT_MAX_CHANNELS),
        ),
        inactive_timeout_ms=_require_positive(
            "REALTIME_INACTIVE_TIMEOUT_MS",
            _optional_env_int("REALTIME_INACTIVE_TIMEOUT_MS", DEFAULT_INACTIVE_TIMEOUT_MS),
        ),
        sweep_interval_ms=_require_positive(
            "REALTIME_SWEEP_INTERVAL_MS",
            _optional_env_int("REALTIME_SWEEP_INTERVAL_MS", DEFAULT_SWEEP_INTERVAL_MS),
        ),
        logging_enabled=_optional_env_bool("REALTIME_LOGGING", True),
    )

    redis = RedisConfig(
        url=_optional_env("REDIS_URL", "redis://localhost:6379/0"),
    )

    monitor = MonitorConfig(
        enabled=_optional_env_bool("REALTIME_MONITOR", False),
        interval_ms=_require_positive(
            "REALTIME_MONITOR_INTERVAL_MS",
            _optional_env_int("REALTIME_MONITOR_INTERVAL_MS", 2000),
        ),
        warn_threshold=_optional_env_int("REALTIME_MONITOR_WARN_AT", 6),
    )

    return Settings(registry=registry, redis=redis, monitor=monitor)
