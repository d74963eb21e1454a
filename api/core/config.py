"""
Environment-based settings.

Every knob has a default so the service runs with only DATABASE_URL set.
Malformed numeric values fall back to their defaults; values that can never
work (e.g. a non-positive batch size) fail fast at startup.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime, timezone

DEFAULT_GENESIS = datetime(2018, 6, 30, tzinfo=timezone.utc)


def env_str(name: str, default: str) -> str:
    return os.environ.get(name, default).strip() or default


def env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


def parse_timestamp(raw: str) -> datetime:
    """
    Parse an ISO-8601 timestamp; naive values are taken as UTC.
    """
    value = datetime.fromisoformat(raw.strip())
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _env_timestamp(name: str, default: datetime) -> datetime:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return parse_timestamp(raw)
    except ValueError as e:
        raise RuntimeError(f"Invalid {name}: {raw!r} is not an ISO-8601 timestamp.") from e


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return list(default)
    return [part.strip() for part in raw.split(",") if part.strip()]


@dataclass(frozen=True)
class Settings:
    tzkt_base_url: str = "https://api.tzkt.io/v1"
    tzkt_timeout_s: float = 10.0
    tzkt_rate_per_s: float = 10.0
    tzkt_burst: int = 5
    tzkt_max_attempts: int = 3

    sync_enabled: bool = True
    sync_batch_size: int = 10_000
    sync_poll_interval_s: float = 15.0
    sync_max_backoff_s: float = 120.0
    sync_genesis: datetime = DEFAULT_GENESIS

    http_host: str = "0.0.0.0"
    http_port: int = 8080
    shutdown_grace_s: float = 10.0
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    @property
    def genesis_year(self) -> int:
        return self.sync_genesis.year


def load_settings() -> Settings:
    settings = Settings(
        tzkt_base_url=env_str("TZKT_BASE_URL", Settings.tzkt_base_url),
        tzkt_timeout_s=env_float("TZKT_TIMEOUT_S", Settings.tzkt_timeout_s),
        tzkt_rate_per_s=env_float("TZKT_RATE_PER_S", Settings.tzkt_rate_per_s),
        tzkt_burst=env_int("TZKT_BURST", Settings.tzkt_burst),
        tzkt_max_attempts=env_int("TZKT_MAX_ATTEMPTS", Settings.tzkt_max_attempts),
        sync_enabled=env_bool("SYNC_ENABLED", Settings.sync_enabled),
        sync_batch_size=env_int("SYNC_BATCH_SIZE", Settings.sync_batch_size),
        sync_poll_interval_s=env_float("SYNC_POLL_INTERVAL_S", Settings.sync_poll_interval_s),
        sync_max_backoff_s=env_float("SYNC_MAX_BACKOFF_S", Settings.sync_max_backoff_s),
        sync_genesis=_env_timestamp("SYNC_GENESIS", DEFAULT_GENESIS),
        http_host=env_str("HTTP_HOST", Settings.http_host),
        http_port=env_int("HTTP_PORT", Settings.http_port),
        shutdown_grace_s=env_float("SHUTDOWN_GRACE_S", Settings.shutdown_grace_s),
        cors_origins=_env_list("CORS_ORIGINS", ["*"]),
        log_level=env_str("LOG_LEVEL", Settings.log_level).upper(),
    )

    if settings.sync_batch_size <= 0:
        raise RuntimeError("Invalid SYNC_BATCH_SIZE. It must be > 0.")
    if settings.sync_poll_interval_s <= 0:
        raise RuntimeError("Invalid SYNC_POLL_INTERVAL_S. It must be > 0.")
    if settings.sync_max_backoff_s < settings.sync_poll_interval_s:
        raise RuntimeError("Invalid SYNC_MAX_BACKOFF_S. It must be >= SYNC_POLL_INTERVAL_S.")
    if settings.tzkt_rate_per_s <= 0 or settings.tzkt_burst < 1:
        raise RuntimeError("Invalid TZKT_RATE_PER_S / TZKT_BURST. Rate must be > 0 and burst >= 1.")
    if settings.tzkt_max_attempts < 1:
        raise RuntimeError("Invalid TZKT_MAX_ATTEMPTS. It must be >= 1.")

    return settings
