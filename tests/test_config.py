"""Tests for environment-based settings."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from core.config import DEFAULT_GENESIS, load_settings


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("SYNC_BATCH_SIZE", "SYNC_POLL_INTERVAL_S", "SYNC_GENESIS", "TZKT_BASE_URL", "CORS_ORIGINS"):
        monkeypatch.delenv(name, raising=False)

    settings = load_settings()

    assert settings.sync_batch_size == 10_000
    assert settings.sync_poll_interval_s == 15.0
    assert settings.sync_max_backoff_s == 120.0
    assert settings.sync_genesis == DEFAULT_GENESIS
    assert settings.genesis_year == 2018
    assert settings.tzkt_base_url == "https://api.tzkt.io/v1"
    assert settings.cors_origins == ["*"]


def test_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SYNC_BATCH_SIZE", "500")
    monkeypatch.setenv("SYNC_ENABLED", "false")
    monkeypatch.setenv("SYNC_GENESIS", "2019-01-01T00:00:00Z")
    monkeypatch.setenv("CORS_ORIGINS", "http://a.test, http://b.test")

    settings = load_settings()

    assert settings.sync_batch_size == 500
    assert settings.sync_enabled is False
    assert settings.sync_genesis == datetime(2019, 1, 1, tzinfo=timezone.utc)
    assert settings.cors_origins == ["http://a.test", "http://b.test"]


def test_malformed_number_falls_back(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SYNC_POLL_INTERVAL_S", "soon")
    assert load_settings().sync_poll_interval_s == 15.0


def test_invalid_genesis_fails_fast(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SYNC_GENESIS", "yesterday")
    with pytest.raises(RuntimeError, match="SYNC_GENESIS"):
        load_settings()


def test_non_positive_batch_size_fails_fast(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SYNC_BATCH_SIZE", "0")
    with pytest.raises(RuntimeError, match="SYNC_BATCH_SIZE"):
        load_settings()
