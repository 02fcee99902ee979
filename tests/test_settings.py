"""Typed smoke tests for the cache settings loader.

These tests verify four guarantees:
1) Importing the module-level `settings` yields a `Settings` instance.
2) Environment variables override defaults after clearing the loader cache.
3) Explicit construction by field name works without touching the environment.
4) `get_logger()` respects the configured LOG_LEVEL when constructing loggers.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import pytest
from pydantic import ValidationError

from optimistic_cache.core.settings import (
    Settings,
    get_logger,
    load_settings,
    settings,
)


def test_settings_instance_type() -> None:
    """`settings` should be an instance of the typed `Settings` model."""
    assert isinstance(settings, Settings)


def test_env_overrides_with_cache_clear(monkeypatch: Any) -> None:
    """Changing env vars should take effect after `load_settings.cache_clear()`."""
    monkeypatch.setenv("OPTIMISTIC_CACHE_ENV", "test")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("CACHE_STALE_TIME_SECONDS", "5")
    monkeypatch.setenv("CACHE_REFETCH_ON_SETTLE", "false")

    load_settings.cache_clear()
    s = load_settings()

    assert s.environment == "test" and s.is_test
    assert s.log_level == "DEBUG"
    assert s.stale_time_seconds == 5.0
    assert s.refetch_on_settle is False
    load_settings.cache_clear()


def test_explicit_field_names() -> None:
    """Sessions can be configured in code without mutating `os.environ`."""
    s = Settings(
        stale_time_seconds=0.5,
        rpc_base_url="http://rpc.local",
        rpc_source="cli",
        trace_dir=Path("/tmp/traces"),
    )
    assert s.stale_time_seconds == 0.5
    assert s.rpc_base_url == "http://rpc.local" and s.rpc_source == "cli"
    assert s.trace_dir == Path("/tmp/traces")

    with pytest.raises(ValidationError):
        Settings(stale_time_seconds=-1)


def test_get_logger_respects_level(monkeypatch: Any) -> None:
    """`get_logger()` should apply the numeric level derived from `LOG_LEVEL`."""
    monkeypatch.setenv("LOG_LEVEL", "ERROR")
    load_settings.cache_clear()
    _ = load_settings()

    logger_name = "optimistic_cache.tests.settings"
    logger = get_logger(logger_name)

    assert logger.level == logging.ERROR
    assert logger.handlers, "Expected at least one StreamHandler to be attached."
    load_settings.cache_clear()
