"""Centralized cache configuration using Pydantic Settings (v2).

This module exposes a single, cached `settings` instance that reads from:
- Real environment variables (highest precedence)
- `.env` files at the working directory: .env, .env.local, .env.dev/.env.test/.env.prod

Sessions accept an explicit `Settings` object, so tests can build one with
overrides instead of mutating the process environment.
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

EnvName = Literal["dev", "test", "prod"]
LogLevelName = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class Settings(BaseSettings):
    """Typed configuration loaded from env and `.env` files.

    Attributes
    ----------
    environment : EnvName
        Runtime environment flag; maps from `OPTIMISTIC_CACHE_ENV`.
    log_level : LogLevelName
        Global log level string; maps from `LOG_LEVEL`.
    stale_time_seconds : float
        Age after which a fresh entry is treated as stale on read.
    refetch_on_settle : bool
        Whether settling a mutation schedules refetches of its affected keys.
    rpc_base_url : str
        Base URL of the procedure host used by the HTTP client.
    rpc_timeout_seconds : float
        Network timeout for a single procedure call.
    rpc_source : str
        Value sent in the `x-rpc-source` header.
    trace_dir : Path
        Default directory for persisted cache traces.
    """

    environment: EnvName = Field(default="dev", alias="OPTIMISTIC_CACHE_ENV")
    log_level: LogLevelName = Field(default="INFO", alias="LOG_LEVEL")
    stale_time_seconds: float = Field(default=60.0, ge=0.0, alias="CACHE_STALE_TIME_SECONDS")
    refetch_on_settle: bool = Field(default=True, alias="CACHE_REFETCH_ON_SETTLE")
    rpc_base_url: str = Field(default="http://localhost:8000", alias="RPC_BASE_URL")
    rpc_timeout_seconds: float = Field(default=10.0, gt=0.0, alias="RPC_TIMEOUT_SECONDS")
    rpc_source: str = Field(default="python", alias="RPC_SOURCE")
    trace_dir: Path = Field(default=Path("artifacts") / "trace", alias="OPTIMISTIC_CACHE_TRACE_DIR")

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local", ".env.dev", ".env.test", ".env.prod"),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def is_test(self) -> bool:
        """Return True if running in the test environment."""
        return self.environment == "test"

    def log_level_numeric(self) -> int:
        """Return the numeric logging level corresponding to `self.log_level`."""
        return getattr(logging, self.log_level, logging.INFO)


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    """Create and cache a `Settings` instance.

    Tests force a rebuild via `load_settings.cache_clear()` after mutating
    `os.environ`.
    """
    os.environ.setdefault("OPTIMISTIC_CACHE_ENV", "dev")
    return Settings()


# Ready-to-use instance (import-time read of env / .env files).
settings: Settings = load_settings()


def get_logger(name: str = "optimistic_cache") -> logging.Logger:
    """Return a process-global logger configured to the current log level."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
        )
        logger.addHandler(handler)
    logger.setLevel(load_settings().log_level_numeric())
    logger.propagate = False
    return logger


__all__ = ["Settings", "load_settings", "settings", "get_logger"]
