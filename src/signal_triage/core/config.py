"""
Signal Triage Centralized Configuration

Provides validated, type-safe access to all environment variables using Pydantic Settings.

Usage:
    from signal_triage.core.config import get_settings

    settings = get_settings()
    if settings.log_level == "DEBUG":
        ...

Data Paths:
    All durable state is stored in {instance_root}/cache/:
    - cache/triage.db: Key-value store (preferences, signals, behavior, counters, queue)

Environment Variables:
    TRIAGE_LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    TRIAGE_DEBUG: Legacy debug flag (enables DEBUG level if set)
    TRIAGE_LOG_JSON: Output logs as JSON
    TRIAGE_INSTANCE_ROOT: Override the instance root directory
    TRIAGE_STORE_BACKEND: "sqlite" (default) or "memory"
    TRIAGE_HOURLY_LIMIT / TRIAGE_DAILY_LIMIT / TRIAGE_MINIMUM_GAP_SECONDS: Delivery budget
    TRIAGE_PERSONA_BUDGETS: Use the active persona's caps instead of the global budget
    TRIAGE_MAX_SIGNALS / TRIAGE_DEGRADED_MAX_SIGNALS: Delivered signal retention
    TRIAGE_DEFAULT_TIMEZONE: Timezone for quiet hours when none is configured
    TRIAGE_PERSONAS_DIR: Directory of user persona YAML files
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _find_project_root() -> Path | None:
    """
    Search upward from this file for the directory holding pyproject.toml.

    Returns:
        Project root, or None when running from an installed wheel
    """
    current = Path(__file__).resolve().parent

    for _ in range(10):  # Limit search depth
        if (current / "pyproject.toml").exists():
            return current
        parent = current.parent
        if parent == current:
            break
        current = parent

    return None


def _find_env_file() -> Path | None:
    """Find the project .env file, if any."""
    root = _find_project_root()
    if root is None:
        return None
    env_file = root / ".env"
    return env_file if env_file.exists() else None


def _find_instance_root() -> Path:
    """
    Find the instance root directory.

    Resolution order:
    1. TRIAGE_INSTANCE_ROOT environment variable (explicit override)
    2. Project root (directory containing pyproject.toml)
    3. Current working directory (fallback)
    """
    override = os.environ.get("TRIAGE_INSTANCE_ROOT")
    if override:
        return Path(override)

    return _find_project_root() or Path.cwd()


_ENV_FILE = _find_env_file()


class TriageSettings(BaseSettings):
    """
    Signal triage configuration settings with validation.

    Environment variables are automatically loaded with the TRIAGE_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="TRIAGE_",
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # =========================================================================
    # Logging Configuration
    # =========================================================================

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING",
        description="Log level for signal triage components",
    )

    debug: bool = Field(
        default=False,
        description="Legacy debug flag (enables DEBUG level if set)",
    )

    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format for machine parsing",
    )

    # =========================================================================
    # Storage
    # =========================================================================

    instance_root: Path = Field(
        default_factory=_find_instance_root,
        description="Instance root directory (project root containing pyproject.toml)",
    )

    store_backend: Literal["sqlite", "memory"] = Field(
        default="sqlite",
        description="Durable key-value store implementation",
    )

    # =========================================================================
    # Delivery Budget
    # =========================================================================

    hourly_limit: int = Field(default=8, ge=0, description="Deliveries allowed per hour")
    daily_limit: int = Field(default=30, ge=0, description="Deliveries allowed per day")
    minimum_gap_seconds: float = Field(
        default=120.0,
        ge=0,
        description="Minimum gap between two deliveries",
    )
    persona_budgets: bool = Field(
        default=False,
        description="Use the active persona's hourly/daily caps instead of the global ones",
    )

    # =========================================================================
    # Retention
    # =========================================================================

    max_signals: int = Field(default=200, ge=1, description="Delivered signals kept")
    degraded_max_signals: int = Field(
        default=100,
        ge=1,
        description="Delivered signals kept when the store is out of capacity",
    )
    max_clusters: int = Field(default=50, ge=1, description="Clusters kept")
    max_queue: int = Field(default=500, ge=1, description="Deferred signals kept")

    # =========================================================================
    # Scoring & Learning
    # =========================================================================

    learning_weight: float = Field(
        default=0.1,
        gt=0,
        le=1,
        description="Exponential moving average weight for behavior learning",
    )

    default_timezone: str = Field(
        default="UTC",
        description="Timezone for quiet hours and focus schedules",
    )

    personas_dir: Optional[Path] = Field(
        default=None,
        description="Directory of user-defined persona YAML files",
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("log_level", mode="before")
    @classmethod
    def uppercase_log_level(cls, v: str) -> str:
        """Normalize log level to uppercase."""
        if isinstance(v, str):
            return v.upper()
        return v

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def effective_log_level(self) -> str:
        """
        Get effective log level, respecting legacy TRIAGE_DEBUG.

        Priority:
        1. Explicit TRIAGE_LOG_LEVEL
        2. TRIAGE_DEBUG=1 -> DEBUG
        3. Default: WARNING
        """
        if self.debug and self.log_level == "WARNING":
            return "DEBUG"
        return self.log_level

    @property
    def log_level_int(self) -> int:
        """Get effective log level as logging constant."""
        return getattr(logging, self.effective_log_level)

    @property
    def cache_dir(self) -> Path:
        """Path to cache directory."""
        return self.instance_root / "cache"

    @property
    def db_path(self) -> Path:
        """Path to the key-value store database."""
        return self.cache_dir / "triage.db"


# =============================================================================
# Singleton Accessor
# =============================================================================


@lru_cache(maxsize=1)
def get_settings() -> TriageSettings:
    """
    Get the singleton settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return TriageSettings()


def reset_settings() -> None:
    """
    Reset the settings cache (for testing).

    After calling this, the next get_settings() call will
    reload settings from environment variables.
    """
    get_settings.cache_clear()


def is_debug_enabled() -> bool:
    """Check if debug logging is enabled."""
    return get_settings().effective_log_level == "DEBUG"
