"""
Configuration system for planreplay.

Implements 12-factor config principles:
- Environment variables as primary config source
- Optional JSON or YAML config file for local development
- CLI flags override both (see planreplay.cli.main)

Usage:
    from planreplay.config import get_config, Config

    # Load from environment (default)
    config = get_config()

    # Reject invalid mode combinations before touching any database
    config.validate_modes(has_target=target_url is not None)
"""

from __future__ import annotations

import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from planreplay.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class SettleConfig(BaseModel):
    """
    Bounds for polling target statistics after a replayed statement.

    The first read happens after initial_delay_seconds; later reads back
    off exponentially (multiplier * 2 ** (attempt - 1), capped at
    max_delay_seconds) until max_attempts reads have been made.
    """

    model_config = ConfigDict(frozen=True)

    initial_delay_seconds: float = Field(
        default=0.1,
        ge=0.0,
        description="Delay before the first read of target statistics",
    )
    max_attempts: int = Field(
        default=5,
        ge=1,
        description="Total reads before giving up",
    )
    multiplier: float = Field(
        default=0.1,
        ge=0.0,
        description="Exponential backoff multiplier in seconds",
    )
    max_delay_seconds: float = Field(
        default=2.0,
        ge=0.0,
        description="Upper bound on a single backoff delay",
    )


class Config(BaseModel):
    """
    planreplay run configuration.

    Loaded from environment variables and optional config file.
    """

    model_config = ConfigDict(frozen=True)

    window_hours: int = Field(
        default=1,
        ge=1,
        description="Capture plans executed within this many hours",
    )
    staging_root: Path = Field(
        default=Path("planreplay-output"),
        description="Directory receiving plans/ and replay/",
    )

    # Mode flags
    export_only: bool = Field(
        default=False,
        description="Export plans and build artifacts without replaying",
    )
    select_only: bool = Field(
        default=False,
        description="Discard artifacts for non-SELECT statements",
    )
    plan_consistency: bool = Field(
        default=False,
        description="Check the target produced an equivalent plan",
    )
    compare_perf: bool = Field(
        default=False,
        description="Compare source and target durations",
    )
    include_statements: bool = Field(
        default=False,
        description="Include a statement preview in the comparison table",
    )

    preview_length: int = Field(
        default=100,
        ge=1,
        le=100,
        description="Maximum characters of statement preview",
    )
    statement_timeout_seconds: float | None = Field(
        default=None,
        description="Query timeout for each statement (pyodbc connections)",
    )
    settle: SettleConfig = Field(
        default_factory=SettleConfig,
        description="Polling bounds for target statistics",
    )

    @property
    def needs_target(self) -> bool:
        """Whether the run replays against a target database."""
        return not self.export_only

    def validate_modes(self, has_target: bool) -> None:
        """
        Reject mode combinations that cannot work.

        Raises:
            ConfigurationError: On an invalid combination.
        """
        if self.export_only and (self.plan_consistency or self.compare_perf):
            raise ConfigurationError(
                "export_only cannot be combined with plan_consistency or compare_perf",
                config_key="export_only",
            )
        if self.needs_target and not has_target:
            raise ConfigurationError(
                "A target database is required unless export_only is set",
                config_key="target",
            )


def _parse_env_bool(value: str | None, default: bool = False) -> bool:
    """Parse boolean from environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_env_int(value: str | None, default: int) -> int:
    """Parse integer from environment variable."""
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning("Could not parse integer %r, using %s", value, default)
        return default


def _parse_env_float(value: str | None, default: float) -> float:
    """Parse float from environment variable."""
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning("Could not parse number %r, using %s", value, default)
        return default


def load_config_from_env() -> Config:
    """
    Load configuration from environment variables.

    Examples:
    - PLANREPLAY_WINDOW_HOURS=4
    - PLANREPLAY_STAGING_ROOT=/var/tmp/replay
    - PLANREPLAY_SELECT_ONLY=true
    - PLANREPLAY_COMPARE_PERF=1
    - PLANREPLAY_SETTLE_MAX_ATTEMPTS=8
    """
    env = os.environ

    settle = SettleConfig(
        initial_delay_seconds=_parse_env_float(
            env.get("PLANREPLAY_SETTLE_INITIAL_DELAY"), 0.1
        ),
        max_attempts=_parse_env_int(env.get("PLANREPLAY_SETTLE_MAX_ATTEMPTS"), 5),
        multiplier=_parse_env_float(env.get("PLANREPLAY_SETTLE_MULTIPLIER"), 0.1),
        max_delay_seconds=_parse_env_float(env.get("PLANREPLAY_SETTLE_MAX_DELAY"), 2.0),
    )

    config_kwargs: dict[str, Any] = {
        "window_hours": _parse_env_int(env.get("PLANREPLAY_WINDOW_HOURS"), 1),
        "export_only": _parse_env_bool(env.get("PLANREPLAY_EXPORT_ONLY")),
        "select_only": _parse_env_bool(env.get("PLANREPLAY_SELECT_ONLY")),
        "plan_consistency": _parse_env_bool(env.get("PLANREPLAY_PLAN_CONSISTENCY")),
        "compare_perf": _parse_env_bool(env.get("PLANREPLAY_COMPARE_PERF")),
        "include_statements": _parse_env_bool(env.get("PLANREPLAY_INCLUDE_STATEMENTS")),
        "preview_length": _parse_env_int(env.get("PLANREPLAY_PREVIEW_LENGTH"), 100),
        "settle": settle,
    }

    if "PLANREPLAY_STAGING_ROOT" in env:
        config_kwargs["staging_root"] = Path(env["PLANREPLAY_STAGING_ROOT"])
    if "PLANREPLAY_STATEMENT_TIMEOUT" in env:
        config_kwargs["statement_timeout_seconds"] = _parse_env_float(
            env["PLANREPLAY_STATEMENT_TIMEOUT"], 30.0
        )

    try:
        return Config(**config_kwargs)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid environment configuration: {e}") from e


def load_config_from_file(path: Path) -> Config:
    """
    Load configuration from a JSON or YAML file.

    Falls back to environment variables when the file does not exist.

    Raises:
        ConfigurationError: If the file exists but cannot be loaded.
    """
    if not path.exists():
        logger.warning("Config file not found: %s, using environment", path)
        return load_config_from_env()

    try:
        with open(path, encoding="utf-8") as f:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f) or {}
            else:
                data = json.load(f)
        return Config(**data)
    except (OSError, ValueError, yaml.YAMLError) as e:
        # pydantic's ValidationError is a ValueError
        raise ConfigurationError(f"Failed to load config from {path}: {e}") from e


@lru_cache(maxsize=1)
def get_config() -> Config:
    """
    Get the global configuration instance.

    Loads from:
    1. PLANREPLAY_CONFIG_FILE environment variable (if set)
    2. Environment variables (default)

    Result is cached for the lifetime of the process.
    """
    config_file = os.environ.get("PLANREPLAY_CONFIG_FILE")

    if config_file:
        return load_config_from_file(Path(config_file))

    return load_config_from_env()


def reset_config() -> None:
    """Reset the cached configuration (mainly for testing)."""
    get_config.cache_clear()
