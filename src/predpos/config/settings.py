"""TOML config loading and profiles."""

from __future__ import annotations

import logging
import sys
import tomllib
from pathlib import Path
from typing import Any, TextIO

from predpos.errors import ConfigError

# Default config search path (project root or cwd)
_CONFIG_DIR = Path(__file__).resolve().parent.parent.parent.parent / "config"
_CWD_CONFIG = Path.cwd() / "config"


def _load_toml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"invalid TOML in {path}: {e}") from e


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base. Override values take precedence."""
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _find_config_dir(config_dir: Path | None = None) -> Path:
    if config_dir is not None:
        return Path(config_dir)
    if _CWD_CONFIG.exists():
        return _CWD_CONFIG
    return _CONFIG_DIR


def load_config(profile: str | None = None, config_dir: Path | None = None) -> dict[str, Any]:
    """Load merged config from default.toml and optional profile overlay."""
    config_dir = _find_config_dir(config_dir)
    default_path = config_dir / "default.toml"
    base = _load_toml(default_path) if default_path.exists() else {}
    if profile:
        profile_path = config_dir / f"{profile}.toml"
        if not profile_path.exists():
            raise ConfigError(f"profile not found: {profile_path}")
        base = _deep_merge(base, _load_toml(profile_path))
    return base


def get_settings(profile: str | None = None, config_dir: Path | None = None) -> Settings:
    """Return Settings instance from merged config."""
    return Settings.from_dict(load_config(profile, config_dir))


class Settings:
    """Application settings from TOML config."""

    def __init__(
        self,
        *,
        rpc: dict[str, Any] | None = None,
        storage: dict[str, Any] | None = None,
        logs: dict[str, Any] | None = None,
        logging: dict[str, Any] | None = None,
    ):
        self.rpc = rpc or {}
        self.storage = storage or {}
        self.logs = logs or {}
        self.logging = logging or {}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Settings:
        return cls(
            rpc=raw.get("rpc"),
            storage=raw.get("storage"),
            logs=raw.get("logs"),
            logging=raw.get("logging"),
        )

    # Convenience accessors with defaults
    @property
    def rpc_url(self) -> str | None:
        return self.rpc.get("url")

    @property
    def rpc_timeout_sec(self) -> float:
        return float(self.rpc.get("timeout_sec", 30.0))

    @property
    def db_path(self) -> str:
        return self.storage.get("db_path", "data/predpos.duckdb")

    @property
    def log_filters(self) -> dict[str, Any]:
        """Raw [logs.<bucket>] tables, validated by the RPC log source."""
        return dict(self.logs)

    @property
    def logging_level(self) -> str:
        return self.logging.get("level", "INFO").upper()

    @property
    def logging_format(self) -> str:
        return self.logging.get("format", "console")

    @property
    def logging_level_num(self) -> int:
        return getattr(logging, self.logging_level, logging.INFO)


def configure_logging(settings: Settings, stream: TextIO | None = None) -> None:
    """Set up structlog from [logging]. Output goes to stderr unless a stream is given,
    since stdout carries command output.
    """
    import structlog

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.logging_format == "json"
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(settings.logging_level_num),
        logger_factory=structlog.PrintLoggerFactory(file=stream or sys.stderr),
        cache_logger_on_first_use=stream is None,
    )
