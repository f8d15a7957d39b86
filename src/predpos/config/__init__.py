"""Configuration: TOML settings and logging setup."""

from predpos.config.settings import Settings, configure_logging, get_settings, load_config

__all__ = ["Settings", "configure_logging", "get_settings", "load_config"]
