"""Settings loading and logging setup."""

from oraclex.config.settings import Settings, configure_logging, get_settings

__all__ = ["Settings", "configure_logging", "get_settings"]
