"""Configuration management module."""

from barprism.core.config.settings import (
    BarPrismConfig,
    BuilderConfig,
    CalendarConfig,
    ConfigManager,
    LoggingConfig,
    get_default_config,
    load_config_from_env,
)

__all__ = [
    "BarPrismConfig",
    "BuilderConfig",
    "CalendarConfig",
    "ConfigManager",
    "LoggingConfig",
    "get_default_config",
    "load_config_from_env",
]
