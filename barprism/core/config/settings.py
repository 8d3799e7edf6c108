"""Configuration management for the history builder."""

from __future__ import annotations

import os
import tomllib
from dataclasses import asdict, dataclass, field
from datetime import date
from pathlib import Path
from typing import Any

from loguru import logger


@dataclass
class BuilderConfig:
    """Pull loop and storage limits."""

    block_size: int = 1024
    max_bars_per_session: int = 10_000_000
    max_workers: int = 1

    def __post_init__(self) -> None:
        if self.block_size <= 0:
            raise ValueError("block_size must be positive")
        if self.max_bars_per_session <= 0:
            raise ValueError("max_bars_per_session must be positive")
        if self.max_workers <= 0:
            raise ValueError("max_workers must be positive")


@dataclass
class CalendarConfig:
    """Trading calendar used to label calendar windows."""

    weekend_days: list[int] = field(default_factory=lambda: [5, 6])
    holidays: list[date] = field(default_factory=list)

    def __post_init__(self) -> None:
        # TOML may hand dates back as strings when quoted
        self.holidays = [date.fromisoformat(d) if isinstance(d, str) else d for d in self.holidays]


@dataclass
class LoggingConfig:
    level: str = "WARNING"
    file: str | None = None


@dataclass
class BarPrismConfig:
    """Main configuration."""

    builder: BuilderConfig = field(default_factory=BuilderConfig)
    calendar: CalendarConfig = field(default_factory=CalendarConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> BarPrismConfig:
        return cls(
            builder=BuilderConfig(**config_dict.get("builder", {})),
            calendar=CalendarConfig(**config_dict.get("calendar", {})),
            logging=LoggingConfig(**config_dict.get("logging", {})),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "builder": asdict(self.builder),
            "calendar": asdict(self.calendar),
            "logging": asdict(self.logging),
        }


class ConfigManager:
    """Loads configuration from a TOML file, then applies environment overrides."""

    def __init__(self, config_path: Path | None = None):
        """Initialise the manager.

        Args:
            config_path: TOML file to read, ``~/.barprism/config.toml`` when None
        """
        self.config_path = config_path or Path.home() / ".barprism" / "config.toml"
        self.config = self._load_config()

    def _load_config(self) -> BarPrismConfig:
        config_dict: dict[str, Any] = {}
        if self.config_path.exists():
            try:
                with open(self.config_path, "rb") as f:
                    config_dict = tomllib.load(f)
            except (OSError, tomllib.TOMLDecodeError) as e:
                logger.warning("Failed to load config from {}: {}", self.config_path, e)
                config_dict = {}
        _deep_update(config_dict, load_config_from_env())
        return BarPrismConfig.from_dict(config_dict)

    def get_config(self) -> BarPrismConfig:
        return self.config

    def update_config(self, **updates: Any) -> None:
        """Update configuration sections, e.g. ``update_config(builder={"block_size": 64})``."""
        config_dict = self.config.to_dict()
        _deep_update(config_dict, updates)
        self.config = BarPrismConfig.from_dict(config_dict)


def _deep_update(d: dict[str, Any], u: dict[str, Any]) -> dict[str, Any]:
    for k, v in u.items():
        if isinstance(v, dict):
            d[k] = _deep_update(d.get(k, {}), v)
        else:
            d[k] = v
    return d


def get_default_config() -> BarPrismConfig:
    return BarPrismConfig()


def load_config_from_env() -> dict[str, Any]:
    """Read ``BARPRISM_*`` environment variables into a config dictionary."""
    config: dict[str, Any] = {}

    builder_config: dict[str, Any] = {}
    for env_name, key in (
        ("BARPRISM_BLOCK_SIZE", "block_size"),
        ("BARPRISM_MAX_BARS_PER_SESSION", "max_bars_per_session"),
        ("BARPRISM_MAX_WORKERS", "max_workers"),
    ):
        value = os.getenv(env_name)
        if value is not None:
            builder_config[key] = int(value)
    if builder_config:
        config["builder"] = builder_config

    logging_config: dict[str, Any] = {}
    level = os.getenv("BARPRISM_LOGGING_LEVEL")
    if level is not None:
        logging_config["level"] = level
    log_file = os.getenv("BARPRISM_LOGGING_FILE")
    if log_file is not None:
        logging_config["file"] = log_file
    if logging_config:
        config["logging"] = logging_config

    return config
