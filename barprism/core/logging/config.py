"""Logging configuration primitives for structured logging."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

if TYPE_CHECKING:
    from barprism.core.config.settings import LoggingConfig

_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")


class LogConfig(BaseModel):
    """Sinks and level of the structured JSON logger.

    ``console_stream`` defaults to ``sys.stderr`` when left unset so library
    output never mixes with a caller's stdout.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    level: str = "INFO"
    console_output: bool = True
    console_stream: Any = None
    file_output: bool = False
    file_path: str | None = None
    extra: dict[str, Any] = Field(default_factory=dict)

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in _LEVELS:
            raise ValueError(f"unknown log level {value!r}")
        return level

    @classmethod
    def from_settings(cls, settings: LoggingConfig, **overrides: Any) -> LogConfig:
        """Translate the ``logging`` section of ``BarPrismConfig``."""
        values: dict[str, Any] = {
            "level": settings.level,
            "file_output": settings.file is not None,
            "file_path": settings.file,
        }
        values.update(overrides)
        return cls(**values)


__all__ = ["LogConfig"]
