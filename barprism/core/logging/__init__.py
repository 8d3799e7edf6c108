"""Logging utilities for monitoring and debugging."""

from barprism.core.logging.config import LogConfig
from barprism.core.logging.logger import (
    PROMOTED_KEYS,
    StructuredLogger,
    bind,
    build_context,
    configure_from_settings,
    configure_logging,
    current_trace_id,
    get_logger,
    log_context,
    logger,
)

__all__ = [
    "LogConfig",
    "PROMOTED_KEYS",
    "StructuredLogger",
    "bind",
    "build_context",
    "configure_from_settings",
    "configure_logging",
    "current_trace_id",
    "get_logger",
    "log_context",
    "logger",
]
