"""Structured JSON logging for history builds.

Every record carries a trace id plus the build coordinates (``driver``,
``symbol``, ``build_id``, ``error_code``) at the top level of the JSON
payload; any other bound value lands under ``context``.
"""

from __future__ import annotations

import json
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import IO, TYPE_CHECKING, Any, Iterator
from uuid import uuid4

from loguru import logger

from barprism.core.logging.config import LogConfig

if TYPE_CHECKING:
    from barprism.core.config.settings import LoggingConfig

_TRACE_ID_VAR: ContextVar[str | None] = ContextVar("barprism_trace_id", default=None)
_CONTEXT_VAR: ContextVar[dict[str, Any]] = ContextVar("barprism_log_context", default={})

PROMOTED_KEYS = ("driver", "symbol", "build_id", "error_code")


def _trace_id() -> str:
    trace_id = _TRACE_ID_VAR.get()
    if trace_id is None:
        trace_id = uuid4().hex
        _TRACE_ID_VAR.set(trace_id)
    return trace_id


def _patch_record(record: dict[str, Any]) -> None:
    """Fill ``extra`` from the active log context without overriding bound values."""
    extra = record.setdefault("extra", {})
    if extra.get("trace_id"):
        _TRACE_ID_VAR.set(extra["trace_id"])
    else:
        extra["trace_id"] = _trace_id()

    for key, value in _CONTEXT_VAR.get({}).items():
        if extra.get(key) is None:
            extra[key] = value
    for key in PROMOTED_KEYS:
        extra.setdefault(key, None)


def _to_json(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _render(record: dict[str, Any]) -> str:
    extra = record.get("extra", {})
    time = record.get("time") or datetime.now(UTC)
    payload: dict[str, Any] = {
        "timestamp": time.isoformat(),
        "level": record["level"].name,
        "message": record.get("message"),
        "trace_id": extra.get("trace_id"),
    }
    payload.update({key: extra.get(key) for key in PROMOTED_KEYS})

    context = {k: v for k, v in extra.items() if k != "trace_id" and k not in PROMOTED_KEYS}
    if context:
        payload["context"] = context
    if record.get("exception"):
        payload["exception"] = str(record["exception"])
    return json.dumps(payload, default=_to_json)


class _StreamJsonSink:
    """Write one JSON line per record to a text stream."""

    def __init__(self, stream: IO[str]) -> None:
        self._stream = stream

    def __call__(self, message: Any) -> None:
        self._stream.write(_render(message.record) + "\n")
        self._stream.flush()


class _FileJsonSink:
    """Append one JSON line per record to ``path``, creating its directory."""

    def __init__(self, path: str) -> None:
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self._path = path

    def __call__(self, message: Any) -> None:
        with open(self._path, "a", encoding="utf-8") as file:
            file.write(_render(message.record) + "\n")


def _apply(config: LogConfig) -> None:
    handlers: list[dict[str, Any]] = []
    if config.console_output:
        handlers.append({"sink": _StreamJsonSink(config.console_stream or sys.stderr), "level": config.level})
    if config.file_output and config.file_path:
        handlers.append({"sink": _FileJsonSink(config.file_path), "level": config.level})
    logger.configure(handlers=handlers, patcher=_patch_record, extra=dict(config.extra))


def configure_logging(level: str = "INFO", **kwargs: Any) -> None:
    """Replace every sink with JSON sinks at ``level``."""

    _apply(LogConfig(level=level, **kwargs))


def configure_from_settings(settings: LoggingConfig, **overrides: Any) -> None:
    """Apply the ``logging`` section of a ``BarPrismConfig``."""

    _apply(LogConfig.from_settings(settings, **overrides))


class StructuredLogger:
    """Owns the sink configuration and hands out the shared loguru logger."""

    def __init__(self, config: LogConfig | None = None) -> None:
        self.config = config or LogConfig()
        _apply(self.config)
        self.logger = logger

    def configure(self, **kwargs: Any) -> None:
        self.config = self.config.model_copy(update=kwargs)
        _apply(self.config)

    @contextmanager
    def context(self, *, trace_id: str | None = None, **extra: Any) -> Iterator[str]:
        with log_context(trace_id=trace_id, **extra) as active_trace:
            yield active_trace


def get_logger(name: str | None = None) -> Any:
    """Return the shared logger, bound to ``logger_name`` when given."""

    return logger.bind(logger_name=name) if name else logger


def bind(**kwargs: Any) -> Any:
    return logger.bind(**kwargs)


@contextmanager
def log_context(*, trace_id: str | None = None, **extra: Any) -> Iterator[str]:
    """Attach ``extra`` and a trace id to every record logged inside the block."""

    context_token = _CONTEXT_VAR.set({**_CONTEXT_VAR.get({}), **extra})
    active_trace = trace_id or uuid4().hex
    trace_token = _TRACE_ID_VAR.set(active_trace)
    try:
        yield active_trace
    finally:
        _TRACE_ID_VAR.reset(trace_token)
        _CONTEXT_VAR.reset(context_token)


@contextmanager
def build_context(symbol: str, build_id: str | None = None) -> Iterator[str]:
    """Log context of one history build; yields the build id.

    The build id doubles as the trace id, so every record of one build,
    including the ones emitted from pull threads, can be grouped on it.
    """

    active_build = build_id or uuid4().hex[:12]
    with log_context(trace_id=active_build, symbol=symbol, build_id=active_build):
        yield active_build


def current_trace_id() -> str:
    return _trace_id()


configure_logging(level=os.getenv("BARPRISM_LOGGING_LEVEL", "WARNING"))


__all__ = [
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
