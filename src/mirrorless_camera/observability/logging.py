"""Structured logging for mirrorless-camera.

Every module logs through ``get_logger(__name__)``. Records carry
key-value fields next to the message:

    logger.info("Exposure started", duration_s=2.5, is_light=True)

Fields bound with LogContext are added to every record emitted inside the
block. The session binds ``device_id`` and ``sequence_id`` around each
operation on a capture, so a completion arriving on the transport thread
is logged with the id of the capture it belongs to:

    with LogContext(device_id="twin-aps-c", sequence_id=7):
        logger.info("Exposure complete", shape=(6024, 4024, 3))

Output is text (``... - INFO - Exposure complete | device_id=... ``) or
one JSON object per line with ``configure_logging(json_format=True)``.
Enum members log as their value and numpy scalars as plain numbers, so
camera states, output modes and pixel statistics can be passed directly.

Security Note:
    Device-provided strings (ids, display names, transport error text) go in
    fields, never in the message, so they cannot forge log lines.
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
import threading
from datetime import UTC, datetime
from enum import Enum
from typing import IO, Any, cast

import numpy as np

#: Root logger name for the package. All module loggers hang below it.
ROOT_LOGGER_NAME = "mirrorless_camera"

DEFAULT_TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_log_context: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar(
    "mirrorless_camera_log_context", default={}
)


def _plain(value: Any) -> Any:
    """Reduce camera-domain values to JSON-friendly plain values."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, datetime):
        return value.isoformat()
    return value


# =============================================================================
# Structured Logger
# =============================================================================


class StructuredLogger(logging.Logger):
    """Logger whose keyword arguments become fields of the record.

    ``exc_info`` keeps its standard meaning; every other keyword is a field.
    Explicit fields override LogContext fields of the same name.
    """

    def debug(self, msg: object, *args: Any, **fields: Any) -> None:
        self._emit(logging.DEBUG, msg, args, fields)

    def info(self, msg: object, *args: Any, **fields: Any) -> None:
        self._emit(logging.INFO, msg, args, fields)

    def warning(self, msg: object, *args: Any, **fields: Any) -> None:
        self._emit(logging.WARNING, msg, args, fields)

    def error(self, msg: object, *args: Any, **fields: Any) -> None:
        self._emit(logging.ERROR, msg, args, fields)

    def _emit(
        self,
        level: int,
        msg: object,
        args: tuple[Any, ...],
        fields: dict[str, Any],
    ) -> None:
        if not self.isEnabledFor(level):
            return
        exc_info = fields.pop("exc_info", None)
        structured = {**_log_context.get(), **fields}
        # stacklevel 3: caller -> info()/... -> _emit() -> Logger._log()
        self._log(
            level,
            msg,
            args,
            exc_info=exc_info,
            extra={"structured_data": structured},
            stacklevel=3,
        )


# =============================================================================
# Formatters
# =============================================================================


def _format_value(value: Any) -> str:
    """Render one field value for text output.

    Example:
        >>> _format_value("has spaces")
        '"has spaces"'
        >>> _format_value(CameraState.EXPOSING)
        'exposing'
    """
    value = _plain(value)
    if value is None:
        return "null"
    if isinstance(value, str):
        return f'"{value}"' if " " in value else value
    if isinstance(value, dict | list):
        return json.dumps(value, default=lambda v: str(_plain(v)))
    return str(value)


class StructuredFormatter(logging.Formatter):
    """Text formatter: ``<standard line> | key=value key=value``."""

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        include_structured: bool = True,
    ) -> None:
        super().__init__(fmt or DEFAULT_TEXT_FORMAT, datefmt)
        self.include_structured = include_structured

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        structured = getattr(record, "structured_data", None)
        if not (self.include_structured and structured):
            return line
        pairs = " ".join(f"{k}={_format_value(v)}" for k, v in structured.items())
        return f"{line} | {pairs}"


class JSONFormatter(logging.Formatter):
    """One JSON object per record; fields become top-level keys.

    Example:
        >>> json.loads(JSONFormatter().format(record))["sequence_id"]
        3
    """

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in getattr(record, "structured_data", {}).items():
            data[key] = _plain(value)
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        return json.dumps(data, default=lambda v: str(_plain(v)))


# =============================================================================
# Context
# =============================================================================


class LogContext:
    """Bind fields to every record logged inside a ``with`` block.

    Contexts nest; inner values win. The binding lives in a context variable,
    so concurrent asyncio tasks keep separate bindings. An instance may be
    entered again after it has been exited.

    Example:
        with LogContext(device_id="twin-aps-c"):
            with LogContext(sequence_id=4):
                logger.info("Exposure started")  # both fields
    """

    __slots__ = ("fields", "_tokens")

    def __init__(self, **fields: Any) -> None:
        self.fields = fields
        self._tokens: list[contextvars.Token[dict[str, Any]]] = []

    def __repr__(self) -> str:
        return f"LogContext({self.fields!r})"

    def __enter__(self) -> LogContext:
        merged = {**_log_context.get(), **self.fields}
        self._tokens.append(_log_context.set(merged))
        return self

    def __exit__(self, *exc: object) -> None:
        _log_context.reset(self._tokens.pop())


# =============================================================================
# Configuration
# =============================================================================

_configured = False
_config_lock = threading.Lock()


def configure_logging(
    level: int | str = logging.INFO,
    json_format: bool = False,
    stream: IO[str] | None = None,
    include_structured: bool = True,
    force: bool = False,
) -> None:
    """Attach one handler to the package root logger.

    Only the first call takes effect unless ``force`` replaces the existing
    handler. The package logger does not propagate to the root logger, so
    host applications see driver logs only through this handler.

    Args:
        level: Minimum level, numeric or by name ("DEBUG", "INFO", ...).
        json_format: JSON lines instead of text.
        stream: Destination, sys.stderr by default.
        include_structured: Append fields in text mode.
        force: Reconfigure even if already configured.

    Example:
        >>> configure_logging(level="DEBUG", json_format=True, force=True)
    """
    global _configured

    with _config_lock:
        if force:
            _remove_handlers()
        if _configured:
            return

        logging.setLoggerClass(StructuredLogger)
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(
            JSONFormatter()
            if json_format
            else StructuredFormatter(include_structured=include_structured)
        )
        root = logging.getLogger(ROOT_LOGGER_NAME)
        root.setLevel(level)
        root.addHandler(handler)
        root.propagate = False
        _configured = True


def _remove_handlers() -> None:
    global _configured

    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    _configured = False


def reset_logging() -> None:
    """Drop the package handler; the next configure or get_logger re-creates it."""
    with _config_lock:
        _remove_handlers()


def get_logger(name: str) -> StructuredLogger:
    """Return the structured logger for a module.

    Applies the default configuration (INFO, text, stderr) on first use.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("Connected", device_id="twin-aps-c")
    """
    if not _configured:
        configure_logging()
    return cast(StructuredLogger, logging.getLogger(name))
