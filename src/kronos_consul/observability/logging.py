"""Structured logging for registry operations.

Every record is enriched with the registration it belongs to (``service``,
``instance_id``) and, on the watch push path, the ``endpoint`` (bridge name)
it was emitted for. Values are bound with :class:`LogContext`, which is safe
to use across concurrently running tasks.
"""

from __future__ import annotations

import contextvars
import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, TextIO

__all__ = [
    "LOG_FORMAT_CONSOLE",
    "LOG_FORMAT_ENV",
    "LOG_FORMAT_JSON",
    "ContextFilter",
    "LogContext",
    "StructuredConsoleFormatter",
    "StructuredJSONFormatter",
    "get_logger",
]

LOG_FORMAT_ENV = "KRONOS_CONSUL_LOG_FORMAT"
LOG_FORMAT_JSON = "json"
LOG_FORMAT_CONSOLE = "console"

CONTEXT_KEYS = ("service", "instance_id", "endpoint")
_MISSING = "-"

_bound: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar("kronos_consul_log_context", default={})

# attributes every LogRecord carries; anything else was passed through ``extra``
_STANDARD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime", "taskName"}
_PAYLOAD_KEYS = frozenset({"timestamp", "level", "logger", "message", "exception", "stack"})

_CONSOLE_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s service=%(service)s instance_id=%(instance_id)s"


class LogContext:
    """Binds registration fields to every record logged inside the block.

    Nested contexts add to the outer one and restore it on exit::

        with LogContext(service="kronos", instance_id="node1"):
            logger.info("Registering")
    """

    def __init__(self, service: str | None = None, instance_id: str | None = None, **extra: Any) -> None:
        fields = {"service": service, "instance_id": instance_id, **extra}
        self._fields = {key: value for key, value in fields.items() if value is not None}
        self._token: contextvars.Token[dict[str, Any]] | None = None

    def __enter__(self) -> LogContext:
        self._token = _bound.set({**_bound.get(), **self._fields})
        return self

    def __exit__(self, *exc_info: object) -> None:
        if self._token is not None:
            _bound.reset(self._token)
            self._token = None

    @classmethod
    def clear(cls) -> None:
        _bound.set({})

    @classmethod
    def snapshot(cls) -> dict[str, Any]:
        """Bound fields, with every context key present (None when unbound)."""
        bound = _bound.get()
        fields: dict[str, Any] = dict.fromkeys(CONTEXT_KEYS)
        fields.update(bound)
        return fields


class ContextFilter(logging.Filter):
    """Copies the bound fields onto the record; explicit ``extra`` values win."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in LogContext.snapshot().items():
            record.__dict__.setdefault(key, _MISSING if value is None else value)
        return True


def _extras(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _STANDARD_ATTRS and key not in _PAYLOAD_KEYS and not key.startswith("_")
    }


class StructuredJSONFormatter(logging.Formatter):
    """One JSON object per record: timestamp, level, logger, message, then context and extras."""

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        if datefmt:
            return created.strftime(datefmt)
        return created.isoformat(timespec="milliseconds").replace("+00:00", "Z")

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update((key, value) for key, value in LogContext.snapshot().items() if key not in _PAYLOAD_KEYS)
        payload.update(_extras(record))
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = self.formatStack(record.stack_info)
        return json.dumps(payload, default=repr)


class StructuredConsoleFormatter(logging.Formatter):
    """Plain text lines ending with the registration fields."""

    def __init__(self, fmt: str | None = None, *, datefmt: str | None = None) -> None:
        super().__init__(fmt=fmt or _CONSOLE_FORMAT, datefmt=datefmt)


def _resolve_format(log_format: str | None) -> str:
    value = (log_format or os.getenv(LOG_FORMAT_ENV) or LOG_FORMAT_JSON).strip().lower()
    return value if value in (LOG_FORMAT_JSON, LOG_FORMAT_CONSOLE) else LOG_FORMAT_JSON


def _build_handler(log_format: str, stream: TextIO | None, level: int | None) -> logging.Handler:
    handler = logging.StreamHandler(stream or sys.stdout)
    formatter: logging.Formatter
    if log_format == LOG_FORMAT_CONSOLE:
        formatter = StructuredConsoleFormatter()
    else:
        formatter = StructuredJSONFormatter()
    handler.setFormatter(formatter)
    handler.addFilter(ContextFilter())
    handler.setLevel(level or logging.NOTSET)
    handler.set_name(f"kronos_consul.{log_format}")
    return handler


def get_logger(
    name: str,
    *,
    log_format: str | None = None,
    level: int | None = None,
    stream: TextIO | None = None,
) -> logging.Logger:
    """Return ``name``'s logger with a structured handler attached.

    Args:
        name: Logger name, usually ``kronos_consul`` or the owning process's package.
        log_format: ``json`` or ``console``; falls back to $KRONOS_CONSUL_LOG_FORMAT, then json.
        level: Level for logger and handler. The logger defaults to INFO.
        stream: Output stream, stdout by default.

    Calling it again with the same format reuses the existing handler.
    """
    resolved = _resolve_format(log_format)
    logger = logging.getLogger(name)
    if not any(handler.get_name() == f"kronos_consul.{resolved}" for handler in logger.handlers):
        logger.addHandler(_build_handler(resolved, stream, level))
    if level is not None:
        logger.setLevel(level)
    elif logger.level == logging.NOTSET:
        logger.setLevel(logging.INFO)
    logger.propagate = False
    return logger
