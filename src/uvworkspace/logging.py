"""Structured logging helpers with correlation IDs.

This module provides a :class:`LoggerAdapter` that injects the mandatory
structured fields (``correlation_id``, ``operation``, ``status``) into every
record, a :class:`JsonFormatter` for machine-readable output, and
module-level loggers with ``NullHandler`` so the library never configures
handlers on its own. The CLI calls :func:`setup_logging` once at startup.

Examples
--------
>>> from uvworkspace.logging import get_logger
>>> logger = get_logger(__name__)
>>> logger.info("Discovery started", extra={"operation": "discover", "status": "started"})
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
from collections.abc import Mapping
from typing import Any

__all__ = [
    "JsonFormatter",
    "LoggerAdapter",
    "get_correlation_id",
    "get_logger",
    "set_correlation_id",
    "setup_logging",
    "with_fields",
]

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "uvws_correlation_id", default=None
)

_STRUCTURED_FIELDS = ("correlation_id", "operation", "status", "duration_seconds")

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_ATTRIBUTES = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
    }
)


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    Formats log records as one JSON object per line with timestamp, level,
    logger name, message and every structured field attached to the record.
    The correlation id falls back to the context variable when the record
    does not carry one.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format ``record`` as JSON.

        Parameters
        ----------
        record : logging.LogRecord
            Log record to format.

        Returns
        -------
        str
            JSON-encoded log entry.
        """
        data: dict[str, object] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S") + f".{int(record.msecs):03d}Z",
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        for field in _STRUCTURED_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                data[field] = value
        if "correlation_id" not in data:
            ctx_correlation_id = _correlation_id.get()
            if ctx_correlation_id is not None:
                data["correlation_id"] = ctx_correlation_id

        for key, value in record.__dict__.items():
            if (
                key not in _RECORD_ATTRIBUTES
                and key not in data
                and not key.startswith("_")
                and value is not None
                and isinstance(value, (str, int, float, bool, list, dict))
            ):
                data[key] = value

        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str)


class LoggerAdapter(logging.LoggerAdapter):  # type: ignore[type-arg]
    """Logger adapter that injects structured context fields.

    Fields bound through the constructor (or :func:`with_fields`) are merged
    into every record unless the call site overrides them. ``operation`` and
    ``status`` are always present; ``status`` is inferred from the level when
    the caller does not set it.

    Parameters
    ----------
    logger : logging.Logger
        Base logger instance to wrap.
    extra : Mapping[str, object] | None, optional
        Structured fields to inject into log entries.
    """

    logger: logging.Logger

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:  # noqa: ANN401 - stdlib signature
        """Merge bound fields and the correlation id into ``kwargs['extra']``.

        Parameters
        ----------
        msg : Any
            Log message.
        kwargs : Any
            Keyword arguments of the logging call.

        Returns
        -------
        tuple[Any, Any]
            The message and the updated keyword arguments.
        """
        extra = dict(kwargs.get("extra") or {})
        if isinstance(self.extra, Mapping):
            for key, value in self.extra.items():
                extra.setdefault(key, value)
        if "correlation_id" not in extra:
            ctx_correlation_id = _correlation_id.get()
            if ctx_correlation_id is not None:
                extra["correlation_id"] = ctx_correlation_id
        extra.setdefault("operation", "unknown")
        kwargs["extra"] = extra
        return msg, kwargs

    def log(self, level: int, msg: object, *args: object, **kwargs: Any) -> None:  # noqa: ANN401
        """Log ``msg`` at ``level``, inferring ``status`` from the level."""
        extra = dict(kwargs.pop("extra", None) or {})
        if "status" not in extra and not (
            isinstance(self.extra, Mapping) and "status" in self.extra
        ):
            if level >= logging.ERROR:
                extra["status"] = "error"
            elif level >= logging.WARNING:
                extra["status"] = "warning"
            else:
                extra["status"] = "success"
        kwargs["extra"] = extra
        super().log(level, msg, *args, **kwargs)


def get_logger(name: str) -> LoggerAdapter:
    """Get a logger adapter with structured logging support.

    Parameters
    ----------
    name : str
        Logger name (typically ``__name__``).

    Returns
    -------
    LoggerAdapter
        Adapter injecting structured fields into every record.
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())
    return LoggerAdapter(logger, {})


def with_fields(logger: logging.Logger | LoggerAdapter, **fields: object) -> LoggerAdapter:
    """Return an adapter bound to ``fields``.

    Fields already bound on ``logger`` are kept unless overridden.

    Parameters
    ----------
    logger : logging.Logger | LoggerAdapter
        Base logger or adapter.
    **fields : object
        Structured fields to inject into all records.

    Returns
    -------
    LoggerAdapter
        Adapter with the merged fields.
    """
    if isinstance(logger, LoggerAdapter):
        merged: dict[str, object] = dict(logger.extra or {})
        merged.update(fields)
        return LoggerAdapter(logger.logger, merged)
    return LoggerAdapter(logger, dict(fields))


def setup_logging(level: int | str = logging.INFO, *, json_format: bool = False) -> None:
    """Configure the root logger for CLI use.

    Parameters
    ----------
    level : int | str, optional
        Logging level threshold. Defaults to ``logging.INFO``.
    json_format : bool, optional
        Emit JSON lines via :class:`JsonFormatter` instead of plain text.
    """
    handler = logging.StreamHandler(sys.stderr)
    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    logging.basicConfig(level=level, handlers=[handler], force=True)


def set_correlation_id(correlation_id: str | None) -> None:
    """Set the correlation id propagated into log records."""
    _correlation_id.set(correlation_id)


def get_correlation_id() -> str | None:
    """Return the current correlation id, or ``None``."""
    return _correlation_id.get()

