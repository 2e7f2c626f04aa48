"""Structured log output for the driver.

Registration and resolution code attaches registry context to its records with
``extra={"registry": ..., "target": ..., "endpoint": ...}``; both formatters here
render those fields next to the OpenTelemetry trace ids of the active span.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from opentelemetry import trace

__all__ = [
    "CONTEXT_FIELDS",
    "LEVEL_NAME_TO_INT",
    "StructuredConsoleFormatter",
    "StructuredJSONFormatter",
    "configure_logging",
    "get_logger",
]

LOG_FORMAT_JSON = "json"
LOG_FORMAT_CONSOLE = "console"

LEVEL_NAME_TO_INT = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# Record attributes set through ``extra=`` that are worth surfacing.
CONTEXT_FIELDS = ("registry", "target", "endpoint", "service_id", "lease_id")

_PACKAGE_LOGGER = "dtm_discovery"
_HANDLER_FLAG = "_dtm_discovery_handler"


def _record_context(record: logging.LogRecord) -> dict[str, Any]:
    return {name: getattr(record, name) for name in CONTEXT_FIELDS if getattr(record, name, None) is not None}


def _trace_context() -> dict[str, str]:
    span = trace.get_current_span()
    if not span.is_recording():
        return {}
    context = span.get_span_context()
    return {
        "trace_id": format(context.trace_id, "032x"),
        "span_id": format(context.span_id, "016x"),
    }


class StructuredJSONFormatter(logging.Formatter):
    """One JSON object per record, with registry context and OTel trace ids."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }
        payload.update(_record_context(record))
        payload.update(_trace_context())
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class StructuredConsoleFormatter(logging.Formatter):
    """``LEVEL logger: message key=value ...`` with a short trace id prefix."""

    def format(self, record: logging.LogRecord) -> str:
        trace_id = _trace_context().get("trace_id")
        prefix = f"[{trace_id[:8]}] " if trace_id else ""
        line = f"{prefix}{record.levelname:8} {record.name}: {record.getMessage()}"
        context = _record_context(record)
        if context:
            line += " " + " ".join(f"{key}={value}" for key, value in context.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _make_handler(json_output: bool, stream: Any) -> logging.Handler:
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredJSONFormatter() if json_output else StructuredConsoleFormatter())
    setattr(handler, _HANDLER_FLAG, True)
    return handler


def get_logger(name: str, *, json_output: bool = True, stream: Any = None) -> logging.Logger:
    """Return a logger that writes structured records on its own.

    Meant for embedding applications that do not configure logging; library
    modules use ``logging.getLogger(__name__)``.
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.addHandler(_make_handler(json_output, stream))
        logger.setLevel(logging.INFO)
        logger.propagate = False
    return logger


def configure_logging(
    level: str | int = "INFO",
    log_format: str = LOG_FORMAT_CONSOLE,
    *,
    stream: Any = None,
) -> logging.Logger:
    """Route every ``dtm_discovery.*`` logger through one structured handler.

    Calling it again swaps the handler, so level and format follow the latest
    :class:`~dtm_discovery.config.LoggingSettings`.
    """
    logger = logging.getLogger(_PACKAGE_LOGGER)
    for handler in [h for h in logger.handlers if getattr(h, _HANDLER_FLAG, False)]:
        logger.removeHandler(handler)
    logger.addHandler(_make_handler(log_format == LOG_FORMAT_JSON, stream))
    if isinstance(level, str):
        level = LEVEL_NAME_TO_INT.get(level.strip().upper(), logging.INFO)
    logger.setLevel(level)
    logger.propagate = False
    return logger
