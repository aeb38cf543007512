"""
Logging setup for shard pool services.

Adds the service name and the current OpenTelemetry trace context to every
record, with either a plain text or a JSON format.
"""

import json
import logging
import sys
from datetime import datetime

from opentelemetry import trace

DEFAULT_LOG_FORMAT = (
    "%(asctime)s - %(levelname)s - [%(service_name)s] - [%(trace_id)s:%(span_id)s] - "
    "[%(name)s] - %(message)s"
)

LOG_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
    "NOTSET": logging.NOTSET,
}

_RESERVED_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
    "service_name",
    "trace_id",
    "span_id",
}


class ServiceNameFilter(logging.Filter):
    """Filter to inject service name into log records."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self.service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.service_name = self.service_name  # type: ignore[attr-defined]
        return True


class TraceContextFilter(logging.Filter):
    """Filter to inject trace context into log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            record.trace_id = format(span_context.trace_id, "032x")  # type: ignore[attr-defined]
            record.span_id = format(span_context.span_id, "016x")  # type: ignore[attr-defined]
        else:
            record.trace_id = "0" * 32  # type: ignore[attr-defined]
            record.span_id = "0" * 16  # type: ignore[attr-defined]
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "service": getattr(record, "service_name", "unknown"),
            "logger": record.name,
            "message": record.getMessage(),
            "trace_id": getattr(record, "trace_id", None),
            "span_id": getattr(record, "span_id", None),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_entry[key] = value

        return json.dumps(log_entry, default=str, ensure_ascii=False)


def setup_logging(
    service_name: str = "shardpool",
    log_level: str = "INFO",
    json_format: bool = False,
    logger_name: str = "shardpool",
) -> logging.Logger:
    """Attach a stdout handler with service and trace context to the package logger."""
    logger = logging.getLogger(logger_name)
    logger.handlers.clear()
    logger.setLevel(LOG_LEVELS.get(log_level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if json_format else logging.Formatter(DEFAULT_LOG_FORMAT))
    handler.addFilter(ServiceNameFilter(service_name))
    handler.addFilter(TraceContextFilter())
    logger.addHandler(handler)

    return logger
