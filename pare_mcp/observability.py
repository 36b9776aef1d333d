"""Logging setup for pare-mcp servers.

Provides:
- Correlation ID generation
- JSON structured logging
- Plain text logging

Logs always go to stderr; stdout carries the stdio transport.
"""

from __future__ import annotations

from datetime import datetime, timezone
import json
import logging
import uuid

from pare_mcp.config import ServerSettings

ROOT_LOGGER = "pare-mcp"
TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Record attributes copied into JSON output when present
_EXTRA_FIELDS = ("tool", "latency_ms", "status", "error")


def generate_correlation_id() -> str:
    """Generate a unique correlation ID for request tracing."""
    return str(uuid.uuid4())[:8]  # Short form for readability


class JsonLogFormatter(logging.Formatter):
    """JSON structured log formatter with correlation ID support."""

    def __init__(self, include_correlation_id: bool = True):
        super().__init__()
        self.include_correlation_id = include_correlation_id

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
        }

        if self.include_correlation_id and hasattr(record, "correlation_id"):
            log_data["cid"] = record.correlation_id

        for name in _EXTRA_FIELDS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)

        if record.exc_info:
            log_data["exc"] = self.formatException(record.exc_info)

        return json.dumps(log_data, separators=(",", ":"))


def setup_logging(settings: ServerSettings, logger_name: str = ROOT_LOGGER) -> logging.Logger:
    """Configure the package logger from resolved settings.

    Args:
        settings: Resolved server settings
        logger_name: Name of logger to configure

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)

    # Clear existing handlers so repeated setup does not double-log
    logger.handlers.clear()

    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logger.setLevel(level)

    # StreamHandler defaults to stderr
    handler = logging.StreamHandler()
    handler.setLevel(level)

    if settings.log_format == "json":
        handler.setFormatter(JsonLogFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    logger.addHandler(handler)
    logger.propagate = False

    return logger
