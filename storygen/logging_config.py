"""
Centralized logging configuration with structured logging support.
"""
import json
import logging
import logging.config
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Correlation ID of the orchestrated call currently running in this task.
# Set by the resilient call orchestrator so every log line emitted while an
# upstream call is in flight can be tied back to that call.
correlation_id_context: ContextVar[Optional[str]] = ContextVar(
    "correlation_id", default=None
)


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for production logging.

    Produces structured log entries with consistent fields for log aggregation.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        log_entry: Dict[str, Any] = {
            "timestamp": timestamp.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = correlation_id_context.get()
        if correlation_id:
            log_entry["correlation_id"] = correlation_id

        # Structured fields attached through `extra=`
        for key in ("event", "operation_name", "attempt", "payload"):
            if hasattr(record, key):
                log_entry[key] = getattr(record, key)

        # Add source location for error-level logs
        if record.levelno >= logging.ERROR:
            log_entry["source"] = f"{record.pathname}:{record.lineno}"

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class CorrelationIdFilter(logging.Filter):
    """Attach the active correlation ID to every record for plain-text output."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_context.get() or "-"
        return True


def setup_logging(level: str = "INFO", json_output: bool = False) -> None:
    """
    Configure package-wide logging.

    Args:
        level: Log level name (e.g. "INFO", "DEBUG")
        json_output: Use the JSON formatter (production) instead of the
            human-readable one (development)
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    logging_config: Dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "correlation_id": {"()": CorrelationIdFilter},
        },
        "formatters": {
            "default": {
                "format": (
                    "%(asctime)s - %(name)s - %(levelname)s "
                    "[%(correlation_id)s] - %(message)s"
                ),
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "json": {
                "()": JSONFormatter,
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": "json" if json_output else "default",
                "filters": ["correlation_id"],
                "stream": sys.stdout,
            },
        },
        "root": {
            "level": log_level,
            "handlers": ["console"],
        },
        "loggers": {
            "storygen": {
                "level": log_level,
                "handlers": ["console"],
                "propagate": False,
            },
            # Provider SDKs log every HTTP request at INFO
            "httpx": {
                "level": logging.WARNING,
                "handlers": ["console"],
                "propagate": False,
            },
        },
    }

    logging.config.dictConfig(logging_config)
