"""Logging configuration with structured JSON formatter.

This module provides a custom JSON formatter and the `dictConfig` layout used
by the service. The resilience layers log through standard module loggers and
attach structured fields with the `extra` parameter, e.g.:

```python
logger.warning(
    "Request failed, breaking circuit",
    extra={"http_client": "circuitBreakerClient", "url": url, "status_code": 503},
)
```
"""

import json
import logging
import logging.config
from typing import Any

from config import get_settings

# Standard LogRecord attributes that are either emitted explicitly or internal
_STANDARD_ATTRS = frozenset(
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
        "asctime",
        "error",
    }
)


class CustomJSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging.

    This formatter converts log records to JSON format, including:
    - Standard log fields (time, level, message, etc.)
    - Exception information when the record carries `exc_info`
    - All extra attributes passed via the extra parameter
    """

    def __init__(self, fmt: str) -> None:
        """Initialize the formatter.

        Args:
            fmt: Format string (used for asctime, but output is JSON).
        """
        logging.Formatter.__init__(self, fmt)

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as JSON.

        Args:
            record: The log record to format.

        Returns:
            JSON string representation of the log record.
        """
        logging.Formatter.format(self, record)
        return json.dumps(self.get_log(record), indent=None, default=str)

    def get_log(self, record: logging.LogRecord) -> dict[str, Any]:
        """Extract log data from record into a dictionary.

        Args:
            record: The log record to extract data from.

        Returns:
            Dictionary containing log data.
        """
        d: dict[str, Any] = {
            "time": record.asctime,
            "process_name": record.processName,
            "process_id": record.process,
            "thread_name": record.threadName,
            "thread_id": record.thread,
            "level": record.levelname,
            "logger_name": record.name,
            "pathname": record.pathname,
            "line": record.lineno,
            "message": record.message,
        }

        # Error details passed explicitly via extra={"error": {...}}
        error_data = getattr(record, "error", None)
        if error_data is not None:
            if isinstance(error_data, dict):
                d["error"] = error_data.copy()
            else:
                d["error"] = error_data

        # Exceptions logged with logger.exception() carry the full trace
        if record.exc_info:
            error_dict = d["error"] if isinstance(d.get("error"), dict) else {}
            exc_type = record.exc_info[0]
            if exc_type is not None:
                error_dict.setdefault("type", exc_type.__name__)
                error_dict.setdefault("message", str(record.exc_info[1]))
            error_dict["trace"] = self.formatException(record.exc_info)
            d["error"] = error_dict

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS:
                d[key] = value

        return d


LOGGING_CONFIG: dict[str, Any] = {
    "version": 1,
    "disable_existing_loggers": False,  # Keep existing loggers, just configure them
    "formatters": {
        "standard": {"()": lambda: CustomJSONFormatter(fmt="%(asctime)s")},
    },
    "handlers": {
        "default": {
            "formatter": "standard",
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stdout",
        },
    },
    "loggers": {
        "foundation": {
            "handlers": ["default"],
            "level": "INFO",
            "propagate": False,
        },
        "clients": {
            "handlers": ["default"],
            "level": "INFO",
            "propagate": False,
        },
        "httpx": {
            "handlers": ["default"],
            "level": "WARNING",  # httpx logs every request at INFO
            "propagate": False,
        },
    },
    "root": {
        "handlers": ["default"],
        "level": "INFO",
    },
}


def configure_logging(level: str | None = None) -> None:
    """Apply LOGGING_CONFIG with the given level for service loggers.

    Call once at process startup, before the first lookup.

    Args:
        level: Log level name applied to the root, `foundation` and
            `clients` loggers (e.g., "DEBUG", "INFO"). If None, uses
            get_settings().log_level (`LOG_LEVEL`).

    Raises:
        ValueError: If the level name is not a known logging level.
    """
    if level is None:
        level = get_settings().log_level
    level = level.upper()
    if not isinstance(logging.getLevelName(level), int):
        msg = f"Unknown log level: {level}"
        raise ValueError(msg)

    config = {
        **LOGGING_CONFIG,
        "loggers": {
            name: ({**logger_config, "level": level} if name != "httpx" else logger_config)
            for name, logger_config in LOGGING_CONFIG["loggers"].items()
        },
        "root": {**LOGGING_CONFIG["root"], "level": level},
    }
    logging.config.dictConfig(config)
    logging.getLogger(__name__).debug("Logging configured", extra={"log_level": level})
