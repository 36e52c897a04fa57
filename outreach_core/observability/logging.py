"""Structured logging for Outreach Ledger.

Emits one JSON object per log line so webhook deliveries can be traced
end to end by their correlation id.
"""

import json
import logging
import sys
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


_loggers: dict[str, "StructuredLogger"] = {}

DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_SERVICE_NAME = "outreach-ledger"


class JsonFormatter(logging.Formatter):
    """Format log records as single-line JSON documents."""

    # Attributes every LogRecord carries; anything else came in via ``extra``
    RESERVED_FIELDS = {
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "pathname", "process", "processName", "relativeCreated",
        "stack_info", "exc_info", "exc_text", "thread", "threadName",
        "message", "asctime", "taskName",
    }

    def __init__(self, service_name: str = DEFAULT_SERVICE_NAME):
        """Initialize the formatter.

        Args:
            service_name: Value of the ``service`` key on every line
        """
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as JSON.

        Warnings and above also carry their source location. Structured
        fields passed as ``extra`` become top-level keys; values that are
        not JSON serializable are written as strings.

        Args:
            record: Log record to format

        Returns:
            JSON string for one log line
        """
        log_entry = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
        }

        if record.levelno >= logging.WARNING:
            log_entry["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            log_entry["exception"] = "".join(
                traceback.format_exception(*record.exc_info)
            )

        for key, value in record.__dict__.items():
            if key not in self.RESERVED_FIELDS and not key.startswith("_"):
                try:
                    json.dumps(value)
                    log_entry[key] = value
                except (TypeError, ValueError):
                    log_entry[key] = str(value)

        return json.dumps(log_entry)


@dataclass
class RequestContext:
    """Per-delivery context attached to every log line of one webhook call."""

    correlation_id: Optional[str] = None
    routing_key: Optional[str] = None
    attempt: Optional[int] = None
    path: Optional[str] = None
    method: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Fields to merge into a log line.

        Returns:
            Dictionary with the fields that are set, plus ``extra``
        """
        result: dict[str, Any] = {}

        if self.correlation_id:
            result["correlation_id"] = self.correlation_id
        if self.routing_key:
            result["routing_key"] = self.routing_key
        if self.attempt is not None:
            result["attempt"] = self.attempt
        if self.path:
            result["path"] = self.path
        if self.method:
            result["method"] = self.method

        result.update(self.extra)

        return result


class StructuredLogger:
    """Logger wrapper that accepts structured keyword fields.

    ``logger.info("event appended", event_id=..., kind=...)`` becomes a JSON
    line with ``event_id`` and ``kind`` as top-level keys.
    """

    def __init__(self, name: str):
        """Initialize the logger.

        Args:
            name: Logger name (typically module name)
        """
        self.name = name
        self._logger = logging.getLogger(name)

    def _log(
        self,
        level: int,
        msg: str,
        context: Optional[RequestContext] = None,
        exc_info: bool = False,
        **kwargs: Any,
    ) -> None:
        """Emit one record.

        Args:
            level: Log level
            msg: Log message
            context: Optional delivery context merged into the fields
            exc_info: Whether to include the active exception
            **kwargs: Structured fields for the log line
        """
        if context:
            kwargs.update(context.to_dict())

        self._logger.log(level, msg, exc_info=exc_info, extra=dict(kwargs))

    def debug(self, msg: str, context: Optional[RequestContext] = None, **kwargs: Any) -> None:
        """Log a debug message."""
        self._log(logging.DEBUG, msg, context, **kwargs)

    def info(self, msg: str, context: Optional[RequestContext] = None, **kwargs: Any) -> None:
        """Log an info message."""
        self._log(logging.INFO, msg, context, **kwargs)

    def warning(self, msg: str, context: Optional[RequestContext] = None, **kwargs: Any) -> None:
        """Log a warning message."""
        self._log(logging.WARNING, msg, context, **kwargs)

    def error(
        self,
        msg: str,
        context: Optional[RequestContext] = None,
        exc_info: bool = False,
        **kwargs: Any,
    ) -> None:
        """Log an error message."""
        self._log(logging.ERROR, msg, context, exc_info=exc_info, **kwargs)

    def critical(
        self,
        msg: str,
        context: Optional[RequestContext] = None,
        exc_info: bool = False,
        **kwargs: Any,
    ) -> None:
        """Log a critical message."""
        self._log(logging.CRITICAL, msg, context, exc_info=exc_info, **kwargs)


def get_logger(name: str) -> StructuredLogger:
    """Get or create a structured logger.

    Args:
        name: Logger name (typically module name)

    Returns:
        StructuredLogger instance
    """
    if name not in _loggers:
        _loggers[name] = StructuredLogger(name)
    return _loggers[name]


def configure_logging(
    level: str = DEFAULT_LOG_LEVEL,
    json_format: bool = True,
    service_name: str = DEFAULT_SERVICE_NAME,
) -> None:
    """Configure the root logger for the API process or the worker.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Whether to use JSON format
        service_name: Service name for log identification
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))

    if json_format:
        handler.setFormatter(JsonFormatter(service_name=service_name))
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            )
        )

    root_logger.addHandler(handler)
