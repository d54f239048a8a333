"""Structured logging configuration.

JSON-formatted logs in production, a plain format in development. Access
decisions are logged with principal, action and resource context so denials
can be traced without ever writing credentials to the log.
"""
import logging
import json
import sys
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import traceback


# Attributes copied from ``extra`` into the JSON record
CONTEXT_FIELDS = (
    "request_id", "principal_id", "role", "action", "resource_type",
    "resource_id", "reason", "cause", "endpoint", "method", "status_code",
    "duration_ms", "operation",
)


class JSONFormatter(logging.Formatter):
    """Formats log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_obj["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info)
            }

        for attr in CONTEXT_FIELDS:
            if hasattr(record, attr):
                log_obj[attr] = getattr(record, attr)

        return json.dumps(log_obj, default=str)


class ContextLogger(logging.LoggerAdapter):
    """Logger adapter that merges a fixed context into every record.

    Example:
        >>> logger = ContextLogger(base_logger, {"request_id": "abc123"})
        >>> logger.info("Resolving session")
    """

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = dict(self.extra)
        extra.update(kwargs.get("extra", {}))
        kwargs["extra"] = extra
        return msg, kwargs


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
) -> logging.Logger:
    """Configure application-wide logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Whether to use JSON formatter (True for production)

    Returns:
        Configured root logger
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, level.upper()))

    if json_format:
        formatter = JSONFormatter()
    else:
        fmt = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        formatter = logging.Formatter(fmt)

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    return root_logger


def get_logger(name: str, context: Optional[Dict[str, Any]] = None) -> logging.Logger:
    """Get a logger, wrapped in a ContextLogger when context is given.

    Example:
        >>> logger = get_logger(__name__, {"service": "access"})
        >>> logger.info("Credential issued", extra={"principal_id": "u1"})
    """
    logger = logging.getLogger(name)

    if context:
        return ContextLogger(logger, context)

    return logger


class LogTimer:
    """Context manager for timing operations and logging duration.

    Example:
        >>> with LogTimer(logger, "login"):
        ...     service.authenticate(email, password)
    """

    def __init__(self, logger: logging.Logger, operation: str):
        self.logger = logger
        self.operation = operation
        self.start_time: Optional[float] = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time is None:
            return
        duration = (time.perf_counter() - self.start_time) * 1000
        extra = {"operation": self.operation, "duration_ms": round(duration, 2)}

        if exc_type:
            # Access denials are expected outcomes, not failures
            self.logger.info(
                f"{self.operation} ended with {exc_type.__name__} after {duration:.1f}ms",
                extra=extra,
            )
        else:
            self.logger.debug(f"{self.operation} completed in {duration:.1f}ms", extra=extra)


# Initialize logging on module import (can be reconfigured later)
setup_logging(
    level="INFO",
    json_format=False
)
