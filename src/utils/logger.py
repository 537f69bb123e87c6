"""
Structured logging utility for the application.

Provides JSON-formatted logging with presigned URL masking,
context injection, and operation timing for CloudWatch integration.
"""

import json
import logging
import os
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from functools import wraps
from urllib.parse import urlsplit, urlunsplit


def mask_presigned_url(url: Optional[str]) -> str:
    """
    Strip the signature query string from a presigned URL before logging it.

    Anyone holding the full URL can read the object until it expires, so logs
    only keep scheme, host and path.

    Example:
        >>> mask_presigned_url("https://acc.r2.cloudflarestorage.com/b/example.com.png?X-Amz-Signature=abc")
        "https://acc.r2.cloudflarestorage.com/b/example.com.png?***"
    """
    if not url:
        return "none"

    parts = urlsplit(url)
    if not parts.query:
        return url

    return urlunsplit((parts.scheme, parts.netloc, parts.path, "***", ""))


# Filters attached to every StructuredLogger handler, including ones created later
_handler_filters: List[logging.Filter] = []
_structured_handlers: List[logging.Handler] = []


def add_handler_filter(log_filter: logging.Filter) -> None:
    """
    Attach a filter to the handler of every StructuredLogger.

    Structured loggers write through their own handler, so filters on the root
    logger never see their records. A filter replaces earlier ones of the same
    class.
    """
    filter_type = type(log_filter)
    _handler_filters[:] = [f for f in _handler_filters if type(f) is not filter_type]
    _handler_filters.append(log_filter)

    for handler in _structured_handlers:
        for existing in list(handler.filters):
            if type(existing) is filter_type:
                handler.removeFilter(existing)
        handler.addFilter(log_filter)


class StructuredLogger:
    """
    JSON-formatted logger with context injection and operation timing.

    All log output is JSON format for CloudWatch integration and easier parsing.
    """

    def __init__(self, name: str, level: Optional[str] = None):
        """
        Initialize structured logger.

        Args:
            name: Logger name (typically __name__ from calling module)
            level: Log level name; falls back to LOG_LEVEL env, then DEBUG
        """
        level_name = (level or os.getenv("LOG_LEVEL", "DEBUG")).upper()
        log_level = getattr(logging, level_name, logging.DEBUG)

        self.logger = logging.getLogger(name)
        self.logger.setLevel(log_level)

        # Create console handler with JSON formatting
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setLevel(log_level)

            formatter = logging.Formatter("%(message)s", datefmt="%Y-%m-%dT%H:%M:%S")
            handler.setFormatter(formatter)
            for log_filter in _handler_filters:
                handler.addFilter(log_filter)
            _structured_handlers.append(handler)
            self.logger.addHandler(handler)

    def _format_log(
        self,
        level: str,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        duration_ms: Optional[float] = None,
        error: Optional[str] = None,
    ) -> str:
        """
        Format log entry as JSON.

        Args:
            level: Log level (DEBUG, INFO, WARNING, ERROR)
            message: Human-readable message
            operation: Operation name (e.g., "navigate", "upload_evidence")
            context: Context dict with url, domain, server_ip, etc.
            duration_ms: Operation duration in milliseconds
            error: Error message if applicable

        Returns:
            JSON-formatted log string
        """
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": level,
            "message": message,
        }

        if operation:
            log_entry["operation"] = operation

        if context:
            log_entry["context"] = context

        if duration_ms is not None:
            log_entry["duration_ms"] = round(duration_ms, 2)

        if error:
            log_entry["error"] = error

        return json.dumps(log_entry, ensure_ascii=False, default=str)

    def debug(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """Log debug message."""
        log_json = self._format_log("DEBUG", message, operation, context)
        self.logger.debug(log_json)

    def info(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        duration_ms: Optional[float] = None,
    ):
        """Log info message."""
        log_json = self._format_log("INFO", message, operation, context, duration_ms)
        self.logger.info(log_json)

    def warning(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ):
        """Log warning message."""
        log_json = self._format_log("WARNING", message, operation, context, error=error)
        self.logger.warning(log_json)

    def error(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
        duration_ms: Optional[float] = None,
    ):
        """Log error message."""
        log_json = self._format_log(
            "ERROR", message, operation, context, duration_ms, error
        )
        self.logger.error(log_json)


class NullLogger(StructuredLogger):
    """Logger that drops every record. Handy for tests and quiet tooling."""

    def __init__(self, name: str = "null"):
        self.logger = logging.getLogger(name)

    def debug(self, message: str, operation=None, context=None):
        pass

    def info(self, message: str, operation=None, context=None, duration_ms=None):
        pass

    def warning(self, message: str, operation=None, context=None, error=None):
        pass

    def error(self, message: str, operation=None, context=None, error=None, duration_ms=None):
        pass


def log_operation(operation_name: str):
    """
    Decorator to automatically log operation start, duration, and completion.

    Methods log through their instance's ``logger`` when it is a
    StructuredLogger, so an injected logger (or NullLogger) is honoured.

    Usage:
        @log_operation("upload_evidence")
        def upload(self, key, local_path):
            ...
    """

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            owner_logger = getattr(args[0], "logger", None) if args else None
            if isinstance(owner_logger, StructuredLogger):
                logger = owner_logger
            else:
                logger = StructuredLogger(func.__module__)

            context: Dict[str, Any] = {
                "function": func.__name__,
            }
            if "key" in kwargs:
                context["key"] = kwargs["key"]

            logger.debug(
                f"Starting {operation_name}", operation=operation_name, context=context
            )

            start_time = time.time()
            try:
                result = func(*args, **kwargs)
                duration_ms = (time.time() - start_time) * 1000
                logger.info(
                    f"Completed {operation_name}",
                    operation=operation_name,
                    context=context,
                    duration_ms=duration_ms,
                )
                return result
            except Exception as e:
                duration_ms = (time.time() - start_time) * 1000
                logger.error(
                    f"Failed {operation_name}",
                    operation=operation_name,
                    context=context,
                    error=str(e),
                    duration_ms=duration_ms,
                )
                raise

        return wrapper

    return decorator


def get_logger(name: str) -> StructuredLogger:
    """
    Factory function to get a structured logger instance.

    Args:
        name: Logger name (typically __name__ from calling module)

    Returns:
        StructuredLogger instance
    """
    return StructuredLogger(name)
