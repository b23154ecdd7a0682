"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of TMSYNC, licensed under the MIT License.
See LICENSE file for details.
"""

"""Logging infrastructure with contextual error tracking.

Synchronization runs fan out across worker threads, so every record carries the
correlation id of the sync unit that produced it together with an optional
``context`` dict (project, folder, source key, ...). Credentials that end up in
messages, such as API tokens in request dumps, are redacted before emission.
"""

import json
import logging
import os
import re
import sys
import threading
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from re import Pattern
from typing import Any

from rich.logging import RichHandler

_context_local = threading.local()
_logger_class_lock = threading.Lock()

CORRELATION_PREFIX = "tmsync-"
DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class CorrelationIdManager:
    """Manages correlation IDs per thread using thread-local storage."""

    def get_correlation_id(self) -> str:
        """Get the current correlation ID or generate a new one."""
        if not getattr(_context_local, "correlation_id", None):
            _context_local.correlation_id = f"{CORRELATION_PREFIX}{uuid.uuid4()}"
        return _context_local.correlation_id

    def set_correlation_id(self, correlation_id: str) -> None:
        _context_local.correlation_id = correlation_id

    def clear_correlation_id(self) -> None:
        if hasattr(_context_local, "correlation_id"):
            delattr(_context_local, "correlation_id")


correlation_manager = CorrelationIdManager()


class LogRedactor:
    """Redacts credentials from log messages."""

    def __init__(self) -> None:
        self.patterns: dict[str, Pattern] = {
            "api_key": re.compile(
                r'(api[_-]?key|api[_-]?token|token)["\']?\s*[:=]\s*["\']?([^"\'&\s]{8,})',
                re.IGNORECASE,
            ),
            "password": re.compile(
                r'(password|passwd|secret)["\']?\s*[:=]\s*["\']?([^"\'&\s]+)', re.IGNORECASE
            ),
            "authorization": re.compile(
                r'(Authorization|Bearer|Basic)["\']?\s*[:=]?\s*["\']?([A-Za-z0-9+/=._-]{8,})',
                re.IGNORECASE,
            ),
        }

    def redact(self, message: str) -> str:
        if not isinstance(message, str):
            return message
        for pattern in self.patterns.values():
            message = pattern.sub(r"\1: [REDACTED]", message)
        return message


redactor = LogRedactor()


class StructuredLogger(logging.Logger):
    """
    Logger that supports structured logging with context data.

    Accepts a ``context`` keyword on every logging call and stores it on the
    record as ``context_data`` next to the thread's ``correlation_id``.
    """

    def _log(
        self,
        level: int,
        msg: Any,
        args: tuple,
        exc_info: Any = None,
        extra: dict[str, Any] | None = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        **kwargs: Any,
    ) -> None:
        context = kwargs.pop("context", None)
        extra = dict(extra) if extra else {}
        if context:
            extra["context_data"] = context
        extra["correlation_id"] = correlation_manager.get_correlation_id()

        if isinstance(msg, str):
            msg = redactor.redact(msg)

        super()._log(level, msg, args, exc_info, extra, stack_info, stacklevel + 1)


class JSONFormatter(logging.Formatter):
    """Formatter that outputs log records as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if hasattr(record, "correlation_id"):
            log_data["correlation_id"] = record.correlation_id
        if getattr(record, "context_data", None):
            log_data["context"] = record.context_data
        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }
        return json.dumps(log_data, default=str)


class RichContextFormatter(logging.Formatter):
    """Formatter for Rich console output that appends context data."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context_data = getattr(record, "context_data", None)
        if context_data:
            context_str = " ".join(f"[{k}={v}]" for k, v in context_data.items())
            message = f"{message} {context_str}"
        if hasattr(record, "correlation_id"):
            message = f"{message} [correlation_id={record.correlation_id}]"
        return message


@contextmanager
def log_operation(
    logger: logging.Logger,
    operation_name: str,
    level: int = logging.INFO,
    context: dict[str, Any] | None = None,
) -> Iterator[dict[str, Any]]:
    """
    Context manager for logging operations with timing and context tracking.

    Args:
    ----
        logger: A StructuredLogger instance
        operation_name: Name of the operation being performed
        level: Log level to use
        context: Additional context data to include in the logs

    Yields:
    ------
        The context dict, which callers may extend before the completion line

    Raises:
    ------
        Exception: Re-raises any exception that occurs within the context

    """
    start_time = time.time()
    context = dict(context or {})
    context["operation_id"] = str(uuid.uuid4())[:8]

    logger.log(level, f"Starting {operation_name}", context=context)
    try:
        yield context
    except Exception as e:
        duration = time.time() - start_time
        error_context = {
            **context,
            "error_type": type(e).__name__,
            "error": str(e),
            "duration": f"{duration:.2f}s",
        }
        logger.log(
            logging.ERROR,
            f"Failed {operation_name} after {duration:.2f}s",
            context=error_context,
            exc_info=True,
        )
        raise
    duration = time.time() - start_time
    logger.log(level, f"Completed {operation_name} in {duration:.2f}s", context=context)


@contextmanager
def correlation_id(value: str | None = None) -> Iterator[str]:
    """
    Set a correlation ID for the current thread for the duration of the block.

    Args:
    ----
        value: ID to use, or None to generate a new one

    Yields:
    ------
        str: The active correlation ID

    """
    previous_id = getattr(_context_local, "correlation_id", None)
    correlation_manager.set_correlation_id(value or f"{CORRELATION_PREFIX}{uuid.uuid4()}")
    try:
        yield correlation_manager.get_correlation_id()
    finally:
        if previous_id:
            correlation_manager.set_correlation_id(previous_id)
        else:
            correlation_manager.clear_correlation_id()


class ErrorTracker:
    """
    Tracks errors and their context for later analysis.

    Collects the errors raised while a run processes its sync units so they can
    be reported together at the end. Safe to share between worker threads.
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.errors: list[dict[str, Any]] = []
        self.logger = logger or get_logger("tmsync.error_tracker")
        self._lock = threading.Lock()

    def add_error(
        self, error: Exception, context: dict[str, Any] | None = None, log: bool = True
    ) -> None:
        """
        Add an error to the tracker.

        Args:
        ----
            error: The exception that occurred
            context: Additional context information
            log: Whether to log the error as well as tracking it

        """
        error_info = {
            "error_type": type(error).__name__,
            "message": str(error),
            "timestamp": datetime.now().isoformat(),
            "correlation_id": correlation_manager.get_correlation_id(),
            "context": context or {},
        }
        with self._lock:
            self.errors.append(error_info)

        if log:
            self.logger.error(
                f"Error tracked: {error_info['error_type']}: {error_info['message']}",
                context=context,
                exc_info=error,
            )

    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def get_error_summary(self) -> dict[str, Any]:
        """
        Get a summary of tracked errors.

        Returns
        -------
            A dictionary with total_errors, error_types (count per type),
            first_error and last_error

        """
        with self._lock:
            errors = list(self.errors)
        error_types: dict[str, int] = {}
        for error in errors:
            error_types[error["error_type"]] = error_types.get(error["error_type"], 0) + 1
        return {
            "total_errors": len(errors),
            "error_types": error_types,
            "first_error": errors[0] if errors else None,
            "last_error": errors[-1] if errors else None,
        }


def configure_logging(
    level: int | str = logging.INFO,
    log_file: str | None = None,
    json_format: bool = False,
    include_timestamp: bool = True,
    use_rich: bool = True,
    debug: bool = False,
) -> None:
    """
    Configure application logging.

    Args:
    ----
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL or integer)
        log_file: Optional path to log file
        json_format: Whether to use JSON format for logs
        include_timestamp: Whether to include timestamps in logs
        use_rich: Whether to use Rich for console output
        debug: Whether to force debug mode

    """
    if isinstance(level, str):
        level = getattr(logging, level.upper())
    if debug:
        level = logging.DEBUG

    logging.setLoggerClass(StructuredLogger)

    format_str = DEFAULT_FORMAT if include_timestamp else "[%(levelname)s] %(name)s: %(message)s"
    handlers: list[logging.Handler] = []

    if use_rich and not json_format:
        rich_handler = RichHandler(rich_tracebacks=True, markup=False, show_time=include_timestamp)
        rich_handler.setFormatter(RichContextFormatter("%(message)s"))
        handlers.append(rich_handler)
    else:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(
            JSONFormatter() if json_format else logging.Formatter(format_str)
        )
        handlers.append(console_handler)

    if log_file:
        os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(JSONFormatter() if json_format else logging.Formatter(format_str))
        handlers.append(file_handler)

    root = logging.getLogger()
    root.setLevel(max(level, logging.WARNING))
    for handler in list(root.handlers):
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)

    app_logger = logging.getLogger("tmsync")
    app_logger.setLevel(level)
    app_logger.propagate = False
    for handler in list(app_logger.handlers):
        app_logger.removeHandler(handler)
    for handler in handlers:
        app_logger.addHandler(handler)

    app_logger.debug(f"Logging configured with level {logging.getLevelName(level)}")


def get_logger(name: str) -> StructuredLogger:
    """
    Get a structured logger, creating it as a StructuredLogger if it is new.

    Args:
    ----
        name: Name of the logger, typically __name__

    Returns:
    -------
        A structured logger instance

    """
    manager = logging.Logger.manager
    with _logger_class_lock:
        previous = manager.loggerClass
        manager.setLoggerClass(StructuredLogger)
        try:
            logger = logging.getLogger(name)
        finally:
            manager.loggerClass = previous
    if not isinstance(logger, StructuredLogger):
        raise TypeError(f"Logger {name!r} was created before structured logging was available")
    return logger

