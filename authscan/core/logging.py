"""
AuthScan Structured Logging

JSON or human-readable output with scan and correlation context
stamped on every record.
"""

import sys
import json
import logging
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from contextvars import ContextVar
from functools import wraps
import time

from authscan.core.config import Settings, settings as default_settings

# Context variables for scan tracking
correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
scan_id_var: ContextVar[Optional[str]] = ContextVar("scan_id", default=None)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": _utcnow().strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        # Add context variables
        if correlation_id := correlation_id_var.get():
            log_entry["correlation_id"] = correlation_id
        if scan_id := scan_id_var.get():
            log_entry["scan_id"] = scan_id

        # Add extra fields
        if hasattr(record, "extra_fields"):
            log_entry.update(record.extra_fields)

        # Add exception info
        if record.exc_info and record.exc_info[0]:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info),
            }

        return json.dumps(log_entry, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable text formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        reset = self.COLORS["RESET"]

        context_parts = []
        if correlation_id := correlation_id_var.get():
            context_parts.append(f"corr={correlation_id[:8]}")
        if scan_id := scan_id_var.get():
            context_parts.append(f"scan={scan_id[:24]}")

        context_str = f" [{', '.join(context_parts)}]" if context_parts else ""

        timestamp = _utcnow().strftime("%Y-%m-%d %H:%M:%S")

        message = f"{timestamp} {color}{record.levelname:8}{reset} {record.name}{context_str}: {record.getMessage()}"

        extra_fields = getattr(record, "extra_fields", None)
        if extra_fields:
            message += " " + " ".join(f"{k}={v}" for k, v in extra_fields.items())

        if record.exc_info and record.exc_info[0]:
            message += "\n" + "".join(traceback.format_exception(*record.exc_info))

        return message


class ScanLogger(logging.Logger):
    """Logger that accepts keyword fields and attaches them to the record."""

    def _log_with_extra(
        self,
        level: int,
        msg: str,
        args: tuple,
        /,
        exc_info: Any = None,
        extra: Optional[Dict] = None,
        **kwargs
    ):
        if not self.isEnabledFor(level):
            return
        if extra is None:
            extra = {}

        extra["extra_fields"] = {**kwargs}

        super()._log(level, msg, args, exc_info=exc_info, extra=extra)

    def debug(self, msg: str, *args, **kwargs):
        self._log_with_extra(logging.DEBUG, msg, args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self._log_with_extra(logging.INFO, msg, args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self._log_with_extra(logging.WARNING, msg, args, **kwargs)

    def error(self, msg: str, *args, exc_info: Any = None, **kwargs):
        self._log_with_extra(logging.ERROR, msg, args, exc_info=exc_info, **kwargs)

    def critical(self, msg: str, *args, exc_info: Any = True, **kwargs):
        self._log_with_extra(logging.CRITICAL, msg, args, exc_info=exc_info, **kwargs)

    def audit(self, action: str, resource: str, **kwargs):
        """Log audit events."""
        self.info(
            f"AUDIT: {action} on {resource}",
            action=action,
            resource=resource,
            audit=True,
            **kwargs
        )


# Set custom logger class
logging.setLoggerClass(ScanLogger)


def setup_logging(
    level: Optional[str] = None,
    format: Optional[str] = None,
    log_file: Optional[str] = None,
    config: Optional[Settings] = None,
) -> None:
    """
    Set up logging configuration.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Output format (json, text)
        log_file: Optional file path for logging
        config: Settings supplying any argument left unset (global settings by default)
    """
    config = config or default_settings
    level = level or config.log_level
    format = format or config.log_format
    log_file = log_file or config.log_file

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    # Clear existing handlers
    root_logger.handlers.clear()

    if format == "json":
        formatter = JSONFormatter()
    else:
        formatter = TextFormatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(JSONFormatter())  # Always JSON for files
        root_logger.addHandler(file_handler)

    # Suppress noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    get_logger(__name__).info(
        f"{config.app_name} {config.app_version} logging configured",
        environment=config.environment,
        level=level.upper(),
        format=format,
    )


def get_logger(name: str) -> ScanLogger:
    """Get a logger instance."""
    return logging.getLogger(name)


def set_scan_context(
    scan_id: Optional[str] = None,
    correlation_id: Optional[str] = None,
) -> None:
    """Set scan context for logging."""
    if scan_id:
        scan_id_var.set(scan_id)
    if correlation_id:
        correlation_id_var.set(correlation_id)


def clear_scan_context() -> None:
    """Clear scan context."""
    scan_id_var.set(None)
    correlation_id_var.set(None)


def log_execution_time(logger: Optional[ScanLogger] = None):
    """Decorator to log execution time of a coroutine function."""
    def decorator(func):
        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            nonlocal logger
            if logger is None:
                logger = get_logger(func.__module__)

            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
                elapsed = (time.perf_counter() - start) * 1000
                logger.info(
                    f"{func.__name__} completed",
                    function=func.__name__,
                    duration_ms=round(elapsed, 2),
                    status="success"
                )
                return result
            except Exception as e:
                elapsed = (time.perf_counter() - start) * 1000
                logger.warning(
                    f"{func.__name__} failed: {str(e)}",
                    function=func.__name__,
                    duration_ms=round(elapsed, 2),
                    status="error",
                    error_type=type(e).__name__
                )
                raise

        return async_wrapper

    return decorator
