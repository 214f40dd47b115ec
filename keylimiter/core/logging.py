"""Logging for the rate limiting library.

The library only emits records on the ``keylimiter`` logger hierarchy and
never configures handlers by itself. Applications that want the library's
structured output call ``setup_logging``.
"""

import hashlib
import json
import logging
import logging.config
import sys
import traceback
from datetime import datetime
from typing import Any, Dict, Optional

from keylimiter.core.config import settings

# Contextual fields attached to rate limit records
CONTEXT_FIELDS = (
    "limiter",       # Limiter strategy (fixed_window, sliding_window, token_bucket)
    "key_hash",      # Truncated SHA-256 of the rate limit key
    "store",         # Store backend (memory, redis)
    "operation",     # Store operation name
    "allowed",       # Decision
    "retry_after",   # Seconds until the key may retry
)


class JSONFormatter(logging.Formatter):
    """Render log records as one JSON object per line."""

    CONTEXT_FIELDS = CONTEXT_FIELDS

    # LogRecord attributes that are not user-supplied extras
    _RESERVED = frozenset((
        "name", "msg", "args", "levelname", "levelno", "pathname",
        "filename", "module", "exc_info", "exc_text", "stack_info",
        "lineno", "funcName", "created", "msecs", "relativeCreated",
        "thread", "threadName", "processName", "process", "message",
        "asctime", "taskName",
    ))

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now().astimezone().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.message,
            "source": {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            },
        }

        for key, value in record.__dict__.items():
            if key in self.CONTEXT_FIELDS:
                if value is not None:
                    log_data[key] = value
            elif key not in self._RESERVED:
                log_data.setdefault("extra", {})[key] = value

        if record.exc_info and record.exc_info != (None, None, None):
            log_data["exception"] = traceback.format_exception(*record.exc_info)

        return json.dumps(log_data, default=str, ensure_ascii=False)


class ContextFilter(logging.Filter):
    """Default every context field to None so text format strings never fail."""

    def filter(self, record: logging.LogRecord) -> bool:
        for field in CONTEXT_FIELDS:
            if not hasattr(record, field):
                setattr(record, field, None)
        return True


def get_logging_config(
    log_level: Optional[str] = None, log_format: Optional[str] = None
) -> Dict[str, Any]:
    """Build a dictConfig for the ``keylimiter`` logger.

    Args:
        log_level: Overrides ``settings.log_level``
        log_format: ``text``, ``structured`` or ``json``; overrides
            ``settings.log_format``
    """
    log_format = (log_format or settings.log_format).lower()
    log_level = (log_level or settings.log_level).upper()

    formatters = {
        "standard": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        },
        "structured": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s - limiter=%(limiter)s - key_hash=%(key_hash)s - store=%(store)s"
        },
        "json": {"()": "keylimiter.core.logging.JSONFormatter"},
    }
    formatter = log_format if log_format in formatters else "standard"

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "filters": {"context": {"()": "keylimiter.core.logging.ContextFilter"}},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": formatter,
                "stream": sys.stderr,
                "filters": ["context"],
            },
        },
        "loggers": {
            "keylimiter": {
                "level": log_level,
                "handlers": ["console"],
                "propagate": False,
            },
        },
    }


def setup_logging(log_level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """Configure logging for applications embedding the library."""
    logging.config.dictConfig(get_logging_config(log_level, log_format))

    # Reduce noise from the Redis client
    logging.getLogger("redis").setLevel(logging.WARNING)


def get_logger(name: str = "keylimiter") -> logging.Logger:
    """Get a logger instance with the specified name.

    Args:
        name: Logger name, defaults to "keylimiter"

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


def hash_key(key: str) -> str:
    """Hash a rate limit key for logging without exposing raw identifiers."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def get_log_context(
    limiter: Optional[str] = None,
    key: Optional[str] = None,
    store: Optional[str] = None,
    operation: Optional[str] = None,
    **extra
) -> Dict[str, Any]:
    """Create a log context dictionary for use with extra parameter.

    The raw ``key`` is never logged; only its hash ends up in the record.

    Args:
        limiter: Limiter strategy name
        key: Rate limit key (hashed before logging)
        store: Store backend name
        operation: Store operation name
        **extra: Additional custom fields

    Returns:
        Dictionary suitable for passing as extra= parameter to logging calls

    Example:
        >>> logger.info(
        ...     "rate_limit.denied",
        ...     extra=get_log_context(limiter="token_bucket", key="user-1")
        ... )
    """
    context = {
        "limiter": limiter,
        "key_hash": hash_key(key) if key is not None else None,
        "store": store,
        "operation": operation,
    }
    context.update(extra)
    return {k: v for k, v in context.items() if v is not None}
