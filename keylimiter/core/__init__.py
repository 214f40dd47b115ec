"""Core utilities for the rate limiting library."""

from keylimiter.core.config import Settings, settings
from keylimiter.core.logging import get_log_context, get_logger, hash_key, setup_logging

__all__ = [
    "Settings",
    "settings",
    "get_logger",
    "get_log_context",
    "hash_key",
    "setup_logging",
]
