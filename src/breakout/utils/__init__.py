"""
Utility modules for the breakout engine.

Provides structured logging and result serialization helpers.
"""

from .logger import (
    LogConfig,
    add_context,
    clear_context,
    get_logger,
    set_log_level,
    setup_logging,
)
from .serialization import SerializableMixin, to_serializable

__all__ = [
    "LogConfig",
    "setup_logging",
    "get_logger",
    "add_context",
    "set_log_level",
    "clear_context",
    "to_serializable",
    "SerializableMixin",
]
