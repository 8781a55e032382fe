"""
Maniac Utils Package
====================

Utility functions, helpers, and environment management.
"""

from __future__ import annotations

from maniac.utils.env import Env
from maniac.utils.logger import Logger, LogLevel, configure_logging, get_logger
from maniac.utils.helpers import (
    deep_merge,
    get_nested,
    pascal_case,
    set_nested,
    snake_case,
)

__all__ = [
    # Environment
    "Env",
    # Logging
    "Logger",
    "LogLevel",
    "get_logger",
    "configure_logging",
    # String helpers
    "snake_case",
    "pascal_case",
    # Collection helpers
    "get_nested",
    "set_nested",
    "deep_merge",
]
