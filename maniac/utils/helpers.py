"""
Maniac Helpers
==============

Small string and mapping utilities shared across the framework.
"""

from __future__ import annotations

import copy
import re
from typing import Any, Dict, Mapping


# =============================================================================
# String Helpers
# =============================================================================

def snake_case(text: str) -> str:
    """
    Convert text to snake_case.

    Example:
        >>> snake_case("BlogPost")
        'blog_post'
        >>> snake_case("HTTPRequestLog")
        'http_request_log'
    """
    text = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", text)
    text = re.sub(r"([a-z\d])([A-Z])", r"\1_\2", text)
    return re.sub(r"[-\s]+", "_", text).lower()


def pascal_case(text: str) -> str:
    """
    Convert text to PascalCase.

    Example:
        >>> pascal_case("create_users_table")
        'CreateUsersTable'
    """
    return "".join(part[:1].upper() + part[1:] for part in re.split(r"[_\-\s]+", text) if part)


# =============================================================================
# Mapping Helpers
# =============================================================================

def get_nested(obj: Any, path: str, default: Any = None, separator: str = ".") -> Any:
    """
    Read a value from nested dicts/lists using dot notation.

    Example:
        >>> get_nested({"mail": {"from": {"address": "a@b.c"}}}, "mail.from.address")
        'a@b.c'
    """
    current = obj
    for key in path.split(separator):
        if isinstance(current, Mapping) and key in current:
            current = current[key]
        elif isinstance(current, (list, tuple)) and key.isdigit() and int(key) < len(current):
            current = current[int(key)]
        else:
            return default
    return current


def set_nested(obj: Dict[str, Any], path: str, value: Any, separator: str = ".") -> Dict[str, Any]:
    """Write ``value`` at a dot-notation path, creating intermediate dicts."""
    keys = path.split(separator)
    current = obj
    for key in keys[:-1]:
        if not isinstance(current.get(key), dict):
            current[key] = {}
        current = current[key]
    current[keys[-1]] = value
    return obj


def deep_merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``."""
    result = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result
