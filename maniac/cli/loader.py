"""
Application loading for CLI commands.

Commands locate the application with ``--app module:attribute``
(default ``app:app``). The attribute may be an ``Application`` or a
zero-argument factory returning one.
"""

from __future__ import annotations

import importlib
import sys
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from maniac.core.application import Application

DEFAULT_APP = "app:app"


class AppLoadError(Exception):
    """The ``--app`` target could not be imported or is not an application."""


def load_application(target: str = DEFAULT_APP) -> "Application":
    from maniac.core.application import Application

    module_name, _, attribute = target.partition(":")
    attribute = attribute or "app"

    cwd = str(Path.cwd())
    if cwd not in sys.path:
        sys.path.insert(0, cwd)

    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise AppLoadError(f"Could not import module [{module_name}]: {exc}") from exc

    try:
        app = getattr(module, attribute)
    except AttributeError as exc:
        raise AppLoadError(f"Module [{module_name}] has no attribute [{attribute}]") from exc

    if not isinstance(app, Application) and callable(app):
        app = app()
    if not isinstance(app, Application):
        raise AppLoadError(f"[{target}] is not a Maniac Application")
    return app
