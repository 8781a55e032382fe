"""
Maniac CLI View Commands
========================

``view:clear`` removes compiled templates.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from maniac.core.application import Application


def clear_views(app: "Application") -> int:
    removed = app.views.clear_cache()
    print(f"✓ Compiled views cleared ({removed} file(s)).")
    return 0
