"""
View exceptions.

``ViewNotFoundError`` and its ``LayoutNotFoundError`` subclass are
not-found conditions. Compile problems carry the template path and line.
"""

from __future__ import annotations

from typing import Optional

from maniac.core.exceptions import ManiacError


class ViewError(ManiacError):
    """Base class for view errors."""


class ViewNotFoundError(ViewError):
    def __init__(self, view: str, path: Optional[str] = None) -> None:
        self.view = view
        self.path = path
        super().__init__(f"View [{view}] not found" + (f": {path}" if path else ""))


class LayoutNotFoundError(ViewNotFoundError):
    def __init__(self, view: str, path: Optional[str] = None) -> None:
        super().__init__(view, path)
        self.args = (f"Layout [{view}] not found" + (f": {path}" if path else ""),)


class TemplateCompileError(ViewError):
    """The template could not be turned into valid Python."""

    def __init__(self, message: str, path: Optional[str] = None, line: Optional[int] = None) -> None:
        self.message = message
        self.path = path
        self.line = line
        location = ""
        if path:
            location = f" in {path}" + (f" on line {line}" if line else "")
        super().__init__(f"{message}{location}")


class TemplateSyntaxError(TemplateCompileError):
    """Malformed directive or unbalanced block."""


class SectionMismatchError(TemplateSyntaxError):
    """``@endsection``/``@endslot`` without an opening directive, or the reverse."""


class ViewRenderError(ViewError):
    """An exception escaped while a compiled view was running."""

    def __init__(self, view: str, message: str, line: Optional[int] = None) -> None:
        self.view = view
        self.line = line
        location = f" (line {line})" if line else ""
        super().__init__(f"Error rendering view [{view}]{location}: {message}")
