"""
Niac View Helpers
=================

Runtime helpers available inside every compiled view.

Features:
- HTML escaping with an ``HtmlString`` passthrough for trusted markup
- ``asset()``/``url()`` URL builders
- ``csrf_field()`` reading the token of the current request
- ``loop`` context for ``@foreach``/``@forelse``
- Safe ``@isset``/``@empty`` checks

Example:
    escape("<b>")                      # "&lt;b&gt;"
    escape(HtmlString("<b>"))          # "<b>"
    asset("css/app.css", "https://cdn.example.com/")
"""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Iterator, Optional, Tuple

from maniac.core.request import current_request

logger = logging.getLogger(__name__)

_LOOKUP_ERRORS = (NameError, KeyError, AttributeError, IndexError, TypeError)


class HtmlString(str):
    """A string that is already safe HTML and is never escaped again."""

    def __html__(self) -> str:
        return str(self)


def escape(value: Any) -> str:
    """HTML-escape a value for output."""
    if value is None:
        return ""
    if hasattr(value, "__html__"):
        return value.__html__()
    return html.escape(str(value), quote=True)


e = escape


def raw(value: Any) -> str:
    """Output a value without escaping."""
    if value is None:
        return ""
    return str(value)


def _join(base: str, path: str) -> str:
    return base.rstrip("/") + "/" + path.lstrip("/")


def asset(path: str, base: str = "") -> str:
    """Build a URL for a public asset."""
    return _join(base, path)


def url(path: str, base: str = "") -> str:
    """Build an absolute URL for an application path."""
    return _join(base, path)


def csrf_token() -> Optional[str]:
    request = current_request.get()
    if request is None:
        return None
    return request.state.get("csrf_token")


def csrf_field() -> HtmlString:
    """Hidden ``_token`` input for forms."""
    token = csrf_token()
    if not token:
        logger.warning("CSRF token unavailable while rendering csrf_field()")
        return HtmlString("<!-- CSRF field unavailable -->")
    return HtmlString(f'<input type="hidden" name="_token" value="{escape(token)}">')


def method_field(method: str) -> HtmlString:
    return HtmlString(f'<input type="hidden" name="_method" value="{escape(method.upper())}">')


@dataclass
class LoopContext:
    """
    State of the innermost ``@foreach``/``@forelse`` loop.

    ``index`` counts from 0, ``iteration`` from 1. ``count`` and
    ``remaining`` are ``None`` when the iterable has no length.
    """
    index: int = 0
    count: Optional[int] = None
    depth: int = 1
    parent: Optional["LoopContext"] = None

    @property
    def iteration(self) -> int:
        return self.index + 1

    @property
    def first(self) -> bool:
        return self.index == 0

    @property
    def last(self) -> bool:
        return self.count is not None and self.index == self.count - 1

    @property
    def remaining(self) -> Optional[int]:
        if self.count is None:
            return None
        return self.count - self.iteration

    @property
    def even(self) -> bool:
        return self.iteration % 2 == 0

    @property
    def odd(self) -> bool:
        return not self.even


def iterate(iterable: Iterable, parent: Any = None) -> Iterator[Tuple[LoopContext, Any]]:
    """Yield ``(loop, item)`` pairs for a template loop."""
    if iterable is None:
        return
    try:
        count: Optional[int] = len(iterable)  # type: ignore[arg-type]
    except TypeError:
        count = None
    if not isinstance(parent, LoopContext):
        parent = None
    depth = parent.depth + 1 if parent else 1

    for index, item in enumerate(iterable):
        yield LoopContext(index=index, count=count, depth=depth, parent=parent), item


def pairs(iterable: Any) -> Iterable[Tuple[Any, Any]]:
    """Key/value pairs of a mapping, or index/value pairs of a sequence."""
    if iterable is None:
        return ()
    if hasattr(iterable, "items"):
        return iterable.items()
    return enumerate(iterable)


def isset(thunk: Callable[[], Any]) -> bool:
    """True when the expression resolves to something other than ``None``."""
    try:
        return thunk() is not None
    except _LOOKUP_ERRORS:
        return False


def empty(thunk: Callable[[], Any]) -> bool:
    """True when the expression is missing, ``None`` or falsy."""
    try:
        return not thunk()
    except _LOOKUP_ERRORS:
        return True
