"""
Niac Engine
===========

Loads, compiles, caches and renders ``.niac.html`` views.

Features:
- Dot-notation view names (``pages.home`` -> ``pages/home.niac.html``)
- Namespaced views (``mail::button``)
- Compiled Python cached on disk as ``sha1(relative path).py``
- Layouts, sections, includes, components and slots
- Shared data visible to every view
- Error pages with a hard-coded last resort

Example:
    views = NiacEngine("resources/views", "storage/views")
    views.share("app_name", "Maniac")
    html = views.render("pages.home", {"user": user})
"""

from __future__ import annotations

import ast
import functools
import hashlib
import logging
import os
import tempfile
import traceback
from pathlib import Path
from types import CodeType
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple, Union

from maniac.core.exceptions import HttpException, status_message
from maniac.view import helpers
from maniac.view.compiler import NiacCompiler, template_line
from maniac.view.exceptions import (
    LayoutNotFoundError,
    SectionMismatchError,
    TemplateCompileError,
    ViewError,
    ViewNotFoundError,
    ViewRenderError,
)
from maniac.view.helpers import HtmlString, escape
from maniac.view.parser import NiacParser

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

FALLBACK_PAGE = (
    "<!DOCTYPE html><html><head><title>%d %s</title></head>"
    "<body><h1>%d %s</h1><p>%s</p></body></html>"
)

DEBUG_PAGE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>Error - Maniac Framework</title>
    <style>
        body { font-family: sans-serif; background: #f8f8f8; color: #333; margin: 0; padding: 20px; }
        .container { max-width: 1200px; margin: 0 auto; background: #fff; padding: 20px; border-radius: 8px; }
        h1 { background: #e3342f; color: #fff; padding: 15px; margin: -20px -20px 20px; border-radius: 8px 8px 0 0; }
        pre { background: #2d2d2d; color: #f8f8f2; padding: 15px; border-radius: 5px; white-space: pre-wrap; }
    </style>
</head>
<body>
    <div class="container">
        <h1>%(type)s: %(message)s</h1>
        <p><strong>Status:</strong> %(status)d</p>
        <pre>%(trace)s</pre>
    </div>
</body>
</html>
"""

# Names the compiled code and helpers put into a view namespace
_RUNTIME_NAMES = frozenset({
    "loop", "e", "escape", "raw", "asset", "url", "csrf_field", "csrf_token",
    "method_field", "HtmlString",
})


class NiacEngine:
    """
    Template engine for Niac views.

    Rendering state (sections, title, meta, open slots) belongs to one
    top-level ``render()`` call and is reset when the next one starts.
    Nested renders (layouts, includes, components) share it.
    """

    def __init__(
        self,
        paths: Union[PathLike, Sequence[PathLike]],
        cache_path: PathLike,
        debug: bool = False,
        extension: str = ".niac.html",
        url: str = "",
        asset_url: Optional[str] = None,
    ) -> None:
        if isinstance(paths, (str, Path)):
            paths = [paths]
        self.paths: List[Path] = [Path(p) for p in paths]
        self.cache_path = Path(cache_path)
        self.debug = debug
        self.extension = extension
        self.url = url
        self.asset_url = asset_url

        self.namespaces: Dict[str, List[Path]] = {}
        self.shared: Dict[str, Any] = {}
        self._code_cache: Dict[Path, Tuple[float, CodeType, str]] = {}

        self._depth = 0
        self._buffers: List[List[str]] = []
        # Section names defined by each view being evaluated
        self._defined: List[Set[str]] = []
        self._reset()

    def _reset(self) -> None:
        self._sections: Dict[str, str] = {}
        self._section_stack: List[str] = []
        self._slot_stack: List[str] = []
        self._components: List[Tuple[str, Dict[str, Any], Dict[str, HtmlString]]] = []
        self._metadata: Dict[str, Any] = {"title": None, "meta": {}}

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def share(self, key: Union[str, Dict[str, Any]], value: Any = None) -> None:
        """Make data available to every view."""
        if isinstance(key, dict):
            self.shared.update(key)
        else:
            self.shared[key] = value

    def add_namespace(self, namespace: str, paths: Union[PathLike, Sequence[PathLike]]) -> None:
        """Register directories for ``namespace::view`` names."""
        if isinstance(paths, (str, Path)):
            paths = [paths]
        self.namespaces.setdefault(namespace, []).extend(Path(p) for p in paths)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def _relative(self, name: str) -> str:
        if name.endswith(self.extension):
            name = name[: -len(self.extension)]
        return name.replace(".", "/") + self.extension

    def find(self, view: str) -> Path:
        """
        Resolve a view name to its source file.

        ``namespace::name`` looks in the namespace's directories first, then
        falls back to ``namespace/name`` under the regular view paths.

        Raises:
            ViewNotFoundError: No file matches
        """
        name = view
        candidates: List[Path] = []
        if "::" in view:
            namespace, name = view.split("::", 1)
            candidates.extend(base / self._relative(name) for base in self.namespaces.get(namespace, []))
            name = f"{namespace}/{name}"
        candidates.extend(base / self._relative(name) for base in self.paths)

        for candidate in candidates:
            if candidate.is_file():
                return candidate
        raise ViewNotFoundError(view, str(candidates[-1]) if candidates else None)

    def exists(self, view: str) -> bool:
        try:
            self.find(view)
        except ViewNotFoundError:
            return False
        return True

    # ------------------------------------------------------------------
    # Compilation
    # ------------------------------------------------------------------

    def _cache_file(self, path: Path) -> Path:
        key = str(path)
        if self.paths:
            try:
                key = path.relative_to(self.paths[0]).as_posix()
            except ValueError:
                key = str(path.resolve())
        return self.cache_path / f"{hashlib.sha1(key.encode()).hexdigest()}.py"

    def _is_expired(self, path: Path, cache_file: Path) -> bool:
        if self.debug or not cache_file.exists():
            return True
        return path.stat().st_mtime >= cache_file.stat().st_mtime

    def compile(self, view: str) -> Path:
        """Compile a view to the cache and return the compiled file."""
        path = self.find(view)
        cache_file = self._cache_file(path)
        self._compile_file(path, cache_file)
        return cache_file

    def _compile_file(self, path: Path, cache_file: Path) -> str:
        source = path.read_text(encoding="utf-8")
        template = NiacParser(str(path)).parse(source)

        if template.layout is not None:
            self._check_layout(template.layout, path, template.layout_line)

        code = NiacCompiler().compile(template, str(path))
        try:
            compile(code, str(path), "exec")
        except SyntaxError as exc:
            raise TemplateCompileError(
                f"Compiled view is not valid Python: {exc.msg}",
                str(path),
                template_line(code, exc.lineno),
            ) from None

        self.cache_path.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.cache_path, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(code)
            os.replace(tmp, cache_file)
        except OSError:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

        self._code_cache.pop(cache_file, None)
        logger.debug("Compiled view %s -> %s", path, cache_file.name)
        return code

    def _check_layout(self, layout: str, path: Path, line: int) -> None:
        try:
            name = ast.literal_eval(layout)
        except (ValueError, SyntaxError):
            # Computed at render time
            return
        if isinstance(name, str) and not self.exists(name):
            raise LayoutNotFoundError(name, f"{path} on line {line}")

    def _load(self, path: Path) -> Tuple[CodeType, str]:
        cache_file = self._cache_file(path)
        if self._is_expired(path, cache_file):
            self._compile_file(path, cache_file)

        mtime = cache_file.stat().st_mtime
        cached = self._code_cache.get(cache_file)
        if cached and cached[0] == mtime:
            return cached[1], cached[2]

        source = cache_file.read_text(encoding="utf-8")
        code = compile(source, str(path), "exec")
        self._code_cache[cache_file] = (mtime, code, source)
        return code, source

    def clear_cache(self) -> int:
        """Delete every compiled view. Returns the number of files removed."""
        self._code_cache.clear()
        if not self.cache_path.is_dir():
            return 0
        removed = 0
        for compiled in self.cache_path.glob("*.py"):
            compiled.unlink()
            removed += 1
        return removed

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render(self, view: str, data: Optional[Dict[str, Any]] = None) -> str:
        """
        Render a view to a string.

        Raises:
            ViewNotFoundError: The view does not exist
            TemplateCompileError: The view does not compile
            ViewRenderError: The compiled view raised
        """
        return self._render(view, dict(data or {}))

    def _render(self, view: str, data: Dict[str, Any], layout: bool = False) -> str:
        if self._depth == 0:
            self._reset()

        try:
            path = self.find(view)
        except ViewNotFoundError as exc:
            if layout:
                raise LayoutNotFoundError(view, exc.path) from None
            raise

        code, source = self._load(path)
        namespace = self._namespace(data)

        self._depth += 1
        self._buffers.append([])
        self._defined.append(set())
        level = len(self._buffers)
        components = len(self._components)
        try:
            exec(code, namespace)
            output = "".join(self._buffers[-1])
        except (ViewError, HttpException):
            raise
        except Exception as exc:
            line = template_line(source, self._failing_line(exc, str(path)))
            logger.error("Error rendering view [%s]: %s", view, exc)
            raise ViewRenderError(view, str(exc), line) from exc
        finally:
            del self._buffers[level - 1:]
            del self._components[components:]
            self._defined.pop()
            self._depth -= 1

        if self._depth == 0 and (self._section_stack or self._slot_stack):
            open_block = (self._section_stack or self._slot_stack)[-1]
            raise SectionMismatchError(f"Unclosed section or slot '{open_block}'", str(path))
        return output

    @staticmethod
    def _failing_line(exc: BaseException, filename: str) -> Optional[int]:
        line = None
        tb = exc.__traceback__
        while tb is not None:
            if tb.tb_frame.f_code.co_filename == filename:
                line = tb.tb_lineno
            tb = tb.tb_next
        return line

    def _namespace(self, data: Dict[str, Any]) -> Dict[str, Any]:
        base = self.asset_url or self.url
        namespace: Dict[str, Any] = {
            "e": escape,
            "escape": escape,
            "raw": helpers.raw,
            "asset": functools.partial(helpers.asset, base=base),
            "url": functools.partial(helpers.url, base=self.url),
            "csrf_field": helpers.csrf_field,
            "csrf_token": helpers.csrf_token,
            "method_field": helpers.method_field,
            "HtmlString": HtmlString,
            "loop": None,
        }
        namespace.update(self.shared)
        namespace.update(data)
        namespace.update({
            "__engine": self,
            "__data": data,
            "__write": self._write,
            "__escape": escape,
            "__raw": helpers.raw,
            "__loop": helpers.iterate,
            "__pairs": helpers.pairs,
            "__isset": helpers.isset,
            "__empty": helpers.empty,
        })
        return namespace

    def _write(self, value: str) -> None:
        self._buffers[-1].append(value)

    # ------------------------------------------------------------------
    # Runtime API used by compiled views
    # ------------------------------------------------------------------

    def render_layout(self, layout: str, scope: Dict[str, Any]) -> str:
        """Render the layout of an extending view with the child's variables."""
        data = {
            key: value
            for key, value in scope.items()
            if not key.startswith("__") and key not in _RUNTIME_NAMES
            and not (key in self.shared and self.shared[key] is value)
        }
        # Output outside of sections is dropped
        self._buffers[-1].clear()
        return self._render(layout, data, layout=True)

    def include(self, view: str, parent_data: Dict[str, Any], data: Optional[Dict[str, Any]] = None) -> str:
        return self._render(view, {**parent_data, **(data or {})})

    def start_section(self, name: str) -> None:
        self._section_stack.append(name)
        self._buffers.append([])

    def stop_section(self) -> None:
        if not self._section_stack:
            raise SectionMismatchError("Cannot end a section without first starting one.")
        name = self._section_stack.pop()
        self.set_section(name, "".join(self._buffers.pop()))

    def set_section(self, name: str, content: str) -> None:
        """
        Store a section. A view redefining its own section replaces it; a
        section already defined by another view (the child of a layout) is kept.
        """
        defined = self._defined[-1] if self._defined else set()
        if name in defined or name not in self._sections:
            self._sections[name] = content
        defined.add(name)

    def yield_section(self, name: str, default: Any = "") -> str:
        if name in self._sections:
            return self._sections[name]
        return escape(default)

    def has_section(self, name: str) -> bool:
        return name in self._sections

    def start_component(self, view: str, parent_data: Dict[str, Any], data: Optional[Dict[str, Any]] = None) -> None:
        self._components.append((view, {**parent_data, **(data or {})}, {}))
        self._buffers.append([])

    def start_slot(self, name: str) -> None:
        if not self._components:
            raise SectionMismatchError(f"Slot '{name}' used outside of a component.")
        self._slot_stack.append(name)
        self._buffers.append([])

    def stop_slot(self) -> None:
        if not self._slot_stack:
            raise SectionMismatchError("Cannot end a slot without first starting one.")
        name = self._slot_stack.pop()
        self._components[-1][2][name] = HtmlString("".join(self._buffers.pop()).strip())

    def render_component(self) -> str:
        view, data, slots = self._components.pop()
        default = HtmlString("".join(self._buffers.pop()).strip())
        return self._render(view, {**data, **slots, "slot": default})

    def set_title(self, title: Any) -> None:
        self._metadata["title"] = title

    def get_title(self, default: Optional[str] = None) -> Optional[str]:
        title = self._metadata["title"]
        return default if title is None else title

    def set_meta(self, name: str, content: Any) -> None:
        self._metadata["meta"][name] = content

    def get_meta_tags(self) -> Dict[str, Any]:
        return dict(self._metadata["meta"])

    def render_meta_tags(self) -> HtmlString:
        tags = [
            f'<meta name="{escape(name)}" content="{escape(content)}">'
            for name, content in self._metadata["meta"].items()
        ]
        return HtmlString("\n".join(tags))

    # ------------------------------------------------------------------
    # Error pages
    # ------------------------------------------------------------------

    def render_error_page(self, status: int, message: str = "", exception: Optional[BaseException] = None) -> str:
        """
        Render the page for an HTTP error. Never raises.

        Tries ``errors.{status}`` then ``errors.default``; in debug mode an
        exception is shown on a debug page instead. Falls back to fixed HTML.
        """
        title = status_message(status)
        message = message or title

        if self.debug and exception is not None:
            return self._debug_page(status, exception)

        data = {
            "status": status,
            "title": title,
            "message": message,
            "error": {"code": status, "message": message},
        }
        for view in (f"errors.{status}", "errors.default"):
            if not self.exists(view):
                continue
            try:
                return self.render(view, data)
            except Exception as exc:
                logger.error("Error view [%s] failed: %s", view, exc)

        return FALLBACK_PAGE % (status, escape(title), status, escape(title), escape(message))

    def _debug_page(self, status: int, exception: BaseException) -> str:
        trace = "".join(traceback.format_exception(type(exception), exception, exception.__traceback__))
        error = {
            "type": type(exception).__name__,
            "message": str(exception),
            "trace": trace,
            "status": status,
        }
        if self.exists("errors.debug"):
            try:
                return self.render("errors.debug", {"error": error, "status": status})
            except Exception as exc:
                logger.error("Debug error view failed: %s", exc)
        return DEBUG_PAGE % {
            "type": escape(error["type"]),
            "message": escape(error["message"]),
            "status": status,
            "trace": escape(trace),
        }
