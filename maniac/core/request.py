"""
Maniac Request Object
=====================

Encapsulates HTTP request data. The body is read once by ``load()``
(called by the application before routing) so that input helpers are
plain synchronous lookups inside route actions and views.

Features:
- Query, form, JSON and multipart input merged behind ``input()``
- Case-insensitive headers
- Cookie handling
- Route parameters (``params``) and middleware state (``state``)
- ``_method`` form field override for PUT/PATCH/DELETE forms
- ``current_request`` context variable for code without a request handle

Example:
    async def store(request: Request):
        name = request.input("name")
        if not request.filled("email"):
            raise ValidationException({"email": ["The email field is required."]})
        page = request.query.get_int("page", 1)
"""

from __future__ import annotations

import re
from contextvars import ContextVar
from dataclasses import dataclass, field
from http.cookies import SimpleCookie
from typing import Any, Callable, Coroutine, Dict, Iterable, List, Optional, Union
from urllib.parse import parse_qs

import orjson

# Request being handled by the current task
current_request: ContextVar[Optional["Request"]] = ContextVar("current_request", default=None)

SPOOFABLE_METHODS = ("PUT", "PATCH", "DELETE")


@dataclass
class UploadedFile:
    """
    Represents an uploaded file from multipart form data.

    Attributes:
        filename: Original filename
        content_type: MIME type
        size: File size in bytes
        content: File content as bytes
    """
    filename: str
    content_type: str
    size: int
    content: bytes

    async def save(self, path: str) -> None:
        """Save uploaded file to disk."""
        import aiofiles
        async with aiofiles.open(path, "wb") as f:
            await f.write(self.content)

    def read(self) -> bytes:
        return self.content

    def text(self, encoding: str = "utf-8") -> str:
        return self.content.decode(encoding)


@dataclass
class QueryParams:
    """
    Query string parameters with type coercion.

    Supports:
    - Single values: ?name=value -> params.get("name") = "value"
    - Multiple values: ?tag=a&tag=b -> params.get_list("tag") = ["a", "b"]
    - Type conversion: params.get_int("page", 1)
    """
    _data: Dict[str, List[str]] = field(default_factory=dict)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Get single value (first if multiple)."""
        values = self._data.get(key)
        return values[0] if values else default

    def get_list(self, key: str) -> List[str]:
        return self._data.get(key, [])

    def get_int(self, key: str, default: int = 0) -> int:
        value = self.get(key)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get(key)
        if value is None:
            return default
        return value.lower() in ("true", "1", "yes", "on")

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def keys(self) -> List[str]:
        return list(self._data.keys())

    def to_dict(self) -> Dict[str, Union[str, List[str]]]:
        """Convert to dictionary (single values unwrapped)."""
        return {k: v[0] if len(v) == 1 else v for k, v in self._data.items()}


class Headers:
    """
    Case-insensitive HTTP headers container.

    Example:
        headers["Content-Type"]  # application/json
        headers["content-type"]  # application/json (same)
    """

    def __init__(self, raw_headers: Iterable[tuple]) -> None:
        self._headers: Dict[str, str] = {}
        for key, value in raw_headers:
            if isinstance(key, bytes):
                key = key.decode("latin-1")
            if isinstance(value, bytes):
                value = value.decode("latin-1")
            self._headers[key.lower()] = value

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self._headers.get(key.lower(), default)

    def __getitem__(self, key: str) -> str:
        return self._headers[key.lower()]

    def __contains__(self, key: str) -> bool:
        return key.lower() in self._headers

    def items(self) -> List[tuple]:
        return list(self._headers.items())

    def to_dict(self) -> Dict[str, str]:
        return self._headers.copy()


class Request:
    """
    HTTP Request encapsulation created from an ASGI scope.

    ``method`` is the effective method after a ``_method`` override;
    ``original_method`` is what the client sent.
    """

    def __init__(
        self,
        scope: Dict[str, Any],
        receive: Optional[Callable[[], Coroutine[Any, Any, Dict[str, Any]]]] = None,
    ) -> None:
        self._scope = scope
        self._receive = receive
        self._body: Optional[bytes] = None
        self._json: Any = None
        self._form: Dict[str, Any] = {}
        self._files: Dict[str, UploadedFile] = {}

        self.original_method: str = scope.get("method", "GET").upper()
        self.method: str = self.original_method
        self.path: str = scope.get("path", "/") or "/"
        self.query_string: str = scope.get("query_string", b"").decode("utf-8")
        self.query = QueryParams(_data=parse_qs(self.query_string, keep_blank_values=True))
        self.headers = Headers(scope.get("headers", []))

        self.cookies: Dict[str, str] = {}
        cookie_header = self.headers.get("cookie", "")
        if cookie_header:
            cookie = SimpleCookie()
            cookie.load(cookie_header)
            self.cookies = {key: morsel.value for key, morsel in cookie.items()}

        # Route parameters (set by the router)
        self.params: Dict[str, Any] = {}
        # Middleware data passing
        self.state: Dict[str, Any] = {}

    # ------------------------------------------------------------------
    # Body
    # ------------------------------------------------------------------

    async def body(self) -> bytes:
        """Read the request body. Later calls return the cached body."""
        if self._body is not None:
            return self._body
        if self._receive is None:
            self._body = b""
            return self._body

        chunks: List[bytes] = []
        while True:
            message = await self._receive()
            if message["type"] == "http.request":
                chunk = message.get("body", b"")
                if chunk:
                    chunks.append(chunk)
                if not message.get("more_body", False):
                    break
            elif message["type"] == "http.disconnect":
                break

        self._body = b"".join(chunks)
        return self._body

    async def load(self) -> "Request":
        """
        Read and parse the body, then apply the ``_method`` override.

        Malformed JSON leaves ``json()`` as ``None`` instead of failing the
        request.
        """
        body = await self.body()
        content_type = self.content_type or ""

        if body and self.is_json():
            try:
                self._json = orjson.loads(body)
            except orjson.JSONDecodeError:
                self._json = None
        elif "application/x-www-form-urlencoded" in content_type:
            parsed = parse_qs(body.decode("utf-8"), keep_blank_values=True)
            self._form = {k: v[0] if len(v) == 1 else v for k, v in parsed.items()}
        elif "multipart/form-data" in content_type:
            self._form, self._files = self._parse_multipart(body, content_type)

        if self.original_method == "POST":
            override = str(self._form.get("_method") or self.headers.get("x-http-method-override") or "").upper()
            if override in SPOOFABLE_METHODS:
                self.method = override
        return self

    def json(self) -> Any:
        return self._json

    def form(self) -> Dict[str, Any]:
        return dict(self._form)

    @staticmethod
    def _parse_multipart(body: bytes, content_type: str) -> tuple:
        boundary_match = re.search(r'boundary="?([^;\s"]+)"?', content_type)
        if not boundary_match:
            return {}, {}

        boundary = boundary_match.group(1).encode()
        form_data: Dict[str, Any] = {}
        files: Dict[str, UploadedFile] = {}

        for part in body.split(b"--" + boundary)[1:-1]:
            if not part.strip() or part.strip() == b"--":
                continue
            try:
                headers_end = part.index(b"\r\n\r\n")
            except ValueError:
                continue
            headers_raw = part[:headers_end].decode("utf-8")
            content = part[headers_end + 4:]
            if content.endswith(b"\r\n"):
                content = content[:-2]

            name_match = re.search(r'name="([^"]+)"', headers_raw)
            filename_match = re.search(r'filename="([^"]*)"', headers_raw)
            type_match = re.search(r"Content-Type:\s*([^\r\n]+)", headers_raw, re.I)
            if not name_match:
                continue

            if filename_match:
                files[name_match.group(1)] = UploadedFile(
                    filename=filename_match.group(1),
                    content_type=type_match.group(1) if type_match else "application/octet-stream",
                    size=len(content),
                    content=content,
                )
            else:
                form_data[name_match.group(1)] = content.decode("utf-8")

        return form_data, files

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def all(self) -> Dict[str, Any]:
        """Query string merged with the body input (body wins)."""
        data: Dict[str, Any] = self.query.to_dict()
        data.update(self._form)
        if isinstance(self._json, dict):
            data.update(self._json)
        return data

    def input(self, key: Optional[str] = None, default: Any = None) -> Any:
        """Get one input value, or all input when ``key`` is omitted."""
        data = self.all()
        if key is None:
            return data
        return data.get(key, default)

    def only(self, *keys: str) -> Dict[str, Any]:
        data = self.all()
        return {key: data.get(key) for key in keys}

    def except_(self, *keys: str) -> Dict[str, Any]:
        return {key: value for key, value in self.all().items() if key not in keys}

    def has(self, *keys: str) -> bool:
        data = self.all()
        return all(key in data for key in keys)

    def filled(self, key: str) -> bool:
        value = self.input(key)
        if value is None:
            return False
        if isinstance(value, str):
            return value.strip() != ""
        if isinstance(value, (list, dict)):
            return len(value) > 0
        return True

    def query_param(self, key: str, default: Any = None) -> Any:
        return self.query.get(key, default)

    def header(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.headers.get(key, default)

    def cookie(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.cookies.get(key, default)

    def file(self, key: str) -> Optional[UploadedFile]:
        return self._files.get(key)

    def bearer_token(self) -> Optional[str]:
        authorization = self.headers.get("authorization", "")
        if authorization.lower().startswith("bearer "):
            return authorization[7:].strip() or None
        return None

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    @property
    def content_type(self) -> Optional[str]:
        return self.headers.get("content-type")

    def is_json(self) -> bool:
        content_type = self.content_type or ""
        return "/json" in content_type or "+json" in content_type

    def ajax(self) -> bool:
        return self.headers.get("x-requested-with", "").lower() == "xmlhttprequest"

    def wants_json(self) -> bool:
        """Check if client expects a JSON response."""
        accept = self.headers.get("accept", "")
        return "/json" in accept or "+json" in accept or self.ajax()

    def __repr__(self) -> str:
        return f"<Request {self.method} {self.path}>"
