"""
Maniac Response Objects
=======================

Responses returned by route actions and middleware:
- HTML, JSON and plain text content
- Cookie management
- Header manipulation
- Redirects

All response classes implement the ASGI send interface.

Example:
    return HTMLResponse(views.render("home"))
    return JSONResponse({"message": "Page Not Found"}, status_code=404)
    return RedirectResponse(router.url_for("posts.show", post=7))
"""

from __future__ import annotations

from dataclasses import dataclass
from http import HTTPStatus
from typing import Any, Callable, Coroutine, Dict, List, Optional

import orjson

HTTP_STATUS_PHRASES = {s.value: s.phrase for s in HTTPStatus}


def json_dumps(obj: Any) -> bytes:
    """Serialize to JSON, falling back to ``str()`` for unknown types."""
    return orjson.dumps(obj, default=str, option=orjson.OPT_NON_STR_KEYS)


@dataclass
class Cookie:
    """HTTP Cookie with all standard attributes."""
    name: str
    value: str
    max_age: Optional[int] = None
    expires: Optional[str] = None
    path: str = "/"
    domain: Optional[str] = None
    secure: bool = False
    httponly: bool = True
    samesite: str = "Lax"

    def to_header(self) -> str:
        """Generate Set-Cookie header value."""
        parts = [f"{self.name}={self.value}"]
        if self.max_age is not None:
            parts.append(f"Max-Age={self.max_age}")
        if self.expires:
            parts.append(f"Expires={self.expires}")
        if self.path:
            parts.append(f"Path={self.path}")
        if self.domain:
            parts.append(f"Domain={self.domain}")
        if self.secure:
            parts.append("Secure")
        if self.httponly:
            parts.append("HttpOnly")
        if self.samesite:
            parts.append(f"SameSite={self.samesite}")
        return "; ".join(parts)


class Response:
    """
    Base HTTP Response class.

    Example:
        response = Response("OK")
        response.headers["X-Powered-By"] = "Maniac"
        response.set_cookie("theme", "dark")
    """

    media_type: str = "text/plain"
    charset: str = "utf-8"

    def __init__(
        self,
        content: Any = None,
        status_code: int = 200,
        headers: Optional[Dict[str, str]] = None,
        media_type: Optional[str] = None,
    ) -> None:
        self.status_code = status_code
        self.headers: Dict[str, str] = dict(headers or {})
        self.cookies: List[Cookie] = []

        if media_type:
            self.media_type = media_type

        self.body = self._render_content(content)

        if "content-type" not in {k.lower() for k in self.headers}:
            content_type = self.media_type
            if self.charset and content_type.startswith("text/"):
                content_type += f"; charset={self.charset}"
            self.headers["Content-Type"] = content_type

    def _render_content(self, content: Any) -> bytes:
        if content is None:
            return b""
        if isinstance(content, bytes):
            return content
        return str(content).encode(self.charset)

    @property
    def text(self) -> str:
        return self.body.decode(self.charset)

    def set_cookie(
        self,
        name: str,
        value: str,
        max_age: Optional[int] = None,
        expires: Optional[str] = None,
        path: str = "/",
        domain: Optional[str] = None,
        secure: bool = False,
        httponly: bool = True,
        samesite: str = "Lax",
    ) -> "Response":
        """Set a cookie on the response."""
        self.cookies.append(Cookie(
            name=name,
            value=value,
            max_age=max_age,
            expires=expires,
            path=path,
            domain=domain,
            secure=secure,
            httponly=httponly,
            samesite=samesite,
        ))
        return self

    def delete_cookie(self, name: str, path: str = "/", domain: Optional[str] = None) -> "Response":
        """Delete a cookie by setting max_age to 0."""
        return self.set_cookie(name=name, value="", max_age=0, path=path, domain=domain)

    def _get_headers(self) -> List[tuple]:
        headers = [(k.lower().encode(), str(v).encode()) for k, v in self.headers.items()]
        headers.append((b"content-length", str(len(self.body)).encode()))
        for cookie in self.cookies:
            headers.append((b"set-cookie", cookie.to_header().encode()))
        return headers

    async def send(self, send: Callable[[Dict[str, Any]], Coroutine[Any, Any, None]]) -> None:
        """Send response via ASGI interface."""
        await send({
            "type": "http.response.start",
            "status": self.status_code,
            "headers": self._get_headers(),
        })
        await send({
            "type": "http.response.body",
            "body": self.body,
        })

    @property
    def status_phrase(self) -> str:
        return HTTP_STATUS_PHRASES.get(self.status_code, "Unknown")

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.status_code} {self.status_phrase}>"


class HTMLResponse(Response):
    media_type = "text/html"


class JSONResponse(Response):
    """
    JSON content response, serialized with orjson.

    Example:
        return JSONResponse({"data": posts, "total": 2})
    """

    media_type = "application/json"

    def __init__(
        self,
        content: Any = None,
        status_code: int = 200,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.data = content
        super().__init__(content, status_code, headers)

    def _render_content(self, content: Any) -> bytes:
        return json_dumps(content)


class PlainTextResponse(Response):
    media_type = "text/plain"


class RedirectResponse(Response):
    """
    HTTP redirect response.

    Example:
        return RedirectResponse("/dashboard", status_code=301)
    """

    def __init__(
        self,
        url: str,
        status_code: int = 302,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        headers = dict(headers or {})
        headers["Location"] = url
        super().__init__(content=None, status_code=status_code, headers=headers)
