"""
Maniac Exceptions
=================

Framework-wide exception hierarchy and HTTP exceptions.

Raising an ``HttpException`` anywhere inside a route action makes the router
answer with that status code and the matching error page.

Example:
    from maniac.core.exceptions import HttpException, NotFoundException

    async def show(id: int):
        post = await Post.find(id)
        if post is None:
            raise NotFoundException()
        if not post.published:
            raise HttpException(403, "This post is not published yet.")
        return post.to_dict()
"""

from __future__ import annotations

from http import HTTPStatus
from typing import Any, Dict, List, Optional

DEFAULT_MESSAGES: Dict[int, str] = {
    400: "Bad Request",
    404: "Page Not Found",
    419: "Page Expired",
    500: "Internal Server Error",
    503: "Service Unavailable",
}


def status_message(status_code: int) -> str:
    """Human readable title for a status code."""
    if status_code in DEFAULT_MESSAGES:
        return DEFAULT_MESSAGES[status_code]
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Error"


class ManiacError(Exception):
    """Base class of every framework error."""
    pass


class HttpException(ManiacError):
    """
    An error that maps directly onto an HTTP response.

    Attributes:
        status_code: HTTP status to answer with
        message: Message shown on the error page
        headers: Extra response headers
    """

    def __init__(
        self,
        status_code: int = 500,
        message: str = "",
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.status_code = status_code
        self.message = message or status_message(status_code)
        self.headers = headers or {}
        super().__init__(self.message)

    @property
    def title(self) -> str:
        return status_message(self.status_code)


class NotFoundException(HttpException):
    """Resource or route not found."""

    def __init__(self, message: str = "", headers: Optional[Dict[str, str]] = None) -> None:
        super().__init__(404, message, headers)


class ValidationException(HttpException):
    """Input failed validation. ``errors`` maps field names to messages."""

    def __init__(
        self,
        errors: Optional[Dict[str, List[str]]] = None,
        message: str = "The given data was invalid.",
    ) -> None:
        super().__init__(422, message)
        self.errors = errors or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "errors": self.errors}


class RouteActionError(ManiacError):
    """A route action could not be invoked (bad action, unresolved parameter)."""
    pass


class ContainerError(ManiacError):
    """A service could not be resolved from the container."""
    pass
