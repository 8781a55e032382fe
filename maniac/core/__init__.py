"""
Maniac Core Module
==================

Contains the fundamental building blocks of the Maniac framework:
- Router: URL routing with parameters, groups and named routes
- Request/Response: HTTP message abstractions
- Middleware/Pipeline: Request processing chain
- Config: Configuration management
- Exceptions: Framework and HTTP errors

The Application lives in ``maniac.core.application`` and is also
available as ``maniac.Application``.
"""

from maniac.core.config import Config
from maniac.core.exceptions import (
    ContainerError,
    HttpException,
    ManiacError,
    NotFoundException,
    RouteActionError,
    ValidationException,
)
from maniac.core.middleware import FunctionMiddleware, Middleware
from maniac.core.pipeline import Pipeline
from maniac.core.request import Request, current_request
from maniac.core.response import (
    HTMLResponse,
    JSONResponse,
    PlainTextResponse,
    RedirectResponse,
    Response,
)
from maniac.core.router import Route, Router

__all__ = [
    "Config",
    "ContainerError",
    "FunctionMiddleware",
    "HTMLResponse",
    "HttpException",
    "JSONResponse",
    "ManiacError",
    "Middleware",
    "NotFoundException",
    "Pipeline",
    "PlainTextResponse",
    "RedirectResponse",
    "Request",
    "Response",
    "Route",
    "RouteActionError",
    "Router",
    "ValidationException",
    "current_request",
]
