"""
Maniac Router
=============

URL routing with:
- Static routes found by dictionary lookup
- ``{name}`` placeholders matched in registration order
- Literal routes always taking precedence over parameterized ones
- Route groups with shared prefix and middleware
- Named routes and URL generation
- Middleware aliases
- Parameter injection by name, ``Request`` injection by type

Example:
    router = Router(views)

    router.get("/", home)

    @router.get("/users/{id}", name="users.show")
    async def show(request: Request, id: int):
        user = await User.find_or_fail(id)
        return user.to_dict()

    with router.group(prefix="/admin", middleware=["auth"]):
        router.get("/dashboard", (DashboardController, "index"))
"""

from __future__ import annotations

import inspect
import logging
import re
import typing
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from maniac.core.exceptions import (
    HttpException,
    NotFoundException,
    RouteActionError,
    ValidationException,
    status_message,
)
from maniac.core.pipeline import Pipeline
from maniac.core.request import Request
from maniac.core.response import HTMLResponse, JSONResponse, Response, json_dumps
from maniac.view.engine import FALLBACK_PAGE
from maniac.view.helpers import escape

logger = logging.getLogger(__name__)

METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS")

_PLACEHOLDER = re.compile(r"\{([a-zA-Z0-9_]+)\}")

Action = Union[Callable[..., Any], Tuple[Any, str]]


def _normalize(uri: str) -> str:
    return "/" + uri.strip("/")


class Route:
    """
    A registered route.

    Registration methods return the route so it can be configured further:

        router.get("/users/{id}", show).name("users.show").middleware("auth")
    """

    def __init__(self, method: str, uri: str, action: Action) -> None:
        self.method = method
        self.uri = uri
        self.action = action
        self.route_name: Optional[str] = None
        self.middlewares: List[Any] = []
        self.param_names: List[str] = _PLACEHOLDER.findall(uri)
        self.pattern: Optional[re.Pattern] = None
        if self.param_names:
            parts = _PLACEHOLDER.split(uri)
            regex = "".join(
                re.escape(part) if index % 2 == 0 else f"(?P<{part}>[a-zA-Z0-9_]+)"
                for index, part in enumerate(parts)
            )
            self.pattern = re.compile(f"^{regex}$")

    @property
    def is_static(self) -> bool:
        return self.pattern is None

    def name(self, name: str) -> "Route":
        self.route_name = name
        return self

    def middleware(self, *middleware: Any) -> "Route":
        for entry in middleware:
            if isinstance(entry, (list, tuple)):
                self.middlewares.extend(entry)
            else:
                self.middlewares.append(entry)
        return self

    def match(self, path: str) -> Optional[Dict[str, str]]:
        if self.pattern is None:
            return {} if path == self.uri else None
        found = self.pattern.match(path)
        if found is None:
            return None
        return found.groupdict()

    def url(self, **params: Any) -> str:
        """
        Generate the URL of this route.

        Example:
            route.url(id=42) -> "/users/42"
        """
        missing = [name for name in self.param_names if name not in params]
        if missing:
            raise RouteActionError(f"Missing parameter(s) {', '.join(missing)} for route '{self.uri}'")
        return _PLACEHOLDER.sub(lambda m: str(params[m.group(1)]), self.uri)

    @property
    def action_name(self) -> str:
        action = self.action
        if isinstance(action, (tuple, list)):
            controller, method = action
            controller_name = controller.__name__ if inspect.isclass(controller) else type(controller).__name__
            return f"{controller_name}.{method}"
        return getattr(action, "__qualname__", repr(action))

    def __repr__(self) -> str:
        return f"<Route {self.method} {self.uri}>"


class Router:
    """
    URL router and dispatcher.

    Args:
        views: Engine used to render error pages (optional)
        resolver: Builds controllers and middleware from classes; the
            application passes its container's ``make``
    """

    def __init__(self, views: Any = None, resolver: Optional[Callable[[type], Any]] = None) -> None:
        self.views = views
        self.resolver = resolver
        self._static_routes: Dict[str, Dict[str, Route]] = {method: {} for method in METHODS}
        self._dynamic_routes: Dict[str, List[Route]] = {method: [] for method in METHODS}
        self._routes: List[Route] = []
        self._group_stack: List[Dict[str, Any]] = []
        self._middleware_aliases: Dict[str, Any] = {}

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def add_route(
        self,
        methods: Union[str, Sequence[str]],
        uri: str,
        action: Optional[Action] = None,
        *,
        name: Optional[str] = None,
        middleware: Optional[Sequence[Any]] = None,
    ) -> Any:
        """
        Register a route for one or more methods.

        Called without ``action`` it returns a decorator.
        """
        if isinstance(methods, str):
            methods = [methods]

        if action is None:
            def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
                self.add_route(methods, uri, func, name=name, middleware=middleware)
                return func
            return decorator

        prefix = "/".join(group["prefix"].strip("/") for group in self._group_stack if group["prefix"].strip("/"))
        full_uri = _normalize(f"{prefix}/{uri.strip('/')}")
        group_middleware = [mw for group in self._group_stack for mw in group["middleware"]]
        name_prefix = "".join(group["name"] for group in self._group_stack)

        route: Optional[Route] = None
        for method in methods:
            method = method.upper()
            if method not in METHODS:
                raise RouteActionError(f"Unsupported HTTP method '{method}'")
            route = Route(method, full_uri, action)
            route.middleware(group_middleware, list(middleware or []))
            if name:
                route.name(name_prefix + name)
            if route.is_static:
                self._static_routes[method][full_uri] = route
            else:
                self._dynamic_routes[method].append(route)
            self._routes.append(route)
        return route

    def get(self, uri: str, action: Optional[Action] = None, **kwargs: Any) -> Any:
        return self.add_route("GET", uri, action, **kwargs)

    def post(self, uri: str, action: Optional[Action] = None, **kwargs: Any) -> Any:
        return self.add_route("POST", uri, action, **kwargs)

    def put(self, uri: str, action: Optional[Action] = None, **kwargs: Any) -> Any:
        return self.add_route("PUT", uri, action, **kwargs)

    def patch(self, uri: str, action: Optional[Action] = None, **kwargs: Any) -> Any:
        return self.add_route("PATCH", uri, action, **kwargs)

    def delete(self, uri: str, action: Optional[Action] = None, **kwargs: Any) -> Any:
        return self.add_route("DELETE", uri, action, **kwargs)

    def match(self, methods: Sequence[str], uri: str, action: Optional[Action] = None, **kwargs: Any) -> Any:
        return self.add_route(methods, uri, action, **kwargs)

    def any(self, uri: str, action: Optional[Action] = None, **kwargs: Any) -> Any:
        return self.add_route(METHODS, uri, action, **kwargs)

    @contextmanager
    def group(
        self,
        prefix: str = "",
        middleware: Optional[Sequence[Any]] = None,
        name: str = "",
    ) -> Iterator["Router"]:
        """
        Share a prefix, middleware and name prefix between routes.

        Example:
            with router.group(prefix="/api", middleware=["auth"], name="api."):
                router.get("/user", current_user, name="user")   # api.user
        """
        self._group_stack.append({
            "prefix": prefix,
            "middleware": list(middleware or []),
            "name": name,
        })
        try:
            yield self
        finally:
            self._group_stack.pop()

    def alias_middleware(self, alias: str, middleware: Any) -> None:
        """Register a short name usable in route middleware lists."""
        self._middleware_aliases[alias] = middleware

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def find(self, method: str, path: str) -> Optional[Tuple[Route, Dict[str, str]]]:
        """
        Find the route for a request.

        Static routes win over parameterized ones; parameterized routes are
        tried in registration order. HEAD falls back to GET.
        """
        method = method.upper()
        path = _normalize(path)

        for candidate in (method, "GET") if method == "HEAD" else (method,):
            static = self._static_routes.get(candidate, {})
            if path in static:
                return static[path], {}
            for route in self._dynamic_routes.get(candidate, []):
                params = route.match(path)
                if params is not None:
                    return route, params
        return None

    def routes(self) -> List[Route]:
        return list(self._routes)

    def named(self, name: str) -> Route:
        for route in self._routes:
            if route.route_name == name:
                return route
        raise RouteActionError(f"Route [{name}] not defined.")

    def url_for(self, name: str, **params: Any) -> str:
        return self.named(name).url(**params)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def dispatch(self, request: Request) -> Response:
        """
        Run the matched route through its middleware and return a response.

        Never raises: HTTP exceptions become their status page, anything
        else is logged and becomes a 500 page.
        """
        try:
            found = self.find(request.method, request.path)
            if found is None:
                raise NotFoundException()

            route, params = found
            request.params = params
            request.state["route"] = route

            middleware = [self._resolve_middleware(entry) for entry in route.middlewares]
            pipeline = Pipeline(middleware, resolver=self.resolver)

            async def handler(req: Request) -> Response:
                return self.to_response(await self.call_action(route, req))

            return await pipeline.run(request, handler)
        except HttpException as exc:
            return self.error_response(request, exc.status_code, exc.message, exc)
        except Exception as exc:
            logger.exception("Route dispatch failed: %s", exc)
            return self.error_response(request, 500, "Internal Server Error", exc)

    def _resolve_middleware(self, entry: Any) -> Any:
        if isinstance(entry, str):
            if entry not in self._middleware_aliases:
                raise RouteActionError(f"Middleware [{entry}] is not registered.")
            return self._middleware_aliases[entry]
        return entry

    def _make(self, cls: type) -> Any:
        return self.resolver(cls) if self.resolver else cls()

    def _callable(self, action: Action) -> Callable[..., Any]:
        if isinstance(action, (tuple, list)):
            if len(action) != 2 or not isinstance(action[1], str):
                raise RouteActionError("Invalid route action definition.")
            controller, method = action
            if inspect.isclass(controller):
                controller = self._make(controller)
            func = getattr(controller, method, None)
            if func is None:
                raise RouteActionError(f"Method {method} not found in controller {type(controller).__name__}.")
            return func
        if callable(action):
            return action
        raise RouteActionError("Invalid route action definition.")

    async def call_action(self, route: Route, request: Request) -> Any:
        func = self._callable(route.action)
        result = func(*self.resolve_arguments(func, request))
        if inspect.isawaitable(result):
            result = await result
        return result

    @staticmethod
    def resolve_arguments(func: Callable[..., Any], request: Request) -> List[Any]:
        """
        Match action parameters to route captures, the request or defaults.

        ``int``/``float`` annotations convert captures; a capture that does
        not convert is a 404.
        """
        try:
            hints = typing.get_type_hints(func)
        except (NameError, TypeError):
            hints = {}

        arguments: List[Any] = []
        for param in inspect.signature(func).parameters.values():
            if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
                continue
            annotation = hints.get(param.name, param.annotation)

            if param.name in request.params:
                value: Any = request.params[param.name]
                if annotation in (int, float):
                    try:
                        value = annotation(value)
                    except ValueError:
                        raise NotFoundException() from None
                arguments.append(value)
            elif (inspect.isclass(annotation) and issubclass(annotation, Request)) or param.name == "request":
                arguments.append(request)
            elif param.default is not param.empty:
                arguments.append(param.default)
            else:
                raise RouteActionError(f"Could not resolve parameter '{param.name}' for route.")
        return arguments

    @staticmethod
    def to_response(result: Any) -> Response:
        """Convert an action's return value to a response."""
        if isinstance(result, Response):
            return result
        if isinstance(result, tuple) and len(result) == 2 and isinstance(result[1], int):
            body, status = result
            response = Router.to_response(body)
            response.status_code = status
            return response
        if result is None:
            return Response(status_code=204)
        if isinstance(result, (dict, list)):
            return JSONResponse(result)
        if hasattr(result, "to_dict"):
            return JSONResponse(result.to_dict())
        return HTMLResponse(str(result))

    # ------------------------------------------------------------------
    # Errors
    # ------------------------------------------------------------------

    def error_response(
        self,
        request: Request,
        status: int,
        message: str = "",
        exception: Optional[BaseException] = None,
    ) -> Response:
        """Build the error response for a status code. Never raises."""
        headers = dict(exception.headers) if isinstance(exception, HttpException) else {}

        if request.wants_json():
            if isinstance(exception, ValidationException):
                payload: Dict[str, Any] = exception.to_dict()
            else:
                payload = {"message": message}
            return Response(json_dumps(payload), status, headers, media_type="application/json")

        if self.views is not None:
            unexpected = None if isinstance(exception, HttpException) else exception
            content = self.views.render_error_page(status, message, unexpected)
        else:
            title = status_message(status)
            content = FALLBACK_PAGE % (status, title, status, title, escape(message))
        return HTMLResponse(content, status, headers)
