"""
Maniac Middleware
=================

Middleware wraps route actions. Each middleware can:
- Inspect or change the request before the action runs
- Inspect or change the response afterwards
- Answer on its own and skip the rest of the chain

Middleware follows the "onion" model:

    Request -> Middleware1.before -> Middleware2.before -> Action
                                                             |
    Response <- Middleware1.after <- Middleware2.after <- Response

Example:
    class Authenticate(Middleware):
        async def before(self, request: Request) -> Optional[Response]:
            if request.bearer_token() is None:
                return JSONResponse({"message": "Unauthenticated."}, 401)
            return None
"""

from __future__ import annotations

from abc import ABC
from typing import TYPE_CHECKING, Any, Callable, Coroutine, Optional

if TYPE_CHECKING:
    from maniac.core.request import Request
    from maniac.core.response import Response

CallNext = Callable[["Request"], Coroutine[Any, Any, "Response"]]


class Middleware(ABC):
    """
    Base middleware class.

    Lifecycle:
        1. ``before()`` is called before the route action
        2. If ``before()`` returns a Response, processing stops
        3. The rest of the chain runs
        4. ``after()`` is called with request and response
    """

    async def before(self, request: "Request") -> Optional["Response"]:
        """
        Called before request handling.

        Returns:
            None to continue processing, or Response to short-circuit
        """
        return None

    async def after(self, request: "Request", response: "Response") -> "Response":
        return response

    async def __call__(self, request: "Request", call_next: CallNext) -> "Response":
        """Override for full control over the middleware flow."""
        early_response = await self.before(request)
        if early_response is not None:
            return early_response

        response = await call_next(request)
        return await self.after(request, response)


class FunctionMiddleware(Middleware):
    """
    Middleware wrapper for plain functions.

    Example:
        async def timing(request, call_next):
            start = time.perf_counter()
            response = await call_next(request)
            response.headers["X-Time"] = f"{time.perf_counter() - start:.3f}"
            return response

        router.alias_middleware("timing", FunctionMiddleware(timing))
    """

    def __init__(
        self,
        func: Callable[["Request", CallNext], Coroutine[Any, Any, "Response"]],
    ) -> None:
        self._func = func

    async def __call__(self, request: "Request", call_next: CallNext) -> "Response":
        return await self._func(request, call_next)
