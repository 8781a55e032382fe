"""
Maniac Request Pipeline
=======================

Passes a request through a list of middleware and then the route action.
Each middleware receives the request and a continuation; it may call the
continuation, or answer on its own and stop the chain.

The chain is composed right-to-left:

    middleware1(middleware2(middleware3(handler)))

Middleware entries may be instances, classes (constructed through the
``resolver``, which defaults to calling the class with no arguments) or
plain ``async def mw(request, call_next)`` functions.

Example:
    pipeline = Pipeline([StartTimer, VerifyCsrfToken(csrf), add_header])
    response = await pipeline.run(request, handler)
"""

from __future__ import annotations

import inspect
from typing import TYPE_CHECKING, Any, Callable, Coroutine, List, Optional, Sequence

if TYPE_CHECKING:
    from maniac.core.request import Request
    from maniac.core.response import Response

Handler = Callable[["Request"], Coroutine[Any, Any, "Response"]]


class Pipeline:
    """
    Request processing pipeline.

    Example:
        response = await Pipeline(middleware).run(request, handler)
    """

    __slots__ = ("_middleware", "_resolver")

    def __init__(
        self,
        middleware: Sequence[Any],
        resolver: Optional[Callable[[type], Any]] = None,
    ) -> None:
        """
        Args:
            middleware: Middleware in execution order
            resolver: Builds middleware instances from classes
        """
        self._middleware = list(middleware)
        self._resolver = resolver

    def _resolve(self, middleware: Any) -> Any:
        if inspect.isclass(middleware):
            return self._resolver(middleware) if self._resolver else middleware()
        return middleware

    def _build_chain(self, handler: Handler) -> Handler:
        chain = handler
        for middleware in reversed(self._middleware):
            chain = self._wrap_middleware(self._resolve(middleware), chain)
        return chain

    @staticmethod
    def _wrap_middleware(middleware: Any, next_handler: Handler) -> Handler:
        async def wrapped(request: "Request") -> "Response":
            return await middleware(request, next_handler)
        return wrapped

    async def run(self, request: "Request", handler: Handler) -> "Response":
        """
        Run the request through the pipeline.

        Args:
            request: Incoming request
            handler: Final route handler

        Returns:
            Response from handler/middleware
        """
        return await self._build_chain(handler)(request)

    @property
    def middleware(self) -> List[Any]:
        return list(self._middleware)
