"""
=============================================================================
BASE MIDDLEWARE INTERFACE
=============================================================================

Defines the middleware protocol and the pipeline that chains middleware
around the router (Chain of Responsibility).

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   Request ────────────────────────────────────────────►             │
    │                                                                      │
    │   ┌──────────┐    ┌──────────┐    ┌───────────────┐                 │
    │   │ Logging  │───►│  (more)  │───►│ router.handle │                 │
    │   │    MW    │    │    MW    │    │               │                 │
    │   └────┬─────┘    └────┬─────┘    └───────┬───────┘                 │
    │   [before]        [before]             [route]                      │
    │   start timer                                                        │
    │   [after]         [after]                                           │
    │   access log                                                         │
    │                                                                      │
    │   ◄──────────────────────────────────────────── Response            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
INTERVIEW INSIGHT
=============================================================================

Q: "How does middleware differ from decorators?"
A: "Decorators wrap at definition time. Middleware is assembled at
   runtime: the server decides which layers to stack when it starts,
   and the router never knows they exist."

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, List
import logging

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger(__name__)


NextHandler = Callable[[HTTPRequest], HTTPResponse]


class Middleware(ABC):
    """
    Abstract base class for middleware.

        class MyMiddleware(Middleware):
            def __call__(self, request, next):
                response = next(request)        # <-- always call next
                response.set_header("X-Seen", "1")
                return response
    """

    @abstractmethod
    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        """
        Process the request.

        Args:
            request: The incoming HTTP request
            next: The next handler in the chain

        Returns:
            HTTP response (from next() or short-circuited)
        """

    @property
    def name(self) -> str:
        return self.__class__.__name__


class MiddlewarePipeline:
    """
    Chains middleware around a final handler.

    First added = outermost:

        pipeline = MiddlewarePipeline()
        pipeline.add(LoggingMiddleware())
        handler = pipeline.wrap(router.handle)
        response = handler(request)

    With no middleware, wrap() returns the handler unchanged.
    """

    def __init__(self):
        self._middleware: List[Middleware] = []

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        """Append middleware. Returns self for chaining."""
        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {middleware.name}")
        return self

    def wrap(self, handler: NextHandler) -> NextHandler:
        """
        Build the chain.

        Given [MW1, MW2] and handler:
            current = handler
            current = MW2 → handler
            current = MW1 → MW2 → handler
        """
        current = handler
        for middleware in reversed(self._middleware):
            current = self._create_wrapped_handler(middleware, current)
        return current

    def _create_wrapped_handler(
        self,
        middleware: Middleware,
        next_handler: NextHandler
    ) -> NextHandler:
        def wrapped(request: HTTPRequest) -> HTTPResponse:
            return middleware(request, next_handler)
        return wrapped

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self):
        return iter(self._middleware)
