"""
=============================================================================
URL ROUTER
=============================================================================

Maps (method, request-target) to a handler and shapes the JSON response.

Supports:
- Static paths:        /api/users
- Dynamic parameters:  /api/users/:id      (one segment)
- Wildcard tails:      /api/users/*id      (rest of the target, may be empty)
- Method filtering:    GET, POST, ... (case-sensitive, methods are tokens)

=============================================================================
ROUTING FLOW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   GET /api/users/2                                                   │
    │        │                                                             │
    │        ▼                                                             │
    │   ┌─────────────────────────────────────────────────────────────┐   │
    │   │  ROUTER (first registered, first matched)                    │   │
    │   │                                                              │   │
    │   │   GET   /api/users      → list_users     200                 │   │
    │   │   GET   /api/users/*id  → get_user       200  ◄── MATCH      │   │
    │   │   POST  /api/users      → create_user    201                 │   │
    │   └─────────────────────────────────────────────────────────────┘   │
    │        │                                                             │
    │        ▼                                                             │
    │   request.path_params = {"id": "2"}                                  │
    │   body = get_user(request)                                           │
    │        │                                                             │
    │        ▼                                                             │
    │   200 {"id":2,"name":"Bob"}                                          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Handlers return a JSON-serializable BODY, not a response. The route owns
the status code; the router owns the headers. That keeps every response
uniform:

    Server: <server_name>
    Content-Type: application/json
    Connection: keep-alive | close     (echoes the request)
    HTTP version                       (echoes the request)

=============================================================================
ERROR SHAPING
=============================================================================

    No route matches           → 404 {"error":"Endpoint not found"}
    Handler raises Exception   → 400 {"error":"<str(exception)>"}

There is no 405: a known target with the wrong method is just a miss.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
import logging
import re

from .request import HTTPRequest
from .response import HTTPResponse, ResponseBuilder, DEFAULT_SERVER_NAME
from .status_codes import HTTPStatus


logger = logging.getLogger(__name__)


# Handler: takes the request, returns a JSON-serializable body
Handler = Callable[[HTTPRequest], Any]


@dataclass
class Route:
    """
    A registered route.

        Route(
            pattern="/api/users/*id",
            method="GET",
            handler=get_user,
            status=HTTPStatus.OK,
            _regex=<compiled>,
            _param_names=["id"],
        )
    """

    pattern: str
    method: Optional[str]            # None = any method
    handler: Handler
    status: HTTPStatus = HTTPStatus.OK

    _regex: Optional[re.Pattern] = field(default=None, repr=False)
    _param_names: List[str] = field(default_factory=list, repr=False)


@dataclass
class RouteMatch:
    """
    Result of a successful route match.

    Example:
        Pattern: /api/users/*id
        Target:  /api/users/123
        Result:  RouteMatch(route=<Route>, params={"id": "123"})
    """
    route: Route
    params: Dict[str, str]


class Router:
    """
    Ordered route table with JSON response shaping.

    ==========================================================================
    BASIC USAGE
    ==========================================================================

        router = Router(server_name="restapi/1.0")

        @router.get("/api/users")
        def list_users(request):
            return {"users": [...]}

        @router.post("/api/users", status=HTTPStatus.CREATED)
        def create_user(request):
            return {"message": "User created", "user": {...}}

        response = router.handle(request)

    ==========================================================================
    """

    NOT_FOUND_MESSAGE = "Endpoint not found"

    def __init__(self, server_name: str = DEFAULT_SERVER_NAME):
        self.server_name = server_name
        self._routes: List[Route] = []

    # =========================================================================
    # ROUTE REGISTRATION
    # =========================================================================

    def add_route(
        self,
        pattern: str,
        handler: Handler,
        method: Optional[str] = None,
        status: HTTPStatus = HTTPStatus.OK,
    ) -> Route:
        """
        Register a route.

        Args:
            pattern: Target pattern (e.g., /api/users/*id)
            handler: Function taking the request, returning a JSON body
            method: HTTP method, matched case-sensitively (None for any)
            status: Status code sent when the handler succeeds

        Returns:
            The registered Route object
        """
        regex, param_names = self._compile_pattern(pattern)

        route = Route(
            pattern=pattern,
            method=method,
            handler=handler,
            status=HTTPStatus(status),
            _regex=regex,
            _param_names=param_names,
        )
        self._routes.append(route)

        logger.debug(f"Registered route: {method or '*'} {pattern} -> {int(status)}")
        return route

    def _compile_pattern(self, pattern: str) -> tuple[re.Pattern, List[str]]:
        """
        Compile a target pattern into a regex.

        =====================================================================
        PATTERN COMPILATION
        =====================================================================

        Input:  "/api/users/*id"

        Step 1: Split by "/"
                ["", "api", "users", "*id"]

        Step 2: Process each segment
                "api"      → /api               (static)
                "users"    → /users             (static)
                "*id"      → /(?P<id>.*)        (wildcard, may be empty)

        Step 3: Anchor both ends
                ^/api/users/(?P<id>.*)\\Z

        =====================================================================

        A trailing "/" in the pattern is significant ("/api/users/" and
        "/api/users" are different targets), and so is every other byte:
        the router sees the target exactly as the client sent it.
        """
        param_names: List[str] = []
        regex_parts = ["^"]

        segments = pattern.split("/")
        for i, segment in enumerate(segments):
            if i > 0:
                regex_parts.append("/")

            if segment.startswith(":"):
                # :id → (?P<id>[^/]+)
                param_name = segment[1:]
                param_names.append(param_name)
                regex_parts.append(f"(?P<{param_name}>[^/]+)")

            elif segment.startswith("*"):
                # *id → (?P<id>.*), consumes the rest including "/" and "?"
                param_name = segment[1:] or "wildcard"
                param_names.append(param_name)
                regex_parts.append(f"(?P<{param_name}>.*)")
                break

            else:
                regex_parts.append(re.escape(segment))

        regex_parts.append(r"\Z")
        return re.compile("".join(regex_parts), re.DOTALL), param_names

    # =========================================================================
    # ROUTE MATCHING
    # =========================================================================

    def match(self, method: str, target: str) -> Optional[RouteMatch]:
        """
        Find the first route matching method and raw target.

        No normalization: no trailing-slash stripping, no percent-decoding,
        no query-string removal.
        """
        for route in self._routes:
            if route.method is not None and route.method != method:
                continue

            match = route._regex.match(target)
            if match:
                return RouteMatch(route=route, params=match.groupdict())

        return None

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """
        Route a request and build the JSON response.

        1. Find matching route (miss → 404)
        2. Inject path parameters into request.path_params
        3. Call handler for the body (exception → 400)
        4. Apply the common headers and echo the request's version
        """
        builder = (
            ResponseBuilder(self.server_name)
            .version(request.version)
            .connection(request.is_keep_alive)
        )

        match = self.match(request.method, request.target)
        if match is None:
            return (
                builder.status(HTTPStatus.NOT_FOUND)
                .json({"error": self.NOT_FOUND_MESSAGE})
                .build()
            )

        request.path_params = match.params

        try:
            body = match.route.handler(request)
            builder.status(match.route.status).json(body)
        except Exception as e:
            logger.debug(f"Handler for {request.method} {request.path} failed: {e}")
            builder.status(HTTPStatus.BAD_REQUEST).json({"error": str(e)})

        return builder.build()

    # =========================================================================
    # DECORATOR-STYLE ROUTE REGISTRATION
    # =========================================================================
    #
    #     @router.get("/api/users")
    #     def list_users(request):
    #         return {"users": []}
    #
    # Is equivalent to:
    #
    #     router.add_route("/api/users", list_users, method="GET")
    #
    # =========================================================================

    def route(
        self,
        pattern: str,
        method: Optional[str] = None,
        status: HTTPStatus = HTTPStatus.OK,
    ) -> Callable[[Handler], Handler]:
        """Decorator to register a route for any (or a given) method."""
        def decorator(handler: Handler) -> Handler:
            self.add_route(pattern, handler, method=method, status=status)
            return handler
        return decorator

    def get(self, pattern: str, status: HTTPStatus = HTTPStatus.OK) -> Callable[[Handler], Handler]:
        """Decorator for GET routes."""
        return self.route(pattern, method="GET", status=status)

    def post(self, pattern: str, status: HTTPStatus = HTTPStatus.CREATED) -> Callable[[Handler], Handler]:
        """Decorator for POST routes. Defaults to 201 Created."""
        return self.route(pattern, method="POST", status=status)

    @property
    def routes(self) -> List[Route]:
        """Registered routes, in match order."""
        return list(self._routes)
