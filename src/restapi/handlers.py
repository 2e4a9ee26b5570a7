"""
=============================================================================
USERS HANDLERS
=============================================================================

The three operations of the users resource. Handlers return plain dicts;
the router turns them into JSON responses with the route's status code.

    ┌────────┬──────────────────┬────────┬────────────────────────────────────┐
    │ Method │ Pattern          │ Status │ Body                               │
    ├────────┼──────────────────┼────────┼────────────────────────────────────┤
    │ GET    │ /api/users       │ 200    │ {"users":[...]}                    │
    │ GET    │ /api/users/*id   │ 200    │ user, or {"error":"User not found"}│
    │ POST   │ /api/users       │ 201    │ {"message":"User created",         │
    │        │                  │        │  "user":{...}}                     │
    └────────┴──────────────────┴────────┴────────────────────────────────────┘

A missing user is answered with 200 and an error body, not 404.

=============================================================================
"""

from typing import Any, Union
import json
import logging
import math

from .http.request import HTTPRequest
from .http.router import Router
from .http.status_codes import HTTPStatus
from .store import UserStore


logger = logging.getLogger(__name__)


class InvalidUserError(ValueError):
    """The POST body is not a well-formed JSON object."""


# Deepest array/object nesting a user may have
MAX_JSON_DEPTH = 32


def _reject_constant(name: str):
    # json accepts NaN/Infinity by default; strict JSON does not
    raise InvalidUserError(f"invalid JSON constant: {name}")


def _parse_finite_float(text: str) -> float:
    # 1e400 is valid JSON but overflows to inf
    value = float(text)
    if not math.isfinite(value):
        raise InvalidUserError(f"number out of range: {text}")
    return value


def _nesting_depth(value: Any) -> int:
    """Deepest array/object nesting in a decoded JSON value (scalars are 0)."""
    deepest = 0
    stack = [(value, 1)]
    while stack:
        node, depth = stack.pop()
        if isinstance(node, dict):
            children = node.values()
        elif isinstance(node, list):
            children = node
        else:
            continue
        deepest = max(deepest, depth)
        stack.extend((child, depth + 1) for child in children)
    return deepest


class UserHandlers:
    """
    Request handlers for the users resource.

    The store is injected so each server (and each test) has its own.
    """

    def __init__(self, store: UserStore):
        self.store = store

    def handle_get_users(self) -> dict:
        return {"users": self.store.values()}

    def handle_get_user(self, user_id: str) -> dict:
        user = self.store.get(user_id)
        if user is None:
            return {"error": "User not found"}
        return user

    def handle_create_user(self, body: Union[bytes, str]) -> dict:
        """
        Parse the body as a JSON object and store it as a new user.

        Raises:
            InvalidUserError: Undecodable bytes, malformed JSON, NaN or
                              Infinity, a number that overflows a float,
                              nesting deeper than MAX_JSON_DEPTH, or a
                              JSON value that is not an object.
        """
        try:
            text = body.decode("utf-8") if isinstance(body, bytes) else body
            user = json.loads(
                text,
                parse_constant=_reject_constant,
                parse_float=_parse_finite_float,
            )
        except UnicodeDecodeError as e:
            raise InvalidUserError(f"invalid UTF-8: {e.reason}") from e
        except json.JSONDecodeError as e:
            raise InvalidUserError(str(e)) from e
        except RecursionError as e:
            raise InvalidUserError("nesting too deep") from e

        if not isinstance(user, dict):
            raise InvalidUserError("not an object")
        if _nesting_depth(user) > MAX_JSON_DEPTH:
            raise InvalidUserError(f"nesting deeper than {MAX_JSON_DEPTH} levels")

        stored = self.store.insert(user)
        logger.info(f"Created user {stored['id']}")
        return {"message": "User created", "user": stored}


def register_user_routes(router: Router, handlers: UserHandlers) -> Router:
    """
    Install the users dispatch table on a router.

    The wildcard needs the trailing slash: "/api/users/" is a lookup of
    id "", while "/api/users" is the list.
    """

    @router.get("/api/users")
    def list_users(request: HTTPRequest) -> dict:
        return handlers.handle_get_users()

    @router.get("/api/users/*id")
    def get_user(request: HTTPRequest) -> dict:
        return handlers.handle_get_user(request.path_params["id"])

    @router.post("/api/users", status=HTTPStatus.CREATED)
    def create_user(request: HTTPRequest) -> dict:
        return handlers.handle_create_user(request.body)

    return router
