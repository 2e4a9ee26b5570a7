"""
=============================================================================
HTTP PROTOCOL IMPLEMENTATION
=============================================================================

Translates raw bytes from TCP into structured HTTP messages and back.

    ┌─────────────────────────────────────────────────────────────────────┐
    │ REQUEST PARSER (request.py)                                         │
    │   b"POST /api/users HTTP/1.1\\r\\n..."  →  HTTPRequest               │
    │   Content-Length and chunked bodies, size limits                    │
    ├─────────────────────────────────────────────────────────────────────┤
    │ ROUTER (router.py)                                                  │
    │   (method, raw target) → handler body → JSON HTTPResponse           │
    ├─────────────────────────────────────────────────────────────────────┤
    │ RESPONSE BUILDER (response.py)                                      │
    │   ResponseBuilder().status(201).json({...})  →  HTTPResponse        │
    ├─────────────────────────────────────────────────────────────────────┤
    │ STATUS CODES (status_codes.py)                                      │
    │   HTTPStatus.CREATED → 201, phrase="Created"                        │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError
from .response import HTTPResponse, ResponseBuilder, json_error, format_http_date
from .router import Router, Route, RouteMatch
from .status_codes import HTTPStatus

__all__ = [
    # Request parsing
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",

    # Response building
    "HTTPResponse",
    "ResponseBuilder",
    "json_error",
    "format_http_date",

    # Routing
    "Router",
    "Route",
    "RouteMatch",

    # Status codes
    "HTTPStatus",
]
