"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The status codes this server actually emits, as an IntEnum.

    ┌───────────┬──────────────────────────────────────────────────────────┐
    │   Code    │  When we send it                                         │
    ├───────────┼──────────────────────────────────────────────────────────┤
    │  200      │  GET /api/users, GET /api/users/:id (found OR not found) │
    │  201      │  POST /api/users succeeded                               │
    │  400      │  POST body is not a JSON object                          │
    │  404      │  Any other method/path                                   │
    │  500      │  A bug escaped the router (safety net only)              │
    └───────────┴──────────────────────────────────────────────────────────┘

Why IntEnum and not plain ints?
- HTTPStatus.CREATED reads better than 201
- Still compares equal to the int (HTTPStatus.OK == 200)
- Carries its reason phrase for the status line

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """HTTP status codes used by the users API."""

    OK = 200                        # Standard success response
    CREATED = 201                   # New user was stored (POST)
    BAD_REQUEST = 400               # Body was not a well-formed JSON object
    NOT_FOUND = 404                 # No route for this method + target
    INTERNAL_SERVER_ERROR = 500     # Unexpected error (should never happen)

    @property
    def phrase(self) -> str:
        """
        Get the reason phrase for this status code.

        The reason phrase is the text that appears after the status code
        in an HTTP response line:

            HTTP/1.1 201 Created
                     ─── ───────
                      │     │
                      │     └── Reason phrase
                      └──────── Status code
        """
        return _STATUS_PHRASES.get(self, "Unknown")


# Per RFC 7230, reason phrases are purely informational.
_STATUS_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.CREATED: "Created",
    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
}
