"""
=============================================================================
HTTP RESPONSE BUILDER
=============================================================================

Builds HTTP/1.x responses per RFC 7230. Every response this server sends
is JSON, so the builder is JSON-first.

=============================================================================
WHAT A RESPONSE LOOKS LIKE ON THE WIRE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │  HTTP/1.1 201 Created\r\n                 ← version echoes request   │
    │  Server: restapi/1.0\r\n                                             │
    │  Content-Type: application/json\r\n       ← always, exactly this     │
    │  Connection: keep-alive\r\n               ← echoes request's wish    │
    │  Content-Length: 55\r\n                   ← computed last            │
    │  Date: Sat, 17 Oct 2026 12:00:00 GMT\r\n                             │
    │  \r\n                                                                │
    │  {"message":"User created","user":{"name":"Carol","id":3}}           │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

JSON bodies are compact (no spaces after separators) and keep non-ASCII
characters as UTF-8 rather than \\u escapes.

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Union
import json

from .status_codes import HTTPStatus


JSON_CONTENT_TYPE = "application/json"
DEFAULT_SERVER_NAME = "restapi/1.0"


def dump_json(data: Any) -> bytes:
    """Serialize to compact UTF-8 JSON."""
    return json.dumps(
        data, separators=(",", ":"), ensure_ascii=False, allow_nan=False
    ).encode("utf-8")


@dataclass
class HTTPResponse:
    """
    Represents an HTTP response to be sent to the client.

    A plain data container. Use ResponseBuilder for construction.

    =========================================================================
    RESPONSE LIFECYCLE
    =========================================================================

        Router builds           to_bytes()              Session writes
        HTTPResponse    ─────►   serializes    ─────►    raw bytes
            │                       │                        │
        HTTPResponse(            b"HTTP/1.1 200 OK\\r\\n    connection.send(
          status=200,              Server: ...\\r\\n           response_bytes
          headers={...},           \\r\\n                    )
          body=b"..."              {\\"users\\":[...]}"
        )

    =========================================================================
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """
        Format: HTTP-VERSION SP STATUS-CODE SP REASON-PHRASE
        Example: "HTTP/1.0 404 Not Found"
        """
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    @property
    def json(self) -> Any:
        """Decode the body as JSON (handy in tests and logging)."""
        return json.loads(self.body.decode("utf-8"))

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        """
        Set a response header.

        Returns self for method chaining:
            response.set_header("X-Request-ID", rid).set_header(...)
        """
        self.headers[name] = value
        return self

    def set_body(self, body: Union[str, bytes]) -> "HTTPResponse":
        """Set the body, encoding str as UTF-8."""
        if isinstance(body, str):
            self.body = body.encode("utf-8")
        else:
            self.body = body
        return self

    def to_bytes(self, server_name: str = DEFAULT_SERVER_NAME) -> bytes:
        """
        Serialize the response to bytes for sending over the socket.

        Content-Length is always recomputed from the final body, so a
        middleware that swaps the body cannot leave a stale length behind.
        Date and Server are added when missing.

        Args:
            server_name: Product token for the Server header.

        Returns:
            Complete HTTP response as bytes ready for sendall()
        """
        response_headers = dict(self.headers)

        response_headers["Content-Length"] = str(len(self.body))

        # RFC 7231 requires origin servers to send Date
        if "Date" not in response_headers:
            response_headers["Date"] = format_http_date(datetime.now(timezone.utc))

        if "Server" not in response_headers:
            response_headers["Server"] = server_name

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        header_bytes = "\r\n".join(lines).encode("latin-1") + b"\r\n"
        return header_bytes + self.body


class ResponseBuilder:
    """
    Fluent builder for constructing HTTP responses.

    ==========================================================================
    USAGE
    ==========================================================================

        response = (
            ResponseBuilder("restapi/1.0")
            .status(HTTPStatus.CREATED)
            .version("HTTP/1.1")
            .connection(keep_alive=True)
            .json({"message": "User created", "user": user})
            .build()
        )

    Each method returns self; build() is the terminal call.
    ==========================================================================
    """

    def __init__(self, server_name: str = DEFAULT_SERVER_NAME):
        self._status = HTTPStatus.OK
        self._version = "HTTP/1.1"
        # Server first so header order is stable on the wire
        self._headers: Dict[str, str] = {"Server": server_name}
        self._body = b""

    def status(self, status: HTTPStatus) -> "ResponseBuilder":
        """Set the HTTP status code."""
        self._status = HTTPStatus(status)
        return self

    def version(self, version: str) -> "ResponseBuilder":
        """Set the HTTP version for the status line (echo the request's)."""
        self._version = version
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        """Add a single header."""
        self._headers[name] = value
        return self

    def connection(self, keep_alive: bool) -> "ResponseBuilder":
        """Set the Connection header to keep-alive or close."""
        self._headers["Connection"] = "keep-alive" if keep_alive else "close"
        return self

    def json(self, data: Any) -> "ResponseBuilder":
        """
        Set a JSON body and Content-Type: application/json.

        No charset parameter: JSON is UTF-8 by definition (RFC 8259).
        """
        self._body = dump_json(data)
        self._headers["Content-Type"] = JSON_CONTENT_TYPE
        return self

    def build(self) -> HTTPResponse:
        """Build and return the HTTPResponse object."""
        return HTTPResponse(
            status=self._status,
            headers=dict(self._headers),
            body=self._body,
            version=self._version,
        )


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an HTTP-date (RFC 7231).

    Format: Day, DD Mon YYYY HH:MM:SS GMT
    Example: Sat, 17 Oct 2026 12:00:00 GMT

    Not strftime: %a and %b follow the process locale.
    """
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


def json_error(
    status: HTTPStatus,
    message: str,
    server_name: str = DEFAULT_SERVER_NAME,
) -> HTTPResponse:
    """
    Create a {"error": message} JSON response.

    Example:
        json_error(HTTPStatus.NOT_FOUND, "Endpoint not found")
    """
    return (
        ResponseBuilder(server_name)
        .status(status)
        .json({"error": message})
        .build()
    )
