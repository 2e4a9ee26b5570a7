"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Parses raw HTTP/1.x request bytes into structured HTTPRequest objects.
Implements the parts of RFC 7230 (HTTP/1.1 Message Syntax and Routing)
that a JSON API needs: request line, headers, Content-Length bodies and
chunked bodies.

=============================================================================
HTTP REQUEST ANATOMY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     HTTP REQUEST STRUCTURE                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  ┌─ REQUEST LINE ─────────────────────────────────────────────────┐ │
    │  │                                                                 │ │
    │  │    POST /api/users HTTP/1.1\r\n                                 │ │
    │  │    ─┬── ────┬───── ────┬───                                     │ │
    │  │     │       │          │                                        │ │
    │  │   Method  Target     Version                                    │ │
    │  │                                                                 │ │
    │  └─────────────────────────────────────────────────────────────────┘ │
    │                                                                      │
    │  ┌─ HEADERS ──────────────────────────────────────────────────────┐ │
    │  │    Host: localhost:8080\r\n                                     │ │
    │  │    Content-Type: application/json\r\n                           │ │
    │  │    Content-Length: 16\r\n                                       │ │
    │  └─────────────────────────────────────────────────────────────────┘ │
    │                                                                      │
    │  ┌─ EMPTY LINE (separator) ───────────────────────────────────────┐ │
    │  │    \r\n                                                         │ │
    │  └─────────────────────────────────────────────────────────────────┘ │
    │                                                                      │
    │  ┌─ BODY (optional) ──────────────────────────────────────────────┐ │
    │  │    {"name":"Carol"}                                             │ │
    │  └─────────────────────────────────────────────────────────────────┘ │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
TARGET vs PATH
=============================================================================

The request-target is routed AS RECEIVED. We do not URL-decode it and we
do not strip the query string before routing:

    GET /api/users?page=2   → target "/api/users?page=2"  (no exact match!)
    GET /api/users/1?x=y    → target "/api/users/1?x=y"   (user id "1?x=y")

`path` (target without the query string) is still computed, but only for
access logs.

=============================================================================
BODY FRAMING
=============================================================================

How long is the body? Two ways to say it:

1. Content-Length: 16
   └── Exactly 16 bytes follow the blank line

2. Transfer-Encoding: chunked
   └── Body arrives as size-prefixed chunks, ending with a zero chunk:

        5\r\n
        {"nam\r\n
        b\r\n
        e":"Carol"}\r\n
        0\r\n
        \r\n

   Chunk extensions (";name=value") and trailer fields are accepted
   and discarded.

Both headers together are refused (request smuggling).

=============================================================================
LIMITS
=============================================================================

    Header section:  8 KiB   (larger → HTTPParseError 431)
    Body:            1 MiB   (larger → HTTPParseError 413)

A framing error never produces a response: the session just closes the
connection, exactly like a read error.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, Tuple
from urllib.parse import urlparse
import re


class HTTPParseError(Exception):
    """
    Raised when an HTTP request cannot be framed or parsed.

    Carries the status code a stricter server would answer with:

        400 Bad Request                      - Malformed syntax
        413 Payload Too Large                - Body over the limit
        431 Request Header Fields Too Large  - Header section over the limit
        505 HTTP Version Not Supported       - Not HTTP/1.0 or HTTP/1.1

    This server never sends these: a parse error is a transport error and
    the connection is closed silently. The code is kept for logging.
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    Represents a parsed HTTP request.

    Attributes:
        method:         Request method token, case preserved ("GET", "POST")
        target:         Raw request-target, exactly as sent ("/api/users/1?x=y")
        version:        "HTTP/1.1" or "HTTP/1.0"
        headers:        Header name → value, names lowercased
        body:           Decoded body bytes (chunked framing already removed)
        path_params:    Values captured by the router ("*id" → {"id": "1"})
        client_address: (ip, port) of the peer
        raw:            The original bytes, for debugging
    """

    method: str
    target: str
    version: str = "HTTP/1.1"

    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    # Router-injected parameters
    path_params: Dict[str, str] = field(default_factory=dict)

    client_address: tuple[str, int] = ("", 0)
    raw: bytes = field(default=b"", repr=False)

    @property
    def path(self) -> str:
        """Target without the query string (used for logging only)."""
        return urlparse(self.target).path or self.target

    @property
    def is_keep_alive(self) -> bool:
        """
        Did the client ask to keep the connection open?

        =====================================================================
        KEEP-ALIVE LOGIC
        =====================================================================

        HTTP/1.1 (default: keep-alive):
            Connection: close     → close after response
            (missing)             → keep alive

        HTTP/1.0 (default: close):
            Connection: keep-alive → keep alive
            (missing)              → close after response

        The answer is echoed in the response's Connection header. The
        server still closes after one response either way.
        =====================================================================
        """
        tokens = {
            token.strip().lower()
            for token in self.headers.get("connection", "").split(",")
        }

        if self.version == "HTTP/1.1":
            return "close" not in tokens
        return "keep-alive" in tokens

    def get_header(self, name: str, default: str = "") -> str:
        """
        Get a header value (case-insensitive lookup).

        Example:
            request.get_header("Content-Type")  # headers are stored lowercase
        """
        return self.headers.get(name.lower(), default)


# =============================================================================
# CHUNKED TRANSFER CODING
# =============================================================================

# Longest chunk-size line (size + extensions) we are willing to buffer
MAX_CHUNK_LINE = 4096

# chunk-size = 1*HEXDIG, nothing else
CHUNK_SIZE_PATTERN = re.compile(rb"[0-9A-Fa-f]+")


def read_chunked_body(
    data: bytes,
    start: int,
    max_body_size: int,
) -> Optional[Tuple[bytes, int]]:
    """
    Walk a chunked body that begins at data[start].

    Used twice: by Connection (is the message complete yet?) and by
    RequestParser (give me the decoded body).

    Args:
        data: Buffer holding the message.
        start: Offset of the first chunk-size line.
        max_body_size: Limit on the DECODED body size.

    Returns:
        (decoded_body, end_offset) once the terminating chunk and trailer
        section are buffered, or None if more bytes are needed.

    Raises:
        HTTPParseError: On malformed chunk syntax or an oversized body.
    """
    pos = start
    chunks = []
    total = 0

    while True:
        # ─────────────────────────────────────────────────────────────────
        # CHUNK-SIZE LINE: hex size, optional ;extensions, CRLF
        # ─────────────────────────────────────────────────────────────────
        line_end = data.find(b"\r\n", pos)
        if line_end == -1:
            if len(data) - pos > MAX_CHUNK_LINE:
                raise HTTPParseError("Chunk size line too long")
            return None

        size_field = data[pos:line_end].split(b";", 1)[0].strip()
        if not CHUNK_SIZE_PATTERN.fullmatch(size_field):
            raise HTTPParseError(f"Invalid chunk size: {size_field!r}")
        size = int(size_field, 16)

        pos = line_end + 2

        if size == 0:
            break

        total += size
        if total > max_body_size:
            raise HTTPParseError(
                f"Request body too large: more than {max_body_size} bytes",
                status_code=413,
            )

        # ─────────────────────────────────────────────────────────────────
        # CHUNK-DATA followed by CRLF
        # ─────────────────────────────────────────────────────────────────
        if len(data) < pos + size + 2:
            return None
        if data[pos + size:pos + size + 2] != b"\r\n":
            raise HTTPParseError("Missing CRLF after chunk data")

        chunks.append(data[pos:pos + size])
        pos += size + 2

    # ─────────────────────────────────────────────────────────────────────
    # TRAILER SECTION: zero or more fields, then an empty line
    # ─────────────────────────────────────────────────────────────────────
    while True:
        line_end = data.find(b"\r\n", pos)
        if line_end == -1:
            if len(data) - pos > MAX_CHUNK_LINE:
                raise HTTPParseError("Trailer field too long")
            return None
        if line_end == pos:
            return b"".join(chunks), line_end + 2
        pos = line_end + 2


class RequestParser:
    """
    Parses raw HTTP request bytes into HTTPRequest objects.

    ==========================================================================
    PARSER ARCHITECTURE
    ==========================================================================

        Raw Request Bytes
              │
              ▼
        ┌───────────────────────────────────────────────────────────────────┐
        │  1. Find Header/Body Separator (\r\n\r\n)                         │
        │     │  Not found? → HTTPParseError("Incomplete")                 │
        │     ▼                                                             │
        │  2. Parse Request Line                                            │
        │     │  METHOD SP TARGET SP VERSION                                │
        │     │  Invalid? → HTTPParseError(400/505)                        │
        │     ▼                                                             │
        │  3. Parse Headers                                                 │
        │     │  "Name: Value" pairs, names lowercased                     │
        │     ▼                                                             │
        │  4. Extract Body                                                  │
        │     │  Content-Length or chunked                                 │
        │     ▼                                                             │
        │  5. Build HTTPRequest                                             │
        └───────────────────────────────────────────────────────────────────┘

    ==========================================================================
    """

    # METHOD is an RFC 7230 token. We do not restrict it to a known list:
    # an unknown method is a route miss (404), not a parse error.
    REQUEST_LINE_PATTERN = re.compile(
        r"^([!#$%&'*+\-.^_`|~0-9A-Za-z]+) ([^ ]+) (HTTP/\d\.\d)$"
    )
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    SUPPORTED_VERSIONS = ("HTTP/1.0", "HTTP/1.1")

    def __init__(
        self,
        max_header_size: int = 8 * 1024,
        max_body_size: int = 1024 * 1024,
    ):
        """
        Initialize the request parser.

        Args:
            max_header_size: Limit on the header section (request line +
                             headers), in bytes.
            max_body_size: Limit on the decoded body, in bytes.
        """
        self.max_header_size = max_header_size
        self.max_body_size = max_body_size

    def parse(
        self,
        data: bytes,
        client_address: tuple[str, int] = ("", 0)
    ) -> HTTPRequest:
        """
        Parse raw HTTP request data into an HTTPRequest object.

        Args:
            data: One complete HTTP request as read by Connection.
            client_address: Client's (ip, port) tuple for logging.

        Returns:
            Parsed HTTPRequest object.

        Raises:
            HTTPParseError: If the request is malformed or over a limit.
        """
        # =====================================================================
        # STEP 1: Split headers and body at the \r\n\r\n boundary
        # =====================================================================
        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        if header_end > self.max_header_size:
            raise HTTPParseError(
                f"Header section too large: {header_end} bytes",
                status_code=431,
            )

        header_section = data[:header_end].decode("latin-1")
        body_start = header_end + 4

        # =====================================================================
        # STEP 2: Request line, then header fields
        # =====================================================================
        lines = header_section.split("\r\n")
        method, target, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        # =====================================================================
        # STEP 3: Body, framed by Content-Length or chunked coding
        # =====================================================================
        body = self._extract_body(data, body_start, headers)

        return HTTPRequest(
            method=method,
            target=target,
            version=version,
            headers=headers,
            body=body,
            client_address=client_address,
            raw=data,
        )

    def _parse_request_line(self, line: str) -> tuple[str, str, str]:
        """
        Parse the HTTP request line.

            METHOD SP REQUEST-TARGET SP HTTP-VERSION

        Returns:
            Tuple of (method, target, version)

        Raises:
            HTTPParseError: If line is malformed or the version unsupported
        """
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line!r}")

        method, target, version = match.groups()

        if version not in self.SUPPORTED_VERSIONS:
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=505,
            )

        return method, target, version

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        """
        Parse HTTP headers into a dictionary.

        - Names are normalized to lowercase
        - Obsolete line folding (leading SP/HTAB) continues the previous value
        - Repeated headers are joined with ", " (RFC 7230 §3.2.2)
        - Lines without a colon are skipped (lenient parsing)
        """
        headers: Dict[str, str] = {}
        current_name = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue

            name, value = match.groups()
            name = name.strip().lower()
            value = value.strip()
            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers

    def _extract_body(self, data: bytes, body_start: int, headers: Dict[str, str]) -> bytes:
        """Return the decoded body according to the framing headers."""
        content_length = body_length(headers, self.max_body_size)

        if content_length is None:
            result = read_chunked_body(data, body_start, self.max_body_size)
            if result is None:
                raise HTTPParseError("Incomplete chunked body")
            return result[0]

        body = data[body_start:]
        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )
        return body[:content_length]


def body_length(headers: Dict[str, str], max_body_size: int) -> Optional[int]:
    """
    Work out how the body is framed.

    Args:
        headers: Parsed headers (lowercase names).
        max_body_size: Limit on the body, in bytes.

    Returns:
        The Content-Length (0 when absent), or None for a chunked body.

    Raises:
        HTTPParseError: Conflicting framing, bad Content-Length, unknown
                        transfer coding, or a body over the limit.
    """
    transfer_encoding = headers.get("transfer-encoding")
    content_length = headers.get("content-length")

    if transfer_encoding is not None:
        if content_length is not None:
            raise HTTPParseError("Both Content-Length and Transfer-Encoding present")
        codings = [c.strip().lower() for c in transfer_encoding.split(",")]
        if codings[-1] != "chunked":
            raise HTTPParseError(f"Unsupported Transfer-Encoding: {transfer_encoding}")
        return None

    if content_length is None:
        return 0

    # "5, 5" from a repeated header is only fine if every copy agrees
    values = {v.strip() for v in content_length.split(",")}
    if len(values) != 1 or not next(iter(values)).isdigit():
        raise HTTPParseError(f"Invalid Content-Length: {content_length}")

    length = int(values.pop())
    if length > max_body_size:
        raise HTTPParseError(
            f"Request body too large: {length} bytes",
            status_code=413,
        )
    return length
