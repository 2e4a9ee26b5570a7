"""
=============================================================================
SESSION
=============================================================================

Drives one connection through exactly one request/response exchange.

=============================================================================
SESSION STATE MACHINE
=============================================================================

    ACCEPTED ──► HANDSHAKING ──► READING ──► ROUTING ──► WRITING
        │         (TLS only)        │                       │
        │                           │                       ▼
        └───────────────────────────┴──────────────►  SHUTTING_DOWN
              any transport error                           │
              before WRITING: no response                   ▼
                                                         CLOSED

Transport errors (handshake failure, reset, timeout, bad framing, oversized
request) never produce a response. The connection is simply closed and
the event is logged.

The Connection header of the response echoes the client's keep-alive wish,
but the session still half-closes after one response. Clients that honour
the Connection header must be ready to see the stream end.

=============================================================================
"""

from enum import Enum
from typing import Callable, Optional
import logging
import socket
import ssl

from ..http.request import HTTPRequest, HTTPParseError, RequestParser
from ..http.response import HTTPResponse, json_error, DEFAULT_SERVER_NAME
from ..http.status_codes import HTTPStatus
from .connection import Connection


logger = logging.getLogger(__name__)


# Request → Response callable: the router, usually wrapped in middleware
RequestHandler = Callable[[HTTPRequest], HTTPResponse]


class SessionState(Enum):
    """Lifecycle of one Session."""
    ACCEPTED = "accepted"
    HANDSHAKING = "handshaking"
    READING = "reading"
    ROUTING = "routing"
    WRITING = "writing"
    SHUTTING_DOWN = "shutting_down"
    CLOSED = "closed"


class Session:
    """
    One request, one response, then close.

    Example:
        session = Session(connection, handler=pipeline.wrap(router.handle))
        session.run()      # blocks until the connection is closed
        session.state      # SessionState.CLOSED
    """

    def __init__(
        self,
        connection: Connection,
        handler: RequestHandler,
        parser: Optional[RequestParser] = None,
        server_name: str = DEFAULT_SERVER_NAME,
    ):
        self.connection = connection
        self.handler = handler
        self.parser = parser or RequestParser(
            max_header_size=connection.max_header_size,
            max_body_size=connection.max_body_size,
        )
        self.server_name = server_name
        self.state = SessionState.ACCEPTED
        self.request: Optional[HTTPRequest] = None
        self.response: Optional[HTTPResponse] = None

    @property
    def id(self) -> str:
        return self.connection.id

    def run(self) -> None:
        """
        Run the session to completion. Never raises.

        This is what the worker thread executes.
        """
        try:
            self._run()
        except (HTTPParseError, ssl.SSLError, socket.timeout, OSError) as e:
            self._log_transport_error(e)
        except Exception:
            logger.exception(f"[{self.id}] Unexpected error in session")
        finally:
            self.connection.close()
            self.state = SessionState.CLOSED

    def _run(self) -> None:
        conn = self.connection

        # ─────────────────────────────────────────────────────────────────
        # HANDSHAKE (TLS only)
        # ─────────────────────────────────────────────────────────────────
        if conn.is_tls:
            self.state = SessionState.HANDSHAKING
            conn.handshake()

        # ─────────────────────────────────────────────────────────────────
        # READ + PARSE
        # ─────────────────────────────────────────────────────────────────
        self.state = SessionState.READING
        raw = conn.read_request()
        if raw is None:
            logger.debug(f"[{self.id}] Client closed before sending a full request")
            return

        self.request = self.parser.parse(raw, conn.address)

        # ─────────────────────────────────────────────────────────────────
        # ROUTE
        # ─────────────────────────────────────────────────────────────────
        self.state = SessionState.ROUTING
        self.response = self._dispatch(self.request)

        # ─────────────────────────────────────────────────────────────────
        # WRITE + HALF-CLOSE
        # ─────────────────────────────────────────────────────────────────
        self.state = SessionState.WRITING
        conn.send(self.response.to_bytes(self.server_name))

        self.state = SessionState.SHUTTING_DOWN
        conn.half_close()

    def _dispatch(self, request: HTTPRequest) -> HTTPResponse:
        """
        Call the handler chain.

        The router already maps handler exceptions to 400, so reaching the
        except branch means a bug in middleware or the router itself.
        """
        try:
            return self.handler(request)
        except Exception:
            logger.exception(f"[{self.id}] Error handling {request.method} {request.target}")
            response = json_error(
                HTTPStatus.INTERNAL_SERVER_ERROR,
                HTTPStatus.INTERNAL_SERVER_ERROR.phrase,
                self.server_name,
            )
            response.version = request.version
            response.set_header("Connection", "keep-alive" if request.is_keep_alive else "close")
            return response

    def _log_transport_error(self, error: Exception) -> None:
        """Expected client misbehaviour at DEBUG, everything else at WARNING."""
        if isinstance(error, HTTPParseError):
            logger.debug(
                f"[{self.id}] Bad request framing from {self.connection.client_ip} "
                f"({error.status_code}): {error}"
            )
        elif isinstance(error, (socket.timeout, ConnectionError, ssl.SSLError)):
            logger.debug(f"[{self.id}] Connection dropped in {self.state.value}: {error}")
        else:
            logger.warning(f"[{self.id}] I/O error in {self.state.value}: {error}")
