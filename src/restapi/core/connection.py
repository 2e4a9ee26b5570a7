"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps one accepted client socket (plain TCP or TLS) with the stream
operations a Session needs:

    handshake()     TLS server handshake (no-op for plaintext)
    read_request()  buffer bytes until one complete HTTP message
    send()          write the whole response
    half_close()    tell the client we are done sending
    close()         drain and release the file descriptor

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL!
=============================================================================

    Client sends:
        send(b"POST /api/users HTTP/1.1\\r\\nContent-Length: 16\\r\\n\\r\\n")
        send(b'{"name":"Carol"}')

    Server might receive:
        recv() → b"POST /api/us"
        recv() → b"ers HTTP/1.1\\r\\nContent-Length: 16\\r\\n\\r\\n{\\"na"
        recv() → b'me":"Carol"}'

So we buffer until the header terminator is in, then read exactly as many
body bytes as the framing headers say.

=============================================================================
HALF-CLOSE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  Plaintext:  shutdown(SHUT_WR)  → FIN to client                      │
    │  TLS:        unwrap()           → close_notify alert to client       │
    └─────────────────────────────────────────────────────────────────────┘

The client sees end-of-stream right after the response. Errors during
half-close or close are ignored: the response is already out.

=============================================================================
"""

import socket
import ssl
import time
import logging
from dataclasses import dataclass, field
from typing import Optional
import uuid

from ..http.request import HTTPParseError, body_length, read_chunked_body


logger = logging.getLogger(__name__)


# How long to wait for the peer during TLS shutdown and the final drain
CLOSE_TIMEOUT = 0.5

# Most bytes the final drain reads before giving up on the peer
MAX_DRAIN_BYTES = 64 * 1024


@dataclass
class Connection:
    """
    Represents one client connection.

    Attributes:
        socket: The client socket (replaced by an SSLSocket after handshake).
        address: Client's (ip, port) tuple.
        tls_context: Shared server SSLContext, or None for plaintext.
        id: Short connection identifier (for logging).
        created_at: Timestamp when the connection was accepted.
    """

    socket: socket.socket
    address: tuple[str, int]
    tls_context: Optional[ssl.SSLContext] = None

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    created_at: float = field(default_factory=time.time)

    buffer_size: int = 8192
    timeout: Optional[float] = 30.0
    max_header_size: int = 8 * 1024
    max_body_size: int = 1024 * 1024

    closed: bool = False
    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    @property
    def is_tls(self) -> bool:
        return self.tls_context is not None

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def age(self) -> float:
        """Connection age in seconds."""
        return time.time() - self.created_at

    # =========================================================================
    # TLS HANDSHAKE
    # =========================================================================

    def handshake(self) -> None:
        """
        Perform the server side of the TLS handshake.

        Runs on the worker thread, not in accept(), so a slow client
        cannot stall the acceptor. No-op for plaintext connections.

        Raises:
            ssl.SSLError: Handshake failed (bad client hello, wrong version).
            OSError: Socket error or timeout during the handshake.
        """
        if self.tls_context is None:
            return

        self.socket = self.tls_context.wrap_socket(
            self.socket,
            server_side=True,
            do_handshake_on_connect=False,
        )
        self.socket.do_handshake()
        logger.debug(f"[{self.id}] TLS handshake done: {self.socket.version()}")

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete HTTP request from the socket.

        ┌─────────────────────────────────────────────────────────────────┐
        │   while no \\r\\n\\r\\n:      recv() → buffer   (≤ max_header_size) │
        │   framing = Content-Length | chunked                            │
        │   while body incomplete:   recv() → buffer   (≤ max_body_size)  │
        │   return buffer[:request_end]                                    │
        └─────────────────────────────────────────────────────────────────┘

        Returns:
            Complete HTTP request bytes, or None if the peer closed the
            stream before a full request arrived.

        Raises:
            HTTPParseError: Framing is invalid or over a size limit.
            socket.timeout: No progress within the connection timeout.
            OSError: Any other socket or TLS error.
        """
        # ─────────────────────────────────────────────────────────────────
        # STEP 1: Header section
        # ─────────────────────────────────────────────────────────────────
        while b"\r\n\r\n" not in self._buffer:
            if len(self._buffer) > self.max_header_size + 4:
                raise HTTPParseError(
                    f"Header section exceeds {self.max_header_size} bytes",
                    status_code=431,
                )
            chunk = self._recv()
            if not chunk:
                return None
            self._buffer += chunk

        header_end = self._buffer.find(b"\r\n\r\n")
        if header_end > self.max_header_size:
            raise HTTPParseError(
                f"Header section exceeds {self.max_header_size} bytes",
                status_code=431,
            )
        body_start = header_end + 4

        # ─────────────────────────────────────────────────────────────────
        # STEP 2: Body, per Content-Length or chunked coding
        # ─────────────────────────────────────────────────────────────────
        headers = self._scan_headers(self._buffer[:header_end])
        content_length = body_length(headers, self.max_body_size)

        if content_length is None:
            while True:
                result = read_chunked_body(self._buffer, body_start, self.max_body_size)
                if result is not None:
                    request_end = result[1]
                    break
                chunk = self._recv()
                if not chunk:
                    return None
                self._buffer += chunk
        else:
            while len(self._buffer) - body_start < content_length:
                chunk = self._recv()
                if not chunk:
                    return None
                self._buffer += chunk
            request_end = body_start + content_length

        # Anything after request_end is a pipelined request; it is never
        # served because the connection closes after one response.
        request_data = self._buffer[:request_end]
        self._buffer = self._buffer[request_end:]
        return request_data

    def _recv(self) -> bytes:
        """
        Receive data from the socket.

        A reset counts as end-of-stream. Timeouts and other errors
        propagate to the Session.
        """
        try:
            return self.socket.recv(self.buffer_size)
        except (ConnectionResetError, BrokenPipeError):
            return b""

    def _scan_headers(self, header_section: bytes) -> dict:
        """
        Pull the framing headers out of the raw header section.

        Only Content-Length and Transfer-Encoding matter here; the full
        parse happens later in RequestParser.
        """
        headers: dict = {}
        for line in header_section.decode("latin-1").split("\r\n")[1:]:
            name, sep, value = line.partition(":")
            if not sep:
                continue
            name = name.strip().lower()
            if name in ("content-length", "transfer-encoding"):
                value = value.strip()
                headers[name] = headers[name] + ", " + value if name in headers else value
        return headers

    # =========================================================================
    # WRITING
    # =========================================================================

    def send(self, data: bytes) -> None:
        """
        Send the whole response.

        Uses sendall(): plain send() may write only part of the buffer.

        Raises:
            OSError: Connection lost or timed out while writing.
        """
        self.socket.sendall(data)

    # =========================================================================
    # SHUTDOWN
    # =========================================================================

    def half_close(self) -> None:
        """
        Signal end-of-stream to the client.

        TLS: unwrap() sends close_notify and waits briefly for the peer's
        reply. Plaintext: shutdown(SHUT_WR) sends FIN.
        """
        if self.closed:
            return

        if isinstance(self.socket, ssl.SSLSocket):
            try:
                self.socket.settimeout(CLOSE_TIMEOUT)
                self.socket = self.socket.unwrap()
            except (ssl.SSLError, OSError) as e:
                # Most clients close without answering close_notify
                logger.debug(f"[{self.id}] TLS shutdown incomplete: {e}")
        else:
            try:
                self.socket.shutdown(socket.SHUT_WR)
            except OSError as e:
                logger.debug(f"[{self.id}] shutdown(SHUT_WR) failed: {e}")

    def close(self) -> None:
        """
        Drain what the client still sends, then release the socket.

        The drain is bounded by CLOSE_TIMEOUT seconds in total and by
        MAX_DRAIN_BYTES. Safe to call more than once.
        """
        if self.closed:
            return

        deadline = time.monotonic() + CLOSE_TIMEOUT
        drained = 0
        try:
            while drained < MAX_DRAIN_BYTES:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self.socket.settimeout(remaining)
                data = self.socket.recv(1024)
                if not data:
                    break
                drained += len(data)
        except (socket.timeout, ssl.SSLError, OSError):
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.closed = True
        logger.debug(f"[{self.id}] Connection closed after {self.age:.3f}s")

    def abort(self) -> None:
        """Close at once, without draining (used when the pool is full)."""
        if self.closed:
            return
        try:
            self.socket.close()
        except OSError:
            pass
        self.closed = True
