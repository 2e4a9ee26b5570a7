"""
=============================================================================
ACCEPTOR: LOW-LEVEL TCP SOCKET SERVER
=============================================================================

Owns the listening socket. Accepts connections forever and hands each one
to a callback; never reads or writes client data itself.

=============================================================================
SOCKET LIFECYCLE (Server Side)
=============================================================================

    1. socket()    AF_INET / SOCK_STREAM
    2. setsockopt  SO_REUSEADDR, TCP_NODELAY
    3. bind()      0.0.0.0:8080 (or 8443, or 0 for "any free port")
    4. listen()    backlog = 128
    5. accept()    loop: new client socket → Connection → callback

                    ┌───────────────────────┐
                    │   Listening Socket    │ ◄── bind() once at startup
                    └───────────┬───────────┘
                                │ accept()
        ┌───────────────────────┼───────────────────────┐
        ▼                       ▼                       ▼
    Connection 1            Connection 2            Connection 3
    (→ Session on a worker thread)

bind() and serve() are separate steps so the caller can print the startup
banner with the port that was actually bound.

=============================================================================
SOCKET OPTIONS
=============================================================================

SO_REUSEADDR:
    Restart immediately without "Address already in use" while old
    sockets sit in TIME_WAIT.

TCP_NODELAY:
    Disable Nagle's algorithm. Responses are small and written in one
    sendall(); waiting to coalesce them only adds latency.

=============================================================================
ACCEPT ERRORS
=============================================================================

An accept() failure (EMFILE, ECONNABORTED, ...) is logged and the loop
carries on. Only shutdown() ends the loop.

=============================================================================
SIGNAL HANDLING
=============================================================================

    SIGINT  (Ctrl+C)       ┐
    SIGTERM (docker stop)  ┴──► shutdown() ──► accept loop exits

Python only allows signal handlers on the main thread, so a server started
from a test's background thread skips this step.

=============================================================================
"""

import socket
import signal
import logging
import ssl
import threading
from typing import Optional, Callable

from ..config import ServerConfig
from .connection import Connection


logger = logging.getLogger(__name__)


# How often the accept loop wakes up to check for shutdown
ACCEPT_POLL_INTERVAL = 1.0

# Pause after a failed accept() so a persistent error (EMFILE) cannot spin
ACCEPT_ERROR_BACKOFF = 0.1


class SocketServer:
    """
    Low-level TCP acceptor.

    ┌─────────────────────────────────────────────────────────────────────┐
    │    bind()            create socket, bind, listen, record bound_port  │
    │    serve(callback)   install signals, accept loop (BLOCKS)           │
    │    shutdown()        stop the loop (thread- and signal-safe)         │
    └─────────────────────────────────────────────────────────────────────┘

    Usage:
        server = SocketServer(config, tls_context=context)
        server.bind()
        print(server.bound_port)
        server.serve(handle_connection)   # Blocks until shutdown()
    """

    def __init__(
        self,
        config: ServerConfig,
        tls_context: Optional[ssl.SSLContext] = None,
    ):
        self.config = config
        self.tls_context = tls_context

        self._socket: Optional[socket.socket] = None
        self._running = False
        self._shutdown_event = threading.Event()
        self._original_handlers: dict = {}
        self.bound_port: Optional[int] = None

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        # accept() wakes up periodically to notice shutdown()
        sock.settimeout(ACCEPT_POLL_INTERVAL)
        return sock

    # =========================================================================
    # SIGNALS
    # =========================================================================

    def _setup_signals(self):
        """Install SIGTERM/SIGINT handlers that call shutdown()."""
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not on the main thread, skipping signal handlers")
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating shutdown...")
            self.shutdown()

        for sig in (signal.SIGTERM, signal.SIGINT):
            self._original_handlers[sig] = signal.signal(sig, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def bind(self) -> int:
        """
        Create the listening socket.

        Returns:
            The bound port (differs from config.port when that is 0).

        Raises:
            OSError: Address in use, permission denied, bad host.
        """
        self._socket = self._create_socket()

        try:
            self._socket.bind((self.config.host, self.config.port))
        except OSError as e:
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            self._socket.close()
            self._socket = None
            raise

        self._socket.listen(self.config.backlog)
        self.bound_port = self._socket.getsockname()[1]
        self._running = True
        self._shutdown_event.clear()

        logger.info(f"Listening on {self.config.host}:{self.bound_port}")
        return self.bound_port

    def serve(self, connection_handler: Callable[[Connection], None]):
        """
        Run the accept loop until shutdown(). Blocks.

        Args:
            connection_handler: Called with each new Connection, on the
                                acceptor thread. Must not block.
        """
        if self._socket is None:
            self.bind()

        self._setup_signals()
        try:
            self._accept_loop(connection_handler)
        finally:
            self.close()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        """
        ┌─────────────────────────────────────────────────────────────────┐
        │   while running:                                                 │
        │       accept()            (times out every second)               │
        │       Connection(...)     wrap client socket + TLS context       │
        │       callback(conn)      queue a Session, return at once        │
        └─────────────────────────────────────────────────────────────────┘
        """
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if not self._running:
                    break
                logger.error(f"Accept error: {e}")
                self._shutdown_event.wait(ACCEPT_ERROR_BACKOFF)
                continue

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            try:
                conn = Connection(
                    socket=client_socket,
                    address=client_address,
                    tls_context=self.tls_context,
                    buffer_size=self.config.buffer_size,
                    timeout=self.config.timeout,
                    max_header_size=self.config.max_header_size,
                    max_body_size=self.config.max_body_size,
                )
            except OSError as e:
                # Peer vanished between accept() and setup
                logger.debug(f"Dropping connection from {client_address[0]}: {e}")
                client_socket.close()
                continue

            connection_handler(conn)

    def shutdown(self):
        """
        Stop accepting. Idempotent; safe from signal handlers and other
        threads. The loop exits within ACCEPT_POLL_INTERVAL.
        """
        if self._running:
            logger.info("Shutting down acceptor...")
        self._running = False
        self._shutdown_event.set()

    def close(self):
        """Restore signal handlers and close the listening socket."""
        self._restore_signals()

        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

        logger.info("Acceptor stopped")
