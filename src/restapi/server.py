"""
=============================================================================
REST API SERVER
=============================================================================

The orchestrator that wires the users API together.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        ┌─────────────────┐                          │
    │                        │  RestApiServer  │                          │
    │                        └────────┬────────┘                          │
    │            ┌────────────────────┼────────────────────┐              │
    │            ▼                    ▼                    ▼              │
    │    ┌──────────────┐    ┌──────────────┐    ┌──────────────┐        │
    │    │ SocketServer │    │  ThreadPool  │    │    Router    │        │
    │    │  (Acceptor)  │    │  (Sessions)  │    │ + UserHandlers│       │
    │    └──────┬───────┘    └──────┬───────┘    └──────┬───────┘        │
    │           ▼                   ▼                   ▼                 │
    │    ┌──────────────┐    ┌──────────────┐    ┌──────────────┐        │
    │    │  Connection  │    │   Session    │    │  UserStore   │        │
    │    │ (TCP / TLS)  │    │ (1 req/resp) │    │  (locked)    │        │
    │    └──────────────┘    └──────────────┘    └──────────────┘        │
    │                                                                      │
    │           Session handler = LoggingMiddleware → router.handle       │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
REQUEST LIFECYCLE
=============================================================================

    1. SocketServer accepts, wraps the socket in a Connection
    2. A Session is queued on the ThreadPool (queue full → close)
    3. Worker: TLS handshake (HTTPS variant only)
    4. Worker: read + parse exactly one request
    5. LoggingMiddleware → Router → UserHandlers → UserStore
    6. Worker: write the response, half-close, close

=============================================================================
INTERVIEW QUESTIONS
=============================================================================

Q: "What happens during graceful shutdown?"
A: "1. Stop accepting (the accept loop notices within a second)
   2. Let queued and in-flight sessions finish, with a bounded wait
   3. Stop the worker threads"

Q: "Why print the banner after bind()?"
A: "So it shows the port actually bound, and so nothing claims the
   server is up when bind() failed."

=============================================================================
"""

import logging
import ssl
import threading
from typing import Optional

from .config import ServerConfig
from .core import SocketServer, Connection, Session, ThreadPool
from .core.socket_server import ACCEPT_POLL_INTERVAL
from .handlers import UserHandlers, register_user_routes
from .http import RequestParser, Router
from .middleware import MiddlewarePipeline, Middleware, LoggingMiddleware
from .store import UserStore
from .tls import create_server_context


logger = logging.getLogger(__name__)


# Upper bound on waiting for in-flight sessions at shutdown
SHUTDOWN_TIMEOUT = 5.0

ENDPOINTS_BANNER = (
    "\nEndpoints:\n"
    "  GET    /api/users     - List all users\n"
    "  GET    /api/users/:id - Get user by ID\n"
    "  POST   /api/users     - Create new user"
)


class RestApiServer:
    """
    In-memory users REST API over HTTP or HTTPS.

    =========================================================================
    USAGE
    =========================================================================

        # Blocking, like the command line does:
        RestApiServer(ServerConfig.tls_variant()).run()

        # Background, like the tests do:
        server = RestApiServer(ServerConfig.plaintext(port=0))
        port = server.start()
        threading.Thread(target=server.serve_forever, daemon=True).start()
        ...
        server.shutdown()

    =========================================================================
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        store: Optional[UserStore] = None,
        tls_context: Optional[ssl.SSLContext] = None,
    ):
        """
        Args:
            config: Server configuration; plaintext defaults if omitted.
            store: User store; seeded for the variant if omitted.
            tls_context: Prebuilt SSLContext; built from cert_file/key_file
                         at start() if omitted and config.tls is set.
        """
        self.config = config or ServerConfig.plaintext()
        self.config.validate()

        if store is None:
            store = UserStore.tls_seed() if self.config.tls else UserStore.plaintext_seed()
        self.store = store

        self.handlers = UserHandlers(self.store)
        self.router = register_user_routes(Router(self.config.server_name), self.handlers)

        self._middleware = MiddlewarePipeline()
        self._middleware.add(LoggingMiddleware(log_format=self.config.log_format))

        self._tls_context = tls_context
        self._parser = RequestParser(
            max_header_size=self.config.max_header_size,
            max_body_size=self.config.max_body_size,
        )
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
            queue_size=self.config.queue_size,
        )
        self._socket_server: Optional[SocketServer] = None
        self._handler = None
        self._serving = False
        self._closing = False
        self._state_lock = threading.Lock()
        self._stopped = threading.Event()

    def use(self, middleware: Middleware) -> "RestApiServer":
        """Add middleware inside the access logger. Call before start()."""
        self._middleware.add(middleware)
        return self

    @property
    def port(self) -> Optional[int]:
        """The bound port, once started."""
        return self._socket_server.bound_port if self._socket_server else None

    @property
    def url(self) -> str:
        return f"{self.config.scheme}://localhost:{self.port or self.config.port}"

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> int:
        """
        Prepare everything short of accepting: TLS context, workers,
        listening socket.

        Returns:
            The bound port.

        Raises:
            TLSConfigurationError: cert/key missing or invalid.
            OSError: The port could not be bound.
        """
        if self.config.tls and self._tls_context is None:
            self._tls_context = create_server_context(
                self.config.cert_file, self.config.key_file
            )

        self._handler = self._middleware.wrap(self.router.handle)
        self._socket_server = SocketServer(self.config, tls_context=self._tls_context)
        port = self._socket_server.bind()

        self._thread_pool.start()
        return port

    def serve_forever(self):
        """Run the accept loop until shutdown(). Blocks."""
        if self._socket_server is None:
            self.start()
        with self._state_lock:
            if self._closing:
                # shutdown() won the race and already cleaned up
                return
            self._serving = True
        try:
            self._socket_server.serve(self._handle_connection)
        finally:
            self._stop_workers()

    def run(self):
        """
        Start, print the banner, serve until SIGINT/SIGTERM.

        This is what the command line calls.
        """
        self._setup_logging()
        self.start()
        self._print_startup_banner()
        self.serve_forever()

    def shutdown(self, wait: bool = True):
        """
        Stop accepting and let in-flight sessions finish.

        Safe to call from another thread. With wait=True, blocks until the
        workers have stopped (bounded by SHUTDOWN_TIMEOUT).
        """
        if self._socket_server is None:
            return

        self._socket_server.shutdown()

        with self._state_lock:
            self._closing = True
            serving = self._serving

        if not serving:
            # start() ran but serve_forever() never did
            self._socket_server.close()
            self._stop_workers()
        elif wait:
            self._stopped.wait(SHUTDOWN_TIMEOUT + ACCEPT_POLL_INTERVAL + 1.0)

    def _stop_workers(self):
        logger.info("Shutting down server...")
        self._thread_pool.shutdown(wait=True, timeout=SHUTDOWN_TIMEOUT)
        self._stopped.set()
        logger.info("Server stopped")

    def _print_startup_banner(self):
        print(f"REST API running on {self.url}")
        print(ENDPOINTS_BANNER, flush=True)

    def _setup_logging(self):
        """Configure logging on stderr at the configured level."""
        level = getattr(logging, self.config.log_level.upper(), logging.WARNING)

        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("restapi").setLevel(level)

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """
        Queue a Session for the new connection (acceptor thread).

        When the pool's queue is full the connection is closed without a
        response.
        """
        session = Session(
            conn,
            handler=self._handler,
            parser=self._parser,
            server_name=self.config.server_name,
        )

        if not self._thread_pool.submit(session.run):
            logger.warning(f"[{conn.id}] Thread pool full, dropping connection from {conn.client_ip}")
            conn.abort()
