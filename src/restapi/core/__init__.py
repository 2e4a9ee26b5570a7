"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The networking plumbing under the users API.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         SOCKET SERVER                                │
    │  • Binds 0.0.0.0:<port>, runs the accept() loop                     │
    │  • Wraps each client socket in a Connection                         │
    │  • SIGTERM / SIGINT → graceful stop                                 │
    └─────────────────────────────────────────────────────────────────────┘
                                    │ one Session per connection
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          THREAD POOL                                 │
    │  • Bounded queue of Sessions                                        │
    │  • min_workers..max_workers threads run Session.run()               │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                     SESSION + CONNECTION                             │
    │  • (TLS handshake) → read → route → write → half-close → close      │
    │  • Exactly one request per connection                               │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection
from .session import Session, SessionState
from .thread_pool import ThreadPool

__all__ = [
    "SocketServer",     # Acceptor: listening socket + accept loop
    "Connection",       # Client stream: handshake, read, write, close
    "Session",          # One request/response exchange
    "SessionState",     # Session lifecycle states
    "ThreadPool",       # Worker threads that run Sessions
]
