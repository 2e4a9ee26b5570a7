"""
=============================================================================
RESTAPI - In-memory users REST API over raw sockets (HTTP and HTTPS)
=============================================================================

A small JSON API with one resource, served from scratch on top of the
socket and ssl modules.

    ┌─────────────────────────────────────────────────────────────────────┐
    │   GET    /api/users       list every user                  200      │
    │   GET    /api/users/:id   one user (or an error body)      200      │
    │   POST   /api/users       create a user from a JSON object 201      │
    │   anything else           {"error":"Endpoint not found"}   404      │
    └─────────────────────────────────────────────────────────────────────┘

Two variants:

    plaintext   http://localhost:8080    seed {"1": {"echo": "HelloWorld"}}
    TLS 1.2     https://localhost:8443   seed Alice (1) and Bob (2)
                                         cert.pem + key.pem from the cwd

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    restapi/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m restapi)
    ├── server.py            # RestApiServer orchestrator
    ├── config.py            # ServerConfig dataclass
    ├── store.py             # UserStore (thread-safe, in memory)
    ├── handlers.py          # Users handlers + route table
    ├── tls.py               # TLS 1.2 server context
    ├── core/
    │   ├── socket_server.py # Acceptor
    │   ├── connection.py    # Client stream (TCP or TLS)
    │   ├── session.py       # One request/response exchange
    │   └── thread_pool.py   # Worker threads
    ├── http/
    │   ├── request.py       # HTTP request parsing
    │   ├── response.py      # HTTP response building
    │   ├── router.py        # Method + target routing
    │   └── status_codes.py  # HTTP status enum
    └── middleware/
        ├── base.py          # Middleware, MiddlewarePipeline
        └── logging.py       # Access logging

=============================================================================
QUICK START
=============================================================================

    from restapi import RestApiServer, ServerConfig

    RestApiServer(ServerConfig.plaintext()).run()

or from a shell:

    python -m restapi            # http://localhost:8080
    python -m restapi --tls      # https://localhost:8443

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig
from .server import RestApiServer
from .store import UserStore

__all__ = ["RestApiServer", "ServerConfig", "UserStore", "__version__"]
