"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for the users API server.

=============================================================================
TWO VARIANTS, ONE CONFIG CLASS
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   ServerConfig.plaintext()          ServerConfig.tls_variant()      │
    │   ─────────────────────────         ──────────────────────────       │
    │   port = 8080                       port = 8443                      │
    │   tls  = False                      tls  = True                      │
    │   scheme = "http"                   scheme = "https"                 │
    │                                     cert.pem / key.pem from the     │
    │                                     working directory                │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Values are compiled in. Command-line flags may override them, but running
with no flags always gives the defaults below: there are no environment
variables and no config file.

=============================================================================
INTERVIEW QUESTIONS ABOUT CONFIGURATION
=============================================================================

Q: "How do you validate configuration?"
A: "Validate eagerly at startup, not lazily at first use.
   Fail fast with clear error messages. A bad port should stop the
   process before it prints a banner, not on the first request."

Q: "Why allow port 0?"
A: "Port 0 asks the OS for any free port. Tests use it to run many
   servers side by side; the real port is read back after bind()."

=============================================================================
"""

from dataclasses import dataclass
from typing import Optional


PLAINTEXT_PORT = 8080
TLS_PORT = 8443

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("text", "json")


@dataclass
class ServerConfig:
    """
    Configuration for the users API server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, backlog, buffer_size, timeout

    HTTP LIMITS
    - max_header_size, max_body_size

    THREADING SETTINGS
    - min_workers, max_workers, queue_size

    TLS
    - tls, cert_file, key_file

    LOGGING
    - log_level, log_format

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    """
    The IPv4 address to bind to. All interfaces by default.
    """

    port: int = PLAINTEXT_PORT
    """
    The port number to listen on.
    - 8080 - plaintext variant
    - 8443 - TLS variant
    - 0    - any free port (tests)
    """

    backlog: int = 128
    """
    Maximum number of queued connections.
    When the accept queue is full, new connections are refused.
    """

    buffer_size: int = 8192
    """
    Size of each recv() call in bytes.
    """

    timeout: Optional[float] = 30.0
    """
    Per-connection socket timeout in seconds, covering the TLS handshake,
    the request read and the response write. None = wait forever.
    Expiry closes the connection without a response.
    """

    # ─────────────────────────────────────────────────────────────────────
    # HTTP LIMITS
    # ─────────────────────────────────────────────────────────────────────

    max_header_size: int = 8 * 1024
    """
    Largest accepted header section (request line + headers), in bytes.
    """

    max_body_size: int = 1024 * 1024
    """
    Largest accepted request body, in bytes (after chunked decoding).
    """

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    """
    Worker threads created at startup.
    """

    max_workers: int = 16
    """
    Upper bound on worker threads. The pool grows toward this when the
    queue backs up.
    """

    queue_size: int = 100
    """
    Connections waiting for a worker. When full, new connections are
    closed without a response.
    """

    # ─────────────────────────────────────────────────────────────────────
    # TLS
    # ─────────────────────────────────────────────────────────────────────

    tls: bool = False
    """
    Serve HTTPS (TLS 1.2) instead of plain HTTP.
    """

    cert_file: str = "cert.pem"
    """
    PEM certificate chain, relative to the working directory.
    """

    key_file: str = "key.pem"
    """
    PEM private key, relative to the working directory.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "WARNING"
    """
    Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    WARNING keeps a healthy run silent on stderr; INFO adds access logs.
    """

    log_format: str = "text"
    """
    Access log format: 'text' (Apache-like) or 'json'.
    """

    # ─────────────────────────────────────────────────────────────────────
    # SERVER IDENTITY
    # ─────────────────────────────────────────────────────────────────────

    server_name: str = "restapi/1.0"
    """
    Product token for the Server header.
    """

    @classmethod
    def plaintext(cls, **overrides) -> "ServerConfig":
        """Configuration for the HTTP variant on port 8080."""
        values = {"port": PLAINTEXT_PORT, "tls": False}
        values.update(overrides)
        return cls(**values)

    @classmethod
    def tls_variant(cls, **overrides) -> "ServerConfig":
        """Configuration for the HTTPS variant on port 8443."""
        values = {"port": TLS_PORT, "tls": True}
        values.update(overrides)
        return cls(**values)

    @property
    def scheme(self) -> str:
        """URL scheme for the banner: "https" with TLS, else "http"."""
        return "https" if self.tls else "http"

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ValueError: With a message naming the offending field.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.queue_size < 1:
            raise ValueError("queue_size must be >= 1")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.max_header_size < 1 or self.max_body_size < 1:
            raise ValueError("max_header_size and max_body_size must be > 0")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(
                f"Invalid log level: {self.log_level}. "
                f"Must be one of {', '.join(LOG_LEVELS)}."
            )

        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"Invalid log format: {self.log_format}. Must be 'text' or 'json'.")

        if self.tls and (not self.cert_file or not self.key_file):
            raise ValueError("cert_file and key_file are required with tls")


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# 1. Type-safe configuration with a dataclass
# 2. Variant factories: plaintext() on 8080, tls_variant() on 8443
# 3. Validation at startup (fail-fast)
# 4. No environment lookups: the defaults are the whole configuration
# =============================================================================
