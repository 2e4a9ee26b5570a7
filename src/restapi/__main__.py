"""
=============================================================================
REST API CLI ENTRY POINT
=============================================================================

    python -m restapi                 # HTTP on 8080 (plaintext variant)
    python -m restapi --tls           # HTTPS on 8443 with cert.pem / key.pem
    restapi                           # console script, same as the first
    restapi-tls                       # console script, same as the second

Optional overrides:

    python -m restapi --port 0 --log-level INFO
    python -m restapi --tls --cert /etc/restapi/cert.pem --key /etc/restapi/key.pem

With no flags the servers use the compiled-in defaults: fixed
ports and file names, no environment variables, no config file.

=============================================================================
EXIT STATUS
=============================================================================

    0   stopped by SIGINT / SIGTERM
    1   any error at startup or while serving; the message goes to stderr
        as "Error: <message>"
    2   bad command-line usage (argparse)

=============================================================================
"""

import argparse
import sys
from typing import Optional, Sequence

from . import __version__
from .config import ServerConfig, LOG_LEVELS
from .server import RestApiServer


def build_parser(default_tls: bool = False) -> argparse.ArgumentParser:
    """
    Build the argument parser.

    Args:
        default_tls: Start in TLS mode without --tls (restapi-tls script).
    """
    parser = argparse.ArgumentParser(
        prog="restapi-tls" if default_tls else "restapi",
        description="In-memory users REST API over HTTP or HTTPS",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  restapi                          # http://localhost:8080
  restapi --tls                    # https://localhost:8443
  restapi --port 9000 -l INFO      # custom port, access logs on
        """,
    )

    # ─────────────────────────────────────────────────────────────────────
    # VARIANT
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--tls",
        action="store_true",
        default=default_tls,
        help="Serve HTTPS (TLS 1.2) on 8443 with the seeded Alice/Bob store",
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host",
        default=None,
        help="Address to bind to (default: 0.0.0.0)",
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Port to listen on (default: 8080, or 8443 with --tls)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # TLS FILES
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--cert",
        default=None,
        help="PEM certificate chain (default: cert.pem)",
    )

    parser.add_argument(
        "--key",
        default=None,
        help="PEM private key (default: key.pem)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # PERFORMANCE / LOGGING
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=None,
        help="Initial worker threads (default: 4, max will be 4x this)",
    )

    parser.add_argument(
        "--log-level", "-l",
        choices=list(LOG_LEVELS),
        default=None,
        help="Logging level (default: WARNING)",
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"restapi {__version__}",
    )

    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """Translate parsed arguments into a ServerConfig. Unset flags keep defaults."""
    overrides = {}
    if args.host is not None:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
    if args.cert is not None:
        overrides["cert_file"] = args.cert
    if args.key is not None:
        overrides["key_file"] = args.key
    if args.workers is not None:
        overrides["min_workers"] = args.workers
        overrides["max_workers"] = args.workers * 4
    if args.log_level is not None:
        overrides["log_level"] = args.log_level

    if args.tls:
        return ServerConfig.tls_variant(**overrides)
    return ServerConfig.plaintext(**overrides)


def main(argv: Optional[Sequence[str]] = None, default_tls: bool = False) -> int:
    """
    Parse arguments, run the server, map failures to exit status 1.

    Returns:
        Process exit status.
    """
    args = build_parser(default_tls).parse_args(argv)

    try:
        config = config_from_args(args)
        server = RestApiServer(config)
        server.run()
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


def main_tls(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point for the restapi-tls script."""
    return main(argv, default_tls=True)


if __name__ == "__main__":
    sys.exit(main())
