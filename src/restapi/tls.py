"""
=============================================================================
TLS CONTEXT
=============================================================================

Builds the server-side SSLContext for the HTTPS variant.

    ┌─────────────────────────────────────────────────────────────────────┐
    │  Protocol:   TLS 1.2 only (min = max = TLSv1_2)                      │
    │  Options:    OP_ALL (bug workarounds), OP_NO_SSLv2, OP_SINGLE_DH_USE │
    │  Client certificates: not requested                                  │
    │  Certificate chain:   cert.pem   (PEM)                               │
    │  Private key:         key.pem    (PEM)                               │
    └─────────────────────────────────────────────────────────────────────┘

The context is built once at startup and shared by every connection.
Missing or malformed files stop the server before it listens.

=============================================================================
"""

from typing import Optional
import logging
import ssl


logger = logging.getLogger(__name__)


class TLSConfigurationError(RuntimeError):
    """The TLS context could not be built (bad or missing cert/key)."""


def create_server_context(
    cert_file: str = "cert.pem",
    key_file: str = "key.pem",
    password: Optional[str] = None,
) -> ssl.SSLContext:
    """
    Create the TLS 1.2 server context.

    Args:
        cert_file: Path to the PEM certificate chain.
        key_file: Path to the PEM private key.
        password: Passphrase for an encrypted key, if any.

    Returns:
        A configured ssl.SSLContext with the chain loaded.

    Raises:
        TLSConfigurationError: If either file is missing or unreadable,
                               or the key does not match the certificate.
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    context.maximum_version = ssl.TLSVersion.TLSv1_2
    context.options |= ssl.OP_ALL | ssl.OP_NO_SSLv2 | ssl.OP_SINGLE_DH_USE
    context.verify_mode = ssl.CERT_NONE

    try:
        context.load_cert_chain(certfile=cert_file, keyfile=key_file, password=password)
    except FileNotFoundError as e:
        raise TLSConfigurationError(
            f"TLS certificate or key not found: {e.filename or cert_file}"
        ) from e
    except (ssl.SSLError, OSError) as e:
        raise TLSConfigurationError(
            f"Failed to load TLS certificate {cert_file} / key {key_file}: {e}"
        ) from e

    logger.debug(f"Loaded TLS certificate {cert_file} and key {key_file}")
    return context
