"""
pytest configuration and fixtures.
"""

import json
import shutil
import socket
import ssl
import subprocess
import threading
from dataclasses import dataclass, field
from typing import Dict, Generator, Optional
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from restapi import RestApiServer, ServerConfig, UserStore


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /api/users/2?verbose=1 HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: application/json\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with JSON body."""
    body = b'{"name": "Carol"}'
    return (
        b"POST /api/users HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"Content-Type: application/json\r\n"
        b"Content-Length: %d\r\n" % len(body)
        + b"Connection: close\r\n"
        b"\r\n"
    ) + body


@pytest.fixture
def config() -> ServerConfig:
    """Plaintext test configuration on an OS-assigned port."""
    return ServerConfig.plaintext(
        host="127.0.0.1",
        port=0,
        min_workers=2,
        max_workers=4,
        timeout=5.0,
    )


# =============================================================================
# RAW HTTP CLIENT
# =============================================================================

@dataclass
class RawResponse:
    """A response as it came off the wire."""
    version: str
    status: int
    reason: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    raw: bytes = b""

    def json(self):
        return json.loads(self.body.decode("utf-8"))


def parse_raw_response(raw: bytes) -> RawResponse:
    head, sep, body = raw.partition(b"\r\n\r\n")
    assert sep, f"no header terminator in {raw!r}"

    lines = head.decode("latin-1").split("\r\n")
    version, status, reason = lines[0].split(" ", 2)

    headers = {}
    for line in lines[1:]:
        name, _, value = line.partition(":")
        headers[name.strip().lower()] = value.strip()

    return RawResponse(
        version=version,
        status=int(status),
        reason=reason,
        headers=headers,
        body=body,
        raw=raw,
    )


def read_until_eof(sock: socket.socket) -> bytes:
    chunks = []
    while True:
        try:
            chunk = sock.recv(65536)
        except ssl.SSLError:
            # Peer finished with close_notify or a bare TCP close
            break
        if not chunk:
            break
        chunks.append(chunk)
    return b"".join(chunks)


class TestServer:
    """Test server helper that runs in a background thread."""

    def __init__(
        self,
        server: RestApiServer,
        client_context: Optional[ssl.SSLContext] = None,
    ):
        self.server = server
        self.client_context = client_context
        self.port: Optional[int] = None
        self._thread: Optional[threading.Thread] = None

    def start(self):
        """Bind, then run the accept loop in a background thread."""
        self.port = self.server.start()
        self._thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self._thread.start()

    def stop(self):
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=10.0)

    def connect(self, timeout: float = 5.0) -> socket.socket:
        sock = socket.create_connection(("127.0.0.1", self.port), timeout=timeout)
        if self.client_context is not None:
            sock = self.client_context.wrap_socket(sock, server_hostname="localhost")
        return sock

    def send_raw(self, data: bytes) -> bytes:
        """Send bytes, return everything the server wrote before closing."""
        with self.connect() as sock:
            sock.sendall(data)
            return read_until_eof(sock)

    def request(
        self,
        method: str,
        target: str,
        body: Optional[bytes] = None,
        version: str = "HTTP/1.1",
        headers: Optional[Dict[str, str]] = None,
    ) -> RawResponse:
        lines = [f"{method} {target} {version}", "Host: localhost"]
        for name, value in (headers or {}).items():
            lines.append(f"{name}: {value}")
        if body is not None:
            lines.append(f"Content-Length: {len(body)}")
        raw = ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1") + (body or b"")
        return parse_raw_response(self.send_raw(raw))

    def get(self, target: str, **kwargs) -> RawResponse:
        return self.request("GET", target, **kwargs)

    def post(self, target: str, body, **kwargs) -> RawResponse:
        if not isinstance(body, bytes):
            body = json.dumps(body).encode("utf-8")
        return self.request("POST", target, body=body, **kwargs)


@pytest.fixture
def test_server(config: ServerConfig) -> Generator[TestServer, None, None]:
    """Plaintext server with the {"1": {"echo": "HelloWorld"}} seed."""
    test_srv = TestServer(RestApiServer(config, store=UserStore.plaintext_seed()))
    test_srv.start()

    yield test_srv

    test_srv.stop()


@pytest.fixture
def server_factory():
    """Start extra servers inside a test; all are stopped afterwards."""
    started = []

    def factory(config: ServerConfig, **kwargs) -> TestServer:
        test_srv = TestServer(RestApiServer(config, **kwargs))
        test_srv.start()
        started.append(test_srv)
        return test_srv

    yield factory

    for test_srv in started:
        test_srv.stop()


# =============================================================================
# TLS
# =============================================================================

@pytest.fixture(scope="session")
def tls_files(tmp_path_factory) -> Dict[str, str]:
    """Self-signed cert.pem / key.pem for localhost, made with openssl."""
    openssl = shutil.which("openssl")
    if openssl is None:
        pytest.skip("openssl binary not available")

    directory = tmp_path_factory.mktemp("tls")
    cert_file = directory / "cert.pem"
    key_file = directory / "key.pem"

    result = subprocess.run(
        [
            openssl, "req", "-x509", "-newkey", "rsa:2048", "-nodes",
            "-keyout", str(key_file), "-out", str(cert_file),
            "-days", "1", "-subj", "/CN=localhost",
        ],
        capture_output=True,
    )
    if result.returncode != 0:
        pytest.skip(f"openssl could not create a certificate: {result.stderr!r}")

    return {"cert": str(cert_file), "key": str(key_file), "dir": str(directory)}


@pytest.fixture
def client_tls_context() -> ssl.SSLContext:
    """Client context that accepts the self-signed test certificate."""
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


@pytest.fixture
def tls_server(tls_files, client_tls_context) -> Generator[TestServer, None, None]:
    """TLS server with the Alice/Bob seed."""
    config = ServerConfig.tls_variant(
        host="127.0.0.1",
        port=0,
        min_workers=2,
        max_workers=4,
        timeout=5.0,
        cert_file=tls_files["cert"],
        key_file=tls_files["key"],
    )
    test_srv = TestServer(RestApiServer(config), client_context=client_tls_context)
    test_srv.start()

    yield test_srv

    test_srv.stop()
