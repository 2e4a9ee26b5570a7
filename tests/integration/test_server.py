"""
End-to-end tests: a real server on a free port, driven over raw sockets.
"""

import json
import logging
import socket
import ssl
import threading

import pytest

from restapi import RestApiServer, ServerConfig, UserStore
from restapi.middleware import Middleware
from restapi.server import ENDPOINTS_BANNER


class TestPlaintextScenarios:
    """The users API over plain HTTP, seeded with {"1": {"echo": "HelloWorld"}}."""

    def test_list_seed(self, test_server):
        response = test_server.get("/api/users")

        assert response.status == 200
        assert response.reason == "OK"
        assert response.json() == {"users": [{"echo": "HelloWorld"}]}

    def test_get_seed_user(self, test_server):
        response = test_server.get("/api/users/1")

        assert response.status == 200
        assert response.json() == {"echo": "HelloWorld"}

    def test_get_missing_user_is_200(self, test_server):
        response = test_server.get("/api/users/42")

        assert response.status == 200
        assert response.json() == {"error": "User not found"}

    def test_create_user(self, test_server):
        response = test_server.post("/api/users", {"name": "Carol"})

        assert response.status == 201
        assert response.reason == "Created"
        assert response.json() == {"message": "User created", "user": {"name": "Carol", "id": 2}}

        assert test_server.get("/api/users/2").json() == {"name": "Carol", "id": 2}

    def test_malformed_json(self, test_server):
        response = test_server.post("/api/users", b"{not json")

        assert response.status == 400
        error = response.json()["error"]
        assert isinstance(error, str) and error
        assert len(test_server.get("/api/users").json()["users"]) == 1

    def test_non_object_json(self, test_server):
        response = test_server.post("/api/users", b"[1, 2, 3]")

        assert response.status == 400
        assert "error" in response.json()
        assert len(test_server.get("/api/users").json()["users"]) == 1

    def test_overflowing_number_rejected(self, test_server):
        response = test_server.post("/api/users", b'{"x":1e400}')

        assert response.status == 400
        assert b"Infinity" not in response.body

        listing = test_server.get("/api/users")
        assert b"Infinity" not in listing.body
        assert listing.json() == {"users": [{"echo": "HelloWorld"}]}

    def test_deeply_nested_user_rejected(self, test_server):
        body = b'{"a":' * 475 + b"{}" + b"}" * 475
        assert test_server.post("/api/users", body).status == 400

        listing = test_server.get("/api/users")
        assert listing.status == 200
        assert listing.json() == {"users": [{"echo": "HelloWorld"}]}

    @pytest.mark.parametrize(
        "method, target",
        [
            ("DELETE", "/api/users/1"),
            ("PUT", "/api/users"),
            ("GET", "/api/other"),
            ("GET", "/api/users?page=2"),
            ("GET", "/"),
            ("get", "/api/users"),
            ("POST", "/api/users/"),
        ],
    )
    def test_unknown_endpoint(self, test_server, method, target):
        response = test_server.request(method, target)

        assert response.status == 404
        assert response.json() == {"error": "Endpoint not found"}

    def test_empty_id(self, test_server):
        response = test_server.get("/api/users/")
        assert response.status == 200
        assert response.json() == {"error": "User not found"}


class TestWireFormat:
    """Headers, versions and connection handling."""

    def test_common_headers(self, test_server):
        response = test_server.get("/api/users")

        assert response.headers["content-type"] == "application/json"
        assert response.headers["server"] == "restapi/1.0"
        assert int(response.headers["content-length"]) == len(response.body)
        assert "date" in response.headers

    def test_compact_json(self, test_server):
        response = test_server.get("/api/users")
        assert response.body == b'{"users":[{"echo":"HelloWorld"}]}'

    @pytest.mark.parametrize("target", ["/api/users", "/api/users/9", "/missing"])
    def test_http10_version_echo(self, test_server, target):
        response = test_server.get(target, version="HTTP/1.0")

        assert response.version == "HTTP/1.0"
        assert response.headers["connection"] == "close"

    def test_http10_keep_alive_echo(self, test_server):
        response = test_server.get(
            "/api/users", version="HTTP/1.0", headers={"Connection": "keep-alive"}
        )
        assert response.headers["connection"] == "keep-alive"

    def test_http11_connection_echo(self, test_server):
        assert test_server.get("/api/users").headers["connection"] == "keep-alive"
        closing = test_server.get("/api/users", headers={"Connection": "close"})
        assert closing.headers["connection"] == "close"

    def test_closes_after_one_response(self, test_server):
        """Even with keep-alive, the second pipelined request is never served."""
        raw = test_server.send_raw(
            b"GET /api/users/1 HTTP/1.1\r\nConnection: keep-alive\r\n\r\n"
            b"GET /api/users HTTP/1.1\r\n\r\n"
        )
        assert raw.count(b"HTTP/1.1 200 OK") == 1

    def test_chunked_post(self, test_server):
        raw = test_server.send_raw(
            b"POST /api/users HTTP/1.1\r\n"
            b"Transfer-Encoding: chunked\r\n"
            b"\r\n"
            b"8\r\n{\"name\":\r\n"
            b"7\r\n\"Carol\"\r\n"
            b"1\r\n}\r\n"
            b"0\r\n\r\n"
        )
        assert raw.startswith(b"HTTP/1.1 201 Created\r\n")
        assert raw.endswith(b'"user":{"name":"Carol","id":2}}')

    def test_bad_framing_closes_without_response(self, test_server):
        raw = test_server.send_raw(
            b"POST /api/users HTTP/1.1\r\n"
            b"Content-Length: 2\r\n"
            b"Transfer-Encoding: chunked\r\n"
            b"\r\n{}"
        )
        assert raw == b""

    def test_unsupported_version_closes_without_response(self, test_server):
        assert test_server.send_raw(b"GET /api/users HTTP/2.0\r\n\r\n") == b""

    def test_client_disconnect_does_not_break_server(self, test_server):
        with test_server.connect() as sock:
            sock.sendall(b"GET /api/us")

        assert test_server.get("/api/users").status == 200

    def test_utf8_round_trip(self, test_server):
        created = test_server.post("/api/users", {"name": "Zoë", "city": "東京"})
        assert created.status == 201
        assert "Zoë".encode("utf-8") in created.body

        fetched = test_server.get("/api/users/2").json()
        assert fetched == {"name": "Zoë", "city": "東京", "id": 2}


class TestStoreProperties:
    """Properties that hold across many requests."""

    def test_ids_are_monotonic(self, test_server):
        ids = [test_server.post("/api/users", {"n": i}).json()["user"]["id"] for i in range(5)]
        assert ids == [2, 3, 4, 5, 6]

    def test_next_id_is_seed_plus_creates_plus_one(self, test_server):
        for i in range(3):
            test_server.post("/api/users", {"n": i})
        test_server.post("/api/users", b"broken")

        assert test_server.post("/api/users", {}).json()["user"]["id"] == 1 + 3 + 1

    def test_round_trip(self, test_server):
        user = {"name": "Dave", "tags": ["a", "b"], "nested": {"x": 1.5, "ok": True}}
        stored = test_server.post("/api/users", user).json()["user"]

        assert stored == dict(user, id=2)
        assert test_server.get(f"/api/users/{stored['id']}").json() == stored
        assert stored in test_server.get("/api/users").json()["users"]

    def test_client_id_overwritten(self, test_server):
        stored = test_server.post("/api/users", {"id": 77, "name": "X"}).json()["user"]
        assert stored["id"] == 2
        assert test_server.get("/api/users/77").json() == {"error": "User not found"}

    def test_get_is_idempotent(self, test_server):
        first = test_server.get("/api/users").body
        test_server.get("/api/users/1")
        test_server.get("/api/users/404")
        assert test_server.get("/api/users").body == first

    def test_concurrent_creates_get_unique_ids(self, test_server):
        ids = []
        lock = threading.Lock()

        def create(i):
            user = test_server.post("/api/users", {"n": i}).json()["user"]
            with lock:
                ids.append(user["id"])

        threads = [threading.Thread(target=create, args=(i,)) for i in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(10.0)

        assert sorted(ids) == list(range(2, 12))
        assert len(test_server.get("/api/users").json()["users"]) == 11


class TestServerLifecycle:
    """Startup, banner and shutdown."""

    def test_port_zero_binds_free_port(self, test_server):
        assert test_server.port
        assert test_server.server.port == test_server.port
        assert test_server.server.url == f"http://localhost:{test_server.port}"

    def test_default_store_follows_variant(self, config):
        assert RestApiServer(config).store.values() == [{"echo": "HelloWorld"}]

    def test_banner(self, config, capsys):
        server = RestApiServer(config)
        server.start()
        try:
            server._print_startup_banner()
        finally:
            server.shutdown()

        out = capsys.readouterr().out
        assert out.startswith(f"REST API running on http://localhost:{server.port}\n")
        assert ENDPOINTS_BANNER in out
        assert "POST   /api/users     - Create new user" in out

    def test_shutdown_before_serving(self, config):
        server = RestApiServer(config)
        port = server.start()
        server.shutdown()

        with pytest.raises(OSError):
            socket.create_connection(("127.0.0.1", port), timeout=1.0).close()

    def test_serve_after_shutdown_returns(self, config):
        """A serve_forever() that loses the race with shutdown() does not rebind."""
        server = RestApiServer(config)
        server.start()
        server.shutdown()

        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()
        thread.join(5.0)

        assert not thread.is_alive()

    def test_port_in_use(self, test_server):
        clash = RestApiServer(ServerConfig.plaintext(host="127.0.0.1", port=test_server.port))
        with pytest.raises(OSError):
            clash.start()

    def test_custom_store(self, config, server_factory):
        srv = server_factory(config, store=UserStore({"7": {"name": "Seven"}}))

        assert srv.get("/api/users/7").json() == {"name": "Seven"}
        assert srv.post("/api/users", {}).json()["user"]["id"] == 2

    def test_use_adds_middleware(self, config):
        class Stamp(Middleware):
            def __call__(self, request, next):
                return next(request).set_header("X-Stamp", "1")

        server = RestApiServer(config)
        assert server.use(Stamp()) is server

        port = server.start()
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()
        try:
            with socket.create_connection(("127.0.0.1", port), timeout=5.0) as sock:
                sock.sendall(b"GET /api/users HTTP/1.1\r\n\r\n")
                raw = b""
                while True:
                    chunk = sock.recv(4096)
                    if not chunk:
                        break
                    raw += chunk
        finally:
            server.shutdown()

        assert b"\r\nX-Stamp: 1\r\n" in raw

    def test_access_log_json(self, server_factory, caplog):
        config = ServerConfig.plaintext(host="127.0.0.1", port=0, log_format="json")
        srv = server_factory(config)

        with caplog.at_level(logging.INFO, logger="restapi.access"):
            srv.get("/api/users/1")

        entries = [
            json.loads(r.getMessage()) for r in caplog.records if r.name == "restapi.access"
        ]
        assert entries[-1]["target"] == "/api/users/1"
        assert entries[-1]["status_code"] == 200


class TestTLS:
    """The HTTPS variant: TLS 1.2, seeded with Alice and Bob."""

    def test_list_seed(self, tls_server):
        response = tls_server.get("/api/users")

        assert response.status == 200
        assert response.json() == {
            "users": [{"id": 1, "name": "Alice"}, {"id": 2, "name": "Bob"}]
        }

    def test_get_user(self, tls_server):
        assert tls_server.get("/api/users/2").json() == {"id": 2, "name": "Bob"}

    def test_first_create_is_id_3(self, tls_server):
        response = tls_server.post("/api/users", {"name": "Carol"})

        assert response.status == 201
        assert response.json() == {"message": "User created", "user": {"name": "Carol", "id": 3}}

    def test_not_found(self, tls_server):
        response = tls_server.request("PATCH", "/api/users/1")
        assert response.status == 404
        assert response.json() == {"error": "Endpoint not found"}

    def test_negotiates_tls12(self, tls_server):
        with tls_server.connect() as sock:
            assert sock.version() == "TLSv1.2"

    def test_rejects_tls13_only_client(self, tls_server):
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        context.minimum_version = ssl.TLSVersion.TLSv1_3

        raw = socket.create_connection(("127.0.0.1", tls_server.port), timeout=5.0)
        with pytest.raises((ssl.SSLError, OSError)):
            with context.wrap_socket(raw, server_hostname="localhost") as sock:
                sock.recv(1)
        raw.close()

        assert tls_server.get("/api/users/1").status == 200

    def test_plaintext_client_gets_nothing(self, tls_server):
        """A plain HTTP request to the TLS port fails the handshake: no HTTP reply."""
        with socket.create_connection(("127.0.0.1", tls_server.port), timeout=5.0) as sock:
            sock.sendall(b"GET /api/users HTTP/1.1\r\n\r\n")
            data = b""
            try:
                while True:
                    chunk = sock.recv(4096)
                    if not chunk:
                        break
                    data += chunk
            except ConnectionResetError:
                pass

        assert b"HTTP/1.1" not in data

    def test_banner_scheme(self, tls_server):
        assert tls_server.server.url == f"https://localhost:{tls_server.port}"

    def test_json_round_trip(self, tls_server):
        stored = tls_server.post("/api/users", {"a": [1, {"b": None}]}).json()["user"]
        assert tls_server.get("/api/users/3").json() == stored == {"a": [1, {"b": None}], "id": 3}
