"""
Unit tests for HTTP request parsing and body framing.
"""

import pytest

from restapi.http.request import (
    HTTPRequest,
    RequestParser,
    HTTPParseError,
    body_length,
    read_chunked_body,
)


class TestRequestParser:
    """Tests for RequestParser class."""

    def test_parse_simple_get(self, sample_get_request: bytes):
        """Test parsing a simple GET request."""
        parser = RequestParser()
        request = parser.parse(sample_get_request, ("127.0.0.1", 12345))

        assert request.method == "GET"
        assert request.target == "/api/users/2?verbose=1"
        assert request.version == "HTTP/1.1"
        assert request.client_address == ("127.0.0.1", 12345)
        assert request.body == b""

    def test_target_kept_raw(self, sample_get_request: bytes):
        """The query string stays in the target; path drops it for logs."""
        request = RequestParser().parse(sample_get_request)

        assert request.target.endswith("?verbose=1")
        assert request.path == "/api/users/2"

    def test_parse_headers(self, sample_get_request: bytes):
        """Test that headers are parsed with lowercase names."""
        request = RequestParser().parse(sample_get_request)

        assert request.headers["host"] == "localhost:8080"
        assert request.headers["user-agent"] == "pytest"
        assert request.get_header("Accept") == "application/json"
        assert request.get_header("X-Missing", "none") == "none"

    def test_parse_post_with_body(self, sample_post_request: bytes):
        """Test parsing POST request with JSON body."""
        request = RequestParser().parse(sample_post_request)

        assert request.method == "POST"
        assert request.target == "/api/users"
        assert request.body == b'{"name": "Carol"}'

    def test_method_case_preserved(self):
        """Methods are tokens; lowercase is valid and kept as sent."""
        request = RequestParser().parse(b"get /api/users HTTP/1.1\r\n\r\n")
        assert request.method == "get"

    def test_unknown_method_token_parses(self):
        """Unknown methods are not parse errors (they become route misses)."""
        request = RequestParser().parse(b"PURGE /api/users HTTP/1.1\r\n\r\n")
        assert request.method == "PURGE"

    def test_http_10(self):
        request = RequestParser().parse(b"GET /api/users HTTP/1.0\r\n\r\n")
        assert request.version == "HTTP/1.0"

    def test_invalid_request_line(self):
        """Test that invalid request lines raise errors."""
        parser = RequestParser()

        with pytest.raises(HTTPParseError) as exc_info:
            parser.parse(b"INVALID\r\n\r\n")
        assert exc_info.value.status_code == 400

        with pytest.raises(HTTPParseError):
            parser.parse(b"GET  /api/users HTTP/1.1\r\n\r\n")

        with pytest.raises(HTTPParseError):
            parser.parse(b"GET /api/users\r\n\r\n")

    def test_unsupported_version(self):
        """Only HTTP/1.0 and HTTP/1.1 are accepted."""
        with pytest.raises(HTTPParseError) as exc_info:
            RequestParser().parse(b"GET / HTTP/2.0\r\n\r\n")
        assert exc_info.value.status_code == 505

    def test_incomplete_request(self):
        """Test that incomplete requests raise errors."""
        with pytest.raises(HTTPParseError):
            RequestParser().parse(b"GET /api/users HTTP/1.1\r\nHost: x\r\n")

    def test_incomplete_body(self):
        data = b"POST /api/users HTTP/1.1\r\nContent-Length: 10\r\n\r\nshort"
        with pytest.raises(HTTPParseError):
            RequestParser().parse(data)

    def test_extra_bytes_after_body_ignored(self):
        data = b"POST /api/users HTTP/1.1\r\nContent-Length: 2\r\n\r\n{}GET /"
        assert RequestParser().parse(data).body == b"{}"

    def test_header_section_too_large(self):
        """Test that oversized header sections are rejected."""
        parser = RequestParser(max_header_size=100)
        data = b"GET / HTTP/1.1\r\nX-Big: " + b"a" * 200 + b"\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parser.parse(data)
        assert exc_info.value.status_code == 431

    def test_body_too_large(self):
        parser = RequestParser(max_body_size=10)
        data = b"POST / HTTP/1.1\r\nContent-Length: 11\r\n\r\n" + b"x" * 11

        with pytest.raises(HTTPParseError) as exc_info:
            parser.parse(data)
        assert exc_info.value.status_code == 413

    def test_duplicate_headers_joined(self):
        data = b"GET / HTTP/1.1\r\nAccept: a\r\nAccept: b\r\n\r\n"
        assert RequestParser().parse(data).headers["accept"] == "a, b"

    def test_obsolete_line_folding(self):
        data = b"GET / HTTP/1.1\r\nX-Long: first\r\n  second\r\n\r\n"
        assert RequestParser().parse(data).headers["x-long"] == "first second"

    def test_malformed_header_line_skipped(self):
        data = b"GET / HTTP/1.1\r\nnot a header\r\nHost: h\r\n\r\n"
        request = RequestParser().parse(data)
        assert request.headers == {"host": "h"}

    def test_chunked_body(self):
        data = (
            b"POST /api/users HTTP/1.1\r\n"
            b"Transfer-Encoding: chunked\r\n"
            b"\r\n"
            b"5\r\n{\"nam\r\n"
            b"b;ext=1\r\ne\":\"Carol\"}\r\n"
            b"0\r\n"
            b"\r\n"
        )
        assert RequestParser().parse(data).body == b'{"name":"Carol"}'


class TestBodyLength:
    """Tests for body framing decisions."""

    def test_no_framing_headers(self):
        assert body_length({}, 1024) == 0

    def test_content_length(self):
        assert body_length({"content-length": "16"}, 1024) == 16

    def test_repeated_equal_content_length(self):
        assert body_length({"content-length": "5, 5"}, 1024) == 5

    def test_conflicting_content_length(self):
        with pytest.raises(HTTPParseError):
            body_length({"content-length": "5, 6"}, 1024)

    @pytest.mark.parametrize("value", ["-1", "abc", "", "1.5", "+3"])
    def test_invalid_content_length(self, value):
        with pytest.raises(HTTPParseError):
            body_length({"content-length": value}, 1024)

    def test_chunked(self):
        assert body_length({"transfer-encoding": "chunked"}, 1024) is None
        assert body_length({"transfer-encoding": "gzip, Chunked"}, 1024) is None

    def test_chunked_not_last(self):
        with pytest.raises(HTTPParseError):
            body_length({"transfer-encoding": "chunked, gzip"}, 1024)

    def test_both_framing_headers(self):
        """Content-Length together with Transfer-Encoding is refused."""
        headers = {"content-length": "5", "transfer-encoding": "chunked"}
        with pytest.raises(HTTPParseError):
            body_length(headers, 1024)

    def test_over_limit(self):
        with pytest.raises(HTTPParseError) as exc_info:
            body_length({"content-length": "2048"}, 1024)
        assert exc_info.value.status_code == 413


class TestChunkedBody:
    """Tests for read_chunked_body."""

    def test_incomplete_returns_none(self):
        assert read_chunked_body(b"5\r\nab", 0, 1024) is None
        assert read_chunked_body(b"5\r\nabcde\r\n", 0, 1024) is None
        assert read_chunked_body(b"0\r\n", 0, 1024) is None

    def test_complete_with_end_offset(self):
        data = b"HEAD3\r\nabc\r\n0\r\n\r\nNEXT"
        body, end = read_chunked_body(data, 4, 1024)
        assert body == b"abc"
        assert data[end:] == b"NEXT"

    def test_trailers_discarded(self):
        data = b"3\r\nabc\r\n0\r\nX-Trailer: 1\r\n\r\n"
        body, end = read_chunked_body(data, 0, 1024)
        assert body == b"abc"
        assert end == len(data)

    def test_invalid_size(self):
        with pytest.raises(HTTPParseError):
            read_chunked_body(b"zz\r\nabc\r\n0\r\n\r\n", 0, 1024)

    @pytest.mark.parametrize("size", [b"0x10", b"1_0", b"+5", b"-0", b" ", b""])
    def test_size_must_be_plain_hex(self, size):
        """int(..., 16) would accept some of these; chunk-size is HEXDIG only."""
        with pytest.raises(HTTPParseError, match="Invalid chunk size"):
            read_chunked_body(size + b"\r\n" + b"x" * 16 + b"\r\n0\r\n\r\n", 0, 1024)

    def test_size_hex_case_and_extension(self):
        body, _ = read_chunked_body(b"A;name=v\r\n0123456789\r\n0\r\n\r\n", 0, 1024)
        assert body == b"0123456789"
        body, _ = read_chunked_body(b"a\r\n0123456789\r\n0\r\n\r\n", 0, 1024)
        assert body == b"0123456789"

    def test_missing_crlf_after_data(self):
        with pytest.raises(HTTPParseError):
            read_chunked_body(b"3\r\nabcXY0\r\n\r\n", 0, 1024)

    def test_decoded_size_limit(self):
        with pytest.raises(HTTPParseError) as exc_info:
            read_chunked_body(b"a\r\n0123456789\r\n0\r\n\r\n", 0, 5)
        assert exc_info.value.status_code == 413


class TestHTTPRequest:
    """Tests for HTTPRequest class."""

    @pytest.mark.parametrize(
        "version, connection, expected",
        [
            ("HTTP/1.1", None, True),
            ("HTTP/1.1", "close", False),
            ("HTTP/1.1", "Keep-Alive, Close", False),
            ("HTTP/1.1", "keep-alive", True),
            ("HTTP/1.0", None, False),
            ("HTTP/1.0", "keep-alive", True),
            ("HTTP/1.0", "Keep-Alive", True),
            ("HTTP/1.0", "close", False),
        ],
    )
    def test_keep_alive(self, version, connection, expected):
        """Test keep-alive detection for both versions."""
        headers = {"connection": connection} if connection is not None else {}
        request = HTTPRequest(method="GET", target="/", version=version, headers=headers)
        assert request.is_keep_alive is expected
