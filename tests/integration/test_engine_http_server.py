"""Integration tests running the engine against a local HTTP server."""

import gzip
import hashlib
import json
import threading
from collections.abc import Generator
from http.server import BaseHTTPRequestHandler, HTTPServer
from urllib.parse import parse_qs, urlsplit
from urllib.request import parse_http_list, parse_keqv_list

import pytest

from httpengine.engine import HttpExecutionEngine
from httpengine.errors import HttpClientError, TransportErrorClass
from httpengine.metrics import EngineMetrics
from httpengine.query import QueryConfigurationBuilder
from httpengine.query.models import PaginationParametersLocation
from httpengine.service import HttpClientService


REALM = "engine-tests"
NONCE = "dcd98b7102dd2f0e8b11d0f600bfb0c093"
USER = "Mufasa"
PASSWORD = "Circle Of Life"  # noqa: S105


def md5(text: str) -> str:
    return hashlib.md5(text.encode(), usedforsecurity=False).hexdigest()


class EngineTestHandler(BaseHTTPRequestHandler):
    """Serves JSON pages, redirections, Digest-protected and gzip resources."""

    def log_message(self, format: str, *args: object) -> None:  # noqa: A002
        """Suppress log messages during tests."""

    def do_GET(self) -> None:  # noqa: N802
        """Route GET requests on the path."""
        url = urlsplit(self.path)
        query = parse_qs(url.query)

        if url.path == "/items":
            offset = int(query.get("offset", ["0"])[0])
            limit = int(query.get("limit", ["10"])[0])
            items = [{"id": i} for i in range(offset, min(offset + limit, 5))]
            self._send(200, json.dumps({"items": items}).encode(), "application/json")
        elif url.path == "/moved":
            self._redirect("/items")
        elif url.path == "/loop":
            self._redirect("/loop")
        elif url.path == "/digest":
            self._digest()
        elif url.path == "/compressed":
            body = "compressed payload é".encode()
            if "gzip" in self.headers.get("Accept-Encoding", ""):
                self.send_response(200)
                self.send_header("Content-Type", "text/plain; charset=utf-8")
                self.send_header("Content-Encoding", "gzip")
                compressed = gzip.compress(body)
                self.send_header("Content-Length", str(len(compressed)))
                self.end_headers()
                self.wfile.write(compressed)
            else:
                self._send(200, body, "text/plain; charset=utf-8")
        else:
            self._send(404, b"not found", "text/plain")

    def do_POST(self) -> None:  # noqa: N802
        """Echo the request body and content type."""
        length = int(self.headers.get("Content-Length", "0"))
        body = self.rfile.read(length).decode("utf-8")
        payload = {"content_type": self.headers.get("Content-Type"), "body": body}
        self._send(200, json.dumps(payload).encode(), "application/json; charset=utf-8")

    def _redirect(self, location: str) -> None:
        self.send_response(302)
        self.send_header("Location", location)
        self.send_header("Content-Length", "0")
        self.end_headers()

    def _digest(self) -> None:
        authorization = self.headers.get("Authorization", "")
        if authorization.startswith("Digest ") and self._valid_digest(authorization[7:]):
            self._send(200, b"welcome", "text/plain")
            return

        self.send_response(401)
        self.send_header(
            "WWW-Authenticate",
            f'Digest realm="{REALM}", nonce="{NONCE}", qop="auth", algorithm=MD5',
        )
        self.send_header("Content-Length", "0")
        self.end_headers()

    def _valid_digest(self, value: str) -> bool:
        fields = parse_keqv_list(parse_http_list(value))
        ha1 = md5(f"{USER}:{REALM}:{PASSWORD}")
        ha2 = md5(f"GET:{fields.get('uri')}")
        expected = md5(
            f"{ha1}:{NONCE}:{fields.get('nc')}:{fields.get('cnonce')}:auth:{ha2}"
        )
        return (
            fields.get("username") == USER
            and fields.get("uri") == self.path
            and fields.get("response") == expected
        )

    def _send(self, status: int, body: bytes, content_type: str) -> None:
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)


@pytest.fixture
def server_url() -> Generator[str]:
    """Start the test server and yield its base URL."""
    server = HTTPServer(("127.0.0.1", 0), EngineTestHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    host, port = server.server_address[0], server.server_address[1]
    if isinstance(host, bytes):
        host = host.decode("utf-8")
    yield f"http://{host}:{port}"
    server.shutdown()
    server.server_close()


@pytest.fixture(autouse=True)
def reset_metrics() -> None:
    EngineMetrics.reset()


class TestEngineAgainstServer:
    """End-to-end calls through HttpxTransport."""

    def test_get_json(self, server_url: str) -> None:
        """Test a plain GET."""
        config = QueryConfigurationBuilder.create(f"{server_url}/items").build()

        response = HttpExecutionEngine().invoke(config)

        assert response.status.code == 200
        assert len(json.loads(response.get_body_as_string())["items"]) == 5

    def test_relative_redirection(self, server_url: str) -> None:
        """Test that a relative Location is followed on the same server."""
        config = QueryConfigurationBuilder.create(f"{server_url}/moved").build()

        response = HttpExecutionEngine().invoke(config)

        assert response.status.code == 200
        assert response.url == f"{server_url}/items"
        assert EngineMetrics.get_instance().http_redirects_total == 1

    def test_redirect_loop(self, server_url: str) -> None:
        """Test that a self redirecting resource fails as a loop."""
        config = QueryConfigurationBuilder.create(f"{server_url}/loop").build()

        with pytest.raises(HttpClientError) as exc_info:
            HttpExecutionEngine().invoke(config)

        assert exc_info.value.transport_error_class == TransportErrorClass.REDIRECT_LOOP

    def test_digest_authentication(self, server_url: str) -> None:
        """Test that the Digest challenge is answered."""
        config = (
            QueryConfigurationBuilder.create(f"{server_url}/digest")
            .set_digest_authentication(USER, PASSWORD)
            .build()
        )

        response = HttpExecutionEngine().invoke(config)

        assert response.status.code == 200
        assert response.get_body_as_string() == "welcome"

    def test_digest_wrong_password(self, server_url: str) -> None:
        """Test that a wrong password ends with the server's 401."""
        config = (
            QueryConfigurationBuilder.create(f"{server_url}/digest")
            .set_digest_authentication(USER, "wrong")
            .build()
        )

        response = HttpExecutionEngine().invoke(config)

        assert response.status.code == 401

    def test_gzip_decompressed(self, server_url: str) -> None:
        """Test that a gzip payload is decoded when decompression is on."""
        config = (
            QueryConfigurationBuilder.create(f"{server_url}/compressed")
            .decompress_response_payload(True)
            .build()
        )

        response = HttpExecutionEngine().invoke(config)

        assert response.get_body_as_string() == "compressed payload é"

    def test_post_urlencoded(self, server_url: str) -> None:
        """Test that a url-encoded body reaches the server."""
        config = (
            QueryConfigurationBuilder.create(f"{server_url}/echo")
            .set_method("POST")
            .add_x_www_form_urlencoded_body_param("name", "a b")
            .build()
        )

        echoed = json.loads(HttpExecutionEngine().invoke(config).get_body_as_string())

        assert echoed == {
            "content_type": "application/x-www-form-urlencoded",
            "body": "name=a+b",
        }

    def test_paginated_iteration(self, server_url: str) -> None:
        """Test that pages are fetched until the server returns no item."""
        config = (
            QueryConfigurationBuilder.create(f"{server_url}/items")
            .set_offset_limit_pagination(
                PaginationParametersLocation.QUERY_PARAMETERS,
                "offset",
                "0",
                "limit",
                "2",
                ".items",
            )
            .build()
        )

        pages = list(HttpClientService().iterate_pages(config))

        assert [page.get_last_page_count() for page in pages] == [2, 2, 1, 0]
