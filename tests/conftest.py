"""
pytest configuration and fixtures.
"""

import os
import socket
import threading
from pathlib import Path
from typing import Generator, Optional
import pytest

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from assetserver import AssetServer, ServerConfig
from assetserver.http import HTTPRequest


LARGE_FILE_SIZE = 3 * 1024 * 1024 + 123  # not a multiple of any chunk size


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /css/site.css?v=3 HTTP/1.1\r\n"
        b"Host: localhost:8000\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: text/css\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def root_dir(tmp_path: Path) -> Path:
    """
    A served directory, with a secret file next to (not inside) it:

        tmp_path/
        ├── secret.txt              ← must never be served
        └── public/
            ├── sample.txt          "hello"
            ├── index.html
            ├── css/site.css
            ├── docs/index.html
            ├── empty/
            ├── big.txt             compressible, 4 KB
            ├── large.bin           ~3 MiB
            └── weird.xyz
    """
    (tmp_path / "secret.txt").write_text("top secret")

    root = tmp_path / "public"
    root.mkdir()
    (root / "sample.txt").write_text("hello")
    (root / "index.html").write_text("<h1>home</h1>")
    (root / "css").mkdir()
    (root / "css" / "site.css").write_text("body { color: red; }")
    (root / "docs").mkdir()
    (root / "docs" / "index.html").write_text("<h1>docs</h1>")
    (root / "empty").mkdir()
    (root / "big.txt").write_text("all work and no play\n" * 200)
    (root / "large.bin").write_bytes(os.urandom(LARGE_FILE_SIZE))
    (root / "weird.xyz").write_bytes(b"\x00\x01\x02")
    return root


@pytest.fixture
def config(root_dir: Path) -> ServerConfig:
    """Test server configuration rooted at root_dir."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        root_dir=str(root_dir),
        min_workers=2,
        max_workers=16,
        timeout=5.0,
        keep_alive_timeout=1.0,
        shutdown_timeout=5.0,
        chunk_size=16 * 1024,
        log_level="WARNING",
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def make_request(
    method: str = "GET",
    path: str = "/",
    headers: Optional[dict] = None,
    client_address: tuple[str, int] = ("127.0.0.1", 50000),
) -> HTTPRequest:
    """Build an HTTPRequest without going through the parser."""
    return HTTPRequest(
        method=method,
        path=path,
        headers={k.lower(): v for k, v in (headers or {}).items()},
        client_address=client_address,
    )


class RawResponse:
    """A response read off a raw socket."""

    def __init__(self, status: int, headers: dict, body: bytes):
        self.status = status
        self.headers = headers
        self.body = body

    def __repr__(self):
        return f"RawResponse({self.status}, {self.headers!r}, {len(self.body)} bytes)"


def read_response(sock: socket.socket, head_only: bool = False) -> RawResponse:
    """Read exactly one response (head + Content-Length body) from sock."""
    data = b""
    while b"\r\n\r\n" not in data:
        chunk = sock.recv(65536)
        if not chunk:
            raise ConnectionError(f"connection closed before headers: {data!r}")
        data += chunk

    head, _, body = data.partition(b"\r\n\r\n")
    lines = head.decode("latin-1").split("\r\n")
    status = int(lines[0].split(" ")[1])
    headers = {}
    for line in lines[1:]:
        name, _, value = line.partition(":")
        headers[name.strip().lower()] = value.strip()

    length = 0 if head_only or status in (204, 304) else int(headers.get("content-length", 0))
    while len(body) < length:
        chunk = sock.recv(65536)
        if not chunk:
            break
        body += chunk
    return RawResponse(status, headers, body[:length] if length else body)


def http_get(
    port: int,
    path: str,
    method: str = "GET",
    headers: Optional[dict] = None,
    version: str = "HTTP/1.1",
) -> RawResponse:
    """
    One request on a fresh connection, sent byte-for-byte as given.

    No client library: paths like /../../etc/passwd must reach the
    server unnormalized.
    """
    lines = [f"{method} {path} {version}", "Host: 127.0.0.1", "Connection: close"]
    for name, value in (headers or {}).items():
        lines.append(f"{name}: {value}")
    raw = ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1")

    with socket.create_connection(("127.0.0.1", port), timeout=10) as sock:
        sock.sendall(raw)
        return read_response(sock, head_only=(method == "HEAD"))


class TestServer:
    """Test server helper that runs in a background thread."""

    __test__ = False

    def __init__(self, server: AssetServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None
        self.error: Optional[BaseException] = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self):
        """Start server in background thread and wait until it listens."""
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError(f"Server failed to start: {self.error!r}")

    def _run(self):
        try:
            self.server.run()
        except BaseException as e:
            self.error = e

    def stop(self):
        """Stop the server and wait for the worker pool to drain."""
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=10.0)

    def get(self, path: str, **kwargs) -> RawResponse:
        return http_get(self.port, path, **kwargs)


@pytest.fixture
def test_server(config: ServerConfig) -> Generator[TestServer, None, None]:
    """A running server on a free loopback port."""
    test_srv = TestServer(AssetServer(config))
    test_srv.start()

    yield test_srv

    test_srv.stop()


@pytest.fixture
def cached_server(config: ServerConfig) -> Generator[TestServer, None, None]:
    """A running server with the in-memory cache enabled."""
    config.cache_enabled = True
    test_srv = TestServer(AssetServer(config))
    test_srv.start()

    yield test_srv

    test_srv.stop()
