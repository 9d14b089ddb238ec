"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Parses raw HTTP/1.x request bytes into HTTPRequest objects.
Implements the parts of RFC 7230 a static asset server needs.

=============================================================================
WHAT A STATIC SERVER READS FROM A REQUEST
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     HTTP REQUEST STRUCTURE                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    GET /css/site%20main.css?v=3 HTTP/1.1\r\n                        │
    │    ─┬─ ────────────┬──────────  ────┬────                           │
    │     │              │                │                                │
    │   Method        Target           Version                            │
    │                    │                                                 │
    │         ┌──────────┴──────────┐                                     │
    │       Path (RAW!)          Query                                    │
    │   /css/site%20main.css      v=3                                     │
    │                                                                      │
    │    Host: localhost:8000\r\n                                         │
    │    If-None-Match: "5f1a-2c"\r\n      ← optional, for 304s           │
    │    Accept-Encoding: gzip\r\n         ← optional, for compression    │
    │    \r\n                                                              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
WHY IS THE PATH LEFT PERCENT-ENCODED?
=============================================================================

The path is attacker-controlled. Decoding it is part of path resolution,
and path resolution is where the traversal check lives. If the parser
decoded "%2e%2e" into ".." here, and some later step decoded again, a
double-encoded payload could slip through one of the two places. So the
parser hands over exactly what came off the wire and the static handler
owns decoding, normalization and containment in one place.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Dict, Optional
from urllib.parse import urlsplit
import re


class HTTPParseError(Exception):
    """
    Raised when HTTP request parsing fails.

    Carries the HTTP status code that should be returned to the client:

        400 Bad Request                 - Malformed request syntax
        413 Payload Too Large           - Request exceeds size limit
        414 URI Too Long                - Request target exceeds limit
        505 HTTP Version Not Supported  - Unknown HTTP version
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code  # HTTP status to return


@dataclass(frozen=True)
class HTTPRequest:
    """
    A parsed HTTP request. Immutable once received.

    Attributes:
        method:         Request method, uppercase ("GET", "HEAD", ...).
        path:           Raw request path, still percent-encoded, no query.
        version:        "HTTP/1.1" or "HTTP/1.0".
        headers:        Header dict with LOWERCASE keys.
        query:          Raw query string (without "?"), kept for logging.
        body:           Request body bytes (normally empty for GET/HEAD).
        client_address: (ip, port) of the peer.
    """

    method: str
    path: str
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    query: str = ""
    body: bytes = b""
    client_address: tuple[str, int] = ("", 0)

    @property
    def user_agent(self) -> str:
        """Get the User-Agent header value."""
        return self.headers.get("user-agent", "")

    @property
    def is_keep_alive(self) -> bool:
        """
        Check if this connection should be kept alive.

        HTTP/1.1 keeps alive unless "Connection: close" is sent.
        HTTP/1.0 closes unless "Connection: keep-alive" is sent.
        """
        connection = self.headers.get("connection", "").lower()

        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    def get_header(self, name: str, default: str = "") -> str:
        """Get a header value (case-insensitive lookup)."""
        return self.headers.get(name.lower(), default)


class RequestParser:
    """
    Parses raw HTTP request bytes into HTTPRequest objects.

    ==========================================================================
    PARSER ARCHITECTURE
    ==========================================================================

        Raw Request Bytes
              │
              ▼
        ┌─────────────────┐
        │ Size check      │ ─── too big ──► 413
        └────────┬────────┘
                 ▼
        ┌─────────────────┐
        │ Request line    │ ─── malformed ──► 400 / 414 / 505
        └────────┬────────┘
                 ▼
        ┌─────────────────┐
        │ Headers         │   lowercase names, folded duplicates
        └────────┬────────┘
                 ▼
        ┌─────────────────┐
        │ Body            │   exactly Content-Length bytes
        └────────┬────────┘
                 ▼
        HTTPRequest dataclass

    The parser does NOT decide whether a method is allowed; any syntactic
    method token is accepted and the static handler answers 405 with an
    Allow header for anything it does not serve.

    ==========================================================================
    """

    # METHOD = token of uppercase letters; version = HTTP/X.Y
    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    def __init__(
        self,
        max_request_size: int = 64 * 1024,
        max_uri_length: int = 8192,
    ):
        """
        Initialize the request parser.

        Args:
            max_request_size: Maximum allowed request size in bytes.
                              A static server only receives request heads,
                              so the default is small (64 KB).
            max_uri_length: Maximum request-target length (414 beyond it).
        """
        self.max_request_size = max_request_size
        self.max_uri_length = max_uri_length

    def parse(
        self,
        data: bytes,
        client_address: tuple[str, int] = ("", 0)
    ) -> HTTPRequest:
        """
        Parse raw HTTP request data into an HTTPRequest object.

        Args:
            data: Raw HTTP request bytes from socket.
            client_address: Client's (ip, port) tuple for logging.

        Returns:
            Parsed HTTPRequest object.

        Raises:
            HTTPParseError: If the request is malformed.
        """
        # =====================================================================
        # STEP 1: Security check - reject oversized requests
        # =====================================================================
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(data)} bytes",
                status_code=413
            )

        # =====================================================================
        # STEP 2: Split headers and body at the \r\n\r\n boundary
        # =====================================================================
        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        # latin-1 maps every byte to a code point, so decoding never fails
        header_section = data[:header_end].decode("latin-1")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")

        # =====================================================================
        # STEP 3: Request line and headers
        # =====================================================================
        method, path, query, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        # =====================================================================
        # STEP 4: Body (exactly Content-Length bytes)
        # =====================================================================
        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError("Invalid Content-Length header")
        if content_length < 0:
            raise HTTPParseError("Invalid Content-Length header")
        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            query=query,
            body=body[:content_length],
            client_address=client_address,
        )

    def _parse_request_line(self, line: str) -> tuple[str, str, str, str]:
        """
        Parse the request line into (method, raw path, raw query, version).

        Both origin-form ("/a/b?x") and absolute-form
        ("http://host/a/b?x") targets are accepted; only the path and
        query of the latter are kept.
        """
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError("Invalid request line")

        method, target, version = match.groups()

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=505
            )

        if len(target) > self.max_uri_length:
            raise HTTPParseError("Request target too long", status_code=414)

        if target.startswith("/"):
            # Origin-form. Not urlsplit(): "//etc/passwd" would become a netloc
            target = target.split("#", 1)[0]
            path, _, query = target.partition("?")
        else:
            parts = urlsplit(target)
            if not parts.scheme:
                raise HTTPParseError("Request target must be an absolute path")
            path, query = parts.path or "/", parts.query

        return method, path, query, version

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        """
        Parse HTTP headers into a dictionary with lowercase names.

        Repeated headers are folded into one comma-separated value, and
        obsolete continuation lines (leading whitespace) are appended to
        the previous header.
        """
        headers: Dict[str, str] = {}
        current_name: Optional[str] = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue  # Lenient: skip malformed header lines

            name, value = match.groups()
            name = name.strip().lower()
            value = value.strip()
            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers

