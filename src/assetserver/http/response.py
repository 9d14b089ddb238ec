"""
=============================================================================
HTTP RESPONSE
=============================================================================

Builds HTTP responses and serializes them for the socket.

=============================================================================
TWO KINDS OF BODY
=============================================================================

A static asset server sends two very different kinds of body:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        RESPONSE BODY KINDS                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   IN-MEMORY (body: bytes)          STREAMED (stream: BodyStream)    │
    │   ───────────────────────          ──────────────────────────────   │
    │                                                                      │
    │   • Error messages (404, 500...)   • File contents from disk        │
    │   • Cache hits                     • Any size, even gigabytes       │
    │   • Small, already in RAM          • Read in bounded chunks         │
    │                                    • Owns an open file handle!      │
    │                                                                      │
    │   head + body in one sendall()     head, then chunk, chunk, chunk.. │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Streamed bodies hold an OS resource, so every response has a close()
method. The connection loop calls it exactly once, whether the write
finished, failed halfway, or never started:

        response = handler(request)
        try:
            write head
            for chunk in response.iter_body():
                write chunk            ← client may vanish here
        finally:
            response.close()           ← file handle released, always

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional, Dict, Any, Iterator, Protocol, Union
import json

from .status_codes import HTTPStatus


class BodyStream(Protocol):
    """A response body produced chunk by chunk that must be closed."""

    def __iter__(self) -> Iterator[bytes]: ...

    def close(self) -> None: ...


# Statuses that never carry a message body (RFC 7230 §3.3.3)
_BODYLESS_STATUSES = {HTTPStatus.NO_CONTENT, HTTPStatus.NOT_MODIFIED}


@dataclass
class HTTPResponse:
    """
    Represents an HTTP response to be sent to the client.

    Use ResponseBuilder for a more convenient way to construct responses.

    Attributes:
        status:  HTTP status code.
        headers: Response headers (case as written).
        body:    In-memory body bytes.
        stream:  Streamed body. When set, `body` is ignored and the
                 Content-Length header must be set by whoever built it.
        version: HTTP version for the status line.
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    stream: Optional[BodyStream] = None
    version: str = "HTTP/1.1"
    _closed: bool = field(default=False, repr=False)

    @property
    def status_line(self) -> str:
        """Get the status line, e.g. "HTTP/1.1 200 OK"."""
        return f"{self.version} {self.status} {self.status.phrase}"

    @property
    def is_streamed(self) -> bool:
        """True when the body comes from a BodyStream."""
        return self.stream is not None

    @property
    def content_length(self) -> int:
        """
        Number of body bytes announced to the client.

        Uses the Content-Length header when present (streams, HEAD
        responses), otherwise the in-memory body length.
        """
        declared = self.headers.get("Content-Length")
        if declared is not None:
            return int(declared)
        return len(self.body)

    def head_bytes(self, server_name: str = "assetserver/1.0") -> bytes:
        """
        Serialize the status line and headers (everything before the body).

        =====================================================================
        SERIALIZATION FORMAT
        =====================================================================

            HTTP/1.1 200 OK\r\n               ← Status line
            Content-Type: text/plain\r\n
            Content-Length: 5\r\n             ← Auto-added if missing
            Date: Sun, 18 Oct 2026 ...\r\n    ← Auto-added
            Server: assetserver/1.0\r\n       ← Auto-added
            \r\n                              ← Empty line (separator)

        =====================================================================
        """
        response_headers = dict(self.headers)

        if self.status in _BODYLESS_STATUSES:
            response_headers.pop("Content-Length", None)
        elif "Content-Length" not in response_headers:
            response_headers["Content-Length"] = str(len(self.body))

        if "Date" not in response_headers:
            response_headers["Date"] = format_http_date(datetime.now(timezone.utc))

        if "Server" not in response_headers:
            response_headers["Server"] = server_name

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        return "\r\n".join(lines).encode("latin-1") + b"\r\n"

    def iter_body(self) -> Iterator[bytes]:
        """Yield the body in the chunks it should be written in."""
        if self.status in _BODYLESS_STATUSES:
            return
        if self.stream is not None:
            yield from self.stream
        elif self.body:
            yield self.body

    def to_bytes(self, server_name: str = "assetserver/1.0") -> bytes:
        """
        Serialize the whole response (head + in-memory body).

        Streamed responses must be written with head_bytes() and
        iter_body(); materializing them here would defeat streaming.
        """
        if self.stream is not None:
            raise ValueError("Streamed responses cannot be serialized in one piece")
        if self.status in _BODYLESS_STATUSES:
            return self.head_bytes(server_name)
        return self.head_bytes(server_name) + self.body

    def close(self) -> None:
        """Release the body stream. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self.stream is not None:
            self.stream.close()


class ResponseBuilder:
    """
    Fluent builder for constructing HTTP responses.

        response = (ResponseBuilder()
            .status(HTTPStatus.OK)
            .content_type("text/css; charset=utf-8")
            .header("ETag", '"abc"')
            .stream(file_stream, length=1234)
            .build())

    Each method returns `self`, except build().
    """

    def __init__(self):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""
        self._stream: Optional[BodyStream] = None

    def status(self, status: HTTPStatus) -> "ResponseBuilder":
        """Set the HTTP status code."""
        self._status = status
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        """Add a single response header."""
        self._headers[name] = value
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        """Set the Content-Type header."""
        return self.header("Content-Type", content_type)

    # =========================================================================
    # BODY METHODS
    # =========================================================================

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        """Set the response body (raw bytes or string)."""
        if isinstance(body, str):
            self._body = body.encode("utf-8")
        else:
            self._body = body
        return self

    def json(self, data: Any) -> "ResponseBuilder":
        """Set a JSON response body."""
        self._body = json.dumps(data, ensure_ascii=False).encode("utf-8")
        self._headers["Content-Type"] = "application/json; charset=utf-8"
        return self

    def stream(self, stream: BodyStream, length: int) -> "ResponseBuilder":
        """
        Set a streamed body of exactly `length` bytes.

        Content-Length is fixed up front so the client knows where the
        body ends and the connection can be reused afterwards.
        """
        self._stream = stream
        self._headers["Content-Length"] = str(length)
        return self

    # =========================================================================
    # CACHING METHODS
    # =========================================================================

    def cache(self, max_age: int = 3600) -> "ResponseBuilder":
        """Add Cache-Control: public, max-age=<max_age>."""
        self._headers["Cache-Control"] = f"public, max-age={max_age}"
        return self

    def no_cache(self) -> "ResponseBuilder":
        """Add headers that forbid caching (used for error responses)."""
        self._headers["Cache-Control"] = "no-store"
        return self

    def build(self) -> HTTPResponse:
        """Build and return the HTTPResponse object."""
        return HTTPResponse(
            status=self._status,
            headers=self._headers,
            body=self._body,
            stream=self._stream,
        )


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an HTTP-date (RFC 7231).

    Format: Day, DD Mon YYYY HH:MM:SS GMT
    Example: Sun, 18 Oct 2026 12:00:00 GMT

    HTTP dates are ALWAYS in GMT (UTC), never local time.
    """
    dt = dt.astimezone(timezone.utc)
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


def parse_http_date(value: str) -> Optional[datetime]:
    """
    Parse an HTTP-date header value into an aware UTC datetime.

    Returns None for anything unparseable; a bad If-Modified-Since must
    be ignored, not turned into an error.
    """
    try:
        dt = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================
#
# Error bodies are deliberately generic: the reason phrase and nothing
# else. No paths, no exception text.
#
# =============================================================================

def error_response(status: HTTPStatus) -> HTTPResponse:
    """Create an error response whose body is only the reason phrase."""
    return (ResponseBuilder()
        .status(status)
        .json({"error": status.phrase})
        .no_cache()
        .build())


def forbidden() -> HTTPResponse:
    """Create a 403 Forbidden response."""
    return error_response(HTTPStatus.FORBIDDEN)


def not_found() -> HTTPResponse:
    """Create a 404 Not Found response."""
    return error_response(HTTPStatus.NOT_FOUND)


def method_not_allowed(allowed_methods: list[str]) -> HTTPResponse:
    """
    Create a 405 Method Not Allowed response.

    Includes the Allow header listing valid methods (RFC 7231 requirement).
    """
    response = error_response(HTTPStatus.METHOD_NOT_ALLOWED)
    response.headers["Allow"] = ", ".join(allowed_methods)
    return response


def internal_error() -> HTTPResponse:
    """Create a 500 Internal Server Error response."""
    return error_response(HTTPStatus.INTERNAL_SERVER_ERROR)
