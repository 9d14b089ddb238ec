"""
=============================================================================
ACCESS LOG MIDDLEWARE
=============================================================================

One line per request on the "assetserver.access" logger, in either a
combined-style text line or a JSON object:

    127.0.0.1 - - [18/Oct/2026:12:00:00 +0000] "GET /sample.txt HTTP/1.1" 200 5 "-" "curl/8.5.0" 0.41ms

    {"request_id": "3f9a1c2e", "method": "GET", "path": "/sample.txt",
     "client_ip": "127.0.0.1", "status_code": 200, "content_length": 5, ...}

=============================================================================
WHAT "BYTES" MEANS HERE
=============================================================================

The middleware runs when the handler returns, before a streamed body has
been written. The byte count logged is the Content-Length promised to
the client, not what the socket eventually delivered. A client that
disconnects mid-download shows up as a WARNING from the connection loop.

=============================================================================
ACCESS LOG FILE
=============================================================================

Lines always go through the logging module, so whatever handlers the
process configured (stderr by default) receive them. When `access_log`
is set, a FileHandler in append mode is attached to the access logger as
well, which keeps a standalone access.log next to the server log:

    AccessLogMiddleware(log_file="/var/log/assetserver/access.log")

=============================================================================
"""

import time
import json
import uuid
import logging
from typing import Optional
from dataclasses import dataclass, asdict

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger("assetserver.access")


@dataclass
class RequestLog:
    """
    Structured log entry for a request.

    request_id:     Short random ID, echoed in X-Request-ID
    method:         HTTP method
    path:           Raw request path (as the client sent it)
    query:          Raw query string
    client_ip:      Client's IP address
    user_agent:     User-Agent header or "-"
    referrer:       Referer header or "-"
    version:        HTTP version from the request line
    status_code:    HTTP response code
    content_length: Announced body size in bytes
    duration_ms:    Time spent producing the response
    timestamp:      CLF timestamp
    """

    request_id: str
    method: str
    path: str
    query: str
    client_ip: str
    user_agent: str
    referrer: str
    version: str
    status_code: int
    content_length: int
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        data = asdict(self)
        data["duration_ms"] = round(self.duration_ms, 2)
        return data

    def to_text(self) -> str:
        """Apache/NCSA combined log format, plus the duration."""
        target = self.path + (f"?{self.query}" if self.query else "")
        return (
            f'{self.client_ip} - - [{self.timestamp}] '
            f'"{self.method} {target} {self.version}" {self.status_code} '
            f'{self.content_length} "{self.referrer}" "{self.user_agent}" '
            f'{self.duration_ms:.2f}ms'
        )


class AccessLogMiddleware(Middleware):
    """
    Request logging middleware. Should be FIRST in the chain so every
    response, including errors produced by other middleware, is logged.

        chain.add(AccessLogMiddleware(log_format="json"))
    """

    def __init__(
        self,
        log_format: str = "text",
        log_file: Optional[str] = None,
        include_request_id: bool = True,
        log_level: int = logging.INFO,
    ):
        """
        Args:
            log_format: "text" (combined) or "json".
            log_file: Also append access lines to this file.
            include_request_id: Add X-Request-ID to every response.
            log_level: Level access lines are emitted at.
        """
        self.log_format = log_format
        self.include_request_id = include_request_id
        self.log_level = log_level
        self._file_handler: Optional[logging.FileHandler] = None

        if log_file:
            self._file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
            self._file_handler.setFormatter(logging.Formatter("%(message)s"))
            logger.addHandler(self._file_handler)
            if logger.level == logging.NOTSET or logger.level > log_level:
                logger.setLevel(log_level)

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        request_id = uuid.uuid4().hex[:8]
        start_time = time.perf_counter()

        try:
            response = next(request)
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                "Request failed: %s %s - %s: %s (%.2fms)",
                request.method, request.path, type(e).__name__, e, duration_ms,
            )
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000

        entry = RequestLog(
            request_id=request_id,
            method=request.method,
            path=request.path,
            query=request.query,
            client_ip=request.client_address[0] or "-",
            user_agent=request.user_agent or "-",
            referrer=request.get_header("referer") or "-",
            version=request.version,
            status_code=int(response.status),
            content_length=response.content_length,
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

        if self.log_format == "json":
            logger.log(self.log_level, json.dumps(entry.to_dict()))
        else:
            logger.log(self.log_level, entry.to_text())

        if self.include_request_id:
            response.headers["X-Request-ID"] = request_id

        return response

    def close(self) -> None:
        """Detach and close the access log file, if any."""
        if self._file_handler is not None:
            logger.removeHandler(self._file_handler)
            self._file_handler.close()
            self._file_handler = None
