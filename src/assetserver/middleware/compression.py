"""
=============================================================================
COMPRESSION MIDDLEWARE
=============================================================================

Gzips in-memory text bodies when the client accepts it.

=============================================================================
WHAT GETS COMPRESSED
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     COMPRESSION DECISION                            │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Accept-Encoding allows gzip (q > 0)?   no  → pass through         │
    │   Streamed body (file from disk)?        yes → pass through         │
    │   Already has Content-Encoding?          yes → pass through         │
    │   Body smaller than min_size?            yes → pass through         │
    │   Content-Type not text-like?            yes → pass through         │
    │   Compressed result not smaller?         yes → pass through         │
    │                                                                      │
    │   otherwise → gzip body, fix Content-Length, weaken ETag,           │
    │               add Vary: Accept-Encoding                             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Streamed bodies are never touched. Compressing them would mean either
buffering the whole file (breaking the bounded-memory guarantee) or
dropping Content-Length for chunked encoding. In practice this means
cache hits, which are already in memory, get compressed and streamed
files don't.

The ETag becomes weak (W/"...") on a compressed response: the bytes
differ from the identity representation, but the resource is the same.

=============================================================================
"""

import gzip
from typing import Optional, Set

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


def accepts_gzip_encoding(header: str) -> bool:
    """
    True if an Accept-Encoding value allows gzip.

        "gzip, deflate"        → True
        "gzip;q=0"             → False   (explicitly refused)
        "br, *;q=0.5"          → True    (wildcard)
        "*, gzip;q=0"          → False   (named coding beats the wildcard)
    """
    weights = {}
    for part in header.split(","):
        coding, _, params = part.partition(";")
        coding = coding.strip().lower()
        if not coding:
            continue
        q = 1.0
        for param in params.split(";"):
            name, _, value = param.partition("=")
            if name.strip().lower() == "q":
                try:
                    q = float(value.strip())
                except ValueError:
                    q = 0.0
        weights[coding] = q

    for coding in ("gzip", "x-gzip", "*"):
        if coding in weights:
            return weights[coding] > 0
    return False


class CompressionMiddleware(Middleware):
    """
    Response compression middleware.

        chain.add(CompressionMiddleware())                 # >1KB, level 6
        chain.add(CompressionMiddleware(min_size=256, level=9))
    """

    COMPRESSIBLE_TYPES: Set[str] = {
        "text/html",
        "text/css",
        "text/plain",
        "text/xml",
        "text/javascript",
        "text/csv",
        "text/markdown",
        "application/json",
        "application/javascript",
        "application/xml",
        "application/xhtml+xml",
        "image/svg+xml",
    }

    def __init__(
        self,
        min_size: int = 1024,
        level: int = 6,
        compressible_types: Optional[Set[str]] = None,
    ):
        """
        Args:
            min_size: Minimum body size (bytes) worth compressing.
            level: gzip level, 1 (fastest) to 9 (smallest).
            compressible_types: Content types to compress.
        """
        self.min_size = min_size
        self.level = level
        self.compressible_types = compressible_types or self.COMPRESSIBLE_TYPES

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        accepts_gzip = accepts_gzip_encoding(request.get_header("accept-encoding"))

        response = next(request)

        if not accepts_gzip or not self._should_compress(response):
            return response

        compressed_body = gzip.compress(response.body, compresslevel=self.level)
        if len(compressed_body) >= len(response.body):
            return response

        response.body = compressed_body
        response.headers["Content-Encoding"] = "gzip"
        response.headers["Content-Length"] = str(len(compressed_body))

        etag = response.headers.get("ETag")
        if etag and not etag.startswith("W/"):
            response.headers["ETag"] = f"W/{etag}"

        vary = response.headers.get("Vary", "")
        if "Accept-Encoding" not in vary:
            response.headers["Vary"] = f"{vary}, Accept-Encoding".lstrip(", ")

        return response

    def _should_compress(self, response: HTTPResponse) -> bool:
        if response.is_streamed:
            return False

        if "Content-Encoding" in response.headers:
            return False

        if len(response.body) < self.min_size:
            return False

        # "text/css; charset=utf-8" → "text/css"
        content_type = response.headers.get("Content-Type", "")
        base_type = content_type.split(";")[0].strip().lower()
        return base_type in self.compressible_types
