"""
=============================================================================
STATIC FILE HANDLER
=============================================================================

Maps a request path onto a file under the root directory and answers
with its bytes.

=============================================================================
SECURITY: PATH TRAVERSAL
=============================================================================

The request path is attacker-controlled. Everything below exists to make
sure it can only ever name something inside the root:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      PATH RESOLUTION                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   GET /css/%2e%2e/../../etc/passwd?v=1                              │
    │                                                                      │
    │   1. drop query / fragment   /css/%2e%2e/../../etc/passwd           │
    │   2. percent-decode ONCE     /css/../../../etc/passwd               │
    │   3. walk the segments       css → pop → pop ← above root!          │
    │                              → 403 Forbidden, disk never touched    │
    │                                                                      │
    │   GET /assets/link-to-etc/passwd      (symlink inside root)         │
    │                                                                      │
    │   4. join to root, resolve   /etc/passwd   (symlink followed)       │
    │   5. containment check       /etc/passwd.relative_to(root)          │
    │                              → ValueError → 403 Forbidden           │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Step 5 compares canonical paths component by component, so a sibling
directory like /srv/public-secrets can't pass as a child of /srv/public
the way a string prefix check would let it.

Decoding happens exactly once. "%252e%252e" decodes to the literal text
"%2e%2e", which is just an odd file name, never "..".

=============================================================================
SERVING
=============================================================================

    resolve ─► stat ─► directory? ─► index.html (contained again)
                  │
                  ▼
            cache hit? ──yes──► in-memory body
                  │no
                  ▼
            open ─► fstat ─► 304? / HEAD? ─► close handle, headers only
                  │
                  ▼
            FileStream (bounded chunks, closed by the connection loop)

Open failures are classified by cause:

    FileNotFoundError / IsADirectoryError / NotADirectoryError → 404
    ELOOP (symlink loop) / ENAMETOOLONG                         → 404
    anything else (PermissionError, EIO, EMFILE...)            → 500

=============================================================================
"""

import errno
import os
import stat
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Iterable, Optional
from urllib.parse import unquote

from ..config import ServerConfig
from ..errors import AssetError, Forbidden, NotFound, MethodNotAllowed, InternalError
from ..http.request import HTTPRequest
from ..http.response import (
    HTTPResponse, ResponseBuilder, HTTPStatus,
    format_http_date, parse_http_date,
    forbidden, not_found, method_not_allowed, internal_error,
)
from ..http.mime_types import get_content_type
from .cache import FileCache
from .stream import FileStream


logger = logging.getLogger(__name__)

# Failures that mean "there is no such file here" rather than "we broke"
_ABSENT_ERRNOS = {errno.ELOOP, errno.ENAMETOOLONG}


def _open_file(path: Path) -> BinaryIO:
    """Open `path` for binary reads. The caller owns the returned handle."""
    return open(path, "rb")


def make_etag(size: int, mtime_ns: int) -> str:
    """Strong validator from file metadata: "<mtime_ns hex>-<size hex>"."""
    return f'"{mtime_ns:x}-{size:x}"'


def _etag_matches(header: str, etag: str) -> bool:
    """Weak comparison against an If-None-Match list (RFC 7232 §3.2)."""
    if header.strip() == "*":
        return True
    for candidate in header.split(","):
        candidate = candidate.strip()
        if candidate.startswith("W/"):
            candidate = candidate[2:]
        if candidate == etag:
            return True
    return False


class StaticFileHandler:
    """
    Serves files from one root directory.

    Safe to call concurrently from any number of worker threads: the only
    mutable state is the optional FileCache (internally locked) and the
    active stream counter.

    =========================================================================
    USAGE
    =========================================================================

        handler = StaticFileHandler("/var/www/public", chunk_size=65536)
        response = handler.handle(request)
        try:
            ...write response...
        finally:
            response.close()

    =========================================================================
    """

    def __init__(
        self,
        root_dir: str | Path,
        index_file: Optional[str] = "index.html",
        allowed_methods: Iterable[str] = ("GET", "HEAD"),
        chunk_size: int = 64 * 1024,
        cache_max_age: int = 3600,
        cache: Optional[FileCache] = None,
    ):
        """
        Args:
            root_dir: Directory to serve. Resolved to its canonical form once.
            index_file: File served for directory requests; None disables.
            allowed_methods: Methods answered; everything else gets 405.
            chunk_size: Upper bound on bytes read per streamed chunk.
            cache_max_age: Cache-Control max-age for successful responses.
            cache: Optional in-memory FileCache.
        """
        self.root_dir = Path(root_dir).resolve()
        if not self.root_dir.is_dir():
            raise ValueError(f"Root directory does not exist: {root_dir}")

        self.index_file = index_file
        self.allowed_methods = tuple(allowed_methods)
        self.chunk_size = chunk_size
        self.cache_max_age = cache_max_age
        self.cache = cache

        self._streams_lock = threading.Lock()
        self._active_streams = 0

    @classmethod
    def from_config(cls, config: ServerConfig) -> "StaticFileHandler":
        cache = None
        if config.cache_enabled:
            cache = FileCache(
                max_bytes=config.cache_max_bytes,
                max_file_size=config.cache_max_file_size,
                ttl=config.cache_ttl,
                wait_timeout=config.cache_wait_timeout,
            )
        return cls(
            config.root,
            index_file=config.index_file,
            allowed_methods=config.allowed_methods,
            chunk_size=config.chunk_size,
            cache_max_age=config.cache_max_age,
            cache=cache,
        )

    @property
    def active_streams(self) -> int:
        """Number of file handles currently held by streamed responses."""
        return self._active_streams

    # =========================================================================
    # REQUEST BOUNDARY
    # =========================================================================

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """
        Answer one request.

        Every AssetError raised while resolving or opening is turned into
        its generic error response here. Details go to the log only.
        """
        try:
            return self._serve(request)
        except MethodNotAllowed as e:
            return method_not_allowed(e.allowed)
        except Forbidden as e:
            logger.warning(
                "Forbidden path %r from %s: %s",
                request.path, request.client_address[0], e.detail,
            )
            return forbidden()
        except NotFound as e:
            logger.debug("Not found %r: %s", request.path, e.detail)
            return not_found()
        except InternalError as e:
            logger.error(
                "Failed to serve %r: %s", request.path, e.detail,
                exc_info=e.cause,
            )
            return internal_error()

    # =========================================================================
    # PATH RESOLUTION
    # =========================================================================

    def resolve(self, raw_path: str) -> Path:
        """
        Turn a raw request target into a canonical path inside the root.

        Raises:
            Forbidden: The path climbs above the root, contains a NUL byte,
                       or its canonical form lies outside the root.
            NotFound: The path can't be resolved (symlink loop).
        """
        path = raw_path.split("?", 1)[0].split("#", 1)[0]
        decoded = unquote(path)

        if "\x00" in decoded:
            raise Forbidden(f"NUL byte in path {raw_path!r}")

        segments: list[str] = []
        for segment in decoded.split("/"):
            if segment in ("", "."):
                continue
            if segment == "..":
                if not segments:
                    raise Forbidden(f"path climbs above root: {raw_path!r}")
                segments.pop()
            else:
                segments.append(segment)

        return self._contain(self.root_dir.joinpath(*segments), raw_path)

    def _contain(self, candidate: Path, raw_path: str) -> Path:
        try:
            resolved = candidate.resolve()
        except (OSError, RuntimeError) as e:
            raise NotFound(f"cannot resolve {candidate}: {e}") from e

        try:
            resolved.relative_to(self.root_dir)
        except ValueError:
            raise Forbidden(f"{raw_path!r} resolves outside root to {resolved}")
        return resolved

    # =========================================================================
    # SERVING
    # =========================================================================

    def _serve(self, request: HTTPRequest) -> HTTPResponse:
        if request.method not in self.allowed_methods:
            raise MethodNotAllowed(request.method, self.allowed_methods)

        path, st = self._locate(self.resolve(request.path), request.path)
        is_head = request.method == "HEAD"

        if self.cache is not None and not is_head:
            try:
                entry = self.cache.fetch(path, st)
            except OSError as e:
                raise self._classify(path, e) from e
            if entry is not None:
                builder = self._success_headers(path, entry.size, entry.mtime_ns)
                if self._not_modified(request, entry.size, entry.mtime_ns):
                    return self._not_modified_response(builder)
                return builder.body(entry.data).build()

        fh = self._open(path)
        try:
            st = os.fstat(fh.fileno())
        except OSError as e:
            fh.close()
            raise InternalError(f"fstat {path}: {e}", cause=e) from e

        builder = self._success_headers(path, st.st_size, st.st_mtime_ns)

        if self._not_modified(request, st.st_size, st.st_mtime_ns):
            fh.close()
            return self._not_modified_response(builder)

        if is_head:
            fh.close()
            return builder.header("Content-Length", str(st.st_size)).build()

        stream = FileStream(
            fh, length=st.st_size, chunk_size=self.chunk_size,
            on_close=self._stream_closed,
        )
        with self._streams_lock:
            self._active_streams += 1
        return builder.stream(stream, st.st_size).build()

    def _locate(self, path: Path, raw_path: str) -> tuple[Path, os.stat_result]:
        """Find the regular file to serve, descending into index files."""
        st = self._stat(path)

        if stat.S_ISDIR(st.st_mode):
            if not self.index_file:
                raise NotFound(f"{path} is a directory")
            path = self._contain(path / self.index_file, raw_path)
            st = self._stat(path)

        if not stat.S_ISREG(st.st_mode):
            # Directories without index, FIFOs, sockets, devices
            raise NotFound(f"{path} is not a regular file")
        return path, st

    def _stat(self, path: Path) -> os.stat_result:
        try:
            return os.stat(path)
        except OSError as e:
            raise self._classify(path, e) from e

    def _open(self, path: Path) -> BinaryIO:
        try:
            return _open_file(path)
        except OSError as e:
            raise self._classify(path, e) from e

    @staticmethod
    def _classify(path: Path, error: OSError) -> AssetError:
        if isinstance(error, (FileNotFoundError, IsADirectoryError, NotADirectoryError)):
            return NotFound(f"{path}: {error.strerror}")
        if error.errno in _ABSENT_ERRNOS:
            return NotFound(f"{path}: {error.strerror}")
        return InternalError(f"cannot read {path}: {error}", cause=error)

    def _success_headers(self, path: Path, size: int, mtime_ns: int) -> ResponseBuilder:
        last_modified = datetime.fromtimestamp(mtime_ns / 1e9, tz=timezone.utc)
        return (ResponseBuilder()
            .status(HTTPStatus.OK)
            .content_type(get_content_type(path))
            .header("ETag", make_etag(size, mtime_ns))
            .header("Last-Modified", format_http_date(last_modified))
            .cache(self.cache_max_age))

    def _not_modified(self, request: HTTPRequest, size: int, mtime_ns: int) -> bool:
        """
        Evaluate conditional headers (RFC 7232 §6).

        If-None-Match wins when present; If-Modified-Since is only
        consulted without it.
        """
        if_none_match = request.get_header("if-none-match")
        if if_none_match:
            return _etag_matches(if_none_match, make_etag(size, mtime_ns))

        if_modified_since = request.get_header("if-modified-since")
        if if_modified_since:
            since = parse_http_date(if_modified_since)
            if since is not None:
                # HTTP dates have one-second resolution
                return mtime_ns // 1_000_000_000 <= int(since.timestamp())
        return False

    @staticmethod
    def _not_modified_response(builder: ResponseBuilder) -> HTTPResponse:
        response = builder.status(HTTPStatus.NOT_MODIFIED).build()
        response.headers.pop("Content-Type", None)
        return response

    def _stream_closed(self, stream: FileStream) -> None:
        with self._streams_lock:
            self._active_streams -= 1


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# 1. resolve() is the only way a request path becomes a filesystem path.
#    It rejects climbing above the root before touching disk, then
#    re-checks containment on the canonical (symlink-free) path.
# 2. Absence is 404, every other OS failure is 500; neither leaks detail.
# 3. Bodies are streamed with a FileStream, or served from the optional
#    FileCache when the file is small and unchanged.
# =============================================================================
