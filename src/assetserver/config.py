"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration management for the asset server.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m assetserver --root ./public --port 9000         │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── ASSET_ROOT=./public ASSET_PORT=9000 python -m assetserver │
    │                                                                      │
    │   3. Default values (in this dataclass)                             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Everything here is read-only once the server starts. The root directory
in particular is resolved to its canonical absolute form exactly once, by
validate(), and every containment check compares against that value.

=============================================================================
FAIL-FAST
=============================================================================

A missing root directory is a deployment mistake, not a runtime
condition. validate() raises at startup so the process exits non-zero
with a clear message instead of answering every request with 404.

=============================================================================
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


@dataclass
class ServerConfig:
    """
    Configuration for the asset server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK         host, port, backlog, buffer_size, timeout
    HTTP            keep_alive, keep_alive_timeout, max_request_size
    THREADING       min_workers, max_workers, queue_size, shutdown_timeout
    FILES           root_dir, index_file, allowed_methods, chunk_size,
                    cache_max_age
    CACHE           cache_enabled, cache_max_bytes, cache_max_file_size,
                    cache_ttl, cache_wait_timeout
    MIDDLEWARE      security_headers, compression
    LOGGING         log_level, log_format, access_log

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    port: int = 8000
    """0 lets the OS pick a free port (handy in tests)."""

    backlog: int = 128
    buffer_size: int = 8192

    timeout: Optional[float] = 30.0
    """
    Socket timeout in seconds for reads AND writes.
    A client that stops reading a streamed file is dropped after this
    long, which bounds how long its file handle stays open.
    """

    # ─────────────────────────────────────────────────────────────────────
    # HTTP SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    keep_alive: bool = True
    keep_alive_timeout: float = 5.0
    max_request_size: int = 64 * 1024

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    max_workers: int = 32
    """Long-lived workers. Past this, short-lived overflow workers take new
    connections, so stalled downloads never queue other requests."""
    queue_size: int = 256
    shutdown_timeout: float = 30.0
    """Seconds to wait for in-flight requests on SIGTERM/SIGINT."""

    # ─────────────────────────────────────────────────────────────────────
    # FILE SERVING
    # ─────────────────────────────────────────────────────────────────────

    root_dir: str = "public"
    index_file: Optional[str] = "index.html"
    allowed_methods: tuple[str, ...] = ("GET", "HEAD")
    chunk_size: int = 64 * 1024
    cache_max_age: int = 3600
    """Cache-Control max-age sent to clients (browser caching)."""

    # ─────────────────────────────────────────────────────────────────────
    # IN-MEMORY CACHE
    # ─────────────────────────────────────────────────────────────────────

    cache_enabled: bool = False
    cache_max_bytes: int = 64 * 1024 * 1024
    cache_max_file_size: int = 1024 * 1024
    cache_ttl: float = 0.0
    """Seconds an entry may live; 0 means only mtime invalidates."""
    cache_wait_timeout: float = 10.0
    """How long a request waits for another request's populating read."""

    # ─────────────────────────────────────────────────────────────────────
    # MIDDLEWARE
    # ─────────────────────────────────────────────────────────────────────

    security_headers: bool = True
    compression: bool = True

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    log_format: str = "text"
    """Access log format: 'text' (combined-style) or 'json'."""
    access_log: Optional[str] = None
    """Append access lines to this file as well as stderr."""

    server_name: str = "assetserver/1.0"

    _root: Optional[Path] = field(default=None, init=False, repr=False)

    @property
    def root(self) -> Path:
        """Canonical absolute root directory (valid after validate())."""
        if self._root is None:
            self._root = Path(self.root_dir).resolve()
        return self._root

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        ASSET_HOST              Listen host (default: 127.0.0.1)
        ASSET_PORT              Listen port (default: 8000)
        ASSET_ROOT              Directory to serve (default: public)
        ASSET_WORKERS           Long-lived worker threads (default: 32)
        ASSET_TIMEOUT           Socket timeout seconds (default: 30)
        ASSET_CHUNK_SIZE        Streaming chunk size (default: 65536)
        ASSET_CACHE             Enable in-memory cache (default: false)
        ASSET_CACHE_MAX_BYTES   Cache capacity in bytes (default: 64 MiB)
        ASSET_CACHE_TTL         Cache entry TTL seconds (default: 0 = none)
        ASSET_LOG_LEVEL         Logging level (default: INFO)
        ASSET_LOG_FORMAT        Access log format (default: text)
        ASSET_ACCESS_LOG        Access log file (default: unset)

        =====================================================================
        """
        defaults = cls()
        max_workers = int(os.getenv("ASSET_WORKERS", str(defaults.max_workers)))
        return cls(
            host=os.getenv("ASSET_HOST", defaults.host),
            port=int(os.getenv("ASSET_PORT", str(defaults.port))),
            root_dir=os.getenv("ASSET_ROOT", defaults.root_dir),
            min_workers=min(defaults.min_workers, max_workers),
            max_workers=max_workers,
            timeout=float(os.getenv("ASSET_TIMEOUT", str(defaults.timeout))),
            chunk_size=int(os.getenv("ASSET_CHUNK_SIZE", str(defaults.chunk_size))),
            cache_enabled=_env_bool("ASSET_CACHE", defaults.cache_enabled),
            cache_max_bytes=int(
                os.getenv("ASSET_CACHE_MAX_BYTES", str(defaults.cache_max_bytes))
            ),
            cache_ttl=float(os.getenv("ASSET_CACHE_TTL", str(defaults.cache_ttl))),
            log_level=os.getenv("ASSET_LOG_LEVEL", defaults.log_level),
            log_format=os.getenv("ASSET_LOG_FORMAT", defaults.log_format),
            access_log=os.getenv("ASSET_ACCESS_LOG") or None,
        )

    def validate(self) -> None:
        """
        Validate configuration values. Raises ValueError on the first problem.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.queue_size < 1:
            raise ValueError("queue_size must be >= 1")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if not self.allowed_methods:
            raise ValueError("allowed_methods must not be empty")

        if self.cache_max_bytes < 0 or self.cache_max_file_size < 0:
            raise ValueError("cache sizes must be >= 0")

        if self.cache_ttl < 0:
            raise ValueError("cache_ttl must be >= 0")

        if self.log_format not in ("text", "json"):
            raise ValueError(f"log_format must be 'text' or 'json', not {self.log_format!r}")

        self._root = Path(self.root_dir).resolve()
        if not self._root.is_dir():
            raise ValueError(f"Root directory does not exist: {self.root_dir}")
