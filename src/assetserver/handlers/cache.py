"""
=============================================================================
IN-MEMORY FILE CACHE
=============================================================================

Keeps small, hot files in memory so repeat requests skip the disk read.

=============================================================================
WHEN IS AN ENTRY VALID?
=============================================================================

The cache never trusts itself. Every lookup is checked against a fresh
os.stat() of the file:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        ENTRY VALIDATION                             │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   entry.size     == stat.st_size       ┐                            │
    │   entry.mtime_ns == stat.st_mtime_ns   ├─ all true → serve entry    │
    │   age < ttl  (or ttl == 0)             ┘                            │
    │                                                                      │
    │   anything else → drop the entry, read from disk again              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Editing a file on disk bumps its mtime, so the next request sees the new
bytes, never a stale copy.

=============================================================================
THE THUNDERING HERD
=============================================================================

A cold entry hit by 100 simultaneous requests must not cause 100 disk
reads. Each path gets at most ONE populating read at a time:

    Request A ──► lock ─► no entry, no marker ─► set marker ─► unlock
                                                                │
    Request B ──► lock ─► marker present ─► unlock ─► wait ◄────┤
    Request C ──► lock ─► marker present ─► unlock ─► wait ◄────┤
                                                                │
    Request A ─────────────── read file ──► publish ──► clear marker, set()
                                                                │
    B, C wake ─► lock ─► fresh entry ─► serve from memory ◄─────┘

Checking for the marker and setting it happen under the same lock, so
two requests can never both decide they are the reader. If the read
fails, times out, or the file changes mid-read, nobody retries the
population: the reader and its waiters bypass the cache and stream the
file themselves.

An entry is published only after its read has fully completed, so no
request can ever observe a partially filled entry.

=============================================================================
"""

import logging
import os
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """Complete contents of one file, pinned to the stat it was read at."""

    size: int
    mtime_ns: int
    data: bytes
    stored_at: float

    def matches(self, st: os.stat_result) -> bool:
        return self.size == st.st_size and self.mtime_ns == st.st_mtime_ns


class FileCache:
    """
    Thread-safe LRU cache of file contents with single-flight population.

    Args:
        max_bytes: Total bytes of file data kept in memory.
        max_file_size: Files larger than this are never cached.
        ttl: Seconds an entry may be served; 0 disables expiry.
        wait_timeout: How long a request waits on another request's
                      populating read before bypassing the cache.
        clock: Monotonic time source (injectable for tests).
    """

    def __init__(
        self,
        max_bytes: int = 64 * 1024 * 1024,
        max_file_size: int = 1024 * 1024,
        ttl: float = 0.0,
        wait_timeout: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_bytes = max_bytes
        self.max_file_size = max_file_size
        self.ttl = ttl
        self.wait_timeout = wait_timeout
        self._clock = clock

        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._inflight: dict[str, threading.Event] = {}
        self._lock = threading.Lock()
        self._bytes = 0

        # Metrics
        self.hits = 0
        self.misses = 0
        self.populations = 0
        self.bypasses = 0

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def fetch(self, path: Path, st: os.stat_result) -> Optional[CacheEntry]:
        """
        Return the cached contents of `path` for the given stat.

        Populates the entry if needed, with at most one concurrent reader
        per path.

        Args:
            path: Canonical path of a regular file inside the root.
            st: A fresh stat of that file.

        Returns:
            A CacheEntry, or None when the caller should bypass the cache
            and stream from disk (file too large, wait timed out, or the
            populating read didn't produce a usable entry).

        Raises:
            OSError: If this request performed the populating read and
                     opening/reading the file failed.
        """
        if st.st_size > self.max_file_size or st.st_size > self.max_bytes:
            return None

        key = str(path)

        with self._lock:
            entry = self._lookup(key, st)
            if entry is not None:
                self.hits += 1
                return entry
            self.misses += 1
            event = self._inflight.get(key)
            is_reader = event is None
            if is_reader:
                event = threading.Event()
                self._inflight[key] = event

        if not is_reader:
            return self._wait_for_reader(key, st, event)

        try:
            return self._populate(key, path)
        finally:
            with self._lock:
                self._inflight.pop(key, None)
            event.set()

    def invalidate(self, path: Path) -> None:
        """Drop any entry for `path`."""
        with self._lock:
            self._drop(str(path))

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._bytes = 0

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def size_bytes(self) -> int:
        return self._bytes

    @property
    def stats(self) -> dict:
        """Counters for monitoring."""
        return {
            "entries": len(self._entries),
            "bytes": self._bytes,
            "hits": self.hits,
            "misses": self.misses,
            "populations": self.populations,
            "bypasses": self.bypasses,
        }

    # =========================================================================
    # INTERNALS (callers hold self._lock where noted)
    # =========================================================================

    def _lookup(self, key: str, st: os.stat_result) -> Optional[CacheEntry]:
        """Return a valid entry or drop a stale one. Lock held."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        expired = self.ttl > 0 and self._clock() - entry.stored_at >= self.ttl
        if expired or not entry.matches(st):
            self._drop(key)
            return None
        self._entries.move_to_end(key)
        return entry

    def _drop(self, key: str) -> None:
        """Lock held."""
        entry = self._entries.pop(key, None)
        if entry is not None:
            self._bytes -= entry.size

    def _wait_for_reader(
        self,
        key: str,
        st: os.stat_result,
        event: threading.Event,
    ) -> Optional[CacheEntry]:
        if not event.wait(self.wait_timeout):
            logger.warning("Timed out waiting for cache population of %s", key)
            with self._lock:
                self.bypasses += 1
            return None

        with self._lock:
            entry = self._lookup(key, st)
            if entry is None:
                self.bypasses += 1
            return entry

    def _populate(self, key: str, path: Path) -> Optional[CacheEntry]:
        before, data, after = self._read_snapshot(path)
        with self._lock:
            self.populations += 1

        stable = (
            before.st_size == after.st_size
            and before.st_mtime_ns == after.st_mtime_ns
            and len(data) == after.st_size
        )
        if not stable:
            # Bytes may be torn or cut at max_file_size; stream from disk instead
            logger.debug("File changed during populating read: %s", key)
            with self._lock:
                self.bypasses += 1
            return None

        entry = CacheEntry(
            size=len(data),
            mtime_ns=after.st_mtime_ns,
            data=data,
            stored_at=self._clock(),
        )

        with self._lock:
            self._drop(key)
            self._entries[key] = entry
            self._bytes += entry.size
            while self._bytes > self.max_bytes and self._entries:
                _, evicted = self._entries.popitem(last=False)
                self._bytes -= evicted.size
        return entry

    def _read_snapshot(self, path: Path) -> tuple[os.stat_result, bytes, os.stat_result]:
        """
        Read a whole file, returning (fstat before, data, fstat after).

        Reads through the same file descriptor that was stat'ed, so a
        rename/replace between stat and read can't mix two files.
        """
        with open(path, "rb") as fh:
            before = os.fstat(fh.fileno())
            data = fh.read(self.max_file_size + 1)
            after = os.fstat(fh.fileno())
        return before, data, after
