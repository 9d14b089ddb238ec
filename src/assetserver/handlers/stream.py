"""
Bounded-chunk file streaming.

A FileStream owns exactly one open file handle for exactly one response.
It reads at most `chunk_size` bytes at a time and never more than the
length announced in Content-Length, so a file that grows while it is
being sent cannot corrupt the framing of the next response on a
keep-alive connection.
"""

import logging
import threading
from typing import BinaryIO, Callable, Iterator, Optional


logger = logging.getLogger(__name__)


class FileStream:
    """
    Iterate over an open binary file in bounded chunks.

    Usage:
        stream = FileStream(open(path, "rb"), length=size, chunk_size=65536)
        try:
            for chunk in stream:
                sock.sendall(chunk)
        finally:
            stream.close()

    Attributes:
        length: Bytes promised to the client.
        sent: Bytes yielded so far.
    """

    def __init__(
        self,
        fileobj: BinaryIO,
        length: int,
        chunk_size: int = 64 * 1024,
        on_close: Optional[Callable[["FileStream"], None]] = None,
    ):
        self._file = fileobj
        self.length = length
        self.chunk_size = chunk_size
        self.sent = 0
        self._on_close = on_close
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def complete(self) -> bool:
        """True once every promised byte has been yielded."""
        return self.sent >= self.length

    def __iter__(self) -> Iterator[bytes]:
        while not self._closed and self.sent < self.length:
            chunk = self._file.read(min(self.chunk_size, self.length - self.sent))
            if not chunk:
                # File shrank underneath us; caller sees complete == False
                logger.warning(
                    "File truncated while streaming: sent %d of %d bytes",
                    self.sent, self.length,
                )
                return
            self.sent += len(chunk)
            yield chunk

    def close(self) -> None:
        """Close the file handle. Idempotent and thread-safe."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        try:
            self._file.close()
        finally:
            if self._on_close is not None:
                self._on_close(self)
