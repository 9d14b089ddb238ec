"""
=============================================================================
CONNECTION HANDLING
=============================================================================

Wraps one accepted client socket: buffered request reading, bounded
writes, and the two ways a connection can end.

=============================================================================
READING A REQUEST
=============================================================================

TCP is a byte stream, not a message stream. A single recv() may return
half a request line or two pipelined requests. We buffer until the
header terminator shows up, then read exactly Content-Length body bytes
and keep whatever follows for the next request:

    _buffer:  GET /a.css HTTP/1.1\r\n...\r\n\r\nGET /b.js HTTP/1.1\r\n...
              └──────────── request 1 ─────────┘└── kept for request 2 ──

=============================================================================
WRITING A RESPONSE
=============================================================================

Every write goes through sendall() under the socket timeout. A client
that stops reading can't pin a worker (or an open file) forever: after
`timeout` seconds sendall() raises and send() reports failure.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      HOW A CONNECTION ENDS                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   close()   normal end: FIN, drain what the client still sends,     │
    │             release the descriptor                                  │
    │                                                                      │
    │   abort()   after a failed or incomplete write: the byte stream     │
    │             is no longer in a known state, release at once          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──► READING ──► PROCESSING ──► WRITING ──► KEEP_ALIVE ──┐
              ▲                                                  │
              └──────────────────────────────────────────────────┘
     any state ──► CLOSING ──► CLOSED

=============================================================================
"""

import socket
import time
import logging
import uuid
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional


logger = logging.getLogger(__name__)

# Upper bound on the whole post-FIN drain in close()
DRAIN_TIMEOUT = 0.5


class ConnectionState(Enum):
    """Connection lifecycle states (for logging and debugging)."""

    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    KEEP_ALIVE = "keep_alive"
    CLOSING = "closing"
    CLOSED = "closed"


class RequestTooLarge(Exception):
    """The request head/body exceeded max_request_size."""


@dataclass
class Connection:
    """
    A client connection.

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Short identifier for log lines.
        state: Current connection state.
        requests_handled: Requests read on this connection so far.
        bytes_sent: Total bytes written.
    """

    socket: socket.socket
    address: tuple[str, int]
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    state: ConnectionState = ConnectionState.NEW
    requests_handled: int = 0
    bytes_sent: int = 0

    buffer_size: int = 8192
    timeout: Optional[float] = 30.0
    keep_alive_timeout: float = 5.0
    max_request_size: int = 64 * 1024

    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete HTTP request.

        Subsequent requests on a keep-alive connection wait only
        keep_alive_timeout for the first byte.

        Returns:
            The request bytes, or None if the client closed the connection
            or went quiet between keep-alive requests.

        Raises:
            TimeoutError: The first request didn't arrive within `timeout`.
            RequestTooLarge: The request exceeds max_request_size.
        """
        self.state = ConnectionState.READING

        if self.requests_handled > 0:
            self.socket.settimeout(self.keep_alive_timeout)

        try:
            while b"\r\n\r\n" not in self._buffer:
                chunk = self._recv()
                if not chunk:
                    return None
                self._buffer += chunk
                if len(self._buffer) > self.max_request_size:
                    raise RequestTooLarge(f"{len(self._buffer)} bytes")

            header_end = self._buffer.find(b"\r\n\r\n")
            body_start = header_end + 4
            content_length = self._parse_content_length(self._buffer[:header_end])

            if body_start + content_length > self.max_request_size:
                raise RequestTooLarge(f"Content-Length {content_length}")

            while len(self._buffer) - body_start < content_length:
                chunk = self._recv()
                if not chunk:
                    break  # Truncated body; the parser reports it
                self._buffer += chunk

            request_end = body_start + content_length
            request_data = self._buffer[:request_end]
            self._buffer = self._buffer[request_end:]

            self.requests_handled += 1
            self.state = ConnectionState.PROCESSING
            return request_data

        except socket.timeout:
            if self.requests_handled > 0 and not self._buffer:
                logger.debug("[%s] Keep-alive timeout", self.id)
                return None
            raise TimeoutError("Request read timeout")

        finally:
            if not self.closed:
                self.socket.settimeout(self.timeout)

    def _recv(self) -> bytes:
        try:
            return self.socket.recv(self.buffer_size)
        except (ConnectionResetError, BrokenPipeError):
            return b""

    @staticmethod
    def _parse_content_length(headers: bytes) -> int:
        """Find Content-Length before full parsing (0 if absent/invalid)."""
        for line in headers.split(b"\r\n")[1:]:
            name, _, value = line.partition(b":")
            if name.strip().lower() == b"content-length":
                try:
                    return max(int(value.strip()), 0)
                except ValueError:
                    return 0
        return 0

    # =========================================================================
    # WRITING
    # =========================================================================

    def send(self, data: bytes) -> bool:
        """
        Write all of `data`, bounded by the socket timeout.

        Returns:
            True on success, False if the client is gone or stopped reading.
        """
        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(data)
        except socket.timeout:
            logger.warning("[%s] Write timed out after %ss", self.id, self.timeout)
            return False
        except OSError as e:
            # ConnectionResetError, BrokenPipeError, ...
            logger.debug("[%s] Send failed: %s", self.id, e)
            return False
        self.bytes_sent += len(data)
        return True

    def set_keep_alive(self):
        self.state = ConnectionState.KEEP_ALIVE

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close gracefully: FIN, drain briefly, release the descriptor.

        Draining keeps the kernel from answering the client's unread
        request bytes with a RST that could destroy our last response.
        The whole drain is bounded by DRAIN_TIMEOUT, so a client that
        keeps trickling bytes can't hold the worker.
        """
        if self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            return

        self.state = ConnectionState.CLOSING
        deadline = time.monotonic() + DRAIN_TIMEOUT
        try:
            self.socket.shutdown(socket.SHUT_WR)
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    logger.debug("[%s] Peer still sending at close, dropping", self.id)
                    break
                self.socket.settimeout(remaining)
                if not self.socket.recv(1024):
                    break
        except OSError:
            # Includes socket.timeout; the peer is gone or slow, close anyway
            pass
        self._release()

    def abort(self):
        """Close immediately, without the graceful shutdown sequence."""
        if self.state == ConnectionState.CLOSED:
            return
        self.state = ConnectionState.CLOSING
        self._release()

    def _release(self):
        try:
            self.socket.close()
        except OSError:
            pass
        self.state = ConnectionState.CLOSED
        logger.debug(
            "[%s] Connection closed after %d requests, %d bytes",
            self.id, self.requests_handled, self.bytes_sent,
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
