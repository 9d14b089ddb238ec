"""
=============================================================================
SOCKET SERVER
=============================================================================

The listening socket and the accept loop.

=============================================================================
LIFECYCLE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   bind()       socket() → SO_REUSEADDR → bind() → listen()          │
    │                Raises OSError right away if the port is taken,      │
    │                so the process can exit non-zero before anything     │
    │                else starts.                                         │
    │        │                                                             │
    │        ▼                                                             │
    │   start(cb)    install SIGTERM/SIGINT handlers (main thread only)   │
    │                while running: accept() → Connection → cb(conn)      │
    │        │                                                             │
    │        ▼                                                             │
    │   shutdown()   running = False; the accept loop notices within      │
    │                one accept timeout (1s) and returns                  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Port 0 asks the OS for any free port; `address` reports the real one
once bound.

=============================================================================
SIGNALS
=============================================================================

    SIGTERM (15)   docker stop, systemd stop, kill <pid>
    SIGINT  (2)    Ctrl+C

Python only lets the main thread install signal handlers. When the
server runs in a background thread (tests, embedding), shutdown() is
called directly instead.

=============================================================================
"""

import socket
import signal
import logging
import threading
from typing import Optional, Callable, Tuple

from ..config import ServerConfig
from .connection import Connection


logger = logging.getLogger(__name__)


class SocketServer:
    """
    Low-level TCP socket server.

        server = SocketServer(config)
        server.bind()                          # may raise OSError
        server.start(handle_connection)        # blocks until shutdown()
    """

    def __init__(self, config: ServerConfig):
        self.config = config
        self._socket: Optional[socket.socket] = None
        self._running = False
        self._original_handlers: dict = {}

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """The bound (host, port); the configured one before bind()."""
        if self._socket is not None:
            host, port = self._socket.getsockname()[:2]
            return (host, port)
        return (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

        # Restart without waiting out TIME_WAIT. No SO_REUSEPORT: a second
        # server on the same port must fail to bind, not silently share it.
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        # Nagle's algorithm only adds latency to small header writes
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        # accept() wakes up every second to check the running flag
        sock.settimeout(1.0)
        return sock

    def bind(self):
        """
        Create, bind and listen.

        Raises:
            OSError: Address in use, permission denied, bad host...
        """
        if self._socket is not None:
            return

        sock = self._create_socket()
        try:
            sock.bind((self.config.host, self.config.port))
            sock.listen(self.config.backlog)
        except OSError as e:
            sock.close()
            logger.error("Failed to bind to %s:%s: %s", self.config.host, self.config.port, e)
            raise

        self._socket = sock
        host, port = self.address
        logger.info("Server listening on %s:%d", host, port)

    def _setup_signals(self):
        if threading.current_thread() is not threading.main_thread():
            return

        def shutdown_handler(signum, frame):
            logger.info("Received %s, initiating shutdown...", signal.Signals(signum).name)
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def start(self, connection_handler: Callable[[Connection], None]):
        """
        Accept connections until shutdown(). Blocks.

        Args:
            connection_handler: Receives each accepted Connection. Must not
                                block; the HTTP server hands it to a pool.
        """
        self.bind()
        self._running = True
        self._setup_signals()

        try:
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._running:
                    logger.error("Accept error: %s", e)
                break

            logger.debug("Accepted connection from %s:%s", *client_address[:2])
            conn = Connection(
                socket=client_socket,
                address=client_address[:2],
                buffer_size=self.config.buffer_size,
                timeout=self.config.timeout,
                keep_alive_timeout=self.config.keep_alive_timeout,
                max_request_size=self.config.max_request_size,
            )
            connection_handler(conn)

    def shutdown(self):
        """Stop accepting. Idempotent; safe from signal handlers and threads."""
        if self._running:
            logger.info("Shutting down socket server...")
        self._running = False

    def _cleanup(self):
        self._restore_signals()
        if self._socket is not None:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None
        logger.info("Socket server stopped")

