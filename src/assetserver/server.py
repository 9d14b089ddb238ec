"""
=============================================================================
ASSET SERVER
=============================================================================

Ties the pieces together: socket server → thread pool → connection loop
→ middleware → static file handler.

=============================================================================
REQUEST LIFECYCLE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   accept()                              (main thread)               │
    │      │                                                               │
    │      ▼                                                               │
    │   pool.submit(_process_connection)      queue full → 503            │
    │      │                                                               │
    │      ▼                                  (worker thread)              │
    │   read_request ─► parse ─► middleware ─► StaticFileHandler.handle   │
    │                                                   │                  │
    │                     ┌─────────────────────────────┘                  │
    │                     ▼                                                │
    │   send head ─► send chunk ─► send chunk ─► ...                      │
    │        │            │                                                │
    │        └────────────┴──► send failed? abort connection              │
    │                                                                      │
    │   finally: response.close()   ← file handle released, always        │
    │                                                                      │
    │   keep-alive? ─► read next request on the same connection           │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

One request failing (bad path, unreadable file, handler bug, vanished
client) affects only that request. Nothing here can stop the process
except SIGTERM/SIGINT.

=============================================================================
GRACEFUL SHUTDOWN
=============================================================================

    1. Stop accepting (listening socket closed)
    2. Keep-alive loops stop after their current response
    3. Wait up to shutdown_timeout for in-flight responses to finish
    4. Stop workers, close the access log file

=============================================================================
"""

import logging
import threading
from typing import Optional

from .config import ServerConfig
from .core import SocketServer, Connection, ThreadPool, RequestTooLarge
from .handlers import StaticFileHandler, FileStream
from .http import (
    HTTPRequest, RequestParser, HTTPParseError,
    HTTPResponse, HTTPStatus, error_response, internal_error,
)
from .middleware import (
    HandlerChain,
    AccessLogMiddleware, SecurityHeadersMiddleware, CompressionMiddleware,
)


logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging once for the process."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("assetserver").setLevel(numeric_level)


class AssetServer:
    """
    Concurrent static asset server.

    =========================================================================
    USAGE
    =========================================================================

        config = ServerConfig(root_dir="./public", port=8000, cache_enabled=True)
        server = AssetServer(config)     # raises ValueError: bad config / root
        server.run()                     # raises OSError: bind failed
                                         # returns after SIGTERM / SIGINT

    From another thread (tests, embedding):

        thread = threading.Thread(target=server.run, daemon=True)
        thread.start()
        server.wait_until_ready()
        ...
        server.shutdown()

    =========================================================================
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        self.config = config or ServerConfig()
        self.config.validate()  # Fail-fast on invalid config or missing root

        self.static = StaticFileHandler.from_config(self.config)

        self._socket_server = SocketServer(self.config)
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
            queue_size=self.config.queue_size,
        )
        self._parser = RequestParser(max_request_size=self.config.max_request_size)

        self._access_log = AccessLogMiddleware(
            log_format=self.config.log_format,
            log_file=self.config.access_log,
        )
        self._chain = HandlerChain(self.static.handle).add(self._access_log)
        if self.config.security_headers:
            self._chain.add(SecurityHeadersMiddleware())
        if self.config.compression:
            self._chain.add(CompressionMiddleware())

        self._running = False
        self._ready = threading.Event()
        self._stopped = threading.Event()

    @property
    def address(self) -> tuple[str, int]:
        """The bound (host, port), including the real port when port=0."""
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def stats(self) -> dict:
        stats = {
            "pool": self._thread_pool.stats,
            "active_streams": self.static.active_streams,
        }
        if self.static.cache is not None:
            stats["cache"] = self.static.cache.stats
        return stats

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def run(self):
        """
        Bind, serve until shutdown, then drain in-flight requests.

        Raises:
            OSError: The listening socket could not be bound.
        """
        setup_logging(self.config.log_level)

        try:
            self._socket_server.bind()
        except OSError:
            self._stopped.set()
            self._access_log.close()
            raise

        self._thread_pool.start()
        self._running = True
        self._log_startup()
        self._ready.set()

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def shutdown(self):
        """Ask a running server to stop. Returns immediately."""
        self._running = False
        self._socket_server.shutdown()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        return self._ready.wait(timeout)

    def wait_until_stopped(self, timeout: Optional[float] = None) -> bool:
        return self._stopped.wait(timeout)

    def _log_startup(self):
        host, port = self.address
        cache = "on" if self.static.cache is not None else "off"
        logger.info(
            "Serving %s on http://%s:%d (workers %d-%d, chunk %d bytes, cache %s)",
            self.static.root_dir, host, port,
            self.config.min_workers, self.config.max_workers,
            self.config.chunk_size, cache,
        )

    def _shutdown(self):
        logger.info("Shutting down server...")
        self._running = False
        self._thread_pool.shutdown(wait=True, timeout=self.config.shutdown_timeout)
        self._access_log.close()
        self._ready.clear()
        self._stopped.set()
        logger.info("Server stopped")

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """Called on the accept thread: queue the connection for a worker."""
        submitted = self._thread_pool.submit(self._process_connection, conn, block=False)
        if not submitted:
            logger.warning("[%s] Thread pool full, rejecting connection", conn.id)
            self._send_error(conn, HTTPStatus.SERVICE_UNAVAILABLE)
            conn.close()

    def _process_connection(self, conn: Connection):
        """
        Serve every request on one connection (runs in a worker thread).

        Keep-alive loop: read → parse → handle → write, until the client
        closes, asks to close, goes quiet, or a write fails.
        """
        try:
            while self._running:
                try:
                    raw_request = conn.read_request()
                except RequestTooLarge as e:
                    logger.info("[%s] Request too large: %s", conn.id, e)
                    self._send_error(conn, HTTPStatus.PAYLOAD_TOO_LARGE)
                    break
                except TimeoutError:
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT)
                    break

                if raw_request is None:
                    break

                try:
                    request = self._parser.parse(raw_request, conn.address)
                except HTTPParseError as e:
                    logger.info("[%s] Bad request from %s: %s", conn.id, conn.client_ip, e)
                    self._send_error(conn, HTTPStatus(e.status_code))
                    break

                response = self._dispatch(conn, request)

                keep_alive = self.config.keep_alive and request.is_keep_alive and self._running
                if keep_alive:
                    response.headers.setdefault("Connection", "keep-alive")
                    response.headers.setdefault(
                        "Keep-Alive", f"timeout={int(self.config.keep_alive_timeout)}"
                    )
                else:
                    response.headers["Connection"] = "close"

                if not self._write_response(conn, response):
                    # Byte stream is in an unknown state; no reuse
                    conn.abort()
                    return

                if not keep_alive:
                    break
                conn.set_keep_alive()

        except Exception:
            logger.exception("[%s] Connection error", conn.id)
        finally:
            conn.close()

    def _dispatch(self, conn: Connection, request: HTTPRequest) -> HTTPResponse:
        try:
            response = self._chain(request)
        except Exception:
            # Anything the handler didn't classify is a generic 500
            logger.exception("[%s] Unhandled error for %s %s", conn.id, request.method, request.path)
            response = internal_error()

        if request.method == "HEAD" and not response.is_streamed and response.body:
            response.headers.setdefault("Content-Length", str(len(response.body)))
            response.body = b""
        return response

    def _write_response(self, conn: Connection, response: HTTPResponse) -> bool:
        """
        Write head and body, then release the body's resources.

        Returns:
            True if every promised byte reached the socket.
        """
        try:
            if not conn.send(response.head_bytes(self.config.server_name)):
                return False

            for chunk in response.iter_body():
                if not conn.send(chunk):
                    logger.warning(
                        "[%s] Client %s disconnected mid-response",
                        conn.id, conn.client_ip,
                    )
                    return False

            stream = response.stream
            if isinstance(stream, FileStream) and not stream.complete:
                # File shrank while streaming; Content-Length was a lie
                return False
            return True

        except OSError as e:
            logger.error("[%s] Read failed mid-response: %s", conn.id, e, exc_info=True)
            return False

        finally:
            response.close()

    def _send_error(self, conn: Connection, status: HTTPStatus):
        """Error for failures before a request reaches the handler."""
        response = error_response(status)
        response.headers["Connection"] = "close"
        conn.send(response.to_bytes(self.config.server_name))


def create_server(config: Optional[ServerConfig] = None) -> AssetServer:
    """Factory: AssetServer(config), reading the environment when no config is given."""
    return AssetServer(config or ServerConfig.from_env())


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# 1. Bind first, then start workers: a taken port fails before any thread
#    exists.
# 2. Every response is closed in a finally block, so streamed file handles
#    are released on success, client disconnect and read errors alike.
# 3. A failed or short write aborts the connection; keep-alive is only
#    reused after a complete response.
# =============================================================================
