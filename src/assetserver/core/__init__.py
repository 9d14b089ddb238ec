"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The networking plumbing under the static file handler.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         SOCKET SERVER                                │
    │  ─────────────────────────────────────────────────────────────────  │
    │  • Binds the listening socket (fails fast at startup)               │
    │  • Runs the accept() loop in the main thread                        │
    │  • Turns SIGTERM/SIGINT into a graceful shutdown                    │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ Hands off new connections
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          THREAD POOL                                 │
    │  ─────────────────────────────────────────────────────────────────  │
    │  • Workers pull connections from a bounded queue                    │
    │  • A blocked disk read or socket write stalls one worker only       │
    │  • Long-lived workers up to max_workers, overflow workers past it   │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ Worker processes connection
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          CONNECTION                                  │
    │  ─────────────────────────────────────────────────────────────────  │
    │  • Buffered request reading, keep-alive timeouts                    │
    │  • Writes bounded by the socket timeout                             │
    │  • Graceful close, or abort after a failed write                    │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState, RequestTooLarge
from .thread_pool import ThreadPool

__all__ = [
    "SocketServer",
    "Connection",
    "ConnectionState",
    "RequestTooLarge",
    "ThreadPool",
]
