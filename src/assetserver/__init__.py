"""
=============================================================================
ASSETSERVER - Concurrent Static Asset Server
=============================================================================

Serves the files under one root directory over HTTP/1.1, built directly
on sockets and threads.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      ASSETSERVER AT A GLANCE                        │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   1. PATH RESOLUTION                                                │
    │      - Percent-decoding, dot-segment collapsing                     │
    │      - Canonical containment check against the root (403)           │
    │                                                                      │
    │   2. STREAMED SERVING                                               │
    │      - Bounded chunks, any file size, constant memory               │
    │      - File handle released on every exit path                      │
    │                                                                      │
    │   3. OPTIONAL IN-MEMORY CACHE                                       │
    │      - mtime/size validated on every hit                            │
    │      - One populating read per path, however many requests          │
    │                                                                      │
    │   4. CONCURRENCY                                                    │
    │      - Thread pool, one worker per connection                       │
    │      - Graceful shutdown on SIGTERM / SIGINT                        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    assetserver/
    ├── __main__.py          # CLI entry point (python -m assetserver)
    ├── server.py            # AssetServer: connection loop, lifecycle
    ├── config.py            # ServerConfig dataclass
    ├── errors.py            # Forbidden / NotFound / MethodNotAllowed / InternalError
    ├── core/                # socket server, connection, thread pool
    ├── http/                # request parser, response, status, MIME types
    ├── handlers/            # static handler, file stream, file cache
    └── middleware/          # access log, security headers, compression

=============================================================================
"""

__version__ = "1.0.0"

from .server import AssetServer, create_server
from .config import ServerConfig

__all__ = ["AssetServer", "create_server", "ServerConfig", "__version__"]
