"""
=============================================================================
MIDDLEWARE FRAMEWORK
=============================================================================

Cross-cutting concerns wrapped around the static file handler:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       HANDLER CHAIN                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Incoming Request                                                   │
    │        ▼                                                             │
    │   AccessLogMiddleware        ──► one access line per request        │
    │        ▼                                                             │
    │   SecurityHeadersMiddleware  ──► nosniff, frame options, ...        │
    │        ▼                                                             │
    │   CompressionMiddleware      ──► gzip in-memory text bodies         │
    │        ▼                                                             │
    │   StaticFileHandler.handle                                          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .base import Middleware, HandlerChain, NextHandler
from .access_log import AccessLogMiddleware, RequestLog
from .security import SecurityHeadersMiddleware, DEFAULT_SECURITY_HEADERS
from .compression import CompressionMiddleware

__all__ = [
    "Middleware",
    "HandlerChain",
    "NextHandler",
    "AccessLogMiddleware",
    "RequestLog",
    "SecurityHeadersMiddleware",
    "DEFAULT_SECURITY_HEADERS",
    "CompressionMiddleware",
]
