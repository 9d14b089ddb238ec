"""
=============================================================================
HANDLERS MODULE
=============================================================================

Turns a parsed request into a response.

    ┌─────────────────────────────────────────────────────────────────────┐
    │ Module       │ Role                                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │ static.py    │ StaticFileHandler: path resolution + serving         │
    │ stream.py    │ FileStream: bounded-chunk body over an open file     │
    │ cache.py     │ FileCache: optional in-memory cache, single-flight   │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .static import StaticFileHandler, make_etag
from .stream import FileStream
from .cache import FileCache, CacheEntry

__all__ = [
    "StaticFileHandler",
    "make_etag",
    "FileStream",
    "FileCache",
    "CacheEntry",
]
