"""
=============================================================================
MIME TYPE DETECTION
=============================================================================

Maps file extensions to the Content-Type header value sent with each file.

=============================================================================
WHY A FIXED TABLE?
=============================================================================

Python ships `mimetypes`, which reads /etc/mime.types and the Windows
registry. That makes the answer depend on the host: the same .js file can
come back as "application/javascript" on one box and "text/javascript" on
another. A static server should give the same Content-Type everywhere, so
we keep our own table and fall back to a generic binary type.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     EXTENSION → CONTENT-TYPE                        │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   sample.txt   → text/plain; charset=utf-8                          │
    │   index.html   → text/html; charset=utf-8                           │
    │   logo.PNG     → image/png              (extension is lowercased)   │
    │   archive.xyz  → application/octet-stream (unknown → binary)       │
    │   Makefile     → application/octet-stream (no extension)           │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Serving an unknown file as application/octet-stream is the safe default:
browsers download it instead of trying to render or execute it.

=============================================================================
"""

from pathlib import Path
from typing import Optional


MIME_TYPES = {
    # -------------------------------------------------------------------------
    # TEXT TYPES
    # -------------------------------------------------------------------------
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "text/javascript",      # Modern standard (was application/javascript)
    ".mjs": "text/javascript",     # ES modules
    ".json": "application/json",
    ".xml": "application/xml",
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".csv": "text/csv",

    # -------------------------------------------------------------------------
    # IMAGE TYPES
    # -------------------------------------------------------------------------
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",       # SVG is XML, hence +xml
    ".ico": "image/x-icon",
    ".webp": "image/webp",
    ".avif": "image/avif",
    ".bmp": "image/bmp",

    # -------------------------------------------------------------------------
    # FONT TYPES
    # -------------------------------------------------------------------------
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".ttf": "font/ttf",
    ".otf": "font/otf",

    # -------------------------------------------------------------------------
    # AUDIO / VIDEO
    # -------------------------------------------------------------------------
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".mp4": "video/mp4",
    ".webm": "video/webm",

    # -------------------------------------------------------------------------
    # DOCUMENTS / ARCHIVES / OTHER
    # -------------------------------------------------------------------------
    ".pdf": "application/pdf",
    ".zip": "application/zip",
    ".gz": "application/gzip",
    ".tar": "application/x-tar",
    ".wasm": "application/wasm",
    ".map": "application/json",    # Source maps
}

DEFAULT_MIME_TYPE = "application/octet-stream"

# application/* and image/* types that are really text and need a charset
_TEXTUAL_NON_TEXT_TYPES = {
    "application/json",
    "application/xml",
    "image/svg+xml",
}


def get_mime_type(path: str | Path, default: Optional[str] = None) -> str:
    """
    Get the MIME type for a file based on its extension.

    Examples:
        >>> get_mime_type("style.css")
        'text/css'
        >>> get_mime_type("unknown.xyz")
        'application/octet-stream'
    """
    if isinstance(path, str):
        path = Path(path)

    extension = path.suffix.lower()  # .PNG → .png
    return MIME_TYPES.get(extension, default or DEFAULT_MIME_TYPE)


def is_text_type(mime_type: str) -> bool:
    """Check if a MIME type represents text content."""
    return mime_type.startswith("text/") or mime_type in _TEXTUAL_NON_TEXT_TYPES


def get_content_type(path: str | Path, charset: str = "utf-8") -> str:
    """
    Get the full Content-Type header value for a file.

    Text-based types carry a charset parameter; binary types don't.

        >>> get_content_type("sample.txt")
        'text/plain; charset=utf-8'
        >>> get_content_type("image.png")
        'image/png'
    """
    mime_type = get_mime_type(path)

    if is_text_type(mime_type):
        return f"{mime_type}; charset={charset}"

    return mime_type
