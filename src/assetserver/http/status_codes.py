"""
=============================================================================
HTTP STATUS CODES
=============================================================================

Status codes the asset server can produce, with their reason phrases.

=============================================================================
WHICH CODES DOES A STATIC SERVER NEED?
=============================================================================

A static asset server answers a much narrower set of questions than a
general web application. Every response falls into one of these buckets:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                   STATUS CODES USED BY ASSETSERVER                  │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   200 OK                    File found, bytes follow                │
    │   304 Not Modified          Client's cached copy is still good      │
    │                                                                      │
    │   400 Bad Request           Request line could not be parsed        │
    │   403 Forbidden             Path tried to escape the root           │
    │   404 Not Found             No such file (or bare directory)        │
    │   405 Method Not Allowed    Only GET / HEAD are served              │
    │   408 Request Timeout       Client connected but never finished     │
    │   413 Payload Too Large     Request head exceeded the size limit    │
    │                                                                      │
    │   500 Internal Server Error Open/read failed for another reason     │
    │   503 Service Unavailable   Worker queue is full                    │
    │   505 HTTP Version ...      Not HTTP/1.0 or HTTP/1.1                │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes and reason phrases.

    This enum extends IntEnum, so status codes can be used as integers:

        >>> HTTPStatus.OK
        <HTTPStatus.OK: 200>
        >>> HTTPStatus.OK == 200
        True
        >>> HTTPStatus.OK.phrase
        'OK'
    """

    # =========================================================================
    # 2xx SUCCESS
    # =========================================================================
    OK = 200
    NO_CONTENT = 204

    # =========================================================================
    # 3xx REDIRECTION
    # =========================================================================
    NOT_MODIFIED = 304          # Cached version is still valid

    # =========================================================================
    # 4xx CLIENT ERRORS
    # =========================================================================
    BAD_REQUEST = 400                   # Malformed request syntax
    FORBIDDEN = 403                     # Path escapes the served root
    NOT_FOUND = 404                     # Resource doesn't exist
    METHOD_NOT_ALLOWED = 405            # Only read methods are served
    REQUEST_TIMEOUT = 408               # Client took too long to send request
    PAYLOAD_TOO_LARGE = 413             # Request too large
    URI_TOO_LONG = 414                  # URL too long

    # =========================================================================
    # 5xx SERVER ERRORS
    # =========================================================================
    INTERNAL_SERVER_ERROR = 500         # Unexpected server error (catch-all)
    NOT_IMPLEMENTED = 501               # Server doesn't support this feature
    SERVICE_UNAVAILABLE = 503           # Server overloaded or shutting down
    HTTP_VERSION_NOT_SUPPORTED = 505    # HTTP version not supported

    @property
    def phrase(self) -> str:
        """
        Get the reason phrase for this status code.

            HTTP/1.1 404 Not Found
                     ─── ─────────
                      │      │
                      │      └── Reason phrase
                      └───────── Status code
        """
        return _STATUS_PHRASES.get(self, "Unknown")


_STATUS_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.NO_CONTENT: "No Content",
    HTTPStatus.NOT_MODIFIED: "Not Modified",
    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.FORBIDDEN: "Forbidden",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.METHOD_NOT_ALLOWED: "Method Not Allowed",
    HTTPStatus.REQUEST_TIMEOUT: "Request Timeout",
    HTTPStatus.PAYLOAD_TOO_LARGE: "Payload Too Large",
    HTTPStatus.URI_TOO_LONG: "URI Too Long",
    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.NOT_IMPLEMENTED: "Not Implemented",
    HTTPStatus.SERVICE_UNAVAILABLE: "Service Unavailable",
    HTTPStatus.HTTP_VERSION_NOT_SUPPORTED: "HTTP Version Not Supported",
}
