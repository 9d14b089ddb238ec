"""
=============================================================================
ERROR TAXONOMY
=============================================================================

Every way a single request can fail maps to exactly one of four errors:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         REQUEST FAILURES                            │
    ├──────────────────┬──────────────────────────────┬───────────────────┤
    │ Error            │ Cause                        │ Client sees       │
    ├──────────────────┼──────────────────────────────┼───────────────────┤
    │ Forbidden        │ path escapes the root        │ 403 "Forbidden"   │
    │ NotFound         │ no such file / bare dir      │ 404 "Not Found"   │
    │ MethodNotAllowed │ not a read method            │ 405 + Allow       │
    │ InternalError    │ open/read failed otherwise   │ 500 generic       │
    └──────────────────┴──────────────────────────────┴───────────────────┘

They are raised deep inside the static handler and caught once, at the
request boundary, where they become responses. The `detail` each error
carries is for the server log only; the response body is always just
the reason phrase.

=============================================================================
"""

from typing import Iterable, Optional

from .http.status_codes import HTTPStatus


class AssetError(Exception):
    """
    Base class for request-scoped failures.

    Attributes:
        status: HTTP status the client receives.
        detail: Server-side description (may contain paths; never sent).
    """

    status: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.status.phrase)
        self.detail = detail


class Forbidden(AssetError):
    """The requested path resolves outside the root directory."""

    status = HTTPStatus.FORBIDDEN


class NotFound(AssetError):
    """The path does not exist, or is a directory with no index file."""

    status = HTTPStatus.NOT_FOUND


class MethodNotAllowed(AssetError):
    """The request method is not in the server's allow-list."""

    status = HTTPStatus.METHOD_NOT_ALLOWED

    def __init__(self, method: str, allowed: Iterable[str]):
        super().__init__(f"method {method} not allowed")
        self.method = method
        self.allowed = list(allowed)


class InternalError(AssetError):
    """Opening or reading the file failed for a reason other than absence."""

    status = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(self, detail: str = "", cause: Optional[BaseException] = None):
        super().__init__(detail)
        self.cause = cause
