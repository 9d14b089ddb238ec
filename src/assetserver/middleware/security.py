"""
Security response headers.

A small, fixed set of headers every static response should carry:

    X-Content-Type-Options: nosniff          browsers trust Content-Type
    X-Frame-Options: SAMEORIGIN              no framing by other sites
    Referrer-Policy: no-referrer             asset URLs don't leak onward
    Cross-Origin-Resource-Policy: same-origin

Headers a handler already set are left alone.
"""

from typing import Dict, Optional

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


DEFAULT_SECURITY_HEADERS: Dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Resource-Policy": "same-origin",
}


class SecurityHeadersMiddleware(Middleware):
    """Adds security headers to every response, including errors."""

    def __init__(self, headers: Optional[Dict[str, str]] = None):
        self.headers = dict(DEFAULT_SECURITY_HEADERS if headers is None else headers)

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        response = next(request)
        for name, value in self.headers.items():
            response.headers.setdefault(name, value)
        return response
