"""
=============================================================================
HANDLER CHAIN
=============================================================================

The static file handler sits at the end of a short, fixed chain of
middleware. Each layer gets the request plus a callable for "the rest of
the chain":

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   chain(request)                                                    │
    │      │                                                               │
    │      ▼                                                               │
    │   layer 0  AccessLog        ──► next = rest of chain from layer 1   │
    │      ▼                                                               │
    │   layer 1  SecurityHeaders  ──► next = rest of chain from layer 2   │
    │      ▼                                                               │
    │   layer 2  Compression      ──► next = the static handler           │
    │      ▼                                                               │
    │   StaticFileHandler.handle                                          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

A layer sees the response object before any byte is written. For
streamed responses it must not iterate the stream: the connection loop
owns that, and it closes the stream afterwards.

=============================================================================
"""

from abc import ABC, abstractmethod
from functools import partial
from typing import Callable, List

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


NextHandler = Callable[[HTTPRequest], HTTPResponse]


class Middleware(ABC):
    """One layer of the chain: call next(request) or answer directly."""

    @abstractmethod
    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        ...


class HandlerChain:
    """
    The static handler wrapped in middleware, callable like a handler.

        chain = HandlerChain(static.handle)
        chain.add(AccessLogMiddleware())       # outermost
        chain.add(CompressionMiddleware())     # closest to the handler
        response = chain(request)
    """

    def __init__(self, handler: NextHandler):
        self.handler = handler
        self._layers: List[Middleware] = []

    def add(self, middleware: Middleware) -> "HandlerChain":
        self._layers.append(middleware)
        return self

    def __call__(self, request: HTTPRequest) -> HTTPResponse:
        return self._run_from(0, request)

    def _run_from(self, index: int, request: HTTPRequest) -> HTTPResponse:
        if index == len(self._layers):
            return self.handler(request)
        return self._layers[index](request, partial(self._run_from, index + 1))
