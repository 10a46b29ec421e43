"""
=============================================================================
MIDDLEWARE
=============================================================================

Wrappers around a listener's handler. The redirector installs one, the
access log, on every listener:

    request ──► LoggingMiddleware ──► handler ──┐
                      │ times the call           │ VanityHandler or
                      │ logs one line            │ ChallengeHandler → TLSRedirectHandler
    response ◄────────┴──────────────────────────┘

A middleware may answer itself instead of calling next().

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, List

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


NextHandler = Callable[[HTTPRequest], HTTPResponse]


class Middleware(ABC):
    """A callable taking the request and the rest of the chain."""

    @abstractmethod
    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        ...


class MiddlewarePipeline:
    """
    Ordered middleware; the first added sees the request first.

        handler = MiddlewarePipeline().add(LoggingMiddleware()).wrap(handler)
    """

    def __init__(self):
        self._middleware: List[Middleware] = []

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        self._middleware.append(middleware)
        return self

    def wrap(self, handler: NextHandler) -> NextHandler:
        """Bind every middleware around handler, innermost last."""
        for middleware in reversed(self._middleware):
            handler = _bind(middleware, handler)
        return handler

    def __len__(self) -> int:
        return len(self._middleware)


def _bind(middleware: Middleware, next_handler: NextHandler) -> NextHandler:
    def call(request: HTTPRequest) -> HTTPResponse:
        return middleware(request, next_handler)
    return call
