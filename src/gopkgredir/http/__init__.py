"""
=============================================================================
HTTP MODULE
=============================================================================

Converts between raw bytes and structured HTTP messages.

    bytes ──► RequestParser ──► HTTPRequest ──► handler
                                                   │
    bytes ◄── HTTPResponse.to_bytes() ◄────────────┘

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError, parse_request
from .response import (
    HTTPResponse,
    ResponseBuilder,
    error,
    not_found,
    internal_error,
)
from .status_codes import HTTPStatus

__all__ = [
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "parse_request",
    "HTTPResponse",
    "ResponseBuilder",
    "error",
    "not_found",
    "internal_error",
    "HTTPStatus",
]
