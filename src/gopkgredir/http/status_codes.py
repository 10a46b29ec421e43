"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The status codes this server emits, with their reason phrases.

    ┌─────────┬──────────────────────────────────────────────────────────┐
    │  Code   │  Emitted when                                            │
    ├─────────┼──────────────────────────────────────────────────────────┤
    │  200    │  Vanity page, ACME challenge response                    │
    │  302    │  Plain listener redirecting to HTTPS                     │
    │  400    │  Malformed request line or headers                       │
    │  404    │  Redirect without Host, unknown ACME token               │
    │  405    │  Unknown request method                                  │
    │  408    │  Client connected but never sent a request               │
    │  413    │  Request larger than max_request_size                    │
    │  500    │  Handler raised                                          │
    │  505    │  Unsupported HTTP version                                │
    └─────────┴──────────────────────────────────────────────────────────┘

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes and reason phrases.

    This enum extends IntEnum, so status codes can be used as integers:

        >>> HTTPStatus.FOUND == 302
        True
        >>> HTTPStatus.FOUND.phrase
        'Found'
    """

    # 2xx SUCCESS
    OK = 200

    # 3xx REDIRECTION
    FOUND = 302

    # 4xx CLIENT ERRORS
    BAD_REQUEST = 400
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    REQUEST_TIMEOUT = 408
    PAYLOAD_TOO_LARGE = 413

    # 5xx SERVER ERRORS
    INTERNAL_SERVER_ERROR = 500
    HTTP_VERSION_NOT_SUPPORTED = 505

    @property
    def phrase(self) -> str:
        """
        Get the reason phrase for this status code.

            HTTP/1.1 302 Found
                     ─── ─────
                      │    │
                      │    └── Reason phrase
                      └─────── Status code
        """
        return _STATUS_PHRASES.get(self, "Unknown")


_STATUS_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.FOUND: "Found",
    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.METHOD_NOT_ALLOWED: "Method Not Allowed",
    HTTPStatus.REQUEST_TIMEOUT: "Request Timeout",
    HTTPStatus.PAYLOAD_TOO_LARGE: "Payload Too Large",
    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.HTTP_VERSION_NOT_SUPPORTED: "HTTP Version Not Supported",
}
