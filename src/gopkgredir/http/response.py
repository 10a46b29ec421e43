"""
=============================================================================
HTTP RESPONSE BUILDING
=============================================================================

    Handler returns          to_bytes()              Socket sends
    HTTPResponse    ─────►   serializes    ─────►    raw bytes
        │                       │                        │
    HTTPResponse(            b"HTTP/1.1 302 Found\\r\\n   socket.sendall(
      status=302,              Location: https://...     response_bytes
      headers={...},           \\r\\n                    )
      body=b"..."              <a href=...>Found</a>."
    )

Error helpers (not_found, internal_error) answer with a short
plain-text body, the same shape every Go and Python HTTP stack uses for
"404 page not found"-style replies.

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Union

from .status_codes import HTTPStatus


DEFAULT_SERVER_NAME = "gopkgredir"

# Same table as the Go net/http link body.
_HTML_ESCAPES = str.maketrans({
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&#34;",
    "'": "&#39;",
})


@dataclass
class HTTPResponse:
    """
    An HTTP response to be sent to the client.

    Use ResponseBuilder for a more convenient way to construct responses.
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """The status line, e.g. "HTTP/1.1 200 OK"."""
        return f"{self.version} {int(self.status)} {HTTPStatus(self.status).phrase}"

    def to_bytes(self, server_name: str = DEFAULT_SERVER_NAME, include_body: bool = True) -> bytes:
        """
        Serialize the response for socket.sendall().

        =====================================================================
        SERIALIZATION FORMAT
        =====================================================================

            HTTP/1.1 200 OK\\r\\n              ← Status line
            Content-Type: text/html; ...\\r\\n
            Content-Length: 312\\r\\n           ← Auto-calculated
            Date: Sun, 18 Oct 2026 ...\\r\\n    ← Auto-added
            Server: gopkgredir\\r\\n            ← Auto-added
            \\r\\n                              ← Separator
            <!DOCTYPE html>...                ← Body (omitted for HEAD)

        =====================================================================

        Args:
            server_name: Value of the Server header.
            include_body: False for HEAD requests; Content-Length still
                          describes the body a GET would have returned.
        """
        response_headers = dict(self.headers)
        response_headers.setdefault("Content-Length", str(len(self.body)))
        response_headers.setdefault("Date", format_http_date(datetime.now(timezone.utc)))
        response_headers.setdefault("Server", server_name)

        lines = [self.status_line]
        lines.extend(f"{name}: {value}" for name, value in response_headers.items())
        lines.append("")

        header_bytes = "\r\n".join(lines).encode("utf-8") + b"\r\n"
        return header_bytes + self.body if include_body else header_bytes


class ResponseBuilder:
    """
    Fluent builder for HTTP responses.

        response = (ResponseBuilder()
            .status(HTTPStatus.FOUND)
            .header("Location", "https://example.com/")
            .html("<a href=...>Found</a>.")
            .build())
    """

    def __init__(self):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body = b""

    def status(self, status: HTTPStatus) -> "ResponseBuilder":
        """Set the response status code."""
        self._status = status
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        """Set a single header."""
        self._headers[name] = value
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        """Set the Content-Type header."""
        self._headers["Content-Type"] = content_type
        return self

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        """Set the raw body, encoding strings as UTF-8."""
        self._body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def text(self, text: str, content_type: str = "text/plain; charset=utf-8") -> "ResponseBuilder":
        """Set a plain-text body."""
        self._headers["Content-Type"] = content_type
        self._body = text.encode("utf-8")
        return self

    def html(self, html: str) -> "ResponseBuilder":
        """Set an HTML body."""
        return self.text(html, content_type="text/html; charset=utf-8")

    def redirect(self, location: str) -> "ResponseBuilder":
        """
        302 Found to location.

        A short HTML body with a link is included for clients that do
        not follow Location headers.
        """
        self._status = HTTPStatus.FOUND
        self._headers["Location"] = location
        link = location.translate(_HTML_ESCAPES)
        return self.html(f'<a href="{link}">{self._status.phrase}</a>.\n\n')

    def build(self) -> HTTPResponse:
        """Build the HTTPResponse."""
        return HTTPResponse(
            status=self._status,
            headers=dict(self._headers),
            body=self._body,
        )


def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an HTTP date (RFC 7231 IMF-fixdate).

        Sun, 18 Oct 2026 12:30:45 GMT
    """
    weekdays = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
    dt = dt.astimezone(timezone.utc)
    return (
        f"{weekdays[dt.weekday()]}, {dt.day:02d} {months[dt.month - 1]} "
        f"{dt.year} {dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


def error(status: HTTPStatus, message: str) -> HTTPResponse:
    """
    Plain-text error reply: body is the message plus a newline.

    nosniff keeps browsers from reinterpreting the text as HTML.
    """
    return (ResponseBuilder()
        .status(status)
        .header("X-Content-Type-Options", "nosniff")
        .text(message + "\n")
        .build())


def not_found(message: str = "not found") -> HTTPResponse:
    """Create a 404 Not Found response."""
    return error(HTTPStatus.NOT_FOUND, message)


def internal_error(message: str = "Internal Server Error") -> HTTPResponse:
    """Create a 500 Internal Server Error response."""
    return error(HTTPStatus.INTERNAL_SERVER_ERROR, message)
