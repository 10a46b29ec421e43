"""
=============================================================================
HTTP REQUEST PARSING
=============================================================================

Turns the raw bytes read from a connection into an HTTPRequest.

=============================================================================
ANATOMY OF A REQUEST
=============================================================================

    GET /mypkg/sub?go-get=1 HTTP/1.1\r\n     ← Request line
    Host: example.com\r\n                    ← Headers
    User-Agent: Go-http-client/1.1\r\n
    \r\n                                     ← End of headers
                                             ← (no body for GET)

    ┌───────────────────────────────────────────────────────────────────┐
    │ Request line                                                      │
    ├───────────────────────────────────────────────────────────────────┤
    │  method  = "GET"                                                  │
    │  target  = "/mypkg/sub?go-get=1"   (kept verbatim for redirects)  │
    │  path    = "/mypkg/sub"            (percent-decoded)              │
    │  query   = "go-get=1"                                             │
    │  version = "HTTP/1.1"                                             │
    └───────────────────────────────────────────────────────────────────┘

The vanity handler only looks at the first path segment and the redirect
handler only rebuilds the target, so the parser stays lenient about paths:
no normalization, no rejection of unusual segments.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Optional, Dict
from urllib.parse import parse_qs, urlsplit, unquote
import re


class HTTPParseError(Exception):
    """
    Raised when HTTP request parsing fails.

    Carries the HTTP status code to return to the client:
        400 Bad Request                - Malformed request syntax, or an
                                         HTTP/1.1 request without Host
        405 Method Not Allowed         - Unknown method
        413 Payload Too Large          - Request exceeds size limit
        505 HTTP Version Not Supported - Unknown HTTP version
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    Attributes:
        method:         HTTP method (GET, HEAD, ...)
        path:           Percent-decoded path without query string
        version:        "HTTP/1.1" or "HTTP/1.0"
        target:         Request-target exactly as received
        raw_path:       Path as received, still percent-encoded
        query_string:   Raw query string (without "?")
        headers:        Header name (lowercase) → value
        query_params:   Parsed query string
        body:           Raw body bytes
        client_address: (ip, port, ...) of the peer
        tls:            True if the request arrived over TLS
    """

    method: str
    path: str
    version: str = "HTTP/1.1"
    target: str = ""
    raw_path: str = ""
    query_string: str = ""

    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, list[str]] = field(default_factory=dict)
    body: bytes = b""

    client_address: tuple = ("", 0)
    tls: bool = False

    def __post_init__(self):
        # Requests built by hand (tests, internal callers) get a target
        # consistent with their path and query.
        if not self.raw_path:
            self.raw_path = self.path
        if not self.target:
            self.target = self.raw_path + (f"?{self.query_string}" if self.query_string else "")

    @property
    def host(self) -> str:
        """
        Get the Host header value.

        Empty for HTTP/1.0 clients that do not send one.
        """
        return self.headers.get("host", "")

    @property
    def user_agent(self) -> str:
        """Get the User-Agent header value."""
        return self.headers.get("user-agent", "")

    @property
    def is_keep_alive(self) -> bool:
        """
        Check if this connection should be kept alive.

        HTTP/1.1 keeps alive unless "Connection: close";
        HTTP/1.0 closes unless "Connection: keep-alive".
        """
        connection = self.headers.get("connection", "").lower()
        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    def get_header(self, name: str, default: str = "") -> str:
        """Get a header value (case-insensitive lookup)."""
        return self.headers.get(name.lower(), default)

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Get the first value of a query parameter."""
        values = self.query_params.get(name, [])
        return values[0] if values else default


class RequestParser:
    """
    Parses raw HTTP request bytes into HTTPRequest objects.

        Raw Request Bytes
              │
              ▼
        ┌───────────────────────────────────────────────────────────────┐
        │  1. Size check              too large → 413                   │
        │  2. Split at \\r\\n\\r\\n         missing  → 400                   │
        │  3. Request line            bad syntax → 400, method → 405,   │
        │                             version → 505                     │
        │  4. Headers                 lowercase names, joined repeats   │
        │  5. Body                    exactly Content-Length bytes      │
        └───────────────────────────────────────────────────────────────┘
              │
              ▼
        HTTPRequest
    """

    VALID_METHODS = {
        "GET",
        "POST",
        "PUT",
        "DELETE",
        "PATCH",
        "HEAD",
        "OPTIONS",
        "TRACE",
        "CONNECT",
    }

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    def __init__(self, max_request_size: int = 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(
        self,
        data: bytes,
        client_address: tuple = ("", 0),
        tls: bool = False,
    ) -> HTTPRequest:
        """
        Parse raw HTTP request data into an HTTPRequest object.

        Args:
            data: Raw HTTP request bytes from the socket.
            client_address: Peer address for logging.
            tls: Whether the bytes were read from a TLS connection.

        Returns:
            Parsed HTTPRequest.

        Raises:
            HTTPParseError: If the request is malformed.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(data)} bytes",
                status_code=413,
            )

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        header_section = data[:header_end].decode("utf-8", errors="replace")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        method, target, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        if version == "HTTP/1.1" and "host" not in headers:
            raise HTTPParseError("Missing required Host header")

        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError("Invalid Content-Length") from None

        if content_length < 0 or len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )
        body = body[:content_length]

        # ---------------------------------------------------------------------
        # Split the target into path and query
        # ---------------------------------------------------------------------
        # "/pkg/sub?go-get=1"  → path "/pkg/sub", query "go-get=1"
        # "//pkg"              → origin-form, path "//pkg" (no authority)
        # "http://host/pkg"    → absolute-form, path "/pkg"
        # "http://host"        → absolute-form, empty path
        #
        if target.startswith("/"):
            raw_path, _, query = target.partition("?")
        else:
            parsed = urlsplit(target)
            raw_path, query = parsed.path, parsed.query

        return HTTPRequest(
            method=method,
            path=unquote(raw_path),
            version=version,
            target=target,
            raw_path=raw_path,
            query_string=query,
            headers=headers,
            query_params=parse_qs(query, keep_blank_values=True),
            body=body,
            client_address=client_address,
            tls=tls,
        )

    def _parse_request_line(self, line: str) -> tuple[str, str, str]:
        """
        Parse "METHOD SP REQUEST-TARGET SP HTTP-VERSION".

        Returns:
            Tuple of (method, target, version)
        """
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line}")

        method, target, version = match.groups()

        if method not in self.VALID_METHODS:
            raise HTTPParseError(f"Invalid method: {method}", status_code=405)

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=505,
            )

        return method, target, version

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        """
        Parse "Name: Value" lines into a dictionary.

        Names are lowercased, repeated headers are joined with ", " and
        obsolete continuation lines are folded into the previous header.
        """
        headers: Dict[str, str] = {}
        current_name = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue  # lenient

            name, value = match.groups()
            name = name.strip().lower()
            value = value.strip()
            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers


def parse_request(
    data: bytes,
    client_address: tuple = ("", 0),
    max_size: int = 1024 * 1024,
    tls: bool = False,
) -> HTTPRequest:
    """Parse a request with a one-off RequestParser."""
    return RequestParser(max_request_size=max_size).parse(data, client_address, tls=tls)
