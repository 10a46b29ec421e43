"""
Plaintext listener handler that sends clients to the HTTPS address.

    GET /mypkg?go-get=1          Host: example.com
        ──► 302 Location: https://<public-tls-address>/mypkg?go-get=1

Requests that already arrived over TLS, or that carry no Host header,
get a plain 404 and nothing else.
"""

import logging

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ResponseBuilder, not_found
from ..http.status_codes import HTTPStatus


logger = logging.getLogger(__name__)


class TLSRedirectHandler:
    """Redirect plaintext requests to https://<public_tls_address><target>."""

    def __init__(self, public_tls_address: str):
        self.public_tls_address = public_tls_address

    def location_for(self, request: HTTPRequest) -> str:
        """
        Build the HTTPS URL for a request.

        Path and query are kept exactly as the client sent them.
        """
        location = f"https://{self.public_tls_address}{request.raw_path}"
        if request.query_string:
            location += f"?{request.query_string}"
        return location

    def __call__(self, request: HTTPRequest) -> HTTPResponse:
        if request.tls or not request.host:
            return not_found()

        location = self.location_for(request)
        logger.debug(f"Redirecting {request.host}{request.target} to {location}")

        if request.method in ("GET", "HEAD"):
            return ResponseBuilder().redirect(location).build()

        return (ResponseBuilder()
            .status(HTTPStatus.FOUND)
            .header("Location", location)
            .build())
