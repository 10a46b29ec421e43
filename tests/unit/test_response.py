"""
Unit tests for HTTP response building.
"""

from datetime import datetime, timezone

from gopkgredir.http.response import (
    HTTPResponse,
    ResponseBuilder,
    format_http_date,
    not_found,
    internal_error,
)
from gopkgredir.http.status_codes import HTTPStatus


class TestHTTPResponse:
    """Tests for HTTPResponse class."""

    def test_status_line(self):
        """Test status line generation."""
        assert HTTPResponse(status=HTTPStatus.OK).status_line == "HTTP/1.1 200 OK"
        assert HTTPResponse(status=HTTPStatus.FOUND).status_line == "HTTP/1.1 302 Found"

    def test_to_bytes_includes_headers(self):
        """Test that serialization includes headers and body."""
        response = HTTPResponse(
            status=HTTPStatus.OK,
            headers={"Content-Type": "text/plain"},
            body=b"Hello",
        )

        data = response.to_bytes()

        assert data.startswith(b"HTTP/1.1 200 OK\r\n")
        assert b"Content-Type: text/plain\r\n" in data
        assert b"Server: gopkgredir\r\n" in data
        assert b"Date: " in data
        assert data.endswith(b"\r\n\r\nHello")

    def test_to_bytes_sets_content_length(self):
        """Test that Content-Length is calculated."""
        data = HTTPResponse(body=b"12345").to_bytes()
        assert b"Content-Length: 5\r\n" in data

    def test_to_bytes_without_body(self):
        """Test HEAD-style serialization keeps Content-Length but no body."""
        data = HTTPResponse(body=b"12345").to_bytes(include_body=False)

        assert b"Content-Length: 5\r\n" in data
        assert data.endswith(b"\r\n\r\n")

    def test_custom_server_name(self):
        """Test the Server header value."""
        assert b"Server: other\r\n" in HTTPResponse().to_bytes(server_name="other")


class TestResponseBuilder:
    """Tests for ResponseBuilder class."""

    def test_default_status(self):
        """Test that responses default to 200."""
        assert ResponseBuilder().build().status == HTTPStatus.OK

    def test_html_body(self):
        """Test HTML body setting."""
        response = ResponseBuilder().html("<h1>Hello</h1>").build()

        assert response.headers["Content-Type"] == "text/html; charset=utf-8"
        assert response.body == b"<h1>Hello</h1>"

    def test_text_body(self):
        """Test plain text body setting."""
        response = ResponseBuilder().text("Hello, World!").build()

        assert response.headers["Content-Type"] == "text/plain; charset=utf-8"
        assert response.body == b"Hello, World!"

    def test_redirect(self):
        """Test redirect response with its link body."""
        response = ResponseBuilder().redirect("https://example.com/pkg?a=1&b=2").build()

        assert response.status == HTTPStatus.FOUND
        assert response.headers["Location"] == "https://example.com/pkg?a=1&b=2"
        assert response.body == b'<a href="https://example.com/pkg?a=1&amp;b=2">Found</a>.\n\n'

    def test_redirect_escapes_link_like_net_http(self):
        """Test that quotes in the location are escaped with numeric references."""
        response = ResponseBuilder().redirect("https://example.com/a\"b'c<d>").build()

        assert response.body == b'<a href="https://example.com/a&#34;b&#39;c&lt;d&gt;">Found</a>.\n\n'

    def test_method_chaining(self):
        """Test fluent API chaining."""
        response = (ResponseBuilder()
            .status(HTTPStatus.NOT_FOUND)
            .header("X-Custom", "value")
            .body(b"raw")
            .build())

        assert response.status == HTTPStatus.NOT_FOUND
        assert response.headers["X-Custom"] == "value"
        assert response.body == b"raw"


class TestConvenienceFunctions:
    """Tests for convenience response functions."""

    def test_not_found(self):
        """Test the plain-text 404."""
        response = not_found()

        assert response.status == HTTPStatus.NOT_FOUND
        assert response.body == b"not found\n"
        assert response.headers["Content-Type"] == "text/plain; charset=utf-8"
        assert response.headers["X-Content-Type-Options"] == "nosniff"

    def test_internal_error(self):
        """Test internal_error() function."""
        assert internal_error().status == HTTPStatus.INTERNAL_SERVER_ERROR


class TestHTTPStatus:
    """Tests for HTTPStatus enum."""

    def test_status_phrases(self):
        """Test reason phrases."""
        assert HTTPStatus.OK.phrase == "OK"
        assert HTTPStatus.FOUND.phrase == "Found"
        assert HTTPStatus.NOT_FOUND.phrase == "Not Found"
        assert HTTPStatus.INTERNAL_SERVER_ERROR.phrase == "Internal Server Error"


class TestFormatHTTPDate:
    """Tests for HTTP date formatting."""

    def test_format(self):
        """Test HTTP date format."""
        dt = datetime(2026, 1, 15, 12, 30, 45, tzinfo=timezone.utc)
        assert format_http_date(dt) == "Thu, 15 Jan 2026 12:30:45 GMT"
