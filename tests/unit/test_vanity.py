"""
Unit tests for the vanity import path handler.
"""

import logging

import jinja2
import pytest

from gopkgredir.config import Config
from gopkgredir.handlers.vanity import (
    PackageContext,
    VanityHandler,
    attr_escape,
    filter_url,
    normalize_url,
)
from gopkgredir.http.request import HTTPRequest, parse_request
from gopkgredir.http.status_codes import HTTPStatus


EXPECTED_PAGE = """<!DOCTYPE html>
<html>
<head>
<meta http-equiv="Content-Type" content="text/html; charset=utf-8"/>
<meta name="go-import" content="example.com/mypkg git https://github.com/me/mypkg" >
<meta http-equiv="refresh" content="0; url=https://github.com/me/mypkg">
</head>
<body>
Nothing to see here; <a href="https://github.com/me/mypkg">move along</a>.
</body>
</html>
"""


@pytest.fixture
def vanity_config() -> Config:
    return Config(import_prefix="example.com", vcs="git", repo_root="https://github.com/me")


def get(path: str, method: str = "GET") -> HTTPRequest:
    return HTTPRequest(method=method, path=path, headers={"host": "example.com"})


class TestPackageContext:
    """Tests for package name and redirect resolution."""

    def test_first_segment_is_package(self, vanity_config):
        context = PackageContext.for_path(vanity_config, "/mypkg/sub/deeper")

        assert context.repo_name == "mypkg"
        assert context.redirect_url == "https://github.com/me/mypkg"

    def test_root_path(self, vanity_config):
        """Test that "/" yields an empty package name."""
        context = PackageContext.for_path(vanity_config, "/")

        assert context.repo_name == ""
        assert context.redirect_url == "https://github.com/me/"

    def test_explicit_redirect_url_wins(self):
        config = Config(repo_root="https://github.com/me", redirect_url="https://example.com/docs")
        context = PackageContext.for_path(config, "/mypkg")

        assert context.repo_name == "mypkg"
        assert context.redirect_url == "https://example.com/docs"

    def test_path_without_slash(self, vanity_config):
        """Test a path with a single split element (e.g. "*")."""
        context = PackageContext.for_path(vanity_config, "*")

        assert context.repo_name == ""
        assert context.redirect_url == ""

    def test_empty_second_segment(self, vanity_config):
        """Test that "//pkg" resolves to an empty package name."""
        context = PackageContext.for_path(vanity_config, "//pkg")
        assert context.repo_name == ""


class TestVanityHandler:
    """Tests for VanityHandler responses."""

    def test_renders_exact_page(self, vanity_config):
        response = VanityHandler(vanity_config)(get("/mypkg/sub"))

        assert response.status == HTTPStatus.OK
        assert response.headers["Content-Type"] == "text/html; charset=utf-8"
        assert response.body.decode("utf-8") == EXPECTED_PAGE

    def test_go_get_request(self, vanity_config, sample_get_request):
        """Test the request a real `go get` sends."""
        response = VanityHandler(vanity_config)(parse_request(sample_get_request))

        assert b'content="example.com/mypkg git https://github.com/me/mypkg"' in response.body

    @pytest.mark.parametrize("method", ["GET", "HEAD", "POST", "DELETE"])
    def test_any_method(self, vanity_config, method):
        response = VanityHandler(vanity_config)(get("/mypkg", method=method))
        assert response.status == HTTPStatus.OK

    def test_empty_configuration_still_renders(self):
        response = VanityHandler(Config())(get("/x"))

        assert response.status == HTTPStatus.OK
        assert b'content="/x git /x"' in response.body

    def test_values_are_html_escaped(self):
        """Test that markup in the path cannot break out of attributes."""
        config = Config(import_prefix="example.com", repo_root="https://github.com/me")
        response = VanityHandler(config)(get('/a"><script>'))

        assert b"<script>" not in response.body
        assert b"&#34;&gt;&lt;script&gt;" in response.body

    def test_render_failure_sends_partial_output(self, vanity_config, caplog):
        """Test that a template error is logged and the prefix is kept."""
        env = jinja2.Environment(autoescape=True)
        template = env.from_string("before {% for x in [1, 0] %}{{ 1 // x }}{% endfor %}")
        handler = VanityHandler(vanity_config, template=template)

        with caplog.at_level(logging.ERROR, logger="gopkgredir.handlers.vanity"):
            response = handler(get("/mypkg"))

        assert response.status == HTTPStatus.OK
        assert response.body.startswith(b"before ")
        assert "error executing template" in caplog.text


class TestEscaping:
    """Tests for the attribute and URL escaping of the page."""

    def render_path(self, config, raw_path: str) -> str:
        raw = f"GET {raw_path} HTTP/1.1\r\nHost: example.com\r\n\r\n".encode()
        return VanityHandler(config)(parse_request(raw)).body.decode("utf-8")

    def test_plus_is_an_entity(self, vanity_config):
        page = self.render_path(vanity_config, "/c++")

        assert 'content="example.com/c&#43;&#43; git https://github.com/me/c&#43;&#43;"' in page
        assert 'content="0; url=https://github.com/me/c&#43;&#43;"' in page
        assert '<a href="https://github.com/me/c&#43;&#43;">' in page

    def test_space_is_percent_encoded_in_href_only(self, vanity_config):
        page = self.render_path(vanity_config, "/a%20b")

        assert 'content="example.com/a b git https://github.com/me/a b"' in page
        assert 'content="0; url=https://github.com/me/a b"' in page
        assert '<a href="https://github.com/me/a%20b">' in page

    def test_non_ascii_href_uses_lowercase_hex(self, vanity_config):
        page = self.render_path(vanity_config, "/%C3%A9t%C3%A9")

        assert 'content="example.com/été git' in page
        assert '<a href="https://github.com/me/%c3%a9t%c3%a9">' in page

    def test_quotes_in_href(self, vanity_config):
        page = self.render_path(vanity_config, "/it's")

        assert 'content="example.com/it&#39;s git' in page
        assert '<a href="https://github.com/me/it%27s">' in page

    def test_unsafe_scheme_is_replaced(self):
        config = Config(import_prefix="example.com", redirect_url="javascript:alert(1)")
        page = VanityHandler(config)(get("/mypkg")).body.decode("utf-8")

        assert '<a href="#ZgotmplZ">' in page
        assert 'content="0; url=javascript:alert(1)"' in page

    @pytest.mark.parametrize("url", [
        "https://github.com/me/x",
        "HTTP://github.com/me/x",
        "mailto:me@example.com",
        "/relative/path",
        "docs/a:b",
    ])
    def test_safe_urls_are_kept(self, url):
        assert filter_url(url) == url

    def test_existing_escapes_are_not_doubled(self):
        assert normalize_url("https://x/a%20b c") == "https://x/a%20b%20c"

    def test_attr_escape_table(self):
        assert attr_escape("\0\"&'+<>") == "\ufffd&#34;&amp;&#39;&#43;&lt;&gt;"


class TestAbsoluteFormWithoutPath:
    """An empty request path keeps the configured redirect."""

    def test_empty_path(self, vanity_config):
        raw = b"GET http://example.com HTTP/1.1\r\nHost: example.com\r\n\r\n"
        context = PackageContext.for_path(vanity_config, parse_request(raw).path)

        assert context.repo_name == ""
        assert context.redirect_url == ""
