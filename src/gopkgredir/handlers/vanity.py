"""
=============================================================================
VANITY IMPORT PATH HANDLER
=============================================================================

Answers every request with the HTML document the Go toolchain looks for
when resolving a custom import path.

    GET /mypkg/sub?go-get=1
           │
           ▼  first path segment
      repo_name = "mypkg"
           │
           ▼
    <meta name="go-import"
          content="example.com/mypkg git https://github.com/me/mypkg" >
    <meta http-equiv="refresh" content="0; url=https://github.com/me/mypkg">

`go get` reads the go-import tag; browsers follow the refresh tag (or the
"move along" link) to the repository page.

The handler is deliberately permissive: any method, any path, any Host.
"/" yields an empty package name and still renders.

=============================================================================
ESCAPING
=============================================================================

Values are escaped by where they land in the page, the way Go's
html/template does it, so the bytes on the wire match a Go deployment:

    attribute text      attr_escape   & < > " ' + NUL become entities
    href                url_escape    unsafe scheme → "#ZgotmplZ", bytes
                                      outside RFC 3986 → %xx, then
                                      attr_escape

    "/c++"    →  content="example.com/c&#43;&#43; git ..."
    "/a%20b"  →  href="https://github.com/me/a%20b"

=============================================================================
"""

import logging
import string
from dataclasses import dataclass, asdict
from typing import Any, Optional

import jinja2
from markupsafe import Markup

from ..config import Config
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ResponseBuilder


logger = logging.getLogger(__name__)


VANITY_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
<meta http-equiv="Content-Type" content="text/html; charset=utf-8"/>
<meta name="go-import" content="{{ import_prefix|attr_escape }}/{{ repo_name|attr_escape }} {{ vcs|attr_escape }} {{ repo_root|attr_escape }}/{{ repo_name|attr_escape }}" >
<meta http-equiv="refresh" content="0; url={{ redirect_url|attr_escape }}">
</head>
<body>
Nothing to see here; <a href="{{ redirect_url|url_escape }}">move along</a>.
</body>
</html>
"""


# ─────────────────────────────────────────────────────────────────────────
# ESCAPERS
# ─────────────────────────────────────────────────────────────────────────

_ATTR_ESCAPES = str.maketrans({
    "\0": "\ufffd",
    '"': "&#34;",
    "&": "&amp;",
    "'": "&#39;",
    "+": "&#43;",
    "<": "&lt;",
    ">": "&gt;",
})

# Left untouched by url_escape: unreserved and reserved characters of
# RFC 3986, plus "%" so existing escapes are not escaped twice.
_URL_KEEP = frozenset(
    (string.ascii_letters + string.digits + "-._~" + "!#$&*+,/:;=?@[]" + "%").encode("ascii")
)

SAFE_URL_SCHEMES = ("http", "https", "mailto")
UNSAFE_URL = "#ZgotmplZ"


def attr_escape(value: Any) -> Markup:
    """Escape a value for a quoted HTML attribute."""
    return Markup(str(value).translate(_ATTR_ESCAPES))


def filter_url(url: str) -> str:
    """Replace URLs with a scheme other than http, https or mailto."""
    scheme, sep, _ = url.partition(":")
    if sep and "/" not in scheme and scheme.lower() not in SAFE_URL_SCHEMES:
        return UNSAFE_URL
    return url


def normalize_url(url: str) -> str:
    """Percent-encode (lowercase hex) every byte outside _URL_KEEP."""
    return "".join(
        chr(byte) if byte in _URL_KEEP else f"%{byte:02x}"
        for byte in url.encode("utf-8")
    )


def url_escape(value: Any) -> Markup:
    """Escape a value used as a whole URL attribute (href)."""
    return attr_escape(normalize_url(filter_url(str(value))))


# Compiled once; rendering is thread-safe.
_environment = jinja2.Environment(autoescape=True, keep_trailing_newline=True)
_environment.filters["attr_escape"] = attr_escape
_environment.filters["url_escape"] = url_escape


@dataclass(frozen=True)
class PackageContext:
    """Values substituted into the vanity page for one request."""

    import_prefix: str
    vcs: str
    repo_root: str
    repo_name: str
    redirect_url: str

    @classmethod
    def for_path(cls, config: Config, path: str) -> "PackageContext":
        """
        Build the context for a request path.

        "/mypkg/sub".split("/") == ["", "mypkg", "sub"]: element 1 is the
        package. When the split has a single element (a path without any
        "/") the package stays empty and redirect_url stays as configured.
        """
        repo_name = ""
        redirect_url = config.redirect_url

        parts = path.split("/")
        if len(parts) > 1:
            repo_name = parts[1]
            if not config.redirect_url:
                redirect_url = config.repo_root + "/" + repo_name

        return cls(
            import_prefix=config.import_prefix,
            vcs=config.vcs,
            repo_root=config.repo_root,
            repo_name=repo_name,
            redirect_url=redirect_url,
        )


class VanityHandler:
    """
    Request handler serving the vanity page.

        handler = VanityHandler(config)
        response = handler(request)   # always 200 text/html
    """

    def __init__(self, config: Config, template: Optional[jinja2.Template] = None):
        self.config = config
        self.template = template or _environment.from_string(VANITY_TEMPLATE)

    def __call__(self, request: HTTPRequest) -> HTTPResponse:
        context = PackageContext.for_path(self.config, request.path)
        return (ResponseBuilder()
            .html(self.render(context))
            .build())

    def render(self, context: PackageContext) -> str:
        """
        Render the page for a context.

        A failure while rendering is logged and whatever was produced up to
        that point is returned; the status stays 200.
        """
        chunks = []
        try:
            for chunk in self.template.generate(**asdict(context)):
                chunks.append(chunk)
        except Exception as e:
            logger.error(f"error executing template {e}")
        return "".join(chunks)
