"""
=============================================================================
GOPKGREDIR - Vanity Import Path Redirector
=============================================================================

Answers `go get example.com/<package>` with the go-import meta tag that
points the toolchain at the real repository, and sends browsers on to the
repository page.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         PACKAGE LAYOUT                              │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   config.py      Config (env + flags), address parsing              │
    │   server.py      HTTPServer (one listener), Redirector (topology)   │
    │   __main__.py    CLI                                                │
    │                                                                      │
    │   core/          socket accept loop, connections, their threads     │
    │   http/          request parser, response builder, status codes     │
    │   middleware/    pipeline, access logging                           │
    │   handlers/      vanity page, plaintext → HTTPS redirect            │
    │   certs/         certificate cache, ACME issuance, SNI, HTTP-01     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
QUICK START
=============================================================================

    from gopkgredir import Config, Redirector

    config = Config(import_prefix="example.com",
                    repo_root="https://github.com/me",
                    listen_address="127.0.0.1:8080",
                    tls=False)
    Redirector(config).run()

=============================================================================
"""

__version__ = "0.1.0"

from .config import Config, parse_address
from .server import HTTPServer, Redirector

__all__ = [
    "__version__",
    "Config",
    "parse_address",
    "HTTPServer",
    "Redirector",
]
