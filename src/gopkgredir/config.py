"""
=============================================================================
REDIRECTOR CONFIGURATION
=============================================================================

Centralized, immutable configuration for the vanity import path redirector.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── gopkgredir --repo-root https://github.com/me               │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── REPO_ROOT=https://github.com/me gopkgredir                 │
    │                                                                      │
    │   3. Defaults (this module)                                         │
    │      └── vcs="git", listen_address="[::1]:80"                       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The Config object is built exactly once, before any listener starts, and is
frozen afterwards. Every listener thread and every connection thread reads the same
instance without locking.

=============================================================================
"""

import os
import socket
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple


DEFAULT_LISTEN_ADDRESS = "[::1]:80"
DEFAULT_TLS_LISTEN_ADDRESS = "[::1]:443"
DEFAULT_CACHE_FILE = "letsencrypt.cache"
DEFAULT_VCS = "git"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
ACCESS_LOG_FORMATS = ("text", "json")

_TRUE_VALUES = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE_VALUES = {"0", "f", "F", "FALSE", "false", "False"}


def parse_bool(value: str) -> bool:
    """
    Parse a boolean flag value from the environment.

    Accepts the same spellings as the classic CLI libraries:
    1, t, T, TRUE, true, True and their false counterparts.

    Raises:
        ValueError: If the value is not a recognized boolean.
    """
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"invalid boolean value: {value!r}")


def parse_address(address: str) -> Tuple[str, int]:
    """
    Split a listen address into (host, port).

    =====================================================================
    SUPPORTED FORMS
    =====================================================================

        "127.0.0.1:8080"   → ("127.0.0.1", 8080)
        "[::1]:443"        → ("::1", 443)
        ":80"              → ("", 80)          all interfaces
        "example.com:http" → ("example.com", 80)  service name

    =====================================================================

    Raises:
        ValueError: If the address has no port or the port is invalid.
    """
    if address.startswith("["):
        end = address.find("]")
        if end == -1 or address[end + 1:end + 2] != ":":
            raise ValueError(f"invalid address: {address!r}")
        host, port_text = address[1:end], address[end + 2:]
    else:
        host, sep, port_text = address.rpartition(":")
        if not sep:
            raise ValueError(f"missing port in address: {address!r}")
        if ":" in host:
            raise ValueError(f"too many colons in address: {address!r}")

    if not port_text:
        raise ValueError(f"missing port in address: {address!r}")

    if port_text.isdigit():
        port = int(port_text)
    else:
        try:
            port = socket.getservbyname(port_text, "tcp")
        except OSError:
            raise ValueError(f"unknown port {port_text!r} in address: {address!r}") from None

    if not 0 <= port < 65536:
        raise ValueError(f"invalid port {port} in address: {address!r}")

    return host, port


@dataclass(frozen=True)
class Config:
    """
    Configuration snapshot for the redirector.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    VANITY PATHS
    - import_prefix, vcs, repo_root, redirect_url

    LISTENERS
    - listen_address, tls_listen_address, public_tls_address, tls

    CERTIFICATES
    - cache_file, email

    SERVER TUNING
    - backlog, buffer_size, timeout, keep_alive, keep_alive_timeout,
      max_request_size, server_name

    LOGGING
    - log_level, access_log_format

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # VANITY PATHS
    # ─────────────────────────────────────────────────────────────────────

    import_prefix: str = ""
    """Base URL of the vanity paths, e.g. "example.com"."""

    vcs: str = DEFAULT_VCS
    """VCS kind embedded verbatim in the go-import meta tag."""

    repo_root: str = ""
    """Base URL the package name is appended to, e.g. "https://github.com/me"."""

    redirect_url: str = ""
    """
    Where browsers are sent.
    Empty means repo_root + "/" + package.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LISTENERS
    # ─────────────────────────────────────────────────────────────────────

    listen_address: str = DEFAULT_LISTEN_ADDRESS
    """
    Plaintext listener.
    Serves the vanity pages without TLS, or redirects to HTTPS with TLS.
    """

    tls_listen_address: str = DEFAULT_TLS_LISTEN_ADDRESS
    """TLS listener, only bound when tls is enabled."""

    public_tls_address: str = ""
    """Host (and optional port) used in HTTPS redirects from the plain listener."""

    tls: bool = True
    """Terminate TLS with automatically provisioned certificates."""

    # ─────────────────────────────────────────────────────────────────────
    # CERTIFICATES
    # ─────────────────────────────────────────────────────────────────────

    cache_file: str = DEFAULT_CACHE_FILE
    """Certificate cache file owned by the certificate manager."""

    email: str = ""
    """Contact email registered with the certificate authority."""

    # ─────────────────────────────────────────────────────────────────────
    # SERVER TUNING
    # ─────────────────────────────────────────────────────────────────────

    backlog: int = 128
    buffer_size: int = 8192
    timeout: Optional[float] = 30.0
    keep_alive: bool = True
    keep_alive_timeout: float = 5.0
    max_request_size: int = 1024 * 1024  # 1 MB, requests carry no bodies
    server_name: str = "gopkgredir"

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    access_log_format: str = "text"
    """"text" (Apache-like lines) or "json", for the gopkgredir.access logger."""

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Config":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        IMPORT_PREFIX           vanity base URL
        VCS                     VCS kind (default: git)
        REPO_ROOT               canonical repository base URL
        REDIRECT_URL            explicit browser redirect
        TLS_LISTEN_ADDRESS      TLS bind address (default: [::1]:443)
        LISTEN_ADDRESS          plain bind address (default: [::1]:80)
        LETSENCRYPT_CACHE_FILE  certificate cache (default: letsencrypt.cache)
        LETSENCRYPT_EMAIL       account email
        PUBLIC_TLS_ADDRESS      host used in HTTPS redirects
        NO_TLS                  disable TLS entirely (default: false)
        LOG_LEVEL               logging level (default: INFO)
        ACCESS_LOG_FORMAT       text or json (default: text)

        =====================================================================
        """
        env = os.environ if environ is None else environ
        no_tls = env.get("NO_TLS", "")
        return cls(
            import_prefix=env.get("IMPORT_PREFIX", ""),
            vcs=env.get("VCS", DEFAULT_VCS),
            repo_root=env.get("REPO_ROOT", ""),
            redirect_url=env.get("REDIRECT_URL", ""),
            listen_address=env.get("LISTEN_ADDRESS", DEFAULT_LISTEN_ADDRESS),
            tls_listen_address=env.get("TLS_LISTEN_ADDRESS", DEFAULT_TLS_LISTEN_ADDRESS),
            public_tls_address=env.get("PUBLIC_TLS_ADDRESS", ""),
            tls=not parse_bool(no_tls) if no_tls else True,
            cache_file=env.get("LETSENCRYPT_CACHE_FILE", DEFAULT_CACHE_FILE),
            email=env.get("LETSENCRYPT_EMAIL", ""),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
            access_log_format=env.get("ACCESS_LOG_FORMAT", "text"),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Called once at startup so that a typo in an address fails the
        process immediately instead of on the first bind.

        Raises:
            ValueError: On the first invalid value found.
        """
        parse_address(self.listen_address)
        if self.tls:
            parse_address(self.tls_listen_address)

        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"invalid log level: {self.log_level!r}")

        if self.access_log_format not in ACCESS_LOG_FORMATS:
            raise ValueError(f"invalid access log format: {self.access_log_format!r}")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")
