"""
=============================================================================
GOPKGREDIR CLI ENTRY POINT
=============================================================================

    # Vanity paths over plain HTTP (behind a TLS-terminating proxy)
    gopkgredir --no-tls --listen-address :8080 \\
        --import-prefix example.com --repo-root https://github.com/me

    # Standalone with automatic certificates
    gopkgredir --listen-address :80 --tls-listen-address :443 \\
        --public-tls-address example.com --email admin@example.com \\
        --import-prefix example.com --repo-root https://github.com/me

Every flag can also be given through its environment variable; flags win.

    1. argparse reads flags (defaults from the environment)
    2. Config is built and validated
    3. Logging is configured
    4. Redirector.setup() then Redirector.run()

Exit status: 0 on clean shutdown, 1 on a fatal runtime error, 2 on invalid
configuration.

=============================================================================
"""

import argparse
import logging
import sys
from typing import Mapping, Optional, Sequence

from . import __version__
from .certs.cache import CertificateError
from .config import ACCESS_LOG_FORMATS, LOG_LEVELS, Config
from .server import Redirector


logger = logging.getLogger("gopkgredir")


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def build_parser(environ: Optional[Mapping[str, str]] = None) -> argparse.ArgumentParser:
    """Argument parser whose defaults are Config.from_env(environ)."""
    parser = argparse.ArgumentParser(
        prog="gopkgredir",
        description='a simple service to redirect "go get" properly',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    try:
        defaults = Config.from_env(environ)
    except ValueError as e:
        parser.error(f"NO_TLS: {e}")

    # ─────────────────────────────────────────────────────────────────────
    # VANITY PATHS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--import-prefix",
        default=defaults.import_prefix,
        help="base url used for the vanity url, any part of the path after "
             "that given here is considered <package> [$IMPORT_PREFIX]",
    )
    parser.add_argument(
        "--vcs",
        default=defaults.vcs,
        help="vcs repo type [$VCS]",
    )
    parser.add_argument(
        "--repo-root",
        default=defaults.repo_root,
        help="base url used for the repo package path, the first path part "
             "of <package> is appended [$REPO_ROOT]",
    )
    parser.add_argument(
        "--redirect-url",
        default=defaults.redirect_url,
        help="url to redirect browsers to, if empty, redirects to "
             "repo-root/package [$REDIRECT_URL]",
    )

    # ─────────────────────────────────────────────────────────────────────
    # LISTENERS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--tls-listen-address",
        default=defaults.tls_listen_address,
        help="address (ip/hostname and port) that the server should listen on "
             "[$TLS_LISTEN_ADDRESS]",
    )
    parser.add_argument(
        "--listen-address",
        default=defaults.listen_address,
        help="address (ip/hostname and port) that the server should listen on "
             "to redirect to the public tls address [$LISTEN_ADDRESS]",
    )
    parser.add_argument(
        "--public-tls-address",
        default=defaults.public_tls_address,
        help="address (ip/hostname and optionally port) that the non-tls server "
             "should use when redirecting for https [$PUBLIC_TLS_ADDRESS]",
    )

    parser.add_argument(
        "--no-tls",
        action="store_true",
        default=not defaults.tls,
        help='disable tls support and listen only on "listen-address" without '
             "tls redirection [$NO_TLS]",
    )

    # ─────────────────────────────────────────────────────────────────────
    # CERTIFICATES
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--cache-file",
        default=defaults.cache_file,
        help="file to use as the letsencrypt cache [$LETSENCRYPT_CACHE_FILE]",
    )
    parser.add_argument(
        "--email",
        default=defaults.email,
        help="email address to use for registering with letsencrypt "
             "[$LETSENCRYPT_EMAIL]",
    )

    # ─────────────────────────────────────────────────────────────────────
    # MISC
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        type=str.upper,
        choices=LOG_LEVELS,
        default=defaults.log_level,
        help="logging level [$LOG_LEVEL]",
    )
    parser.add_argument(
        "--access-log-format",
        choices=ACCESS_LOG_FORMATS,
        default=defaults.access_log_format,
        help="format of the per-request access log [$ACCESS_LOG_FORMAT]",
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser


def build_config(args: argparse.Namespace) -> Config:
    """Config from parsed arguments."""
    return Config(
        import_prefix=args.import_prefix,
        vcs=args.vcs,
        repo_root=args.repo_root,
        redirect_url=args.redirect_url,
        listen_address=args.listen_address,
        tls_listen_address=args.tls_listen_address,
        public_tls_address=args.public_tls_address,
        tls=not args.no_tls,
        cache_file=args.cache_file,
        email=args.email,
        log_level=args.log_level,
        access_log_format=args.access_log_format,
    )


def setup_logging(level: str):
    """Configure root logging once for the process."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
    )


def main(argv: Optional[Sequence[str]] = None, environ: Optional[Mapping[str, str]] = None) -> int:
    parser = build_parser(environ)
    args = parser.parse_args(argv)

    config = build_config(args)
    try:
        config.validate()
    except ValueError as e:
        parser.error(str(e))

    setup_logging(config.log_level)

    redirector = Redirector(config)
    try:
        redirector.setup()
        redirector.run()
    except KeyboardInterrupt:
        redirector.shutdown()
    except (CertificateError, OSError) as e:
        logger.error(f"{e}")
        return 1
    finally:
        if redirector.manager is not None:
            redirector.manager.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
