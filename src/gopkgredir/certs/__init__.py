"""
Automatic TLS certificates: cache file, ACME issuance, SNI selection and
the HTTP-01 challenge responder.
"""

from .cache import CertificateCache, CertificateError
from .challenge import ChallengeHandler, CHALLENGE_PATH_PREFIX
from .manager import (
    CertificateManager,
    LETSENCRYPT_DIRECTORY_URL,
    RENEW_BEFORE,
)

__all__ = [
    "CertificateCache",
    "CertificateError",
    "ChallengeHandler",
    "CHALLENGE_PATH_PREFIX",
    "CertificateManager",
    "LETSENCRYPT_DIRECTORY_URL",
    "RENEW_BEFORE",
]
