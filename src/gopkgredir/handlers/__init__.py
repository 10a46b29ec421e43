"""
Request handlers: the vanity page and the plaintext-to-HTTPS redirect.
"""

from .vanity import VanityHandler, PackageContext, VANITY_TEMPLATE
from .tls_redirect import TLSRedirectHandler

__all__ = [
    "VanityHandler",
    "PackageContext",
    "VANITY_TEMPLATE",
    "TLSRedirectHandler",
]
