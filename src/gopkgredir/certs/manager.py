"""
=============================================================================
CERTIFICATE MANAGER
=============================================================================

Provides TLS certificates per SNI server name, obtained from an ACME
certificate authority (Let's Encrypt by default) through acme-tiny.

=============================================================================
CERTIFICATE LOOKUP
=============================================================================

    ClientHello (SNI "example.com")
            │
            ▼
    sni_callback ──► get_certificate("example.com")
                          │
                          ├── in memory and not expiring?  → context
                          │
                          ├── in cache file and not expiring? → load → context
                          │
                          └── issue:
                                 new RSA key + CSR            (cryptography)
                                 acme_tiny.get_crt(...)       HTTP-01 via
                                 cache.put() + save()         ChallengeHandler
                                 load → context

A certificate whose notAfter is less than RENEW_BEFORE away is renewed the
next time it is asked for. Issuance for one name is serialized with a
per-name lock, so concurrent handshakes for a new name trigger one order.

acme-tiny talks to the CA with the openssl binary; it must be on PATH.

=============================================================================
"""

import logging
import os
import re
import ssl
import tempfile
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

import acme_tiny
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse
from .cache import CertificateCache, CertificateError
from .challenge import ChallengeHandler


logger = logging.getLogger(__name__)


LETSENCRYPT_DIRECTORY_URL = "https://acme-v02.api.letsencrypt.org/directory"

RENEW_BEFORE = timedelta(days=30)

_HOSTNAME_PATTERN = re.compile(
    r"^(?=.{1,253}$)([a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?)(\.[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?)*$"
)


def generate_private_key_pem(key_size: int = 2048) -> str:
    """New RSA private key as a PKCS#1 PEM string."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


def build_csr_pem(server_name: str, key_pem: str) -> str:
    """Certificate signing request for a single DNS name."""
    key = serialization.load_pem_private_key(key_pem.encode("ascii"), password=None)
    csr = (x509.CertificateSigningRequestBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, server_name)]))
        .add_extension(x509.SubjectAlternativeName([x509.DNSName(server_name)]), critical=False)
        .sign(key, hashes.SHA256()))
    return csr.public_bytes(serialization.Encoding.PEM).decode("ascii")


def certificate_not_after(cert_pem: str) -> datetime:
    """Expiry (UTC) of the first certificate in a PEM chain."""
    try:
        cert = x509.load_pem_x509_certificate(cert_pem.encode("ascii"))
    except ValueError as e:
        raise CertificateError(f"invalid certificate: {e}") from e
    return cert.not_valid_after_utc


@dataclass
class _LoadedCertificate:
    context: ssl.SSLContext
    not_after: datetime


class CertificateManager:
    """
    Per-host certificates for the TLS listener.

        manager = CertificateManager()
        manager.cache_file("letsencrypt.cache")
        manager.register("admin@example.com")

        context = manager.server_context()       # for the TLS listener
        handler = manager.http_handler(redirect) # for the plain listener
    """

    def __init__(
        self,
        directory_url: str = LETSENCRYPT_DIRECTORY_URL,
        challenge_dir: Optional[str] = None,
        key_size: int = 2048,
        renew_before: timedelta = RENEW_BEFORE,
    ):
        self.directory_url = directory_url
        self.key_size = key_size
        self.renew_before = renew_before

        self._challenge_tmp = None
        if challenge_dir is None:
            self._challenge_tmp = tempfile.TemporaryDirectory(prefix="gopkgredir-acme-")
            challenge_dir = self._challenge_tmp.name
        self.challenge_dir = challenge_dir

        self._cache = CertificateCache()
        self._loaded: Dict[str, _LoadedCertificate] = {}
        self._lock = threading.Lock()  # guards _loaded and _host_locks
        self._host_locks: Dict[str, threading.Lock] = {}

    @property
    def cache(self) -> CertificateCache:
        return self._cache

    # =========================================================================
    # SETUP
    # =========================================================================

    def cache_file(self, path: str):
        """
        Use (and create if needed) a cache file.

        Raises:
            CertificateError: If the file cannot be opened or created.
        """
        self._cache = CertificateCache.open(path)
        logger.info(f"Using certificate cache {path}")

    def register(self, email: str):
        """
        Ensure an account key exists and record the contact email.

        The account is created at the CA with this key and contact on
        the first certificate order.

        Raises:
            CertificateError: If the cache cannot be saved.
        """
        key_pem = self._cache.account_key or generate_private_key_pem(self.key_size)
        self._cache.set_account(key_pem, email)
        self._cache.save()
        logger.info(f"Registered ACME account contact {email}")

    # =========================================================================
    # CERTIFICATES
    # =========================================================================

    def _host_lock(self, name: str) -> threading.Lock:
        with self._lock:
            return self._host_locks.setdefault(name, threading.Lock())

    def _needs_renewal(self, not_after: datetime) -> bool:
        return not_after - datetime.now(timezone.utc) < self.renew_before

    def get_certificate(self, server_name: str) -> ssl.SSLContext:
        """
        Server context holding the certificate for server_name.

        Raises:
            CertificateError: If the name is not a valid host name or no
                              certificate could be loaded or issued.
        """
        name = (server_name or "").strip().lower().rstrip(".")
        if not _HOSTNAME_PATTERN.match(name):
            raise CertificateError(f"invalid server name: {server_name!r}")

        with self._host_lock(name):
            with self._lock:
                loaded = self._loaded.get(name)
            if loaded is not None and not self._needs_renewal(loaded.not_after):
                return loaded.context

            cached = self._cache.get(name)
            if cached is not None:
                cert_pem, key_pem = cached
                not_after = certificate_not_after(cert_pem)
                if not self._needs_renewal(not_after):
                    return self._remember(name, cert_pem, key_pem, not_after)
                logger.info(f"Certificate for {name} expires {not_after:%Y-%m-%d}, renewing")

            cert_pem, key_pem = self._issue(name)
            self._cache.put(name, cert_pem, key_pem)
            self._cache.save()
            return self._remember(name, cert_pem, key_pem, certificate_not_after(cert_pem))

    def _remember(self, name: str, cert_pem: str, key_pem: str, not_after: datetime) -> ssl.SSLContext:
        context = self._load_context(cert_pem, key_pem)
        with self._lock:
            self._loaded[name] = _LoadedCertificate(context, not_after)
        return context

    def _issue(self, name: str) -> tuple[str, str]:
        """Order a certificate for name through ACME HTTP-01."""
        account_key = self._cache.account_key
        if not account_key:
            account_key = generate_private_key_pem(self.key_size)
            self._cache.set_account(account_key)
            self._cache.save()

        key_pem = generate_private_key_pem(self.key_size)
        csr_pem = build_csr_pem(name, key_pem)
        email = self._cache.email
        contact = [f"mailto:{email}"] if email else None

        logger.info(f"Requesting certificate for {name} from {self.directory_url}")

        with tempfile.TemporaryDirectory(prefix="gopkgredir-order-") as workdir:
            account_path = os.path.join(workdir, "account.key")
            csr_path = os.path.join(workdir, "domain.csr")
            with open(account_path, "w", encoding="ascii") as f:
                f.write(account_key)
            with open(csr_path, "w", encoding="ascii") as f:
                f.write(csr_pem)

            try:
                cert_pem = acme_tiny.get_crt(
                    account_path,
                    csr_path,
                    self.challenge_dir,
                    log=logger,
                    directory_url=self.directory_url,
                    contact=contact,
                )
            except Exception as e:
                # acme-tiny signals every failure with plain built-in exceptions
                raise CertificateError(f"obtaining certificate for {name}: {e}") from e

        logger.info(f"Obtained certificate for {name}")
        return cert_pem, key_pem

    def _load_context(self, cert_pem: str, key_pem: str) -> ssl.SSLContext:
        """Build a server SSLContext from PEM strings."""
        context = self._new_context()
        with tempfile.TemporaryDirectory(prefix="gopkgredir-tls-") as workdir:
            cert_path = os.path.join(workdir, "cert.pem")
            key_path = os.path.join(workdir, "key.pem")
            with open(cert_path, "w", encoding="ascii") as f:
                f.write(cert_pem)
            with open(key_path, "w", encoding="ascii") as f:
                f.write(key_pem)
            try:
                context.load_cert_chain(cert_path, key_path)
            except ssl.SSLError as e:
                raise CertificateError(f"loading certificate: {e}") from e
        return context

    @staticmethod
    def _new_context() -> ssl.SSLContext:
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        context.minimum_version = ssl.TLSVersion.TLSv1_2
        return context

    # =========================================================================
    # LISTENER INTEGRATION
    # =========================================================================

    def sni_callback(self, ssl_socket: ssl.SSLObject, server_name: Optional[str], initial_context: ssl.SSLContext):
        """
        ssl.SSLContext.sni_callback: swap in the context for server_name.

        Returns a TLS alert description to abort the handshake, or None.
        """
        if not server_name:
            logger.info("TLS handshake without server name rejected")
            return ssl.ALERT_DESCRIPTION_UNRECOGNIZED_NAME

        try:
            ssl_socket.context = self.get_certificate(server_name)
        except CertificateError as e:
            logger.error(f"No certificate for {server_name}: {e}")
            return ssl.ALERT_DESCRIPTION_INTERNAL_ERROR
        return None

    def server_context(self) -> ssl.SSLContext:
        """Listening context; certificates are picked per handshake."""
        context = self._new_context()
        context.sni_callback = self.sni_callback
        return context

    def http_handler(
        self, fallback: Callable[[HTTPRequest], HTTPResponse]
    ) -> Callable[[HTTPRequest], HTTPResponse]:
        """Plaintext handler answering HTTP-01 challenges before fallback."""
        return ChallengeHandler(self.challenge_dir, fallback)

    def close(self):
        """Remove the temporary challenge directory, if one was created."""
        if self._challenge_tmp is not None:
            self._challenge_tmp.cleanup()
            self._challenge_tmp = None
