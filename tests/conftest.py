"""
pytest configuration and fixtures.
"""

import socket
import threading
from datetime import datetime, timedelta, timezone
from typing import Generator, Optional

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gopkgredir import Config, HTTPServer


@pytest.fixture
def sample_get_request() -> bytes:
    """What `go get example.com/mypkg/sub` sends."""
    return (
        b"GET /mypkg/sub?go-get=1 HTTP/1.1\r\n"
        b"Host: example.com\r\n"
        b"User-Agent: Go-http-client/1.1\r\n"
        b"Accept-Encoding: gzip\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """POST request with a small body."""
    body = b'{"name": "John"}'
    return (
        b"POST /mypkg HTTP/1.1\r\n"
        b"Host: example.com\r\n"
        b"Content-Type: application/json\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"Connection: close\r\n"
        b"\r\n"
        + body
    )


@pytest.fixture
def config() -> Config:
    """Plain-mode configuration for a local test listener."""
    return Config(
        import_prefix="example.com",
        vcs="git",
        repo_root="https://github.com/me",
        listen_address="127.0.0.1:0",
        tls_listen_address="127.0.0.1:0",
        tls=False,
        timeout=5.0,
        keep_alive_timeout=1.0,
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class BackgroundServer:
    """Runs an HTTPServer in a background thread."""

    def __init__(self, server: HTTPServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.bound_address[1]

    def start(self):
        self._thread = threading.Thread(target=self.server.serve, daemon=True)
        self._thread.start()
        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")

    def stop(self):
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)


@pytest.fixture
def background_server() -> Generator:
    """Factory: start HTTPServers in background threads, stopped at teardown."""
    started = []

    def start(server: HTTPServer) -> BackgroundServer:
        bg = BackgroundServer(server)
        bg.start()
        started.append(bg)
        return bg

    yield start

    for bg in started:
        bg.stop()


def _send_raw(port: int, data: bytes, timeout: float = 5.0) -> bytes:
    with socket.create_connection(("127.0.0.1", port), timeout=timeout) as s:
        s.sendall(data)
        chunks = []
        while True:
            chunk = s.recv(4096)
            if not chunk:
                break
            chunks.append(chunk)
    return b"".join(chunks)


@pytest.fixture
def send_raw():
    """Send raw bytes to a local port and read until the server closes."""
    return _send_raw


# =============================================================================
# TEST CERTIFICATE AUTHORITY
# =============================================================================

class FakeCA:
    """
    Local CA standing in for the ACME server.

    sign_csr() turns a CSR into a leaf + CA chain, like an ACME order does.
    """

    def __init__(self, validity: timedelta = timedelta(days=90)):
        self.validity = validity
        self.key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "gopkgredir test CA")])
        now = datetime.now(timezone.utc)
        self.cert = (x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(self.key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - timedelta(days=1))
            .not_valid_after(now + timedelta(days=365))
            .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
            .add_extension(x509.KeyUsage(
                digital_signature=True, content_commitment=False, key_encipherment=False,
                data_encipherment=False, key_agreement=False, key_cert_sign=True,
                crl_sign=True, encipher_only=False, decipher_only=False,
            ), critical=True)
            .add_extension(x509.SubjectKeyIdentifier.from_public_key(self.key.public_key()), critical=False)
            .sign(self.key, hashes.SHA256()))
        self.orders = []

    @property
    def cert_pem(self) -> str:
        return self.cert.public_bytes(serialization.Encoding.PEM).decode("ascii")

    def sign_csr(self, csr_pem: str) -> str:
        csr = x509.load_pem_x509_csr(csr_pem.encode("ascii"))
        now = datetime.now(timezone.utc)
        san = csr.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
        leaf = (x509.CertificateBuilder()
            .subject_name(csr.subject)
            .issuer_name(self.cert.subject)
            .public_key(csr.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - timedelta(minutes=5))
            .not_valid_after(now + self.validity)
            .add_extension(san, critical=False)
            .add_extension(
                x509.AuthorityKeyIdentifier.from_issuer_public_key(self.key.public_key()),
                critical=False,
            )
            .sign(self.key, hashes.SHA256()))
        return leaf.public_bytes(serialization.Encoding.PEM).decode("ascii") + self.cert_pem

    def get_crt(self, account_key, csr, acme_dir, log=None, directory_url=None, contact=None, **kwargs):
        """Drop-in for acme_tiny.get_crt."""
        with open(csr, "r") as f:
            csr_pem = f.read()
        with open(account_key, "r") as f:
            account_pem = f.read()
        self.orders.append({
            "csr": csr_pem,
            "account_key": account_pem,
            "acme_dir": acme_dir,
            "directory_url": directory_url,
            "contact": contact,
        })
        return self.sign_csr(csr_pem)


@pytest.fixture
def fake_ca(monkeypatch) -> FakeCA:
    """Replace acme_tiny.get_crt with a local CA for the test."""
    import acme_tiny

    ca = FakeCA()
    monkeypatch.setattr(acme_tiny, "get_crt", ca.get_crt)
    return ca
