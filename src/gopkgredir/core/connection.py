"""
=============================================================================
CLIENT CONNECTION
=============================================================================

One accepted client socket, plain or TLS, as its connection thread sees it:

    handshake()       TLS only; the SNI callback may issue a certificate
        │
    read_request() ◄──┐   first request: config.timeout
        │             │   later ones:    keep_alive_timeout, quiet → None
    send_response() ──┘
        │
    close()           FIN, drain, close

TLS sockets arrive wrapped with the handshake deferred, so a slow
certificate issuance never runs in the accept loop.

=============================================================================
"""

import logging
import socket
import ssl
import uuid
from typing import Optional


logger = logging.getLogger(__name__)

HEADER_END = b"\r\n\r\n"


class Connection:
    """
    Buffered request reader and response writer for one client.

    Bytes received past the end of a request stay buffered for the next
    read_request() on the same connection.
    """

    def __init__(
        self,
        socket: socket.socket,
        address: tuple,
        buffer_size: int = 8192,
        timeout: Optional[float] = 30.0,
        keep_alive_timeout: float = 5.0,
        max_request_size: int = 1024 * 1024,
    ):
        self.socket = socket
        self.address = address
        self.id = uuid.uuid4().hex[:8]
        self.buffer_size = buffer_size
        self.timeout = timeout
        self.keep_alive_timeout = keep_alive_timeout
        self.max_request_size = max_request_size

        self.requests_handled = 0
        self.closed = False
        self._buffer = b""

        self.socket.settimeout(timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def is_tls(self) -> bool:
        return isinstance(self.socket, ssl.SSLSocket)

    def handshake(self) -> bool:
        """
        Finish the deferred TLS handshake.

        Returns False (after logging) when it fails; plain sockets always
        succeed.
        """
        if not self.is_tls:
            return True
        try:
            self.socket.do_handshake()
        except (ssl.SSLError, OSError) as e:
            logger.debug(f"[{self.id}] TLS handshake with {self.client_ip} failed: {e}")
            return False
        return True

    def read_request(self) -> Optional[bytes]:
        """
        Read one request: headers plus Content-Length bytes of body.

        Returns:
            The request bytes, or None when the peer closed the connection
            or an idle keep-alive connection timed out.

        Raises:
            TimeoutError: If the first request never arrives.
            ValueError: If the request exceeds max_request_size.
        """
        if self.requests_handled:
            self.socket.settimeout(self.keep_alive_timeout)

        try:
            while HEADER_END not in self._buffer:
                if not self._fill():
                    return None

            body_start = self._buffer.index(HEADER_END) + len(HEADER_END)
            request_end = body_start + _content_length(self._buffer[:body_start])
            while len(self._buffer) < request_end:
                if not self._fill():
                    break
        except socket.timeout:
            if self.requests_handled:
                logger.debug(f"[{self.id}] Keep-alive timeout")
                return None
            raise TimeoutError("Request read timeout") from None
        finally:
            self.socket.settimeout(self.timeout)

        request, self._buffer = self._buffer[:request_end], self._buffer[request_end:]
        self.requests_handled += 1
        return request

    def _fill(self) -> bool:
        """Append one recv() to the buffer; False once the peer is gone."""
        try:
            chunk = self.socket.recv(self.buffer_size)
        except (ConnectionResetError, BrokenPipeError):
            return False
        if not chunk:
            return False

        self._buffer += chunk
        if len(self._buffer) > self.max_request_size:
            raise ValueError(f"Request too large: {len(self._buffer)} bytes")
        return True

    def send_response(self, data: bytes) -> bool:
        """sendall(); False if the peer is gone."""
        try:
            self.socket.sendall(data)
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False
        return True

    def close(self):
        """Half-close, drain what the client still sends, then close."""
        if self.closed:
            return
        self.closed = True

        try:
            self.socket.shutdown(socket.SHUT_WR)
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass  # peer already gone
        finally:
            self.socket.close()

        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def _content_length(head: bytes) -> int:
    """Content-Length from raw header bytes; 0 if absent or invalid."""
    for line in head.split(b"\r\n")[1:]:
        name, sep, value = line.partition(b":")
        if sep and name.strip().lower() == b"content-length":
            try:
                return max(int(value.strip()), 0)
            except ValueError:
                return 0
    return 0
