"""
=============================================================================
REDIRECTOR SERVER
=============================================================================

Wires the listener runtime, the middleware and the handlers together.

=============================================================================
TOPOLOGY
=============================================================================

    no-tls:

        listen_address ──► HTTPServer("http") ──► VanityHandler

    tls (default):

        listen_address      ──► HTTPServer("http")   background thread
                                   └─► ChallengeHandler ──► TLSRedirectHandler
                                       (ACME HTTP-01)       302 https://public/...

        tls_listen_address  ──► HTTPServer("tls")    main thread
                                   └─► VanityHandler
                                   certificates per SNI name from the
                                   CertificateManager

A failure of the plaintext listener in TLS mode is logged and the process
keeps serving TLS. A failure of the main listener ends the process.

=============================================================================
PER-CONNECTION FLOW
=============================================================================

    SocketServer.accept() ──► ConnectionThreads.spawn()
                                   │
                                   ▼  own thread
                           [TLS handshake]  (may issue a certificate)
                                   │
                 ┌─────────────────┴────────────────────┐
                 │  read_request → parse → pipeline     │ ◄── keep-alive
                 │  → to_bytes → send                   │     loop
                 └──────────────────────────────────────┘

=============================================================================
"""

import logging
import ssl
import threading
from typing import Callable, List, Optional

from .config import Config, parse_address
from .core.connection import Connection
from .core.connection_threads import ConnectionThreads
from .core.socket_server import SocketServer
from .certs.manager import CertificateManager
from .handlers.tls_redirect import TLSRedirectHandler
from .handlers.vanity import VanityHandler
from .http.request import HTTPParseError, HTTPRequest, RequestParser
from .http.response import HTTPResponse, error, internal_error
from .http.status_codes import HTTPStatus
from .middleware.base import MiddlewarePipeline
from .middleware.logging import LoggingMiddleware


logger = logging.getLogger(__name__)


Handler = Callable[[HTTPRequest], HTTPResponse]


class HTTPServer:
    """
    One listener: socket server + connection threads + parser + handler chain.

        server = HTTPServer("[::1]:8080", VanityHandler(config), config)
        server.serve()   # blocks until shutdown()
    """

    def __init__(
        self,
        address: str,
        handler: Handler,
        config: Config,
        ssl_context: Optional[ssl.SSLContext] = None,
        name: str = "http",
        on_signal: Optional[Callable[[], None]] = None,
    ):
        self.address = address
        self.config = config
        self.name = name
        self.tls = ssl_context is not None

        self._pipeline = MiddlewarePipeline()
        self._pipeline.add(LoggingMiddleware(config.access_log_format))
        self._handler = self._pipeline.wrap(handler)

        self._parser = RequestParser(max_request_size=config.max_request_size)
        self._threads = ConnectionThreads(name=name)
        self._socket_server = SocketServer(
            parse_address(address),
            config,
            ssl_context=ssl_context,
            name=name,
            on_signal=on_signal,
        )
        self._running = False

    @property
    def bound_address(self) -> tuple:
        """(host, port) actually bound; useful with port 0."""
        return self._socket_server.address

    def serve(self):
        """
        Bind and serve until shutdown().

        Raises:
            OSError: If the address cannot be bound.
        """
        self._running = True
        try:
            self._socket_server.start(self._handle_connection)
        finally:
            self._running = False
            self._threads.shutdown(timeout=self.config.keep_alive_timeout)

    def shutdown(self):
        """Stop accepting connections; serve() returns shortly after."""
        self._running = False
        self._socket_server.shutdown()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the listener socket is bound."""
        return self._socket_server.wait_until_ready(timeout)

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """Hand an accepted connection to its own thread."""
        try:
            self._threads.spawn(self._process_connection, conn)
        except RuntimeError as e:
            logger.warning(f"[{conn.id}] {self.name} cannot serve connection: {e}")
            conn.close()

    def _process_connection(self, conn: Connection):
        """
        Serve one connection (runs in its own thread).

        1. TLS handshake (TLS listener only)
        2. Read, parse, handle, send
        3. Repeat while keep-alive
        """
        with conn:
            if not conn.handshake():
                return

            while self._running:
                try:
                    raw_request = conn.read_request()
                    if raw_request is None:
                        break

                    try:
                        request = self._parser.parse(raw_request, conn.address, tls=conn.is_tls)
                    except HTTPParseError as e:
                        logger.info(f"[{conn.id}] Bad request from {conn.client_ip}: {e}")
                        self._send_error(conn, HTTPStatus(e.status_code), HTTPStatus(e.status_code).phrase)
                        break

                    response = self._dispatch(conn, request)

                    keep_alive = request.is_keep_alive and self.config.keep_alive
                    if keep_alive:
                        response.headers.setdefault("Connection", "keep-alive")
                        response.headers.setdefault(
                            "Keep-Alive",
                            f"timeout={int(self.config.keep_alive_timeout)}"
                        )
                    else:
                        response.headers["Connection"] = "close"

                    response_bytes = response.to_bytes(
                        self.config.server_name,
                        include_body=request.method != "HEAD",
                    )
                    if not conn.send_response(response_bytes):
                        break

                    if not keep_alive:
                        break

                except TimeoutError:
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT, "request timeout")
                    break

                except ValueError as e:
                    logger.info(f"[{conn.id}] {e}")
                    self._send_error(conn, HTTPStatus.PAYLOAD_TOO_LARGE, "request too large")
                    break

                except (ssl.SSLError, OSError) as e:
                    logger.debug(f"[{conn.id}] Connection error: {e}")
                    break

    def _dispatch(self, conn: Connection, request: HTTPRequest) -> HTTPResponse:
        """Run the handler chain; unexpected exceptions become a 500."""
        try:
            return self._handler(request)
        except Exception as e:
            logger.exception(f"[{conn.id}] Handler error: {e}")
            return internal_error()

    def _send_error(self, conn: Connection, status: HTTPStatus, message: str):
        """Plain-text error reply, then the connection is closed."""
        response = error(status, message)
        response.headers["Connection"] = "close"
        conn.send_response(response.to_bytes(self.config.server_name))


class Redirector:
    """
    The whole service: one or two HTTPServers depending on config.tls.

        redirector = Redirector(config)
        redirector.setup()   # certificate cache + account (TLS mode)
        redirector.run()     # blocks
    """

    def __init__(self, config: Config, manager: Optional[CertificateManager] = None):
        self.config = config
        self.manager = manager
        if config.tls and self.manager is None:
            self.manager = CertificateManager()

        self._servers: List[HTTPServer] = []
        self._lock = threading.Lock()
        self._stopped = False

    def setup(self):
        """
        Prepare certificates in TLS mode: open the cache and, when an email
        is configured, register it.

        Raises:
            CertificateError: Fatal for the process.
        """
        if not self.config.tls:
            return

        self.manager.cache_file(self.config.cache_file)
        if self.config.email:
            self.manager.register(self.config.email)

    def _add_server(self, server: HTTPServer) -> HTTPServer:
        with self._lock:
            self._servers.append(server)
            if self._stopped:
                server.shutdown()
        return server

    def run(self):
        """
        Start the listeners and block while the main one serves.

        Raises:
            OSError: If the main listener cannot be bound.
        """
        if not self.config.tls:
            server = self._add_server(HTTPServer(
                self.config.listen_address,
                VanityHandler(self.config),
                self.config,
                name="http",
                on_signal=self.shutdown,
            ))
            logger.info(f"listening for http at {self.config.listen_address}")
            server.serve()
            return

        redirect_server = self._add_server(HTTPServer(
            self.config.listen_address,
            self.manager.http_handler(TLSRedirectHandler(self.config.public_tls_address)),
            self.config,
            name="http",
        ))
        logger.info(f"listening for http at {self.config.listen_address}")
        threading.Thread(
            target=self._serve_secondary,
            args=(redirect_server,),
            name="http-listener",
            daemon=True,
        ).start()

        tls_server = self._add_server(HTTPServer(
            self.config.tls_listen_address,
            VanityHandler(self.config),
            self.config,
            ssl_context=self.manager.server_context(),
            name="tls",
            on_signal=self.shutdown,
        ))
        logger.info(f"listening for tls at {self.config.tls_listen_address}")
        try:
            tls_server.serve()
        finally:
            redirect_server.shutdown()

    def _serve_secondary(self, server: HTTPServer):
        """Plaintext listener in TLS mode: errors are reported, not fatal."""
        try:
            server.serve()
        except Exception as e:
            logger.error(f"error starting http listener: {e}")

    def shutdown(self):
        """Stop every listener."""
        with self._lock:
            self._stopped = True
            servers = list(self._servers)
        for server in servers:
            server.shutdown()

    @property
    def servers(self) -> List[HTTPServer]:
        with self._lock:
            return list(self._servers)
