"""
=============================================================================
LOW-LEVEL TCP SOCKET SERVER
=============================================================================

Binds one listening socket, accepts connections and hands each of them to
a callback. One SocketServer exists per listener: the redirector runs a
plaintext one and, in TLS mode, a second one wrapping accepted sockets with
an ssl.SSLContext.

=============================================================================
SOCKET LIFECYCLE
=============================================================================

    getaddrinfo()  Resolve "[::1]:443" / "127.0.0.1:80" / ":80"
         │
    socket()       AF_INET or AF_INET6, SOCK_STREAM
         │
    setsockopt()   SO_REUSEADDR, TCP_NODELAY
         │
    bind()         Reserve the address (errors propagate to the caller)
         │
    listen()       Kernel starts queueing connections
         │
    accept()       One new socket per client, 1s timeout to notice shutdown
         │
         └──► [wrap_socket(server_side, handshake deferred)]   TLS only
         └──► Connection(...) ──► callback(conn)

                    ┌───────────────────────┐
                    │   Listening Socket    │
                    │   [::1]:443           │
                    └───────────┬───────────┘
                                │
        ┌───────────────────────┼───────────────────────┐
        ▼                       ▼                       ▼
    ┌───────────┐         ┌───────────┐         ┌───────────┐
    │ SSLSocket │         │ SSLSocket │         │ SSLSocket │
    └───────────┘         └───────────┘         └───────────┘

The TLS handshake is NOT done in the accept loop. It may block on
certificate issuance (SNI callback → ACME), so it runs in the thread that
serves the connection.

=============================================================================
SIGNAL HANDLING
=============================================================================

SIGINT (Ctrl+C) and SIGTERM (docker stop, systemd) trigger a graceful
shutdown. Python only allows installing signal handlers from the main
thread, so a SocketServer running in a secondary thread (the plaintext
listener in TLS mode) leaves signals alone; the main-thread listener's
handler stops every listener through the Redirector.

=============================================================================
"""

import socket
import signal
import ssl
import logging
import threading
from typing import Optional, Callable, Tuple

from ..config import Config
from .connection import Connection


logger = logging.getLogger(__name__)


class SocketServer:
    """
    Low-level TCP socket server for a single listen address.

    Usage:
        def handle_connection(conn: Connection):
            ...

        server = SocketServer(("::1", 8080), config)
        server.start(handle_connection)  # Blocks until shutdown
    """

    def __init__(
        self,
        address: Tuple[str, int],
        config: Config,
        ssl_context: Optional[ssl.SSLContext] = None,
        name: str = "http",
        on_signal: Optional[Callable[[], None]] = None,
    ):
        """
        Args:
            address: (host, port) to bind; empty host means all interfaces.
            config: Server tuning (backlog, buffer sizes, timeouts).
            ssl_context: Wrap accepted sockets for TLS when given.
            name: Listener name for log lines.
            on_signal: Called on SIGINT/SIGTERM instead of shutdown(),
                       so an owner can stop sibling listeners too.
        """
        self.host, self.port = address
        self.config = config
        self.ssl_context = ssl_context
        self.name = name
        self.on_signal = on_signal

        self._socket: Optional[socket.socket] = None
        self._running = False
        self._stop_requested = False
        self._ready_event = threading.Event()
        self._original_handlers: dict = {}

    @property
    def address(self) -> Tuple[str, int]:
        """
        The bound (host, port).

        After start() has bound the socket this is the real address, so
        port 0 resolves to the port the kernel picked.
        """
        if self._socket is not None:
            sockname = self._socket.getsockname()
            return sockname[0], sockname[1]
        return self.host, self.port

    def _create_socket(self) -> socket.socket:
        """
        Resolve the address and create a configured, bound socket.

        Raises:
            OSError: If resolution or bind fails.
        """
        host = self.host or None
        infos = socket.getaddrinfo(
            host, self.port, socket.AF_UNSPEC, socket.SOCK_STREAM, 0, socket.AI_PASSIVE
        )
        if host is None:
            # Prefer a dual-stack IPv6 socket for "all interfaces".
            infos.sort(key=lambda info: info[0] != socket.AF_INET6)

        family, socktype, proto, _, sockaddr = infos[0]
        sock = socket.socket(family, socktype, proto)

        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            if family == socket.AF_INET6 and host is None:
                sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 0)

            # accept() wakes up every second to check the running flag
            sock.settimeout(1.0)
            sock.bind(sockaddr)
        except OSError:
            sock.close()
            raise

        return sock

    def _setup_signals(self):
        """Install SIGTERM/SIGINT handlers when running on the main thread."""
        if threading.current_thread() is not threading.main_thread():
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating shutdown...")
            if self.on_signal is not None:
                self.on_signal()
            else:
                self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        """Restore original signal handlers."""
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def start(self, connection_handler: Callable[[Connection], None]):
        """
        Bind, listen and accept connections until shutdown().

        This method BLOCKS.

        Raises:
            OSError: If the address cannot be resolved or bound.
        """
        try:
            self._socket = self._create_socket()
        except OSError as e:
            logger.error(f"Failed to bind {self.name} listener to {self.host}:{self.port}: {e}")
            raise

        self._socket.listen(self.config.backlog)

        # shutdown() may have been called before the socket was bound
        self._running = not self._stop_requested
        self._setup_signals()

        host, port = self.address
        logger.debug(f"{self.name} socket listening on {host}:{port}")
        self._ready_event.set()

        try:
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        """
        Accept connections and pass them to the handler.

            while running:
                accept()             1s timeout
                wrap_socket()        TLS listeners, handshake deferred
                Connection(...)      buffering, timeouts
                handler(conn)        HTTPServer gives it its own thread
        """
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._running:
                    logger.error(f"Accept error on {self.name} listener: {e}")
                break

            logger.debug(f"Accepted {self.name} connection from {client_address[0]}:{client_address[1]}")

            if self.ssl_context is not None:
                try:
                    client_socket = self.ssl_context.wrap_socket(
                        client_socket,
                        server_side=True,
                        do_handshake_on_connect=False,
                    )
                except (ssl.SSLError, OSError) as e:
                    logger.debug(f"TLS wrap failed for {client_address[0]}: {e}")
                    client_socket.close()
                    continue

            conn = Connection(
                socket=client_socket,
                address=client_address,
                buffer_size=self.config.buffer_size,
                timeout=self.config.timeout,
                keep_alive_timeout=self.config.keep_alive_timeout,
                max_request_size=self.config.max_request_size,
            )

            connection_handler(conn)

    def shutdown(self):
        """
        Stop the accept loop.

        Safe to call from signal handlers and other threads, and more
        than once.
        """
        if self._running:
            logger.info(f"Shutting down {self.name} socket server...")
        self._stop_requested = True
        self._running = False

    def _cleanup(self):
        """Restore signals and close the listening socket."""
        self._restore_signals()

        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

        self._running = False
        logger.info(f"{self.name} socket server stopped")

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Wait until the socket is bound and listening."""
        return self._ready_event.wait(timeout)
