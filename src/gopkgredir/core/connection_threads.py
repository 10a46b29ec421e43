"""
=============================================================================
CONNECTION THREADS
=============================================================================

One thread per accepted connection.

    Accept loop                          Connection threads
    ───────────                          ──────────────────
    accept() ──► spawn(handle, conn) ──► http-0 ─ handshake, requests
    accept() ──► spawn(handle, conn) ──► http-1 ─ waiting for a request
    accept() ──► spawn(handle, conn) ──► http-2 ─ issuing a certificate

There is no queue and no upper bound: an idle or slow client only holds its
own thread, and every new connection is served as soon as it is accepted.

Shutdown stops new spawns and joins the live threads, bounded by a timeout.
The threads are daemons, so a client that never finishes cannot keep the
process alive.

=============================================================================
"""

import itertools
import logging
import threading
import time
from typing import Any, Callable, Optional, Set


logger = logging.getLogger(__name__)


class ConnectionThreads:
    """
    Tracks the threads serving the connections of one listener.

        threads = ConnectionThreads(name="tls")
        threads.spawn(handle_connection, conn)
        threads.shutdown(timeout=5.0)
    """

    def __init__(self, name: str = "conn"):
        self.name = name
        self._threads: Set[threading.Thread] = set()
        self._lock = threading.Lock()  # guards _threads and _closed
        self._ids = itertools.count()
        self._closed = False

    def spawn(self, func: Callable[..., Any], *args: Any) -> threading.Thread:
        """
        Run func(*args) on a new daemon thread.

        Raises:
            RuntimeError: After shutdown(), or if the thread cannot start.
        """
        with self._lock:
            if self._closed:
                raise RuntimeError(f"{self.name} connection threads are shut down")
            thread = threading.Thread(
                target=self._run,
                args=(func, args),
                name=f"{self.name}-{next(self._ids)}",
                daemon=True,
            )
            self._threads.add(thread)

        try:
            thread.start()
        except RuntimeError:
            with self._lock:
                self._threads.discard(thread)
            raise
        return thread

    def _run(self, func: Callable[..., Any], args: tuple):
        try:
            func(*args)
        except Exception as e:
            # One bad connection must not go unreported.
            logger.exception(f"{threading.current_thread().name} failed: {e}")
        finally:
            with self._lock:
                self._threads.discard(threading.current_thread())

    @property
    def active(self) -> int:
        """Number of connections currently being served."""
        with self._lock:
            return len(self._threads)

    def shutdown(self, timeout: Optional[float] = None):
        """Refuse new connections and wait for the live ones to finish."""
        with self._lock:
            self._closed = True
            threads = list(self._threads)

        if threads:
            logger.debug(f"Waiting for {len(threads)} {self.name} connections")

        deadline = time.monotonic() + timeout if timeout is not None else None
        for thread in threads:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            thread.join(remaining)
