"""
Listener runtime: socket accept loop, client connections and connection threads.
"""

from .connection import Connection
from .connection_threads import ConnectionThreads
from .socket_server import SocketServer

__all__ = [
    "Connection",
    "ConnectionThreads",
    "SocketServer",
]
