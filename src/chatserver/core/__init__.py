"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The low-level networking plumbing underneath the chat logic.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         SOCKET SERVER                                │
    │  • Creates, binds and listens on the TCP socket                     │
    │  • Runs the accept() loop                                            │
    │  • Handles SIGTERM/SIGINT for graceful shutdown                     │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ Hands off new connections
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          THREAD POOL                                 │
    │  • One worker per connected client                                  │
    │  • Refuses clients beyond max_workers                               │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ Worker runs the session
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          CONNECTION                                  │
    │  • Buffered line reads (TCP is a stream, not messages!)            │
    │  • Line writes serialized by a lock (many threads may write)       │
    │  • Idempotent close that wakes a blocked reader                     │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState
from .thread_pool import ThreadPool

__all__ = [
    "SocketServer",     # Main TCP server - accepts connections
    "Connection",       # Wrapper for client socket - line I/O
    "ConnectionState",  # Enum for transport lifecycle states
    "ThreadPool",       # Worker threads, one per session
]
