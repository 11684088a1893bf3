"""
=============================================================================
CHATSERVER - Multi-Client TCP Chat Server
=============================================================================

A line-based chat service built on raw Python sockets and threads.
Every client picks a handle, every line it sends is relayed to all other
clients, and a scripted bot answers the sender privately.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    chatserver/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m chatserver)
    ├── server.py            # ChatServer orchestrator
    ├── config.py            # ServerConfig dataclass
    ├── chatlog.py           # Logging setup and chat activity events
    ├── client.py            # Console client (python -m chatserver.client)
    ├── core/                # Low-level components
    │   ├── socket_server.py # Listening socket and accept loop
    │   ├── connection.py    # Line-oriented socket wrapper
    │   └── thread_pool.py   # One worker thread per session
    └── chat/                # Chat semantics
        ├── session.py       # One connected client
        ├── registry.py      # Live sessions (thread-safe)
        ├── broadcast.py     # Fan-out to everyone but the sender
        ├── outbox.py        # Optional per-session writer queue
        ├── handler.py       # Per-session protocol loop
        ├── protocol.py      # Notice formats and quit sentinels
        └── bot.py           # Scripted replies

=============================================================================
QUICK START
=============================================================================

    from chatserver import ChatServer, ServerConfig

    server = ChatServer(ServerConfig(port=5000))
    server.run()

Then, in other terminals:

    python -m chatserver.client --name alice
    python -m chatserver.client --name bob

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig
from .server import ChatServer, create_server

__all__ = [
    "ChatServer",
    "ServerConfig",
    "create_server",
    "__version__",
]
