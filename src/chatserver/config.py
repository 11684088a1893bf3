"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration management for the chat server.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m chatserver --port 6000                          │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── CHAT_PORT=6000 python -m chatserver                       │
    │                                                                      │
    │   3. Defaults in this dataclass                                     │
    │      └── port=5000                                                  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional


LOG_FORMATS = ("text", "json")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_optional_float(name: str) -> Optional[float]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return float(value)


@dataclass
class ServerConfig:
    """
    Configuration for the chat server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, backlog, buffer_size, accept_timeout, idle_timeout

    PROTOCOL SETTINGS
    - encoding, max_line_length, fallback_handle

    CONCURRENCY SETTINGS
    - min_workers, max_clients, outbound_queue, outbound_queue_size,
      shutdown_timeout

    LOGGING
    - log_level, log_format

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    """
    The IP address to bind to.
    - "127.0.0.1" - Localhost only
    - "0.0.0.0" - All network interfaces (LAN chat)
    """

    port: int = 5000
    """
    The port number to listen on. 0 lets the OS pick a free port,
    which is handy in tests (see ChatServer.bound_address).
    """

    backlog: int = 128
    """Maximum number of connections queued by the kernel before accept()."""

    buffer_size: int = 4096
    """Bytes requested per recv() call."""

    accept_timeout: float = 1.0
    """
    Timeout on the listening socket. accept() wakes up this often to
    notice a shutdown request.
    """

    idle_timeout: Optional[float] = None
    """
    Seconds a client may stay silent before its session ends.
    None = wait forever (chat clients are mostly idle).
    """

    # ─────────────────────────────────────────────────────────────────────
    # PROTOCOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    encoding: str = "utf-8"
    """Text encoding of the line protocol."""

    max_line_length: int = 8192
    """
    Longest accepted line in bytes. A longer line ends the session,
    so a client cannot make the server buffer unbounded data.
    """

    fallback_handle: str = "Anonymous"
    """Handle used when the client's first line is missing or blank."""

    # ─────────────────────────────────────────────────────────────────────
    # CONCURRENCY SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    """Worker threads created at startup."""

    max_clients: int = 64
    """
    Maximum number of concurrent sessions. Each session holds one worker
    thread for its whole lifetime, so this is also the worker ceiling.
    """

    outbound_queue: bool = False
    """
    Give each session its own outbound queue and writer thread.
    When False, broadcasts write directly on the sender's thread and a
    slow recipient can stall the sender.
    """

    outbound_queue_size: int = 256
    """Lines buffered per session before new lines are dropped."""

    shutdown_timeout: float = 5.0
    """Seconds to wait for sessions to wind down on shutdown."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""

    log_format: str = "text"
    """
    Log format: 'json' or 'text'.
    JSON is better for log aggregators, text for humans.
    """

    # ─────────────────────────────────────────────────────────────────────
    # SERVER IDENTITY
    # ─────────────────────────────────────────────────────────────────────

    server_name: str = "PyChat/1.0"

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        CHAT_HOST            Server host (default: 0.0.0.0)
        CHAT_PORT            Server port (default: 5000)
        CHAT_MAX_CLIENTS     Max concurrent sessions (default: 64)
        CHAT_IDLE_TIMEOUT    Idle seconds before disconnect (default: none)
        CHAT_OUTBOUND_QUEUE  Per-session writer threads (default: false)
        CHAT_LOG_LEVEL       Logging level (default: INFO)
        CHAT_LOG_FORMAT      text or json (default: text)

        =====================================================================
        """
        max_clients = int(os.getenv("CHAT_MAX_CLIENTS", "64"))

        return cls(
            host=os.getenv("CHAT_HOST", "0.0.0.0"),
            port=int(os.getenv("CHAT_PORT", "5000")),
            max_clients=max_clients,
            # A small session cap also caps the workers started up front
            min_workers=min(cls.min_workers, max_clients),
            idle_timeout=_env_optional_float("CHAT_IDLE_TIMEOUT"),
            outbound_queue=_env_bool("CHAT_OUTBOUND_QUEUE", False),
            log_level=os.getenv("CHAT_LOG_LEVEL", "INFO"),
            log_format=os.getenv("CHAT_LOG_FORMAT", "text"),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Called by ChatServer at construction so a bad value fails at
        startup instead of on the first connection.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_clients < self.min_workers:
            raise ValueError("max_clients must be >= min_workers")

        if self.buffer_size < 256:
            raise ValueError("buffer_size must be >= 256")

        if self.max_line_length < 1:
            raise ValueError("max_line_length must be >= 1")

        if self.accept_timeout <= 0:
            raise ValueError("accept_timeout must be > 0")

        if self.idle_timeout is not None and self.idle_timeout <= 0:
            raise ValueError("idle_timeout must be > 0")

        if self.outbound_queue_size < 1:
            raise ValueError("outbound_queue_size must be >= 1")

        if not self.fallback_handle.strip():
            raise ValueError("fallback_handle must not be blank")

        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"log_format must be one of {', '.join(LOG_FORMATS)}")
