"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

This module wraps a raw client socket with a line-oriented API for the
chat protocol.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL!
=============================================================================

TCP does NOT preserve message boundaries. A client that sends

    send("alice\n")
    send("hello\n")

may be read by the server as

    recv() → "alice\nhel"
    recv() → "lo\n"

The chat protocol is one message per line, so we buffer received bytes
and cut them at b"\n". Anything after the last newline stays in the
buffer for the next read_line() call.

=============================================================================
ONE READER, MANY WRITERS
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   Session thread (alice)          Session thread (bob)               │
    │   ──────────────────────          ────────────────────               │
    │   read_line()  ◄── blocks          broadcast("bob: hi")              │
    │                                         │                            │
    │                                         ▼                            │
    │                           alice.connection.send_line("bob: hi")      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Only the owning session thread ever reads. Any thread may write: the
owning thread sends welcome and bot replies, every other session's thread
sends broadcasts. sendall() from two threads at once could interleave
partial lines, so all writes go through a per-connection lock.

=============================================================================
"""

import socket
import time
import logging
import threading
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import uuid


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Transport lifecycle states."""
    OPEN = "open"          # Accepted, usable for reads and writes
    CLOSING = "closing"    # close() in progress
    CLOSED = "closed"      # Socket released


class LineTooLongError(ValueError):
    """Raised internally when a client line exceeds max_line_length."""


@dataclass(eq=False)
class Connection:
    """
    A client socket with buffered line reads and serialized line writes.

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Short unique identifier (for logging).
        state: Current transport state.
        created_at: Timestamp when the connection was accepted.
        last_activity: Timestamp of the last successful read or write.
        lines_read: Number of complete lines received.
        lines_written: Number of lines sent.
    """

    # Required parameters
    socket: socket.socket
    address: tuple

    # Generated/default parameters
    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.OPEN
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    lines_read: int = 0
    lines_written: int = 0

    # Configuration (passed from ServerConfig)
    buffer_size: int = 4096
    idle_timeout: Optional[float] = None
    max_line_length: int = 8192
    encoding: str = "utf-8"

    # Internal state
    _buffer: bytes = field(default=b"", repr=False)
    _eof: bool = field(default=False, repr=False)
    _write_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _close_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self):
        # Accepted sockets may inherit the listening socket's timeout.
        # Chat reads block until the client speaks (or idle_timeout passes).
        self.socket.setblocking(True)
        self.socket.settimeout(self.idle_timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def client_port(self) -> int:
        return self.address[1]

    @property
    def peer(self) -> str:
        """Printable ip:port of the client."""
        return f"{self.client_ip}:{self.client_port}"

    @property
    def is_closed(self) -> bool:
        return self.state != ConnectionState.OPEN

    @property
    def idle_time(self) -> float:
        return time.time() - self.last_activity

    # =========================================================================
    # READING
    # =========================================================================

    def read_line(self) -> Optional[str]:
        """
        Read one line from the client.

        ┌─────────────────────────────────────────────────────────────────┐
        │                    read_line() Flow                              │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │   while b"\\n" not in buffer:                                     │
        │       recv() → buffer           (blocks)                         │
        │       EOF?      → return leftover fragment, or None              │
        │       too long? → None                                           │
        │                                                                  │
        │   cut at first b"\\n", keep the rest for next call                │
        │   strip trailing b"\\r", decode                                   │
        │                                                                  │
        └─────────────────────────────────────────────────────────────────┘

        Returns:
            The line without its terminator, or None when the stream has
            ended: EOF, reset, timeout, over-long line or undecodable
            bytes. None is how the session learns that the peer is gone.
        """
        if self.is_closed:
            return None

        try:
            raw = self._read_raw_line()
        except LineTooLongError:
            logger.warning(f"[{self.id}] Line exceeds {self.max_line_length} bytes, dropping client")
            return None
        except socket.timeout:
            logger.info(f"[{self.id}] Idle timeout after {self.idle_timeout}s")
            return None
        except OSError as e:
            if not self.is_closed:
                logger.debug(f"[{self.id}] Read failed: {e}")
            return None

        if raw is None:
            return None

        try:
            line = raw.decode(self.encoding)
        except UnicodeDecodeError as e:
            logger.warning(f"[{self.id}] Undecodable line, dropping client: {e}")
            return None

        self.lines_read += 1
        self.last_activity = time.time()
        return line

    def _read_raw_line(self) -> Optional[bytes]:
        while b"\n" not in self._buffer:
            if len(self._buffer) > self.max_line_length:
                raise LineTooLongError(len(self._buffer))

            if self._eof:
                break

            chunk = self._recv()
            if not chunk:
                self._eof = True
                break

            self._buffer += chunk

        if b"\n" in self._buffer:
            raw, self._buffer = self._buffer.split(b"\n", 1)
        elif self._buffer:
            # Unterminated fragment right before EOF still counts as a line
            raw, self._buffer = self._buffer, b""
        else:
            return None

        if len(raw) > self.max_line_length:
            raise LineTooLongError(len(raw))

        return raw.rstrip(b"\r")

    def _recv(self) -> bytes:
        """
        Receive data from the socket.

        Returns:
            Received bytes, or empty bytes if the peer closed or reset.
        """
        try:
            return self.socket.recv(self.buffer_size)
        except (ConnectionResetError, BrokenPipeError):
            return b""

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_line(self, text: str) -> bool:
        """
        Send one line to the client.

        Safe to call from any thread. The write lock keeps concurrent
        writers from interleaving bytes of different lines.

        Returns:
            True if sent, False if the connection is closed or broken.
        """
        data = (text + "\n").encode(self.encoding, errors="replace")

        with self._write_lock:
            if self.is_closed:
                return False
            try:
                self.socket.sendall(data)
            except OSError as e:
                logger.warning(f"[{self.id}] Send failed: {e}")
                return False
            self.lines_written += 1

        self.last_activity = time.time()
        return True

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection. Idempotent and thread-safe.

        shutdown(SHUT_RDWR) comes before close() because another thread
        may be blocked in recv() on this socket. shutdown wakes it with
        EOF; a bare close() from a different thread does not reliably do so.
        """
        with self._close_lock:
            if self.state != ConnectionState.OPEN:
                return
            self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # Peer already gone

        # Wait for an in-flight sendall() before releasing the descriptor
        with self._write_lock:
            try:
                self.socket.close()
            except OSError:
                pass
            self.state = ConnectionState.CLOSED

        logger.debug(
            f"[{self.id}] Connection closed "
            f"({self.lines_read} lines in, {self.lines_written} lines out)"
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
