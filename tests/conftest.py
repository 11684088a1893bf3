"""
pytest configuration and fixtures.
"""

import socket
import struct
import threading
import time
from typing import Callable, Generator, Optional
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from chatserver import ChatServer, ServerConfig
from chatserver.chat.bot import ReplyGenerator


def make_config(**overrides) -> ServerConfig:
    """Test configuration: localhost, OS-picked port, small pool."""
    values = dict(
        host="127.0.0.1",
        port=0,
        min_workers=2,
        max_clients=16,
        accept_timeout=0.2,
        shutdown_timeout=2.0,
        log_level="WARNING",
    )
    values.update(overrides)
    return ServerConfig(**values)


@pytest.fixture
def config() -> ServerConfig:
    """Default test server configuration."""
    return make_config()


class RunningServer:
    """Chat server running in a background thread."""

    def __init__(self, server: ChatServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None
        self.peers: list = []

    @property
    def port(self) -> int:
        return self.server.bound_address[1]

    def start(self) -> "RunningServer":
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()
        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")
        return self

    def stop(self):
        for peer in self.peers:
            peer.close()
        self.server.shutdown(timeout=5.0)
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)

    def connect(self, handle: str) -> "ChatPeer":
        """Connect a peer and wait until the server has registered it."""
        peer = self.open_peer()
        peer.send(handle)
        welcome = peer.recv_line()
        assert welcome == f"[Server] Welcome, {handle.strip() or 'Anonymous'}!"
        return peer

    def open_peer(self) -> "ChatPeer":
        """Raw connection that has not sent a handle yet."""
        peer = ChatPeer(self.port)
        self.peers.append(peer)
        return peer

    def wait_for(self, predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
        deadline = time.time() + timeout
        while time.time() < deadline:
            if predicate():
                return True
            time.sleep(0.02)
        return predicate()


class ChatPeer:
    """Raw socket test client that reads whole lines."""

    def __init__(self, port: int, timeout: float = 5.0):
        self.sock = socket.create_connection(("127.0.0.1", port), timeout=timeout)
        self._buffer = b""

    def send(self, line: str):
        self.sock.sendall(line.encode("utf-8") + b"\n")

    def recv_line(self, timeout: float = 5.0) -> Optional[str]:
        """Next line, or None on EOF. Raises socket.timeout if nothing arrives."""
        self.sock.settimeout(timeout)
        while b"\n" not in self._buffer:
            chunk = self.sock.recv(4096)
            if not chunk:
                return None
            self._buffer += chunk
        line, self._buffer = self._buffer.split(b"\n", 1)
        return line.decode("utf-8")

    def expect(self, wanted: str, timeout: float = 5.0) -> list:
        """Read until wanted arrives; returns the lines read before it."""
        skipped = []
        deadline = time.time() + timeout
        while True:
            remaining = deadline - time.time()
            if remaining <= 0:
                raise AssertionError(f"{wanted!r} not received; got {skipped!r}")
            line = self.recv_line(timeout=remaining)
            if line is None:
                raise AssertionError(f"Connection closed before {wanted!r}; got {skipped!r}")
            if line == wanted:
                return skipped
            skipped.append(line)

    def assert_silent(self, timeout: float = 0.3):
        """Fail if any line arrives within timeout."""
        try:
            line = self.recv_line(timeout=timeout)
        except socket.timeout:
            return
        raise AssertionError(f"Unexpected line: {line!r}")

    def reset(self):
        """Abort the connection with an RST instead of a clean FIN."""
        self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, struct.pack("ii", 1, 0))
        self.sock.close()

    def close(self):
        try:
            self.sock.close()
        except OSError:
            pass


@pytest.fixture
def scripted_replies() -> ReplyGenerator:
    """Deterministic bot: no fallback randomness."""
    return ReplyGenerator(fallbacks=("Bot: fallback",))


@pytest.fixture
def chat_server(config: ServerConfig, scripted_replies) -> Generator[RunningServer, None, None]:
    """A running chat server on a free port."""
    server = ChatServer(config, replies=scripted_replies, configure_logs=False)
    running = RunningServer(server).start()

    yield running

    running.stop()


@pytest.fixture
def server_factory(scripted_replies) -> Generator[Callable[..., RunningServer], None, None]:
    """Start servers with config overrides; all are stopped after the test."""
    started = []

    def start(**overrides) -> RunningServer:
        server = ChatServer(make_config(**overrides), replies=scripted_replies, configure_logs=False)
        running = RunningServer(server).start()
        started.append(running)
        return running

    yield start

    for running in started:
        running.stop()
