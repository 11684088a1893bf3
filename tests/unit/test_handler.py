"""
Unit tests for the per-session protocol handler, over socketpairs.
"""

import socket
import threading

import pytest

from chatserver.chat.bot import ReplyGenerator
from chatserver.chat.broadcast import Broadcaster
from chatserver.chat.handler import SessionHandler
from chatserver.chat.registry import Registry
from chatserver.chat.session import Session, SessionState
from chatserver.core.connection import Connection


class Room:
    """A registry, broadcaster and handler wired together, no listener."""

    def __init__(self):
        self.registry = Registry()
        self.broadcaster = Broadcaster(self.registry)
        self.handler = SessionHandler(
            self.registry,
            self.broadcaster,
            replies=ReplyGenerator(fallbacks=("Bot: fallback",)),
        )
        self.threads = []
        self.sockets = []

    def join(self, handle=None):
        """Start a session thread; returns (session, client socket, line reader)."""
        server_side, client_side = socket.socketpair()
        client_side.settimeout(5.0)
        session = Session(Connection(socket=server_side, address=("127.0.0.1", len(self.sockets))))
        thread = threading.Thread(target=self.handler.serve, args=(session,), daemon=True)
        thread.start()
        self.threads.append(thread)
        self.sockets.append(client_side)

        reader = client_side.makefile("r", encoding="utf-8", newline="\n")
        if handle is not None:
            client_side.sendall(handle.encode() + b"\n")
        return session, client_side, reader

    def close(self):
        for s in self.sockets:
            # makefile() readers hold the descriptor open; shutdown forces EOF
            try:
                s.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            s.close()
        for t in self.threads:
            t.join(timeout=5.0)


@pytest.fixture
def room():
    r = Room()
    yield r
    r.close()


def line(reader) -> str:
    return reader.readline().rstrip("\n")


class TestJoin:
    """Tests for the join sequence."""

    def test_welcome(self, room):
        session, _, reader = room.join("alice")
        assert line(reader) == "[Server] Welcome, alice!"
        assert session in room.registry
        assert session.state == SessionState.ACTIVE

    def test_blank_handle_falls_back(self, room):
        _, _, reader = room.join("   ")
        assert line(reader) == "[Server] Welcome, Anonymous!"

    def test_others_see_join_notice(self, room):
        _, _, alice = room.join("alice")
        line(alice)
        _, _, bob = room.join("bob")
        assert line(bob) == "[Server] Welcome, bob!"
        assert line(alice) == "[Server] bob has joined the chat."

    def test_eof_before_handle(self, room):
        """Test a client that disconnects before naming itself is cleaned up."""
        _, _, alice = room.join("alice")
        line(alice)

        session, client, _ = room.join()
        client.shutdown(socket.SHUT_WR)
        room.threads[-1].join(timeout=5.0)

        assert session.state == SessionState.TERMINATED
        assert session not in room.registry


class TestChat:
    """Tests for the chat loop."""

    def test_message_fanout_and_private_reply(self, room):
        _, alice_sock, alice = room.join("alice")
        line(alice)
        _, _, bob = room.join("bob")
        line(bob)
        line(alice)  # bob joined

        alice_sock.sendall(b"what is java\n")

        assert line(bob) == "alice: what is java"
        assert line(alice) == "Bot: Java is a high-level, object-oriented programming language."

    def test_sender_does_not_see_own_line(self, room):
        _, alice_sock, alice = room.join("alice")
        line(alice)
        _, bob_sock, bob = room.join("bob")
        line(bob)
        line(alice)

        alice_sock.sendall(b"first\n")
        assert line(bob) == "alice: first"
        assert line(alice) == "Bot: fallback"

        bob_sock.sendall(b"second\n")
        # alice's next line is bob's message, not an echo of her own
        assert line(alice) == "bob: second"

    def test_blank_lines_ignored(self, room):
        _, alice_sock, alice = room.join("alice")
        line(alice)
        _, _, bob = room.join("bob")
        line(bob)
        line(alice)

        alice_sock.sendall(b"\n   \nreal\n")
        assert line(bob) == "alice: real"

    def test_message_is_trimmed(self, room):
        _, alice_sock, alice = room.join("alice")
        line(alice)
        _, _, bob = room.join("bob")
        line(bob)
        line(alice)

        alice_sock.sendall(b"   padded   \r\n")
        assert line(bob) == "alice: padded"


class TestLeave:
    """Tests for the leave sequence."""

    @pytest.mark.parametrize("sentinel", [b"/quit", b"/EXIT"])
    def test_quit(self, room, sentinel):
        alice_session, alice_sock, alice = room.join("alice")
        line(alice)
        _, _, bob = room.join("bob")
        line(bob)
        line(alice)

        alice_sock.sendall(sentinel + b"\n")

        assert line(bob) == "[Server] alice has left the chat."
        assert alice.readline() == ""  # EOF
        room.threads[0].join(timeout=5.0)
        assert alice_session not in room.registry
        assert alice_session.state == SessionState.TERMINATED

    def test_disconnect_same_as_quit(self, room):
        _, alice_sock, alice = room.join("alice")
        line(alice)
        _, _, bob = room.join("bob")
        line(bob)
        line(alice)

        alice_sock.shutdown(socket.SHUT_RDWR)

        assert line(bob) == "[Server] alice has left the chat."

    def test_terminate_runs_once(self, room):
        session, _, reader = room.join("alice")
        line(reader)

        room.handler.terminate(session)
        room.handler.terminate(session)
        room.threads[0].join(timeout=5.0)

        assert session not in room.registry
        assert len(room.registry) == 0

    def test_terminate_after_external_close_unregisters(self, room):
        """Test a session closed by shutdown still removes itself."""
        session, _, reader = room.join("alice")
        line(reader)

        session.close()
        room.threads[0].join(timeout=5.0)

        assert session not in room.registry

    def test_closed_before_handle_never_joins(self, room):
        """Test a session closed while waiting for its handle exits quietly."""
        _, _, alice = room.join("alice")
        line(alice)

        session, _, _ = room.join()
        session.close()
        room.threads[-1].join(timeout=5.0)

        assert not room.threads[-1].is_alive()
        assert session.handle is None
        assert session not in room.registry
        # No join or leave notice for a client that never joined
        assert room.registry.handles() == ("alice",)
