"""
Unit tests for wire protocol helpers.
"""

import pytest

from chatserver.chat import protocol


class TestQuitSentinel:
    """Tests for quit detection."""

    @pytest.mark.parametrize("text", ["/quit", "/exit", "/QUIT", "/Exit", "  /quit  "])
    def test_quit_variants(self, text):
        """Test sentinels match in any case and with padding."""
        assert protocol.is_quit(text)

    @pytest.mark.parametrize("text", ["quit", "/quitnow", "please /quit", "", "/"])
    def test_not_quit(self, text):
        """Test ordinary text is not a sentinel."""
        assert not protocol.is_quit(text)


class TestHandles:
    """Tests for handle normalization."""

    def test_strips_whitespace(self):
        assert protocol.normalize_handle("  alice \r") == "alice"

    def test_blank_uses_fallback(self):
        assert protocol.normalize_handle("   ") == "Anonymous"

    def test_missing_uses_fallback(self):
        assert protocol.normalize_handle(None) == "Anonymous"

    def test_custom_fallback(self):
        assert protocol.normalize_handle("", fallback="guest") == "guest"


class TestNotices:
    """Tests for server notice formats."""

    def test_welcome(self):
        assert protocol.welcome("alice") == "[Server] Welcome, alice!"

    def test_joined(self):
        assert protocol.joined("alice") == "[Server] alice has joined the chat."

    def test_left(self):
        assert protocol.left("alice") == "[Server] alice has left the chat."

    def test_chat_line(self):
        assert protocol.chat_line("alice", "hi there") == "alice: hi there"
