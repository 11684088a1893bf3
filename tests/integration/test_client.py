"""
Tests for the console client against a running server.
"""

import io
import threading

from chatserver.client import ChatClient, run_console, timestamped


class TestChatClient:
    """Tests for ChatClient."""

    def test_connect_sends_handle(self, chat_server):
        with ChatClient("127.0.0.1", chat_server.port, "dana").connect() as client:
            assert client.read_line() == "[Server] Welcome, dana!"
            assert client.connected

    def test_send_and_listen(self, chat_server):
        alice = chat_server.connect("alice")
        received = []
        got_reply = threading.Event()

        def on_line(line):
            received.append(line)
            if line.startswith("Bot:"):
                got_reply.set()

        client = ChatClient("127.0.0.1", chat_server.port, "dana").connect()
        try:
            client.listen(on_line)
            alice.expect("[Server] dana has joined the chat.")

            assert client.send("hello everyone")

            alice.expect("dana: hello everyone")
            assert got_reply.wait(5.0)
            assert received == ["[Server] Welcome, dana!", "Bot: Hello! How are you?"]
        finally:
            client.quit()

        alice.expect("[Server] dana has left the chat.")

    def test_read_after_server_closes(self, chat_server):
        client = ChatClient("127.0.0.1", chat_server.port, "dana").connect()
        client.read_line()
        chat_server.server.shutdown(timeout=5.0)

        lines = []
        while True:
            line = client.read_line()
            if line is None:
                break
            lines.append(line)

        assert lines == ["[Server] Server is shutting down."]
        assert not client.connected
        client.close()


class TestConsole:
    """Tests for the interactive loop."""

    def test_console_session(self, chat_server):
        alice = chat_server.connect("alice")
        client = ChatClient("127.0.0.1", chat_server.port, "eve").connect()
        alice.expect("[Server] eve has joined the chat.")

        stdout = io.StringIO()
        result = run_console(client, stdin=io.StringIO("good day\n/quit\nnever sent\n"), stdout=stdout)

        assert result == 0
        alice.expect("eve: good day")
        alice.expect("[Server] eve has left the chat.")
        alice.assert_silent()

    def test_timestamped(self):
        line = timestamped("bob: hi")
        assert line.startswith("[")
        assert line.endswith("] bob: hi")
