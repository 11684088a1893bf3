"""
Unit tests for log configuration and chat activity events.
"""

import json
import logging

from chatserver.chatlog import (
    ACTIVITY_LOGGER,
    ChatEvent,
    ChatEventLogger,
    JsonFormatter,
    configure_logging,
)


class FakeSession:
    handle = "alice"
    id = "abc12345"
    peer = "127.0.0.1:50000"


class TestChatEvent:
    """Tests for ChatEvent rendering."""

    def test_to_dict_omits_unset_fields(self):
        event = ChatEvent("join", "alice", "abc12345", "127.0.0.1:50000", timestamp="T")
        assert event.to_dict() == {
            "event": "join",
            "handle": "alice",
            "session_id": "abc12345",
            "client": "127.0.0.1:50000",
            "timestamp": "T",
        }

    def test_to_dict_with_text_and_online(self):
        event = ChatEvent("message", "alice", "id", "c", text="hi", online=2)
        entry = event.to_dict()
        assert entry["text"] == "hi"
        assert entry["online"] == 2

    def test_to_text(self):
        event = ChatEvent("message", "alice", "abc", "1.2.3.4:5", text='say "hi"', online=3, timestamp="T")
        assert event.to_text() == 'T message alice [abc] 1.2.3.4:5 "say \\"hi\\"" online=3'

    def test_to_text_without_handle(self):
        event = ChatEvent("rejected", None, "abc", "1.2.3.4:5", timestamp="T")
        assert event.to_text() == "T rejected - [abc] 1.2.3.4:5"


class TestChatEventLogger:
    """Tests for ChatEventLogger."""

    def test_join_logged_at_info(self, caplog):
        events = ChatEventLogger()
        with caplog.at_level(logging.INFO, logger=ACTIVITY_LOGGER):
            events.joined(FakeSession(), online=1)

        [record] = caplog.records
        assert record.name == ACTIVITY_LOGGER
        assert record.levelno == logging.INFO
        assert " join alice [abc12345] 127.0.0.1:50000 online=1" in record.getMessage()

    def test_json_format(self, caplog):
        events = ChatEventLogger(log_format="json")
        with caplog.at_level(logging.INFO, logger=ACTIVITY_LOGGER):
            events.left(FakeSession(), online=0)

        entry = json.loads(caplog.records[0].getMessage())
        assert entry["event"] == "leave"
        assert entry["handle"] == "alice"
        assert entry["online"] == 0

    def test_messages_hidden_at_info(self, caplog):
        events = ChatEventLogger()
        with caplog.at_level(logging.INFO, logger=ACTIVITY_LOGGER):
            events.message(FakeSession(), "secret")
        assert caplog.records == []

    def test_messages_shown_at_debug(self, caplog):
        events = ChatEventLogger()
        with caplog.at_level(logging.DEBUG, logger=ACTIVITY_LOGGER):
            events.message(FakeSession(), "hello")
        assert '"hello"' in caplog.text

    def test_rejected_is_warning(self, caplog):
        events = ChatEventLogger()
        with caplog.at_level(logging.INFO, logger=ACTIVITY_LOGGER):
            events.rejected(FakeSession(), "server full")
        assert caplog.records[0].levelno == logging.WARNING


class TestLoggingSetup:
    """Tests for configure_logging() and JsonFormatter."""

    def test_json_formatter(self):
        record = logging.LogRecord("chatserver.test", logging.INFO, __file__, 1, "hello %s", ("bob",), None)
        entry = json.loads(JsonFormatter().format(record))
        assert entry["message"] == "hello bob"
        assert entry["level"] == "INFO"
        assert entry["logger"] == "chatserver.test"

    def test_configure_replaces_handlers(self):
        root = logging.getLogger()
        saved_handlers, saved_level = list(root.handlers), root.level
        try:
            configure_logging("DEBUG", "json")
            configure_logging("WARNING", "text")

            assert len(root.handlers) == 1
            assert root.level == logging.WARNING
            assert not isinstance(root.handlers[0].formatter, JsonFormatter)
        finally:
            for handler in list(root.handlers):
                root.removeHandler(handler)
            for handler in saved_handlers:
                root.addHandler(handler)
            root.setLevel(saved_level)
            logging.getLogger("chatserver").setLevel(logging.NOTSET)
