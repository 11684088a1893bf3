"""
=============================================================================
LOGGING
=============================================================================

Two kinds of log output:

1. DIAGNOSTICS - every module logs through logging.getLogger(__name__)
   (chatserver.core.connection, chatserver.chat.broadcast, ...).

2. CHAT ACTIVITY - joins, messages, leaves and refused clients, emitted
   as structured ChatEvent records on the "chatserver.activity" logger.

    TEXT FORMAT (default):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ 2026-10-19T18:22:05Z join alice [a1b2c3d4] 127.0.0.1:51234          │
    │ 2026-10-19T18:22:09Z message alice [a1b2c3d4] 127.0.0.1:51234 "hi"  │
    └─────────────────────────────────────────────────────────────────────┘

    JSON FORMAT (for log aggregators):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ {"event": "message", "handle": "alice", "session_id": "a1b2c3d4",   │
    │  "client": "127.0.0.1:51234", "text": "hi", "online": 2,            │
    │  "timestamp": "2026-10-19T18:22:09Z"}                               │
    └─────────────────────────────────────────────────────────────────────┘

The activity logger is namespaced so it can be routed on its own:

    logging.getLogger("chatserver.activity").addHandler(file_handler)

=============================================================================
"""

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Optional


ACTIVITY_LOGGER = "chatserver.activity"

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _utc_timestamp() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


class JsonFormatter(logging.Formatter):
    """One JSON object per log record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record, DATE_FORMAT),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def configure_logging(level: str = "INFO", log_format: str = "text") -> None:
    """
    Configure the root logger for the server process.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL.
        log_format: "text" or "json".
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler()
    if log_format == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt=DATE_FORMAT))

    root = logging.getLogger()
    # Replace handlers from a previous run in the same process
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(numeric_level)

    logging.getLogger("chatserver").setLevel(numeric_level)


@dataclass
class ChatEvent:
    """
    Structured record of one chat event.

    Attributes:
        event: "join", "message", "leave" or "rejected".
        handle: Display handle, None before one is assigned.
        session_id: Connection id, for correlating with diagnostics.
        client: Client ip:port.
        text: Message text (message events only).
        online: Registered sessions after the event.
        timestamp: UTC time of the event.
    """
    event: str
    handle: Optional[str]
    session_id: str
    client: str
    text: Optional[str] = None
    online: Optional[int] = None
    timestamp: str = field(default_factory=_utc_timestamp)

    def to_dict(self) -> dict:
        entry = {
            "event": self.event,
            "handle": self.handle,
            "session_id": self.session_id,
            "client": self.client,
            "timestamp": self.timestamp,
        }
        if self.text is not None:
            entry["text"] = self.text
        if self.online is not None:
            entry["online"] = self.online
        return entry

    def to_text(self) -> str:
        parts = [self.timestamp, self.event, self.handle or "-", f"[{self.session_id}]", self.client]
        if self.text is not None:
            parts.append(json.dumps(self.text))
        if self.online is not None:
            parts.append(f"online={self.online}")
        return " ".join(parts)


class ChatEventLogger:
    """
    Emits ChatEvents on the activity logger.

    Message events go out at DEBUG so chat content stays out of INFO logs
    unless asked for; joins and leaves go out at INFO.
    """

    def __init__(self, log_format: str = "text", logger: Optional[logging.Logger] = None):
        self.log_format = log_format
        self.logger = logger or logging.getLogger(ACTIVITY_LOGGER)

    def emit(self, event: ChatEvent, level: int = logging.INFO) -> None:
        if not self.logger.isEnabledFor(level):
            return
        if self.log_format == "json":
            self.logger.log(level, json.dumps(event.to_dict()))
        else:
            self.logger.log(level, event.to_text())

    def joined(self, session, online: int) -> None:
        self.emit(ChatEvent("join", session.handle, session.id, session.peer, online=online))

    def message(self, session, text: str) -> None:
        self.emit(ChatEvent("message", session.handle, session.id, session.peer, text=text), logging.DEBUG)

    def left(self, session, online: int) -> None:
        self.emit(ChatEvent("leave", session.handle, session.id, session.peer, online=online))

    def rejected(self, session, reason: str) -> None:
        self.emit(ChatEvent("rejected", session.handle, session.id, session.peer, text=reason), logging.WARNING)
