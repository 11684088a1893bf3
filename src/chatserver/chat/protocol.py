"""
Wire protocol of the chat service.

Plain UTF-8 text, one message per line:

    client → server   first line: handle
    server → client   [Server] Welcome, <handle>!
    server → others   [Server] <handle> has joined the chat.
    client → server   <text>            (blank lines are ignored)
    server → others   <handle>: <text>
    server → client   Bot: ...          (private reply)
    client → server   /quit or /exit    (any case)
    server → others   [Server] <handle> has left the chat.
"""

from typing import Optional


SERVER_PREFIX = "[Server]"
DEFAULT_FALLBACK_HANDLE = "Anonymous"
QUIT_COMMANDS = frozenset({"/quit", "/exit"})
DEFAULT_PORT = 5000


def is_quit(text: str) -> bool:
    """True if text is a quit sentinel, ignoring case and surrounding spaces."""
    return text.strip().lower() in QUIT_COMMANDS


def normalize_handle(raw: Optional[str], fallback: str = DEFAULT_FALLBACK_HANDLE) -> str:
    """Strip the first line; missing or blank handles become fallback."""
    if raw is None:
        return fallback
    handle = raw.strip()
    return handle or fallback


def welcome(handle: str) -> str:
    return f"{SERVER_PREFIX} Welcome, {handle}!"


def joined(handle: str) -> str:
    return f"{SERVER_PREFIX} {handle} has joined the chat."


def left(handle: str) -> str:
    return f"{SERVER_PREFIX} {handle} has left the chat."


def chat_line(handle: str, text: str) -> str:
    return f"{handle}: {text}"


def server_full() -> str:
    return f"{SERVER_PREFIX} Server is full, try again later."


def shutting_down() -> str:
    return f"{SERVER_PREFIX} Server is shutting down."
