"""
=============================================================================
SESSION PROTOCOL HANDLER
=============================================================================

The read-driven loop that runs on each session's worker thread. It is the
glue between Session, Registry, Broadcaster and the bot.

=============================================================================
SESSION FLOW
=============================================================================

    1. HANDLE
       └── read_line() → strip → blank or missing? use fallback handle

    2. JOIN
       └── registry.add(session)
       └── broadcast "[Server] alice has joined the chat." (not to alice)
       └── send "[Server] Welcome, alice!" to alice

    3. CHAT LOOP
       └── read_line()
             ├── None            → peer gone, stop
             ├── /quit, /exit    → stop
             ├── blank           → ignore
             └── text            → broadcast "alice: text" (not to alice)
                                   send bot reply to alice only

    4. LEAVE (always, even after an unexpected exception)
       └── broadcast "[Server] alice has left the chat." (not to alice)
       └── registry.remove(session)
       └── session.close()

A read failure is not an error here. It is how a disconnect is noticed,
and it leads to exactly the same LEAVE steps as /quit.

=============================================================================
"""

import logging
from typing import Callable, Optional

from ..chatlog import ChatEventLogger
from . import protocol
from .bot import ReplyGenerator
from .broadcast import Broadcaster
from .registry import Registry
from .session import Session


logger = logging.getLogger(__name__)


class SessionHandler:
    """
    Runs the chat protocol for one session at a time (one call per thread).

    Args:
        registry: Live sessions.
        broadcaster: Fan-out over the registry.
        replies: Maps a chat line to the bot's private reply.
        fallback_handle: Handle for clients whose first line is blank.
        events: Activity logger.
    """

    def __init__(
        self,
        registry: Registry,
        broadcaster: Broadcaster,
        replies: Optional[Callable[[str], str]] = None,
        fallback_handle: str = protocol.DEFAULT_FALLBACK_HANDLE,
        events: Optional[ChatEventLogger] = None,
    ):
        self.registry = registry
        self.broadcaster = broadcaster
        self.replies = replies or ReplyGenerator()
        self.fallback_handle = fallback_handle
        self.events = events or ChatEventLogger()

    def serve(self, session: Session) -> None:
        """Run the whole protocol for session. Returns when it has ended."""
        try:
            self._join(session)
            self._chat_loop(session)
        finally:
            self.terminate(session)

    def _join(self, session: Session) -> None:
        raw = session.read_line()
        try:
            handle = session.assign_handle(protocol.normalize_handle(raw, self.fallback_handle))
        except RuntimeError:
            # Closed by server shutdown before the client named itself
            logger.debug(f"[{session.id}] Closed before joining")
            return

        self.registry.add(session)
        logger.info(f"User connected: {handle} from {session.peer}")
        self.events.joined(session, online=len(self.registry))

        self.broadcaster.broadcast(protocol.joined(handle), exclude=session)
        session.write_line(protocol.welcome(handle))

    def _chat_loop(self, session: Session) -> None:
        while True:
            line = session.read_line()
            if line is None:
                break

            text = line.strip()
            if protocol.is_quit(text):
                logger.debug(f"[{session.id}] {session.handle} sent {text}")
                break
            if not text:
                continue

            self.events.message(session, text)
            self.broadcaster.broadcast(protocol.chat_line(session.handle, text), exclude=session)
            session.write_line(self.replies(text))

    def terminate(self, session: Session) -> None:
        """
        Leave sequence. Runs once per session; later calls are no-ops.

        Only the session's own thread calls this, so the registry is never
        asked to remove the same session from two places at once.
        """
        if not session.begin_termination():
            return

        try:
            if session.handle is not None:
                logger.info(f"User disconnected: {session.handle}")
                self.broadcaster.broadcast(protocol.left(session.handle), exclude=session)
        finally:
            self.registry.remove(session)
            session.close()

        if session.handle is not None:
            self.events.left(session, online=len(self.registry))
