"""
=============================================================================
CHAT SESSION
=============================================================================

A Session is the server-side view of one connected client: its transport,
its handle, and where it is in its lifecycle.

=============================================================================
STATE MACHINE
=============================================================================

    ┌────────────┐  assign_handle()  ┌────────┐  EOF / quit / error  ┌─────────────┐
    │ CONNECTING │ ────────────────► │ ACTIVE │ ───────────────────► │ TERMINATING │
    └────────────┘                   └────────┘                      └──────┬──────┘
          │                                                                 │ close()
          │            EOF before any handle                                ▼
          └───────────────────────────────────────────────────────► ┌────────────┐
                                                                     │ TERMINATED │
                                                                     └────────────┘

No transition goes backwards. Sessions are compared by identity: two
clients may pick the same handle and still be two sessions.

=============================================================================
"""

import logging
import threading
from enum import Enum
from typing import Optional

from ..core.connection import Connection
from .outbox import Outbox


logger = logging.getLogger(__name__)


class SessionState(Enum):
    CONNECTING = "connecting"
    ACTIVE = "active"
    TERMINATING = "terminating"
    TERMINATED = "terminated"


_ORDER = {
    SessionState.CONNECTING: 0,
    SessionState.ACTIVE: 1,
    SessionState.TERMINATING: 2,
    SessionState.TERMINATED: 3,
}


class Session:
    """
    One connected chat client.

    The Session owns its Connection. Nothing else in the server touches the
    socket: the handler reads through read_line(), and both the handler and
    the broadcaster write through write_line().

    Args:
        connection: The accepted client transport.
        outbox: Optional Outbox. When given, write_line() enqueues and the
                outbox's writer thread does the actual send.
    """

    def __init__(self, connection: Connection, outbox: Optional[Outbox] = None):
        self.connection = connection
        self.outbox = outbox
        self.handle: Optional[str] = None
        self._state = SessionState.CONNECTING
        self._state_lock = threading.Lock()
        self._termination_claimed = False

    def __repr__(self) -> str:
        return f"Session(id={self.id!r}, handle={self.handle!r}, state={self._state.value})"

    @property
    def id(self) -> str:
        return self.connection.id

    @property
    def peer(self) -> str:
        return self.connection.peer

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state == SessionState.ACTIVE

    def _advance(self, new_state: SessionState) -> bool:
        """Move forward to new_state. Returns False if already there or past it."""
        with self._state_lock:
            if _ORDER[new_state] <= _ORDER[self._state]:
                return False
            self._state = new_state
            return True

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def assign_handle(self, handle: str) -> str:
        """
        Set the display handle and become ACTIVE. Allowed exactly once.

        Raises:
            RuntimeError: If the session already left CONNECTING.
        """
        with self._state_lock:
            if self._state != SessionState.CONNECTING:
                raise RuntimeError(f"Session {self.id} already has state {self._state.value}")
            self.handle = handle
            self._state = SessionState.ACTIVE
        return handle

    def begin_termination(self) -> bool:
        """
        Claim the leave sequence and enter TERMINATING.

        Returns True exactly once per session, even if close() already ran
        from another thread (server shutdown), so the owner still gets to
        unregister the session.
        """
        with self._state_lock:
            if self._termination_claimed:
                return False
            self._termination_claimed = True
            if _ORDER[self._state] < _ORDER[SessionState.TERMINATING]:
                self._state = SessionState.TERMINATING
            return True

    def close(self):
        """
        Release the transport. Idempotent; safe from any thread.

        A blocked read_line() on the session's own thread returns None
        once the connection is shut down.
        """
        self._advance(SessionState.TERMINATED)
        if self.outbox is not None:
            self.outbox.close()
        self.connection.close()

    # =========================================================================
    # I/O
    # =========================================================================

    def read_line(self) -> Optional[str]:
        """Next line from the client, or None when the stream has ended."""
        if self._state == SessionState.TERMINATED:
            return None
        return self.connection.read_line()

    def write_line(self, text: str) -> bool:
        """
        Send one line to the client.

        Never raises for transport problems; returns False instead so a
        broadcast can carry on with the other recipients.
        """
        if self._state == SessionState.TERMINATED:
            return False
        if self.outbox is not None:
            return self.outbox.put(text)
        return self.connection.send_line(text)
