"""
=============================================================================
SESSION REGISTRY
=============================================================================

The set of live sessions. It is the only structure that several session
threads mutate, so every operation goes through one lock.

=============================================================================
COPY-ON-READ SNAPSHOTS
=============================================================================

Broadcasting means writing to sockets, and writes can block. Holding the
registry lock across those writes would freeze every join and leave
behind the slowest client. So a broadcast does:

    with lock:                 ← microseconds
        snapshot = tuple(sessions)
    for s in snapshot:         ← no lock held, may be slow
        s.write_line(...)

The tuple never changes after it is returned. A session that leaves in
the middle of the loop is still in that snapshot; its write_line()
returns False instead of raising, so that is harmless.

=============================================================================
"""

import logging
import threading
from typing import Dict, Tuple

from .session import Session


logger = logging.getLogger(__name__)


class Registry:
    """
    Thread-safe set of registered sessions, keyed by identity.

    Handles are not unique, so they are never used as keys. Insertion order
    is kept, which makes snapshots list sessions in join order.
    """

    def __init__(self):
        self._sessions: Dict[int, Session] = {}
        self._lock = threading.Lock()

    def add(self, session: Session) -> None:
        with self._lock:
            self._sessions[id(session)] = session
            count = len(self._sessions)
        logger.debug(f"[{session.id}] Registered ({count} online)")

    def remove(self, session: Session) -> bool:
        """
        Remove session if present.

        Returns:
            True if it was registered. Removing a non-member is a no-op.
        """
        with self._lock:
            removed = self._sessions.pop(id(session), None) is not None
            count = len(self._sessions)
        if removed:
            logger.debug(f"[{session.id}] Unregistered ({count} online)")
        return removed

    def snapshot(self) -> Tuple[Session, ...]:
        """Immutable point-in-time copy of the registered sessions."""
        with self._lock:
            return tuple(self._sessions.values())

    def handles(self) -> Tuple[str, ...]:
        """Handles of the registered sessions, in join order."""
        return tuple(s.handle for s in self.snapshot() if s.handle is not None)

    def close_all(self) -> int:
        """
        Close every registered session (server shutdown).

        Sessions are not removed here. Closing wakes each session's own
        thread, which then unregisters itself as usual.
        """
        sessions = self.snapshot()
        for session in sessions:
            session.close()
        return len(sessions)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session: Session) -> bool:
        with self._lock:
            return self._sessions.get(id(session)) is session
