"""
=============================================================================
BROADCAST COORDINATOR
=============================================================================

Delivers one line to every registered session except the sender.

=============================================================================
DELIVERY RULES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   broadcast("bob: hi", exclude=bob)                                  │
    │       │                                                              │
    │       ├── snapshot = registry.snapshot()                             │
    │       │                                                              │
    │       └── for each session in snapshot (except bob):                 │
    │               write_line("bob: hi")                                  │
    │                   ├── True  → delivered += 1                         │
    │                   └── False → log, failed += 1, KEEP GOING           │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

1. ISOLATION: one dead recipient never stops delivery to the others.

2. NO REMOVAL HERE: a failed recipient stays registered. Its own session
   thread sees the broken socket on its next read and runs the normal
   leave sequence. Only that thread ever unregisters it, so two threads
   never race to tear the same session down.

3. ORDER: fan-out runs on the sender's own thread, so two lines from the
   same sender are broadcast one after the other, and each recipient's
   transport (or outbox) is FIFO. No ordering is promised between
   different senders.

=============================================================================
"""

import logging
import threading
from typing import Optional

from .registry import Registry
from .session import Session


logger = logging.getLogger(__name__)


class Broadcaster:
    """Fan-out of lines to registered sessions."""

    def __init__(self, registry: Registry):
        self.registry = registry
        self._lock = threading.Lock()  # Protects counters
        self.delivered = 0
        self.failed = 0

    def broadcast(self, text: str, exclude: Optional[Session] = None) -> int:
        """
        Send text to every registered session except exclude.

        Returns:
            Number of sessions the line was handed to successfully.
        """
        delivered = 0
        failed = 0

        for session in self.registry.snapshot():
            if session is exclude:
                continue

            if session.write_line(text):
                delivered += 1
            else:
                failed += 1
                logger.warning(
                    f"[{session.id}] Broadcast delivery to {session.handle!r} failed"
                )

        with self._lock:
            self.delivered += delivered
            self.failed += failed

        logger.debug(f"Broadcast to {delivered} sessions ({failed} failed): {text!r}")
        return delivered

    def announce(self, text: str) -> int:
        """Server-wide notice to every registered session."""
        return self.broadcast(text, exclude=None)

    @property
    def stats(self) -> dict:
        with self._lock:
            return {"delivered": self.delivered, "failed": self.failed}
